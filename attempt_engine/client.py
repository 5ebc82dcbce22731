"""Attempt service client.

AttemptServiceClient is the contract the engine consumes; the engine never
depends on the wire shape. HttpAttemptServiceClient talks to the JSON REST
API of the exam portal backend.
"""

import abc
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from attempt_engine.config import Settings, settings as default_settings
from attempt_engine.exceptions import (
    AttemptAlreadySubmittedError,
    AttemptServiceError,
    ErrorMessages,
    MalformedPayloadError,
)
from attempt_engine.models import AnswerRecord, AttemptResult, StartAttemptResponse

logger = logging.getLogger(__name__)


class AttemptServiceClient(abc.ABC):
    """Operations the engine needs from the test/attempt service."""

    @abc.abstractmethod
    async def start_attempt(self, test_id: str) -> StartAttemptResponse:
        """Start or resume the attempt for ``test_id``.

        Raises:
            AttemptAlreadySubmittedError: If the attempt is already final.
            AttemptServiceError: On any other failure.
        """

    @abc.abstractmethod
    async def save_answer(self, test_id: str, record: AnswerRecord) -> None:
        """Upsert one answer keyed by (section, question)."""

    @abc.abstractmethod
    async def submit_attempt(self, test_id: str) -> None:
        """Finalize the attempt.

        Raises:
            AttemptAlreadySubmittedError: If it was already final.
            AttemptServiceError: On any other failure.
        """

    @abc.abstractmethod
    async def fetch_result(self, test_id: str) -> AttemptResult:
        """Graded attempt for the results view."""


class HttpAttemptServiceClient(AttemptServiceClient):
    """Attempt service client over HTTP.

    Attributes:
        base_url: Base URL of the API (e.g., "https://exam.example.com/api")
        timeout: HTTP request timeout in seconds
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        *,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL (default: settings.SERVICE_URL)
            token: Bearer token of the student (default: settings.SERVICE_TOKEN)
            timeout: Request timeout in seconds (default: settings.REQUEST_TIMEOUT)
            config: Settings to read defaults from
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        config = config or default_settings
        self.base_url = (base_url or config.SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT
        token = token if token is not None else config.SERVICE_TOKEN
        self._results_route = config.RESULTS_ROUTE
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._get_headers(token),
            timeout=self.timeout,
            transport=transport,
        )
        logger.debug(f"HttpAttemptServiceClient initialized with base_url: {self.base_url}")

    async def __aenter__(self) -> "HttpAttemptServiceClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _get_headers(token: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def start_attempt(self, test_id: str) -> StartAttemptResponse:
        data = await self._request(
            "POST", f"/tests/{test_id}/start", test_id=test_id, expect_body=True
        )
        return self._parse(StartAttemptResponse, data, "start attempt")

    async def save_answer(self, test_id: str, record: AnswerRecord) -> None:
        await self._request(
            "POST",
            f"/tests/{test_id}/answer",
            test_id=test_id,
            json=record.to_payload(),
        )

    async def submit_attempt(self, test_id: str) -> None:
        await self._request("POST", f"/tests/{test_id}/submit", test_id=test_id)

    async def fetch_result(self, test_id: str) -> AttemptResult:
        data = await self._request(
            "GET", f"/tests/{test_id}/my-result", test_id=test_id, expect_body=True
        )
        return self._parse(AttemptResult, data, "fetch result")

    @staticmethod
    def _parse(model, data: Any, operation: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed payload when trying to {operation}: {e}")
            raise MalformedPayloadError(validation_error=e) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            message = body.get("message")
            return message if isinstance(message, str) else None
        return None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        test_id: str,
        json: Optional[Dict[str, Any]] = None,
        expect_body: bool = False,
    ) -> Any:
        """Send a request and map every failure onto the engine's errors.

        Acks (expect_body=False) may have any body; it is not decoded.
        """
        try:
            response = await self._http.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            message = self._error_message(e.response)
            if ErrorMessages.is_already_submitted(message):
                logger.info(f"{method} {path}: attempt already submitted")
                raise AttemptAlreadySubmittedError(
                    message,
                    status_code=status_code,
                    redirect_to=self._results_route.format(test_id=test_id),
                ) from e
            logger.warning(f"HTTP error on {method} {path}: {status_code} {message or ''}")
            raise AttemptServiceError(
                message or f"HTTP {status_code}", status_code=status_code
            ) from e
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout on {method} {path}: {e}")
            raise AttemptServiceError(ErrorMessages.SERVICE_TIMEOUT) from e
        except httpx.TransportError as e:
            logger.warning(f"Connection error on {method} {path}: {e}")
            raise AttemptServiceError(ErrorMessages.SERVICE_UNREACHABLE) from e

        if not expect_body:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Non-JSON body on {method} {path}")
            raise MalformedPayloadError() from e
