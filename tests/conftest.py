"""
Pytest configuration and shared fixtures for testing.
"""
import sys
from pathlib import Path

# Add project root to path so attempt_engine is importable without installing
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import asyncio  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402

from attempt_engine.client import AttemptServiceClient  # noqa: E402
from attempt_engine.config import Settings  # noqa: E402
from attempt_engine.exceptions import (  # noqa: E402
    AttemptAlreadySubmittedError,
    AttemptServiceError,
)
from attempt_engine.models import (  # noqa: E402
    AnswerKey,
    AnswerRecord,
    Attempt,
    AttemptResult,
    StartAttemptResponse,
    Test,
)
from attempt_engine.telemetry import metrics  # noqa: E402

TEST_ID = "test-1"


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests that require a live attempt service",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture(autouse=True)
def disable_telemetry():
    """Keep the OpenTelemetry API out of unit tests."""
    previous = metrics._enabled
    metrics._enabled = False
    yield
    metrics._enabled = previous


class FakeNow:
    """Controllable time source for clock-dependent code."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2025, 1, 15, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeAttemptService(AttemptServiceClient):
    """
    In-memory attempt service.

    Remote answers are upserted into ``remote`` keyed like the engine keys
    them. Saves and submits can be held on an asyncio.Event or made to fail.
    """

    def __init__(self, test: Test, attempt: Attempt) -> None:
        self.test = test
        self.attempt = attempt
        self.remote: Dict[AnswerKey, AnswerRecord] = {r.key: r for r in attempt.answers}
        self.save_calls: List[AnswerRecord] = []
        self.submit_calls = 0
        self.start_calls = 0
        self.submitted = attempt.submitted_at is not None

        self.save_gates: Dict[str, asyncio.Event] = {}
        self.fail_saves = False
        self.submit_gate: Optional[asyncio.Event] = None
        self.submit_failures = 0
        self.start_error: Optional[Exception] = None

    async def start_attempt(self, test_id: str) -> StartAttemptResponse:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        if self.submitted:
            raise AttemptAlreadySubmittedError(status_code=400)
        attempt = self.attempt.model_copy(update={"answers": list(self.remote.values())})
        return StartAttemptResponse(test=self.test, attempt=attempt)

    async def save_answer(self, test_id: str, record: AnswerRecord) -> None:
        self.save_calls.append(record)
        gate = self.save_gates.get(record.question_id)
        if gate is not None:
            await gate.wait()
        if self.fail_saves:
            raise AttemptServiceError("Failed to save answer", status_code=500)
        self.remote[record.key] = record

    async def submit_attempt(self, test_id: str) -> None:
        self.submit_calls += 1
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_failures > 0:
            self.submit_failures -= 1
            raise AttemptServiceError("Internal server error", status_code=500)
        if self.submitted:
            raise AttemptAlreadySubmittedError(status_code=400)
        self.submitted = True

    async def fetch_result(self, test_id: str) -> AttemptResult:
        attempt = self.attempt.model_copy(
            update={
                "answers": list(self.remote.values()),
                "submitted_at": datetime.now(timezone.utc),
            }
        )
        return AttemptResult(attempt=attempt, test=self.test)

    def answered_remote(self) -> List[AnswerRecord]:
        return [r for r in self.remote.values() if r.has_answer]


def make_test_payload(duration_minutes: int = 3) -> Dict[str, Any]:
    """Two sections of two questions; the last question is numerical."""
    return {
        "_id": TEST_ID,
        "name": "Physics Mock 1",
        "duration": duration_minutes,
        "sections": [
            {
                "_id": "sec-1",
                "name": "Physics",
                "questions": [
                    {
                        "question": {"_id": "q1", "type": "mcq", "imageUrl": "q1.png"},
                        "positiveMarks": 4,
                        "negativeMarks": 1,
                    },
                    {
                        "question": {"_id": "q2", "type": "mcq", "imageUrl": "q2.png"},
                        "positiveMarks": 4,
                        "negativeMarks": 1,
                    },
                ],
            },
            {
                "_id": "sec-2",
                "name": "Chemistry",
                "questions": [
                    {
                        "question": {"_id": "q3", "type": "mcq", "imageUrl": "q3.png"},
                        "positiveMarks": 4,
                        "negativeMarks": 1,
                    },
                    {
                        "question": {
                            "_id": "q4",
                            "type": "numerical",
                            "imageUrl": "q4.png",
                        },
                        "positiveMarks": 4,
                        "negativeMarks": 0,
                    },
                ],
            },
        ],
    }


@pytest.fixture
def test_payload() -> Dict[str, Any]:
    return make_test_payload()


@pytest.fixture
def exam(test_payload) -> Test:
    return Test.model_validate(test_payload)


@pytest.fixture
def fake_now() -> FakeNow:
    return FakeNow()


@pytest.fixture
def settings() -> Settings:
    """Settings with fast submit retries, independent of the environment."""
    return Settings(
        _env_file=None,
        SUBMIT_RETRY_INITIAL_DELAY=0.01,
        SUBMIT_RETRY_BACKOFF_FACTOR=2.0,
        SUBMIT_RETRY_MAX_DELAY=0.05,
    )


@pytest.fixture
def attempt() -> Attempt:
    """Attempt started just now by the real clock."""
    return Attempt(id="attempt-1", started_at=datetime.now(timezone.utc))


@pytest.fixture
def service(exam, attempt) -> FakeAttemptService:
    return FakeAttemptService(exam, attempt)
