"""Submission controller: the single writer of an attempt's terminal state.

States:
    IN_PROGRESS -> SUBMITTING: request_submit(MANUAL) or deadline expiry
    SUBMITTING -> SUBMITTED: submit_attempt acknowledged (terminal)
    SUBMITTING -> IN_PROGRESS: submit_attempt failed; the error is retryable

The IN_PROGRESS -> SUBMITTING edge is taken synchronously, before the first
await, so concurrent requests from the timer and the user cannot both pass
the guard. Entering SUBMITTING freezes the answer store.

A failed timeout submission is retried with exponential backoff until it
succeeds or the controller is closed.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, TYPE_CHECKING

from attempt_engine.config import Settings, settings as default_settings
from attempt_engine.datetime_utils import utc_now
from attempt_engine.domain_types import SubmissionState, SubmitTrigger
from attempt_engine.exceptions import (
    AttemptAlreadySubmittedError,
    SubmissionFailedError,
)
from attempt_engine.graceful_failure import graceful_failure
from attempt_engine.telemetry import metrics

if TYPE_CHECKING:
    from attempt_engine.answers import AnswerStore
    from attempt_engine.client import AttemptServiceClient
    from attempt_engine.clock import DeadlineClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result handed to the presentation layer after a successful submission."""

    trigger: SubmitTrigger
    submitted_at: datetime
    results_route: str


SubmittedCallback = Callable[[SubmissionOutcome], None]
ErrorCallback = Callable[[SubmissionFailedError], None]


class SubmissionController:
    """Exactly-once submission for one attempt."""

    def __init__(
        self,
        test_id: str,
        client: "AttemptServiceClient",
        answers: "AnswerStore",
        clock: Optional["DeadlineClock"] = None,
        *,
        on_submitted: Optional[SubmittedCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        config: Optional[Settings] = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        config = config or default_settings
        self.test_id = test_id
        self._client = client
        self._answers = answers
        self._clock = clock
        self._on_submitted = on_submitted
        self._on_error = on_error
        self._now = now
        self._results_route = config.results_route(test_id)
        self._retry_initial = config.SUBMIT_RETRY_INITIAL_DELAY
        self._retry_factor = config.SUBMIT_RETRY_BACKOFF_FACTOR
        self._retry_max = config.SUBMIT_RETRY_MAX_DELAY

        self._state = SubmissionState.IN_PROGRESS
        self._outcome: Optional[SubmissionOutcome] = None
        self._last_error: Optional[SubmissionFailedError] = None
        self._deadline_passed = False
        self._auto_task: Optional[asyncio.Task] = None
        self._closed = False

        if clock is not None:
            clock.add_expired_listener(self.handle_expired)

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def is_submitted(self) -> bool:
        return self._state is SubmissionState.SUBMITTED

    @property
    def outcome(self) -> Optional[SubmissionOutcome]:
        return self._outcome

    @property
    def last_error(self) -> Optional[SubmissionFailedError]:
        return self._last_error

    @property
    def deadline_passed(self) -> bool:
        return self._deadline_passed

    def handle_expired(self) -> None:
        """Deadline listener: freeze answers now and start auto-submission."""
        self._deadline_passed = True
        self._answers.freeze()
        if self._closed or self._state is SubmissionState.SUBMITTED:
            return
        if self._auto_task is None or self._auto_task.done():
            logger.info(
                "Deadline expired; auto-submitting",
                extra={"test_id": self.test_id, "trigger": SubmitTrigger.TIMEOUT.value},
            )
            self._auto_task = asyncio.get_running_loop().create_task(self._auto_submit())

    async def request_submit(
        self, trigger: SubmitTrigger = SubmitTrigger.MANUAL
    ) -> Optional[SubmissionOutcome]:
        """
        Submit the attempt once.

        For MANUAL the caller must already have the student's confirmation.

        Returns:
            The outcome, or None if a submission is already in flight, the
            attempt is already submitted, or the controller is closed.

        Raises:
            SubmissionFailedError: If the service rejected the submission; the
                state is back to IN_PROGRESS and the call can be repeated.
        """
        trigger = SubmitTrigger(trigger)
        if self._closed or self._state is not SubmissionState.IN_PROGRESS:
            logger.debug(f"Ignoring {trigger.value} submit in state {self._state.value}")
            return None

        self._state = SubmissionState.SUBMITTING
        self._answers.freeze()
        logger.info(
            f"Submitting attempt ({trigger.value})",
            extra={"test_id": self.test_id, "trigger": trigger.value},
        )

        try:
            await self._answers.flush()
            await self._client.submit_attempt(self.test_id)
        except AttemptAlreadySubmittedError:
            logger.info("Attempt was already final on the service; treating as submitted")
        except Exception as e:
            raise self._fail(trigger, e) from e
        except asyncio.CancelledError:
            if self._state is SubmissionState.SUBMITTING:
                self._state = SubmissionState.IN_PROGRESS
            raise

        return self._succeed(trigger)

    async def close(self) -> None:
        """Stop auto-submission and its retries; later requests are ignored."""
        self._closed = True
        task = self._auto_task
        self._auto_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _succeed(self, trigger: SubmitTrigger) -> SubmissionOutcome:
        self._state = SubmissionState.SUBMITTED
        self._last_error = None
        if self._clock is not None:
            self._clock.cancel()
        outcome = SubmissionOutcome(
            trigger=trigger,
            submitted_at=self._now(),
            results_route=self._results_route,
        )
        self._outcome = outcome
        metrics.record_submission(trigger.value, "success")
        logger.info(
            "Attempt submitted",
            extra={"test_id": self.test_id, "trigger": trigger.value},
        )
        if self._on_submitted is not None:
            with graceful_failure("notify submission listener", logger, exc_info=True):
                self._on_submitted(outcome)
        return outcome

    def _fail(self, trigger: SubmitTrigger, cause: Exception) -> SubmissionFailedError:
        self._state = SubmissionState.IN_PROGRESS
        # Answers stay frozen once the deadline has passed
        if not self._deadline_passed and not self._closed:
            self._answers.unfreeze()
        error = SubmissionFailedError(trigger, cause)
        self._last_error = error
        metrics.record_submission(trigger.value, "failure")
        logger.error(
            f"Failed to submit attempt ({trigger.value}): {cause}",
            extra={"test_id": self.test_id, "trigger": trigger.value},
        )
        if self._on_error is not None:
            with graceful_failure("notify submission error listener", logger, exc_info=True):
                self._on_error(error)
        return error

    async def _auto_submit(self) -> None:
        delay = self._retry_initial
        while not self._closed and self._state is not SubmissionState.SUBMITTED:
            if self._state is SubmissionState.IN_PROGRESS:
                try:
                    await self.request_submit(SubmitTrigger.TIMEOUT)
                except SubmissionFailedError:
                    logger.warning(f"Auto-submit failed; retrying in {delay:.1f}s")
                else:
                    continue
            # Either our attempt failed or a manual one is in flight; look again later
            await asyncio.sleep(delay)
            delay = min(delay * self._retry_factor, self._retry_max)
