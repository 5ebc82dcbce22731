"""
Attempt session: one student's timed attempt from start to submission.

AttemptSession owns exactly one deadline clock, answer store, visitation
tracker, navigation cursor and submission controller, all over the same
Attempt. The presentation layer drives it; every call except start(),
submit() and close() is synchronous.

Usage:
    async with HttpAttemptServiceClient(token=token) as client:
        try:
            session = await AttemptSession.start(test_id, client, on_tick=render)
        except AttemptAlreadySubmittedError as e:
            redirect(e.redirect_to)
        async with session:
            session.select_option("B")
            session.save_and_next()
            ...
            outcome = await session.submit()
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from attempt_engine.answers import AnswerStore
from attempt_engine.client import AttemptServiceClient
from attempt_engine.clock import DeadlineClock, TickListener, format_remaining
from attempt_engine.config import Settings, settings as default_settings
from attempt_engine.datetime_utils import utc_now
from attempt_engine.domain_types import QuestionStatus, SubmissionState, SubmitTrigger
from attempt_engine.exceptions import (
    AttemptAlreadySubmittedError,
    AttemptServiceError,
    ErrorMessages,
    QuestionNotFoundError,
)
from attempt_engine.logging_config import attempt_id_context
from attempt_engine.models import (
    AnswerKey,
    AnswerRecord,
    Attempt,
    Position,
    QuestionEntry,
    Section,
    Test,
)
from attempt_engine.navigation import NavigationCursor
from attempt_engine.status import PaletteEntry, classify, count_statuses
from attempt_engine.submission import (
    ErrorCallback,
    SubmissionController,
    SubmissionOutcome,
    SubmittedCallback,
)
from attempt_engine.tracker import VisitationTracker

logger = logging.getLogger(__name__)


class AttemptSession:
    """Façade over the attempt engine components for one attempt."""

    def __init__(
        self,
        test: Test,
        attempt: Attempt,
        client: AttemptServiceClient,
        *,
        on_tick: Optional[TickListener] = None,
        on_submitted: Optional[SubmittedCallback] = None,
        on_submit_error: Optional[ErrorCallback] = None,
        config: Optional[Settings] = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Wire the components. The clock is not started; see begin().

        Use AttemptSession.start() to create a session from the service.
        """
        self._config = config or default_settings
        self.test = test
        self.attempt = attempt
        self._closed = False

        self.answers = AnswerStore(test.id, client)
        self.tracker = VisitationTracker()
        self.clock = DeadlineClock(on_tick=on_tick, now=now)
        self.submission = SubmissionController(
            test.id,
            client,
            self.answers,
            self.clock,
            on_submitted=self._wrap_submitted(on_submitted),
            on_error=on_submit_error,
            config=self._config,
            now=now,
        )

        self.answers.hydrate(self._restore_answers(test, attempt.answers))
        # Answers saved before a reload count as visited questions
        for record in attempt.answers:
            self.tracker.mark_visited(record.section_id, record.question_id)

        self.cursor = NavigationCursor(test, on_visit=self.tracker.mark_visited)

    @classmethod
    async def start(
        cls,
        test_id: str,
        client: AttemptServiceClient,
        *,
        on_tick: Optional[TickListener] = None,
        on_submitted: Optional[SubmittedCallback] = None,
        on_submit_error: Optional[ErrorCallback] = None,
        config: Optional[Settings] = None,
        now: Callable[[], datetime] = utc_now,
    ) -> "AttemptSession":
        """
        Start (or resume) the attempt and return a running session.

        Raises:
            AttemptAlreadySubmittedError: The attempt is final; redirect to
                ``redirect_to`` (the results view).
            AttemptServiceError: Start failed; ``redirect_to`` is the dashboard.
            StructuralError: The payload is malformed.
        """
        config = config or default_settings
        try:
            started = await client.start_attempt(test_id)
        except AttemptAlreadySubmittedError as e:
            e.redirect_to = e.redirect_to or config.results_route(test_id)
            logger.info(f"Test {test_id} already submitted; redirecting to results")
            raise
        except AttemptServiceError as e:
            e.redirect_to = e.redirect_to or config.DASHBOARD_ROUTE
            logger.error(f"{ErrorMessages.START_FAILED} {test_id}: {e.message}")
            raise

        if started.attempt.is_submitted:
            raise AttemptAlreadySubmittedError(redirect_to=config.results_route(test_id))

        session = cls(
            started.test,
            started.attempt,
            client,
            on_tick=on_tick,
            on_submitted=on_submitted,
            on_submit_error=on_submit_error,
            config=config,
            now=now,
        )
        session.begin()
        return session

    def begin(self) -> None:
        """Bind the attempt id to the log context and start the deadline clock."""
        attempt_id_context.set(self.attempt.id)
        duration = self.attempt.duration_for(self.test)
        logger.info(
            f"Attempt started with {self.test.question_count} questions, {duration}s",
            extra={"test_id": self.test.id},
        )
        self.clock.start(self.attempt.started_at, duration)

    async def __aenter__(self) -> "AttemptSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel the clock and auto-submit, then wait for pending saves."""
        if self._closed:
            return
        self._closed = True
        self.clock.cancel()
        self.answers.freeze()
        await self.submission.close()
        await self.answers.flush()
        if attempt_id_context.get() == self.attempt.id:
            attempt_id_context.set(None)
        logger.debug("Attempt session closed")

    @staticmethod
    def _restore_answers(test: Test, records: List[AnswerRecord]) -> List[AnswerRecord]:
        """
        Saved answers reduced to the channel of their question's type.

        Raises:
            QuestionNotFoundError: If a record's key is not part of the test.
        """
        restored = []
        for record in records:
            position = test.position_of(record.key)
            if position is None:
                raise QuestionNotFoundError(record.section_id, record.question_id)
            question_type = test.entry_at(position).question.type
            if record.has_answer and not record.has_answer_for(question_type):
                logger.warning(
                    f"Dropping saved answer on the wrong channel for {question_type.value} "
                    f"question {record.question_id}",
                    extra={"section_id": record.section_id, "question_id": record.question_id},
                )
            restored.append(record.on_channel(question_type))
        return restored

    def _wrap_submitted(
        self, listener: Optional[SubmittedCallback]
    ) -> SubmittedCallback:
        def on_submitted(outcome: SubmissionOutcome) -> None:
            self.attempt.submitted_at = outcome.submitted_at
            if listener is not None:
                listener(outcome)

        return on_submitted

    # State

    @property
    def state(self) -> SubmissionState:
        return self.submission.state

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> Attempt:
        """The attempt as the client currently sees it, answers included."""
        return self.attempt.model_copy(update={"answers": self.answers.records()})

    @property
    def remaining_seconds(self) -> int:
        return self.clock.remaining

    @property
    def formatted_remaining(self) -> str:
        return format_remaining(self.clock.remaining)

    @property
    def low_time(self) -> bool:
        """Whether the timer should be shown as a warning (never before the clock starts)."""
        if not (self.clock.running or self.clock.expired):
            return False
        return self.clock.remaining < self._config.LOW_TIME_WARNING_SECONDS

    @property
    def position(self) -> Position:
        return self.cursor.position

    @property
    def current_section(self) -> Section:
        return self.cursor.current_section

    @property
    def current_entry(self) -> QuestionEntry:
        return self.cursor.current_entry

    @property
    def current_answer(self) -> Optional[AnswerRecord]:
        key = self.cursor.current_key
        return self.answers.get_answer(key.section_id, key.question_id)

    # Answers

    def _entry_for(self, section_id: str, question_id: str) -> QuestionEntry:
        position = self.test.position_of(AnswerKey(section_id, question_id))
        if position is None:
            raise QuestionNotFoundError(section_id, question_id)
        return self.test.entry_at(position)

    def set_answer(
        self, section_id: str, question_id: str, value: object
    ) -> Optional[AnswerRecord]:
        """
        Answer a question by key; the channel follows the question type.

        Returns:
            The new record, or None once the attempt is frozen.

        Raises:
            QuestionNotFoundError: If the key is not part of the test.
            ValueError: If the value does not fit the question type.
        """
        entry = self._entry_for(section_id, question_id)
        if self._closed:
            return None
        return self.answers.set_answer(section_id, question_id, entry.question.type, value)

    def clear_answer(self, section_id: str, question_id: str) -> Optional[AnswerRecord]:
        self._entry_for(section_id, question_id)
        if self._closed:
            return None
        return self.answers.clear_answer(section_id, question_id)

    def select_option(self, option: str) -> Optional[AnswerRecord]:
        key = self.cursor.current_key
        return self.set_answer(key.section_id, key.question_id, option)

    def enter_numerical(self, value: object) -> Optional[AnswerRecord]:
        key = self.cursor.current_key
        return self.set_answer(key.section_id, key.question_id, value)

    def clear_response(self) -> Optional[AnswerRecord]:
        key = self.cursor.current_key
        return self.clear_answer(key.section_id, key.question_id)

    # Navigation

    def next(self) -> Position:
        return self.cursor.next()

    def prev(self) -> Position:
        return self.cursor.prev()

    def jump_to(self, section_index: int, question_index: int) -> Position:
        return self.cursor.jump_to(section_index, question_index)

    def jump_to_section(self, section_index: int) -> Position:
        return self.cursor.jump_to_section(section_index)

    def save_and_next(self) -> Position:
        """Persist the current answer again (if any) and advance."""
        key = self.cursor.current_key
        if not self._closed:
            self.answers.save(key.section_id, key.question_id)
        return self.cursor.next()

    def mark_for_review_and_next(self) -> Position:
        """Mark the current question for review, persist its answer, advance."""
        key = self.cursor.current_key
        if not self._closed and not self.answers.frozen:
            self.tracker.mark_for_review(key.section_id, key.question_id)
            self.answers.save(key.section_id, key.question_id)
        return self.cursor.next()

    # Palette

    def status_of(self, section_id: str, question_id: str) -> QuestionStatus:
        entry = self._entry_for(section_id, question_id)
        ui = self.tracker.state_of(section_id, question_id)
        return classify(
            ui.visited,
            ui.marked_for_review,
            self.answers.has_answer(section_id, question_id, entry.question.type),
        )

    def palette(self) -> List[PaletteEntry]:
        """Every question in test order with its derived status."""
        return [
            PaletteEntry(
                section_index=position.section_index,
                question_index=position.question_index,
                section_id=key.section_id,
                question_id=key.question_id,
                number=position.question_index + 1,
                status=self.status_of(key.section_id, key.question_id),
            )
            for position, key, _ in self.test.iter_positions()
        ]

    def status_counts(self) -> Dict[QuestionStatus, int]:
        return count_statuses(entry.status for entry in self.palette())

    # Submission

    async def submit(self) -> Optional[SubmissionOutcome]:
        """
        Manual submission. The caller has already asked the student to confirm.

        Raises:
            SubmissionFailedError: The submission can be retried.
        """
        return await self.submission.request_submit(SubmitTrigger.MANUAL)
