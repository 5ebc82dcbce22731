"""
Answer store with non-blocking, per-question ordered persistence.

Local state is authoritative for display. Every edit bumps a per-store write
sequence and schedules an upsert. Saves for the same question run one after
another; a save that finds a newer local write for its key is skipped, so
the last local value is always the last one sent. Saves for different
questions run concurrently.
"""
import asyncio
import itertools
import logging
import math
import time
from numbers import Real
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

from attempt_engine.domain_types import OPTION_ALPHABET, QuestionType
from attempt_engine.exceptions import ErrorMessages
from attempt_engine.graceful_failure import graceful_failure
from attempt_engine.models import AnswerKey, AnswerRecord
from attempt_engine.telemetry import metrics

if TYPE_CHECKING:
    from attempt_engine.client import AttemptServiceClient

logger = logging.getLogger(__name__)


def build_record(
    section_id: str,
    question_id: str,
    question_type: QuestionType,
    value: object,
) -> AnswerRecord:
    """
    Build the record for a new value on the channel of ``question_type``.

    ``None`` (or a blank string) on either channel produces a cleared record.

    Raises:
        ValueError: If the value does not fit the question type.
    """
    question_type = QuestionType(question_type)

    if isinstance(value, str) and not value.strip():
        value = None

    if value is None:
        return AnswerRecord(section_id=section_id, question_id=question_id)

    if question_type is QuestionType.MCQ:
        if not isinstance(value, str) or value not in OPTION_ALPHABET:
            raise ValueError(ErrorMessages.invalid_option(value, OPTION_ALPHABET))
        return AnswerRecord(
            section_id=section_id, question_id=question_id, selected_option=value
        )

    if isinstance(value, bool):
        raise ValueError(ErrorMessages.invalid_numerical(value))
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            raise ValueError(ErrorMessages.invalid_numerical(value)) from None
    elif isinstance(value, Real):
        number = float(value)
    else:
        raise ValueError(ErrorMessages.invalid_numerical(value))
    if not math.isfinite(number):
        raise ValueError(ErrorMessages.invalid_numerical(value))
    return AnswerRecord(
        section_id=section_id, question_id=question_id, numerical_answer=number
    )


class AnswerStore:
    """
    In-memory answers of one attempt, persisted in the background.

    Attributes:
        test_id: Test whose attempt receives the upserts
        frozen: True once submission has started; edits become no-ops
    """

    def __init__(self, test_id: str, client: "AttemptServiceClient") -> None:
        self.test_id = test_id
        self._client = client
        self._records: Dict[AnswerKey, AnswerRecord] = {}
        self._sequence = itertools.count(1)
        self._latest_write: Dict[AnswerKey, int] = {}
        self._persisted_write: Dict[AnswerKey, int] = {}
        self._tails: Dict[AnswerKey, asyncio.Task] = {}
        self._pending: set[asyncio.Task] = set()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def freeze(self) -> None:
        """Refuse every further edit. Scheduled saves still complete."""
        self._frozen = True

    def unfreeze(self) -> None:
        self._frozen = False

    def get_answer(self, section_id: str, question_id: str) -> Optional[AnswerRecord]:
        return self._records.get(AnswerKey(section_id, question_id))

    def has_answer(
        self,
        section_id: str,
        question_id: str,
        question_type: Optional[QuestionType] = None,
    ) -> bool:
        """Whether the question holds a value, on its own channel when the type is given."""
        record = self.get_answer(section_id, question_id)
        if record is None:
            return False
        if question_type is not None:
            return record.has_answer_for(question_type)
        return record.has_answer

    def records(self) -> List[AnswerRecord]:
        return list(self._records.values())

    def answered_records(self) -> List[AnswerRecord]:
        return [r for r in self._records.values() if r.has_answer]

    def is_persisted(self, section_id: str, question_id: str) -> bool:
        """Whether the latest local write for the key has been acknowledged."""
        key = AnswerKey(section_id, question_id)
        latest = self._latest_write.get(key)
        return latest is not None and self._persisted_write.get(key) == latest

    def hydrate(self, records: Iterable[AnswerRecord]) -> None:
        """Replace local state with answers saved before a reload."""
        self._records = {record.key: record for record in records}
        self._latest_write.clear()
        self._persisted_write.clear()
        logger.debug(f"Hydrated {len(self._records)} saved answers")

    def set_answer(
        self,
        section_id: str,
        question_id: str,
        question_type: QuestionType,
        value: object,
    ) -> Optional[AnswerRecord]:
        """
        Overwrite the answer for a question and schedule its upsert.

        Returns:
            The new record, or None when the store is frozen.

        Raises:
            ValueError: If the value does not fit the question type.
        """
        if self._frozen:
            logger.debug(f"Ignoring answer for {question_id}: attempt is frozen")
            return None
        record = build_record(section_id, question_id, question_type, value)
        self._write(record)
        return record

    def clear_answer(self, section_id: str, question_id: str) -> Optional[AnswerRecord]:
        """Set both channels absent and schedule the upsert."""
        if self._frozen:
            logger.debug(f"Ignoring clear for {question_id}: attempt is frozen")
            return None
        record = AnswerRecord(section_id=section_id, question_id=question_id)
        self._write(record)
        return record

    def save(self, section_id: str, question_id: str) -> bool:
        """
        Re-send the current local record for a question (Save & Next).

        Returns:
            True if a save was scheduled.
        """
        if self._frozen:
            return False
        record = self.get_answer(section_id, question_id)
        if record is None:
            return False
        self._schedule(record)
        return True

    async def flush(self) -> None:
        """Wait until every scheduled save has finished (successfully or not)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _write(self, record: AnswerRecord) -> None:
        self._records[record.key] = record
        self._schedule(record)

    def _schedule(self, record: AnswerRecord) -> None:
        key = record.key
        seq = next(self._sequence)
        self._latest_write[key] = seq
        previous = self._tails.get(key)
        task = asyncio.get_running_loop().create_task(
            self._persist(record, seq, previous)
        )
        self._tails[key] = task
        self._pending.add(task)
        task.add_done_callback(lambda t, k=key: self._on_done(k, t))

    def _on_done(self, key: AnswerKey, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if self._tails.get(key) is task:
            del self._tails[key]

    async def _persist(
        self,
        record: AnswerRecord,
        seq: int,
        previous: Optional[asyncio.Task],
    ) -> None:
        if previous is not None:
            # Ordering only; the previous save handles its own failure
            await asyncio.gather(previous, return_exceptions=True)

        if self._latest_write.get(record.key, 0) > seq:
            metrics.record_answer_save("superseded")
            logger.debug(f"Skipping superseded save #{seq} for {record.question_id}")
            return

        start = time.perf_counter()
        with graceful_failure(
            "save answer",
            logger,
            context={
                "test_id": self.test_id,
                "section_id": record.section_id,
                "question_id": record.question_id,
            },
        ):
            try:
                await self._client.save_answer(self.test_id, record)
            except Exception:
                metrics.record_answer_save("failure")
                raise
            self._persisted_write[record.key] = seq
            metrics.record_answer_save("success")
            logger.debug(
                f"Saved answer #{seq} for {record.question_id}",
                extra={
                    "question_id": record.question_id,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 1),
                },
            )
