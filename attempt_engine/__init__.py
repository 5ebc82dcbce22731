"""Timed test attempt engine.

Client-side state machine for one student's exam attempt: deadline clock,
ordered answer persistence, NTA-style palette and exactly-once submission.
"""

from attempt_engine.answers import AnswerStore
from attempt_engine.client import AttemptServiceClient, HttpAttemptServiceClient
from attempt_engine.clock import DeadlineClock, format_remaining
from attempt_engine.domain_types import (
    OPTION_ALPHABET,
    QuestionStatus,
    QuestionType,
    SubmissionState,
    SubmitTrigger,
)
from attempt_engine.exceptions import (
    AttemptAlreadySubmittedError,
    AttemptEngineError,
    AttemptServiceError,
    MalformedPayloadError,
    QuestionNotFoundError,
    StructuralError,
    SubmissionFailedError,
)
from attempt_engine.models import (
    AnswerKey,
    AnswerRecord,
    Attempt,
    AttemptResult,
    Position,
    Question,
    QuestionEntry,
    QuestionUIState,
    Section,
    StartAttemptResponse,
    Test,
)
from attempt_engine.navigation import NavigationCursor
from attempt_engine.session import AttemptSession
from attempt_engine.status import PaletteEntry, classify, count_statuses
from attempt_engine.submission import SubmissionController, SubmissionOutcome
from attempt_engine.tracker import VisitationTracker

__all__ = [
    "AnswerKey",
    "AnswerRecord",
    "AnswerStore",
    "Attempt",
    "AttemptAlreadySubmittedError",
    "AttemptEngineError",
    "AttemptResult",
    "AttemptServiceClient",
    "AttemptServiceError",
    "AttemptSession",
    "DeadlineClock",
    "HttpAttemptServiceClient",
    "MalformedPayloadError",
    "NavigationCursor",
    "OPTION_ALPHABET",
    "PaletteEntry",
    "Position",
    "Question",
    "QuestionEntry",
    "QuestionNotFoundError",
    "QuestionStatus",
    "QuestionType",
    "QuestionUIState",
    "Section",
    "StartAttemptResponse",
    "StructuralError",
    "SubmissionController",
    "SubmissionFailedError",
    "SubmissionOutcome",
    "SubmissionState",
    "SubmitTrigger",
    "Test",
    "VisitationTracker",
    "classify",
    "count_statuses",
    "format_remaining",
]
