"""Shared domain enums for the attempt engine.

Usage:
    from attempt_engine.domain_types import QuestionStatus, SubmitTrigger
"""

import enum

# Options offered for every multiple-choice question.
OPTION_ALPHABET = ("A", "B", "C", "D")


class QuestionType(str, enum.Enum):
    """Answer channel used by a question."""

    MCQ = "mcq"
    NUMERICAL = "numerical"


class QuestionStatus(str, enum.Enum):
    """NTA-style palette status of a question."""

    NOT_VISITED = "not-visited"
    NOT_ANSWERED = "not-answered"
    ANSWERED = "answered"
    MARKED_FOR_REVIEW = "marked"
    ANSWERED_AND_MARKED = "answered-marked"


class SubmissionState(str, enum.Enum):
    """Lifecycle of an attempt on the client."""

    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class SubmitTrigger(str, enum.Enum):
    """What asked for the submission."""

    MANUAL = "manual"
    TIMEOUT = "timeout"


__all__ = [
    "OPTION_ALPHABET",
    "QuestionType",
    "QuestionStatus",
    "SubmissionState",
    "SubmitTrigger",
]
