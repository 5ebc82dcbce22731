"""
Data models for tests, attempts and answers.

Wire payloads from the attempt service use camelCase keys and ``_id`` for
identifiers; every model accepts both the wire alias and the field name.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)

from attempt_engine.datetime_utils import ensure_timezone_aware
from attempt_engine.domain_types import OPTION_ALPHABET, QuestionType


class AnswerKey(NamedTuple):
    """Identity of a question within a test."""

    section_id: str
    question_id: str


class Position(NamedTuple):
    """Zero-based cursor position."""

    section_index: int
    question_index: int


@dataclass
class QuestionUIState:
    """Client-only flags of one question. Never persisted."""

    visited: bool = False
    marked_for_review: bool = False


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Question(_WireModel):
    """A question from the bank. Correct-answer data is ignored by the engine."""

    id: str = Field(..., alias="_id", min_length=1)
    type: QuestionType = Field(..., description="Answer channel (mcq or numerical)")
    image_url: Optional[str] = Field(None, alias="imageUrl")


class QuestionEntry(_WireModel):
    """A question placed in a section with its marking scheme."""

    question: Question
    positive_marks: float = Field(4, alias="positiveMarks", ge=0)
    negative_marks: float = Field(1, alias="negativeMarks", ge=0)


class Section(_WireModel):
    id: str = Field(..., alias="_id", min_length=1)
    name: str = ""
    questions: List[QuestionEntry] = Field(..., min_length=1)


class Test(_WireModel):
    """
    Immutable test structure for the session.

    ``duration`` is in minutes, as the attempt service stores it.
    """

    id: str = Field(..., alias="_id", min_length=1)
    name: str = ""
    duration: int = Field(..., gt=0, description="Duration in minutes")
    sections: List[Section] = Field(..., min_length=1)

    _index: Dict[AnswerKey, Position] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def validate_unique_keys(self) -> "Test":
        section_ids = set()
        keys = set()
        for section in self.sections:
            if section.id in section_ids:
                raise ValueError(f"Duplicate section id {section.id!r}")
            section_ids.add(section.id)
            for entry in section.questions:
                key = AnswerKey(section.id, entry.question.id)
                if key in keys:
                    raise ValueError(
                        f"Duplicate question {entry.question.id!r} in section {section.id!r}"
                    )
                keys.add(key)
        return self

    def model_post_init(self, __context) -> None:
        self._index = {key: position for position, key, _ in self.iter_positions()}

    @property
    def duration_seconds(self) -> int:
        return self.duration * 60

    @property
    def question_count(self) -> int:
        return len(self._index)

    def entry_at(self, position: Position) -> QuestionEntry:
        return self.sections[position.section_index].questions[position.question_index]

    def key_at(self, position: Position) -> AnswerKey:
        section = self.sections[position.section_index]
        return AnswerKey(section.id, section.questions[position.question_index].question.id)

    def position_of(self, key: AnswerKey) -> Optional[Position]:
        return self._index.get(key)

    def iter_positions(self) -> Iterator[Tuple[Position, AnswerKey, QuestionEntry]]:
        """Yield every question in test order."""
        for s_idx, section in enumerate(self.sections):
            for q_idx, entry in enumerate(section.questions):
                yield Position(s_idx, q_idx), AnswerKey(section.id, entry.question.id), entry


class AnswerRecord(_WireModel):
    """
    Persisted answer for one question.

    Exactly one channel is meaningful for a question type; the other is
    always absent. A record with both channels absent is a cleared answer.
    """

    section_id: str = Field(..., alias="sectionId", min_length=1)
    question_id: str = Field(
        ...,
        validation_alias=AliasChoices("question", "questionId", "question_id"),
        min_length=1,
    )
    selected_option: Optional[str] = Field(None, alias="selectedOption")
    numerical_answer: Optional[float] = Field(None, alias="numericalAnswer")

    # Filled in by the grader; read-only for the engine
    is_correct: Optional[bool] = Field(None, alias="isCorrect")
    marks_obtained: Optional[float] = Field(None, alias="marksObtained")

    @field_validator("question_id", mode="before")
    @classmethod
    def unwrap_question_reference(cls, v):
        # Graded attempts may embed the whole question document
        if isinstance(v, dict):
            return v.get("_id", v.get("id"))
        return v

    @field_validator("selected_option", "numerical_answer", mode="before")
    @classmethod
    def blank_is_absent(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("selected_option")
    @classmethod
    def validate_option(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in OPTION_ALPHABET:
            raise ValueError(f"selectedOption must be one of {OPTION_ALPHABET}")
        return v

    @field_validator("numerical_answer")
    @classmethod
    def validate_finite(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not math.isfinite(v):
            raise ValueError("numericalAnswer must be finite")
        return v

    @model_validator(mode="after")
    def validate_single_channel(self) -> "AnswerRecord":
        if self.selected_option is not None and self.numerical_answer is not None:
            raise ValueError("selectedOption and numericalAnswer are mutually exclusive")
        return self

    @property
    def key(self) -> AnswerKey:
        return AnswerKey(self.section_id, self.question_id)

    @property
    def has_answer(self) -> bool:
        return self.selected_option is not None or self.numerical_answer is not None

    def has_answer_for(self, question_type: QuestionType) -> bool:
        """Whether the channel used by ``question_type`` holds a value."""
        if QuestionType(question_type) is QuestionType.MCQ:
            return self.selected_option is not None
        return self.numerical_answer is not None

    def on_channel(self, question_type: QuestionType) -> "AnswerRecord":
        """Copy with only the channel used by ``question_type`` kept."""
        if QuestionType(question_type) is QuestionType.MCQ:
            return self.model_copy(update={"numerical_answer": None})
        return self.model_copy(update={"selected_option": None})

    def to_payload(self) -> Dict[str, object]:
        """Body of the answer upsert request."""
        return {
            "sectionId": self.section_id,
            "questionId": self.question_id,
            "selectedOption": self.selected_option,
            "numericalAnswer": self.numerical_answer,
        }


class Attempt(_WireModel):
    """
    One student's attempt at one test, as created by the attempt service.

    ``started_at`` is authoritative; the client never substitutes its own.
    """

    id: str = Field(..., alias="_id", min_length=1)
    started_at: datetime = Field(..., alias="startedAt")
    duration: Optional[int] = Field(
        None, ge=0, description="Duration in seconds, when copied from the test"
    )
    answers: List[AnswerRecord] = Field(default_factory=list)
    submitted_at: Optional[datetime] = Field(None, alias="submittedAt")

    total_score: Optional[float] = Field(None, alias="totalScore")
    max_score: Optional[float] = Field(None, alias="maxScore")

    @field_validator("started_at")
    @classmethod
    def started_at_is_aware(cls, v: datetime) -> datetime:
        return ensure_timezone_aware(v)

    @field_validator("submitted_at")
    @classmethod
    def submitted_at_is_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_timezone_aware(v) if v is not None else None

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None

    def duration_for(self, test: Test) -> int:
        """Duration in seconds, falling back to the test's duration."""
        return self.duration if self.duration is not None else test.duration_seconds


class StartAttemptResponse(_WireModel):
    test: Test
    attempt: Attempt


class AttemptResult(_WireModel):
    """Graded attempt shown on the results view."""

    attempt: Attempt
    test: Test

    @property
    def percentage(self) -> float:
        total = self.attempt.total_score or 0.0
        maximum = self.attempt.max_score or 0.0
        if maximum <= 0:
            return 0.0
        return round(total / maximum * 100, 1)
