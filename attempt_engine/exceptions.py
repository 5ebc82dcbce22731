"""
Exception hierarchy and user-facing error messages for the attempt engine.

Error categories:

1. AttemptServiceError - the attempt service failed or was unreachable.
   Transient for answer saves (logged, never raised to the UI).
2. AttemptAlreadySubmittedError - start was refused because the attempt is
   final. Fatal to the start flow; carries the results route to redirect to.
3. SubmissionFailedError - submission did not go through. Retryable.
4. StructuralError - malformed test/attempt payload or a missing question.
   Fatal; the session must be aborted.

Usage:
    from attempt_engine.exceptions import ErrorMessages, AttemptServiceError

    raise AttemptServiceError(ErrorMessages.START_FAILED, status_code=500)
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from pydantic import ValidationError

    from attempt_engine.domain_types import SubmitTrigger


class ErrorMessages:
    """Centralized error message constants and templates."""

    # Message the attempt service uses for the already-submitted condition
    ALREADY_SUBMITTED = "You have already submitted this test"

    START_FAILED = "Failed to start test"
    SUBMIT_FAILED = "Failed to submit test"
    SERVICE_UNREACHABLE = "The test service could not be reached. Please try again."
    SERVICE_TIMEOUT = "The test service took too long to respond. Please try again."
    MALFORMED_PAYLOAD = "The test could not be loaded because its data is invalid."
    NO_RESULT = "No results found"

    @staticmethod
    def question_not_found(section_id: str, question_id: str) -> str:
        return (
            f"Question not found in this test "
            f"(section: {section_id}, question: {question_id})."
        )

    @staticmethod
    def invalid_option(option: object, alphabet: tuple[str, ...]) -> str:
        return f"Option {option!r} is not one of {', '.join(alphabet)}."

    @staticmethod
    def invalid_numerical(value: object) -> str:
        return f"Numerical answer must be a finite number, got {value!r}."

    @staticmethod
    def is_already_submitted(message: Optional[str]) -> bool:
        return bool(message) and message.strip().lower() == (
            ErrorMessages.ALREADY_SUBMITTED.lower()
        )


class AttemptEngineError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AttemptServiceError(AttemptEngineError):
    """The attempt service rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        redirect_to: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.redirect_to = redirect_to


class AttemptAlreadySubmittedError(AttemptServiceError):
    """The attempt for this test is already final."""

    def __init__(
        self,
        message: str = ErrorMessages.ALREADY_SUBMITTED,
        *,
        status_code: Optional[int] = None,
        redirect_to: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code=status_code, redirect_to=redirect_to)


class SubmissionFailedError(AttemptEngineError):
    """Submission did not complete; the attempt is back in progress."""

    retryable = True

    def __init__(
        self,
        trigger: "SubmitTrigger",
        cause: Optional[BaseException] = None,
        message: str = ErrorMessages.SUBMIT_FAILED,
    ) -> None:
        super().__init__(message)
        self.trigger = trigger
        self.cause = cause


class StructuralError(AttemptEngineError):
    """Test or attempt data is inconsistent; the session cannot continue."""


class MalformedPayloadError(StructuralError):
    """A payload from the attempt service failed validation."""

    def __init__(
        self,
        message: str = ErrorMessages.MALFORMED_PAYLOAD,
        *,
        validation_error: Optional["ValidationError"] = None,
    ) -> None:
        super().__init__(message)
        self.validation_error = validation_error


class QuestionNotFoundError(StructuralError):
    """No question with the given key exists in the test."""

    def __init__(self, section_id: str, question_id: str) -> None:
        super().__init__(ErrorMessages.question_not_found(section_id, question_id))
        self.section_id = section_id
        self.question_id = question_id
