"""
Visited and marked-for-review flags per question.

Flags live only as long as the session object: they are never sent to the
attempt service and are lost on reload, unlike saved answers.
"""
from typing import Dict

from attempt_engine.models import AnswerKey, QuestionUIState


class VisitationTracker:
    """One-directional visited/review flags keyed by question."""

    def __init__(self) -> None:
        self._states: Dict[AnswerKey, QuestionUIState] = {}

    def _state(self, key: AnswerKey) -> QuestionUIState:
        state = self._states.get(key)
        if state is None:
            state = QuestionUIState()
            self._states[key] = state
        return state

    def mark_visited(self, section_id: str, question_id: str) -> None:
        """Set the visited flag. Idempotent; never reset."""
        self._state(AnswerKey(section_id, question_id)).visited = True

    def mark_for_review(self, section_id: str, question_id: str) -> None:
        """
        Set the review flag.

        The flag cannot be cleared. Marking also records a visit, as only
        the current question can be marked.
        """
        state = self._state(AnswerKey(section_id, question_id))
        state.visited = True
        state.marked_for_review = True

    def is_visited(self, section_id: str, question_id: str) -> bool:
        state = self._states.get(AnswerKey(section_id, question_id))
        return state is not None and state.visited

    def is_marked_for_review(self, section_id: str, question_id: str) -> bool:
        state = self._states.get(AnswerKey(section_id, question_id))
        return state is not None and state.marked_for_review

    def state_of(self, section_id: str, question_id: str) -> QuestionUIState:
        """Copy of the flags for a question (all False if never touched)."""
        state = self._states.get(AnswerKey(section_id, question_id))
        if state is None:
            return QuestionUIState()
        return QuestionUIState(state.visited, state.marked_for_review)
