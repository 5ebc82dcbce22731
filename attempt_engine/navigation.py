"""
Navigation cursor over the fixed section/question order of a test.
"""
import logging
from typing import Callable, Optional

from attempt_engine.models import AnswerKey, Position, QuestionEntry, Section, Test

logger = logging.getLogger(__name__)

VisitCallback = Callable[[str, str], None]


class NavigationCursor:
    """
    Current (section, question) position, always within bounds.

    ``on_visit(section_id, question_id)`` is called for the destination of
    every move, including the initial position at construction, before the
    move returns. Callers can therefore read statuses right after a move.
    """

    def __init__(self, test: Test, on_visit: Optional[VisitCallback] = None) -> None:
        self._test = test
        self._on_visit = on_visit
        self._position = Position(0, 0)
        self._visit()

    @property
    def position(self) -> Position:
        return self._position

    @property
    def section_index(self) -> int:
        return self._position.section_index

    @property
    def question_index(self) -> int:
        return self._position.question_index

    @property
    def current_section(self) -> Section:
        return self._test.sections[self._position.section_index]

    @property
    def current_entry(self) -> QuestionEntry:
        return self._test.entry_at(self._position)

    @property
    def current_key(self) -> AnswerKey:
        return self._test.key_at(self._position)

    @property
    def is_first(self) -> bool:
        return self._position == Position(0, 0)

    @property
    def is_last(self) -> bool:
        last_section = len(self._test.sections) - 1
        return (
            self._position.section_index == last_section
            and self._position.question_index
            == len(self._test.sections[last_section].questions) - 1
        )

    def next(self) -> Position:
        """Advance, crossing into the next section; no-op at the very end."""
        s_idx, q_idx = self._position
        if q_idx < len(self._test.sections[s_idx].questions) - 1:
            return self._move(Position(s_idx, q_idx + 1))
        if s_idx < len(self._test.sections) - 1:
            return self._move(Position(s_idx + 1, 0))
        return self._position

    def prev(self) -> Position:
        """Go back, crossing into the previous section; no-op at the start."""
        s_idx, q_idx = self._position
        if q_idx > 0:
            return self._move(Position(s_idx, q_idx - 1))
        if s_idx > 0:
            last = len(self._test.sections[s_idx - 1].questions) - 1
            return self._move(Position(s_idx - 1, last))
        return self._position

    def jump_to(self, section_index: int, question_index: int) -> Position:
        """
        Move directly to a question (palette or section tab).

        Raises:
            IndexError: If the position is outside the test.
        """
        if not 0 <= section_index < len(self._test.sections):
            raise IndexError(f"Section index {section_index} out of range")
        questions = self._test.sections[section_index].questions
        if not 0 <= question_index < len(questions):
            raise IndexError(
                f"Question index {question_index} out of range for section {section_index}"
            )
        return self._move(Position(section_index, question_index))

    def jump_to_section(self, section_index: int) -> Position:
        return self.jump_to(section_index, 0)

    def _move(self, position: Position) -> Position:
        self._position = position
        self._visit()
        return position

    def _visit(self) -> None:
        key = self.current_key
        logger.debug(f"Cursor at section {self.section_index}, question {self.question_index}")
        if self._on_visit is not None:
            self._on_visit(key.section_id, key.question_id)
