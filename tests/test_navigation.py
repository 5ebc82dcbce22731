"""
Tests for the navigation cursor and the visitation tracker it drives.
"""
import pytest

from attempt_engine.models import Position
from attempt_engine.navigation import NavigationCursor
from attempt_engine.tracker import VisitationTracker


@pytest.fixture
def tracker():
    return VisitationTracker()


@pytest.fixture
def cursor(exam, tracker):
    return NavigationCursor(exam, on_visit=tracker.mark_visited)


class TestVisitationTracker:
    """Tests for VisitationTracker flags."""

    def test_untouched_question(self, tracker):
        state = tracker.state_of("sec-1", "q1")

        assert state.visited is False
        assert state.marked_for_review is False

    def test_mark_visited_is_idempotent(self, tracker):
        """Test that a second visit leaves the flags unchanged."""
        tracker.mark_visited("sec-1", "q1")
        first = tracker.state_of("sec-1", "q1")
        tracker.mark_visited("sec-1", "q1")

        assert tracker.state_of("sec-1", "q1") == first

    def test_mark_for_review_implies_visited(self, tracker):
        tracker.mark_for_review("sec-1", "q2")

        assert tracker.is_marked_for_review("sec-1", "q2")
        assert tracker.is_visited("sec-1", "q2")

    def test_state_of_returns_copy(self, tracker):
        """Test that callers cannot mutate tracker state through state_of."""
        tracker.mark_visited("sec-1", "q1")
        state = tracker.state_of("sec-1", "q1")
        state.visited = False

        assert tracker.is_visited("sec-1", "q1")

    def test_same_question_id_in_other_section_is_independent(self, tracker):
        tracker.mark_visited("sec-1", "q1")

        assert not tracker.is_visited("sec-2", "q1")


class TestNavigationCursor:
    """Tests for NavigationCursor moves."""

    def test_initial_position_is_visited(self, cursor, tracker):
        """Test that constructing the cursor visits the first question."""
        assert cursor.position == Position(0, 0)
        assert tracker.is_visited("sec-1", "q1")
        assert not tracker.is_visited("sec-1", "q2")

    def test_next_within_section(self, cursor, tracker):
        assert cursor.next() == Position(0, 1)
        assert tracker.is_visited("sec-1", "q2")

    def test_next_crosses_section_boundary(self, cursor, tracker):
        cursor.next()

        assert cursor.next() == Position(1, 0)
        assert cursor.current_section.id == "sec-2"
        assert tracker.is_visited("sec-2", "q3")

    def test_next_is_noop_at_last_question(self, cursor):
        cursor.jump_to(1, 1)

        assert cursor.is_last
        assert cursor.next() == Position(1, 1)

    def test_prev_is_noop_at_first_question(self, cursor):
        assert cursor.is_first
        assert cursor.prev() == Position(0, 0)

    def test_prev_crosses_to_last_question_of_previous_section(self, cursor):
        cursor.jump_to(1, 0)

        assert cursor.prev() == Position(0, 1)

    def test_jump_marks_destination_visited(self, cursor, tracker):
        """Test that palette jumps visit exactly like next/prev."""
        cursor.jump_to(1, 1)

        assert tracker.is_visited("sec-2", "q4")
        assert not tracker.is_visited("sec-2", "q3")
        assert cursor.current_entry.question.id == "q4"

    def test_jump_to_section_goes_to_first_question(self, cursor):
        assert cursor.jump_to_section(1) == Position(1, 0)

    @pytest.mark.parametrize("section_index,question_index", [(2, 0), (-1, 0), (0, 2), (1, -1)])
    def test_jump_out_of_bounds_raises(self, cursor, section_index, question_index):
        """Test that the cursor never leaves the test structure."""
        with pytest.raises(IndexError):
            cursor.jump_to(section_index, question_index)

        assert cursor.position == Position(0, 0)

    def test_visit_observed_before_move_returns(self, exam):
        """Test that the visit callback has run by the time a move returns."""
        visits = []
        cursor = NavigationCursor(exam, on_visit=lambda s, q: visits.append((s, q)))

        cursor.next()

        assert visits == [("sec-1", "q1"), ("sec-1", "q2")]

    def test_current_key(self, cursor):
        cursor.jump_to(1, 0)

        assert cursor.current_key == ("sec-2", "q3")
