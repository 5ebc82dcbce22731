"""
NTA-style question status.

classify() is a pure function of three signals; everything the palette shows
is derived from it rather than stored.
"""
from typing import Dict, Iterable, NamedTuple

from attempt_engine.domain_types import QuestionStatus


class PaletteEntry(NamedTuple):
    """One cell of the question palette. ``number`` is 1-based within its section."""

    section_index: int
    question_index: int
    section_id: str
    question_id: str
    number: int
    status: QuestionStatus


def classify(visited: bool, marked_for_review: bool, has_answer: bool) -> QuestionStatus:
    """
    Map the visited/review/answer signals to a palette status.

    Precedence, first match wins:
        marked and answered -> ANSWERED_AND_MARKED
        marked              -> MARKED_FOR_REVIEW
        answered            -> ANSWERED
        visited             -> NOT_ANSWERED
        otherwise           -> NOT_VISITED

    Args:
        visited: The question has been the current question at least once
        marked_for_review: The student used "Mark for Review & Next" on it
        has_answer: The active answer channel holds a value

    Returns:
        The QuestionStatus for the palette.
    """
    if marked_for_review and has_answer:
        return QuestionStatus.ANSWERED_AND_MARKED
    if marked_for_review:
        return QuestionStatus.MARKED_FOR_REVIEW
    if has_answer:
        return QuestionStatus.ANSWERED
    if visited:
        return QuestionStatus.NOT_ANSWERED
    return QuestionStatus.NOT_VISITED


def count_statuses(statuses: Iterable[QuestionStatus]) -> Dict[QuestionStatus, int]:
    """Count statuses, with a zero for every status that does not occur."""
    counts = {status: 0 for status in QuestionStatus}
    for status in statuses:
        counts[status] += 1
    return counts
