import logging
import re
from dataclasses import dataclass
from typing import Any

from .questions import (
    ChronologyContent,
    ClosedContent,
    CrosswordContent,
    FillInTheBlanksContent,
    GradingMode,
    MatchingContent,
    MultipleChoiceContent,
    OpenWordContent,
    Question,
)

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r'\{(\d+)\}')


@dataclass(frozen=True)
class Graded:
    is_correct: bool
    score: int


class PendingReview:
    """Marker returned for answers that need a host decision."""

    def __repr__(self) -> str:
        return 'PENDING_REVIEW'


PENDING_REVIEW = PendingReview()

INCORRECT = Graded(is_correct=False, score=0)


def grade(question: Question, submitted: Any):
    """Grade ``submitted`` against ``question``.

    Returns :class:`Graded` or :data:`PENDING_REVIEW` for MANUAL questions.
    Pure and fail-closed: malformed content or answers never raise, they
    grade as incorrect.
    """
    if question.grading == GradingMode.MANUAL.value:
        return PENDING_REVIEW

    grader = _GRADERS.get(type(question.content))
    if grader is None:
        return INCORRECT
    try:
        correct = grader(question.content, submitted)
    except Exception:
        logger.exception(f"[grade-error] question={question.id} type={question.type}")
        return INCORRECT
    return Graded(is_correct=bool(correct), score=question.points if correct else 0)


def _normalize(value) -> str:
    if value is None:
        return ''
    return str(value).strip().lower()


def _is_index(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _grade_multiple_choice(content: MultipleChoiceContent, submitted) -> bool:
    if _is_index(submitted):
        submitted = [submitted]
    if not isinstance(submitted, (list, tuple)) or not all(_is_index(i) for i in submitted):
        return False
    if not content.correct_indices:
        return False
    # duplicates like [1, 1] do not count as a selection of {1}
    return len(submitted) == len(set(submitted)) and set(submitted) == set(content.correct_indices)


def _grade_closed(content: ClosedContent, submitted) -> bool:
    if not isinstance(submitted, str):
        return False
    accepted = {_normalize(a) for a in content.answers}
    return _normalize(submitted) in accepted


def _grade_open_word(content: OpenWordContent, submitted) -> bool:
    if not isinstance(submitted, str) or not content.answer.strip():
        return False
    return _normalize(submitted) == _normalize(content.answer)


def _grade_crossword(content: CrosswordContent, submitted) -> bool:
    solution = content.grid
    if not isinstance(submitted, list) or len(submitted) != len(solution):
        return False
    for solution_row, answer_row in zip(solution, submitted):
        if not isinstance(answer_row, list) or len(answer_row) != len(solution_row):
            return False
        for expected, given in zip(solution_row, answer_row):
            expected = (expected or '').upper()
            if expected and expected != (given or '').upper():
                return False
    return True


def _grade_fill_in_the_blanks(content: FillInTheBlanksContent, submitted) -> bool:
    if not isinstance(submitted, list):
        return False
    placeholder_count = len(_PLACEHOLDER.findall(content.text))
    if placeholder_count == 0 or len(submitted) < placeholder_count or len(content.blanks) < placeholder_count:
        return False
    for blank, given in zip(content.blanks, submitted[:placeholder_count]):
        accepted = {_normalize(o.value) for o in blank if o.is_correct}
        if not accepted or _normalize(given) not in accepted:
            return False
    return True


def _grade_matching(content: MatchingContent, submitted) -> bool:
    if not isinstance(submitted, dict) or not content.pairs:
        return False
    return all(_normalize(submitted.get(p.id)) == _normalize(p.right) for p in content.pairs)


def _grade_chronology(content: ChronologyContent, submitted) -> bool:
    if not isinstance(submitted, list) or not content.items:
        return False
    expected = [i.id for i in sorted(content.items, key=lambda i: i.order)]
    return [_normalize(s) for s in submitted] == [_normalize(e) for e in expected]


_GRADERS = {
    MultipleChoiceContent: _grade_multiple_choice,
    ClosedContent: _grade_closed,
    OpenWordContent: _grade_open_word,
    CrosswordContent: _grade_crossword,
    FillInTheBlanksContent: _grade_fill_in_the_blanks,
    MatchingContent: _grade_matching,
    ChronologyContent: _grade_chronology,
}
