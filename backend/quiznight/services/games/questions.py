"""Question snapshots used by the game engine.

A question's ``content`` is a tagged union: one dataclass per question type.
The repository hands the engine plain dicts (from JSON columns or a state
snapshot) and :func:`question_from_dict` turns them into these types, so the
grading code never has to probe an untyped blob.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import copy


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = 'MULTIPLE_CHOICE'
    CLOSED = 'CLOSED'
    OPEN_WORD = 'OPEN_WORD'
    CROSSWORD = 'CROSSWORD'
    FILL_IN_THE_BLANKS = 'FILL_IN_THE_BLANKS'
    MATCHING = 'MATCHING'
    CHRONOLOGY = 'CHRONOLOGY'


class GradingMode(str, Enum):
    AUTO = 'AUTO'
    MANUAL = 'MANUAL'


@dataclass
class MultipleChoiceContent:
    options: List[str] = field(default_factory=list)
    correct_indices: List[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'MultipleChoiceContent':
        indices = raw.get('correct_indices')
        if indices is None and raw.get('correct_index') is not None:
            indices = [raw['correct_index']]
        return cls(options=list(raw.get('options') or []), correct_indices=list(indices or []))

    def to_dict(self) -> Dict[str, Any]:
        return {'options': list(self.options), 'correct_indices': list(self.correct_indices)}


@dataclass
class ClosedContent:
    answers: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'ClosedContent':
        return cls(answers=list(raw.get('answers') or []))

    def to_dict(self) -> Dict[str, Any]:
        return {'answers': list(self.answers)}


@dataclass
class OpenWordContent:
    answer: str = ''

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'OpenWordContent':
        return cls(answer=raw.get('answer') or '')

    def to_dict(self) -> Dict[str, Any]:
        return {'answer': self.answer}


@dataclass
class CrosswordContent:
    grid: List[List[str]] = field(default_factory=list)
    # Clues are display-only: {'across': [...], 'down': [...]}
    clues: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'CrosswordContent':
        grid = [list(row) for row in (raw.get('grid') or [])]
        return cls(grid=grid, clues=copy.deepcopy(raw.get('clues') or {}))

    def to_dict(self) -> Dict[str, Any]:
        return {'grid': [list(row) for row in self.grid], 'clues': copy.deepcopy(self.clues)}


@dataclass
class BlankOption:
    value: str
    is_correct: bool = False


@dataclass
class FillInTheBlanksContent:
    text: str = ''
    blanks: List[List[BlankOption]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'FillInTheBlanksContent':
        blanks = []
        for blank in raw.get('blanks') or []:
            blanks.append([
                BlankOption(value=opt.get('value', ''), is_correct=bool(opt.get('is_correct')))
                for opt in (blank.get('options') or [])
            ])
        return cls(text=raw.get('text') or '', blanks=blanks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'blanks': [
                {'options': [{'value': o.value, 'is_correct': o.is_correct} for o in blank]}
                for blank in self.blanks
            ],
        }


@dataclass
class MatchingPair:
    id: str
    left: str
    right: str


@dataclass
class MatchingContent:
    pairs: List[MatchingPair] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'MatchingContent':
        pairs = [MatchingPair(id=str(p['id']), left=p.get('left', ''), right=p.get('right', ''))
                 for p in (raw.get('pairs') or [])]
        return cls(pairs=pairs)

    def to_dict(self) -> Dict[str, Any]:
        return {'pairs': [{'id': p.id, 'left': p.left, 'right': p.right} for p in self.pairs]}


@dataclass
class ChronologyItem:
    id: str
    text: str
    order: int


@dataclass
class ChronologyContent:
    items: List[ChronologyItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'ChronologyContent':
        items = [ChronologyItem(id=str(i['id']), text=i.get('text', ''), order=int(i.get('order', 0)))
                 for i in (raw.get('items') or [])]
        return cls(items=items)

    def to_dict(self) -> Dict[str, Any]:
        return {'items': [{'id': i.id, 'text': i.text, 'order': i.order} for i in self.items]}


@dataclass
class UnknownContent:
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


CONTENT_TYPES = {
    QuestionType.MULTIPLE_CHOICE.value: MultipleChoiceContent,
    QuestionType.CLOSED.value: ClosedContent,
    QuestionType.OPEN_WORD.value: OpenWordContent,
    QuestionType.CROSSWORD.value: CrosswordContent,
    QuestionType.FILL_IN_THE_BLANKS.value: FillInTheBlanksContent,
    QuestionType.MATCHING.value: MatchingContent,
    QuestionType.CHRONOLOGY.value: ChronologyContent,
}


def content_from_dict(question_type: str, raw: Optional[Dict[str, Any]]):
    """Build the content variant for ``question_type``.

    Malformed payloads and unknown types degrade to :class:`UnknownContent`,
    which the grading engine always scores as incorrect.
    """
    raw = raw if isinstance(raw, dict) else {}
    content_cls = CONTENT_TYPES.get(question_type)
    if content_cls is None:
        return UnknownContent(raw=copy.deepcopy(raw))
    try:
        return content_cls.from_dict(raw)
    except (KeyError, TypeError, ValueError, AttributeError):
        return UnknownContent(raw=copy.deepcopy(raw))


@dataclass
class Question:
    id: str
    round_id: str
    question_text: str
    type: str
    points: int
    time_limit_seconds: int
    grading: str
    content: Any

    @property
    def option_count(self) -> int:
        if isinstance(self.content, MultipleChoiceContent):
            return len(self.content.options)
        return 0

    def copy(self) -> 'Question':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'round_id': self.round_id,
            'question_text': self.question_text,
            'type': self.type,
            'points': self.points,
            'time_limit_seconds': self.time_limit_seconds,
            'grading': self.grading,
            'content': self.content.to_dict(),
        }


def question_from_dict(data: Dict[str, Any], default_time_limit: int = 30) -> Question:
    qtype = str(data.get('type') or '')
    try:
        points = max(0, int(data.get('points') or 0))
    except (TypeError, ValueError):
        points = 0
    try:
        time_limit = int(data.get('time_limit_seconds') or 0)
    except (TypeError, ValueError):
        time_limit = 0
    if time_limit <= 0:
        time_limit = default_time_limit
    grading = data.get('grading') or GradingMode.AUTO.value
    return Question(
        id=str(data['id']),
        round_id=str(data.get('round_id') or ''),
        question_text=data.get('question_text') or '',
        type=qtype,
        points=points,
        time_limit_seconds=time_limit,
        grading=grading,
        content=content_from_dict(qtype, data.get('content')),
    )
