from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import copy

from .questions import Question, question_from_dict


class Phase(str, Enum):
    WAITING = 'WAITING'
    WELCOME = 'WELCOME'
    ROUND_START = 'ROUND_START'
    QUESTION_PREVIEW = 'QUESTION_PREVIEW'
    QUESTION_ACTIVE = 'QUESTION_ACTIVE'
    GRADING = 'GRADING'
    REVEAL_ANSWER = 'REVEAL_ANSWER'
    ROUND_END = 'ROUND_END'
    LEADERBOARD = 'LEADERBOARD'

    @classmethod
    def parse(cls, value) -> Optional['Phase']:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class Team:
    id: str
    name: str
    color: str = ''
    score: int = 0
    last_answer: Any = None
    last_answer_correct: Optional[bool] = None
    is_connected: bool = False

    def reset_answer_status(self) -> None:
        self.last_answer = None
        self.last_answer_correct = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'color': self.color,
            'score': self.score,
            'last_answer': copy.deepcopy(self.last_answer),
            'last_answer_correct': self.last_answer_correct,
            'is_connected': self.is_connected,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Team':
        return cls(
            id=str(data['id']),
            name=data.get('name') or '',
            color=data.get('color') or '',
            score=int(data.get('score') or 0),
            last_answer=copy.deepcopy(data.get('last_answer')),
            last_answer_correct=data.get('last_answer_correct'),
            is_connected=bool(data.get('is_connected', False)),
        )


@dataclass
class GameState:
    """Live state of one competition; the unit of persistence."""
    phase: Phase = Phase.WAITING
    current_question: Optional[Question] = None
    time_remaining: int = 0
    timer_paused: bool = False
    reveal_step: int = 0
    teams: List[Team] = field(default_factory=list)

    def find_team(self, team_id: str) -> Optional[Team]:
        return next((t for t in self.teams if t.id == team_id), None)

    def find_team_by_name(self, name: str) -> Optional[Team]:
        return next((t for t in self.teams if t.name == name), None)

    def connected_team_count(self) -> int:
        return sum(1 for t in self.teams if t.is_connected)

    def reset_team_answers(self) -> None:
        for team in self.teams:
            team.reset_answer_status()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phase': self.phase.value,
            'current_question': self.current_question.to_dict() if self.current_question else None,
            'time_remaining': self.time_remaining,
            'timer_paused': self.timer_paused,
            'reveal_step': self.reveal_step,
            'teams': [t.to_dict() for t in self.teams],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameState':
        question = data.get('current_question')
        return cls(
            phase=Phase.parse(data.get('phase')) or Phase.WAITING,
            current_question=question_from_dict(question) if question else None,
            time_remaining=max(0, int(data.get('time_remaining') or 0)),
            timer_paused=bool(data.get('timer_paused', False)),
            reveal_step=max(0, int(data.get('reveal_step') or 0)),
            teams=[Team.from_dict(t) for t in (data.get('teams') or [])],
        )
