"""Repository boundary between the game engine and the database.

The engine only talks to :class:`GameRepository`; the SQLAlchemy
implementation below is the one the app wires in. The answer ledger (the
``answer`` table) is the source of truth for scores.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quiznight.exceptions import DuplicateAnswerError, PersistenceError
from quiznight.models import Answer, Question as QuestionRow, Round, Team as TeamRow
from quiznight.services.games.questions import Question, question_from_dict
from quiznight.services.games.state import Team


class GameRepository(ABC):

    # Teams
    @abstractmethod
    def get_or_create_team(self, competition_id: str, name: str, color: str) -> Team: ...

    @abstractmethod
    def get_team_score(self, competition_id: str, team_id: str) -> int: ...

    @abstractmethod
    def reconnect_team(self, competition_id: str, team_id: str) -> Optional[Team]: ...

    # Questions
    @abstractmethod
    def get_question(self, question_id: str) -> Optional[Question]: ...

    @abstractmethod
    def get_questions_for_competition(self, competition_id: str) -> List[Question]: ...

    # Answers and grading
    @abstractmethod
    def save_answer(self, team_id: str, question_id: str, round_id: str, content: Any,
                    is_correct: Optional[bool], score: int) -> dict: ...

    @abstractmethod
    def get_answer(self, answer_id: str) -> Optional[dict]: ...

    @abstractmethod
    def update_answer_grading(self, answer_id: str, is_correct: bool, score: int) -> None: ...

    @abstractmethod
    def get_submission_count(self, question_id: str) -> int: ...

    @abstractmethod
    def has_answered(self, team_id: str, question_id: str) -> bool: ...

    @abstractmethod
    def get_answered_team_ids(self, question_id: str) -> Set[str]: ...

    @abstractmethod
    def get_pending_answers(self, competition_id: Optional[str] = None) -> List[dict]: ...


class SqlAlchemyGameRepository(GameRepository):

    def __init__(self, db, default_time_limit: int = 30):
        self.db = db
        self.default_time_limit = default_time_limit

    @contextmanager
    def _unit_of_work(self, operation: str):
        try:
            yield self.db.session
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    def _to_team(self, row, competition_id: str) -> Team:
        return Team(
            id=row.id,
            name=row.name,
            color=row.color or '',
            score=self.get_team_score(competition_id, row.id),
        )

    def get_or_create_team(self, competition_id, name, color):
        with self._unit_of_work('get_or_create_team') as session:
            row = TeamRow.query.filter_by(competition_id=competition_id, name=name).first()
            if row is None:
                row = TeamRow(competition_id=competition_id, name=name, color=color)
                session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    # Another join with the same name won the insert
                    session.rollback()
                    row = TeamRow.query.filter_by(competition_id=competition_id, name=name).one()
            elif color and row.color != color:
                row.color = color
                session.commit()
            return self._to_team(row, competition_id)

    def get_team_score(self, competition_id, team_id):
        with self._unit_of_work('get_team_score') as session:
            total = (
                session.query(self.db.func.coalesce(self.db.func.sum(Answer.score_awarded), 0))
                .join(Round, Answer.round_id == Round.id)
                .filter(Answer.team_id == team_id, Answer.is_correct.is_(True), Round.competition_id == competition_id)
                .scalar()
            )
            return int(total or 0)

    def reconnect_team(self, competition_id, team_id):
        with self._unit_of_work('reconnect_team'):
            row = TeamRow.query.filter_by(id=team_id, competition_id=competition_id).first()
            if row is None:
                return None
            return self._to_team(row, competition_id)

    def get_question(self, question_id):
        with self._unit_of_work('get_question') as session:
            row = session.get(QuestionRow, question_id)
            if row is None:
                return None
            return question_from_dict(row.to_dict(), self.default_time_limit)

    def get_questions_for_competition(self, competition_id):
        with self._unit_of_work('get_questions_for_competition'):
            rows = (
                QuestionRow.query.join(Round, QuestionRow.round_id == Round.id)
                .filter(Round.competition_id == competition_id)
                .order_by(Round.order_index, QuestionRow.position, QuestionRow.created_at, QuestionRow.id)
                .all()
            )
            return [question_from_dict(r.to_dict(), self.default_time_limit) for r in rows]

    def save_answer(self, team_id, question_id, round_id, content, is_correct, score):
        answer = Answer(
            team_id=team_id,
            question_id=question_id,
            round_id=round_id,
            submitted_content=content,
            is_correct=is_correct,
            score_awarded=score,
        )
        with self._unit_of_work('save_answer') as session:
            session.add(answer)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateAnswerError(f"team {team_id} already answered question {question_id}") from exc
            return answer.to_dict()

    def get_answer(self, answer_id):
        with self._unit_of_work('get_answer') as session:
            row = session.get(Answer, answer_id)
            if row is None:
                return None
            data = row.to_dict()
            data['competition_id'] = row.round.competition_id if row.round else None
            return data

    def update_answer_grading(self, answer_id, is_correct, score):
        with self._unit_of_work('update_answer_grading') as session:
            row = session.get(Answer, answer_id)
            if row is None:
                return
            row.is_correct = is_correct
            row.score_awarded = score
            session.commit()

    def get_submission_count(self, question_id):
        with self._unit_of_work('get_submission_count'):
            return Answer.query.filter_by(question_id=question_id).count()

    def has_answered(self, team_id, question_id):
        with self._unit_of_work('has_answered'):
            return Answer.query.filter_by(team_id=team_id, question_id=question_id).first() is not None

    def get_answered_team_ids(self, question_id):
        with self._unit_of_work('get_answered_team_ids') as session:
            rows = session.query(Answer.team_id).filter(Answer.question_id == question_id).all()
            return {team_id for (team_id,) in rows}

    def get_pending_answers(self, competition_id=None):
        with self._unit_of_work('get_pending_answers'):
            query = Answer.query.filter(Answer.is_correct.is_(None))
            if competition_id:
                query = query.join(Round, Answer.round_id == Round.id).filter(Round.competition_id == competition_id)
            pending = []
            for row in query.order_by(Answer.created_at).all():
                data = row.to_dict()
                data['team_name'] = row.team.name if row.team else None
                data['question_text'] = row.question.question_text if row.question else None
                pending.append(data)
            return pending
