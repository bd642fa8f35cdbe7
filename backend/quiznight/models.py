from datetime import datetime, timezone
import uuid

from quiznight import db, bcrypt


def _new_id():
    return str(uuid.uuid4())


def _now():
    return datetime.now(timezone.utc)


class Competition(db.Model):
    __tablename__ = 'competition'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    title = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(16), default='DRAFT', nullable=False)  # DRAFT, ACTIVE, COMPLETED
    host_pin_hash = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    rounds = db.relationship('Round', back_populates='competition', order_by='Round.order_index',
                             cascade='all, delete-orphan')

    def set_pin(self, pin):
        self.host_pin_hash = bcrypt.generate_password_hash(pin).decode('utf-8')

    def check_pin(self, pin):
        if not self.host_pin_hash or not pin:
            return False
        return bcrypt.check_password_hash(self.host_pin_hash, str(pin))

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'status': self.status,
        }


class Round(db.Model):
    __tablename__ = 'round'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    competition_id = db.Column(db.String(36), db.ForeignKey('competition.id'), nullable=False, index=True)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    type = db.Column(db.String(16), nullable=False, default='STANDARD')  # STANDARD, CROSSWORD, SPEED_RUN
    title = db.Column(db.String(200), nullable=False, default='')
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    competition = db.relationship('Competition', back_populates='rounds')
    questions = db.relationship('Question', back_populates='round',
                                order_by='Question.position',
                                cascade='all, delete-orphan')

    def to_dict(self, include_questions=False):
        data = {
            'id': self.id,
            'competition_id': self.competition_id,
            'order_index': self.order_index,
            'type': self.type,
            'title': self.title,
        }
        if include_questions:
            data['questions'] = [q.to_dict() for q in self.questions]
        return data


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    round_id = db.Column(db.String(36), db.ForeignKey('round.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    question_text = db.Column(db.Text, nullable=False, default='')
    type = db.Column(db.String(32), nullable=False)
    points = db.Column(db.Integer, nullable=False, default=10)
    time_limit_seconds = db.Column(db.Integer, nullable=True)
    grading = db.Column(db.String(16), nullable=False, default='AUTO')  # AUTO, MANUAL
    content = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    round = db.relationship('Round', back_populates='questions')

    def to_dict(self):
        return {
            'id': self.id,
            'round_id': self.round_id,
            'question_text': self.question_text,
            'type': self.type,
            'points': self.points,
            'time_limit_seconds': self.time_limit_seconds,
            'grading': self.grading,
            'content': self.content,
        }


class Team(db.Model):
    __tablename__ = 'team'
    __table_args__ = (db.UniqueConstraint('competition_id', 'name', name='uq_team_competition_name'),)
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    competition_id = db.Column(db.String(36), db.ForeignKey('competition.id'), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    color = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)


class Answer(db.Model):
    """Ledger row: one per (team, question). ``is_correct`` NULL means pending review."""
    __tablename__ = 'answer'
    __table_args__ = (db.UniqueConstraint('team_id', 'question_id', name='uq_answer_team_question'),)
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    team_id = db.Column(db.String(36), db.ForeignKey('team.id'), nullable=False, index=True)
    question_id = db.Column(db.String(36), db.ForeignKey('question.id'), nullable=False, index=True)
    round_id = db.Column(db.String(36), db.ForeignKey('round.id'), nullable=False, index=True)
    submitted_content = db.Column(db.JSON, nullable=True)
    is_correct = db.Column(db.Boolean, nullable=True)
    score_awarded = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    team = db.relationship('Team')
    question = db.relationship('Question')
    round = db.relationship('Round')

    def to_dict(self):
        return {
            'id': self.id,
            'team_id': self.team_id,
            'question_id': self.question_id,
            'round_id': self.round_id,
            'submitted_content': self.submitted_content,
            'is_correct': self.is_correct,
            'score_awarded': self.score_awarded,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
