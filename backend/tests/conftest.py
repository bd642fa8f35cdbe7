import os
import sys
import pytest

# Ensure the backend root (containing the `quiznight` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from quiznight import create_app, db, get_engine, socketio
from quiznight.models import Competition, Question, Round
from quiznight.services.games import SessionNotifier


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ADMIN_PASSWORD = 'test-admin'
    CORS_ORIGINS = ['http://localhost:5173']
    DEFAULT_TIME_LIMIT_SEC = 30


class RecordingNotifier(SessionNotifier):
    def __init__(self):
        self.events = []

    def state_changed(self, competition_id, state):
        self.events.append(('state', competition_id, state))

    def timer_tick(self, competition_id, seconds):
        self.events.append(('timer', competition_id, seconds))

    def scores_changed(self, competition_id, teams):
        self.events.append(('scores', competition_id, teams))

    def of(self, kind):
        return [payload for name, _, payload in self.events if name == kind]


@pytest.fixture()
def backup_path(tmp_path):
    return str(tmp_path / 'backups' / 'backup.json')


def _build_app(backup_path, **overrides):
    settings = {'STATE_BACKUP_PATH': backup_path, **overrides}
    return create_app(type('TestConfigWithBackup', (TestConfig,), settings))


@pytest.fixture()
def flask_app(backup_path):
    application = _build_app(backup_path)
    with application.app_context():
        # Ensure models are imported so tables are created
        import quiznight.models  # noqa: F401
        db.create_all()
        yield application
        get_engine(application).timer.clear_all()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_db_app(tmp_path, backup_path):
    """App on a file-backed SQLite database, for tests that hit the ledger from several threads."""
    db_path = tmp_path / 'quiz.sqlite'
    application = _build_app(backup_path, SQLALCHEMY_DATABASE_URI=f'sqlite:///{db_path}')
    with application.app_context():
        db.create_all()
        yield application
        get_engine(application).timer.clear_all()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def engine(flask_app, notifier):
    game_engine = get_engine(flask_app)
    game_engine.notifier = notifier
    return game_engine


def mcq(text='Pick one', options=('A', 'B', 'C', 'D'), correct=(1,), points=10, time_limit=30):
    return {'type': 'MULTIPLE_CHOICE', 'question_text': text, 'points': points,
            'time_limit_seconds': time_limit,
            'content': {'options': list(options), 'correct_indices': list(correct)}}


def closed(text='Capital of France?', answers=('Paris',), points=10, time_limit=30, grading='AUTO'):
    return {'type': 'CLOSED', 'question_text': text, 'points': points, 'time_limit_seconds': time_limit,
            'grading': grading, 'content': {'answers': list(answers)}}


def make_competition(rounds, pin='1234', title='Test Quiz'):
    """Persist a competition. ``rounds`` is a list of lists of question dicts.

    Returns ``(competition_id, [[question_id, ...], ...])``.
    """
    competition = Competition(title=title, status='ACTIVE')
    competition.set_pin(pin)
    for round_index, questions in enumerate(rounds):
        round_row = Round(order_index=round_index, title=f'Round {round_index + 1}')
        round_row.questions = [
            Question(position=position, type=q['type'], question_text=q.get('question_text', ''),
                     points=q.get('points', 10), time_limit_seconds=q.get('time_limit_seconds'),
                     grading=q.get('grading', 'AUTO'), content=q.get('content', {}))
            for position, q in enumerate(questions)
        ]
        competition.rounds.append(round_row)
    db.session.add(competition)
    db.session.commit()
    question_ids = [[q.id for q in r.questions] for r in competition.rounds]
    return competition.id, question_ids
