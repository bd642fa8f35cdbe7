from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

ENGINE_KEY = 'quiznight.engine'


def _manual_timer_start(*args, **kwargs):
    # Tests drive countdowns with CountdownTimer.tick()
    return None


def get_engine(flask_app=None):
    return (flask_app or current_app).extensions[ENGINE_KEY]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from quiznight.repository import SqlAlchemyGameRepository
    from quiznight.services.games import (
        CountdownTimer, GameEngine, SessionStore, SocketNotifier, StateSnapshotFile,
    )

    testing = flask_app.config.get('TESTING', False)
    manual_timers = testing and not flask_app.config.get('ENABLE_TIMERS_IN_TESTS')
    timer = CountdownTimer(
        start_background_task=_manual_timer_start if manual_timers else socketio.start_background_task,
        sleep=socketio.sleep,
        interval=float(flask_app.config.get('TIMER_TICK_SEC', 1)),
        logger=flask_app.logger,
        heartbeat_sec=int(flask_app.config.get('TIMER_HEARTBEAT_SEC', 0)),
    )
    store = SessionStore(StateSnapshotFile(flask_app.config['STATE_BACKUP_PATH'], logger=flask_app.logger))
    engine = GameEngine(
        repository=SqlAlchemyGameRepository(db, default_time_limit=int(flask_app.config.get('DEFAULT_TIME_LIMIT_SEC', 30))),
        timer=timer,
        store=store,
        notifier=SocketNotifier(socketio),
        logger=flask_app.logger,
    )
    flask_app.extensions[ENGINE_KEY] = engine

    from quiznight.main import main
    flask_app.register_blueprint(main)

    from quiznight.api.competitions import competitions
    flask_app.register_blueprint(competitions, url_prefix='/api')

    from quiznight.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=testing)

    if not testing:
        from quiznight.exceptions import PersistenceError
        with flask_app.app_context():
            try:
                engine.initialize()
            except PersistenceError as exc:
                flask_app.logger.error(f"[restore-failed] {exc}")

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a demo competition."""
        from quiznight.seed import seed_demo_competition
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            competition = seed_demo_competition(pin='1234')
            print(f'Database has been reset and seeded! competition={competition.id} pin=1234')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
