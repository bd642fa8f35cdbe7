import threading

import pytest

from conftest import RecordingNotifier, closed, make_competition, mcq
from quiznight import db, get_engine
from quiznight.models import Answer
from quiznight.repository import SqlAlchemyGameRepository
from quiznight.services.games import CountdownTimer, GameEngine, Phase, SessionStore, StateSnapshotFile


def _tick(engine, competition_id, times):
    for _ in range(times):
        engine.timer.tick(competition_id)


def _to_active(engine, competition_id):
    """From WAITING, advance until the first question is accepting answers."""
    while engine.get_state(competition_id).phase != Phase.QUESTION_ACTIVE:
        engine.next(competition_id)


def test_add_team_is_idempotent_by_name(engine):
    cid, _ = make_competition([[closed()]])
    first = engine.add_team(cid, 'Owls', '#f00')
    second = engine.add_team(cid, 'Owls', '#f00')
    assert first.id == second.id
    assert len(engine.get_state(cid).teams) == 1
    assert engine.get_state(cid).teams[0].is_connected


def test_mcq_scenario_scores_and_ends_early(engine, notifier):
    cid, [[qid]] = make_competition([[mcq(correct=(1,), points=10)]])
    a = engine.add_team(cid, 'A')
    b = engine.add_team(cid, 'B')

    assert engine.next(cid) == Phase.WELCOME
    assert engine.next(cid) == Phase.ROUND_START
    assert engine.next(cid) == Phase.QUESTION_PREVIEW
    for step in range(1, 5):
        engine.next(cid)
        assert engine.get_state(cid).reveal_step == step
    assert engine.next(cid) == Phase.QUESTION_ACTIVE

    assert engine.submit_answer(cid, a.id, qid, 1)
    assert engine.get_state(cid).phase == Phase.QUESTION_ACTIVE
    assert engine.submit_answer(cid, b.id, qid, 2)

    state = engine.get_state(cid)
    assert state.phase == Phase.GRADING
    assert state.find_team(a.id).score == 10
    assert state.find_team(a.id).last_answer_correct is True
    assert state.find_team(b.id).score == 0
    assert state.find_team(b.id).last_answer_correct is False
    assert not engine.timer.is_running(cid)
    assert notifier.of('scores')[-1][0]['score'] == 10


def test_disconnected_teams_do_not_block_early_end(engine):
    cid, [[qid]] = make_competition([[closed()]])
    a = engine.add_team(cid, 'A')
    b = engine.add_team(cid, 'B')
    engine.update_team_connection(cid, b.id, False)
    _to_active(engine, cid)
    engine.submit_answer(cid, a.id, qid, 'Paris')
    assert engine.get_state(cid).phase == Phase.GRADING


def test_resubmission_is_rejected(engine):
    cid, [[qid]] = make_competition([[closed()]])
    a = engine.add_team(cid, 'A')
    engine.add_team(cid, 'B')
    _to_active(engine, cid)
    assert engine.submit_answer(cid, a.id, qid, 'London') is True
    assert engine.submit_answer(cid, a.id, qid, 'Paris') is False
    assert engine.get_state(cid).find_team(a.id).score == 0


def test_late_and_stale_submissions_are_dropped(engine):
    cid, [[q1, q2]] = make_competition([[closed(), closed(text='Capital of Italy?', answers=('Rome',))]])
    a = engine.add_team(cid, 'A')
    engine.add_team(cid, 'B')
    assert engine.submit_answer(cid, a.id, q1, 'Paris') is False  # not active yet
    _to_active(engine, cid)
    engine.end_question(cid)
    assert engine.submit_answer(cid, a.id, q1, 'Paris') is False  # grading
    engine.next(cid)  # reveal
    engine.next(cid)  # next question
    assert engine.get_state(cid).current_question.id == q2
    _to_active(engine, cid)
    assert engine.submit_answer(cid, a.id, q1, 'Paris') is False
    assert engine.submit_answer(cid, 'ghost', q2, 'Rome') is False
    assert engine.submit_answer(cid, a.id, q2, 'Rome') is True


def test_timer_expiry_moves_to_grading(engine, notifier):
    cid, _ = make_competition([[closed(time_limit=3)]])
    engine.add_team(cid, 'A')
    _to_active(engine, cid)
    assert engine.get_state(cid).time_remaining == 3
    _tick(engine, cid, 2)
    assert engine.get_state(cid).time_remaining == 1
    _tick(engine, cid, 1)
    state = engine.get_state(cid)
    assert state.phase == Phase.GRADING
    assert state.time_remaining == 0
    assert notifier.of('timer') == [2, 1, 0]


def test_start_timer_with_explicit_duration_and_tick_callback(engine):
    cid, [[qid]] = make_competition([[closed(time_limit=30)]])
    engine.start_question(cid, qid)
    seen = []
    assert engine.start_timer(cid, 2, on_tick=seen.append)
    _tick(engine, cid, 2)
    assert seen == [1, 0]
    assert engine.get_state(cid).phase == Phase.GRADING


def test_start_timer_outside_preview_is_ignored(engine):
    cid, _ = make_competition([[closed()]])
    assert engine.start_timer(cid, 10) is False
    assert engine.get_state(cid).phase == Phase.WAITING


def test_pause_and_resume(engine):
    cid, _ = make_competition([[closed(time_limit=5)]])
    engine.add_team(cid, 'A')
    _to_active(engine, cid)
    _tick(engine, cid, 1)
    assert engine.pause_timer(cid)
    assert engine.get_state(cid).timer_paused
    _tick(engine, cid, 3)
    assert engine.get_state(cid).time_remaining == 4
    assert engine.pause_timer(cid) is False
    assert engine.resume_timer(cid)
    _tick(engine, cid, 4)
    assert engine.get_state(cid).phase == Phase.GRADING


def test_stale_timer_end_does_not_touch_new_question(engine):
    cid, [[q1, q2]] = make_competition([[closed(time_limit=5), closed(time_limit=5)]])
    engine.start_question(cid, q1)
    engine.start_timer(cid)
    stale_end = engine.timer._timers[cid].on_end
    engine.start_question(cid, q2)
    engine.start_timer(cid)
    stale_end()
    state = engine.get_state(cid)
    assert state.phase == Phase.QUESTION_ACTIVE
    assert state.current_question.id == q2


def test_manual_grading_decision(engine, flask_app):
    cid, [[qid]] = make_competition([[closed(grading='MANUAL', points=15)]])
    a = engine.add_team(cid, 'A')
    engine.add_team(cid, 'B')
    _to_active(engine, cid)
    engine.submit_answer(cid, a.id, qid, 'Something clever')
    team = engine.get_state(cid).find_team(a.id)
    assert team.last_answer == 'Something clever'
    assert team.last_answer_correct is None
    assert team.score == 0

    pending = engine.repository.get_pending_answers(cid)
    assert len(pending) == 1
    assert pending[0]['team_name'] == 'A'

    assert engine.handle_grade_decision(cid, pending[0]['id'], True)
    team = engine.get_state(cid).find_team(a.id)
    assert team.score == 15
    assert team.last_answer_correct is True
    assert engine.repository.get_pending_answers(cid) == []
    assert engine.handle_grade_decision(cid, pending[0]['id'], False) is False
    assert engine.handle_grade_decision(cid, 'missing', True) is False


def test_set_phase_override(engine):
    cid, _ = make_competition([[closed()]])
    assert engine.set_phase(cid, 'LEADERBOARD')
    assert engine.get_state(cid).phase == Phase.LEADERBOARD
    assert engine.set_phase(cid, 'NOT_A_PHASE') is False
    assert engine.get_state(cid).phase == Phase.LEADERBOARD


def test_start_question_unknown_id(engine):
    cid, _ = make_competition([[closed()]])
    assert engine.start_question(cid, 'missing') is False
    assert engine.get_state(cid).current_question is None


def test_competitions_are_isolated(engine):
    cid_a, _ = make_competition([[closed()]], title='A')
    cid_b, _ = make_competition([[closed()]], title='B')
    engine.next(cid_a)
    assert engine.get_state(cid_a).phase == Phase.WELCOME
    assert engine.get_state(cid_b).phase == Phase.WAITING


def test_scores_survive_restart(engine, backup_path, flask_app):
    cid, [[qid]] = make_competition([[closed(points=10, time_limit=20)]])
    a = engine.add_team(cid, 'A')
    engine.add_team(cid, 'B')
    _to_active(engine, cid)
    engine.submit_answer(cid, a.id, qid, 'paris')
    _tick(engine, cid, 5)
    engine.pause_timer(cid)
    engine.timer.clear_all()

    restarted = GameEngine(
        repository=SqlAlchemyGameRepository(db),
        timer=CountdownTimer(start_background_task=lambda *args: None),
        store=SessionStore(StateSnapshotFile(backup_path)),
        notifier=RecordingNotifier(),
    )
    restarted.initialize()
    state = restarted.get_state(cid)
    assert state.phase == Phase.QUESTION_ACTIVE
    assert state.timer_paused is True
    assert state.time_remaining == 15
    assert state.find_team(a.id).score == 10
    assert all(not t.is_connected for t in state.teams)

    # Ledger wins over a stale snapshot score
    state.find_team(a.id).score = 999
    restarted.refresh_team_scores(cid)
    assert restarted.get_state(cid).find_team(a.id).score == 10

    assert restarted.resume_timer(cid)
    for _ in range(15):
        restarted.timer.tick(cid)
    assert restarted.get_state(cid).phase == Phase.GRADING


def test_reconnect_team_restores_from_ledger(engine, backup_path):
    cid, [[qid]] = make_competition([[closed(points=10)]])
    a = engine.add_team(cid, 'A')
    engine.add_team(cid, 'B')
    _to_active(engine, cid)
    engine.submit_answer(cid, a.id, qid, 'Paris')

    fresh = GameEngine(
        repository=SqlAlchemyGameRepository(db),
        timer=CountdownTimer(start_background_task=lambda *args: None),
        store=SessionStore(),
    )
    team = fresh.reconnect_team(cid, a.id)
    assert team is not None
    assert team.score == 10
    assert team.is_connected
    assert fresh.reconnect_team(cid, 'missing') is None


def test_busy_competition_does_not_block_another(engine):
    cid_a, _ = make_competition([[closed()]], title='A')
    cid_b, _ = make_competition([[closed()]], title='B')
    engine.next(cid_b)
    done = threading.Event()

    def advance_a():
        engine.next(cid_a)
        done.set()

    worker = threading.Thread(target=advance_a)
    with engine.store.lock(cid_b):
        worker.start()
        finished = done.wait(timeout=2.0)
    worker.join(timeout=2.0)
    assert finished
    assert engine.get_state(cid_a).phase == Phase.WELCOME


def test_grade_decision_is_scoped_to_its_competition(engine):
    cid_a, _ = make_competition([[closed()]], title='A')
    cid_b, [[qid_b]] = make_competition([[closed(grading='MANUAL', points=10)]], title='B')
    team = engine.add_team(cid_b, 'B1')
    engine.add_team(cid_b, 'B2')
    _to_active(engine, cid_b)
    engine.submit_answer(cid_b, team.id, qid_b, 'maybe')
    [pending] = engine.repository.get_pending_answers(cid_b)

    assert engine.handle_grade_decision(cid_a, pending['id'], True) is False
    assert engine.repository.get_answer(pending['id'])['is_correct'] is None

    assert engine.handle_grade_decision(cid_b, pending['id'], True)
    assert engine.get_state(cid_b).find_team(team.id).score == 10


def test_answered_then_disconnected_team_does_not_end_question_early(engine):
    cid, [[qid]] = make_competition([[closed()]])
    a = engine.add_team(cid, 'A')
    b = engine.add_team(cid, 'B')
    c = engine.add_team(cid, 'C')
    _to_active(engine, cid)

    engine.submit_answer(cid, a.id, qid, 'Paris')
    engine.update_team_connection(cid, a.id, False)
    engine.submit_answer(cid, b.id, qid, 'Lyon')
    assert engine.get_state(cid).phase == Phase.QUESTION_ACTIVE

    engine.submit_answer(cid, c.id, qid, 'Paris')
    assert engine.get_state(cid).phase == Phase.GRADING
    assert engine.repository.get_submission_count(qid) == 3


def _threaded_engine(app):
    game_engine = get_engine(app)
    game_engine.notifier = RecordingNotifier()
    return game_engine


def test_concurrent_duplicate_submissions_score_once(file_db_app):
    engine = _threaded_engine(file_db_app)
    cid, [[qid]] = make_competition([[closed(points=10)]])
    a = engine.add_team(cid, 'A')
    engine.add_team(cid, 'B')
    _to_active(engine, cid)

    barrier = threading.Barrier(4)
    results = []

    def submit():
        with file_db_app.app_context():
            barrier.wait()
            results.append(engine.submit_answer(cid, a.id, qid, 'Paris'))

    workers = [threading.Thread(target=submit) for _ in range(4)]
    for w in workers:
        w.start()
    for w in workers:
        w.join(timeout=5.0)

    assert sorted(results) == [False, False, False, True]
    assert Answer.query.filter_by(team_id=a.id, question_id=qid).count() == 1
    assert engine.get_state(cid).find_team(a.id).score == 10
    assert engine.repository.get_team_score(cid, a.id) == 10


@pytest.mark.parametrize('closer', ['next', 'tick'])
def test_submission_racing_question_end_is_all_or_nothing(file_db_app, closer):
    engine = _threaded_engine(file_db_app)
    cid, [[qid]] = make_competition([[closed(points=10, time_limit=1)]])
    a = engine.add_team(cid, 'A')
    engine.add_team(cid, 'B')
    _to_active(engine, cid)

    barrier = threading.Barrier(2)
    accepted = []

    def submit():
        with file_db_app.app_context():
            barrier.wait()
            accepted.append(engine.submit_answer(cid, a.id, qid, 'Paris'))

    def close_question():
        with file_db_app.app_context():
            barrier.wait()
            if closer == 'next':
                engine.next(cid)
            else:
                engine.timer.tick(cid)

    workers = [threading.Thread(target=submit), threading.Thread(target=close_question)]
    for w in workers:
        w.start()
    for w in workers:
        w.join(timeout=5.0)

    rows = Answer.query.filter_by(question_id=qid).count()
    assert len(accepted) == 1
    assert rows == (1 if accepted[0] else 0)
    assert engine.get_state(cid).find_team(a.id).score == 10 * rows
    assert engine.repository.get_team_score(cid, a.id) == 10 * rows
    assert engine.get_state(cid).phase == Phase.GRADING
