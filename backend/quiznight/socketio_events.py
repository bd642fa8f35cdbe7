from flask import current_app, request
from flask_socketio import emit, join_room, leave_room
from typing import Any, Callable, Dict

from quiznight import db, get_engine
from quiznight.exceptions import QuizError
from quiznight.models import Competition
from quiznight.services.games.notifier import room_for

# Per-socket context: competition joined plus team id (players) or host flag
_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


def _enter_competition(competition_id: str, **ctx) -> None:
    previous = _sid_to_ctx.get(_get_sid())
    if previous and previous.get('competition_id') != competition_id:
        leave_room(room_for(previous['competition_id']))
    join_room(room_for(competition_id))
    _sid_to_ctx[_get_sid()] = {'competition_id': competition_id, **ctx}


def _is_host(competition_id) -> bool:
    ctx = _sid_to_ctx.get(_get_sid())
    return bool(ctx and ctx.get('is_host') and ctx.get('competition_id') == competition_id)


def _host_command(data, name: str, action: Callable[[str], Any]) -> None:
    """Run a host-only engine command. Failures are logged, never acknowledged."""
    competition_id = (data or {}).get('competition_id')
    if not competition_id:
        emit('error', {'message': 'competition_id is required'})
        return
    if not _is_host(competition_id):
        emit('error', {'message': 'Host authentication required'})
        return
    try:
        action(competition_id)
    except QuizError as exc:
        current_app.logger.error(f"[host-command-failed] command={name} competition={competition_id} error={exc}")


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if ctx and ctx.get('team_id'):
        get_engine().update_team_connection(ctx['competition_id'], ctx['team_id'], False)


def handle_host_join(data):
    competition_id = (data or {}).get('competition_id')
    pin = (data or {}).get('pin')
    competition = db.session.get(Competition, competition_id) if competition_id else None
    if competition is None or not competition.check_pin(pin):
        current_app.logger.warning(f"[host-auth-failed] competition={competition_id}")
        return {'success': False, 'error': 'Invalid competition or pin'}
    _enter_competition(competition_id, is_host=True)
    emit('state_sync', get_engine().state_dict(competition_id))
    return {'success': True}


def handle_join_competition(data):
    data = data or {}
    competition_id = data.get('competition_id')
    team_name = (data.get('team_name') or '').strip()
    color = data.get('color') or ''
    if not competition_id or not team_name:
        return {'success': False, 'error': 'competition_id and team_name are required'}
    if db.session.get(Competition, competition_id) is None:
        return {'success': False, 'error': 'Competition not found'}
    engine = get_engine()
    try:
        team = engine.add_team(competition_id, team_name, color)
    except QuizError as exc:
        current_app.logger.error(f"[join-failed] competition={competition_id} error={exc}")
        return {'success': False, 'error': 'Could not join, please retry'}
    _enter_competition(competition_id, team_id=team.id)
    emit('state_sync', engine.state_dict(competition_id))
    return {'success': True, 'team': team.to_dict()}


def handle_reconnect_team(data):
    data = data or {}
    competition_id = data.get('competition_id')
    team_id = data.get('team_id')
    if not competition_id or not team_id:
        return {'success': False}
    engine = get_engine()
    try:
        team = engine.reconnect_team(competition_id, team_id)
    except QuizError as exc:
        current_app.logger.error(f"[reconnect-failed] competition={competition_id} error={exc}")
        return {'success': False, 'error': 'Could not reconnect, please retry'}
    if team is None:
        return {'success': False}
    _enter_competition(competition_id, team_id=team.id)
    emit('state_sync', engine.state_dict(competition_id))
    return {'success': True, 'team': team.to_dict()}


def handle_submit_answer(data):
    data = data or {}
    competition_id = data.get('competition_id')
    if not competition_id:
        return {'success': False, 'error': 'competition_id is required'}
    try:
        accepted = get_engine().submit_answer(competition_id, data.get('team_id'), data.get('question_id'),
                                              data.get('answer'))
    except QuizError as exc:
        current_app.logger.error(f"[submit-failed] competition={competition_id} error={exc}")
        return {'success': False, 'error': 'Answer not saved, please retry'}
    return {'success': True, 'accepted': accepted}


def handle_leave_competition(data=None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    leave_room(room_for(ctx['competition_id']))
    if ctx.get('team_id'):
        get_engine().update_team_connection(ctx['competition_id'], ctx['team_id'], False)
    emit('left', {'competition_id': ctx['competition_id']})


def handle_host_start_question(data):
    question_id = (data or {}).get('question_id')
    _host_command(data, 'start_question', lambda cid: get_engine().start_question(cid, question_id))


def _parse_duration(raw):
    """Seconds from a host payload: None means the question's own limit; invalid raises ValueError."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError(f"not a number: {raw!r}")
    duration = int(raw)
    if duration < 0:
        raise ValueError(f"negative duration: {duration}")
    return duration


def handle_host_start_timer(data):
    try:
        duration = _parse_duration((data or {}).get('duration'))
    except (TypeError, ValueError) as exc:
        competition_id = (data or {}).get('competition_id')
        current_app.logger.warning(f"[timer-reject] competition={competition_id} error={exc}")
        emit('error', {'message': 'duration must be a non-negative number of seconds'})
        return
    _host_command(data, 'start_timer', lambda cid: get_engine().start_timer(cid, duration))


def handle_host_pause_timer(data):
    _host_command(data, 'pause_timer', lambda cid: get_engine().pause_timer(cid))


def handle_host_resume_timer(data):
    _host_command(data, 'resume_timer', lambda cid: get_engine().resume_timer(cid))


def handle_host_reveal_answer(data):
    _host_command(data, 'reveal_answer', lambda cid: get_engine().reveal_answer(cid))


def handle_host_next(data):
    _host_command(data, 'next', lambda cid: get_engine().next(cid))


def handle_host_set_phase(data):
    phase = (data or {}).get('phase')
    _host_command(data, 'set_phase', lambda cid: get_engine().set_phase(cid, phase))


def handle_host_grade_decision(data):
    answer_id = (data or {}).get('answer_id')
    correct = bool((data or {}).get('correct'))
    _host_command(data, 'grade_decision',
                  lambda cid: get_engine().handle_grade_decision(cid, answer_id, correct))


def handle_ping(data=None):
    emit('pong', data or {})


_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'host_join': handle_host_join,
    'join_competition': handle_join_competition,
    'reconnect_team': handle_reconnect_team,
    'submit_answer': handle_submit_answer,
    'leave_competition': handle_leave_competition,
    'host_start_question': handle_host_start_question,
    'host_start_timer': handle_host_start_timer,
    'host_pause_timer': handle_host_pause_timer,
    'host_resume_timer': handle_host_resume_timer,
    'host_reveal_answer': handle_host_reveal_answer,
    'host_next': handle_host_next,
    'host_set_phase': handle_host_set_phase,
    'host_grade_decision': handle_host_grade_decision,
    'ping': handle_ping,
}


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from quiznight import socketio

    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for event, handler in _HANDLERS.items():
            socketio.on_event(event, handler, namespace=namespace)
