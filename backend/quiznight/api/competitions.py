from functools import wraps
import hmac

from flask import Blueprint, current_app, jsonify, request

from quiznight import db, get_engine
from quiznight.exceptions import PersistenceError
from quiznight.models import Competition

competitions = Blueprint('competitions', __name__)


def admin_required(view):
    """Reject requests whose X-Admin-Auth header does not match ADMIN_PASSWORD."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        supplied = request.headers.get('X-Admin-Auth', '')
        expected = current_app.config.get('ADMIN_PASSWORD') or ''
        if not expected or not hmac.compare_digest(supplied.encode('utf-8'), expected.encode('utf-8')):
            return jsonify({'error': 'Unauthorized'}), 401
        return view(*args, **kwargs)
    return wrapped


def _get_competition_or_404(competition_id):
    competition = db.session.get(Competition, competition_id)
    if competition is None:
        return None, (jsonify({'error': 'Competition not found'}), 404)
    return competition, None


@competitions.route('/competitions', methods=['GET'])
def list_competitions():
    rows = Competition.query.order_by(Competition.created_at.desc()).all()
    return jsonify([c.to_dict() for c in rows])


@competitions.route('/competitions/<string:competition_id>/state', methods=['GET'])
def get_state(competition_id):
    _, error = _get_competition_or_404(competition_id)
    if error:
        return error
    return jsonify(get_engine().state_dict(competition_id))


@competitions.route('/competitions/<string:competition_id>/play-data', methods=['GET'])
@admin_required
def get_play_data(competition_id):
    # Host view: includes answer keys
    competition, error = _get_competition_or_404(competition_id)
    if error:
        return error
    payload = competition.to_dict()
    payload['rounds'] = [r.to_dict(include_questions=True) for r in competition.rounds]
    return jsonify(payload)


@competitions.route('/admin/pending-answers', methods=['GET'])
@admin_required
def pending_answers():
    competition_id = request.args.get('competition_id')
    try:
        pending = get_engine().repository.get_pending_answers(competition_id)
    except PersistenceError as exc:
        current_app.logger.error(f"[pending-answers-failed] competition={competition_id} error={exc}")
        return jsonify({'error': 'Could not load pending answers'}), 503
    return jsonify(pending)
