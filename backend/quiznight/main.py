from flask import Blueprint, jsonify

from quiznight import get_engine

main = Blueprint('main', __name__)


@main.route('/', methods=['GET'])
def index():
    return jsonify({'message': 'Quiz night server is running'})


@main.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'competitions': len(get_engine().store.competition_ids())})
