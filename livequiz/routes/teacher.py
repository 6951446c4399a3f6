"""
Teacher Routes
Session control and reports for the teacher's lobby view
"""
from flask import Blueprint, current_app, jsonify, request, session

from livequiz.errors import LiveQuizError, NotFoundError
from livequiz.extensions import socketio
from livequiz.services import (
    EngineSettings, LeaderboardService, SessionService, ViolationService
)
from livequiz.services.completion import session_room
from livequiz.utils import require_teacher

teacher_bp = Blueprint('teacher', __name__)


def _settings():
    return EngineSettings.from_config(current_app.config)


def _error(message, status):
    return jsonify({'error': message}), status


@teacher_bp.route('/sessions', methods=['POST'])
@require_teacher
def create_session():
    """Create a waiting session for a quiz"""
    data = request.get_json(silent=True) or {}
    quiz_id = data.get('quiz_id')
    if quiz_id is None:
        return _error('quiz_id is required', 400)

    try:
        quiz_id = int(quiz_id)
    except (TypeError, ValueError):
        return _error('quiz_id must be a number', 400)

    try:
        record = SessionService(_settings()).create_session(
            quiz_id, session.get('user_id'), data.get('settings')
        )
    except NotFoundError as e:
        return _error(str(e), 404)
    except LiveQuizError as e:
        return _error(str(e), 400)

    return jsonify(record.to_dict()), 201


@teacher_bp.route('/sessions/<int:session_id>/start', methods=['POST'])
@require_teacher
def start_session(session_id):
    """Start the game for everyone in the lobby"""
    try:
        record = SessionService(_settings()).start_session(session_id)
    except NotFoundError as e:
        return _error(str(e), 404)
    except LiveQuizError as e:
        return _error(str(e), 409)

    socketio.emit('game_started', {
        'session_id': session_id,
        'message': 'Quiz is starting now!',
    }, to=session_room(session_id))

    return jsonify(record.to_dict())


@teacher_bp.route('/sessions/<int:session_id>/end', methods=['POST'])
@require_teacher
def end_session(session_id):
    """Force-end the session regardless of player progress"""
    settings = _settings()
    try:
        ended = SessionService(settings).end_session(session_id)
    except NotFoundError as e:
        return _error(str(e), 404)

    return jsonify({
        'session_id': session_id,
        'ended': ended,
        'leaderboard': LeaderboardService.build_leaderboard_payload(session_id, settings.leaderboard_size),
    })


@teacher_bp.route('/sessions/<int:session_id>/roster')
@require_teacher
def roster(session_id):
    """Participants with their progress"""
    data = SessionService.session_roster(session_id)
    if data is None:
        return _error('Session not found', 404)
    return jsonify(data)


@teacher_bp.route('/sessions/<int:session_id>/leaderboard')
@require_teacher
def leaderboard(session_id):
    """Live or final session leaderboard"""
    limit = request.args.get('limit', _settings().leaderboard_size, type=int)
    return jsonify({
        'session_id': session_id,
        'leaderboard': LeaderboardService.build_leaderboard_payload(session_id, limit),
    })


@teacher_bp.route('/sessions/<int:session_id>/flagged')
@require_teacher
def flagged_players(session_id):
    """Security report: players with significant violation totals"""
    report = ViolationService(_settings()).flagged_players(session_id)
    return jsonify({'session_id': session_id, 'flagged': report, 'count': len(report)})


@teacher_bp.route('/sessions/<int:session_id>/flagged/high')
@require_teacher
def high_severity(session_id):
    """Only violation counters that reached high severity"""
    rows = ViolationService(_settings()).high_severity_violations(session_id)
    return jsonify({'session_id': session_id, 'violations': rows, 'count': len(rows)})
