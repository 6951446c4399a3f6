"""
Player Routes
Joining by PIN, badges, history and all-time leaderboard
"""
from flask import Blueprint, current_app, jsonify, request, session

from livequiz.errors import JoinError
from livequiz.models.game_session import SESSION_COMPLETED
from livequiz.services import EngineSettings, LeaderboardService, SessionService
from livequiz.services.badge_service import BadgeEngine
from livequiz.utils import get_current_user_id, isoformat_local

player_bp = Blueprint('player', __name__)


def _settings():
    return EngineSettings.from_config(current_app.config)


@player_bp.route('/sessions/<pin>')
def lookup(pin):
    """Resolve a PIN before asking for a nickname"""
    record = SessionService.find_session_by_pin(pin)
    if record is None:
        return jsonify({'error': 'Game not found. Please check the PIN and try again.'}), 404
    if record.status == SESSION_COMPLETED:
        return jsonify({'error': 'This game has already ended.'}), 400
    return jsonify({'session_id': record.id, 'pin': record.pin, 'status': record.status})


@player_bp.route('/join', methods=['POST'])
def join():
    """Join a session; anonymous players are allowed"""
    data = request.get_json(silent=True) or {}
    try:
        record, participant = SessionService(_settings()).join_session(
            data.get('pin'), data.get('nickname'), get_current_user_id()
        )
    except JoinError as e:
        return jsonify({'error': e.message}), e.status_code

    # Remember the seat so the socket handshake can find it
    session['participant_id'] = participant.id
    session['session_id'] = record.id

    return jsonify({
        'session': record.to_dict(),
        'participant': participant.to_dict(),
    }), 201


@player_bp.route('/leaderboard')
def cumulative_leaderboard():
    """All-time leaderboard across completed sessions"""
    limit = request.args.get('limit', _settings().cumulative_leaderboard_size, type=int)
    return jsonify({'leaderboard': LeaderboardService.cumulative_leaderboard(limit)})


@player_bp.route('/users/<int:user_id>/badges')
def user_badges(user_id):
    """Badges a user has earned, oldest first"""
    badges = BadgeEngine.user_badges(user_id)
    for item in badges:
        item['earned_at'] = isoformat_local(item['earned_at'])
    return jsonify({'user_id': user_id, 'badges': badges})


@player_bp.route('/users/<int:user_id>/history')
def user_history(user_id):
    """Recorded session scores, newest first"""
    limit = request.args.get('limit', 20, type=int)
    return jsonify({'user_id': user_id, 'history': LeaderboardService.user_session_history(user_id, limit)})


@player_bp.route('/users/<int:user_id>/stats')
def user_stats(user_id):
    """Games, score rollup and badge count"""
    return jsonify(LeaderboardService.user_stats(user_id))
