"""
Socket.IO Event Handlers
Real-time game events, anti-cheat signals and lobby updates
"""
import logging

from flask import current_app, request, session
from flask_socketio import emit, join_room, leave_room

from livequiz.errors import NotFoundError
from livequiz.extensions import active_players, lobby_watchers, socketio
from livequiz.services import DataAccess, EngineSettings, PlayerEngine, SessionService
from livequiz.services.completion import session_room
from livequiz.services.player_runner import LobbyWatcher, PlayerRunner

logger = logging.getLogger(__name__)


def teacher_room(session_id):
    return f'teacher_{session_id}'


def emit_row_change(event):
    """Feed emitter: forward session-scoped row changes to the session room"""
    if event.table == 'game_sessions':
        session_id = event.new.get('id')
    else:
        session_id = event.new.get('session_id')
    if session_id is None:
        return
    socketio.emit('row_change', {
        'table': event.table,
        'type': event.type,
        'new': event.new,
    }, to=session_room(session_id))


def _player_emitter(sid):
    def on_change(event, payload):
        socketio.emit(event, payload, to=sid)
    return on_change


def _stop_player(sid, mark_inactive=True):
    runner = active_players.pop(sid, None)
    if runner is None:
        return None
    runner.stop()
    if mark_inactive:
        DataAccess.set_participant_active(runner.engine.participant_id, False)
    return runner


def _stop_watcher(sid):
    watcher = lobby_watchers.pop(sid, None)
    if watcher is not None:
        watcher.stop()


def register_socket_events():
    """Register all Socket.IO event handlers"""

    @socketio.on('join_game')
    def join_game(data):
        """Player's screen attaches to its participant seat"""
        data = data or {}
        participant_id = data.get('participant_id') or session.get('participant_id')
        if participant_id is None:
            emit('join_error', {'message': 'Join the game with a PIN first.'})
            return

        try:
            participant_id = int(participant_id)
        except (TypeError, ValueError):
            emit('join_error', {'message': 'Player not found.'})
            return

        participant = DataAccess.get_participant(participant_id)
        if participant is None:
            emit('join_error', {'message': 'Player not found.'})
            return

        # One engine per socket
        _stop_player(request.sid, mark_inactive=False)

        app = current_app._get_current_object()
        settings = EngineSettings.from_config(app.config)
        try:
            engine = PlayerEngine(
                participant.session_id,
                participant.id,
                settings=settings,
                on_change=_player_emitter(request.sid),
            )
        except NotFoundError as e:
            emit('join_error', {'message': str(e)})
            return

        join_room(session_room(participant.session_id))
        DataAccess.set_participant_active(participant.id, True)

        runner = PlayerRunner(app, engine)
        active_players[request.sid] = runner
        runner.start()

        logger.info('%s attached to session %s', participant.nickname, participant.session_id)
        emit('player_state', engine.snapshot())

    @socketio.on('submit_answer')
    def submit_answer(data):
        """Player picks an option for the current question"""
        runner = active_players.get(request.sid)
        if runner is None:
            emit('answer_rejected', {'reason': 'not_in_game'})
            return

        answer = (data or {}).get('answer')
        if answer is None:
            emit('answer_rejected', {'reason': 'missing_answer'})
            return

        try:
            answer = int(answer)
        except (TypeError, ValueError):
            emit('answer_rejected', {'reason': 'invalid_answer'})
            return

        result = runner.engine.submit_answer(answer)
        if result is None:
            emit('answer_rejected', {'reason': 'already_answered'})

    @socketio.on('client_signal')
    def client_signal(data):
        """Raw browser signal for the anti-cheat monitor"""
        runner = active_players.get(request.sid)
        if runner is None:
            return

        monitor = runner.engine.monitor
        detection = monitor.handle_signal(data or {})
        if detection is not None:
            emit('security_warning', {
                'violation_type': detection.violation_type,
                'message': detection.description,
                'count': monitor.violation_count,
            })

    @socketio.on('leave_game')
    def leave_game(data=None):
        """Player leaves; timers stop and the seat goes inactive"""
        runner = _stop_player(request.sid)
        if runner is not None:
            leave_room(session_room(runner.engine.session_id))

    @socketio.on('watch_session')
    def watch_session(data):
        """Teacher lobby: roster refresh and live row changes"""
        if session.get('role') != 'teacher':
            emit('watch_error', {'message': 'Teacher access required'})
            return

        try:
            session_id = int((data or {})['session_id'])
        except (KeyError, TypeError, ValueError):
            emit('watch_error', {'message': 'session_id is required'})
            return

        _stop_watcher(request.sid)
        join_room(session_room(session_id))
        join_room(teacher_room(session_id))

        app = current_app._get_current_object()
        watcher = LobbyWatcher(
            app,
            session_id,
            teacher_room(session_id),
            EngineSettings.from_config(app.config),
            SessionService.session_roster,
        )
        lobby_watchers[request.sid] = watcher
        watcher.start()

    @socketio.on('disconnect')
    def handle_disconnect(reason=None):
        """Handle user disconnect"""
        _stop_player(request.sid)
        _stop_watcher(request.sid)
