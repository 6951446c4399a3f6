"""
Session Completion Coordinator
Decides when a session is done and finalizes its scores

Players advance at their own pace, so the session only completes once every
participant's cursor has reached the question count, or when the teacher
ends it. Finalization may run more than once and never double counts.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from livequiz.errors import PersistenceError
from livequiz.extensions import socketio
from livequiz.models.game_session import SESSION_COMPLETED
from livequiz.services.data_access import DataAccess
from livequiz.services.leaderboard_service import LeaderboardService
from livequiz.services.settings import EngineSettings

logger = logging.getLogger(__name__)


def session_room(session_id):
    return f'session_{session_id}'


def emit_leaderboard(session_id, leaderboard):
    """Push the final leaderboard to everyone watching the session"""
    socketio.emit('leaderboard', {
        'session_id': session_id,
        'leaderboard': [entry.to_dict() for entry in leaderboard],
    }, to=session_room(session_id))


class SessionCompletionCoordinator:
    """Completion checks and idempotent finalization"""

    def __init__(self, settings=None, publisher=None):
        self.settings = settings or EngineSettings()
        self._publisher = publisher or emit_leaderboard

    def player_finished(self, session_id, question_count):
        """
        Called when a participant's cursor reaches question_count

        Returns:
            bool: True when the session is (now) completed, False when the
            player has to wait for the others
        """
        cursors = DataAccess.progress_cursors(session_id)

        if len(cursors) <= 1:
            logger.debug("Session %s has a single participant, completing", session_id)
            self.complete_session(session_id)
            return True

        if all(index >= question_count for _, index in cursors):
            self.complete_session(session_id)
            return True

        session = DataAccess.get_session(session_id)
        if session is not None and session.status == SESSION_COMPLETED:
            # Force-ended while this player was still playing
            return True

        remaining = sum(1 for _, index in cursors if index < question_count)
        logger.debug("Session %s waiting on %d participant(s)", session_id, remaining)
        return False

    def complete_session(self, session_id):
        """
        Mark the session completed and finalize it

        Returns:
            bool: True only for the call that changed the status
        """
        transitioned = DataAccess.mark_session_completed(session_id)
        if transitioned:
            logger.info("Session %s completed", session_id)
        self.finalize(session_id)
        return transitioned

    def finalize(self, session_id):
        """
        Record session scores, refresh cumulative rollups, publish leaderboard

        Safe to call repeatedly: ledger rows are insert-if-absent and
        rollups are recomputed from the ledger.
        """
        users = []
        for participant in DataAccess.list_participants(session_id):
            if participant.user_id is None:
                continue
            try:
                if DataAccess.record_session_score(participant.user_id, session_id, participant.score):
                    logger.debug("Recorded %s points for user %s in session %s",
                                 participant.score, participant.user_id, session_id)
            except PersistenceError:
                logger.exception("Failed to record session score for user %s", participant.user_id)
            if participant.user_id not in users:
                users.append(participant.user_id)

        for user_id in users:
            try:
                DataAccess.upsert_cumulative_score(user_id)
            except (PersistenceError, SQLAlchemyError):
                logger.exception("Failed to update cumulative score for user %s", user_id)

        leaderboard = LeaderboardService.session_leaderboard(session_id, self.settings.leaderboard_size)
        try:
            self._publisher(session_id, leaderboard)
        except Exception:
            logger.exception("Failed to publish leaderboard for session %s", session_id)
        return leaderboard
