"""
Session Service
Create, join, start and end game sessions
"""
import logging

from livequiz.errors import (
    InvalidQuizError, JoinError, LiveQuizError, NotFoundError, PersistenceError
)
from livequiz.models.game_session import SESSION_ACTIVE, SESSION_COMPLETED
from livequiz.services.completion import SessionCompletionCoordinator
from livequiz.services.data_access import DataAccess
from livequiz.services.settings import EngineSettings
from livequiz.utils.helpers import generate_pin, normalize_pin

logger = logging.getLogger(__name__)

# PIN attempts before giving up on a crowded code space
MAX_PIN_ATTEMPTS = 20
MAX_NICKNAME_LENGTH = 50


class SessionService:
    """Session lifecycle driven by the teacher and joining players"""

    def __init__(self, settings=None, coordinator=None):
        self.settings = settings or EngineSettings()
        self.coordinator = coordinator or SessionCompletionCoordinator(self.settings)

    def create_session(self, quiz_id, teacher_id=None, settings=None):
        """
        New waiting session with a fresh PIN

        Raises:
            NotFoundError: quiz does not exist
            InvalidQuizError: a stored question cannot be played
        """
        if DataAccess.build_quiz_snapshot(quiz_id) is None:
            raise NotFoundError(f"Quiz {quiz_id} not found")

        for _ in range(MAX_PIN_ATTEMPTS):
            pin = generate_pin(self.settings.pin_length)
            record = DataAccess.insert_session(quiz_id, teacher_id, pin, settings)
            if record is not None:
                logger.info("Session %s created for quiz %s with PIN %s", record.id, quiz_id, pin)
                return record
        raise PersistenceError(f"No free PIN after {MAX_PIN_ATTEMPTS} attempts")

    @staticmethod
    def find_session_by_pin(raw_pin):
        pin = normalize_pin(raw_pin)
        if pin is None:
            return None
        return DataAccess.get_session_by_pin(pin)

    def join_session(self, raw_pin, nickname, user_id=None):
        """
        Add a participant to the session behind a PIN

        Returns:
            tuple: (SessionRecord, ParticipantRecord)

        Raises:
            JoinError: unknown PIN, ended game or missing nickname
        """
        session = self.find_session_by_pin(raw_pin)
        if session is None:
            raise JoinError('Game not found. Please check the PIN and try again.', status_code=404)
        if session.status == SESSION_COMPLETED:
            raise JoinError('This game has already ended.')

        nickname = (nickname or '').strip()
        if not nickname:
            raise JoinError('Please enter a nickname.')
        if len(nickname) > MAX_NICKNAME_LENGTH:
            raise JoinError(f'Nickname must be at most {MAX_NICKNAME_LENGTH} characters.')

        participant = DataAccess.insert_participant(session.id, nickname, user_id)
        logger.info("%s joined session %s", nickname, session.id)
        return session, participant

    def start_session(self, session_id):
        """
        Freeze the quiz and move the session to active

        Starting an already active session returns it unchanged.

        Raises:
            NotFoundError: unknown session
            LiveQuizError: session already ended or quiz has no questions
        """
        session = DataAccess.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        if session.status == SESSION_ACTIVE:
            return session
        if session.status == SESSION_COMPLETED:
            raise LiveQuizError("Session has already ended")

        snapshot = DataAccess.build_quiz_snapshot(session.quiz_id)
        if snapshot is None or snapshot.question_count == 0:
            raise LiveQuizError("Quiz has no questions")

        record = DataAccess.activate_session(session_id, snapshot)
        if record is None:
            # Someone else started it first
            return DataAccess.get_session(session_id)
        logger.info("Session %s started with %d questions", session_id, snapshot.question_count)
        return record

    def end_session(self, session_id):
        """
        Teacher force-end

        Returns:
            bool: True when this call ended the session
        """
        if DataAccess.get_session(session_id) is None:
            raise NotFoundError(f"Session {session_id} not found")
        return self.coordinator.complete_session(session_id)

    @staticmethod
    def session_roster(session_id):
        """Session header plus every participant with a finished flag; None if unknown"""
        session = DataAccess.get_session(session_id)
        if session is None:
            return None
        try:
            snapshot = DataAccess.load_session_snapshot(session_id)
        except InvalidQuizError:
            logger.exception("Quiz of session %s cannot be played", session_id)
            snapshot = None
        question_count = snapshot.question_count if snapshot else 0

        participants = []
        for p in DataAccess.list_participants(session_id):
            item = p.to_dict()
            item['finished'] = question_count > 0 and p.current_question_index >= question_count
            participants.append(item)

        return {
            'session_id': session.id,
            'pin': session.pin,
            'status': session.status,
            'question_count': question_count,
            'count': len(participants),
            'participants': participants,
        }
