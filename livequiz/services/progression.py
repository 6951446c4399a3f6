"""
Per-Player Progression Engine
State machine driving one participant through a quiz at their own pace

States: waiting -> question -> results -> (question ... ) -> waiting_for_others -> ended

Every transition runs under the engine lock. Feed callbacks never take the
lock; they only queue the row image, and drain_events() applies the queue.
Push events and the poll loops feed the same apply_* functions, which are
safe to run repeatedly with the same row.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import queue
import threading
import time

from sqlalchemy.exc import SQLAlchemyError

from livequiz.errors import InvalidQuizError, NotFoundError, PersistenceError
from livequiz.models.answer import TIMEOUT_ANSWER
from livequiz.models.game_session import SESSION_ACTIVE, SESSION_COMPLETED
from livequiz.services.anti_cheat import AntiCheatMonitor
from livequiz.services.badge_service import BadgeContext, BadgeEngine
from livequiz.services.completion import SessionCompletionCoordinator
from livequiz.services.data_access import DataAccess
from livequiz.services.leaderboard_service import LeaderboardService
from livequiz.services.notifications import feed as default_feed
from livequiz.services.records import ParticipantRecord, SessionRecord
from livequiz.services.scoring_service import ScoringService
from livequiz.services.settings import EngineSettings
from livequiz.services.violation_service import ViolationService

logger = logging.getLogger(__name__)

STATE_WAITING = 'waiting'
STATE_QUESTION = 'question'
STATE_RESULTS = 'results'
STATE_WAITING_FOR_OTHERS = 'waiting_for_others'
STATE_ENDED = 'ended'

# Store failures caught at the boundary of each engine operation
_STORE_ERRORS = (PersistenceError, InvalidQuizError, SQLAlchemyError)


@dataclass
class PlayerState:
    """Everything the player's screen shows"""

    state: str = STATE_WAITING
    question_index: int = 0
    current_question: object = None
    selected_answer: int | None = None
    time_left: int = 0
    score: int = 0
    streak: int = 0
    correct_answers: int = 0
    last_answer_correct: bool | None = None
    last_points: int = 0
    new_badges: list = field(default_factory=list)
    leaderboard: list = field(default_factory=list)
    results_until: float | None = None
    next_tick_at: float | None = None

    def to_dict(self):
        question = self.current_question
        return {
            'state': self.state,
            'question_index': self.question_index,
            'question': question.public_dict() if question is not None else None,
            'selected_answer': self.selected_answer,
            'time_left': self.time_left,
            'score': self.score,
            'streak': self.streak,
            'correct_answers': self.correct_answers,
            'last_answer_correct': self.last_answer_correct,
            'last_points': self.last_points,
            'new_badges': [b.to_dict() for b in self.new_badges],
            'leaderboard': list(self.leaderboard),
        }


@dataclass(frozen=True)
class AnswerResult:
    """Outcome of one accepted submission"""
    question_id: int
    selected_answer: int
    is_correct: bool
    points: int
    time_taken: int
    new_badges: tuple = ()


def _session_row(row):
    if isinstance(row, SessionRecord):
        return row
    return SessionRecord.from_row(row)


def _participant_row(row):
    if isinstance(row, ParticipantRecord):
        return row
    return ParticipantRecord.from_row(row)


class PlayerEngine:
    """
    One participant's progression through a session

    Args:
        session_id, participant_id: the player being driven
        settings: EngineSettings
        on_change: callable(event, payload) for every visible change
        coordinator, badge_engine, monitor: collaborators, built from
            settings when omitted
        clock: monotonic seconds, injectable for tests
    """

    def __init__(self, session_id, participant_id, settings=None, on_change=None,
                 coordinator=None, badge_engine=None, monitor=None,
                 clock=time.monotonic, notification_feed=None):
        self.session_id = session_id
        self.participant_id = participant_id
        self.settings = settings or EngineSettings()
        self.coordinator = coordinator or SessionCompletionCoordinator(self.settings)
        self.badge_engine = badge_engine or BadgeEngine(self.settings)
        self.monitor = monitor or AntiCheatMonitor(
            ViolationService(self.settings).reporter_for(session_id, participant_id),
            threshold_px=self.settings.devtools_threshold_px,
        )
        self._on_change = on_change
        self._clock = clock
        self._feed = notification_feed or default_feed

        self._lock = threading.RLock()
        self._events = queue.Queue()
        self._subscriptions = []
        self._snapshot = None
        self._closed = False
        self._completion_badges_checked = False

        participant = DataAccess.get_participant(participant_id)
        if participant is None or participant.session_id != session_id:
            raise NotFoundError(f"Participant {participant_id} is not in session {session_id}")

        self.user_id = participant.user_id
        self.nickname = participant.nickname
        self.prior_games = DataAccess.count_user_games(self.user_id, exclude_participant_id=participant_id)
        self.is_first_game = self.user_id is not None and self.prior_games == 0

        self.state = PlayerState(
            question_index=participant.current_question_index,
            score=participant.score,
            streak=participant.streak,
            correct_answers=participant.correct_answers,
        )

    # ================= LIFECYCLE =================

    def start(self):
        """Subscribe to the feed and catch up with the stored session"""
        with self._lock:
            if self._closed or self._subscriptions:
                return
            self._subscriptions = [
                self._feed.subscribe('game_sessions', {'id': self.session_id}, self._enqueue),
                self._feed.subscribe('participants', {'id': self.participant_id}, self._enqueue),
            ]
        self.pull()

    def close(self):
        """Unsubscribe and stop reacting; safe to call more than once"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for handle in self._subscriptions:
                self._feed.unsubscribe(handle)
            self._subscriptions = []
            self.monitor.disable()
            self.state.results_until = None
        while True:
            try:
                self._events.get_nowait()
            except queue.Empty:
                break
        logger.debug("Engine for participant %s closed", self.participant_id)

    @property
    def closed(self):
        return self._closed

    # ================= QUIZ =================

    def _quiz(self):
        """Session snapshot, fetched once"""
        if self._snapshot is None:
            self._snapshot = DataAccess.load_session_snapshot(self.session_id)
        return self._snapshot

    @property
    def question_count(self):
        quiz = self._quiz()
        return quiz.question_count if quiz else 0

    # ================= TRANSITIONS =================

    def load_question(self, index):
        """
        Show the question at index

        Returns:
            bool: False (and no transition) when the index is out of range
        """
        with self._lock:
            if self._closed or self.state.state == STATE_ENDED:
                return False
            try:
                quiz = self._quiz()
            except _STORE_ERRORS:
                logger.exception("Could not load quiz for session %s", self.session_id)
                return False

            question = quiz.question_at(index) if quiz else None
            if question is None:
                logger.warning("Question index %s out of range for session %s", index, self.session_id)
                return False

            s = self.state
            s.question_index = index
            s.current_question = question
            s.selected_answer = None
            s.time_left = question.time_limit
            s.last_answer_correct = None
            s.last_points = 0
            s.new_badges = []
            s.results_until = None
            s.next_tick_at = self._clock() + self.settings.countdown_tick_seconds
            s.state = STATE_QUESTION
            self.monitor.enable()

            logger.debug("Participant %s on question %s", self.participant_id, index)
            self._notify('question', {
                'index': index,
                'total': quiz.question_count,
                'question': question.public_dict(),
                'time_left': s.time_left,
            })
            return True

    def submit_answer(self, option):
        """
        Answer the current question; option -1 means the timer ran out

        Returns:
            AnswerResult, or None when there is nothing to answer or the
            question was already answered
        """
        with self._lock:
            s = self.state
            if self._closed or s.state != STATE_QUESTION or s.current_question is None:
                return None
            if s.selected_answer is not None:
                logger.info("Duplicate answer from participant %s ignored", self.participant_id)
                return None

            question = s.current_question
            option = TIMEOUT_ANSWER if option is None else int(option)
            s.selected_answer = option
            self.monitor.disable()

            is_correct = ScoringService.is_correct(question, option)
            points = ScoringService.calculate_points(is_correct, question.points, s.time_left, question.time_limit)
            time_taken = ScoringService.time_taken(question.time_limit, s.time_left)
            answered_index = s.question_index
            next_index = answered_index + 1

            claimed = True
            persisted = None
            try:
                if DataAccess.is_session_completed(self.session_id):
                    # Force-ended before the answer landed
                    logger.info("Answer of participant %s arrived after session %s ended",
                                self.participant_id, self.session_id)
                    self._end()
                    return None
                claimed = DataAccess.insert_answer(
                    self.participant_id, question.id, option, is_correct, time_taken, points
                )
                if claimed:
                    persisted = DataAccess.apply_answer_result(self.participant_id, points, is_correct, next_index)
                    if persisted is None and DataAccess.is_session_completed(self.session_id):
                        self._end()
                        return None
            except _STORE_ERRORS:
                # Local progress stands; the poll loops pick up the stored state later
                logger.exception("Failed to store answer of participant %s on question %s",
                                 self.participant_id, question.id)

            # Off the question before merging stored progress
            s.state = STATE_RESULTS

            if not claimed:
                # Already answered elsewhere; take the stored progress and score nothing
                self._refresh_participant()
                s.question_index = max(s.question_index, next_index)
                s.last_answer_correct = None
                s.last_points = 0
                self._enter_results()
                return None

            s.score += points
            s.streak = s.streak + 1 if is_correct else 0
            if is_correct:
                s.correct_answers += 1
            s.question_index = next_index
            if persisted is not None:
                self._reconcile(persisted)

            badges = self._evaluate_badges(BadgeContext(
                is_first_game=self.is_first_game and answered_index == 0,
                answer_time=time_taken if option != TIMEOUT_ANSWER else None,
                streak=s.streak,
                total_games=self.prior_games + 1,
            ))

            s.last_answer_correct = is_correct
            s.last_points = points
            s.new_badges = list(badges)
            self._enter_results()

            return AnswerResult(
                question_id=question.id,
                selected_answer=option,
                is_correct=is_correct,
                points=points,
                time_taken=time_taken,
                new_badges=tuple(badges),
            )

    def _enter_results(self):
        s = self.state
        s.state = STATE_RESULTS
        s.results_until = self._clock() + self.settings.results_display_seconds
        self._notify('answer_result', {
            'correct': s.last_answer_correct,
            'correct_answer': s.current_question.correct_answer if s.current_question else None,
            'points': s.last_points,
            'score': s.score,
            'streak': s.streak,
            'new_badges': [b.to_dict() for b in s.new_badges],
        })

    def tick(self):
        """One countdown second; submits a timeout when it reaches zero"""
        with self._lock:
            s = self.state
            if self._closed or s.state != STATE_QUESTION or s.selected_answer is not None:
                return
            s.time_left = max(0, s.time_left - 1)
            self._notify('tick', {'time_left': s.time_left})
            if s.time_left == 0:
                logger.debug("Participant %s timed out on question %s", self.participant_id, s.question_index)
                self.submit_answer(TIMEOUT_ANSWER)

    def tick_if_due(self, now=None):
        """
        Run every countdown second that has elapsed since the question loaded

        Returns:
            int: number of ticks applied
        """
        with self._lock:
            s = self.state
            now = self._clock() if now is None else now
            ticks = 0
            while (not self._closed and s.state == STATE_QUESTION
                   and s.next_tick_at is not None and now >= s.next_tick_at):
                s.next_tick_at += self.settings.countdown_tick_seconds
                self.tick()
                ticks += 1
            return ticks

    def finish_results(self):
        """Leave the results screen: next question or the end of this player's game"""
        with self._lock:
            s = self.state
            if self._closed or s.state != STATE_RESULTS:
                return
            s.results_until = None
            try:
                count = self.question_count
            except _STORE_ERRORS:
                logger.exception("Could not load quiz for session %s", self.session_id)
                return
            if s.question_index < count:
                self.load_question(s.question_index)
            else:
                self._finish_game(count)

    def advance_if_due(self, now=None):
        """Finish the results hold once its time is up"""
        with self._lock:
            s = self.state
            if s.state != STATE_RESULTS or s.results_until is None:
                return False
            if (self._clock() if now is None else now) < s.results_until:
                return False
            self.finish_results()
            return True

    def _finish_game(self, count):
        """This player's cursor reached the question count"""
        s = self.state
        s.current_question = None
        self.monitor.disable()

        if not self._completion_badges_checked:
            self._completion_badges_checked = True
            badges = self._evaluate_badges(BadgeContext(
                game_completed=True,
                perfect_score=count > 0 and s.correct_answers >= count,
                streak=s.streak,
                total_games=self.prior_games + 1,
            ))
            s.new_badges = s.new_badges + list(badges)

        try:
            completed = self.coordinator.player_finished(self.session_id, count)
        except _STORE_ERRORS:
            logger.exception("Completion check failed for session %s", self.session_id)
            completed = False

        if completed:
            self._end()
        elif s.state != STATE_WAITING_FOR_OTHERS:
            s.state = STATE_WAITING_FOR_OTHERS
            self._notify('waiting_for_others', {
                'score': s.score,
                'new_badges': [b.to_dict() for b in s.new_badges],
            })

    def check_completion(self):
        """Periodic re-check while waiting for the others to finish"""
        with self._lock:
            if self._closed or self.state.state != STATE_WAITING_FOR_OTHERS:
                return False
            try:
                session = DataAccess.get_session(self.session_id)
                if session is not None and session.status == SESSION_COMPLETED:
                    self._end()
                    return True
                if self.coordinator.player_finished(self.session_id, self.question_count):
                    self._end()
                    return True
            except _STORE_ERRORS:
                logger.exception("Completion check failed for session %s", self.session_id)
            return False

    def _end(self):
        s = self.state
        if s.state == STATE_ENDED:
            return
        s.state = STATE_ENDED
        s.current_question = None
        s.results_until = None
        self.monitor.disable()
        try:
            s.leaderboard = LeaderboardService.build_leaderboard_payload(
                self.session_id, self.settings.leaderboard_size
            )
        except _STORE_ERRORS:
            logger.exception("Could not load leaderboard for session %s", self.session_id)
        logger.debug("Participant %s reached the end of session %s", self.participant_id, self.session_id)
        self._notify('game_ended', {'score': s.score, 'leaderboard': s.leaderboard})

    # ================= RECONCILIATION =================

    def apply_session_row(self, row):
        """React to the stored session status (push event or poll)"""
        session = _session_row(row)
        with self._lock:
            if self._closed:
                return
            s = self.state
            if session.status == SESSION_COMPLETED:
                # Teacher force-end wins over local progress
                self._end()
                return
            if session.status == SESSION_ACTIVE and s.state == STATE_WAITING:
                try:
                    count = self.question_count
                except _STORE_ERRORS:
                    logger.exception("Could not load quiz for session %s", self.session_id)
                    return
                if s.question_index >= count:
                    self._finish_game(count)
                else:
                    self.load_question(s.question_index)

    def apply_participant_row(self, row):
        """Merge a stored participant image into local state"""
        participant = _participant_row(row)
        if participant.id != self.participant_id:
            return
        with self._lock:
            if self._closed:
                return
            self._reconcile(participant)

    def _reconcile(self, participant):
        """Take the stored values when ahead; never move score or cursor back"""
        s = self.state
        ahead = participant.current_question_index > s.question_index

        s.score = max(s.score, participant.score)
        s.correct_answers = max(s.correct_answers, participant.correct_answers)
        if not ahead:
            return

        s.streak = participant.streak
        s.question_index = participant.current_question_index
        if s.state == STATE_QUESTION:
            # The shown question was answered through another path
            logger.info("Participant %s is ahead in the store, skipping to %s",
                        self.participant_id, s.question_index)
            self.monitor.disable()
            if s.question_index < self.question_count:
                self.load_question(s.question_index)
            else:
                self._finish_game(self.question_count)

    def _refresh_participant(self):
        try:
            participant = DataAccess.get_participant(self.participant_id)
        except _STORE_ERRORS:
            logger.exception("Could not reload participant %s", self.participant_id)
            return
        if participant is not None:
            self._reconcile(participant)

    def reconcile(self):
        """Pull the stored participant row (fast poll)"""
        with self._lock:
            if self._closed:
                return
            self._refresh_participant()

    def pull(self):
        """Consistency pass over both stored rows"""
        if self._closed:
            return
        try:
            participant = DataAccess.get_participant(self.participant_id)
            session = DataAccess.get_session(self.session_id)
        except _STORE_ERRORS:
            logger.exception("Pull failed for participant %s", self.participant_id)
            return
        if participant is not None:
            self.apply_participant_row(participant)
        if session is not None:
            self.apply_session_row(session)

    # ================= FEED =================

    def _enqueue(self, event):
        if not self._closed:
            self._events.put(event)

    def _apply_event(self, event):
        if event.table == 'game_sessions':
            self.apply_session_row(event.new)
        elif event.table == 'participants':
            self.apply_participant_row(event.new)

    def drain_events(self):
        """Apply every queued feed event; returns how many were applied"""
        applied = 0
        while not self._closed:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            self._apply_event(event)
            applied += 1
        return applied

    def wait_for_events(self, timeout):
        """Block up to timeout for a feed event, then apply everything queued"""
        try:
            event = self._events.get(timeout=timeout)
        except queue.Empty:
            return 0
        if self._closed:
            return 0
        self._apply_event(event)
        return 1 + self.drain_events()

    # ================= HELPERS =================

    def _evaluate_badges(self, context):
        try:
            return self.badge_engine.evaluate(self.user_id, context)
        except _STORE_ERRORS:
            logger.exception("Badge evaluation failed for user %s", self.user_id)
            return []

    def _notify(self, event, payload):
        if self._on_change is None or self._closed:
            return
        try:
            self._on_change(event, payload)
        except Exception:
            logger.exception("on_change handler failed for %s", event)

    def snapshot(self):
        with self._lock:
            return self.state.to_dict()
