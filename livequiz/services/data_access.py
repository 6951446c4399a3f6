"""
Data Access Layer
Every read and write the game core makes against the store

Reads return records (or None / [] when nothing matches) and never raise for
not-found. Writes raise PersistenceError; a lost unique-constraint claim is
reported as a falsy return value instead. Successful writes are published to
the notification feed after commit.
"""
from datetime import datetime
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from livequiz.errors import InvalidQuizError, PersistenceError
from livequiz.extensions import db
from livequiz.models import (
    Achievement, Answer, Badge, CumulativeScore, GameSession, Participant,
    Question, Quiz, SecurityViolation, SessionScore, User
)
from livequiz.models.game_session import (
    DEFAULT_SETTINGS, SESSION_ACTIVE, SESSION_COMPLETED, SESSION_WAITING
)
from livequiz.services.notifications import EVENT_INSERT, EVENT_UPDATE, feed
from livequiz.services.records import (
    BadgeRecord, ParticipantRecord, QuestionRecord, QuizSnapshot, SessionRecord
)
from livequiz.utils.helpers import now_utc

logger = logging.getLogger(__name__)

# Columns never pushed through the feed
_UNPUBLISHED_COLUMNS = {'quiz_snapshot'}


def row_image(obj):
    """Plain dict of a model's columns, JSON friendly"""
    image = {}
    for column in obj.__table__.columns:
        if column.name in _UNPUBLISHED_COLUMNS:
            continue
        value = getattr(obj, column.name)
        if isinstance(value, datetime):
            value = value.isoformat()
        image[column.name] = value
    return image


def severity_for(count, medium_at, high_at):
    """Severity of a single violation counter row"""
    if count >= high_at:
        return 'high'
    if count >= medium_at:
        return 'medium'
    return 'low'


def _session_record(row):
    return SessionRecord(
        id=row.id,
        quiz_id=row.quiz_id,
        pin=row.pin,
        status=row.status,
        teacher_id=row.teacher_id,
        settings=dict(row.settings or {}),
        created_at=row.created_at,
        started_at=row.started_at,
        ended_at=row.ended_at,
    )


def _participant_record(row):
    return ParticipantRecord(
        id=row.id,
        session_id=row.session_id,
        nickname=row.nickname,
        user_id=row.user_id,
        score=row.score or 0,
        correct_answers=row.correct_answers or 0,
        streak=row.streak or 0,
        current_question_index=row.current_question_index or 0,
        is_active=bool(row.is_active),
        joined_at=row.joined_at,
    )


def _question_record(row):
    return QuestionRecord(
        id=row.id,
        prompt=row.prompt,
        options=tuple(row.options or ()),
        correct_answer=row.correct_answer,
        points=row.points,
        time_limit=row.time_limit,
        position=row.position,
        explanation=row.explanation,
    )


def _badge_record(row):
    return BadgeRecord(
        id=row.id,
        name=row.name,
        description=row.description or '',
        icon=row.icon or '',
        rarity=row.rarity or 'common',
        points_value=row.points_value or 0,
    )


class DataAccess:
    """Query and update operations over the persisted entities"""

    # ================= PLUMBING =================

    @staticmethod
    def _commit():
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(str(e)) from e

    @staticmethod
    def _update(query, values):
        """Run a bulk UPDATE; returns the number of matched rows"""
        try:
            return query.update(values, synchronize_session=False)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(str(e)) from e

    @staticmethod
    def _publish(table, event_type, obj):
        if obj is not None:
            feed.publish(table, event_type, row_image(obj))

    # ================= USERS & QUIZZES =================

    @staticmethod
    def create_user(name, email=None, role='student'):
        user = User(name=name, email=email, role=role)
        db.session.add(user)
        DataAccess._commit()
        return user.id

    @staticmethod
    def create_quiz(title, questions, teacher_id=None, description='', time_limit=30):
        """
        Insert a quiz with its questions

        Args:
            questions: list of dicts with prompt, options, correct_answer and
                optional points, time_limit, explanation. Positions follow list order.

        Returns:
            int: the new quiz id

        Raises:
            InvalidQuizError: a question has an unusable shape; nothing is stored
        """
        records = []
        for position, data in enumerate(questions):
            try:
                records.append(QuestionRecord(
                    id=position + 1,
                    prompt=str(data['prompt']),
                    options=tuple(str(o) for o in data['options']),
                    correct_answer=int(data['correct_answer']),
                    points=int(data.get('points', 100)),
                    time_limit=int(data.get('time_limit', time_limit)),
                    position=position,
                    explanation=data.get('explanation'),
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidQuizError(f"Question {position + 1} of {title!r} is invalid: {e}") from e

        quiz = Quiz(
            title=title,
            description=description,
            teacher_id=teacher_id,
            time_limit=time_limit,
        )
        for record in records:
            quiz.questions.append(Question(
                position=record.position,
                prompt=record.prompt,
                options=list(record.options),
                correct_answer=record.correct_answer,
                points=record.points,
                time_limit=record.time_limit,
                explanation=record.explanation,
            ))
        db.session.add(quiz)
        DataAccess._commit()
        return quiz.id

    @staticmethod
    def build_quiz_snapshot(quiz_id):
        """
        Snapshot of the quiz as currently stored; None if it does not exist

        Raises:
            InvalidQuizError: a stored question has an unusable shape
        """
        quiz = db.session.get(Quiz, quiz_id)
        if quiz is None:
            return None
        questions = Question.query.filter_by(quiz_id=quiz_id).order_by(Question.position).all()
        try:
            return QuizSnapshot.build(quiz.id, quiz.title, [_question_record(q) for q in questions])
        except (TypeError, ValueError) as e:
            raise InvalidQuizError(f"Quiz {quiz_id} cannot be played: {e}") from e

    @staticmethod
    def load_session_snapshot(session_id):
        """Questions frozen for a session (falls back to the live quiz before start)"""
        row = db.session.get(GameSession, session_id)
        if row is None:
            return None
        if row.quiz_snapshot:
            try:
                return QuizSnapshot.from_dict(row.quiz_snapshot)
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidQuizError(f"Session {session_id} has a broken quiz snapshot: {e}") from e
        return DataAccess.build_quiz_snapshot(row.quiz_id)

    # ================= SESSIONS =================

    @staticmethod
    def get_session(session_id):
        row = db.session.get(GameSession, session_id)
        return _session_record(row) if row else None

    @staticmethod
    def is_session_completed(session_id):
        status = db.session.query(GameSession.status).filter_by(id=session_id).scalar()
        return status == SESSION_COMPLETED

    @staticmethod
    def get_session_by_pin(pin):
        row = GameSession.query.filter_by(pin=pin).first()
        return _session_record(row) if row else None

    @staticmethod
    def insert_session(quiz_id, teacher_id, pin, settings=None):
        """New waiting session; None when the PIN is already taken"""
        merged = dict(DEFAULT_SETTINGS)
        merged.update(settings or {})
        row = GameSession(
            quiz_id=quiz_id,
            teacher_id=teacher_id,
            pin=pin,
            status=SESSION_WAITING,
            settings=merged,
        )
        db.session.add(row)
        try:
            DataAccess._commit()
        except IntegrityError:
            logger.info("PIN %s already in use", pin)
            return None
        DataAccess._publish('game_sessions', EVENT_INSERT, row)
        return _session_record(row)

    @staticmethod
    def activate_session(session_id, snapshot):
        """
        waiting -> active, freezing the quiz snapshot

        Returns:
            SessionRecord if this call made the transition, else None
        """
        updated = DataAccess._update(GameSession.query.filter_by(
            id=session_id, status=SESSION_WAITING
        ), {
            GameSession.status: SESSION_ACTIVE,
            GameSession.started_at: now_utc(),
            GameSession.quiz_snapshot: snapshot.to_dict(),
        })
        DataAccess._commit()
        if not updated:
            return None
        row = db.session.get(GameSession, session_id)
        DataAccess._publish('game_sessions', EVENT_UPDATE, row)
        return _session_record(row)

    @staticmethod
    def mark_session_completed(session_id):
        """
        Set status completed and ended_at unless already completed

        Returns:
            bool: True only for the call that performed the transition
        """
        updated = DataAccess._update(GameSession.query.filter(
            GameSession.id == session_id,
            GameSession.status != SESSION_COMPLETED,
        ), {
            GameSession.status: SESSION_COMPLETED,
            GameSession.ended_at: now_utc(),
        })
        DataAccess._commit()
        if updated:
            DataAccess._publish('game_sessions', EVENT_UPDATE, db.session.get(GameSession, session_id))
        return bool(updated)

    # ================= PARTICIPANTS =================

    @staticmethod
    def insert_participant(session_id, nickname, user_id=None):
        row = Participant(
            session_id=session_id,
            nickname=nickname,
            user_id=user_id,
            score=0,
            correct_answers=0,
            streak=0,
            current_question_index=0,
            is_active=True,
        )
        db.session.add(row)
        DataAccess._commit()
        DataAccess._publish('participants', EVENT_INSERT, row)
        return _participant_record(row)

    @staticmethod
    def get_participant(participant_id):
        row = db.session.get(Participant, participant_id)
        return _participant_record(row) if row else None

    @staticmethod
    def list_participants(session_id):
        rows = Participant.query.filter_by(session_id=session_id).order_by(
            Participant.joined_at.asc(), Participant.id.asc()
        ).all()
        return [_participant_record(r) for r in rows]

    @staticmethod
    def progress_cursors(session_id):
        """(participant_id, current_question_index) for everyone in the session"""
        rows = db.session.query(
            Participant.id, Participant.current_question_index
        ).filter_by(session_id=session_id).all()
        return [(r.id, r.current_question_index or 0) for r in rows]

    @staticmethod
    def top_participants(session_id, limit):
        """Highest scores first; ties keep join order"""
        rows = Participant.query.filter_by(session_id=session_id).order_by(
            Participant.score.desc(),
            Participant.joined_at.asc(),
            Participant.id.asc(),
        ).limit(limit).all()
        return [_participant_record(r) for r in rows]

    @staticmethod
    def set_participant_active(participant_id, is_active):
        updated = DataAccess._update(
            Participant.query.filter_by(id=participant_id), {Participant.is_active: is_active}
        )
        DataAccess._commit()
        if updated:
            DataAccess._publish('participants', EVENT_UPDATE, db.session.get(Participant, participant_id))
        return bool(updated)

    @staticmethod
    def count_user_games(user_id, exclude_participant_id=None):
        """Number of sessions the user has joined"""
        if user_id is None:
            return 0
        query = Participant.query.filter(Participant.user_id == user_id)
        if exclude_participant_id is not None:
            query = query.filter(Participant.id != exclude_participant_id)
        return query.count()

    # ================= ANSWERS =================

    @staticmethod
    def insert_answer(participant_id, question_id, answer, is_correct, time_taken, points):
        """
        Claim the (participant, question) slot with an answer row

        Returns:
            bool: False when an answer for this question already exists
        """
        row = Answer(
            participant_id=participant_id,
            question_id=question_id,
            answer=answer,
            is_correct=is_correct,
            time_taken=time_taken,
            points_earned=points,
        )
        db.session.add(row)
        try:
            DataAccess._commit()
        except IntegrityError:
            logger.warning("Duplicate answer for participant %s question %s ignored",
                           participant_id, question_id)
            return False
        DataAccess._publish('answers', EVENT_INSERT, row)
        return True

    @staticmethod
    def apply_answer_result(participant_id, points, is_correct, next_index):
        """
        Atomically add points, update the streak and move the cursor forward

        The cursor is raised to next_index but never lowered. Nothing is
        written once the participant's session is completed.

        Returns:
            ParticipantRecord after the update, None when the write was refused
        """
        open_sessions = db.select(GameSession.id).where(GameSession.status != SESSION_COMPLETED)
        updated = DataAccess._update(Participant.query.filter(
            Participant.id == participant_id,
            Participant.session_id.in_(open_sessions),
        ), {
            Participant.score: Participant.score + max(0, int(points)),
            Participant.streak: (Participant.streak + 1) if is_correct else 0,
            Participant.correct_answers: Participant.correct_answers + (1 if is_correct else 0),
            Participant.current_question_index: db.case(
                (Participant.current_question_index < next_index, next_index),
                else_=Participant.current_question_index,
            ),
        })
        DataAccess._commit()
        if not updated:
            return None
        row = db.session.get(Participant, participant_id)
        db.session.refresh(row)
        DataAccess._publish('participants', EVENT_UPDATE, row)
        return _participant_record(row)

    @staticmethod
    def count_answers(participant_id):
        return Answer.query.filter_by(participant_id=participant_id).count()

    # ================= BADGES =================

    @staticmethod
    def seed_badges(catalog):
        """Insert catalog entries that are missing; returns how many were added"""
        existing = {name for (name,) in db.session.query(Badge.name).all()}
        added = 0
        for entry in catalog:
            if entry['name'] in existing:
                continue
            db.session.add(Badge(**entry))
            added += 1
        if added:
            DataAccess._commit()
        return added

    @staticmethod
    def get_badge_by_name(name):
        row = Badge.query.filter_by(name=name).first()
        return _badge_record(row) if row else None

    @staticmethod
    def has_achievement(user_id, badge_id):
        return db.session.query(
            Achievement.query.filter_by(user_id=user_id, badge_id=badge_id).exists()
        ).scalar()

    @staticmethod
    def insert_achievement(user_id, badge_id, context):
        """False when the user already holds the badge"""
        row = Achievement(user_id=user_id, badge_id=badge_id, context=context)
        db.session.add(row)
        try:
            DataAccess._commit()
        except IntegrityError:
            return False
        DataAccess._publish('achievements', EVENT_INSERT, row)
        return True

    @staticmethod
    def list_achievements(user_id):
        rows = Achievement.query.filter_by(user_id=user_id).order_by(
            Achievement.earned_at.asc(), Achievement.id.asc()
        ).all()
        return [
            {
                'badge': _badge_record(r.badge).to_dict(),
                'context': r.context,
                'earned_at': r.earned_at,
            }
            for r in rows
        ]

    # ================= SECURITY VIOLATIONS =================

    @staticmethod
    def increment_violation(session_id, participant_id, violation_type, medium_at, high_at):
        """
        Add one occurrence to the (session, participant, type) counter

        Returns:
            int: the counter value after the increment
        """
        def bump():
            new_count = SecurityViolation.violation_count + 1
            return DataAccess._update(SecurityViolation.query.filter_by(
                session_id=session_id,
                participant_id=participant_id,
                violation_type=violation_type,
            ), {
                SecurityViolation.violation_count: new_count,
                SecurityViolation.severity: db.case(
                    (new_count >= high_at, 'high'),
                    (new_count >= medium_at, 'medium'),
                    else_='low',
                ),
                SecurityViolation.updated_at: now_utc(),
            })

        updated = bump()
        DataAccess._commit()

        if not updated:
            row = SecurityViolation(
                session_id=session_id,
                participant_id=participant_id,
                violation_type=violation_type,
                violation_count=1,
                severity=severity_for(1, medium_at, high_at),
            )
            db.session.add(row)
            try:
                DataAccess._commit()
            except IntegrityError:
                # Lost the insert race; the row exists now
                updated = bump()
                DataAccess._commit()
                if not updated:
                    raise PersistenceError(
                        f"Violation counter for participant {participant_id} vanished"
                    )

        row = SecurityViolation.query.filter_by(
            session_id=session_id,
            participant_id=participant_id,
            violation_type=violation_type,
        ).first()
        db.session.refresh(row)
        DataAccess._publish('security_violations', EVENT_UPDATE if updated else EVENT_INSERT, row)
        return row.violation_count

    @staticmethod
    def list_violations(session_id):
        """Counter rows for a session, with participant nickname and user name"""
        rows = SecurityViolation.query.filter_by(session_id=session_id).order_by(
            SecurityViolation.violation_count.desc(), SecurityViolation.id.asc()
        ).all()
        result = []
        for r in rows:
            participant = r.participant
            user_name = participant.user.name if participant and participant.user else None
            result.append({
                'participant_id': r.participant_id,
                'nickname': participant.nickname if participant else None,
                'user_id': participant.user_id if participant else None,
                'user_name': user_name,
                'violation_type': r.violation_type,
                'violation_count': r.violation_count,
                'severity': r.severity,
                'created_at': r.created_at,
                'updated_at': r.updated_at,
            })
        return result

    # ================= SCORE LEDGER =================

    @staticmethod
    def record_session_score(user_id, session_id, score):
        """Insert the ledger row unless it exists; returns True when inserted"""
        row = SessionScore(user_id=user_id, session_id=session_id, session_score=score)
        db.session.add(row)
        try:
            DataAccess._commit()
        except IntegrityError:
            return False
        return True

    @staticmethod
    def upsert_cumulative_score(user_id):
        """Recompute the user's rollup from every recorded session score"""
        totals = db.session.query(
            db.func.coalesce(db.func.sum(SessionScore.session_score), 0),
            db.func.count(SessionScore.id),
            db.func.coalesce(db.func.max(SessionScore.session_score), 0),
        ).filter(SessionScore.user_id == user_id).one()

        total, sessions, best = int(totals[0]), int(totals[1]), int(totals[2])
        average = round(total / sessions, 2) if sessions else 0.0

        row = db.session.get(CumulativeScore, user_id)
        if row is None:
            row = CumulativeScore(user_id=user_id)
            db.session.add(row)
        row.total_score = total
        row.sessions_participated = sessions
        row.best_session_score = best
        row.average_session_score = average
        try:
            DataAccess._commit()
        except IntegrityError:
            # Another finalizer created the row first; write our recomputation over it
            row = db.session.get(CumulativeScore, user_id)
            row.total_score = total
            row.sessions_participated = sessions
            row.best_session_score = best
            row.average_session_score = average
            DataAccess._commit()
        return {
            'user_id': user_id,
            'total_score': total,
            'sessions_participated': sessions,
            'best_session_score': best,
            'average_session_score': average,
        }

    @staticmethod
    def cumulative_rows(limit):
        rows = CumulativeScore.query.order_by(
            CumulativeScore.total_score.desc(),
            CumulativeScore.best_session_score.desc(),
            CumulativeScore.user_id.asc(),
        ).limit(limit).all()
        return [
            {
                'user_id': r.user_id,
                'user_name': r.user.name if r.user else None,
                'total_score': r.total_score,
                'sessions_participated': r.sessions_participated,
                'best_session_score': r.best_session_score,
                'average_session_score': r.average_session_score,
            }
            for r in rows
        ]

    @staticmethod
    def get_cumulative_score(user_id):
        row = db.session.get(CumulativeScore, user_id)
        if row is None:
            return None
        return {
            'user_id': row.user_id,
            'total_score': row.total_score,
            'sessions_participated': row.sessions_participated,
            'best_session_score': row.best_session_score,
            'average_session_score': row.average_session_score,
        }

    @staticmethod
    def session_history(user_id, limit):
        rows = db.session.query(SessionScore, GameSession, Quiz).join(
            GameSession, GameSession.id == SessionScore.session_id
        ).join(
            Quiz, Quiz.id == GameSession.quiz_id
        ).filter(
            SessionScore.user_id == user_id
        ).order_by(
            SessionScore.recorded_at.desc(), SessionScore.id.desc()
        ).limit(limit).all()
        return [
            {
                'session_id': game.id,
                'pin': game.pin,
                'quiz_title': quiz.title,
                'session_score': score.session_score,
                'recorded_at': score.recorded_at,
                'ended_at': game.ended_at,
            }
            for score, game, quiz in rows
        ]
