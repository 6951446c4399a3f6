"""
Participant Model
One player's membership and progress in a session
"""
from livequiz.extensions import db
from datetime import datetime, timezone


def now_utc():
    return datetime.now(timezone.utc)


class Participant(db.Model):
    """Participant model"""
    __tablename__ = 'participants'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_sessions.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)  # NULL = anonymous
    nickname = db.Column(db.String(100), nullable=False)

    score = db.Column(db.Integer, nullable=False, default=0)
    correct_answers = db.Column(db.Integer, nullable=False, default=0)
    streak = db.Column(db.Integer, nullable=False, default=0)

    # Index of the next question this player will see; only ever increases
    current_question_index = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, default=True)
    joined_at = db.Column(db.DateTime, default=now_utc)

    user = db.relationship('User', lazy=True)

    def __repr__(self):
        return f'<Participant {self.nickname} @ {self.current_question_index}>'
