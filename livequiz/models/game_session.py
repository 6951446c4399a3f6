"""
GameSession Model
One live run of a quiz, joined by PIN
"""
from livequiz.extensions import db
from datetime import datetime, timezone


SESSION_WAITING = 'waiting'
SESSION_ACTIVE = 'active'
SESSION_COMPLETED = 'completed'

DEFAULT_SETTINGS = {
    'show_leaderboard': True,
    'allow_powerups': False,
    'shuffle_questions': False,
    'show_correct_answers': True,
    'time_pressure': True,
    'bonus_points': True,
}


def now_utc():
    return datetime.now(timezone.utc)


class GameSession(db.Model):
    """Game session model"""
    __tablename__ = 'game_sessions'

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quizzes.id'), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    pin = db.Column(db.String(10), unique=True, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=SESSION_WAITING)
    settings = db.Column(db.JSON, default=dict)

    # Frozen copy of the questions, written once when the session starts
    quiz_snapshot = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=now_utc)
    started_at = db.Column(db.DateTime)
    ended_at = db.Column(db.DateTime)

    quiz = db.relationship('Quiz', lazy=True)

    def __repr__(self):
        return f'<GameSession {self.pin} ({self.status})>'
