"""
Score Ledger Models
Per-session recorded scores and the per-user rollup derived from them
"""
from livequiz.extensions import db
from datetime import datetime, timezone


def now_utc():
    return datetime.now(timezone.utc)


class SessionScore(db.Model):
    """Final score of one user in one session"""
    __tablename__ = 'session_scores'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_sessions.id'), nullable=False, index=True)
    session_score = db.Column(db.Integer, nullable=False, default=0)
    recorded_at = db.Column(db.DateTime, default=now_utc)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'session_id', name='unique_session_score'),
    )

    def __repr__(self):
        return f'<SessionScore U{self.user_id} S{self.session_id}: {self.session_score}>'


class CumulativeScore(db.Model):
    """Rollup of every recorded session score for a user"""
    __tablename__ = 'cumulative_scores'

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), primary_key=True)
    total_score = db.Column(db.Integer, nullable=False, default=0)
    sessions_participated = db.Column(db.Integer, nullable=False, default=0)
    best_session_score = db.Column(db.Integer, nullable=False, default=0)
    average_session_score = db.Column(db.Float, nullable=False, default=0.0)
    updated_at = db.Column(db.DateTime, default=now_utc, onupdate=now_utc)

    user = db.relationship('User', lazy='joined')

    def __repr__(self):
        return f'<CumulativeScore U{self.user_id}: {self.total_score}>'
