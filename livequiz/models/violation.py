"""
SecurityViolation Model
Running counter per (session, participant, violation type)
"""
from livequiz.extensions import db
from datetime import datetime, timezone


VIOLATION_TYPES = (
    'tab_switch',
    'right_click',
    'keyboard_shortcut',
    'dev_tools',
    'copy_paste',
    'focus_loss',
)


def now_utc():
    return datetime.now(timezone.utc)


class SecurityViolation(db.Model):
    """Security violation counter"""
    __tablename__ = 'security_violations'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_sessions.id'), nullable=False, index=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participants.id'), nullable=False, index=True)
    violation_type = db.Column(db.String(30), nullable=False)
    violation_count = db.Column(db.Integer, nullable=False, default=1)
    severity = db.Column(db.String(10), nullable=False, default='low')  # low | medium | high
    created_at = db.Column(db.DateTime, default=now_utc)
    updated_at = db.Column(db.DateTime, default=now_utc, onupdate=now_utc)

    participant = db.relationship('Participant', lazy='joined')

    __table_args__ = (
        db.UniqueConstraint(
            'session_id', 'participant_id', 'violation_type',
            name='unique_violation_counter'
        ),
    )

    def __repr__(self):
        return f'<SecurityViolation P{self.participant_id} {self.violation_type} x{self.violation_count}>'
