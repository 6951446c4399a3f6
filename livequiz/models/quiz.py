"""
Quiz Model
Questions are kept in position order
"""
from livequiz.extensions import db
from datetime import datetime, timezone


def now_utc():
    return datetime.now(timezone.utc)


class Quiz(db.Model):
    """Quiz model"""
    __tablename__ = 'quizzes'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, default='')
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)

    # Default per-question time limit (seconds) offered to the editor
    time_limit = db.Column(db.Integer, default=30)
    created_at = db.Column(db.DateTime, default=now_utc)

    # Relationships
    questions = db.relationship(
        'Question', backref='quiz', lazy=True,
        order_by='Question.position', cascade='all, delete-orphan'
    )

    def __repr__(self):
        return f'<Quiz {self.title}>'
