"""
Answer Model
Stores one submission per participant and question
"""
from livequiz.extensions import db
from datetime import datetime, timezone


TIMEOUT_ANSWER = -1


def now_utc():
    return datetime.now(timezone.utc)


class Answer(db.Model):
    """Answer model"""
    __tablename__ = 'answers'

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participants.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id'), nullable=False, index=True)
    answer = db.Column(db.Integer, nullable=False)  # option index, -1 on timeout
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    time_taken = db.Column(db.Integer, nullable=False, default=0)
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=now_utc)

    __table_args__ = (
        db.UniqueConstraint(
            'participant_id', 'question_id',
            name='unique_answer_per_question'
        ),
    )

    def __repr__(self):
        return f'<Answer Q{self.question_id} by P{self.participant_id}>'
