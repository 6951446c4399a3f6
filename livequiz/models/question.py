"""
Question Model
Multiple-choice question with a single correct option
"""
from livequiz.extensions import db


class Question(db.Model):
    """Question model"""
    __tablename__ = 'questions'

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quizzes.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False)

    prompt = db.Column(db.Text, nullable=False)
    options = db.Column(db.JSON, nullable=False)  # list of option strings
    correct_answer = db.Column(db.Integer, nullable=False)  # index into options
    explanation = db.Column(db.Text)

    # Scoring
    points = db.Column(db.Integer, default=100)
    time_limit = db.Column(db.Integer, default=30)  # seconds

    __table_args__ = (
        db.UniqueConstraint('quiz_id', 'position', name='unique_question_position'),
    )

    def __repr__(self):
        return f'<Question {self.id}: {self.prompt[:50]}...>'
