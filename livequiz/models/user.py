"""
User Model
Identity issued by the external auth provider
"""
from livequiz.extensions import db
from datetime import datetime, timezone


def now_utc():
    return datetime.now(timezone.utc)


class User(db.Model):
    """User model"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True)
    role = db.Column(db.String(20), default='student')  # teacher | student
    created_at = db.Column(db.DateTime, default=now_utc)

    def __repr__(self):
        return f'<User {self.name}>'
