"""
Models Package
Exports all database models
"""
from livequiz.models.user import User
from livequiz.models.quiz import Quiz
from livequiz.models.question import Question
from livequiz.models.game_session import GameSession
from livequiz.models.participant import Participant
from livequiz.models.answer import Answer
from livequiz.models.badge import Badge, Achievement
from livequiz.models.violation import SecurityViolation
from livequiz.models.score import SessionScore, CumulativeScore

__all__ = [
    'User', 'Quiz', 'Question', 'GameSession', 'Participant', 'Answer',
    'Badge', 'Achievement', 'SecurityViolation', 'SessionScore', 'CumulativeScore'
]
