"""
Badge Service
Rule evaluation and idempotent awarding of catalog badges
"""
from __future__ import annotations

from dataclasses import dataclass
import logging

from livequiz.errors import PersistenceError
from livequiz.services.data_access import DataAccess
from livequiz.services.settings import EngineSettings

logger = logging.getLogger(__name__)

FIRST_STEPS = 'First Steps'
QUICK_DRAW = 'Quick Draw'
PERFECT_SCORE = 'Perfect Score'
STREAK_MASTER = 'Streak Master'
PERFECT_STREAK = 'Perfect Streak'
KNOWLEDGE_SEEKER = 'Knowledge Seeker'

BADGE_CATALOG = [
    {
        'name': FIRST_STEPS,
        'description': 'Played your very first game',
        'icon': '🎯',
        'rarity': 'common',
        'requirement': 'Answer the first question of your first game',
        'points_value': 10,
    },
    {
        'name': QUICK_DRAW,
        'description': 'Answered in under 5 seconds',
        'icon': '⚡',
        'rarity': 'rare',
        'requirement': 'Submit an answer in less than 5 seconds',
        'points_value': 25,
    },
    {
        'name': PERFECT_SCORE,
        'description': 'Answered every question of a game correctly',
        'icon': '💯',
        'rarity': 'epic',
        'requirement': 'Finish a game with all answers correct',
        'points_value': 100,
    },
    {
        'name': STREAK_MASTER,
        'description': '10 correct answers in a row',
        'icon': '🔥',
        'rarity': 'rare',
        'requirement': 'Reach a streak of 10',
        'points_value': 50,
    },
    {
        'name': PERFECT_STREAK,
        'description': '25 correct answers in a row',
        'icon': '🌟',
        'rarity': 'legendary',
        'requirement': 'Reach a streak of 25',
        'points_value': 150,
    },
    {
        'name': KNOWLEDGE_SEEKER,
        'description': 'Played 50 games',
        'icon': '📚',
        'rarity': 'epic',
        'requirement': 'Take part in 50 games',
        'points_value': 100,
    },
]


@dataclass(frozen=True)
class BadgeContext:
    """What the rules look at after a scoring event or a finished game"""

    is_first_game: bool = False
    game_completed: bool = False
    perfect_score: bool = False
    answer_time: int | None = None
    streak: int = 0
    total_games: int = 0


def seed_badges():
    """Make sure every catalog badge exists"""
    added = DataAccess.seed_badges(BADGE_CATALOG)
    if added:
        logger.info("Seeded %d badges", added)
    return added


class BadgeEngine:
    """Maps a player context to newly earned badges"""

    def __init__(self, settings: EngineSettings | None = None):
        self.settings = settings or EngineSettings()

    def qualifying_badges(self, context: BadgeContext) -> list[tuple[str, str]]:
        """(badge name, achievement context) for every rule the context satisfies, in rule order"""
        s = self.settings
        earned = []

        if context.is_first_game:
            earned.append((FIRST_STEPS, 'Completed first question of first game'))

        if context.answer_time is not None and context.answer_time < s.quick_draw_seconds:
            earned.append((QUICK_DRAW, f'Answered in {context.answer_time} seconds'))

        if context.game_completed and context.perfect_score:
            earned.append((PERFECT_SCORE, 'All answers correct'))

        # Both streak badges can come from the same answer
        if context.streak >= s.streak_master_streak:
            earned.append((STREAK_MASTER, f'Streak of {context.streak}'))
        if context.streak >= s.perfect_streak_streak:
            earned.append((PERFECT_STREAK, f'Streak of {context.streak}'))

        if context.total_games >= s.knowledge_seeker_games:
            earned.append((KNOWLEDGE_SEEKER, f'{context.total_games} games played'))

        return earned

    def evaluate(self, user_id, context: BadgeContext):
        """
        Award every qualifying badge the user does not hold yet

        Returns:
            list[BadgeRecord]: badges awarded by this call only
        """
        if user_id is None:
            return []

        awarded = []
        for name, reason in self.qualifying_badges(context):
            try:
                badge = DataAccess.get_badge_by_name(name)
                if badge is None:
                    logger.warning("Badge %r missing from catalog", name)
                    continue
                if DataAccess.has_achievement(user_id, badge.id):
                    continue
                # The unique (user, badge) constraint settles concurrent evaluations
                if DataAccess.insert_achievement(user_id, badge.id, reason):
                    logger.info("User %s earned badge %s", user_id, name)
                    awarded.append(badge)
            except PersistenceError:
                logger.exception("Could not award badge %s to user %s", name, user_id)
        return awarded

    @staticmethod
    def user_badges(user_id):
        """Achievements held by a user, oldest first"""
        return DataAccess.list_achievements(user_id)
