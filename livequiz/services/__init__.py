"""
Services Package
"""
from livequiz.services.data_access import DataAccess
from livequiz.services.notifications import feed
from livequiz.services.settings import EngineSettings
from livequiz.services.scoring_service import ScoringService
from livequiz.services.badge_service import BadgeEngine, BadgeContext, seed_badges
from livequiz.services.anti_cheat import AntiCheatMonitor
from livequiz.services.violation_service import ViolationService
from livequiz.services.leaderboard_service import LeaderboardService
from livequiz.services.completion import SessionCompletionCoordinator
from livequiz.services.progression import PlayerEngine, PlayerState
from livequiz.services.session_service import SessionService

__all__ = [
    'DataAccess',
    'feed',
    'EngineSettings',
    'ScoringService',
    'BadgeEngine',
    'BadgeContext',
    'seed_badges',
    'AntiCheatMonitor',
    'ViolationService',
    'LeaderboardService',
    'SessionCompletionCoordinator',
    'PlayerEngine',
    'PlayerState',
    'SessionService'
]
