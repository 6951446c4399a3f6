"""
Leaderboard Service
Handles leaderboard generation and queries
"""
from livequiz.services.data_access import DataAccess
from livequiz.services.records import LeaderboardEntry
from livequiz.utils.helpers import isoformat_local


class LeaderboardService:
    """Leaderboard generation and player history"""

    @staticmethod
    def session_leaderboard(session_id, limit=10):
        """
        Top participants of a session

        Ordered by score descending; equal scores keep join order
        (earlier joiner first, then lower participant id).

        Returns:
            list[LeaderboardEntry]
        """
        rows = DataAccess.top_participants(session_id, limit)
        return [
            LeaderboardEntry(
                rank=position,
                participant_id=p.id,
                nickname=p.nickname,
                score=p.score,
                correct_answers=p.correct_answers,
                streak=p.streak,
                user_id=p.user_id,
            )
            for position, p in enumerate(rows, start=1)
        ]

    @staticmethod
    def build_leaderboard_payload(session_id, limit=10):
        """Leaderboard as JSON-ready dicts"""
        return [entry.to_dict() for entry in LeaderboardService.session_leaderboard(session_id, limit)]

    @staticmethod
    def cumulative_leaderboard(limit=20):
        """All-time ranking by total score across completed sessions"""
        rows = DataAccess.cumulative_rows(limit)
        for rank, row in enumerate(rows, start=1):
            row['rank'] = rank
        return rows

    @staticmethod
    def user_session_history(user_id, limit=20):
        """Recorded session scores of a user, newest first"""
        history = DataAccess.session_history(user_id, limit)
        for item in history:
            item['recorded_at'] = isoformat_local(item['recorded_at'])
            item['ended_at'] = isoformat_local(item['ended_at'])
        return history

    @staticmethod
    def user_stats(user_id):
        """Games played, score rollup and badge count for a user"""
        rollup = DataAccess.get_cumulative_score(user_id) or {}
        badges = DataAccess.list_achievements(user_id)
        return {
            'user_id': user_id,
            'games_played': DataAccess.count_user_games(user_id),
            'sessions_recorded': rollup.get('sessions_participated', 0),
            'total_score': rollup.get('total_score', 0),
            'best_session_score': rollup.get('best_session_score', 0),
            'average_session_score': rollup.get('average_session_score', 0.0),
            'badges_earned': len(badges),
        }
