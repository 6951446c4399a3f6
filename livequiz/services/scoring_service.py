"""
Scoring Service
Time-weighted points for a single answer
"""
import math

from livequiz.models.answer import TIMEOUT_ANSWER

# Share of the base points added for an instant answer
MAX_SPEED_BONUS = 0.5


class ScoringService:
    """Service for scoring answers"""

    @staticmethod
    def is_correct(question, selected_option):
        """A timeout (or any out-of-range choice) is never correct"""
        if selected_option is None or selected_option == TIMEOUT_ANSWER:
            return False
        return int(selected_option) == question.correct_answer

    @staticmethod
    def calculate_points(is_correct, base_points, time_left, time_limit):
        """
        Calculate points for an answer

        A correct answer earns the base points plus a speed bonus of up to 50%,
        falling linearly to nothing at the time limit. Wrong and timed-out
        answers earn 0.

        Returns:
            int: points, never negative
        """
        if not is_correct:
            return 0

        bonus = 0.0
        if time_limit and time_limit > 0:
            bonus = max(0.0, (time_left / time_limit) * MAX_SPEED_BONUS)

        # Halves round up
        return max(0, int(math.floor(base_points * (1 + bonus) + 0.5)))

    @staticmethod
    def time_taken(time_limit, time_left):
        """Seconds spent on a question, clamped to [0, time_limit]"""
        return max(0, min(time_limit, time_limit - time_left))
