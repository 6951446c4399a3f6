"""
Violation Service
Aggregates violation reports into per-type counters and rates players by risk
"""
import logging

from livequiz.errors import PersistenceError
from livequiz.models.violation import VIOLATION_TYPES
from livequiz.services.data_access import DataAccess
from livequiz.services.settings import EngineSettings
from livequiz.utils.helpers import isoformat_local

logger = logging.getLogger(__name__)

RISK_MEDIUM = 'medium'
RISK_HIGH = 'high'
RISK_SEVERE = 'severe'


class ViolationService:
    """Write and report paths over the security_violations counters"""

    def __init__(self, settings=None):
        self.settings = settings or EngineSettings()

    def record(self, session_id, participant_id, violation_type):
        """
        Count one occurrence for (session, participant, type)

        Failures are logged and swallowed so gameplay never blocks on them.

        Returns:
            int: counter value after the increment, None if the write failed
        """
        if violation_type not in VIOLATION_TYPES:
            logger.warning("Unknown violation type %r from participant %s", violation_type, participant_id)
            return None
        try:
            count = DataAccess.increment_violation(
                session_id,
                participant_id,
                violation_type,
                self.settings.severity_medium_at,
                self.settings.severity_high_at,
            )
        except PersistenceError:
            logger.exception("Failed to store %s violation for participant %s", violation_type, participant_id)
            return None
        logger.info("Participant %s %s violations: %s", participant_id, violation_type, count)
        return count

    def reporter_for(self, session_id, participant_id):
        """Reporting function handed to a player's AntiCheatMonitor"""
        def report(violation_type, description=None):
            return self.record(session_id, participant_id, violation_type)
        return report

    def classify_risk(self, total):
        """Risk level for a participant's total count, None when not flagged"""
        s = self.settings
        if total >= s.risk_severe_at:
            return RISK_SEVERE
        if total >= s.risk_high_at:
            return RISK_HIGH
        if total >= s.risk_medium_at:
            return RISK_MEDIUM
        return None

    def flagged_players(self, session_id):
        """
        Risk report for a session

        Returns:
            list: one dict per flagged participant with participant, total_violations,
            violations and risk_level, highest total first
        """
        grouped = {}
        for row in DataAccess.list_violations(session_id):
            entry = grouped.get(row['participant_id'])
            if entry is None:
                entry = grouped[row['participant_id']] = {
                    'participant': {
                        'id': row['participant_id'],
                        'nickname': row['nickname'],
                        'user_id': row['user_id'],
                        'user_name': row['user_name'],
                    },
                    'total_violations': 0,
                    'violations': [],
                }
            entry['total_violations'] += row['violation_count']
            entry['violations'].append({
                'violation_type': row['violation_type'],
                'violation_count': row['violation_count'],
                'severity': row['severity'],
                'created_at': isoformat_local(row['created_at']),
            })

        report = []
        for entry in grouped.values():
            risk = self.classify_risk(entry['total_violations'])
            if risk is None:
                continue
            entry['risk_level'] = risk
            report.append(entry)

        report.sort(key=lambda e: e['total_violations'], reverse=True)
        return report

    def high_severity_violations(self, session_id):
        """
        Rows whose own count reached the high threshold, one per participant

        The highest-count row is kept for each participant; result is sorted
        by that count, descending.
        """
        kept = {}
        for row in DataAccess.list_violations(session_id):
            if row['severity'] != 'high':
                continue
            current = kept.get(row['participant_id'])
            if current is None or row['violation_count'] > current['violation_count']:
                kept[row['participant_id']] = {
                    'participant_id': row['participant_id'],
                    'nickname': row['nickname'],
                    'user_name': row['user_name'],
                    'violation_type': row['violation_type'],
                    'violation_count': row['violation_count'],
                    'updated_at': isoformat_local(row['updated_at']),
                }
        return sorted(kept.values(), key=lambda r: r['violation_count'], reverse=True)
