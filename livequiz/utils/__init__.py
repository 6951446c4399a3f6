"""
Utils Package
"""
from livequiz.utils.helpers import (
    now_utc,
    to_local_time,
    isoformat_local,
    generate_pin,
    normalize_pin,
    get_current_user_id,
    require_teacher
)
from livequiz.utils.logging_config import configure_logging

__all__ = [
    'now_utc',
    'to_local_time',
    'isoformat_local',
    'generate_pin',
    'normalize_pin',
    'get_current_user_id',
    'require_teacher',
    'configure_logging'
]
