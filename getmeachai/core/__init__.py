"""
Get Me A Chai Core
==================

Shared configuration, persistence, logging, validation and rate limiting
used by every feature module.
"""

from .config import (
    Config, ConfigError, get_env, get_bool_env, get_int_env, get_float_env,
    setting, build_config, validate_config, get_config, is_feature_enabled,
)
from .database import Database, row_to_dict, now_iso, utc_now, to_iso, from_iso
from .logging_service import LoggingService, db_log, configure_logging, logger
from .validation import ValidationError
from .rate_limit import RateLimiter, rate_limit, limiters
from .security import login_required, admin_required, current_user_id

__all__ = [
    'Config', 'ConfigError', 'get_env', 'get_bool_env', 'get_int_env', 'get_float_env',
    'setting', 'build_config', 'validate_config', 'get_config', 'is_feature_enabled',
    'Database', 'row_to_dict', 'now_iso', 'utc_now', 'to_iso', 'from_iso',
    'LoggingService', 'db_log', 'configure_logging', 'logger',
    'ValidationError', 'RateLimiter', 'rate_limit', 'limiters',
    'login_required', 'admin_required', 'current_user_id',
]
