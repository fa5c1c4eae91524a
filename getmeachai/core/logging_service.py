"""
Centralized logging service for Get Me A Chai.
Provides structured logging with database storage and easy integration.
"""

import json
import logging
import traceback
from datetime import timedelta
from flask import request, session, has_request_context

from .database import Database, now_iso, to_iso, utc_now

logger = logging.getLogger('getmeachai')

_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def configure_logging(level='INFO'):
    """Set the package log level from LOG_LEVEL (WARN is accepted as WARNING)"""
    level = (level or 'INFO').upper()
    if level == 'WARN':
        level = 'WARNING'
    if level not in _LEVELS:
        level = 'INFO'
    logging.basicConfig(level=getattr(logging, level))
    logger.setLevel(getattr(logging, level))
    return level


class LoggingService:
    """Centralized logging service for application-wide logging"""

    _initialized_paths = set()

    @staticmethod
    def _db_path():
        return Database.get_db_path('ANALYTICS_DB')

    @staticmethod
    def _ensure_logs_table(db_path):
        """Ensure the app_logs table exists"""
        if db_path in LoggingService._initialized_paths:
            return
        Database.init_schema(db_path, [
            """
            CREATE TABLE IF NOT EXISTS app_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                level TEXT NOT NULL,
                source TEXT NOT NULL,
                message TEXT NOT NULL,
                details TEXT,
                ip_address TEXT,
                user_agent TEXT,
                request_path TEXT,
                user_id TEXT
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON app_logs(timestamp DESC)",
            "CREATE INDEX IF NOT EXISTS idx_logs_level ON app_logs(level)",
            "CREATE INDEX IF NOT EXISTS idx_logs_source ON app_logs(source)",
        ])
        LoggingService._initialized_paths.add(db_path)

    @staticmethod
    def _get_request_context():
        """Extract request context information"""
        if not has_request_context():
            return None, None, None, None

        ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
        if ip_address and ',' in ip_address:
            ip_address = ip_address.split(',')[0].strip()

        user_agent = request.headers.get('User-Agent', '')
        user_id = session.get('user_id')
        return ip_address, user_agent, request.path, user_id

    @staticmethod
    def log(level, source, message, details=None, user_id=None):
        """
        Log a message to the database

        Args:
            level (str): Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            source (str): Source component (campaigns, payments, ai, etc.)
            message (str): Main log message
            details (str/dict): Additional details (JSON-encoded if dict)
            user_id (str): Optional user identifier
        """
        level = level.upper()
        if level == 'WARN':
            level = 'WARNING'
        logging.getLogger(f'getmeachai.{source}').log(
            getattr(logging, level, logging.INFO), message
        )

        try:
            db_path = LoggingService._db_path()
            LoggingService._ensure_logs_table(db_path)

            ip_address, user_agent, request_path, session_user = LoggingService._get_request_context()
            if user_id is None and session_user is not None:
                user_id = session_user

            if isinstance(details, (dict, list)):
                details = json.dumps(details, indent=2, default=str)

            with Database.connect(db_path) as conn:
                conn.execute("""
                    INSERT INTO app_logs
                    (timestamp, level, source, message, details, ip_address, user_agent, request_path, user_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    now_iso(), level, source, message, details,
                    ip_address, user_agent, request_path,
                    str(user_id) if user_id is not None else None
                ))
        except Exception as e:
            # Console is the fallback when the log database is unavailable
            logger.warning(f"Logging service error: {e}")

    @staticmethod
    def debug(source, message, details=None, user_id=None):
        LoggingService.log('DEBUG', source, message, details, user_id)

    @staticmethod
    def info(source, message, details=None, user_id=None):
        LoggingService.log('INFO', source, message, details, user_id)

    @staticmethod
    def warning(source, message, details=None, user_id=None):
        LoggingService.log('WARNING', source, message, details, user_id)

    @staticmethod
    def error(source, message, details=None, user_id=None):
        LoggingService.log('ERROR', source, message, details, user_id)

    @staticmethod
    def critical(source, message, details=None, user_id=None):
        LoggingService.log('CRITICAL', source, message, details, user_id)

    @staticmethod
    def log_user_action(source, action, user_id=None, details=None):
        """Log user actions (login, signup, contribution, etc.)"""
        LoggingService.info(source, f"User action: {action}", details, user_id)

    @staticmethod
    def log_api_call(source, endpoint, method='GET', status_code=200, details=None):
        """Log API calls; level follows the response status"""
        message = f"API {method} {endpoint} - Status: {status_code}"
        level = 'INFO' if status_code < 400 else 'WARNING' if status_code < 500 else 'ERROR'
        LoggingService.log(level, source, message, details)

    @staticmethod
    def log_query(source, operation, table, duration_ms, details=None):
        """Log a database operation with its duration"""
        payload = {'operation': operation, 'table': table, 'duration_ms': round(duration_ms, 2)}
        if details:
            payload.update(details)
        LoggingService.debug(source, f"DB {operation} {table}", payload)

    @staticmethod
    def log_metric(source, name, value, unit=None, tags=None):
        payload = {'metric': name, 'value': value, 'unit': unit, 'tags': tags or {}}
        LoggingService.info(source, f"Metric {name}={value}{unit or ''}", payload)

    @staticmethod
    def log_error_with_traceback(source, error, details=None):
        """Log error with full traceback"""
        error_details = {
            'error_type': type(error).__name__,
            'error_message': str(error),
            'traceback': traceback.format_exc()
        }
        if details:
            error_details['additional_details'] = details

        LoggingService.error(source, f"Exception occurred: {type(error).__name__}", error_details)

    @staticmethod
    def log_security_event(message, details=None, ip_address=None):
        """Log security-related events (bad signatures, forbidden actions)"""
        if ip_address:
            details = dict(details or {})
            details['provided_ip'] = ip_address
        LoggingService.warning('security', message, details)

    @staticmethod
    def get_recent(level=None, source=None, limit=100):
        try:
            db_path = LoggingService._db_path()
            LoggingService._ensure_logs_table(db_path)
            query = "SELECT * FROM app_logs WHERE 1=1"
            params = []
            if level:
                query += " AND level = ?"
                params.append(level.upper())
            if source:
                query += " AND source = ?"
                params.append(source)
            query += " ORDER BY id DESC LIMIT ?"
            params.append(limit)
            with Database.connect(db_path) as conn:
                return [dict(row) for row in conn.execute(query, params).fetchall()]
        except Exception as e:
            logger.error(f"Failed to read logs: {e}")
            return []

    @staticmethod
    def cleanup_old_logs(days_to_keep=30):
        """Clean up old log entries"""
        try:
            db_path = LoggingService._db_path()
            LoggingService._ensure_logs_table(db_path)
            cutoff_iso = to_iso(utc_now() - timedelta(days=days_to_keep))

            with Database.connect(db_path) as conn:
                cursor = conn.execute("DELETE FROM app_logs WHERE timestamp < ?", (cutoff_iso,))
                deleted_count = cursor.rowcount

            LoggingService.info('system', f"Cleaned up {deleted_count} old log entries")
            return deleted_count

        except Exception as e:
            logger.error(f"Failed to clean up logs: {e}")
            return 0


def db_log(level, source, message, details=None):
    """Persistent log entry; modules wrap this in their own _db_log helper"""
    LoggingService.log(level, source, message, details)
