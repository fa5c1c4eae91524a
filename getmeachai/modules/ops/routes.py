"""
Ops Routes
==========

Public health endpoint.
"""

import os
import time
import shutil

from flask import jsonify

from getmeachai.core.database import Database, now_iso
from . import ops_health_bp

_STARTED_AT = time.time()


def _check_database():
    """Round-trip a trivial query against APP_DB."""
    started = time.time()
    try:
        with Database.connect(Database.get_db_path()) as conn:
            conn.execute('SELECT 1').fetchone()
        return {'status': 'ok', 'latency_ms': round((time.time() - started) * 1000, 2)}
    except Exception as e:
        return {'status': 'error', 'error': str(e)}


def _get_disk_usage():
    """Disk usage for the partition holding the database."""
    path = os.path.dirname(os.path.abspath(Database.get_db_path())) or '/'
    try:
        usage = shutil.disk_usage(path if os.path.exists(path) else '/')
        percent = round((usage.used / usage.total) * 100, 1)
        return {
            'status': 'critical' if percent >= 95 else 'warning' if percent >= 85 else 'ok',
            'total_gb': round(usage.total / (1024 ** 3), 1),
            'free_gb': round(usage.free / (1024 ** 3), 1),
            'percent': percent,
        }
    except OSError as e:
        return {'status': 'unknown', 'error': str(e)}


def _get_uptime():
    uptime_seconds = time.time() - _STARTED_AT
    days = int(uptime_seconds // 86400)
    hours = int((uptime_seconds % 86400) // 3600)
    minutes = int((uptime_seconds % 3600) // 60)
    return {
        'seconds': round(uptime_seconds),
        'formatted': f'{days}d {hours}h {minutes}m',
    }


def build_health_response():
    checks = {
        'database': _check_database(),
        'disk': _get_disk_usage(),
        'uptime': _get_uptime(),
    }
    if checks['database']['status'] != 'ok' or checks['disk']['status'] == 'critical':
        status = 'unhealthy'
    elif checks['disk']['status'] == 'warning':
        status = 'degraded'
    else:
        status = 'healthy'
    return {'status': status, 'timestamp': now_iso(), 'checks': checks}


@ops_health_bp.route('/')
@ops_health_bp.route('')
def health_check():
    """Public health endpoint for uptime monitors."""
    data = build_health_response()
    return jsonify(data), 503 if data['status'] == 'unhealthy' else 200
