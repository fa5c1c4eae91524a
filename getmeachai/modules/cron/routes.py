import hmac
import logging
from functools import wraps
from flask import request, jsonify

from getmeachai.core import db_log, setting, LoggingService
from getmeachai.modules.campaigns.models import close_expired_campaigns
from getmeachai.modules.updates.service import publish_scheduled_updates
from . import cron_bp
from .jobs import send_weekly_summaries, weekly_summary_enabled

logger = logging.getLogger(__name__)


def _provided_secret():
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[7:].strip()
    return request.args.get('secret', '')


def cron_auth(f):
    """Require the shared cron secret; without one configured, only non-production runs"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not setting('CRON_ENABLED', True):
            return jsonify({'error': 'Cron jobs are disabled'}), 503

        secret = setting('CRON_SECRET')
        if not secret:
            if setting('ENV', 'development') == 'production':
                logger.error("CRON_SECRET is not configured")
                return jsonify({'error': 'Unauthorized'}), 401
            logger.warning("CRON_SECRET not set - running cron job unauthenticated")
        elif not hmac.compare_digest(_provided_secret().encode(), secret.encode()):
            LoggingService.log_security_event('Rejected cron request', {'path': request.path},
                                              request.remote_addr)
            return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function


@cron_bp.route('/close-expired-campaigns', methods=['GET', 'POST'])
@cron_auth
def close_expired():
    try:
        closed = close_expired_campaigns()
    except Exception as e:
        logger.error(f"close-expired-campaigns failed: {e}")
        db_log('error', 'cron', 'close-expired-campaigns failed', {'error': str(e)})
        return jsonify({'error': 'Failed to close expired campaigns'}), 500

    db_log('info', 'cron', f'Closed {closed} expired campaigns')
    return jsonify({'success': True, 'closed': closed})


@cron_bp.route('/publish-scheduled', methods=['GET', 'POST'])
@cron_auth
def publish_scheduled():
    try:
        result = publish_scheduled_updates()
    except Exception as e:
        logger.error(f"publish-scheduled failed: {e}")
        db_log('error', 'cron', 'publish-scheduled failed', {'error': str(e)})
        return jsonify({'error': 'Failed to publish scheduled updates'}), 500
    return jsonify({'success': True, **result})


@cron_bp.route('/weekly-summary', methods=['GET', 'POST'])
@cron_auth
def weekly_summary():
    if not weekly_summary_enabled():
        return jsonify({'success': True, 'skipped': True, 'sent': 0, 'failed': 0})

    try:
        result = send_weekly_summaries()
    except Exception as e:
        logger.error(f"weekly-summary failed: {e}")
        db_log('error', 'cron', 'weekly-summary failed', {'error': str(e)})
        return jsonify({'error': 'Failed to send weekly summaries'}), 500
    return jsonify({'success': True, **result})
