import math
import logging
from datetime import timedelta
from flask import request, jsonify, session

from getmeachai.core import login_required, db_log, utc_now
from getmeachai.modules.auth.database import get_user_by_id
from getmeachai.modules.campaigns.models import get_campaign
from getmeachai.modules.payments.models import (
    top_supporters, recent_supporters, campaign_support_stats, platform_leaderboard,
    user_contributions,
)
from . import supporters_bp

logger = logging.getLogger(__name__)

RECENT_PAGE_SIZE = 20
PERIODS = {
    'week': timedelta(days=7),
    'month': timedelta(days=30),
    'all': None,
}


@supporters_bp.route('/campaigns/<int:campaign_id>/supporters', methods=['GET'])
def campaign_supporters(campaign_id):
    try:
        page = max(1, int(request.args.get('page', 1)))
    except (TypeError, ValueError):
        page = 1

    if not get_campaign(campaign_id, auto_complete=False):
        return jsonify({'error': 'Campaign not found'}), 404

    try:
        top = top_supporters(campaign_id)
        recent, total = recent_supporters(campaign_id, page, RECENT_PAGE_SIZE)
        stats = campaign_support_stats(campaign_id)
    except Exception as e:
        logger.error(f"Error fetching supporters for campaign {campaign_id}: {e}")
        db_log('error', 'supporters', 'Error fetching supporters', {'campaign_id': campaign_id, 'error': str(e)})
        return jsonify({'error': 'Failed to fetch supporters'}), 500

    return jsonify({
        'top': top,
        'recent': recent,
        'stats': stats,
        'page': page,
        'totalPages': math.ceil(total / RECENT_PAGE_SIZE),
        'hasMore': (page - 1) * RECENT_PAGE_SIZE + len(recent) < total,
    })


@supporters_bp.route('/supporters/leaderboard', methods=['GET'])
def leaderboard():
    period = request.args.get('period', 'all')
    if period not in PERIODS:
        return jsonify({'error': 'period must be one of: week, month, all'}), 400
    try:
        limit = min(50, max(1, int(request.args.get('limit', 10))))
    except (TypeError, ValueError):
        limit = 10

    window = PERIODS[period]
    since = utc_now() - window if window else None
    return jsonify({'period': period, 'leaderboard': platform_leaderboard(since, limit)})


@supporters_bp.route('/supporters/mine', methods=['GET'])
@login_required
def my_contributions():
    user = get_user_by_id(session['user_id'])
    contributions, total = user_contributions(session['user_id'], user['email'] if user else None)
    return jsonify({
        'contributions': contributions,
        'totalContributed': total,
        'campaignsSupported': len({c['campaign_id'] for c in contributions if c['campaign_id']}),
    })
