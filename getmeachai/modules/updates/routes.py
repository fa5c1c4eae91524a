import math
import logging
from flask import request, jsonify, session

from getmeachai.core import rate_limit, login_required, db_log, from_iso, utc_now
from getmeachai.core.validation import (
    ValidationError, validate_string, validate_enum, validate_array, validate_url, validate_object,
)
from getmeachai.modules.campaigns.models import get_campaign
from getmeachai.modules.comments.models import toggle_like
from getmeachai.modules.payments.models import has_supported
from . import updates_bp
from .models import VISIBILITIES, create_update, list_updates, get_update
from .service import announce_update

logger = logging.getLogger(__name__)


def _db_log(level, message, details=None):
    db_log(level, 'updates', message, details)


def _scheduled_time(value):
    if value in (None, ''):
        return None
    try:
        scheduled = from_iso(value) if isinstance(value, str) else None
    except ValueError:
        scheduled = None
    if scheduled is None:
        raise ValidationError("scheduledFor must be an ISO date", 'scheduledFor', value)
    return scheduled


@updates_bp.route('/campaigns/<int:campaign_id>/updates', methods=['GET'])
def get_updates(campaign_id):
    try:
        page = max(1, int(request.args.get('page', 1)))
        limit = min(50, max(1, int(request.args.get('limit', 10))))
    except (TypeError, ValueError):
        return jsonify({'error': 'page and limit must be integers'}), 400

    campaign = get_campaign(campaign_id, auto_complete=False)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404

    user_id = session.get('user_id')
    can_see_private = user_id is not None and (
        user_id == campaign['creator_id'] or has_supported(user_id, campaign_id)
    )

    try:
        updates, total = list_updates(campaign_id, can_see_private, page, limit)
    except Exception as e:
        logger.error(f"Error fetching updates for campaign {campaign_id}: {e}")
        _db_log('error', 'Error fetching updates', {'campaign_id': campaign_id, 'error': str(e)})
        return jsonify({'error': 'Failed to fetch updates'}), 500

    return jsonify({
        'success': True,
        'updates': updates,
        'total': total,
        'page': page,
        'totalPages': math.ceil(total / limit),
        'hasMore': (page - 1) * limit + len(updates) < total,
    })


@updates_bp.route('/campaigns/<int:campaign_id>/updates', methods=['POST'])
@login_required
@rate_limit('api')
def post_update(campaign_id):
    campaign = get_campaign(campaign_id, auto_complete=False)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404
    if campaign['creator_id'] != session['user_id']:
        return jsonify({'error': 'Only the campaign creator can post updates'}), 403

    data = request.get_json(silent=True) or {}
    try:
        cleaned = validate_object(data, {
            'title': (lambda v: validate_string(v, 'Title', min_length=3, max_length=200), {'required': True}),
            'content': (lambda v: validate_string(v, 'Content', min_length=1, max_length=10000),
                        {'required': True}),
            'visibility': lambda v: validate_enum(v, VISIBILITIES, 'Visibility'),
            'images': lambda v: validate_array(v, 'Images', max_length=10,
                                               item_validator=lambda i: validate_url(i, 'Image')),
            'scheduledFor': _scheduled_time,
        })
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    scheduled_for = cleaned.get('scheduledFor')
    if scheduled_for is not None and scheduled_for <= utc_now():
        scheduled_for = None

    try:
        update = create_update(
            campaign_id, session['user_id'], cleaned['title'], cleaned['content'],
            images=cleaned.get('images'), visibility=cleaned.get('visibility') or 'public',
            scheduled_for=scheduled_for,
        )
    except Exception as e:
        logger.error(f"Error creating update: {e}")
        _db_log('error', 'Error creating update', {'campaign_id': campaign_id, 'error': str(e)})
        return jsonify({'error': 'Failed to create update'}), 500

    notified = 0
    if update['status'] == 'published':
        notified = announce_update(update, campaign)

    _db_log('info', f"Update {update['id']} {update['status']}", {'campaign_id': campaign_id})
    return jsonify({'success': True, 'update': update, 'notified': notified}), 201


@updates_bp.route('/updates/<int:update_id>/like', methods=['POST'])
@login_required
@rate_limit('api')
def like_update(update_id):
    update = get_update(update_id)
    if not update or update['status'] != 'published':
        return jsonify({'error': 'Update not found'}), 404
    liked, likes = toggle_like('update', update_id, session['user_id'])
    return jsonify({'success': True, 'liked': liked, 'likes': likes})
