import logging
from flask import request, jsonify, session

from getmeachai.core import login_required, db_log
from . import notifications_bp
from .models import get_notifications, mark_read, mark_all_read, delete_notification

logger = logging.getLogger(__name__)

ACTIONS = ('mark-read', 'mark-all-read', 'delete')


@notifications_bp.route('', methods=['GET'])
@notifications_bp.route('/', methods=['GET'])
@login_required
def list_notifications():
    try:
        notifications, unread = get_notifications(session['user_id'])
    except Exception as e:
        logger.error(f"Error fetching notifications: {e}")
        db_log('error', 'notifications', 'Error fetching notifications', {'error': str(e)})
        return jsonify({'error': 'Failed to fetch notifications'}), 500
    return jsonify({'notifications': notifications, 'unreadCount': unread})


@notifications_bp.route('', methods=['POST'])
@notifications_bp.route('/', methods=['POST'])
@login_required
def update_notifications():
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    notification_id = data.get('notificationId')
    user_id = session['user_id']

    if action not in ACTIONS:
        return jsonify({'error': 'Invalid action'}), 400

    if action == 'mark-all-read':
        updated = mark_all_read(user_id)
        return jsonify({'success': True, 'updated': updated})

    if not notification_id:
        return jsonify({'error': 'Notification ID is required'}), 400

    if action == 'mark-read':
        found = mark_read(user_id, notification_id)
    else:
        found = delete_notification(user_id, notification_id)

    if not found:
        return jsonify({'error': 'Notification not found'}), 404
    return jsonify({'success': True})
