import logging
from flask import request, jsonify, session

from getmeachai.core import rate_limit, login_required, db_log
from getmeachai.core.validation import ValidationError, validate_string, validate_enum
from getmeachai.modules.campaigns.models import (
    REPORT_REASONS, DuplicateReportError, get_campaign, create_report,
)
from getmeachai.modules.notifications.models import create_notification
from . import comments_bp
from .models import (
    MAX_COMMENT_LENGTH, list_comments, get_comment, create_comment, toggle_pin,
    soft_delete, toggle_like,
)

logger = logging.getLogger(__name__)


def _db_log(level, message, details=None):
    db_log(level, 'comments', message, details)


@comments_bp.route('/campaigns/<int:campaign_id>/comments', methods=['GET'])
def get_comments(campaign_id):
    sort = request.args.get('sort', 'newest')
    try:
        comments = list_comments(campaign_id, sort)
    except Exception as e:
        logger.error(f"Error fetching comments for campaign {campaign_id}: {e}")
        _db_log('error', 'Error fetching comments', {'campaign_id': campaign_id, 'error': str(e)})
        return jsonify({'error': 'Failed to fetch comments'}), 500
    return jsonify({'comments': comments, 'total': len(comments)})


@comments_bp.route('/campaigns/<int:campaign_id>/comments', methods=['POST'])
@login_required
@rate_limit('api')
def post_comment(campaign_id):
    data = request.get_json(silent=True) or {}
    try:
        content = validate_string(data.get('content'), 'Comment', max_length=MAX_COMMENT_LENGTH)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    campaign = get_campaign(campaign_id, auto_complete=False)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404

    parent_id = data.get('parentId')
    if parent_id:
        parent = get_comment(parent_id)
        if not parent or parent['campaign_id'] != campaign_id or parent['is_deleted']:
            return jsonify({'error': 'Parent comment not found'}), 400
        # Replies attach to the top-level comment
        parent_id = parent['parent_id'] or parent['id']

    user_id = session['user_id']
    try:
        comment = create_comment(campaign_id, user_id, content, parent_id)
    except Exception as e:
        logger.error(f"Error posting comment: {e}")
        _db_log('error', 'Error posting comment', {'campaign_id': campaign_id, 'error': str(e)})
        return jsonify({'error': 'Failed to post comment'}), 500

    if campaign['creator_id'] != user_id:
        create_notification(
            campaign['creator_id'], 'comment',
            'New comment on your campaign',
            f"{comment['author']['name'] or 'Someone'} commented on \"{campaign['title']}\"",
            campaign_id=campaign_id,
            link=f"/campaign/{campaign['slug']}#comments",
        )

    comment['replies'] = []
    return jsonify({'success': True, 'comment': comment}), 201


@comments_bp.route('/comments/<int:comment_id>/like', methods=['POST'])
@login_required
@rate_limit('api')
def like_comment(comment_id):
    comment = get_comment(comment_id)
    if not comment or comment['is_deleted']:
        return jsonify({'error': 'Comment not found'}), 404
    liked, likes = toggle_like('comment', comment_id, session['user_id'])
    return jsonify({'success': True, 'liked': liked, 'likes': likes})


@comments_bp.route('/comments/<int:comment_id>/pin', methods=['POST'])
@login_required
def pin_comment(comment_id):
    comment = get_comment(comment_id)
    if not comment or comment['is_deleted']:
        return jsonify({'error': 'Comment not found'}), 404

    campaign = get_campaign(comment['campaign_id'], auto_complete=False)
    if not campaign or campaign['creator_id'] != session['user_id']:
        return jsonify({'error': 'Only the campaign creator can pin comments'}), 403

    pinned = toggle_pin(comment)
    return jsonify({'success': True, 'pinned': pinned})


@comments_bp.route('/comments/<int:comment_id>', methods=['DELETE'])
@login_required
def delete_comment(comment_id):
    comment = get_comment(comment_id)
    if not comment or comment['is_deleted']:
        return jsonify({'error': 'Comment not found'}), 404

    user_id = session['user_id']
    campaign = get_campaign(comment['campaign_id'], auto_complete=False)
    is_creator = campaign is not None and campaign['creator_id'] == user_id
    if comment['user_id'] != user_id and not is_creator and session.get('role') != 'admin':
        return jsonify({'error': 'You cannot delete this comment'}), 403

    soft_delete(comment)
    _db_log('info', f'Comment {comment_id} deleted', {'by': user_id})
    return jsonify({'success': True})


@comments_bp.route('/comments/<int:comment_id>/report', methods=['POST'])
@login_required
@rate_limit('sensitive')
def report_comment(comment_id):
    data = request.get_json(silent=True) or {}
    try:
        reason = validate_enum(data.get('reason') or 'inappropriate', REPORT_REASONS, 'Reason')
        description = data.get('description') or ''
        if description:
            description = validate_string(description, 'Description', max_length=1000)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    comment = get_comment(comment_id)
    if not comment or comment['is_deleted']:
        return jsonify({'error': 'Comment not found'}), 404
    if comment['user_id'] == session['user_id']:
        return jsonify({'error': 'You cannot report your own comment'}), 400

    try:
        report_id = create_report('comment', comment_id, session['user_id'], reason, description)
    except DuplicateReportError:
        return jsonify({'error': 'You have already reported this comment'}), 409

    return jsonify({'success': True, 'reportId': report_id,
                    'message': 'Comment reported successfully. Our team will review it.'}), 201
