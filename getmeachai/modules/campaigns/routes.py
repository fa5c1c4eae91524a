"""
Campaigns Routes
================

Public reads are open; every write requires a signed-in user, and
owner-only actions answer 403 to anyone else.
"""

import logging
from flask import request, jsonify, session, current_app

from getmeachai.core import rate_limit, login_required, db_log, LoggingService
from getmeachai.core.validation import (
    ValidationError, validate_string, validate_number, validate_enum, validate_array,
    validate_url, validate_object,
)
from getmeachai.modules.auth.database import get_user_by_id
from . import campaigns_bp
from .models import (
    CATEGORIES, OWNER_STATUSES, REPORT_REASONS, DRAFT_FIELDS, DuplicateReportError,
    create_campaign, get_campaign, get_campaign_by_slug, update_campaign, delete_campaign,
    set_status, publish_campaign, list_campaigns, list_user_campaigns, trending_campaigns,
    category_counts, track_view, track_share, create_report,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


def _db_log(level, message, details=None):
    db_log(level, 'campaigns', message, details)


def _int_arg(name, default, minimum=1, maximum=None):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def _reward_item(item):
    if not isinstance(item, dict):
        raise ValidationError("Reward must be an object", 'rewards', item)
    validate_string(item.get('title'), 'Reward title', max_length=100)
    # Claim counts are owned by payments, never by the client
    reward = {k: v for k, v in item.items()
              if k not in ('claimed_count', 'claimedCount', 'limitedQuantity')}
    reward['amount'] = validate_number(item.get('amount'), 'Reward amount', min_value=1, integer=True)
    limited = item.get('limited_quantity', item.get('limitedQuantity'))
    if limited is not None:
        limited = validate_number(limited, 'Reward quantity', min_value=1, integer=True)
    reward['limited_quantity'] = limited
    return reward


def _milestone_item(item):
    if not isinstance(item, dict):
        raise ValidationError("Milestone must be an object", 'milestones', item)
    validate_string(item.get('title'), 'Milestone title', max_length=100)
    milestone = dict(item)
    milestone['amount'] = validate_number(item.get('amount'), 'Milestone amount', min_value=1, integer=True)
    return milestone


def _faq_item(item):
    if not isinstance(item, dict):
        raise ValidationError("FAQ must be an object", 'faqs', item)
    validate_string(item.get('question'), 'FAQ question', max_length=300)
    validate_string(item.get('answer'), 'FAQ answer', max_length=2000)
    return item


def _optional_url(field_name):
    def validator(value):
        if value == '':
            return ''
        return validate_url(value, field_name)
    return validator


def _content_schema():
    """Validators shared by create and edit"""
    return {
        'title': lambda v: validate_string(v, 'Title', min_length=3, max_length=100),
        'story': lambda v: validate_string(v, 'Story', max_length=20000),
        'category': lambda v: validate_enum(v, CATEGORIES, 'Category'),
        'brief': lambda v: validate_string(v, 'Brief', max_length=500, allow_empty=True),
        'hook': lambda v: validate_string(v, 'Hook', max_length=500, allow_empty=True),
        'short_description': lambda v: validate_string(v, 'Short description', max_length=200, allow_empty=True),
        'cover_image': _optional_url('Cover image'),
        'video_url': _optional_url('Video URL'),
        'images': lambda v: validate_array(v, 'Images', max_length=10, item_validator=_optional_url('Image')),
        'milestones': lambda v: validate_array(v, 'Milestones', max_length=10, item_validator=_milestone_item),
        'rewards': lambda v: validate_array(v, 'Rewards', max_length=20, item_validator=_reward_item),
        'faqs': lambda v: validate_array(v, 'FAQs', max_length=20, item_validator=_faq_item),
        'tags': lambda v: validate_array(
            v, 'Tags', max_length=10,
            item_validator=lambda t: validate_string(t, 'Tag', max_length=30)),
        'location': lambda v: validate_string(v, 'Location', max_length=100, allow_empty=True),
    }


def _goal_validator(minimum):
    maximum = current_app.config.get('CAMPAIGN_MAX_GOAL', 100000000)
    return lambda v: validate_number(v, 'Goal', min_value=minimum, max_value=maximum, integer=True)


def _duration_validator():
    cfg = current_app.config
    return lambda v: validate_number(
        v, 'Duration', min_value=cfg.get('CAMPAIGN_MIN_DURATION', 7),
        max_value=cfg.get('CAMPAIGN_MAX_DURATION', 90), integer=True)


def _load_owned_campaign(campaign_id):
    """(campaign, error_response)"""
    campaign = get_campaign(campaign_id)
    if not campaign:
        return None, (jsonify({'error': 'Campaign not found'}), 404)
    if campaign['creator_id'] != session.get('user_id'):
        LoggingService.log_security_event('Campaign ownership check failed', {
            'campaign_id': campaign_id, 'user_id': session.get('user_id')
        })
        return None, (jsonify({'error': 'You can only modify your own campaigns'}), 403)
    return campaign, None


@campaigns_bp.route('/create', methods=['POST'])
@login_required
@rate_limit('api')
def create():
    data = request.get_json(silent=True) or {}
    cfg = current_app.config

    schema = _content_schema()
    schema['title'] = (schema['title'], {'required': True})
    schema['story'] = (schema['story'], {'required': True})
    schema['goal'] = (_goal_validator(cfg.get('CAMPAIGN_MIN_GOAL', 1000)), {'required': True})
    schema['duration'] = _duration_validator()
    schema['ai_generated'] = bool

    try:
        cleaned = validate_object(data, schema)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    creator = get_user_by_id(session['user_id'])
    if not creator:
        return jsonify({'error': 'Unauthorized'}), 401

    cleaned['goal_amount'] = cleaned.pop('goal')
    cleaned['currency'] = cfg.get('PAYMENT_CURRENCY', 'INR')

    try:
        campaign = create_campaign(creator, cleaned)
    except Exception as e:
        logger.error(f"Error creating campaign: {e}")
        _db_log('error', 'Error creating campaign', {'error': str(e), 'user_id': creator['id']})
        return jsonify({'error': 'Failed to create campaign'}), 500

    LoggingService.log_user_action('campaigns', f"created campaign {campaign['id']}", creator['id'])
    return jsonify({'success': True, 'campaign': campaign}), 201


@campaigns_bp.route('/draft', methods=['POST'])
@login_required
@rate_limit('api')
def save_draft():
    """Save an unfinished campaign. Only the owner sees it until it is published."""
    data = request.get_json(silent=True) or {}
    cfg = current_app.config

    schema = _content_schema()
    schema['story'] = lambda v: validate_string(v, 'Story', max_length=20000, allow_empty=True)
    schema['goal'] = _goal_validator(0)
    schema['duration'] = _duration_validator()
    schema['ai_generated'] = bool

    try:
        cleaned = validate_object(data, schema)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    creator = get_user_by_id(session['user_id'])
    if not creator:
        return jsonify({'error': 'Unauthorized'}), 401

    cleaned.setdefault('title', 'Untitled draft')
    cleaned.setdefault('story', '')
    cleaned['goal_amount'] = cleaned.pop('goal', 0)
    cleaned['currency'] = cfg.get('PAYMENT_CURRENCY', 'INR')

    try:
        campaign = create_campaign(creator, cleaned, status='draft')
    except Exception as e:
        logger.error(f"Error saving draft: {e}")
        _db_log('error', 'Error saving draft', {'error': str(e), 'user_id': creator['id']})
        return jsonify({'error': 'Failed to save draft'}), 500

    return jsonify({'success': True, 'campaignId': campaign['id'], 'campaign': campaign,
                    'message': 'Draft saved successfully'}), 201


@campaigns_bp.route('/list', methods=['GET'])
def list_public():
    page = _int_arg('page', 1)
    limit = _int_arg('limit', 12, maximum=MAX_PAGE_SIZE)
    sort = request.args.get('sort', 'recent')
    try:
        campaigns, total = list_campaigns(
            category=request.args.get('category'),
            search=(request.args.get('search') or '').strip() or None,
            creator=request.args.get('creator'),
            sort=sort,
            page=page,
            limit=limit,
        )
    except Exception as e:
        logger.error(f"Error listing campaigns: {e}")
        _db_log('error', 'Error listing campaigns', {'error': str(e)})
        return jsonify({'error': 'Failed to fetch campaigns'}), 500

    total_pages = (total + limit - 1) // limit
    return jsonify({
        'campaigns': campaigns,
        'total': total,
        'page': page,
        'totalPages': total_pages,
        'hasMore': page < total_pages,
    })


@campaigns_bp.route('/mine', methods=['GET'])
@login_required
def list_mine():
    return jsonify({'campaigns': list_user_campaigns(session['user_id'])})


@campaigns_bp.route('/trending', methods=['GET'])
def trending():
    limit = _int_arg('limit', 10, maximum=MAX_PAGE_SIZE)
    try:
        return jsonify({'campaigns': trending_campaigns(limit)})
    except Exception as e:
        logger.error(f"Error computing trending campaigns: {e}")
        _db_log('error', 'Error computing trending campaigns', {'error': str(e)})
        return jsonify({'error': 'Failed to fetch trending campaigns'}), 500


@campaigns_bp.route('/category-counts', methods=['GET'])
def get_category_counts():
    try:
        counts, total = category_counts()
    except Exception as e:
        logger.error(f"Category counts failed: {e}")
        return jsonify({'error': 'Failed to fetch category counts', 'counts': {}}), 500
    return jsonify({'counts': counts, 'total': total})


@campaigns_bp.route('/track-view', methods=['POST'])
@rate_limit('general')
def post_track_view():
    data = request.get_json(silent=True) or {}
    campaign_id = data.get('campaignId')
    if not campaign_id:
        return jsonify({'error': 'Campaign ID is required'}), 400
    try:
        if not track_view(int(campaign_id), session.get('user_id')):
            return jsonify({'error': 'Campaign not found'}), 404
    except (TypeError, ValueError):
        return jsonify({'error': 'Campaign ID is invalid'}), 400
    except Exception as e:
        logger.error(f"Track view error: {e}")
        return jsonify({'error': 'Failed to track view'}), 500
    return jsonify({'success': True})


def _hidden_draft(campaign):
    return campaign['status'] == 'draft' and campaign['creator_id'] != session.get('user_id')


@campaigns_bp.route('/slug/<slug>', methods=['GET'])
def get_by_slug(slug):
    campaign = get_campaign_by_slug(slug)
    if not campaign or _hidden_draft(campaign):
        return jsonify({'error': 'Campaign not found'}), 404
    return jsonify({'campaign': campaign})


@campaigns_bp.route('/<int:campaign_id>', methods=['GET'])
def get_one(campaign_id):
    campaign = get_campaign(campaign_id)
    if not campaign or _hidden_draft(campaign):
        return jsonify({'error': 'Campaign not found'}), 404
    return jsonify({'campaign': campaign})


@campaigns_bp.route('/<int:campaign_id>', methods=['PATCH'])
@login_required
def edit(campaign_id):
    campaign, error = _load_owned_campaign(campaign_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    schema = _content_schema()
    is_draft = campaign['status'] == 'draft'
    if is_draft:
        schema['story'] = lambda v: validate_string(v, 'Story', max_length=20000, allow_empty=True)
        schema['goal'] = _goal_validator(0)
    try:
        cleaned = validate_object(data, schema)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    if 'goal' in cleaned:
        cleaned['goal_amount'] = cleaned.pop('goal')

    try:
        if is_draft:
            campaign = update_campaign(campaign_id, cleaned, allowed=DRAFT_FIELDS)
        else:
            campaign = update_campaign(campaign_id, cleaned)
    except Exception as e:
        logger.error(f"Error updating campaign {campaign_id}: {e}")
        _db_log('error', f'Error updating campaign {campaign_id}', {'error': str(e)})
        return jsonify({'error': 'Failed to update campaign'}), 500
    return jsonify({'success': True, 'campaign': campaign})


@campaigns_bp.route('/<int:campaign_id>', methods=['DELETE'])
@login_required
def remove(campaign_id):
    campaign, error = _load_owned_campaign(campaign_id)
    if error:
        return error
    delete_campaign(campaign_id)
    LoggingService.log_user_action('campaigns', f'deleted campaign {campaign_id}', session['user_id'])
    return jsonify({'success': True, 'message': 'Campaign deleted successfully'})


@campaigns_bp.route('/<int:campaign_id>/status', methods=['PATCH'])
@login_required
def change_status(campaign_id):
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in OWNER_STATUSES:
        return jsonify({'error': f"Status must be one of: {', '.join(OWNER_STATUSES)}"}), 400

    campaign, error = _load_owned_campaign(campaign_id)
    if error:
        return error

    if campaign['status'] == 'draft':
        if status != 'active':
            return jsonify({'error': 'A draft must be published before its status can change'}), 400
        min_goal = current_app.config.get('CAMPAIGN_MIN_GOAL', 1000)
        if len(campaign['title']) < 3 or not campaign['story'].strip() or campaign['goal_amount'] < min_goal:
            return jsonify({
                'error': f'A campaign needs a title, a story and a goal of at least {min_goal} to publish'
            }), 400
        campaign = publish_campaign(campaign)
        LoggingService.log_user_action('campaigns', f'published campaign {campaign_id}', session['user_id'])
        return jsonify({'success': True, 'campaign': campaign})

    set_status(campaign_id, status)
    logger.info(f"Campaign {campaign_id} status {campaign['status']} -> {status}")
    return jsonify({'success': True, 'campaign': get_campaign(campaign_id, auto_complete=False)})


@campaigns_bp.route('/<int:campaign_id>/share', methods=['POST'])
@rate_limit('general')
def share(campaign_id):
    try:
        shares = track_share(campaign_id)
    except Exception as e:
        logger.error(f"Track share error: {e}")
        return jsonify({'error': 'Failed to track share'}), 500
    if shares is None:
        return jsonify({'error': 'Campaign not found'}), 404
    return jsonify({'success': True, 'shares': shares})


@campaigns_bp.route('/<int:campaign_id>/report', methods=['POST'])
@login_required
@rate_limit('sensitive')
def report(campaign_id):
    data = request.get_json(silent=True) or {}
    try:
        reason = validate_enum(data.get('reason'), REPORT_REASONS, 'Reason')
        description = data.get('description') or ''
        if reason == 'other':
            description = validate_string(description, 'Description', min_length=10, max_length=1000)
        elif description:
            description = validate_string(description, 'Description', max_length=1000)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    campaign = get_campaign(campaign_id, auto_complete=False)
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404
    if campaign['creator_id'] == session['user_id']:
        return jsonify({'error': 'You cannot report your own campaign'}), 400

    try:
        report_id = create_report('campaign', campaign_id, session['user_id'], reason, description)
    except DuplicateReportError:
        return jsonify({'error': 'You have already reported this campaign'}), 409

    return jsonify({'success': True, 'reportId': report_id,
                    'message': 'Report submitted. Our team will review it shortly.'}), 201
