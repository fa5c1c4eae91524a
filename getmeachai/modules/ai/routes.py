"""
AI Routes
=========

Every endpoint is rate limited by the 'ai' preset. Structured endpoints
ask the model for JSON and answer 502 when the reply cannot be parsed.
"""

import logging
from flask import request, jsonify, session, Response, stream_with_context

from getmeachai.core import rate_limit, login_required, db_log, setting
from getmeachai.core.validation import ValidationError, validate_string, validate_number
from getmeachai.modules.campaigns.models import (
    CATEGORIES, get_campaign, list_campaigns, recently_viewed_categories, set_quality_score,
)
from getmeachai.modules.payments.models import user_contributions
from . import ai_bp
from .client import OpenRouterClient, AIServiceError, extract_json
from . import prompts

logger = logging.getLogger(__name__)

INVALID_FORMAT = 'Invalid response format'


def _db_log(level, message, details=None):
    db_log(level, 'ai', message, details)


def _client():
    return OpenRouterClient()


def _ai_error(e, action):
    logger.error(f"AI error during {action}: {e.message}")
    _db_log('error', f'AI {action} failed', {'error': e.message, 'status': e.status_code})
    return jsonify({'error': e.message}), e.status_code


def _invalid_format(action, raw):
    logger.warning(f"Unparseable AI response for {action}: {(raw or '')[:300]}")
    return jsonify({'error': INVALID_FORMAT}), 502


def _fields(data, *names):
    """Required request fields; raises ValidationError naming the first missing one"""
    values = []
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} is required", name)
        values.append(value)
    return values


def _goal(value):
    return validate_number(value, 'Goal', min_value=1, integer=True)


def _feature_disabled(flag):
    return not setting(flag, True)


@ai_bp.route('/generate-campaign', methods=['POST'])
@rate_limit('ai')
def generate_campaign():
    if _feature_disabled('FEATURE_AI_CAMPAIGN_BUILDER'):
        return jsonify({'error': 'AI campaign builder is disabled'}), 404

    data = request.get_json(silent=True) or {}
    try:
        category, brief, goal = _fields(data, 'category', 'brief', 'goal')
        brief = validate_string(brief, 'Brief', min_length=10, max_length=2000)
        goal = _goal(goal)
        prompt = prompts.campaign_story_prompt(category, brief, goal, data.get('projectType') or 'creative project')
        chunks = _client().stream(prompt, temperature=0.8, max_tokens=2000)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except AIServiceError as e:
        return _ai_error(e, 'campaign generation')

    _db_log('info', 'Campaign story generation started', {'category': category})

    def generate():
        try:
            for chunk in chunks:
                yield chunk
        except Exception as e:
            # Headers are already sent; the client sees a truncated stream
            logger.error(f"Campaign generation stream failed: {e}")

    return Response(stream_with_context(generate()), mimetype='text/plain')


@ai_bp.route('/suggest-goal', methods=['POST'])
@rate_limit('ai')
def suggest_goal():
    data = request.get_json(silent=True) or {}
    try:
        category, brief = _fields(data, 'category', 'brief')
        raw = _client().generate(
            prompts.goal_suggestion_prompt(category, brief, data.get('projectType') or 'creative project'),
            temperature=0.5, max_tokens=800,
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except AIServiceError as e:
        return _ai_error(e, 'goal suggestion')

    suggestion = extract_json(raw)
    if not isinstance(suggestion, dict) or 'suggestedGoal' not in suggestion:
        return _invalid_format('goal suggestion', raw)

    minimum = setting('CAMPAIGN_MIN_GOAL', 1000)
    maximum = setting('CAMPAIGN_MAX_GOAL', 10000000)
    try:
        suggestion['suggestedGoal'] = max(minimum, min(maximum, int(suggestion['suggestedGoal'])))
    except (TypeError, ValueError):
        return _invalid_format('goal suggestion', raw)
    return jsonify({'success': True, 'suggestion': suggestion})


@ai_bp.route('/generate-milestones', methods=['POST'])
@rate_limit('ai')
def generate_milestones():
    data = request.get_json(silent=True) or {}
    try:
        goal, category = _fields(data, 'goal', 'category')
        goal = _goal(goal)
        duration = validate_number(data.get('duration', 30), 'Duration', min_value=1, max_value=365, integer=True)
        raw = _client().generate(prompts.milestones_prompt(goal, category, duration),
                                 temperature=0.6, max_tokens=1200)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except AIServiceError as e:
        return _ai_error(e, 'milestone generation')

    milestones = extract_json(raw, array=True)
    if not isinstance(milestones, list):
        return _invalid_format('milestone generation', raw)
    return jsonify({'success': True, 'milestones': milestones})


@ai_bp.route('/generate-rewards', methods=['POST'])
@rate_limit('ai')
def generate_rewards():
    data = request.get_json(silent=True) or {}
    try:
        goal, category = _fields(data, 'goal', 'category')
        goal = _goal(goal)
        raw = _client().generate(prompts.reward_tiers_prompt(goal, category, data.get('brief') or ''),
                                 temperature=0.7, max_tokens=1500)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except AIServiceError as e:
        return _ai_error(e, 'reward generation')

    rewards = extract_json(raw, array=True)
    if not isinstance(rewards, list):
        return _invalid_format('reward generation', raw)
    return jsonify({'success': True, 'rewards': rewards})


@ai_bp.route('/generate-faqs', methods=['POST'])
@rate_limit('ai')
def generate_faqs():
    data = request.get_json(silent=True) or {}
    try:
        category, story, goal = _fields(data, 'category', 'story', 'goal')
        raw = _client().generate(prompts.faqs_prompt(category, story, _goal(goal)),
                                 temperature=0.6, max_tokens=2000)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except AIServiceError as e:
        return _ai_error(e, 'FAQ generation')

    faqs = extract_json(raw, array=True)
    if not isinstance(faqs, list):
        return _invalid_format('FAQ generation', raw)
    return jsonify({'success': True, 'faqs': faqs})


@ai_bp.route('/score-campaign', methods=['POST'])
@rate_limit('ai')
def score_campaign():
    data = request.get_json(silent=True) or {}
    campaign_id = data.get('campaignId')
    owned = False

    if campaign_id:
        campaign = get_campaign(campaign_id, auto_complete=False)
        owned = campaign is not None and session.get('user_id') == campaign['creator_id']
        if not campaign or (campaign['status'] == 'draft' and not owned):
            return jsonify({'error': 'Campaign not found'}), 404
    else:
        campaign = data.get('campaign')
        if not isinstance(campaign, dict) or not campaign.get('title'):
            return jsonify({'error': 'campaign or campaignId is required'}), 400

    try:
        raw = _client().generate(prompts.quality_scoring_prompt(campaign), temperature=0.3, max_tokens=1000)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except AIServiceError as e:
        return _ai_error(e, 'campaign scoring')

    score = extract_json(raw)
    if not isinstance(score, dict) or 'overallScore' not in score:
        return _invalid_format('campaign scoring', raw)

    try:
        overall = max(0, min(100, int(score['overallScore'])))
    except (TypeError, ValueError):
        return _invalid_format('campaign scoring', raw)
    score['overallScore'] = overall

    if owned:
        set_quality_score(campaign['id'], overall)
        _db_log('info', f"Campaign {campaign['id']} scored {overall}")
    return jsonify({'success': True, 'score': score, 'saved': owned})


@ai_bp.route('/chat', methods=['POST'])
@rate_limit('ai')
def chat():
    if _feature_disabled('FEATURE_AI_CHATBOT'):
        return jsonify({'error': 'AI chatbot is disabled'}), 404

    data = request.get_json(silent=True) or {}
    messages = data.get('messages')
    if not isinstance(messages, list) or not messages:
        return jsonify({'error': 'messages must be a non-empty array'}), 400

    user_context = data.get('userContext')
    if not isinstance(user_context, dict):
        user_context = None
    try:
        reply = _client().generate_with_history(
            messages[-20:], temperature=0.7, max_tokens=1000,
            system_prompt=prompts.chatbot_system_prompt(user_context),
        )
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except AIServiceError as e:
        return _ai_error(e, 'chat')

    return jsonify({'success': True, 'message': reply})


def _fallback_ranking(candidates, interests):
    """Category-match ranking used when the model is unavailable or unparseable"""
    weights = {}
    for position, category in enumerate(interests):
        weights[category] = weights.get(category, 0) + max(1, len(interests) - position)
    ranked = sorted(
        candidates,
        key=lambda c: (weights.get(c['category'], 0), c.get('progress') or 0),
        reverse=True,
    )
    top = max(weights.values()) if weights else 1
    results = []
    for c in ranked[:6]:
        if c['category'] in weights:
            reason = f"Because you explored {c['category']} campaigns"
        else:
            reason = f"Popular in {c['category']}"
        results.append(dict(c, matchScore=int(round(weights.get(c['category'], 0) / top * 100)),
                            reason=reason))
    return results


@ai_bp.route('/recommendations', methods=['POST'])
@login_required
@rate_limit('ai')
def recommendations():
    if _feature_disabled('FEATURE_AI_RECOMMENDATIONS'):
        return jsonify({'error': 'Recommendations are disabled'}), 404

    user_id = session['user_id']
    data = request.get_json(silent=True) or {}
    interests, viewed_ids = recently_viewed_categories(user_id)
    extra = data.get('interests')
    if isinstance(extra, list):
        interests = interests + [i for i in extra if i in CATEGORIES]

    contributions, _ = user_contributions(user_id)
    supported_ids = {c['campaign_id'] for c in contributions}
    contributed_categories = []
    for c in contributions:
        campaign = get_campaign(c['campaign_id'], auto_complete=False) if c['campaign_id'] else None
        if campaign and campaign['category'] not in contributed_categories:
            contributed_categories.append(campaign['category'])

    active, _ = list_campaigns(sort='recent', limit=30)
    candidates = [
        c for c in active
        if c['creator_id'] != user_id and c['id'] not in supported_ids and c['id'] not in viewed_ids
    ] or [c for c in active if c['creator_id'] != user_id]

    if not candidates:
        return jsonify({'success': True, 'recommendations': [], 'source': 'none'})

    by_id = {c['id']: c for c in candidates}
    try:
        raw = _client().generate(
            prompts.recommendations_prompt(interests, contributed_categories, candidates),
            temperature=0.4, max_tokens=800,
        )
        ranked = extract_json(raw, array=True)
    except (AIServiceError, ValidationError) as e:
        logger.warning(f"Recommendation model unavailable, using category match: {e}")
        ranked = None

    results = []
    if isinstance(ranked, list):
        for item in ranked:
            if not isinstance(item, dict):
                continue
            try:
                campaign = by_id.get(int(item.get('id')))
            except (TypeError, ValueError):
                continue
            if campaign and all(r['id'] != campaign['id'] for r in results):
                results.append(dict(campaign, matchScore=item.get('score'), reason=item.get('reason', '')))

    if results:
        return jsonify({'success': True, 'recommendations': results[:6], 'source': 'ai'})
    return jsonify({
        'success': True,
        'recommendations': _fallback_ranking(candidates, interests + contributed_categories),
        'source': 'fallback',
    })
