"""Job bodies for the cron endpoints, callable without a request"""

import logging
from datetime import timedelta

from getmeachai.core.config import setting
from getmeachai.core.database import utc_now
from getmeachai.core.logging_service import db_log
from getmeachai.modules.ai.client import OpenRouterClient, AIServiceError, extract_json
from getmeachai.modules.ai.prompts import weekly_tips_prompt
from getmeachai.modules.auth.database import get_creators
from getmeachai.modules.campaigns.models import list_user_campaigns, views_since
from getmeachai.modules.email.email_service import email_service
from getmeachai.modules.payments.models import payments_since

logger = logging.getLogger(__name__)

FALLBACK_TIPS = [
    'Post an update to keep your supporters engaged and informed.',
    'Share your campaign on social media with a personal story.',
    'Thank your recent supporters personally to build loyalty.',
]


def creator_week(creator, now=None):
    """Last seven days of activity for one creator"""
    now = now or utc_now()
    since = now - timedelta(days=7)
    payments = payments_since(creator['id'], since)
    campaigns = list_user_campaigns(creator['id'])
    views = views_since([c['id'] for c in campaigns], since)
    new_supporters = len({p['email'] for p in payments})

    return {
        'creator_name': creator['name'],
        'earnings': sum(p['amount'] for p in payments),
        'new_supporters': new_supporters,
        'views': views,
        'conversion_rate': round(new_supporters / views * 100, 1) if views else 0,
        'active_campaigns': sum(1 for c in campaigns if c['status'] == 'active'),
        'recent_payments': [
            {
                'name': 'Anonymous' if p['anonymous'] else p['name'],
                'amount': p['amount'],
                'campaign_title': p.get('campaign_title'),
            }
            for p in payments[:5]
        ],
    }


def weekly_tips(summary, client=None):
    """Three tips from the model, or FALLBACK_TIPS when it fails"""
    client = client or OpenRouterClient()
    if not client.configured:
        return list(FALLBACK_TIPS)
    try:
        tips = extract_json(client.generate(weekly_tips_prompt(summary), temperature=0.7, max_tokens=400),
                            array=True)
    except AIServiceError as e:
        logger.warning(f"Weekly tips unavailable: {e.message}")
        return list(FALLBACK_TIPS)

    tips = [t.strip() for t in tips or [] if isinstance(t, str) and t.strip()]
    return tips[:3] if len(tips) >= 3 else list(FALLBACK_TIPS)


def send_weekly_summaries(now=None):
    """Email every creator with campaigns. Returns {sent, failed, skipped}."""
    results = {'sent': 0, 'failed': 0, 'skipped': 0}
    client = OpenRouterClient()

    for creator in get_creators():
        if not creator.get('email_notifications', 1):
            results['skipped'] += 1
            continue
        try:
            summary = creator_week(creator, now)
            summary['tips'] = weekly_tips(summary, client)
            ok = email_service.send_weekly_summary(creator['email'], summary)
        except Exception as e:
            logger.error(f"Weekly summary failed for creator {creator['id']}: {e}")
            ok = False
        results['sent' if ok else 'failed'] += 1

    db_log('info', 'cron', 'Weekly summaries sent', results)
    return results


def weekly_summary_enabled():
    return bool(setting('EMAIL_SEND_WEEKLY_SUMMARY', True)) and bool(setting('EMAIL_ENABLED', True))
