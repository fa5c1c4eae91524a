"""Fan-out of a published update to the campaign's supporters"""

import logging

from getmeachai.core.config import setting
from getmeachai.core.logging_service import db_log
from getmeachai.modules.auth.database import get_user_by_id
from getmeachai.modules.campaigns.models import get_campaign
from getmeachai.modules.notifications.models import notify_many
from getmeachai.modules.payments.models import campaign_supporters
from .models import due_scheduled_updates, mark_published

logger = logging.getLogger(__name__)


def announce_update(update, campaign):
    """
    Notify and email every distinct supporter of the campaign.
    Returns the number of in-app notifications created.
    """
    supporters = campaign_supporters(campaign['id'])
    if not supporters:
        return 0

    link = f"/campaign/{campaign['slug']}#updates"
    notified = notify_many(
        [s['user_id'] for s in supporters if s['user_id'] != campaign['creator_id']],
        'update',
        f"New update: {update['title']}",
        f"{campaign['title']} posted an update",
        campaign_id=campaign['id'],
        link=link,
    )

    if setting('EMAIL_ENABLED', True) and setting('FEATURE_EMAIL_NOTIFICATIONS', True):
        from getmeachai.modules.email.email_service import email_service
        creator = get_user_by_id(campaign['creator_id']) or {}
        try:
            email_service.send_update_notification(
                [s['email'] for s in supporters],
                {
                    'campaign_title': campaign['title'],
                    'creator_name': creator.get('name'),
                    'update_title': update['title'],
                    'content': update['content'],
                    'update_url': f"{setting('APP_URL', '').rstrip('/')}{link}",
                },
            )
        except Exception as e:
            logger.error(f"Update emails failed for update {update['id']}: {e}")
            db_log('error', 'updates', 'Update emails failed', {'update_id': update['id'], 'error': str(e)})

    return notified


def publish_scheduled_updates(now=None):
    """Publish every due scheduled update. Returns {published, notified}."""
    published = 0
    notified = 0
    for update in due_scheduled_updates(now):
        if not mark_published(update['id'], now):
            continue
        published += 1
        campaign = get_campaign(update['campaign_id'], auto_complete=False)
        if campaign:
            notified += announce_update(update, campaign)

    if published:
        logger.info(f"Published {published} scheduled updates, {notified} notifications")
        db_log('info', 'updates', f'Published {published} scheduled updates', {'notified': notified})
    return {'published': published, 'notified': notified}
