"""
Side effects of a successful payment: creator notification, milestone
notifications and emails, supporter receipt and creator alert email.
"""

import logging

from getmeachai.core.config import setting
from getmeachai.core.logging_service import db_log
from getmeachai.modules.auth.database import get_user_by_id
from getmeachai.modules.campaigns.models import get_campaign, crossed_milestones
from getmeachai.modules.email.email_service import email_service, format_inr
from getmeachai.modules.notifications.models import create_notification
from .models import complete_payment

logger = logging.getLogger(__name__)


def _emails_on():
    return setting('EMAIL_ENABLED', True) and setting('FEATURE_EMAIL_NOTIFICATIONS', True)


def _campaign_url(campaign):
    return f"{setting('APP_URL', '').rstrip('/')}/campaign/{campaign['slug']}"


def after_payment(payment, credit):
    """Run once per newly successful payment; failures here never undo the payment"""
    creator = get_user_by_id(payment['to_user'])
    campaign = get_campaign(payment['campaign_id'], auto_complete=False) if payment['campaign_id'] else None
    supporter_name = 'Anonymous' if payment.get('anonymous') else (payment.get('name') or 'Someone')
    amount_text = format_inr(payment['amount'])

    try:
        create_notification(
            payment['to_user'], 'payment',
            'New support received!',
            f"{supporter_name} supported {campaign['title'] if campaign else 'you'} with {amount_text}",
            campaign_id=payment['campaign_id'],
            payment_id=payment['id'],
            link='/dashboard',
        )
    except Exception as e:
        logger.error(f"Payment notification failed for {payment['oid']}: {e}")

    if campaign and credit:
        before, after, goal = credit
        for percentage in crossed_milestones(before, after, goal):
            _milestone_reached(campaign, creator, percentage, after, goal)

    if not _emails_on():
        return

    if setting('EMAIL_SEND_RECEIPTS', True) and payment.get('email'):
        try:
            email_service.send_payment_confirmation(payment['email'], {
                'supporter_name': payment.get('name'),
                'amount': payment['amount'],
                'campaign_title': campaign['title'] if campaign else (creator or {}).get('name', ''),
                'creator_name': (creator or {}).get('name'),
                'payment_id': payment.get('payment_id'),
                'message': payment.get('message'),
                'campaign_url': _campaign_url(campaign) if campaign else None,
            })
        except Exception as e:
            logger.error(f"Receipt email failed for {payment['oid']}: {e}")

    if creator and creator.get('email_notifications', 1):
        try:
            email_service.send_creator_notification(creator['email'], {
                'creator_name': creator['name'],
                'supporter_name': payment.get('name'),
                'anonymous': payment.get('anonymous'),
                'amount': payment['amount'],
                'campaign_title': campaign['title'] if campaign else None,
                'message': payment.get('message'),
            })
        except Exception as e:
            logger.error(f"Creator email failed for {payment['oid']}: {e}")


def _milestone_reached(campaign, creator, percentage, current_amount, goal):
    try:
        create_notification(
            campaign['creator_id'], 'milestone',
            f"{percentage}% funded!",
            f"\"{campaign['title']}\" reached {percentage}% of its goal",
            campaign_id=campaign['id'],
            link=f"/campaign/{campaign['slug']}",
        )
    except Exception as e:
        logger.error(f"Milestone notification failed for campaign {campaign['id']}: {e}")

    db_log('info', 'payments', f"Campaign {campaign['id']} reached {percentage}%",
           {'current_amount': current_amount, 'goal': goal})

    if creator and _emails_on():
        try:
            email_service.send_milestone_email(creator['email'], {
                'creator_name': creator['name'],
                'campaign_title': campaign['title'],
                'percentage': percentage,
                'current_amount': current_amount,
                'goal_amount': goal,
                'campaign_url': _campaign_url(campaign),
            })
        except Exception as e:
            logger.error(f"Milestone email failed for campaign {campaign['id']}: {e}")


def finalize_payment(oid, gateway_payment_id):
    """
    Complete an order and fire its side effects exactly once.
    Returns (payment, already_done); payment is None for an unknown order.
    """
    payment, credit, already_done = complete_payment(oid, gateway_payment_id)
    if payment is not None and not already_done:
        after_payment(payment, credit)
    return payment, already_done
