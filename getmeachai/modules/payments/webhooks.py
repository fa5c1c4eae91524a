"""
Razorpay Webhook
================

Every handler is safe to replay: Razorpay retries deliveries, so
completing an order or recording a subscription charge twice is a no-op.
"""

import json
import logging
from flask import request, jsonify

from getmeachai.core import db_log, setting
from getmeachai.modules.auth.database import get_user_by_id
from getmeachai.modules.notifications.models import create_notification
from . import razorpay_bp
from .gateway import verify_webhook_signature
from .models import (
    get_subscription_by_gateway_id, set_subscription_status, record_subscription_charge,
    advance_billing_date, mark_payment_failed,
)
from .service import finalize_payment, after_payment

logger = logging.getLogger(__name__)


def _db_log(level, message, details=None):
    db_log(level, 'razorpay', message, details)


def _entity(event, name):
    return ((event.get('payload') or {}).get(name) or {}).get('entity') or {}


def handle_payment_captured(event):
    entity = _entity(event, 'payment')
    order_id = entity.get('order_id')
    if not order_id:
        return
    payment, already_done = finalize_payment(order_id, entity.get('id'))
    if payment is None:
        logger.warning(f"payment.captured for unknown order {order_id}")
    elif not already_done:
        _db_log('info', f'Payment {order_id} captured via webhook', {'amount': payment['amount']})


def handle_payment_failed(event):
    entity = _entity(event, 'payment')
    order_id = entity.get('order_id')
    if order_id and mark_payment_failed(order_id, entity.get('id')):
        _db_log('warning', f'Payment {order_id} failed', {
            'reason': entity.get('error_description'),
        })


def _subscription_for(event):
    entity = _entity(event, 'subscription')
    subscription = get_subscription_by_gateway_id(entity.get('id')) if entity.get('id') else None
    if subscription is None:
        logger.warning(f"{event.get('event')} for unknown subscription {entity.get('id')}")
    return subscription


def handle_subscription_activated(event):
    subscription = _subscription_for(event)
    if subscription is None:
        return
    set_subscription_status(subscription['id'], 'active')
    subscriber = get_user_by_id(subscription['subscriber_id'])
    create_notification(
        subscription['creator_id'], 'subscription',
        'New recurring supporter!',
        f"{(subscriber or {}).get('name', 'Someone')} started a {subscription['frequency']} subscription",
        campaign_id=subscription['campaign_id'],
        link='/dashboard',
    )


def handle_subscription_charged(event):
    subscription = _subscription_for(event)
    if subscription is None:
        return

    payment_entity = _entity(event, 'payment')
    gateway_payment_id = payment_entity.get('id')
    if not gateway_payment_id:
        logger.warning(f"subscription.charged without a payment for {subscription['razorpay_subscription_id']}")
        return

    amount = subscription['amount']
    if payment_entity.get('amount'):
        amount = int(payment_entity['amount']) // 100

    subscriber = get_user_by_id(subscription['subscriber_id']) or {}
    payment, credit = record_subscription_charge(
        subscription, gateway_payment_id, amount,
        subscriber.get('name', 'Subscriber'), subscriber.get('email', payment_entity.get('email', '')),
    )
    if payment is None:
        return

    upcoming = advance_billing_date(subscription)
    after_payment(payment, credit)
    _db_log('info', f"Subscription {subscription['id']} charged", {
        'amount': amount, 'next_billing_date': upcoming.isoformat(timespec='seconds'),
    })


def _status_handler(status, ended=False):
    def handler(event):
        subscription = _subscription_for(event)
        if subscription is None:
            return
        set_subscription_status(subscription['id'], status, ended=ended)
        _db_log('info', f"Subscription {subscription['id']} {status}")
    return handler


EVENT_HANDLERS = {
    'payment.captured': handle_payment_captured,
    'payment.failed': handle_payment_failed,
    'subscription.activated': handle_subscription_activated,
    'subscription.charged': handle_subscription_charged,
    'subscription.cancelled': _status_handler('cancelled', ended=True),
    'subscription.paused': _status_handler('paused'),
    'subscription.resumed': _status_handler('active'),
    'subscription.completed': _status_handler('expired', ended=True),
}


@razorpay_bp.route('/webhook', methods=['POST'])
def webhook():
    raw_body = request.get_data()
    signature = request.headers.get('X-Razorpay-Signature')
    secret = setting('RAZORPAY_WEBHOOK_SECRET')

    if not secret:
        if setting('ENV', 'development') == 'production':
            logger.error("RAZORPAY_WEBHOOK_SECRET is not configured")
            return jsonify({'error': 'Webhook secret not configured'}), 500
        logger.warning("RAZORPAY_WEBHOOK_SECRET not set - processing webhook without verification")
    elif not verify_webhook_signature(raw_body, signature, secret):
        logger.warning("Invalid Razorpay webhook signature")
        _db_log('warning', 'Invalid webhook signature', {'ip': request.remote_addr})
        return jsonify({'error': 'Invalid signature'}), 400

    try:
        event = json.loads(raw_body or b'{}')
    except ValueError:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if not isinstance(event, dict):
        logger.warning("Razorpay webhook body is not a JSON object")
        return jsonify({'error': 'Invalid JSON payload'}), 400

    event_name = event.get('event')
    handler = EVENT_HANDLERS.get(event_name)
    if handler is None:
        logger.info(f"Ignoring unhandled Razorpay event: {event_name}")
        return jsonify({'status': 'ok'})

    try:
        handler(event)
    except Exception as e:
        logger.error(f"Error handling {event_name}: {e}")
        _db_log('error', f'Error handling {event_name}', {'error': str(e)})
        return jsonify({'error': 'Webhook processing failed'}), 500

    return jsonify({'status': 'ok'})
