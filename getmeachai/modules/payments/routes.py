"""
Payments Routes
===============

Checkout runs in two steps: /create opens a gateway order and a pending
payment, /verify checks the checkout signature and completes it. The
webhook (webhooks.py) completes the same order idempotently if the browser
never comes back.
"""

import logging
from flask import request, jsonify, session

from getmeachai.core import rate_limit, login_required, db_log, setting
from getmeachai.core.validation import (
    ValidationError, validate_string, validate_number, validate_email, validate_enum, validate_object,
)
from getmeachai.modules.auth.database import get_user_by_id
from getmeachai.modules.campaigns.models import get_campaign
from . import payments_bp
from .gateway import RazorpayClient, GatewayError, verify_payment_signature
from .models import (
    FREQUENCIES, create_payment, get_payment_by_oid, mark_payment_failed, create_subscription,
    get_subscription, list_user_subscriptions, set_subscription_status,
)
from .service import finalize_payment

logger = logging.getLogger(__name__)


def _db_log(level, message, details=None):
    db_log(level, 'payments', message, details)


def _amount_validator(v):
    return validate_number(v, 'Amount', min_value=setting('PAYMENT_MIN_AMOUNT', 10),
                           max_value=setting('PAYMENT_MAX_AMOUNT', 9999999), integer=True)


def _gateway_error(e, action):
    logger.error(f"Gateway error while {action}: {e.message}")
    _db_log('error', f'Gateway error while {action}', {'error': e.message, 'status': e.status_code})
    # 500 means our own keys are missing; anything else is the gateway's fault
    return jsonify({'error': e.message}), 500 if e.status_code == 500 else 502


@payments_bp.route('/create', methods=['POST'])
@rate_limit('sensitive')
def create_order():
    data = request.get_json(silent=True) or {}
    try:
        cleaned = validate_object(data, {
            'amount': (_amount_validator, {'required': True}),
            'campaignId': (lambda v: validate_number(v, 'Campaign', min_value=1, integer=True),
                           {'required': True}),
            'name': (lambda v: validate_string(v, 'Name', min_length=1, max_length=100), {'required': True}),
            'email': (validate_email, {'required': True}),
            'message': lambda v: validate_string(v, 'Message', max_length=500, allow_empty=True),
            'rewardId': lambda v: validate_string(v, 'Reward', max_length=64),
        })
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    campaign = get_campaign(cleaned['campaignId'])
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404
    if campaign['status'] != 'active':
        return jsonify({'error': 'Campaign is not accepting payments'}), 400

    amount = cleaned['amount']
    reward_id = cleaned.get('rewardId')
    if reward_id:
        reward = next((r for r in campaign['rewards'] if r.get('id') == reward_id), None)
        if reward is None:
            return jsonify({'error': 'Reward not found'}), 400
        limit = reward.get('limited_quantity')
        if limit is not None and reward.get('claimed_count', 0) >= limit:
            return jsonify({'error': 'This reward is sold out'}), 400
        if amount < reward.get('amount', 0):
            return jsonify({'error': f"This reward requires at least {reward['amount']}"}), 400

    currency = setting('PAYMENT_CURRENCY', 'INR')
    client = RazorpayClient.for_creator(campaign['creator_id'])
    try:
        order = client.create_order(
            amount * 100, currency,
            receipt=f"c{campaign['id']}_{session.get('user_id') or 'guest'}",
            notes={'campaign_id': campaign['id'], 'creator': campaign['username'], 'reward_id': reward_id},
        )
    except GatewayError as e:
        return _gateway_error(e, 'creating order')

    payment = create_payment(
        order['id'], cleaned['name'], cleaned['email'], amount, campaign['creator_id'],
        campaign_id=campaign['id'], user_id=session.get('user_id'), currency=currency,
        message=cleaned.get('message', ''), reward_id=reward_id,
        anonymous=bool(data.get('anonymous')), hide_amount=bool(data.get('hideAmount')),
    )
    logger.info(f"Order {order['id']} created for campaign {campaign['id']} ({amount} {currency})")

    return jsonify({
        'success': True,
        'orderId': order['id'],
        'amount': order.get('amount', amount * 100),
        'currency': order.get('currency', currency),
        'keyId': client.key_id,
        'paymentId': payment['id'],
    })


@payments_bp.route('/verify', methods=['POST'])
@rate_limit('sensitive')
def verify():
    data = request.get_json(silent=True) or {}
    order_id = data.get('razorpay_order_id')
    payment_id = data.get('razorpay_payment_id')
    signature = data.get('razorpay_signature')

    if not (order_id and payment_id and signature):
        return jsonify({'error': 'Missing required payment fields'}), 400

    pending = get_payment_by_oid(order_id)
    if not pending:
        return jsonify({'error': 'Payment not found'}), 404

    secret = RazorpayClient.for_creator(pending['to_user']).key_secret
    if not verify_payment_signature(order_id, payment_id, signature, secret):
        logger.warning(f"Invalid payment signature for order {order_id}")
        _db_log('warning', 'Invalid payment signature', {'order_id': order_id})
        mark_payment_failed(order_id, payment_id)
        return jsonify({'error': 'Invalid payment signature'}), 400

    try:
        payment, already_done = finalize_payment(order_id, payment_id)
    except Exception as e:
        logger.error(f"Error completing payment {order_id}: {e}")
        _db_log('error', 'Error completing payment', {'order_id': order_id, 'error': str(e)})
        return jsonify({'error': 'Failed to complete payment'}), 500

    if not already_done:
        _db_log('info', f'Payment {order_id} verified', {'amount': payment['amount']})
    return jsonify({'success': True, 'alreadyProcessed': already_done, 'payment': {
        'id': payment['id'],
        'amount': payment['amount'],
        'status': payment['status'],
        'campaign_id': payment['campaign_id'],
    }})


# ==================== Subscriptions ====================

@payments_bp.route('/subscription', methods=['POST'])
@login_required
@rate_limit('sensitive')
def create_recurring():
    if not setting('FEATURE_SUBSCRIPTIONS', True):
        return jsonify({'error': 'Subscriptions are disabled'}), 404

    data = request.get_json(silent=True) or {}
    try:
        cleaned = validate_object(data, {
            'amount': (_amount_validator, {'required': True}),
            'campaignId': (lambda v: validate_number(v, 'Campaign', min_value=1, integer=True),
                           {'required': True}),
            'frequency': lambda v: validate_enum(v, tuple(FREQUENCIES), 'Frequency'),
        })
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    campaign = get_campaign(cleaned['campaignId'])
    if not campaign:
        return jsonify({'error': 'Campaign not found'}), 404
    if campaign['status'] != 'active':
        return jsonify({'error': 'Campaign is not accepting payments'}), 400

    frequency = cleaned.get('frequency', 'monthly')
    amount = cleaned['amount']
    user_id = session['user_id']
    client = RazorpayClient.for_creator(campaign['creator_id'])
    try:
        plan = client.create_plan(amount * 100, frequency, f"Support for {campaign['title']}",
                                  setting('PAYMENT_CURRENCY', 'INR'))
        gateway_subscription = client.create_subscription(plan['id'], notes={
            'campaign_id': campaign['id'], 'creator_id': campaign['creator_id'], 'subscriber_id': user_id,
        })
    except GatewayError as e:
        return _gateway_error(e, 'creating subscription')

    subscription = create_subscription(user_id, campaign['creator_id'], campaign['id'],
                                       gateway_subscription['id'], amount, frequency)
    _db_log('info', f"Subscription {subscription['id']} created",
            {'campaign_id': campaign['id'], 'frequency': frequency, 'amount': amount})

    return jsonify({
        'success': True,
        'subscription': {
            'id': gateway_subscription['id'],
            'subscriptionId': subscription['id'],
            'amount': amount,
            'frequency': frequency,
            'nextBillingDate': subscription['next_billing_date'],
            'shortUrl': gateway_subscription.get('short_url'),
        },
        'keyId': client.key_id,
    }), 201


@payments_bp.route('/subscriptions', methods=['GET'])
@login_required
def my_subscriptions():
    subscriptions = list_user_subscriptions(session['user_id'])
    return jsonify({'subscriptions': subscriptions, 'total': len(subscriptions)})


_SUBSCRIPTION_ACTIONS = {
    'cancel': ('cancel_subscription', 'cancelled', ('active', 'paused')),
    'pause': ('pause_subscription', 'paused', ('active',)),
    'resume': ('resume_subscription', 'active', ('paused',)),
}


@payments_bp.route('/subscriptions/<int:subscription_id>/<action>', methods=['POST'])
@login_required
@rate_limit('sensitive')
def change_subscription(subscription_id, action):
    if action not in _SUBSCRIPTION_ACTIONS:
        return jsonify({'error': 'Invalid action'}), 400

    subscription = get_subscription(subscription_id)
    if not subscription:
        return jsonify({'error': 'Subscription not found'}), 404
    if subscription['subscriber_id'] != session['user_id']:
        return jsonify({'error': 'Not your subscription'}), 403

    method_name, new_status, allowed_from = _SUBSCRIPTION_ACTIONS[action]
    if subscription['status'] not in allowed_from:
        return jsonify({'error': f"Cannot {action} a subscription that is {subscription['status']}"}), 400

    client = RazorpayClient.for_creator(subscription['creator_id'])
    try:
        getattr(client, method_name)(subscription['razorpay_subscription_id'])
    except GatewayError as e:
        return _gateway_error(e, f'{action} subscription')

    set_subscription_status(subscription_id, new_status, ended=(action == 'cancel'))
    _db_log('info', f'Subscription {subscription_id} {new_status}', {'by': session['user_id']})
    return jsonify({'success': True, 'subscription': get_subscription(subscription_id)})


@payments_bp.route('/subscriptions/<int:subscription_id>', methods=['GET'])
@login_required
def subscription_detail(subscription_id):
    subscription = get_subscription(subscription_id)
    if not subscription or subscription['subscriber_id'] != session['user_id']:
        return jsonify({'error': 'Subscription not found'}), 404
    creator = get_user_by_id(subscription['creator_id'])
    subscription['creator_username'] = creator['username'] if creator else None
    return jsonify({'subscription': subscription})
