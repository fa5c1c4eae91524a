"""
Razorpay Gateway
================

Thin REST client for the Razorpay v1 API plus the HMAC checks used by
checkout verification and webhooks.
"""

import hmac
import hashlib
import logging

import requests

from getmeachai.core.config import setting
from getmeachai.modules.auth.database import get_payment_keys

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
PERIODS = {
    'monthly': ('monthly', 1),
    'quarterly': ('monthly', 3),
    'yearly': ('yearly', 1),
}


class GatewayError(Exception):
    def __init__(self, message, status_code=None, response=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


def _hmac_hex(secret, message):
    if isinstance(message, str):
        message = message.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id, payment_id, signature, secret):
    """Checkout signature: HMAC-SHA256 of "<order_id>|<payment_id>" with the key secret"""
    if not (order_id and payment_id and signature and secret):
        return False
    expected = _hmac_hex(secret, f"{order_id}|{payment_id}")
    return hmac.compare_digest(expected, signature)


def verify_webhook_signature(raw_body, signature, secret):
    """Webhook signature: HMAC-SHA256 of the raw request body with the webhook secret"""
    if not (signature and secret):
        return False
    expected = _hmac_hex(secret, raw_body or b'')
    return hmac.compare_digest(expected, signature)


class RazorpayClient:
    def __init__(self, key_id=None, key_secret=None, base_url=None, timeout=DEFAULT_TIMEOUT):
        self.key_id = key_id or setting('RAZORPAY_KEY_ID')
        self.key_secret = key_secret or setting('RAZORPAY_KEY_SECRET')
        self.base_url = (base_url or setting('RAZORPAY_API_URL') or 'https://api.razorpay.com/v1').rstrip('/')
        self.timeout = timeout

    @classmethod
    def for_creator(cls, creator_id):
        """Use the creator's own Razorpay keys when they stored them, else the platform keys"""
        key_id, key_secret = get_payment_keys(creator_id)
        if key_id and key_secret:
            return cls(key_id, key_secret)
        return cls()

    @property
    def configured(self):
        return bool(self.key_id and self.key_secret)

    def _request(self, method, path, payload=None):
        if not self.configured:
            raise GatewayError('Payment gateway not configured', 500)

        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, json=payload, auth=(self.key_id, self.key_secret),
                                        timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise GatewayError('Payment gateway timed out', 504)
        except requests.exceptions.RequestException as e:
            raise GatewayError(f'Payment gateway unreachable: {e}', 502)

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code not in (200, 201):
            description = (data.get('error') or {}).get('description') if isinstance(data, dict) else None
            logger.error(f"Razorpay {method} {path} failed ({response.status_code}): {data}")
            raise GatewayError(description or 'Payment gateway request failed', response.status_code, data)
        return data

    # ==================== Orders ====================

    def create_order(self, amount_paise, currency='INR', receipt=None, notes=None):
        payload = {'amount': int(amount_paise), 'currency': currency, 'payment_capture': 1}
        if receipt:
            payload['receipt'] = receipt[:40]
        if notes:
            payload['notes'] = {k: str(v) for k, v in notes.items() if v is not None}
        return self._request('POST', '/orders', payload)

    # ==================== Subscriptions ====================

    def create_plan(self, amount_paise, frequency, name, currency='INR'):
        period, interval = PERIODS.get(frequency, PERIODS['monthly'])
        return self._request('POST', '/plans', {
            'period': period,
            'interval': interval,
            'item': {'name': name[:100], 'amount': int(amount_paise), 'currency': currency},
        })

    def create_subscription(self, plan_id, total_count=120, notes=None):
        payload = {'plan_id': plan_id, 'total_count': total_count, 'customer_notify': 1}
        if notes:
            payload['notes'] = {k: str(v) for k, v in notes.items() if v is not None}
        return self._request('POST', '/subscriptions', payload)

    def cancel_subscription(self, subscription_id, at_cycle_end=False):
        return self._request('POST', f'/subscriptions/{subscription_id}/cancel',
                             {'cancel_at_cycle_end': 1 if at_cycle_end else 0})

    def pause_subscription(self, subscription_id):
        return self._request('POST', f'/subscriptions/{subscription_id}/pause', {'pause_at': 'now'})

    def resume_subscription(self, subscription_id):
        return self._request('POST', f'/subscriptions/{subscription_id}/resume', {'resume_at': 'now'})
