"""
Payments Module
===============

Razorpay checkout and recurring support.

Provides:
- POST /api/payments/create -- gateway order + pending payment
- POST /api/payments/verify -- checkout signature, credits the campaign
- POST /api/payments/subscription, GET /api/payments/subscriptions
- POST /api/payments/subscriptions/<id>/cancel|pause|resume
- POST /api/razorpay/webhook -- gateway events
"""

from flask import Blueprint

payments_bp = Blueprint('payments', __name__, url_prefix='/api/payments')
razorpay_bp = Blueprint('razorpay', __name__, url_prefix='/api/razorpay')

from . import routes, webhooks
