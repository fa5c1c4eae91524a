"""
Email Module
============

Transactional email for campaigns and supporters: welcome, payment
receipts, creator alerts, milestones, campaign updates and the weekly
creator summary. Provider is resend, ses or smtp (EMAIL_PROVIDER).
"""

from .email_service import EmailService, email_service, format_inr

__all__ = ['EmailService', 'email_service', 'format_inr']
