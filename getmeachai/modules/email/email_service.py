"""
Email Service Module
====================

Configurable email service supporting Resend, Amazon SES, and SMTP (e.g. Gmail).
Provider is selected via EMAIL_PROVIDER config ('resend', 'ses', or 'smtp').
Every send attempt is recorded in the email_logs table of APP_DB.
"""

import re
import time
import html
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import List, Optional, Dict, Any

import boto3
import resend
from botocore.exceptions import BotoCoreError, ClientError

from getmeachai.core.database import Database, now_iso

logger = logging.getLogger(__name__)

# Rejects consecutive dots, leading/trailing dots in local part
_VALID_EMAIL = re.compile(r'^[a-zA-Z0-9_%+-]+(\.[a-zA-Z0-9_%+-]+)*@[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,}$')

MAX_ATTEMPTS = 3
BATCH_SIZE = 10

EMAIL_LOGS_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS email_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        recipient TEXT NOT NULL,
        subject TEXT NOT NULL,
        email_type TEXT,
        status TEXT NOT NULL,
        attempts INTEGER DEFAULT 1,
        error_message TEXT,
        sent_at TEXT NOT NULL
    )
    """,
]

MILESTONE_COPY = {
    25: ('Quarter Way There!', "You've reached 25% of your goal. Keep the momentum going!", '#3b82f6', '#dbeafe'),
    50: ('Halfway to Success!', "Amazing! You're 50% funded and doing great.", '#f59e0b', '#fef3c7'),
    75: ('Almost There!', 'Incredible! 75% funded. One final push to reach your goal!', '#8b5cf6', '#ede9fe'),
    100: ('Goal Achieved!', "Congratulations! You've reached your funding goal!", '#10b981', '#d1fae5'),
}


def format_inr(amount, symbol=True):
    """Indian digit grouping: 1234567 -> ₹12,34,567 (paise shown only when present)"""
    amount = amount or 0
    negative = amount < 0
    whole, paise = divmod(int(round(abs(amount) * 100)), 100)

    digits = str(whole)
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ','.join(groups + [tail])

    text = f"{digits}.{paise:02d}" if paise else digits
    if symbol:
        text = f"₹{text}"
    return f"-{text}" if negative else text


def _e(value):
    return html.escape(str(value)) if value is not None else ''


def init_email_db():
    Database.init_schema(Database.get_db_path(), EMAIL_LOGS_SCHEMA)


class EmailService:
    """
    Configurable email service supporting Resend, Amazon SES, and SMTP.

    Configuration (set in Flask app.config):
        EMAIL_ENABLED: master switch; when false nothing is sent
        EMAIL_PROVIDER: 'smtp' (default), 'resend', or 'ses'
        RESEND_API_KEY: Resend API key (provider 'resend')
        AWS_REGION: AWS region for SES (provider 'ses')
        EMAIL_HOST / EMAIL_PORT / EMAIL_SECURE / EMAIL_USER / EMAIL_PASSWORD: SMTP settings
        EMAIL_ADDRESS / EMAIL_FROM_NAME: sender
        APP_NAME / APP_URL / SUPPORT_EMAIL: branding and links
        EMAIL_RETRY_DELAY: seconds between attempts (multiplied by attempt number)
    """

    def __init__(self, app=None):
        self.enabled = True
        self.provider = 'smtp'
        self.api_key = None
        self.ses_client = None
        self.sender_email = None
        self.from_name = None
        self.smtp_host = 'smtp.gmail.com'
        self.smtp_port = 587
        self.smtp_secure = False
        self.smtp_user = None
        self.smtp_password = None
        self.brand_name = 'Get Me A Chai'
        self.website_url = 'http://localhost:5000'
        self.support_email = 'support@getmeachai.com'
        self.retry_delay = 1.0
        self.batch_delay = 1.0
        self.style = {}

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize email service with Flask app configuration"""
        self.enabled = bool(app.config.get('EMAIL_ENABLED', True))
        self.provider = (app.config.get('EMAIL_PROVIDER') or 'smtp').lower()
        logger.info(f"=== INITIALIZING EMAIL SERVICE (provider: {self.provider}) ===")

        self.sender_email = app.config.get('EMAIL_ADDRESS', 'noreply@getmeachai.com')
        self.from_name = app.config.get('EMAIL_FROM_NAME', 'Get Me A Chai')
        self.brand_name = app.config.get('APP_NAME', 'Get Me A Chai')
        self.website_url = (app.config.get('APP_URL') or 'http://localhost:5000').rstrip('/')
        self.support_email = app.config.get('SUPPORT_EMAIL', 'support@getmeachai.com')
        self.retry_delay = float(app.config.get('EMAIL_RETRY_DELAY', 1.0))
        self.batch_delay = float(app.config.get('EMAIL_BATCH_DELAY', 1.0))
        custom_style = app.config.get('EMAIL_STYLE', {})
        self.style = {
            'bg': custom_style.get('bg', '#f9fafb'),
            'card_bg': custom_style.get('card_bg', '#ffffff'),
            'header_bg': custom_style.get('header_bg', '#7c2d12'),
            'header_text': custom_style.get('header_text', '#fff7ed'),
            'text': custom_style.get('text', '#1f2937'),
            'text_secondary': custom_style.get('text_secondary', '#6b7280'),
            'accent': custom_style.get('accent', '#ea580c'),
            'highlight_bg': custom_style.get('highlight_bg', '#fff7ed'),
            'border': custom_style.get('border', '#e5e7eb'),
            'btn_bg': custom_style.get('btn_bg', '#ea580c'),
            'btn_text': custom_style.get('btn_text', '#ffffff'),
            'font': custom_style.get('font', "-apple-system, 'Segoe UI', Roboto, sans-serif"),
        }

        if not self.enabled:
            logger.info("EMAIL_ENABLED is false - email sending disabled")
            return

        if self.provider == 'ses':
            self._init_ses(app)
        elif self.provider == 'resend':
            self._init_resend(app)
        else:
            self._init_smtp(app)

    def _init_resend(self, app):
        self.api_key = app.config.get('RESEND_API_KEY')
        if not self.api_key:
            logger.warning("RESEND_API_KEY not configured - email sending disabled")
            return
        resend.api_key = self.api_key
        logger.info("Resend API client initialized successfully")

    def _init_ses(self, app):
        aws_region = app.config.get('AWS_REGION', 'ap-south-1')
        try:
            self.ses_client = boto3.client('ses', region_name=aws_region)
            logger.info(f"SES client initialized successfully (region: {aws_region})")
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to initialize SES client: {e}")

    def _init_smtp(self, app):
        self.smtp_host = app.config.get('EMAIL_HOST', 'smtp.gmail.com')
        self.smtp_port = int(app.config.get('EMAIL_PORT', 587))
        self.smtp_secure = bool(app.config.get('EMAIL_SECURE', False))
        self.smtp_user = app.config.get('EMAIL_USER') or self.sender_email
        self.smtp_password = app.config.get('EMAIL_PASSWORD')

        if not self.smtp_password:
            logger.warning("EMAIL_PASSWORD not configured - SMTP email sending disabled")
            return
        logger.info(f"SMTP configured: {self.smtp_host}:{self.smtp_port}")

    def _log_email(self, recipient: str, subject: str, email_type: str,
                   status: str, attempts: int = 1, error_message: str = None):
        """Log email attempt to database"""
        try:
            with Database.connect(Database.get_db_path()) as conn:
                conn.execute("""
                    INSERT INTO email_logs (recipient, subject, email_type, status, attempts,
                                            error_message, sent_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (recipient, subject, email_type, status, attempts, error_message, now_iso()))
        except Exception as e:
            logger.error(f"Failed to log email to database: {e}")

    # ==================== Sending ====================

    def send_email(self, to: List[str], subject: str, html_body: str,
                   text_body: Optional[str] = None, email_type: str = 'other') -> bool:
        """
        Send an email to each recipient via the configured provider.

        Each recipient gets up to MAX_ATTEMPTS tries. Returns True if at least
        one email was sent.
        """
        if not self.enabled:
            logger.info(f"Email disabled, not sending '{subject}'")
            return False

        if not to:
            logger.error("No recipients provided")
            return False

        if not self.sender_email:
            logger.error("Sender email not configured")
            return False

        valid_recipients = []
        for addr in to:
            if addr and _VALID_EMAIL.match(addr):
                valid_recipients.append(addr)
            else:
                logger.warning(f"Skipping invalid email address: {addr}")

        if not valid_recipients:
            logger.error("No valid recipients after filtering")
            return False

        sent_count = 0
        for recipient in valid_recipients:
            success, attempts, error = self._send_with_retry(recipient, subject, html_body, text_body)
            if success:
                self._log_email(recipient, subject, email_type, 'sent', attempts)
                sent_count += 1
            else:
                self._log_email(recipient, subject, email_type, 'failed', attempts, error)

        failed_count = len(valid_recipients) - sent_count
        if failed_count:
            logger.warning(f"Email send completed with errors: {sent_count} sent, {failed_count} failed")
        else:
            logger.info(f"Email sent successfully to {sent_count} recipients: {subject}")
        return sent_count > 0

    def _send_with_retry(self, recipient, subject, html_body, text_body):
        """(success, attempts, last_error)"""
        error = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                if self._send_one(recipient, subject, html_body, text_body):
                    return True, attempt, None
                error = 'Provider returned failure'
            except Exception as send_error:
                error = str(send_error)
                logger.error(f"Error sending to {recipient} (attempt {attempt}): {send_error}")

            if attempt < MAX_ATTEMPTS and self.retry_delay:
                time.sleep(self.retry_delay * attempt)
        return False, MAX_ATTEMPTS, error

    def _send_one(self, recipient, subject, html_body, text_body):
        if self.provider == 'ses':
            return self._send_via_ses(recipient, subject, html_body, text_body)
        if self.provider == 'resend':
            return self._send_via_resend(recipient, subject, html_body, text_body)
        return self._send_via_smtp(recipient, subject, html_body, text_body)

    def send_bulk(self, messages: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        Send many individual emails in batches of BATCH_SIZE.

        Each message is a dict with to, subject, html and optionally text/type.
        """
        results = {'sent': 0, 'failed': 0}
        for start in range(0, len(messages), BATCH_SIZE):
            batch = messages[start:start + BATCH_SIZE]
            for message in batch:
                ok = self.send_email([message['to']], message['subject'], message['html'],
                                     message.get('text'), message.get('type', 'other'))
                results['sent' if ok else 'failed'] += 1

            if start + BATCH_SIZE < len(messages) and self.batch_delay:
                time.sleep(self.batch_delay)

        logger.info(f"Bulk send finished: {results['sent']} sent, {results['failed']} failed")
        return results

    def _send_via_resend(self, recipient: str, subject: str, html_body: str,
                         text_body: Optional[str] = None) -> bool:
        """Send a single email via Resend API"""
        if not self.api_key:
            logger.error("Resend API key not configured")
            return False

        email_params = {
            "from": formataddr((self.from_name, self.sender_email)),
            "to": recipient,
            "subject": subject,
            "html": html_body
        }
        if text_body:
            email_params["text"] = text_body

        r = resend.Emails.send(email_params)
        if r and r.get('id'):
            logger.debug(f"Email sent successfully to: {recipient}, ID: {r['id']}")
            return True
        logger.error(f"Resend error for {recipient}: {r}")
        return False

    def _send_via_ses(self, recipient: str, subject: str, html_body: str,
                      text_body: Optional[str] = None) -> bool:
        """Send a single email via Amazon SES"""
        if not self.ses_client:
            logger.error("SES client not initialized")
            return False

        body = {'Html': {'Charset': 'UTF-8', 'Data': html_body}}
        if text_body:
            body['Text'] = {'Charset': 'UTF-8', 'Data': text_body}

        try:
            response = self.ses_client.send_email(
                Source=formataddr((self.from_name, self.sender_email)),
                Destination={'ToAddresses': [recipient]},
                Message={
                    'Subject': {'Charset': 'UTF-8', 'Data': subject},
                    'Body': body,
                },
            )
            logger.debug(f"Email sent successfully to: {recipient}, MessageId: {response.get('MessageId', '')}")
            return True
        except ClientError as e:
            logger.error(f"SES error for {recipient}: {e.response['Error']['Message']}")
            return False

    def _send_via_smtp(self, recipient: str, subject: str, html_body: str,
                       text_body: Optional[str] = None) -> bool:
        """Send a single email via SMTP (e.g. Gmail)"""
        if not self.smtp_password:
            logger.error("SMTP password not configured")
            return False

        msg = MIMEMultipart('alternative')
        msg['From'] = formataddr((self.from_name, self.sender_email))
        msg['To'] = recipient
        msg['Subject'] = subject

        if text_body:
            msg.attach(MIMEText(text_body, 'plain', 'utf-8'))
        msg.attach(MIMEText(html_body, 'html', 'utf-8'))

        smtp_class = smtplib.SMTP_SSL if self.smtp_secure else smtplib.SMTP
        with smtp_class(self.smtp_host, self.smtp_port, timeout=30) as server:
            if not self.smtp_secure:
                server.starttls()
            server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)

        logger.info(f"SMTP email sent to {recipient}")
        return True

    # ==================== Layout ====================

    def _button(self, url: str, label: str) -> str:
        s = self.style
        return (f'<p style="text-align: center; margin: 32px 0;">'
                f'<a href="{_e(url)}" style="display: inline-block; background: {s["btn_bg"]}; '
                f'color: {s["btn_text"]}; padding: 14px 28px; border-radius: 8px; text-decoration: none; '
                f'font-weight: 600;">{_e(label)}</a></p>')

    def _layout(self, title: str, content: str, preheader: str = '') -> str:
        """Shared shell: brand header, content card, footer"""
        s = self.style
        return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{_e(title)}</title>
</head>
<body style="font-family: {s['font']}; line-height: 1.6; color: {s['text']}; background: {s['bg']}; max-width: 600px; margin: 0 auto; padding: 24px;">
    <div style="display: none; max-height: 0; overflow: hidden;">{_e(preheader)}</div>
    <div style="background: {s['card_bg']}; border: 1px solid {s['border']}; border-radius: 12px; overflow: hidden;">
        <div style="background: {s['header_bg']}; color: {s['header_text']}; padding: 28px; text-align: center;">
            <h1 style="font-size: 24px; margin: 0; letter-spacing: 1px;">&#9749; {_e(self.brand_name)}</h1>
        </div>

        <div style="padding: 36px 32px;">
            {content}
        </div>

        <div style="padding: 24px; text-align: center; font-size: 13px; color: {s['text_secondary']}; border-top: 1px solid {s['border']};">
            <p style="margin: 4px 0;">{_e(self.brand_name)} &middot; {datetime.now().year}</p>
            <p style="margin: 4px 0;">Questions? <a href="mailto:{_e(self.support_email)}" style="color: {s['accent']};">{_e(self.support_email)}</a></p>
            <p style="margin: 4px 0;"><a href="{self.website_url}/dashboard/settings" style="color: {s['text_secondary']};">Email preferences</a></p>
        </div>
    </div>
</body>
</html>
        """

    # ==================== Welcome ====================

    def send_welcome_email(self, email: str, name: Optional[str] = None,
                           username: Optional[str] = None) -> bool:
        """Welcome a new account and point them at their creator page"""
        subject = f"Welcome to {self.brand_name} - Let's Get Started!"
        html_body = self._get_welcome_template(name, username)
        page_url = f"{self.website_url}/{username}" if username else self.website_url
        text_body = f"""
Welcome, {name or 'Friend'}!

Thanks for joining {self.brand_name}. Create your first campaign, share your page
and start receiving support from your fans.

Your page: {page_url}

The {self.brand_name} Team
        """
        return self.send_email([email], subject, html_body, text_body, email_type='welcome')

    def _get_welcome_template(self, name, username):
        s = self.style
        page_url = f"{self.website_url}/{username}" if username else self.website_url
        steps = [
            ('Create a campaign', 'Tell your story, set a goal and add reward tiers.'),
            ('Share your page', f'Your page lives at {page_url}'),
            ('Post updates', 'Keep supporters in the loop as you make progress.'),
        ]
        steps_html = '\n'.join(
            f'<li style="margin: 8px 0;"><strong>{_e(title)}</strong> - {_e(body)}</li>'
            for title, body in steps
        )
        content = f"""
            <h2 style="font-size: 22px; margin: 0 0 16px 0;">Welcome, {_e(name or 'Friend')}!</h2>
            <p style="font-size: 16px;">Thanks for joining {_e(self.brand_name)}, the simplest way for creators to get support from the people who love their work.</p>
            <div style="background: {s['highlight_bg']}; padding: 20px 24px; border-radius: 8px; margin: 24px 0;">
                <p style="margin: 0 0 8px 0;"><strong>Getting started:</strong></p>
                <ol style="margin: 0; padding-left: 20px;">
                    {steps_html}
                </ol>
            </div>
            {self._button(f'{self.website_url}/dashboard', 'Go to your dashboard')}
        """
        return self._layout(f"Welcome to {self.brand_name}", content, 'Your creator journey starts here')

    # ==================== Password reset ====================

    def send_password_reset_email(self, email: str, name: Optional[str], reset_link: str) -> bool:
        subject = f"Reset your {self.brand_name} password"
        content = f"""
            <h2 style="font-size: 22px; margin: 0 0 16px 0;">Hi {_e(name or 'there')},</h2>
            <p style="font-size: 16px;">We received a request to reset the password for your {_e(self.brand_name)} account.</p>
            {self._button(reset_link, 'Reset password')}
            <p style="font-size: 14px; color: {self.style['text_secondary']};">This link expires in 1 hour. If you didn't ask for a reset, you can ignore this email.</p>
        """
        html_body = self._layout('Reset your password', content, 'Your password reset link')
        text_body = f"""
Hi {name or 'there'},

Reset your {self.brand_name} password here:
{reset_link}

This link expires in 1 hour. If you didn't ask for a reset, you can ignore this email.
        """
        return self.send_email([email], subject, html_body, text_body, email_type='password_reset')

    def send_password_changed_email(self, email: str, name: Optional[str]) -> bool:
        subject = f"Your {self.brand_name} password was changed"
        content = f"""
            <h2 style="font-size: 22px; margin: 0 0 16px 0;">Hi {_e(name or 'there')},</h2>
            <p style="font-size: 16px;">Your password was just changed. If this wasn't you, reply to this email straight away.</p>
        """
        html_body = self._layout('Password changed', content)
        text_body = f"Hi {name or 'there'},\n\nYour {self.brand_name} password was just changed. " \
                    f"If this wasn't you, reply to this email straight away.\n"
        return self.send_email([email], subject, html_body, text_body, email_type='password_changed')

    # ==================== Payment confirmation (supporter) ====================

    def send_payment_confirmation(self, email: str, details: Dict[str, Any]) -> bool:
        """
        Receipt for a supporter.

        details: supporter_name, amount, campaign_title, creator_name,
        payment_id, message, campaign_url
        """
        amount = format_inr(details.get('amount'))
        campaign_title = details.get('campaign_title', 'a campaign')
        subject = f'Payment Confirmed - {amount} to "{campaign_title}"'
        html_body = self._get_payment_confirmation_template(details)
        text_body = f"""
Thank you, {details.get('supporter_name') or 'Supporter'}!

Your contribution of {amount} to "{campaign_title}" by {details.get('creator_name', 'the creator')} was received.
Payment ID: {details.get('payment_id', 'N/A')}

The {self.brand_name} Team
        """
        return self.send_email([email], subject, html_body, text_body, email_type='payment_confirmation')

    def _get_payment_confirmation_template(self, details):
        s = self.style
        message = details.get('message')
        message_html = (
            f'<p style="font-style: italic; color: {s["text_secondary"]}; margin: 16px 0 0 0;">'
            f'"{_e(message)}"</p>'
        ) if message else ''
        content = f"""
            <h2 style="font-size: 22px; margin: 0 0 16px 0;">Thank you, {_e(details.get('supporter_name') or 'Supporter')}!</h2>
            <p style="font-size: 16px;">Your support means the world to {_e(details.get('creator_name', 'the creator'))}.</p>
            <div style="background: {s['highlight_bg']}; padding: 24px; border-radius: 8px; margin: 24px 0; text-align: center;">
                <div style="font-size: 36px; font-weight: 800; color: {s['accent']};">{format_inr(details.get('amount'))}</div>
                <div style="color: {s['text_secondary']};">to "{_e(details.get('campaign_title', ''))}"</div>
                {message_html}
            </div>
            <table style="width: 100%; font-size: 14px; color: {s['text_secondary']};">
                <tr><td>Payment ID</td><td style="text-align: right;">{_e(details.get('payment_id', 'N/A'))}</td></tr>
                <tr><td>Date</td><td style="text-align: right;">{datetime.now().strftime('%d %b %Y')}</td></tr>
            </table>
            {self._button(details.get('campaign_url') or self.website_url, 'View campaign')}
        """
        return self._layout('Payment confirmed', content, 'Your contribution was received')

    # ==================== Creator notification ====================

    def send_creator_notification(self, email: str, details: Dict[str, Any]) -> bool:
        """
        Tell a creator they received support.

        details: creator_name, supporter_name, anonymous, amount, campaign_title,
        message, campaign_url
        """
        amount = format_inr(details.get('amount'))
        display_name = 'Anonymous' if details.get('anonymous') else (details.get('supporter_name') or 'Someone')
        subject = f"New Payment: {amount} from {display_name}"
        s = self.style
        message = details.get('message')
        message_html = (
            f'<blockquote style="border-left: 4px solid {s["accent"]}; margin: 16px 0; padding: 8px 16px; '
            f'background: {s["highlight_bg"]};">{_e(message)}</blockquote>'
        ) if message else ''
        content = f"""
            <h2 style="font-size: 22px; margin: 0 0 16px 0;">You received {amount}!</h2>
            <p style="font-size: 16px;">Hi {_e(details.get('creator_name') or 'there')}, <strong>{_e(display_name)}</strong> just supported "{_e(details.get('campaign_title', 'your campaign'))}".</p>
            {message_html}
            <p style="font-size: 15px;">Say thanks with an update; supporters love hearing back.</p>
            {self._button(f'{self.website_url}/dashboard', 'Open dashboard')}
        """
        html_body = self._layout('New support received', content, f'{display_name} sent you {amount}')
        text_body = f"{display_name} supported \"{details.get('campaign_title', '')}\" with {amount}."
        return self.send_email([email], subject, html_body, text_body, email_type='creator_notification')

    # ==================== Milestones ====================

    def send_milestone_email(self, email: str, details: Dict[str, Any]) -> bool:
        """
        Celebrate a 25/50/75/100% funding threshold.

        details: creator_name, campaign_title, percentage, current_amount,
        goal_amount, campaign_url
        """
        percentage = details.get('percentage', 25)
        headline, message, color, bg = MILESTONE_COPY.get(percentage, MILESTONE_COPY[25])
        campaign_title = details.get('campaign_title', '')
        raised = format_inr(details.get('current_amount'))
        goal = format_inr(details.get('goal_amount'))
        subject = f'Milestone Reached: {percentage}% Funded - "{campaign_title}"'

        next_steps = ''
        if percentage == 100:
            next_steps = """
            <p style="font-size: 15px;">Your campaign can keep accepting support past the goal. Thank your supporters and share what comes next.</p>
            """
        else:
            next_steps = """
            <ul style="font-size: 15px;">
                <li>Post an update celebrating this milestone</li>
                <li>Share your campaign page again</li>
                <li>Thank your supporters personally</li>
            </ul>
            """

        content = f"""
            <div style="text-align: center;">
                <h2 style="font-size: 26px; margin: 0 0 8px 0; color: {color};">{headline}</h2>
                <p style="font-size: 16px;">{message}</p>
            </div>
            <div style="background: {bg}; border: 3px solid {color}; border-radius: 16px; padding: 28px; margin: 28px 0; text-align: center;">
                <div style="font-size: 44px; font-weight: 800; color: {color};">{percentage}%</div>
                <div>{raised} raised of {goal}</div>
                <div style="background: #e5e7eb; height: 10px; border-radius: 5px; margin-top: 16px; overflow: hidden;">
                    <div style="background: {color}; height: 100%; width: {min(percentage, 100)}%;"></div>
                </div>
            </div>
            <p>Hi {_e(details.get('creator_name') or 'there')}, "{_e(campaign_title)}" just crossed {percentage}% of its goal.</p>
            {next_steps}
            {self._button(details.get('campaign_url') or self.website_url, 'View campaign')}
        """
        html_body = self._layout(headline, content, f'{headline} "{campaign_title}" is {percentage}% funded!')
        text_body = (f'Congratulations! Your campaign "{campaign_title}" has reached {percentage}% of its goal '
                     f'({raised} of {goal}). View campaign: {details.get("campaign_url", self.website_url)}')
        return self.send_email([email], subject, html_body, text_body, email_type='milestone')

    # ==================== Campaign updates ====================

    def update_notification_message(self, email: str, details: Dict[str, Any]) -> Dict[str, Any]:
        """
        Build one update email for send_bulk.

        details: campaign_title, creator_name, update_title, content, update_url
        """
        campaign_title = details.get('campaign_title', '')
        update_title = details.get('update_title', '')
        excerpt = (details.get('content') or '')
        if len(excerpt) > 300:
            excerpt = excerpt[:300].rstrip() + '...'
        content = f"""
            <p style="color: {self.style['text_secondary']}; margin: 0;">{_e(details.get('creator_name') or 'The creator')} posted an update to</p>
            <h2 style="font-size: 20px; margin: 4px 0 24px 0;">{_e(campaign_title)}</h2>
            <div style="border: 1px solid {self.style['border']}; border-radius: 8px; padding: 20px;">
                <h3 style="margin: 0 0 12px 0;">{_e(update_title)}</h3>
                <p style="margin: 0; white-space: pre-line;">{_e(excerpt)}</p>
            </div>
            {self._button(details.get('update_url') or self.website_url, 'Read the full update')}
            <p style="font-size: 13px; color: {self.style['text_secondary']};">You're receiving this because you supported this campaign.</p>
        """
        return {
            'to': email,
            'subject': f'New Update: "{update_title}" - {campaign_title}',
            'html': self._layout(update_title, content, excerpt[:120]),
            'text': f"{update_title}\n\n{excerpt}\n\nRead more: {details.get('update_url', self.website_url)}",
            'type': 'update_notification',
        }

    def send_update_notification(self, recipients: List[str], details: Dict[str, Any]) -> Dict[str, int]:
        messages = [self.update_notification_message(email, details) for email in recipients if email]
        if not messages:
            return {'sent': 0, 'failed': 0}
        return self.send_bulk(messages)

    # ==================== Weekly summary ====================

    def send_weekly_summary(self, email: str, summary: Dict[str, Any]) -> bool:
        """
        Weekly creator digest.

        summary: creator_name, earnings, new_supporters, views, conversion_rate,
        recent_payments (name, amount, campaign_title), tips
        """
        s = self.style
        earnings = format_inr(summary.get('earnings'))
        stats = [
            ('Earned', earnings),
            ('New supporters', summary.get('new_supporters', 0)),
            ('Page views', summary.get('views', 0)),
            ('Conversion', f"{summary.get('conversion_rate', 0)}%"),
        ]
        stats_html = ''.join(
            f'<td style="text-align: center; padding: 12px; background: {s["highlight_bg"]}; border-radius: 8px;">'
            f'<div style="font-size: 20px; font-weight: 700; color: {s["accent"]};">{_e(value)}</div>'
            f'<div style="font-size: 12px; color: {s["text_secondary"]};">{label}</div></td>'
            for label, value in stats
        )

        payments = summary.get('recent_payments') or []
        if payments:
            rows = ''.join(
                f'<tr><td style="padding: 6px 0;">{_e(p.get("name") or "Anonymous")}</td>'
                f'<td style="color: {s["text_secondary"]};">{_e(p.get("campaign_title") or "")}</td>'
                f'<td style="text-align: right; font-weight: 600;">{format_inr(p.get("amount"))}</td></tr>'
                for p in payments[:5]
            )
            payments_html = f'<h3 style="margin: 28px 0 8px 0;">Recent support</h3><table style="width: 100%; font-size: 14px;">{rows}</table>'
        else:
            payments_html = '<p style="margin-top: 28px;">No new payments this week. A fresh update can bring supporters back.</p>'

        tips = summary.get('tips') or []
        tips_html = ''
        if tips:
            items = ''.join(f'<li style="margin: 6px 0;">{_e(tip)}</li>' for tip in tips)
            tips_html = f"""
            <div style="background: {s['highlight_bg']}; padding: 20px 24px; border-radius: 8px; margin-top: 28px;">
                <p style="margin: 0 0 8px 0;"><strong>Tips for next week</strong></p>
                <ul style="margin: 0; padding-left: 20px;">{items}</ul>
            </div>
            """

        content = f"""
            <h2 style="font-size: 22px; margin: 0 0 16px 0;">Your week, {_e(summary.get('creator_name') or 'creator')}</h2>
            <table style="width: 100%; border-spacing: 8px;"><tr>{stats_html}</tr></table>
            {payments_html}
            {tips_html}
            {self._button(f'{self.website_url}/dashboard', 'View full analytics')}
        """
        subject = f"Your Weekly Summary: {earnings} Earned"
        html_body = self._layout('Weekly summary', content, f'{earnings} earned this week')
        text_body = (f"This week: {earnings} earned, {summary.get('new_supporters', 0)} new supporters, "
                     f"{summary.get('views', 0)} views.")
        return self.send_email([email], subject, html_body, text_body, email_type='weekly_summary')


# Global instance, configured by GetMeAChai via init_app
email_service = EmailService()
