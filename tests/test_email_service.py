"""Email service: INR formatting, provider sends, retries, logging and templates."""

from unittest.mock import patch, MagicMock

import pytest

from getmeachai.core.database import Database
from getmeachai.modules.email.email_service import EmailService, email_service, format_inr, MAX_ATTEMPTS

RESEND_SEND = "getmeachai.modules.email.email_service.resend.Emails.send"


@pytest.fixture
def resend_service(app):
    app.config.update(EMAIL_ENABLED=True, EMAIL_PROVIDER="resend", RESEND_API_KEY="re_test",
                      EMAIL_ADDRESS="hello@getmeachai.com")
    service = EmailService(app)
    with app.app_context():
        yield service


def _email_logs():
    with Database.connect(Database.get_db_path()) as conn:
        return [dict(row) for row in conn.execute("SELECT * FROM email_logs ORDER BY id").fetchall()]


def test_format_inr():
    assert format_inr(1234567) == "₹12,34,567"
    assert format_inr(100000) == "₹1,00,000"
    assert format_inr(999) == "₹999"
    assert format_inr(1234.5) == "₹1,234.50"
    assert format_inr(-1500) == "-₹1,500"
    assert format_inr(None) == "₹0"
    assert format_inr(2500, symbol=False) == "2,500"


def test_disabled_service_sends_nothing(app):
    with app.app_context(), patch(RESEND_SEND) as send:
        assert email_service.send_email(["fan@example.com"], "Hi", "<p>Hi</p>") is False
    assert not send.called


def test_send_logs_success(resend_service):
    with patch(RESEND_SEND, return_value={"id": "email_1"}) as send:
        assert resend_service.send_email(["fan@example.com"], "Hello", "<p>Hello</p>", "Hello",
                                         email_type="welcome") is True

    params = send.call_args.args[0]
    assert params["to"] == "fan@example.com"
    assert params["from"] == "Get Me A Chai <hello@getmeachai.com>"
    assert params["text"] == "Hello"

    logs = _email_logs()
    assert len(logs) == 1
    assert logs[0]["status"] == "sent"
    assert logs[0]["email_type"] == "welcome"
    assert logs[0]["attempts"] == 1


def test_retries_until_success(resend_service):
    with patch(RESEND_SEND, side_effect=[RuntimeError("boom"), {"id": "email_2"}]) as send:
        assert resend_service.send_email(["fan@example.com"], "Retry", "<p>x</p>") is True
    assert send.call_count == 2
    assert _email_logs()[0]["attempts"] == 2


def test_gives_up_after_max_attempts(resend_service):
    with patch(RESEND_SEND, return_value={}) as send:
        assert resend_service.send_email(["fan@example.com"], "Nope", "<p>x</p>") is False
    assert send.call_count == MAX_ATTEMPTS
    log = _email_logs()[0]
    assert log["status"] == "failed"
    assert log["attempts"] == MAX_ATTEMPTS
    assert log["error_message"] == "Provider returned failure"


def test_invalid_recipients_are_skipped(resend_service):
    with patch(RESEND_SEND, return_value={"id": "email_3"}) as send:
        assert resend_service.send_email(["bad..dots@example.com", "not-an-email", "ok@example.com"],
                                         "Hi", "<p>Hi</p>") is True
        assert send.call_count == 1
        assert resend_service.send_email(["nobody"], "Hi", "<p>Hi</p>") is False
        assert resend_service.send_email([], "Hi", "<p>Hi</p>") is False


def test_send_bulk_counts(resend_service):
    messages = [{"to": f"fan{i}@example.com", "subject": "Update", "html": "<p>x</p>"} for i in range(12)]
    messages.append({"to": "broken", "subject": "Update", "html": "<p>x</p>"})
    with patch(RESEND_SEND, return_value={"id": "bulk"}):
        assert resend_service.send_bulk(messages) == {"sent": 12, "failed": 1}


def test_smtp_provider(app):
    app.config.update(EMAIL_ENABLED=True, EMAIL_PROVIDER="smtp", EMAIL_PASSWORD="app-password",
                      EMAIL_ADDRESS="hello@getmeachai.com", EMAIL_USER="", EMAIL_HOST="smtp.gmail.com",
                      EMAIL_PORT=587, EMAIL_SECURE=False)
    service = EmailService(app)
    server = MagicMock()
    with app.app_context(), patch("getmeachai.modules.email.email_service.smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.return_value = server
        assert service.send_email(["fan@example.com"], "Hi", "<p>Hi</p>", "Hi") is True

    smtp.assert_called_once_with("smtp.gmail.com", 587, timeout=30)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("hello@getmeachai.com", "app-password")
    assert server.send_message.call_args.args[0]["To"] == "fan@example.com"


def test_ses_provider(app):
    app.config.update(EMAIL_ENABLED=True, EMAIL_PROVIDER="ses", AWS_REGION="ap-south-1")
    ses = MagicMock()
    ses.send_email.return_value = {"MessageId": "m-1"}
    with patch("getmeachai.modules.email.email_service.boto3.client", return_value=ses):
        service = EmailService(app)
    with app.app_context():
        assert service.send_email(["fan@example.com"], "Hi", "<p>Hi</p>") is True
    kwargs = ses.send_email.call_args.kwargs
    assert kwargs["Destination"] == {"ToAddresses": ["fan@example.com"]}
    assert kwargs["Message"]["Subject"]["Data"] == "Hi"


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def test_payment_confirmation_template(resend_service):
    with patch.object(resend_service, "send_email", return_value=True) as send:
        resend_service.send_payment_confirmation("fan@example.com", {
            "supporter_name": "<Meera>", "amount": 2500, "campaign_title": "Chai Library",
            "creator_name": "Asha", "payment_id": "pay_1",
        })
    to, subject, html_body, text_body = send.call_args.args[:4]
    assert to == ["fan@example.com"]
    assert subject == 'Payment Confirmed - ₹2,500 to "Chai Library"'
    assert "&lt;Meera&gt;" in html_body
    assert "<Meera>" not in html_body
    assert "pay_1" in text_body
    assert send.call_args.kwargs["email_type"] == "payment_confirmation"


def test_creator_notification_hides_anonymous(resend_service):
    with patch.object(resend_service, "send_email", return_value=True) as send:
        resend_service.send_creator_notification("asha@example.com", {
            "creator_name": "Asha", "supporter_name": "Meera", "anonymous": True, "amount": 100000,
        })
    subject = send.call_args.args[1]
    assert subject == "New Payment: ₹1,00,000 from Anonymous"
    assert "Meera" not in send.call_args.args[2]


@pytest.mark.parametrize("percentage,headline", [(25, "Quarter Way There!"), (50, "Halfway to Success!"),
                                                 (100, "Goal Achieved!")])
def test_milestone_email(resend_service, percentage, headline):
    with patch.object(resend_service, "send_email", return_value=True) as send:
        resend_service.send_milestone_email("asha@example.com", {
            "creator_name": "Asha", "campaign_title": "Chai Library", "percentage": percentage,
            "current_amount": 5000, "goal_amount": 10000,
        })
    subject, html_body = send.call_args.args[1:3]
    assert subject == f'Milestone Reached: {percentage}% Funded - "Chai Library"'
    assert headline in html_body


def test_update_notification_message_truncates(resend_service):
    message = resend_service.update_notification_message("fan@example.com", {
        "campaign_title": "Chai Library", "update_title": "Shelves are up", "content": "x" * 400,
    })
    assert message["subject"] == 'New Update: "Shelves are up" - Chai Library'
    assert message["type"] == "update_notification"
    assert "x" * 300 + "..." in message["text"]
    assert "x" * 301 not in message["text"]


def test_weekly_summary(resend_service):
    with patch.object(resend_service, "send_email", return_value=True) as send:
        resend_service.send_weekly_summary("asha@example.com", {
            "creator_name": "Asha", "earnings": 12500, "new_supporters": 3, "views": 40,
            "conversion_rate": 7.5,
            "recent_payments": [{"name": "Meera", "amount": 500, "campaign_title": "Chai Library"}],
            "tips": ["Post an update"],
        })
    subject, html_body = send.call_args.args[1:3]
    assert subject == "Your Weekly Summary: ₹12,500 Earned"
    assert "Meera" in html_body
    assert "Post an update" in html_body
    assert "7.5%" in html_body
