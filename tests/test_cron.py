"""Cron endpoints and the weekly creator summary job."""

from datetime import timedelta
from unittest.mock import patch, MagicMock

from getmeachai.core.database import Database, to_iso, utc_now
from getmeachai.modules.ai.client import AIServiceError
from getmeachai.modules.auth.database import get_creators
from getmeachai.modules.cron.jobs import creator_week, weekly_tips, send_weekly_summaries, FALLBACK_TIPS
from conftest import signup, create_campaign, record_payment

AUTH = {"Authorization": "Bearer cron-test-secret"}


def _expire(app, campaign_id):
    with app.app_context():
        with Database.connect(Database.get_db_path()) as conn:
            conn.execute("UPDATE campaigns SET end_date = ? WHERE id = ?",
                         (to_iso(utc_now() - timedelta(days=1)), campaign_id))


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def test_requires_secret(client):
    assert client.get("/api/cron/close-expired-campaigns").status_code == 401
    wrong = client.get("/api/cron/close-expired-campaigns", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401


def test_secret_via_query_string(client):
    response = client.get("/api/cron/close-expired-campaigns?secret=cron-test-secret")
    assert response.status_code == 200


def test_disabled(app, client):
    app.config["CRON_ENABLED"] = False
    assert client.post("/api/cron/publish-scheduled", headers=AUTH).status_code == 503


def test_missing_secret_in_production(app, client):
    app.config["CRON_SECRET"] = ""
    app.config["ENV"] = "production"
    assert client.post("/api/cron/publish-scheduled").status_code == 401
    app.config["ENV"] = "development"
    assert client.post("/api/cron/publish-scheduled").status_code == 200


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

def test_close_expired_campaigns(app, client, creator):
    old = create_campaign(client, title="Old Campaign")
    create_campaign(client, title="Fresh Campaign")
    _expire(app, old["id"])

    body = client.post("/api/cron/close-expired-campaigns", headers=AUTH).get_json()
    assert body == {"success": True, "closed": 1}
    again = client.post("/api/cron/close-expired-campaigns", headers=AUTH).get_json()
    assert again["closed"] == 0


def test_publish_scheduled(client, campaign):
    response = client.post("/api/cron/publish-scheduled", headers=AUTH)
    body = response.get_json()
    assert body["success"] is True
    assert body["published"] == 0
    assert body["notified"] == 0


def test_weekly_summary_skipped_when_email_disabled(client):
    body = client.post("/api/cron/weekly-summary", headers=AUTH).get_json()
    assert body == {"success": True, "skipped": True, "sent": 0, "failed": 0}


def test_weekly_summary_sends_to_creators(app, client, other_client, campaign):
    signup(other_client, name="Just A Fan", email="fan@example.com")
    app.config["EMAIL_ENABLED"] = True
    app.config["OPENROUTER_API_KEY"] = ""

    with patch("getmeachai.modules.cron.jobs.email_service.send_weekly_summary", return_value=True) as send:
        body = client.post("/api/cron/weekly-summary", headers=AUTH).get_json()

    assert body["success"] is True
    assert body["sent"] == 1
    assert body["failed"] == 0
    email, summary = send.call_args.args
    assert email == "asha@example.com"
    assert summary["tips"] == FALLBACK_TIPS


def test_send_weekly_summaries_counts_failures(app, client, campaign):
    app.config["OPENROUTER_API_KEY"] = ""
    with app.app_context(), \
            patch("getmeachai.modules.cron.jobs.email_service.send_weekly_summary",
                  side_effect=RuntimeError("smtp down")):
        result = send_weekly_summaries()
    assert result == {"sent": 0, "failed": 1, "skipped": 0}


def test_creator_week(app, client, campaign):
    record_payment(app, campaign, "Meera", "meera@example.com", 500)
    record_payment(app, campaign, "Meera", "meera@example.com", 300, oid="order_meera_2")
    record_payment(app, campaign, "Secret", "secret@example.com", 200, anonymous=True)
    for _ in range(4):
        client.post("/api/campaigns/track-view", json={"campaignId": campaign["id"]})

    with app.app_context():
        creator = get_creators()[0]
        summary = creator_week(creator)

    assert summary["creator_name"] == "Asha Creator"
    assert summary["earnings"] == 1000
    assert summary["new_supporters"] == 2
    assert summary["views"] == 4
    assert summary["conversion_rate"] == 50.0
    assert summary["active_campaigns"] == 1
    assert summary["recent_payments"][0]["name"] == "Anonymous"


def test_weekly_tips():
    summary = {"earnings": 0, "new_supporters": 0, "views": 0}

    client = MagicMock(configured=True)
    client.generate.return_value = '["Tip one", "Tip two", "Tip three", "Tip four"]'
    assert weekly_tips(summary, client) == ["Tip one", "Tip two", "Tip three"]

    client.generate.return_value = '["Only one"]'
    assert weekly_tips(summary, client) == FALLBACK_TIPS

    client.generate.side_effect = AIServiceError("down", 503)
    assert weekly_tips(summary, client) == FALLBACK_TIPS

    assert weekly_tips(summary, MagicMock(configured=False)) == FALLBACK_TIPS
