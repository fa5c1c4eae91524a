"""Supporter lists, leaderboards and a user's own contributions."""

from datetime import timedelta

from getmeachai.core.database import Database, to_iso, utc_now
from conftest import signup, create_campaign, record_payment


def test_campaign_supporters(app, client, campaign):
    record_payment(app, campaign, "Meera", "meera@example.com", 500)
    record_payment(app, campaign, "Meera", "meera@example.com", 700, oid="order_meera_again")
    record_payment(app, campaign, "Ravi", "ravi@example.com", 1000)
    record_payment(app, campaign, "Secret Fan", "secret@example.com", 300, anonymous=True)
    record_payment(app, campaign, "Shy Fan", "shy@example.com", 200, hide_amount=True)

    body = client.get(f"/api/campaigns/{campaign['id']}/supporters").get_json()

    top = body["top"]
    assert top[0]["name"] == "Meera"
    assert top[0]["amount"] == 1200
    assert top[0]["contributions"] == 2
    assert top[1]["name"] == "Ravi"
    assert "email" not in top[0]

    names = [s["name"] for s in body["recent"]]
    assert "Anonymous" in names
    assert "Secret Fan" not in names
    shy = next(s for s in body["recent"] if s["name"] == "Shy Fan")
    assert shy["amount"] is None

    assert body["stats"] == {"totalRaised": 2700, "supporterCount": 4, "averageContribution": 540.0}
    assert body["page"] == 1
    assert body["totalPages"] == 1
    assert body["hasMore"] is False


def test_campaign_supporters_missing_campaign(client):
    assert client.get("/api/campaigns/9999/supporters").status_code == 404


def test_leaderboard_excludes_anonymous(app, client, creator):
    first = create_campaign(client, title="Chai Library")
    second = create_campaign(client, title="Chai Garden")
    record_payment(app, first, "Ravi", "ravi@example.com", 400)
    record_payment(app, second, "Ravi", "ravi@example.com", 400)
    record_payment(app, first, "Meera", "meera@example.com", 600)
    record_payment(app, first, "Ghost", "ghost@example.com", 5000, anonymous=True)

    board = client.get("/api/supporters/leaderboard").get_json()
    assert board["period"] == "all"
    entries = board["leaderboard"]
    assert [e["name"] for e in entries] == ["Ravi", "Meera"]
    assert entries[0]["rank"] == 1
    assert entries[0]["campaigns_supported"] == 2


def test_leaderboard_period_window(app, client, campaign):
    record_payment(app, campaign, "Old Friend", "old@example.com", 900)
    record_payment(app, campaign, "New Friend", "new@example.com", 100)
    with app.app_context():
        with Database.connect(Database.get_db_path()) as conn:
            conn.execute("UPDATE payments SET created_at = ? WHERE email = ?",
                         (to_iso(utc_now() - timedelta(days=20)), "old@example.com"))

    week = client.get("/api/supporters/leaderboard?period=week").get_json()["leaderboard"]
    assert [e["name"] for e in week] == ["New Friend"]
    month = client.get("/api/supporters/leaderboard?period=month").get_json()["leaderboard"]
    assert [e["name"] for e in month] == ["Old Friend", "New Friend"]

    assert client.get("/api/supporters/leaderboard?period=decade").status_code == 400


def test_my_contributions(app, client, other_client, campaign):
    fan = signup(other_client, name="Fan", email="fan@example.com")
    record_payment(app, campaign, "Fan", "fan@example.com", 250, user_id=fan["id"])
    # Guest checkout with the same email still counts
    record_payment(app, campaign, "Fan", "fan@example.com", 150, oid="order_guest")

    body = other_client.get("/api/supporters/mine").get_json()
    assert body["totalContributed"] == 400
    assert body["campaignsSupported"] == 1
    assert body["contributions"][0]["campaign_title"] == campaign["title"]

    assert app.test_client().get("/api/supporters/mine").status_code == 401
