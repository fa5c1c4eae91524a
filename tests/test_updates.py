"""Campaign updates: posting, visibility, scheduling and likes."""

from datetime import timedelta, timezone

from getmeachai.core.database import to_iso, from_iso, utc_now
from getmeachai.modules.updates.service import publish_scheduled_updates
from conftest import signup, record_payment


def _post(client, campaign_id, **fields):
    payload = {"title": "Week one recap", "content": "We bought the first shelf."}
    payload.update(fields)
    return client.post(f"/api/campaigns/{campaign_id}/updates", json=payload)


def test_only_creator_can_post(client, other_client, campaign):
    signup(other_client, name="Fan", email="fan@example.com")
    assert _post(other_client, campaign["id"]).status_code == 403
    assert _post(client, 9999).status_code == 404


def test_post_validation(client, campaign):
    assert _post(client, campaign["id"], title="ab").status_code == 400
    assert _post(client, campaign["id"], visibility="friends").status_code == 400
    assert _post(client, campaign["id"], scheduledFor="next tuesday").status_code == 400


def test_publish_notifies_supporters(app, client, other_client, campaign):
    fan = signup(other_client, name="Fan", email="fan@example.com")
    record_payment(app, campaign, "Fan", "fan@example.com", 500, user_id=fan["id"])

    response = _post(client, campaign["id"])
    assert response.status_code == 201
    body = response.get_json()
    assert body["update"]["status"] == "published"


def test_schedule_accepts_javascript_timestamps(client, campaign):
    future = (utc_now() + timedelta(days=1)).strftime("%Y-%m-%dT%H:%M:%S.000Z")
    response = _post(client, campaign["id"], scheduledFor=future)
    assert response.status_code == 201
    assert response.get_json()["update"]["status"] == "scheduled"

    parsed = from_iso("2026-10-19T10:00:00.000Z")
    assert parsed.tzinfo == timezone.utc
    assert to_iso(parsed) == "2026-10-19T10:00:00+00:00"
    assert body["notified"] == 1

    notifications = other_client.get("/api/notifications").get_json()["notifications"]
    assert notifications[0]["type"] == "update"
    assert notifications[0]["title"] == "New update: Week one recap"


def test_supporters_only_visibility(app, client, other_client, campaign):
    _post(client, campaign["id"], title="Public news")
    _post(client, campaign["id"], title="Backstage", visibility="supporters-only")

    anonymous = app.test_client()
    public = anonymous.get(f"/api/campaigns/{campaign['id']}/updates").get_json()
    assert [u["title"] for u in public["updates"]] == ["Public news"]

    owner_view = client.get(f"/api/campaigns/{campaign['id']}/updates").get_json()
    assert owner_view["total"] == 2

    fan = signup(other_client, name="Fan", email="fan@example.com")
    assert other_client.get(f"/api/campaigns/{campaign['id']}/updates").get_json()["total"] == 1
    record_payment(app, campaign, "Fan", "fan@example.com", 200, user_id=fan["id"])
    assert other_client.get(f"/api/campaigns/{campaign['id']}/updates").get_json()["total"] == 2


def test_pagination(client, campaign):
    for i in range(3):
        _post(client, campaign["id"], title=f"Update number {i}")
    body = client.get(f"/api/campaigns/{campaign['id']}/updates?limit=2").get_json()
    assert body["total"] == 3
    assert body["totalPages"] == 2
    assert body["hasMore"] is True
    assert len(body["updates"]) == 2


def test_scheduled_update_published_by_job(app, client, campaign):
    future = to_iso(utc_now() + timedelta(hours=2))
    body = _post(client, campaign["id"], scheduledFor=future).get_json()
    assert body["update"]["status"] == "scheduled"
    assert body["notified"] == 0
    assert client.get(f"/api/campaigns/{campaign['id']}/updates").get_json()["total"] == 0

    with app.app_context():
        assert publish_scheduled_updates()["published"] == 0
        result = publish_scheduled_updates(now=utc_now() + timedelta(hours=3))
    assert result["published"] == 1
    assert client.get(f"/api/campaigns/{campaign['id']}/updates").get_json()["total"] == 1


def test_past_schedule_publishes_now(client, campaign):
    past = to_iso(utc_now() - timedelta(hours=1))
    body = _post(client, campaign["id"], scheduledFor=past).get_json()
    assert body["update"]["status"] == "published"


def test_like_update(client, campaign):
    update = _post(client, campaign["id"]).get_json()["update"]
    first = client.post(f"/api/updates/{update['id']}/like").get_json()
    assert first["liked"] is True
    assert first["likes"] == 1
    second = client.post(f"/api/updates/{update['id']}/like").get_json()
    assert second["liked"] is False
    assert second["likes"] == 0
    assert client.post("/api/updates/9999/like").status_code == 404
