"""Checkout, signature checks, subscriptions and the Razorpay webhook."""

import hmac
import json
import hashlib
import threading
from unittest.mock import patch, MagicMock

import pytest
import requests

from getmeachai.modules.campaigns.models import get_campaign
from getmeachai.modules.payments.gateway import (
    RazorpayClient, GatewayError, verify_payment_signature, verify_webhook_signature,
)
from getmeachai.modules.payments.models import (
    add_months, get_payment_by_oid, get_subscription, complete_payment, create_payment,
    set_subscription_status,
)
from conftest import signup, create_campaign

KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"


def _sign(message, secret=KEY_SECRET):
    if isinstance(message, str):
        message = message.encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def _gateway_response(data, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = data
    return response


def _checkout(client, campaign, amount=500, **extra):
    payload = {"amount": amount, "campaignId": campaign["id"], "name": "Meera", "email": "meera@example.com"}
    payload.update(extra)
    order = {"id": f"order_{amount}", "amount": amount * 100, "currency": "INR"}
    with patch("getmeachai.modules.payments.gateway.requests.request",
               return_value=_gateway_response(order)) as mocked:
        response = client.post("/api/payments/create", json=payload)
    return response, mocked


def _verify(client, order_id, payment_id="pay_1", signature=None):
    return client.post("/api/payments/verify", json={
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature or _sign(f"{order_id}|{payment_id}"),
    })


def _webhook(client, event, secret=WEBHOOK_SECRET, signature=None):
    body = json.dumps(event).encode()
    headers = {"Content-Type": "application/json",
               "X-Razorpay-Signature": signature or _sign(body, secret)}
    return client.post("/api/razorpay/webhook", data=body, headers=headers)


# ---------------------------------------------------------------------------
# Signatures and gateway client
# ---------------------------------------------------------------------------

def test_payment_signature():
    signature = _sign("order_1|pay_1")
    assert verify_payment_signature("order_1", "pay_1", signature, KEY_SECRET)
    assert not verify_payment_signature("order_1", "pay_2", signature, KEY_SECRET)
    assert not verify_payment_signature("order_1", "pay_1", signature, "")


def test_webhook_signature():
    body = b'{"event":"payment.captured"}'
    assert verify_webhook_signature(body, _sign(body, WEBHOOK_SECRET), WEBHOOK_SECRET)
    assert not verify_webhook_signature(body + b" ", _sign(body, WEBHOOK_SECRET), WEBHOOK_SECRET)
    assert not verify_webhook_signature(body, None, WEBHOOK_SECRET)


def test_gateway_client_errors(app):
    client = RazorpayClient("key", "secret", base_url="https://api.example.com/v1")
    with patch("getmeachai.modules.payments.gateway.requests.request",
               return_value=_gateway_response({"error": {"description": "Bad amount"}}, 400)):
        with pytest.raises(GatewayError) as exc:
            client.create_order(100)
    assert exc.value.message == "Bad amount"
    assert exc.value.status_code == 400

    with patch("getmeachai.modules.payments.gateway.requests.request",
               side_effect=requests.exceptions.Timeout()):
        with pytest.raises(GatewayError) as exc:
            client.create_order(100)
    assert exc.value.status_code == 504

    with app.app_context():
        app.config["RAZORPAY_KEY_ID"] = ""
        app.config["RAZORPAY_KEY_SECRET"] = ""
        unconfigured = RazorpayClient()
        with pytest.raises(GatewayError) as exc:
            unconfigured.create_order(100)
    assert exc.value.status_code == 500


def test_create_order_sends_paise_with_basic_auth(app):
    client = RazorpayClient("key", "secret", base_url="https://api.example.com/v1")
    with patch("getmeachai.modules.payments.gateway.requests.request",
               return_value=_gateway_response({"id": "order_9"})) as mocked:
        client.create_order(25000, receipt="r" * 60, notes={"campaign_id": 3, "reward_id": None})

    args, kwargs = mocked.call_args
    assert args == ("POST", "https://api.example.com/v1/orders")
    assert kwargs["auth"] == ("key", "secret")
    assert kwargs["json"]["amount"] == 25000
    assert len(kwargs["json"]["receipt"]) == 40
    assert kwargs["json"]["notes"] == {"campaign_id": "3"}


def test_add_months_clamps_day():
    from datetime import datetime, timezone
    jan31 = datetime(2025, 1, 31, tzinfo=timezone.utc)
    assert add_months(jan31, 1).day == 28
    assert add_months(jan31, 12).year == 2026


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def test_create_order(app, client, campaign):
    response, mocked = _checkout(client, campaign, amount=500)
    assert response.status_code == 200
    body = response.get_json()
    assert body["orderId"] == "order_500"
    assert body["amount"] == 50000
    assert body["keyId"] == "rzp_test_key"
    assert mocked.call_args.kwargs["json"]["amount"] == 50000

    with app.app_context():
        pending = get_payment_by_oid("order_500")
    assert pending["status"] == "pending"
    assert pending["done"] is False


def test_create_order_validation(client, campaign):
    response, mocked = _checkout(client, campaign, amount=5)
    assert response.status_code == 400
    assert not mocked.called

    response, _ = _checkout(client, {"id": 9999})
    assert response.status_code == 404


def test_create_order_rejects_inactive_campaign(client, campaign):
    client.patch(f"/api/campaigns/{campaign['id']}/status", json={"status": "paused"})
    response, _ = _checkout(client, campaign)
    assert response.status_code == 400


def test_reward_rules(client, creator):
    campaign = create_campaign(client, title="Reward Campaign", rewards=[
        {"title": "Sticker", "amount": 200, "limited_quantity": 1},
    ])
    reward_id = campaign["rewards"][0]["id"]

    response, _ = _checkout(client, campaign, amount=100, rewardId=reward_id)
    assert response.status_code == 400
    response, _ = _checkout(client, campaign, amount=200, rewardId="missing")
    assert response.status_code == 400

    response, _ = _checkout(client, campaign, amount=200, rewardId=reward_id)
    assert response.status_code == 200
    assert _verify(client, "order_200").status_code == 200

    sold_out, _ = _checkout(client, campaign, amount=300, rewardId=reward_id)
    assert sold_out.status_code == 400
    assert "sold out" in sold_out.get_json()["error"]


def test_reward_numbers_sent_as_strings(client, creator):
    campaign = create_campaign(client, title="String Rewards", rewards=[
        {"title": "Poster", "amount": "200", "limitedQuantity": "1"},
    ])
    reward = campaign["rewards"][0]
    assert reward["amount"] == 200
    assert reward["limited_quantity"] == 1

    response, _ = _checkout(client, campaign, amount=200, rewardId=reward["id"])
    assert response.status_code == 200
    assert _verify(client, "order_200").status_code == 200

    sold_out, _ = _checkout(client, campaign, amount=250, rewardId=reward["id"])
    assert sold_out.status_code == 400


def test_editing_rewards_keeps_claim_counts(client, creator):
    campaign = create_campaign(client, title="Editable Rewards", rewards=[
        {"title": "Sticker", "amount": 200, "limited_quantity": 1},
        {"title": "Mug", "amount": 800},
    ])
    sticker, mug = campaign["rewards"]
    _checkout(client, campaign, amount=200, rewardId=sticker["id"])
    _verify(client, "order_200")

    response = client.patch(f"/api/campaigns/{campaign['id']}", json={"rewards": [
        {"id": sticker["id"], "title": "Big Sticker", "amount": 200, "limited_quantity": 1, "claimed_count": 0},
        {"title": "Mug", "amount": 900},
    ]})
    assert response.status_code == 200
    edited = response.get_json()["campaign"]["rewards"]
    assert edited[0]["id"] == sticker["id"]
    assert edited[0]["title"] == "Big Sticker"
    assert edited[0]["claimed_count"] == 1
    assert edited[1]["id"] == mug["id"]

    sold_out, _ = _checkout(client, campaign, amount=300, rewardId=sticker["id"])
    assert sold_out.status_code == 400


def test_gateway_failure_maps_to_502(client, campaign):
    payload = {"amount": 500, "campaignId": campaign["id"], "name": "Meera", "email": "meera@example.com"}
    with patch("getmeachai.modules.payments.gateway.requests.request",
               side_effect=requests.exceptions.ConnectionError("down")):
        response = client.post("/api/payments/create", json=payload)
    assert response.status_code == 502


def test_verify_completes_payment_once(app, client, campaign):
    _checkout(client, campaign, amount=2500)

    first = _verify(client, "order_2500")
    assert first.status_code == 200
    assert first.get_json()["alreadyProcessed"] is False
    assert first.get_json()["payment"]["status"] == "success"

    again = _verify(client, "order_2500")
    assert again.get_json()["alreadyProcessed"] is True

    campaign_now = client.get(f"/api/campaigns/{campaign['id']}").get_json()["campaign"]
    assert campaign_now["current_amount"] == 2500
    assert campaign_now["supporters"] == 1
    assert campaign_now["progress"] == 25

    notifications = client.get("/api/notifications").get_json()["notifications"]
    types = sorted(n["type"] for n in notifications)
    assert types == ["milestone", "payment"]


def test_verify_bad_signature_marks_failed(app, client, campaign):
    _checkout(client, campaign, amount=500)
    response = _verify(client, "order_500", signature="0" * 64)
    assert response.status_code == 400
    with app.app_context():
        assert get_payment_by_oid("order_500")["status"] == "failed"


def test_verify_missing_fields_and_unknown_order(client, campaign):
    assert client.post("/api/payments/verify", json={}).status_code == 400
    assert _verify(client, "order_unknown").status_code == 404


def test_complete_payment_unknown_order(app):
    with app.app_context():
        assert complete_payment("nope", "pay_x") == (None, None, False)


def test_concurrent_completion_credits_once(app, campaign):
    with app.app_context():
        create_payment("order_race", "Meera", "meera@example.com", 500, campaign["creator_id"],
                       campaign_id=campaign["id"])

    barrier = threading.Barrier(2)
    results = []

    def complete():
        with app.app_context():
            barrier.wait()
            results.append(complete_payment("order_race", "pay_race")[2])

    threads = [threading.Thread(target=complete) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(results) == [False, True]
    with app.app_context():
        stored = get_campaign(campaign["id"])
    assert stored["current_amount"] == 500
    assert stored["supporters"] == 1


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------

def test_webhook_rejects_bad_signature(client):
    response = _webhook(client, {"event": "payment.captured"}, signature="deadbeef")
    assert response.status_code == 400


def test_webhook_ignores_unknown_events(client):
    response = _webhook(client, {"event": "refund.created"})
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_webhook_rejects_bad_json(client):
    body = b"{not json"
    response = client.post("/api/razorpay/webhook", data=body,
                           headers={"X-Razorpay-Signature": _sign(body, WEBHOOK_SECRET)})
    assert response.status_code == 400


def test_webhook_rejects_non_object_json(client):
    body = b"[]"
    response = client.post("/api/razorpay/webhook", data=body,
                           headers={"X-Razorpay-Signature": _sign(body, WEBHOOK_SECRET)})
    assert response.status_code == 400


def test_webhook_payment_captured_is_idempotent(app, client, campaign):
    _checkout(client, campaign, amount=1000)
    event = {"event": "payment.captured",
             "payload": {"payment": {"entity": {"id": "pay_w1", "order_id": "order_1000"}}}}

    assert _webhook(client, event).status_code == 200
    assert _webhook(client, event).status_code == 200

    campaign_now = client.get(f"/api/campaigns/{campaign['id']}").get_json()["campaign"]
    assert campaign_now["current_amount"] == 1000
    assert campaign_now["supporters"] == 1


def test_webhook_payment_failed(app, client, campaign):
    _checkout(client, campaign, amount=700)
    event = {"event": "payment.failed",
             "payload": {"payment": {"entity": {"id": "pay_f", "order_id": "order_700",
                                                "error_description": "Card declined"}}}}
    assert _webhook(client, event).status_code == 200
    with app.app_context():
        assert get_payment_by_oid("order_700")["status"] == "failed"


def test_webhook_without_secret_in_production(app, client):
    app.config["RAZORPAY_WEBHOOK_SECRET"] = ""
    app.config["ENV"] = "production"
    response = client.post("/api/razorpay/webhook", json={"event": "payment.captured"})
    assert response.status_code == 500


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

@pytest.fixture
def subscription(client, other_client, campaign):
    signup(other_client, name="Monthly Fan", email="monthly@example.com")
    responses = [
        _gateway_response({"id": "plan_1"}),
        _gateway_response({"id": "sub_1", "short_url": "https://rzp.io/i/sub1"}),
    ]
    with patch("getmeachai.modules.payments.gateway.requests.request", side_effect=responses):
        response = other_client.post("/api/payments/subscription", json={
            "amount": 300, "campaignId": campaign["id"], "frequency": "monthly",
        })
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def test_create_subscription(subscription):
    assert subscription["subscription"]["id"] == "sub_1"
    assert subscription["subscription"]["shortUrl"] == "https://rzp.io/i/sub1"
    assert subscription["subscription"]["nextBillingDate"]
    assert subscription["keyId"] == "rzp_test_key"


def test_subscription_lifecycle_via_webhook(app, client, other_client, campaign, subscription):
    sub_id = subscription["subscription"]["subscriptionId"]

    activated = {"event": "subscription.activated",
                 "payload": {"subscription": {"entity": {"id": "sub_1"}}}}
    assert _webhook(client, activated).status_code == 200
    with app.app_context():
        assert get_subscription(sub_id)["status"] == "active"

    charged = {"event": "subscription.charged", "payload": {
        "subscription": {"entity": {"id": "sub_1"}},
        "payment": {"entity": {"id": "pay_s1", "amount": 30000}},
    }}
    assert _webhook(client, charged).status_code == 200
    assert _webhook(client, charged).status_code == 200

    campaign_now = client.get(f"/api/campaigns/{campaign['id']}").get_json()["campaign"]
    assert campaign_now["current_amount"] == 300

    types = [n["type"] for n in client.get("/api/notifications").get_json()["notifications"]]
    assert "subscription" in types
    assert "payment" in types

    mine = other_client.get("/api/payments/subscriptions").get_json()
    assert mine["total"] == 1


def test_subscription_actions(app, client, other_client, subscription):
    sub_id = subscription["subscription"]["subscriptionId"]
    with app.app_context():
        set_subscription_status(sub_id, "active")

    assert other_client.post(f"/api/payments/subscriptions/{sub_id}/explode").status_code == 400
    assert client.post(f"/api/payments/subscriptions/{sub_id}/pause").status_code == 403
    assert other_client.post(f"/api/payments/subscriptions/{sub_id}/resume").status_code == 400

    with patch("getmeachai.modules.payments.gateway.requests.request",
               return_value=_gateway_response({"id": "sub_1"})):
        paused = other_client.post(f"/api/payments/subscriptions/{sub_id}/pause")
    assert paused.status_code == 200
    assert paused.get_json()["subscription"]["status"] == "paused"

    with patch("getmeachai.modules.payments.gateway.requests.request",
               return_value=_gateway_response({"id": "sub_1"})):
        cancelled = other_client.post(f"/api/payments/subscriptions/{sub_id}/cancel")
    body = cancelled.get_json()["subscription"]
    assert body["status"] == "cancelled"
    assert body["end_date"]


def test_subscriptions_can_be_disabled(app, other_client, campaign):
    app.config["FEATURE_SUBSCRIPTIONS"] = False
    signup(other_client, name="Fan", email="fan@example.com")
    response = other_client.post("/api/payments/subscription", json={
        "amount": 300, "campaignId": campaign["id"],
    })
    assert response.status_code == 404
