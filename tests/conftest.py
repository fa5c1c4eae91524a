"""
Shared fixtures for the Get Me A Chai test suite.

Install test dependencies with: pip install -e ".[dev]"
Run with: pytest tests/ -v
"""

import os
import shutil
import tempfile

import pytest
from flask import Flask

from getmeachai import GetMeAChai
from getmeachai.core import limiters


PASSWORD = "Chai1234"


def make_app(db_dir, **overrides):
    """Flask app with every module registered against databases in db_dir"""
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["SECRET_KEY"] = "test-secret"
    app.config["ENV"] = "development"
    app.config["DB_DIR"] = db_dir
    app.config["APP_DB"] = os.path.join(db_dir, "getmeachai.db")
    app.config["ANALYTICS_DB"] = os.path.join(db_dir, "analytics.db")
    app.config["APP_URL"] = "http://localhost:5000"
    app.config["EMAIL_ENABLED"] = False
    app.config["EMAIL_RETRY_DELAY"] = 0
    app.config["EMAIL_BATCH_DELAY"] = 0
    app.config["RATE_LIMIT_ENABLED"] = False
    app.config["RAZORPAY_KEY_ID"] = "rzp_test_key"
    app.config["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
    app.config["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"
    app.config["OPENROUTER_API_KEY"] = "or-test-key"
    app.config["CRON_SECRET"] = "cron-test-secret"
    app.config.update(overrides)
    GetMeAChai(app)
    return app


@pytest.fixture
def tmp_db_dir():
    """Create a temporary directory for test databases, cleaned up after."""
    d = tempfile.mkdtemp(prefix="getmeachai-test-")
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def app(tmp_db_dir):
    app = make_app(tmp_db_dir)
    yield app
    limiters.reset()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def other_client(app):
    """A second browser session, for a different user"""
    return app.test_client()


def signup(client, name="Asha Creator", email="asha@example.com", username=None):
    payload = {"name": name, "email": email, "password": PASSWORD}
    if username:
        payload["username"] = username
    response = client.post("/api/auth/signup", json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["user"]


def create_campaign(client, **fields):
    payload = {
        "title": "Community Chai Library",
        "story": "We are building a small library where neighbours meet over chai.",
        "category": "education",
        "goal": 10000,
        "duration": 30,
    }
    payload.update(fields)
    response = client.post("/api/campaigns/create", json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["campaign"]


@pytest.fixture
def creator(client):
    return signup(client)


@pytest.fixture
def campaign(client, creator):
    return create_campaign(client)


def record_payment(app, campaign, name, email, amount, user_id=None, anonymous=False,
                   hide_amount=False, oid=None):
    """Insert a pending order for campaign and complete it"""
    from getmeachai.modules.payments.models import create_payment, complete_payment

    oid = oid or f"order_{campaign['id']}_{email}_{amount}"
    with app.app_context():
        create_payment(oid, name, email, amount, campaign["creator_id"], campaign_id=campaign["id"],
                       user_id=user_id, anonymous=anonymous, hide_amount=hide_amount)
        payment, _, _ = complete_payment(oid, f"pay_{oid}")
    return payment
