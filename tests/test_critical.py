"""
Critical Integration Tests for Get Me A Chai
============================================

Focused tests covering the integration points most likely to break.
Run with: pytest tests/test_critical.py -v
"""

import os
import shutil
import tempfile

from flask import Flask

from getmeachai import GetMeAChai
from conftest import make_app


# ---------------------------------------------------------------------------
# 1. Framework initialisation -- GetMeAChai(app) does not raise
# ---------------------------------------------------------------------------

def test_framework_initialisation(tmp_db_dir):
    """GetMeAChai(app) boots without errors and stores itself on the app."""
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["SECRET_KEY"] = "test-secret"
    app.config["APP_DB"] = os.path.join(tmp_db_dir, "getmeachai.db")
    app.config["ANALYTICS_DB"] = os.path.join(tmp_db_dir, "analytics.db")

    ext = GetMeAChai(app)

    assert "getmeachai" in app.extensions
    assert app.extensions["getmeachai"] is ext


# ---------------------------------------------------------------------------
# 2. Blueprint registration -- every module is registered by default
# ---------------------------------------------------------------------------

EXPECTED_MODULES = [
    "auth",
    "campaigns",
    "comments",
    "updates",
    "payments",
    "razorpay",
    "supporters",
    "notifications",
    "ai",
    "cron",
    "ops",
]


def test_all_blueprints_registered(app):
    registered = app.extensions["getmeachai"].get_registered_modules()

    for mod in EXPECTED_MODULES:
        assert mod in registered, (
            f"Module '{mod}' was not registered. Registered: {registered}"
        )
    assert len(registered) == len(EXPECTED_MODULES)


def test_feature_flags_skip_modules(tmp_db_dir):
    """Modules switched off in the features dict are not registered."""
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["SECRET_KEY"] = "test-secret"
    app.config["APP_DB"] = os.path.join(tmp_db_dir, "getmeachai.db")
    app.config["ANALYTICS_DB"] = os.path.join(tmp_db_dir, "analytics.db")

    ext = GetMeAChai(app, {"features": {"ai": False, "cron": False}})

    registered = ext.get_registered_modules()
    assert "ai" not in registered
    assert "cron" not in registered
    rules = [rule.rule for rule in app.url_map.iter_rules()]
    assert "/api/ai/chat" not in rules
    assert "/api/campaigns/list" in rules


# ---------------------------------------------------------------------------
# 3. Config defaults -- Config values are copied without clobbering the app's
# ---------------------------------------------------------------------------

def test_config_defaults_applied(app):
    assert app.config["PAYMENT_CURRENCY"] == "INR"
    assert app.config["CAMPAIGN_MIN_GOAL"] == 1000
    # Values the app set before init win
    assert app.config["EMAIL_ENABLED"] is False
    assert app.config["SECRET_KEY"] == "test-secret"


# ---------------------------------------------------------------------------
# 4. Template context -- getmeachai_config and app_name are injected
# ---------------------------------------------------------------------------

def test_template_context_injection(app):
    with app.test_request_context("/"):
        ctx = {}
        for func in app.template_context_processors[None]:
            ctx.update(func())

    assert isinstance(ctx["getmeachai_config"], dict)
    assert ctx["getmeachai_config"]["payment"]["currency"] == "INR"
    assert ctx["app_name"]


# ---------------------------------------------------------------------------
# 5. Database directory creation
# ---------------------------------------------------------------------------

def test_database_dir_creation():
    d = tempfile.mkdtemp(prefix="getmeachai-dbtest-")
    target = os.path.join(d, "sub", "databases")
    try:
        make_app(target)
        assert os.path.isdir(target), f"DB_DIR was not created at {target}"
        assert os.path.exists(os.path.join(target, "getmeachai.db"))
    finally:
        shutil.rmtree(d, ignore_errors=True)


# ---------------------------------------------------------------------------
# 6. CORS -- API responses carry the allow-origin header
# ---------------------------------------------------------------------------

def test_cors_headers_on_api(client):
    response = client.get("/api/campaigns/list", headers={"Origin": "http://example.com"})
    assert response.status_code == 200
    assert response.headers.get("Access-Control-Allow-Origin") in ("*", "http://example.com")


# ---------------------------------------------------------------------------
# 7. Auth guard -- protected JSON endpoints answer 401
# ---------------------------------------------------------------------------

def test_protected_endpoints_require_login(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/notifications").status_code == 401
    assert client.post("/api/campaigns/create", json={}).status_code == 401
    assert client.get("/api/supporters/mine").status_code == 401
