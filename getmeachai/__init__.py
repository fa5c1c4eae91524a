"""
Get Me A Chai - AI-Powered Crowdfunding
=======================================

A Flask extension that wires every Get Me A Chai module into an app:
- Auth (email/password, Google and GitHub sign-in)
- Campaigns, updates, comments and likes
- Razorpay payments, subscriptions and webhooks
- Supporter walls and leaderboards
- In-app notifications and transactional email
- OpenRouter-backed AI campaign tools
- Cron endpoints and a /health check

Usage:
    from flask import Flask
    from getmeachai import GetMeAChai

    app = Flask(__name__)
    GetMeAChai(app)

Modules can be switched off through config:
    GetMeAChai(app, {'features': {'ai': False, 'cron': False}})
"""

import os
import logging

from flask_cors import CORS

from .core import Config, ConfigError, configure_logging, validate_config, build_config, limiters

__version__ = '1.0.0'
__author__ = 'Get Me A Chai'

logger = logging.getLogger(__name__)

DEFAULT_FEATURES = {
    'auth': True,
    'campaigns': True,
    'comments': True,
    'updates': True,
    'payments': True,
    'supporters': True,
    'notifications': True,
    'ai': True,
    'cron': True,
    'ops': True,
}


class GetMeAChai:
    """Flask extension registering the crowdfunding modules on an app"""

    def __init__(self, app=None, config=None):
        self._config = config or {}
        self._registered = []
        self.app = None
        if app is not None:
            self.init_app(app, config)

    def init_app(self, app, config=None):
        if config:
            self._config = config
        self.app = app

        self._apply_defaults(app)
        configure_logging(app.config.get('LOG_LEVEL'))
        self._check_config(app)
        self._setup_database(app)
        self._register_modules(app)

        CORS(app, resources={r'/api/*': {'origins': self._cors_origins(app)}}, supports_credentials=True)

        from .modules.email.email_service import email_service
        email_service.init_app(app)

        from .modules.auth.oauth import configure_oauth
        providers = configure_oauth(app)
        if providers:
            logger.info(f"OAuth providers enabled: {', '.join(providers)}")

        limiters.configure(app.config)
        if not app.config.get('TESTING'):
            limiters.start_cleanup()

        @app.context_processor
        def inject_getmeachai():
            return {
                'getmeachai_config': build_config(app.config),
                'app_name': app.config.get('APP_NAME') or 'Get Me A Chai',
            }

        app.extensions['getmeachai'] = self
        logger.info(f"Get Me A Chai initialised with modules: {', '.join(self._registered)}")

    def _apply_defaults(self, app):
        """Copy Config defaults into app.config without overriding values the app set"""
        for key in dir(Config):
            if key.isupper():
                app.config.setdefault(key, getattr(Config, key))

        for key, value in self._config.items():
            if key != 'features' and key.isupper():
                app.config[key] = value

        if not app.config.get('SECRET_KEY'):
            app.config['SECRET_KEY'] = app.config.get('FLASK_SECRET_KEY') or os.urandom(32).hex()
            logger.warning("SECRET_KEY not set - generated a random key; sessions will not survive restarts")

        app.config.setdefault('SESSION_COOKIE_HTTPONLY', True)
        app.config.setdefault('SESSION_COOKIE_SAMESITE', 'Lax')
        app.config.setdefault('PERMANENT_SESSION_LIFETIME', app.config.get('SESSION_MAX_AGE'))

    def _check_config(self, app):
        try:
            validate_config(app.config)
        except ConfigError as e:
            # Production exits inside validate_config; elsewhere keep booting
            logger.warning(f"Continuing with incomplete configuration: {e}")

    def _setup_database(self, app):
        """Create the database directory and every module's tables"""
        db_dir = app.config.get('DB_DIR')
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        for key in ('APP_DB', 'ANALYTICS_DB'):
            directory = os.path.dirname(app.config.get(key) or '')
            if directory:
                os.makedirs(directory, exist_ok=True)

        from .modules.auth.database import init_users_db
        from .modules.campaigns.models import init_campaigns_db
        from .modules.comments.models import init_comments_db
        from .modules.updates.models import init_updates_db
        from .modules.payments.models import init_payments_db
        from .modules.notifications.models import init_notifications_db
        from .modules.email.email_service import init_email_db

        with app.app_context():
            for init in (init_users_db, init_campaigns_db, init_comments_db, init_updates_db,
                         init_payments_db, init_notifications_db, init_email_db):
                init()

    def _feature_enabled(self, name):
        features = dict(DEFAULT_FEATURES)
        features.update(self._config.get('features', {}))
        return features.get(name, False)

    def _register(self, app, name, blueprint):
        app.register_blueprint(blueprint)
        self._registered.append(name)

    def _register_modules(self, app):
        if self._feature_enabled('auth'):
            from .modules.auth import auth_bp
            self._register(app, 'auth', auth_bp)

        if self._feature_enabled('campaigns'):
            from .modules.campaigns import campaigns_bp
            self._register(app, 'campaigns', campaigns_bp)

        if self._feature_enabled('comments'):
            from .modules.comments import comments_bp
            self._register(app, 'comments', comments_bp)

        if self._feature_enabled('updates'):
            from .modules.updates import updates_bp
            self._register(app, 'updates', updates_bp)

        if self._feature_enabled('payments'):
            from .modules.payments import payments_bp, razorpay_bp
            self._register(app, 'payments', payments_bp)
            self._register(app, 'razorpay', razorpay_bp)

        if self._feature_enabled('supporters'):
            from .modules.supporters import supporters_bp
            self._register(app, 'supporters', supporters_bp)

        if self._feature_enabled('notifications'):
            from .modules.notifications import notifications_bp
            self._register(app, 'notifications', notifications_bp)

        if self._feature_enabled('ai'):
            from .modules.ai import ai_bp
            self._register(app, 'ai', ai_bp)

        if self._feature_enabled('cron'):
            from .modules.cron import cron_bp
            self._register(app, 'cron', cron_bp)

        if self._feature_enabled('ops'):
            from .modules.ops import ops_health_bp
            self._register(app, 'ops', ops_health_bp)

    @staticmethod
    def _cors_origins(app):
        origins = app.config.get('CORS_ORIGINS') or '*'
        if isinstance(origins, str) and origins != '*':
            return [o.strip() for o in origins.split(',') if o.strip()]
        return origins

    def get_registered_modules(self):
        return list(self._registered)


__all__ = ['GetMeAChai', '__version__']
