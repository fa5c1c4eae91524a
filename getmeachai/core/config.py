import os
import sys
import logging
from urllib.parse import urlparse
from dotenv import load_dotenv

load_dotenv(override=True)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when a required setting is missing or invalid"""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors or []


def get_env(key, default=None, required=False):
    """Read an environment variable; empty values count as unset"""
    value = os.getenv(key)
    if not value:
        if required:
            raise ConfigError(f"Required environment variable {key} is not set")
        return default
    return value


def get_bool_env(key, default=False):
    value = os.getenv(key)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('true', '1')


def get_int_env(key, default=0):
    value = os.getenv(key)
    if value is None or value == '':
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def get_float_env(key, default=0.0):
    value = os.getenv(key)
    if value is None or value == '':
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


class Config:
    """
    Base configuration for Get Me A Chai.
    Every value can be overridden through the environment (or a .env file),
    and apps can override any key again through app.config before init.
    """
    ENV = get_env('FLASK_ENV', get_env('APP_ENV', 'development'))

    # App
    APP_URL = get_env('APP_URL', 'http://localhost:5000')
    APP_NAME = get_env('APP_NAME', 'Get Me A Chai')
    APP_DESCRIPTION = get_env('APP_DESCRIPTION', 'AI-Powered Crowdfunding Platform')
    SUPPORT_EMAIL = get_env('SUPPORT_EMAIL', 'support@getmeachai.com')
    NOREPLY_EMAIL = get_env('NOREPLY_EMAIL', 'noreply@getmeachai.com')

    # Database paths - use environment variables or fallback to DB_DIR
    DB_DIR = get_env('DB_DIR', os.path.join(os.getcwd(), 'databases'))
    APP_DB = get_env('APP_DB', os.path.join(DB_DIR, 'getmeachai.db'))
    ANALYTICS_DB = get_env('ANALYTICS_DB', os.path.join(DB_DIR, 'analytics_log.db'))

    # Auth
    SECRET_KEY = get_env('FLASK_SECRET_KEY', get_env('SECRET_KEY'))
    SESSION_MAX_AGE = get_int_env('SESSION_MAX_AGE', 30 * 24 * 60 * 60)
    GOOGLE_CLIENT_ID = get_env('GOOGLE_CLIENT_ID', '')
    GOOGLE_CLIENT_SECRET = get_env('GOOGLE_CLIENT_SECRET', '')
    GITHUB_CLIENT_ID = get_env('GITHUB_CLIENT_ID', '')
    GITHUB_CLIENT_SECRET = get_env('GITHUB_CLIENT_SECRET', '')

    # Razorpay
    RAZORPAY_KEY_ID = get_env('RAZORPAY_KEY_ID', '')
    RAZORPAY_KEY_SECRET = get_env('RAZORPAY_KEY_SECRET', '')
    RAZORPAY_WEBHOOK_SECRET = get_env('RAZORPAY_WEBHOOK_SECRET', '')
    RAZORPAY_API_URL = get_env('RAZORPAY_API_URL', 'https://api.razorpay.com/v1')
    PAYMENT_CURRENCY = get_env('PAYMENT_CURRENCY', 'INR')
    PAYMENT_MIN_AMOUNT = get_int_env('PAYMENT_MIN_AMOUNT', 10)
    PAYMENT_MAX_AMOUNT = get_int_env('PAYMENT_MAX_AMOUNT', 9999999)

    # OpenRouter
    OPENROUTER_API_KEY = get_env('OPENROUTER_API_KEY', '')
    OPENROUTER_BASE_URL = get_env('OPENROUTER_BASE_URL', 'https://openrouter.ai/api/v1')
    OPENROUTER_MODEL = get_env('OPENROUTER_MODEL', 'deepseek/deepseek-chat')
    AI_MAX_TOKENS = get_int_env('AI_MAX_TOKENS', 2000)
    AI_TEMPERATURE = get_float_env('AI_TEMPERATURE', 0.7)
    AI_TIMEOUT = get_int_env('AI_TIMEOUT', 60)
    AI_RATE_LIMIT_MAX = get_int_env('AI_RATE_LIMIT_MAX', 20)
    AI_RATE_LIMIT_WINDOW = get_int_env('AI_RATE_LIMIT_WINDOW', 60 * 60 * 1000)

    # Email
    EMAIL_PROVIDER = get_env('EMAIL_PROVIDER', 'smtp')
    EMAIL_HOST = get_env('SMTP_HOST', 'smtp.gmail.com')
    EMAIL_PORT = get_int_env('SMTP_PORT', 587)
    EMAIL_SECURE = get_bool_env('SMTP_SECURE', False)
    EMAIL_USER = get_env('SMTP_USER', '')
    EMAIL_PASSWORD = get_env('SMTP_PASS', '')
    EMAIL_FROM_NAME = get_env('SMTP_FROM_NAME', 'Get Me A Chai')
    EMAIL_ADDRESS = get_env('SMTP_FROM_EMAIL', get_env('SMTP_USER', 'noreply@getmeachai.com'))
    RESEND_API_KEY = get_env('RESEND_API_KEY', '')
    AWS_REGION = get_env('AWS_REGION', 'ap-south-1')
    EMAIL_ENABLED = get_bool_env('EMAIL_ENABLED', True)
    EMAIL_SEND_WELCOME = get_bool_env('EMAIL_SEND_WELCOME', True)
    EMAIL_SEND_RECEIPTS = get_bool_env('EMAIL_SEND_RECEIPTS', True)
    EMAIL_SEND_WEEKLY_SUMMARY = get_bool_env('EMAIL_SEND_WEEKLY_SUMMARY', True)

    # Cron
    CRON_SECRET = get_env('CRON_SECRET', '')
    CRON_ENABLED = get_bool_env('CRON_ENABLED', True)
    CRON_WEEKLY_DAY = get_int_env('CRON_WEEKLY_DAY', 1)
    CRON_WEEKLY_HOUR = get_int_env('CRON_WEEKLY_HOUR', 9)

    # Rate limiting (windows in milliseconds)
    RATE_LIMIT_ENABLED = get_bool_env('RATE_LIMIT_ENABLED', True)
    RATE_LIMIT_AUTH_MAX = get_int_env('RATE_LIMIT_AUTH_MAX', 5)
    RATE_LIMIT_AUTH_WINDOW = get_int_env('RATE_LIMIT_AUTH_WINDOW', 15 * 60 * 1000)
    RATE_LIMIT_API_MAX = get_int_env('RATE_LIMIT_API_MAX', 100)
    RATE_LIMIT_API_WINDOW = get_int_env('RATE_LIMIT_API_WINDOW', 15 * 60 * 1000)
    RATE_LIMIT_GENERAL_MAX = get_int_env('RATE_LIMIT_GENERAL_MAX', 1000)
    RATE_LIMIT_GENERAL_WINDOW = get_int_env('RATE_LIMIT_GENERAL_WINDOW', 15 * 60 * 1000)

    # Logging
    LOG_LEVEL = get_env('LOG_LEVEL', 'INFO' if ENV == 'production' else 'DEBUG')

    # Uploads
    UPLOAD_MAX_FILE_SIZE = get_int_env('UPLOAD_MAX_FILE_SIZE', 5 * 1024 * 1024)
    UPLOAD_ALLOWED_TYPES = ['image/jpeg', 'image/png', 'image/gif', 'image/webp']

    # Campaign rules
    CAMPAIGN_MIN_GOAL = get_int_env('CAMPAIGN_MIN_GOAL', 1000)
    CAMPAIGN_MAX_GOAL = get_int_env('CAMPAIGN_MAX_GOAL', 100000000)
    CAMPAIGN_MIN_DURATION = get_int_env('CAMPAIGN_MIN_DURATION', 7)
    CAMPAIGN_MAX_DURATION = get_int_env('CAMPAIGN_MAX_DURATION', 90)

    # Analytics
    ANALYTICS_ENABLED = get_bool_env('ANALYTICS_ENABLED', True)
    ANALYTICS_TRACK_VIEWS = get_bool_env('ANALYTICS_TRACK_VIEWS', True)

    # Security
    CORS_ORIGINS = get_env('CORS_ORIGINS', '*')

    # Feature flags
    FEATURE_AI_CAMPAIGN_BUILDER = get_bool_env('FEATURE_AI_CAMPAIGN_BUILDER', True)
    FEATURE_AI_CHATBOT = get_bool_env('FEATURE_AI_CHATBOT', True)
    FEATURE_AI_RECOMMENDATIONS = get_bool_env('FEATURE_AI_RECOMMENDATIONS', True)
    FEATURE_SUBSCRIPTIONS = get_bool_env('FEATURE_SUBSCRIPTIONS', True)
    FEATURE_SOCIAL_SHARING = get_bool_env('FEATURE_SOCIAL_SHARING', True)
    FEATURE_EMAIL_NOTIFICATIONS = get_bool_env('FEATURE_EMAIL_NOTIFICATIONS', True)

    # Port for local server
    port = get_int_env('PORT', 5000)


def setting(key, default=None, source=None):
    """Resolve a flat setting: explicit source, then Flask app config, then Config"""
    if source is not None:
        if key in source:
            return source[key]
        return getattr(Config, key, default)
    try:
        from flask import current_app
        if key in current_app.config:
            return current_app.config[key]
    except RuntimeError:
        pass
    return getattr(Config, key, default)


def build_config(source=None):
    """Nested view of the settings, grouped by concern"""
    s = lambda key, default=None: setting(key, default, source)  # noqa: E731
    env = s('ENV', 'development')
    return {
        'env': env,
        'is_production': env == 'production',
        'app': {
            'url': s('APP_URL'),
            'name': s('APP_NAME'),
            'description': s('APP_DESCRIPTION'),
            'support_email': s('SUPPORT_EMAIL'),
            'noreply_email': s('NOREPLY_EMAIL'),
        },
        'database': {
            'dir': s('DB_DIR'),
            'path': s('APP_DB'),
            'analytics_path': s('ANALYTICS_DB'),
        },
        'auth': {
            'secret': s('SECRET_KEY'),
            'session_max_age': s('SESSION_MAX_AGE'),
            'google': {
                'client_id': s('GOOGLE_CLIENT_ID'),
                'client_secret': s('GOOGLE_CLIENT_SECRET'),
                'enabled': bool(s('GOOGLE_CLIENT_ID')),
            },
            'github': {
                'client_id': s('GITHUB_CLIENT_ID'),
                'client_secret': s('GITHUB_CLIENT_SECRET'),
                'enabled': bool(s('GITHUB_CLIENT_ID')),
            },
        },
        'payment': {
            'razorpay': {
                'key_id': s('RAZORPAY_KEY_ID'),
                'key_secret': s('RAZORPAY_KEY_SECRET'),
                'webhook_secret': s('RAZORPAY_WEBHOOK_SECRET'),
                'api_url': s('RAZORPAY_API_URL'),
            },
            'currency': s('PAYMENT_CURRENCY'),
            'min_amount': s('PAYMENT_MIN_AMOUNT'),
            'max_amount': s('PAYMENT_MAX_AMOUNT'),
        },
        'ai': {
            'openrouter': {
                'api_key': s('OPENROUTER_API_KEY'),
                'base_url': s('OPENROUTER_BASE_URL'),
                'model': s('OPENROUTER_MODEL'),
                'max_tokens': s('AI_MAX_TOKENS'),
                'temperature': s('AI_TEMPERATURE'),
                'timeout': s('AI_TIMEOUT'),
            },
            'rate_limit': {
                'max_requests': s('AI_RATE_LIMIT_MAX'),
                'window_ms': s('AI_RATE_LIMIT_WINDOW'),
            },
        },
        'email': {
            'provider': s('EMAIL_PROVIDER'),
            'smtp': {
                'host': s('EMAIL_HOST'),
                'port': s('EMAIL_PORT'),
                'secure': s('EMAIL_SECURE'),
                'user': s('EMAIL_USER'),
                'password': s('EMAIL_PASSWORD'),
                'from_name': s('EMAIL_FROM_NAME'),
                'from_email': s('EMAIL_ADDRESS'),
            },
            'enabled': s('EMAIL_ENABLED'),
            'send_welcome': s('EMAIL_SEND_WELCOME'),
            'send_receipts': s('EMAIL_SEND_RECEIPTS'),
            'send_weekly_summary': s('EMAIL_SEND_WEEKLY_SUMMARY'),
        },
        'cron': {
            'secret': s('CRON_SECRET'),
            'enabled': s('CRON_ENABLED'),
            'weekly_summary_day': s('CRON_WEEKLY_DAY'),
            'weekly_summary_hour': s('CRON_WEEKLY_HOUR'),
        },
        'rate_limit': {
            'enabled': s('RATE_LIMIT_ENABLED'),
            'auth': {'max_requests': s('RATE_LIMIT_AUTH_MAX'), 'window_ms': s('RATE_LIMIT_AUTH_WINDOW')},
            'api': {'max_requests': s('RATE_LIMIT_API_MAX'), 'window_ms': s('RATE_LIMIT_API_WINDOW')},
            'general': {'max_requests': s('RATE_LIMIT_GENERAL_MAX'), 'window_ms': s('RATE_LIMIT_GENERAL_WINDOW')},
        },
        'logging': {
            'level': s('LOG_LEVEL'),
        },
        'upload': {
            'max_file_size': s('UPLOAD_MAX_FILE_SIZE'),
            'allowed_types': s('UPLOAD_ALLOWED_TYPES'),
        },
        'campaign': {
            'min_goal': s('CAMPAIGN_MIN_GOAL'),
            'max_goal': s('CAMPAIGN_MAX_GOAL'),
            'min_duration': s('CAMPAIGN_MIN_DURATION'),
            'max_duration': s('CAMPAIGN_MAX_DURATION'),
        },
        'analytics': {
            'enabled': s('ANALYTICS_ENABLED'),
            'track_views': s('ANALYTICS_TRACK_VIEWS'),
        },
        'security': {
            'cors_origins': s('CORS_ORIGINS'),
        },
        'features': {
            'ai_campaign_builder': s('FEATURE_AI_CAMPAIGN_BUILDER'),
            'ai_chatbot': s('FEATURE_AI_CHATBOT'),
            'ai_recommendations': s('FEATURE_AI_RECOMMENDATIONS'),
            'subscriptions': s('FEATURE_SUBSCRIPTIONS'),
            'social_sharing': s('FEATURE_SOCIAL_SHARING'),
            'email_notifications': s('FEATURE_EMAIL_NOTIFICATIONS'),
        },
    }


def _is_valid_url(value):
    try:
        parsed = urlparse(value)
    except (TypeError, ValueError):
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def validate_config(source=None, exit_on_error=None):
    """
    Check the required settings once at start-up.

    Returns the list of warnings. When errors are found, production exits the
    process and every other environment raises ConfigError.
    """
    cfg = build_config(source)
    errors = []
    warnings = []

    app_url = cfg['app']['url']
    if not app_url:
        errors.append('APP_URL is required')
    elif not _is_valid_url(app_url):
        errors.append('APP_URL must be a valid URL')

    if not cfg['database']['path']:
        errors.append('APP_DB is required')

    if not cfg['auth']['secret']:
        errors.append('SECRET_KEY is required')

    if not cfg['payment']['razorpay']['key_id']:
        errors.append('RAZORPAY_KEY_ID is required')

    if not cfg['ai']['openrouter']['api_key']:
        errors.append('OPENROUTER_API_KEY is required')

    email = cfg['email']
    if email['enabled'] and email['provider'] == 'smtp' and not email['smtp']['user']:
        warnings.append('Email is enabled but SMTP_USER is not configured')

    for warning in warnings:
        logger.warning(f"Configuration warning: {warning}")

    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        if exit_on_error is None:
            exit_on_error = cfg['is_production']
        if exit_on_error:
            logger.critical("Invalid configuration in production - exiting")
            sys.exit(1)
        raise ConfigError('Invalid configuration: ' + '; '.join(errors), errors)

    logger.info(f"Configuration validated for {cfg['app']['name']} ({cfg['env']})")
    return warnings


def get_config(path, default=None, source=None):
    """Look up a nested setting by dotted path, e.g. 'payment.razorpay.key_id'"""
    node = build_config(source)
    for part in path.split('.'):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return default if node is None else node


def is_feature_enabled(name, source=None):
    return build_config(source)['features'].get(name) is True
