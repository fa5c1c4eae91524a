"""
Auth Routes
===========

- POST /signup -- create an account and sign in
- POST /login -- email/password sign in
- POST /logout
- GET /me -- current user
- GET /check-email -- whether an email is registered
- PATCH /profile -- update profile and payout keys
- POST /forgot-password -- email a password reset link
- POST /reset-password -- set a new password with a reset token
- GET /oauth/<provider> -- start OAuth sign in
- GET /oauth/<provider>/callback -- finish OAuth sign in
"""

import secrets
import sqlite3
import logging
from datetime import timedelta
from flask import request, jsonify, session, redirect, url_for, current_app
from werkzeug.security import generate_password_hash, check_password_hash

from getmeachai.core import rate_limit, login_required, db_log, LoggingService
from getmeachai.core.database import utc_now
from getmeachai.core.validation import (
    ValidationError, validate_string, validate_email, validate_object,
)
from . import auth_bp
from .database import (
    create_user, get_user_by_id, get_user_by_email, get_user_by_oauth, link_oauth,
    update_user_last_login, update_user_profile, set_payment_keys, public_user,
    save_password_reset_token, reset_password_with_token,
)
from .oauth import oauth, validate_password_strength, fetch_profile, PROVIDERS

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(hours=1)
RESET_MESSAGE = 'If an account with that email exists, a password reset link has been sent'


def _db_log(level, message, details=None):
    db_log(level, 'auth', message, details)


def _start_session(user):
    session.clear()
    session['user_id'] = user['id']
    session['username'] = user['username']
    session['role'] = user['role']
    session.permanent = True
    update_user_last_login(user['id'])


def _send_welcome(user):
    if not current_app.config.get('EMAIL_SEND_WELCOME', True):
        return
    try:
        from getmeachai.modules.email.email_service import email_service
        email_service.send_welcome_email(user['email'], user['name'], user['username'])
    except Exception as e:
        logger.error(f"Welcome email failed for {user['email']}: {e}")


@auth_bp.route('/signup', methods=['POST'])
@rate_limit('auth')
def signup():
    data = request.get_json(silent=True) or {}
    try:
        cleaned = validate_object(data, {
            'name': (lambda v: validate_string(v, 'Name', min_length=2, max_length=50), {'required': True}),
            'email': (validate_email, {'required': True}),
            'password': (lambda v: validate_string(v, 'Password', min_length=8, max_length=128, trim=False),
                         {'required': True}),
            'username': lambda v: validate_string(v, 'Username', min_length=3, max_length=30,
                                                  pattern=r'^[A-Za-z0-9_]+$'),
        })
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    if not validate_password_strength(cleaned['password']):
        return jsonify({
            'error': 'Password must contain an uppercase letter, a lowercase letter and a number',
            'field': 'password',
        }), 400

    if get_user_by_email(cleaned['email']):
        return jsonify({'error': 'An account with this email already exists'}), 409

    try:
        user = create_user(
            cleaned['name'],
            cleaned['email'],
            password_hash=generate_password_hash(cleaned['password']),
            username=cleaned.get('username'),
        )
    except sqlite3.IntegrityError:
        return jsonify({'error': 'Username is already taken'}), 409
    except Exception as e:
        logger.error(f"Signup failed: {e}")
        _db_log('error', 'Signup failed', {'error': str(e)})
        return jsonify({'error': 'Failed to create account'}), 500

    _start_session(user)
    _send_welcome(user)
    LoggingService.log_user_action('auth', 'signup', user['id'])
    return jsonify({'success': True, 'user': public_user(user)}), 201


@auth_bp.route('/login', methods=['POST'])
@rate_limit('auth')
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400

    user = get_user_by_email(email)
    if not user or not user.get('password_hash') or not check_password_hash(user['password_hash'], password):
        LoggingService.log_security_event('Failed login attempt', {'email': email})
        return jsonify({'error': 'Invalid email or password'}), 401

    _start_session(user)
    LoggingService.log_user_action('auth', 'login', user['id'])
    return jsonify({'success': True, 'user': public_user(get_user_by_id(user['id']))})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'success': True})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    user = get_user_by_id(session['user_id'])
    if not user:
        session.clear()
        return jsonify({'error': 'Unauthorized'}), 401
    return jsonify({'user': public_user(user)})


@auth_bp.route('/check-email', methods=['GET'])
@rate_limit('api')
def check_email():
    email = request.args.get('email', '')
    try:
        email = validate_email(email)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    return jsonify({'exists': get_user_by_email(email) is not None})


@auth_bp.route('/profile', methods=['PATCH'])
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    user_id = session['user_id']
    try:
        cleaned = validate_object(data, {
            'name': lambda v: validate_string(v, 'Name', min_length=2, max_length=50),
            'bio': lambda v: validate_string(v, 'Bio', max_length=500, allow_empty=True),
            'location': lambda v: validate_string(v, 'Location', max_length=100, allow_empty=True),
            'profile_pic': lambda v: validate_string(v, 'Profile picture', max_length=2048, allow_empty=True),
            'cover_pic': lambda v: validate_string(v, 'Cover picture', max_length=2048, allow_empty=True),
            'email_notifications': bool,
            'razorpay_key_id': lambda v: validate_string(v, 'Razorpay key id', max_length=100),
            'razorpay_secret': lambda v: validate_string(v, 'Razorpay secret', max_length=200),
        })
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    key_id = cleaned.pop('razorpay_key_id', None)
    key_secret = cleaned.pop('razorpay_secret', None)
    if bool(key_id) != bool(key_secret):
        return jsonify({'error': 'Both razorpay_key_id and razorpay_secret are required'}), 400

    if 'email_notifications' in cleaned:
        cleaned['email_notifications'] = 1 if cleaned['email_notifications'] else 0

    try:
        update_user_profile(user_id, **cleaned)
        if key_id:
            set_payment_keys(user_id, key_id, key_secret)
            LoggingService.log_security_event('Payout keys updated', {'user_id': user_id})
    except Exception as e:
        logger.error(f"Profile update failed for {user_id}: {e}")
        _db_log('error', 'Profile update failed', {'user_id': user_id, 'error': str(e)})
        return jsonify({'error': 'Failed to update profile'}), 500

    user = get_user_by_id(user_id)
    session['username'] = user['username']
    return jsonify({'success': True, 'user': public_user(user)})


@auth_bp.route('/forgot-password', methods=['POST'])
@rate_limit('sensitive')
def forgot_password():
    data = request.get_json(silent=True) or {}
    try:
        email = validate_email(data.get('email'))
    except ValidationError as e:
        return jsonify(e.to_dict()), 400

    # Same answer whether or not the account exists
    user = get_user_by_email(email)
    if not user:
        return jsonify({'success': True, 'message': RESET_MESSAGE})

    token = secrets.token_urlsafe(32)
    try:
        save_password_reset_token(user['id'], token, utc_now() + RESET_TOKEN_TTL)
    except Exception as e:
        logger.error(f"Could not store reset token for user {user['id']}: {e}")
        _db_log('error', 'Failed to store password reset token', {'user_id': user['id'], 'error': str(e)})
        return jsonify({'error': 'Failed to start password reset'}), 500

    app_url = (current_app.config.get('APP_URL') or request.host_url).rstrip('/')
    reset_link = f"{app_url}/reset-password?token={token}"
    try:
        from getmeachai.modules.email.email_service import email_service
        email_service.send_password_reset_email(user['email'], user['name'], reset_link)
    except Exception as e:
        logger.error(f"Password reset email failed for {user['email']}: {e}")

    LoggingService.log_security_event('Password reset requested', {'user_id': user['id']})
    return jsonify({'success': True, 'message': RESET_MESSAGE})


@auth_bp.route('/reset-password', methods=['POST'])
@rate_limit('sensitive')
def reset_password():
    data = request.get_json(silent=True) or {}
    token = data.get('token')
    password = data.get('password')
    if not token or not password:
        return jsonify({'error': 'Token and password are required'}), 400

    try:
        password = validate_string(password, 'Password', min_length=8, max_length=128, trim=False)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    if not validate_password_strength(password):
        return jsonify({
            'error': 'Password must contain an uppercase letter, a lowercase letter and a number',
            'field': 'password',
        }), 400

    user_id = reset_password_with_token(str(token), generate_password_hash(password))
    if user_id is None:
        LoggingService.log_security_event('Invalid password reset token used')
        return jsonify({'error': 'Invalid or expired reset token'}), 400

    user = get_user_by_id(user_id)
    try:
        from getmeachai.modules.email.email_service import email_service
        email_service.send_password_changed_email(user['email'], user['name'])
    except Exception as e:
        logger.error(f"Password changed email failed for user {user_id}: {e}")

    LoggingService.log_security_event('Password reset completed', {'user_id': user_id})
    return jsonify({'success': True, 'message': 'Password reset successful'})


@auth_bp.route('/oauth/<provider>')
def oauth_login(provider):
    if provider not in PROVIDERS or provider not in current_app.config.get('OAUTH_PROVIDERS', []):
        return jsonify({'error': f'Sign in with {provider} is not available'}), 404
    client = oauth.create_client(provider)
    redirect_uri = url_for('auth.oauth_callback', provider=provider, _external=True)
    return client.authorize_redirect(redirect_uri)


@auth_bp.route('/oauth/<provider>/callback')
def oauth_callback(provider):
    if provider not in PROVIDERS or provider not in current_app.config.get('OAUTH_PROVIDERS', []):
        return jsonify({'error': f'Sign in with {provider} is not available'}), 404

    client = oauth.create_client(provider)
    try:
        token = client.authorize_access_token()
        oauth_id, email, name, avatar = fetch_profile(provider, client, token)
    except Exception as e:
        logger.error(f"OAuth callback failed for {provider}: {e}")
        _db_log('error', f'OAuth {provider} callback failed', {'error': str(e)})
        return jsonify({'error': 'Authentication failed'}), 400

    if not email:
        return jsonify({'error': 'Your account has no verified email address'}), 400

    user = get_user_by_oauth(provider, oauth_id)
    if not user:
        user = get_user_by_email(email)
        if user:
            link_oauth(user['id'], provider, oauth_id)
        else:
            user = create_user(name or email.split('@')[0], email,
                               oauth_provider=provider, oauth_id=str(oauth_id),
                               profile_pic=avatar or '')
            _send_welcome(user)

    _start_session(user)
    LoggingService.log_user_action('auth', f'oauth_login:{provider}', user['id'])
    return redirect(current_app.config.get('APP_URL') or '/')
