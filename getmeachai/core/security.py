"""
Session auth decorators and at-rest encryption for secrets stored per user
(e.g. a creator's own Razorpay key secret).
"""

import os
import base64
import hashlib
from functools import wraps

from cryptography.fernet import Fernet, InvalidToken
from flask import session, jsonify, current_app


def current_user_id():
    return session.get('user_id')


def login_required(f):
    """Decorator to require a signed-in user (JSON 401 otherwise)"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require an admin user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return jsonify({'error': 'Unauthorized'}), 401
        if session.get('role') != 'admin':
            return jsonify({'error': 'Forbidden'}), 403
        return f(*args, **kwargs)
    return decorated_function


def get_encryption_key():
    """
    Derive encryption key from Flask SECRET_KEY.
    Returns a Fernet-compatible key (32 bytes, base64 encoded).
    """
    try:
        secret = current_app.config.get('SECRET_KEY') or 'default-insecure-key'
    except RuntimeError:
        secret = os.environ.get('FLASK_SECRET_KEY', os.environ.get('SECRET_KEY', 'default-insecure-key'))

    key_bytes = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key_bytes)


def encrypt_value(value):
    if not value:
        return value
    return Fernet(get_encryption_key()).encrypt(value.encode()).decode()


def decrypt_value(encrypted_value):
    """Returns None when the token was encrypted under a different key"""
    if not encrypted_value:
        return encrypted_value
    try:
        return Fernet(get_encryption_key()).decrypt(encrypted_value.encode()).decode()
    except InvalidToken:
        return None
