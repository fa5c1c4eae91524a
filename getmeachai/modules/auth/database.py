"""
Users Database
==============

Schema and CRUD for platform users (creators, supporters and admins).
Creator Razorpay secrets are stored Fernet-encrypted.
"""

import re
import hashlib
import sqlite3
import logging

from getmeachai.core.database import Database, row_to_dict, now_iso, to_iso
from getmeachai.core.security import encrypt_value, decrypt_value

logger = logging.getLogger(__name__)

ROLES = ('creator', 'supporter', 'admin')

USERS_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        username TEXT UNIQUE NOT NULL,
        password_hash TEXT,
        role TEXT NOT NULL DEFAULT 'creator',
        bio TEXT DEFAULT '',
        location TEXT DEFAULT '',
        profile_pic TEXT DEFAULT '',
        cover_pic TEXT DEFAULT '',
        razorpay_key_id TEXT,
        razorpay_secret TEXT,
        oauth_provider TEXT,
        oauth_id TEXT,
        email_notifications INTEGER DEFAULT 1,
        total_raised INTEGER DEFAULT 0,
        total_supporters INTEGER DEFAULT 0,
        last_login TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_users_email ON users(email)",
    "CREATE INDEX IF NOT EXISTS idx_users_oauth ON users(oauth_provider, oauth_id)",
    """
    CREATE TABLE IF NOT EXISTS password_reset_tokens (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        token_hash TEXT UNIQUE NOT NULL,
        expires_at TEXT NOT NULL,
        used INTEGER DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
]

PROFILE_FIELDS = ('name', 'bio', 'location', 'profile_pic', 'cover_pic', 'email_notifications')


def init_users_db():
    Database.init_schema(Database.get_db_path(), USERS_SCHEMA)
    logger.info("Users table initialized successfully")


def public_user(user):
    """Strip credentials before a user leaves the server"""
    if not user:
        return None
    data = {k: v for k, v in user.items() if k not in ('password_hash', 'razorpay_secret', 'oauth_id')}
    data['has_payment_keys'] = bool(user.get('razorpay_key_id') and user.get('razorpay_secret'))
    data['email_notifications'] = bool(user.get('email_notifications'))
    return data


def _slugify_username(value):
    base = re.sub(r'[^a-z0-9_]+', '', (value or '').lower())
    return base[:30] or 'user'


def unique_username(seed):
    """Derive a free username from seed, appending a counter when taken"""
    base = _slugify_username(seed)
    candidate = base
    counter = 1
    with Database.connect(Database.get_db_path()) as conn:
        while conn.execute('SELECT 1 FROM users WHERE username = ?', (candidate,)).fetchone():
            counter += 1
            candidate = f"{base}{counter}"
    return candidate


def create_user(name, email, password_hash=None, username=None, role='creator',
                oauth_provider=None, oauth_id=None, profile_pic=''):
    """Insert a user. Raises sqlite3.IntegrityError for a duplicate email/username."""
    email = email.strip().lower()
    username = _slugify_username(username) if username else unique_username(email.split('@')[0])
    timestamp = now_iso()

    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            INSERT INTO users (email, name, username, password_hash, role,
                               oauth_provider, oauth_id, profile_pic, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (email, name.strip(), username, password_hash, role,
              oauth_provider, oauth_id, profile_pic or '', timestamp, timestamp))
        user_id = cursor.lastrowid

    logger.info(f"Created user {user_id} ({username})")
    return get_user_by_id(user_id)


def get_user_by_id(user_id):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute('SELECT * FROM users WHERE id = ?', (user_id,)).fetchone()
    return row_to_dict(row)


def get_user_by_email(email):
    if not email:
        return None
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute('SELECT * FROM users WHERE email = ?', (email.strip().lower(),)).fetchone()
    return row_to_dict(row)


def get_user_by_username(username):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute('SELECT * FROM users WHERE username = ?', (username,)).fetchone()
    return row_to_dict(row)


def get_user_by_oauth(provider, oauth_id):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute(
            'SELECT * FROM users WHERE oauth_provider = ? AND oauth_id = ?',
            (provider, str(oauth_id))
        ).fetchone()
    return row_to_dict(row)


def update_user_last_login(user_id):
    try:
        with Database.connect(Database.get_db_path()) as conn:
            conn.execute('UPDATE users SET last_login = ? WHERE id = ?', (now_iso(), user_id))
        return True
    except sqlite3.Error as e:
        logger.error(f"Error updating last login: {e}")
        return False


def link_oauth(user_id, provider, oauth_id):
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute("""
            UPDATE users SET oauth_provider = ?, oauth_id = ?, updated_at = ?
            WHERE id = ?
        """, (provider, str(oauth_id), now_iso(), user_id))


def update_user_profile(user_id, **kwargs):
    """Update the whitelisted profile fields that were passed"""
    set_clauses = []
    values = []
    for field, value in kwargs.items():
        if field in PROFILE_FIELDS and value is not None:
            set_clauses.append(f"{field} = ?")
            values.append(value.strip() if isinstance(value, str) else value)

    if not set_clauses:
        return False

    set_clauses.append("updated_at = ?")
    values.extend([now_iso(), user_id])

    with Database.connect(Database.get_db_path()) as conn:
        conn.execute(f"UPDATE users SET {', '.join(set_clauses)} WHERE id = ?", values)
    return True


def set_payment_keys(user_id, key_id, key_secret):
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute("""
            UPDATE users SET razorpay_key_id = ?, razorpay_secret = ?, updated_at = ?
            WHERE id = ?
        """, (key_id, encrypt_value(key_secret), now_iso(), user_id))


def get_payment_keys(user_id):
    """(key_id, key_secret) for a creator, or (None, None) when not configured"""
    user = get_user_by_id(user_id)
    if not user or not user.get('razorpay_key_id') or not user.get('razorpay_secret'):
        return None, None
    secret = decrypt_value(user['razorpay_secret'])
    if not secret:
        logger.warning(f"Stored Razorpay secret for user {user_id} could not be decrypted")
        return None, None
    return user['razorpay_key_id'], secret


def increment_creator_stats(conn, user_id, amount, supporters=1):
    """Runs inside the caller's transaction"""
    conn.execute("""
        UPDATE users
        SET total_raised = total_raised + ?, total_supporters = total_supporters + ?, updated_at = ?
        WHERE id = ?
    """, (amount, supporters, now_iso(), user_id))


def get_creators():
    """Users that own at least one campaign"""
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("""
            SELECT DISTINCT u.* FROM users u
            JOIN campaigns c ON c.creator_id = u.id
            ORDER BY u.id
        """).fetchall()
    return [row_to_dict(row) for row in rows]


# ==================== Password reset ====================

def hash_reset_token(token):
    """Only the SHA-256 of a reset token is stored"""
    return hashlib.sha256(token.encode()).hexdigest()


def save_password_reset_token(user_id, token, expires_at):
    """Store a reset token, replacing any earlier one for the user"""
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute('DELETE FROM password_reset_tokens WHERE user_id = ?', (user_id,))
        conn.execute("""
            INSERT INTO password_reset_tokens (user_id, token_hash, expires_at, created_at)
            VALUES (?, ?, ?, ?)
        """, (user_id, hash_reset_token(token), to_iso(expires_at), now_iso()))


def reset_password_with_token(token, password_hash):
    """
    Spend a reset token and set the new password in one transaction.
    Returns the user id, or None for an unknown, used or expired token.
    """
    token_hash = hash_reset_token(token)
    timestamp = now_iso()
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            UPDATE password_reset_tokens SET used = 1
            WHERE token_hash = ? AND used = 0 AND expires_at > ?
        """, (token_hash, timestamp))
        if cursor.rowcount == 0:
            return None
        user_id = conn.execute('SELECT user_id FROM password_reset_tokens WHERE token_hash = ?',
                               (token_hash,)).fetchone()['user_id']
        conn.execute('UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?',
                     (password_hash, timestamp, user_id))
    return user_id
