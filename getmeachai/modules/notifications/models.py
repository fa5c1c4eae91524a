"""
Notifications Models
====================

In-app notifications. Other modules call create_notification() /
notify_many(); the routes only read and update them.
"""

import logging

from getmeachai.core.database import Database, row_to_dict, now_iso

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ('payment', 'milestone', 'comment', 'update', 'subscription', 'system')
RECENT_LIMIT = 50

NOTIFICATIONS_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        campaign_id INTEGER,
        payment_id INTEGER,
        link TEXT,
        read INTEGER DEFAULT 0,
        read_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, read, created_at DESC)",
]


def init_notifications_db():
    Database.init_schema(Database.get_db_path(), NOTIFICATIONS_SCHEMA)


def _insert(conn, user_id, type, title, message, campaign_id, payment_id, link):
    cursor = conn.execute("""
        INSERT INTO notifications (user_id, type, title, message, campaign_id, payment_id, link, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    """, (user_id, type, title, message, campaign_id, payment_id, link, now_iso()))
    return cursor.lastrowid


def create_notification(user_id, type, title, message, campaign_id=None, payment_id=None,
                        link=None, conn=None):
    """Create one notification; pass conn to join the caller's transaction"""
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    if conn is not None:
        return _insert(conn, user_id, type, title, message, campaign_id, payment_id, link)
    with Database.connect(Database.get_db_path()) as own_conn:
        return _insert(own_conn, user_id, type, title, message, campaign_id, payment_id, link)


def notify_many(user_ids, type, title, message, campaign_id=None, link=None):
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    user_ids = list(dict.fromkeys(uid for uid in user_ids if uid))
    if not user_ids:
        return 0
    timestamp = now_iso()
    with Database.connect(Database.get_db_path()) as conn:
        conn.executemany("""
            INSERT INTO notifications (user_id, type, title, message, campaign_id, link, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, [(uid, type, title, message, campaign_id, link, timestamp) for uid in user_ids])
    return len(user_ids)


def get_notifications(user_id, limit=RECENT_LIMIT):
    """(latest notifications, unread count)"""
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("""
            SELECT * FROM notifications WHERE user_id = ?
            ORDER BY created_at DESC, id DESC LIMIT ?
        """, (user_id, limit)).fetchall()
        unread = conn.execute(
            'SELECT COUNT(*) FROM notifications WHERE user_id = ? AND read = 0', (user_id,)
        ).fetchone()[0]
    return [row_to_dict(row, bool_fields=('read',)) for row in rows], unread


def mark_read(user_id, notification_id):
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            UPDATE notifications SET read = 1, read_at = ?
            WHERE id = ? AND user_id = ? AND read = 0
        """, (now_iso(), notification_id, user_id))
        if cursor.rowcount:
            return True
        return conn.execute('SELECT 1 FROM notifications WHERE id = ? AND user_id = ?',
                            (notification_id, user_id)).fetchone() is not None


def mark_all_read(user_id):
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            UPDATE notifications SET read = 1, read_at = ? WHERE user_id = ? AND read = 0
        """, (now_iso(), user_id))
        return cursor.rowcount


def delete_notification(user_id, notification_id):
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute('DELETE FROM notifications WHERE id = ? AND user_id = ?',
                              (notification_id, user_id))
        return cursor.rowcount > 0
