"""
Comments Models
===============

Threaded campaign comments (one level of replies) and the per-user likes
shared by comments and campaign updates.
"""

import logging

from getmeachai.core.database import Database, row_to_dict, now_iso
from getmeachai.modules.campaigns.models import adjust_comment_count

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000
DELETED_PLACEHOLDER = '[This comment has been deleted]'
SORTS = {
    'newest': 'c.created_at DESC, c.id DESC',
    'oldest': 'c.created_at ASC, c.id ASC',
    'top': 'c.likes DESC, c.created_at DESC, c.id DESC',
}

# Like target -> table holding its counter
LIKE_TARGETS = {
    'comment': 'comments',
    'update': 'campaign_updates',
}

COMMENTS_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS comments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        campaign_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        parent_id INTEGER,
        content TEXT NOT NULL,
        likes INTEGER DEFAULT 0,
        is_pinned INTEGER DEFAULT 0,
        is_deleted INTEGER DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_comments_campaign ON comments(campaign_id, parent_id)",
    """
    CREATE TABLE IF NOT EXISTS likes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        target_type TEXT NOT NULL,
        target_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (target_type, target_id, user_id)
    )
    """,
]

_COMMENT_SELECT = """
    SELECT c.*, u.name AS author_name, u.username AS author_username,
           u.profile_pic AS author_profile_pic
    FROM comments c
    LEFT JOIN users u ON u.id = c.user_id
"""


def init_comments_db():
    Database.init_schema(Database.get_db_path(), COMMENTS_SCHEMA)


def _to_comment(row):
    data = row_to_dict(row, bool_fields=('is_pinned', 'is_deleted'))
    data['author'] = {
        'id': data['user_id'],
        'name': data.pop('author_name', None),
        'username': data.pop('author_username', None),
        'profile_pic': data.pop('author_profile_pic', None),
    }
    return data


def get_comment(comment_id):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute(_COMMENT_SELECT + ' WHERE c.id = ?', (comment_id,)).fetchone()
    return _to_comment(row) if row else None


def list_comments(campaign_id, sort='newest'):
    """Top-level comments (pinned first) each carrying its replies oldest-first"""
    order = SORTS.get(sort, SORTS['newest'])
    with Database.connect(Database.get_db_path()) as conn:
        parents = conn.execute(
            _COMMENT_SELECT + f"""
            WHERE c.campaign_id = ? AND c.parent_id IS NULL AND c.is_deleted = 0
            ORDER BY c.is_pinned DESC, {order}
            """, (campaign_id,)
        ).fetchall()
        replies = conn.execute(
            _COMMENT_SELECT + """
            WHERE c.campaign_id = ? AND c.parent_id IS NOT NULL AND c.is_deleted = 0
            ORDER BY c.created_at ASC, c.id ASC
            """, (campaign_id,)
        ).fetchall()

    by_parent = {}
    for row in replies:
        reply = _to_comment(row)
        by_parent.setdefault(reply['parent_id'], []).append(reply)

    comments = []
    for row in parents:
        comment = _to_comment(row)
        comment['replies'] = by_parent.get(comment['id'], [])
        comments.append(comment)
    return comments


def create_comment(campaign_id, user_id, content, parent_id=None):
    timestamp = now_iso()
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            INSERT INTO comments (campaign_id, user_id, parent_id, content, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (campaign_id, user_id, parent_id, content, timestamp, timestamp))
        comment_id = cursor.lastrowid
        adjust_comment_count(conn, campaign_id, 1)
    return get_comment(comment_id)


def toggle_pin(comment):
    """Pinning a comment unpins the campaign's other comments"""
    pinned = not comment['is_pinned']
    with Database.connect(Database.get_db_path()) as conn:
        if pinned:
            conn.execute('UPDATE comments SET is_pinned = 0 WHERE campaign_id = ? AND id != ?',
                         (comment['campaign_id'], comment['id']))
        conn.execute('UPDATE comments SET is_pinned = ?, updated_at = ? WHERE id = ?',
                     (1 if pinned else 0, now_iso(), comment['id']))
    return pinned


def soft_delete(comment):
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute("""
            UPDATE comments SET is_deleted = 1, is_pinned = 0, content = ?, updated_at = ?
            WHERE id = ?
        """, (DELETED_PLACEHOLDER, now_iso(), comment['id']))
        adjust_comment_count(conn, comment['campaign_id'], -1)


def toggle_like(target_type, target_id, user_id):
    """Like or unlike a comment/update for this user. Returns (liked, likes)."""
    table = LIKE_TARGETS[target_type]
    with Database.connect(Database.get_db_path()) as conn:
        existing = conn.execute("""
            SELECT id FROM likes WHERE target_type = ? AND target_id = ? AND user_id = ?
        """, (target_type, target_id, user_id)).fetchone()

        if existing:
            conn.execute('DELETE FROM likes WHERE id = ?', (existing['id'],))
            conn.execute(f'UPDATE {table} SET likes = MAX(0, likes - 1) WHERE id = ?', (target_id,))
            liked = False
        else:
            conn.execute("""
                INSERT INTO likes (target_type, target_id, user_id, created_at) VALUES (?, ?, ?, ?)
            """, (target_type, target_id, user_id, now_iso()))
            conn.execute(f'UPDATE {table} SET likes = likes + 1 WHERE id = ?', (target_id,))
            liked = True

        likes = conn.execute(f'SELECT likes FROM {table} WHERE id = ?', (target_id,)).fetchone()[0]
    return liked, likes
