"""
Updates Models
==============

Creator posts attached to a campaign. Updates are published immediately or
held as 'scheduled' until the cron job publishes them.
"""

import json
import logging

from getmeachai.core.database import Database, row_to_dict, now_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

VISIBILITIES = ('public', 'supporters-only')
UPDATE_STATUSES = ('draft', 'scheduled', 'published')

UPDATES_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS campaign_updates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        campaign_id INTEGER NOT NULL,
        creator_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        images TEXT DEFAULT '[]',
        visibility TEXT NOT NULL DEFAULT 'public',
        status TEXT NOT NULL DEFAULT 'published',
        scheduled_for TEXT,
        published_at TEXT,
        likes INTEGER DEFAULT 0,
        views INTEGER DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_updates_campaign ON campaign_updates(campaign_id, status, published_at)",
]

_UPDATE_SELECT = """
    SELECT u.*, usr.name AS creator_name, usr.profile_pic AS creator_profile_pic
    FROM campaign_updates u
    LEFT JOIN users usr ON usr.id = u.creator_id
"""


def init_updates_db():
    Database.init_schema(Database.get_db_path(), UPDATES_SCHEMA)


def _to_update(row):
    data = row_to_dict(row, json_fields=('images',))
    data['creator'] = {
        'id': data['creator_id'],
        'name': data.pop('creator_name', None),
        'profile_pic': data.pop('creator_profile_pic', None),
    }
    return data


def get_update(update_id):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute(_UPDATE_SELECT + ' WHERE u.id = ?', (update_id,)).fetchone()
    return _to_update(row) if row else None


def create_update(campaign_id, creator_id, title, content, images=None, visibility='public',
                  scheduled_for=None):
    """Published now unless scheduled_for (a datetime) is given"""
    timestamp = now_iso()
    if scheduled_for is not None:
        status, published_at, scheduled = 'scheduled', None, to_iso(scheduled_for)
    else:
        status, published_at, scheduled = 'published', timestamp, None

    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            INSERT INTO campaign_updates (campaign_id, creator_id, title, content, images, visibility,
                                          status, scheduled_for, published_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (campaign_id, creator_id, title, content, json.dumps(images or []), visibility,
              status, scheduled, published_at, timestamp, timestamp))
        update_id = cursor.lastrowid
    logger.info(f"Update {update_id} created for campaign {campaign_id} ({status})")
    return get_update(update_id)


def list_updates(campaign_id, include_supporters_only=False, page=1, limit=10):
    """Published updates newest first. Returns (updates, total)."""
    where = "u.campaign_id = ? AND u.status = 'published'"
    if not include_supporters_only:
        where += " AND u.visibility = 'public'"
    offset = (page - 1) * limit

    with Database.connect(Database.get_db_path()) as conn:
        total = conn.execute(f"SELECT COUNT(*) FROM campaign_updates u WHERE {where}",
                             (campaign_id,)).fetchone()[0]
        rows = conn.execute(
            _UPDATE_SELECT + f" WHERE {where} ORDER BY u.published_at DESC, u.id DESC LIMIT ? OFFSET ?",
            (campaign_id, limit, offset)
        ).fetchall()
    return [_to_update(row) for row in rows], total


def due_scheduled_updates(now=None):
    now_value = to_iso(now or utc_now())
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute(
            _UPDATE_SELECT + """
            WHERE u.status = 'scheduled' AND u.scheduled_for IS NOT NULL AND u.scheduled_for <= ?
            ORDER BY u.scheduled_for ASC, u.id ASC
            """, (now_value,)
        ).fetchall()
    return [_to_update(row) for row in rows]


def mark_published(update_id, now=None):
    """Flip a scheduled update to published; False when another run got there first"""
    timestamp = to_iso(now or utc_now())
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            UPDATE campaign_updates SET status = 'published', published_at = ?, updated_at = ?
            WHERE id = ? AND status = 'scheduled'
        """, (timestamp, timestamp, update_id))
        return cursor.rowcount > 0
