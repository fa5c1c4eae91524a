"""
Campaigns Models
================

Database schema and CRUD operations for crowdfunding campaigns, their view
log and abuse reports. Tables live in APP_DB.
"""

import json
import math
import re
import time
import uuid
import logging
from datetime import timedelta

from getmeachai.core.database import (
    Database, row_to_dict, now_iso, to_iso, from_iso, utc_now,
)
from getmeachai.core.logging_service import db_log

logger = logging.getLogger(__name__)

CATEGORIES = ('technology', 'art', 'music', 'film', 'education', 'games', 'food', 'fashion', 'other')
STATUSES = ('draft', 'active', 'paused', 'completed', 'cancelled')
OWNER_STATUSES = ('active', 'paused', 'completed')
REPORT_TARGETS = ('campaign', 'comment', 'user')
REPORT_REASONS = ('spam', 'fraud', 'misleading', 'inappropriate', 'harassment',
                  'intellectual_property', 'other')
MILESTONE_PERCENTAGES = (25, 50, 75, 100)

JSON_FIELDS = ('images', 'milestones', 'rewards', 'faqs', 'tags')
BOOL_FIELDS = ('ai_generated', 'featured', 'verified')
EDITABLE_FIELDS = ('title', 'brief', 'hook', 'short_description', 'story', 'cover_image',
                   'images', 'video_url', 'milestones', 'rewards', 'faqs', 'tags', 'location',
                   'category')
DRAFT_FIELDS = EDITABLE_FIELDS + ('goal_amount',)

CAMPAIGNS_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS campaigns (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        creator_id INTEGER NOT NULL,
        username TEXT NOT NULL,
        title TEXT NOT NULL,
        slug TEXT UNIQUE NOT NULL,
        category TEXT NOT NULL DEFAULT 'other',
        brief TEXT DEFAULT '',
        hook TEXT DEFAULT '',
        short_description TEXT DEFAULT '',
        story TEXT NOT NULL,
        ai_generated INTEGER DEFAULT 0,
        goal_amount INTEGER NOT NULL,
        current_amount INTEGER DEFAULT 0,
        currency TEXT DEFAULT 'INR',
        cover_image TEXT DEFAULT '',
        images TEXT DEFAULT '[]',
        video_url TEXT DEFAULT '',
        start_date TEXT,
        end_date TEXT,
        milestones TEXT DEFAULT '[]',
        rewards TEXT DEFAULT '[]',
        faqs TEXT DEFAULT '[]',
        status TEXT NOT NULL DEFAULT 'draft',
        featured INTEGER DEFAULT 0,
        verified INTEGER DEFAULT 0,
        views INTEGER DEFAULT 0,
        supporters INTEGER DEFAULT 0,
        shares INTEGER DEFAULT 0,
        comments_count INTEGER DEFAULT 0,
        quality_score INTEGER,
        location TEXT DEFAULT '',
        tags TEXT DEFAULT '[]',
        published_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_campaigns_creator ON campaigns(creator_id)",
    "CREATE INDEX IF NOT EXISTS idx_campaigns_status ON campaigns(status, category)",
    """
    CREATE TABLE IF NOT EXISTS campaign_views (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        campaign_id INTEGER NOT NULL,
        user_id INTEGER,
        viewed_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_campaign_views_campaign ON campaign_views(campaign_id, viewed_at)",
    """
    CREATE TABLE IF NOT EXISTS reports (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        target_type TEXT NOT NULL,
        target_id INTEGER NOT NULL,
        reporter_id INTEGER NOT NULL,
        reason TEXT NOT NULL,
        description TEXT DEFAULT '',
        status TEXT NOT NULL DEFAULT 'pending',
        created_at TEXT NOT NULL,
        UNIQUE (target_type, target_id, reporter_id)
    )
    """,
]


class DuplicateReportError(Exception):
    pass


def _db_log(level, message, details=None):
    db_log(level, 'campaigns', message, details)


def init_campaigns_db():
    """Create campaigns, campaign_views and reports tables in APP_DB"""
    try:
        Database.init_schema(Database.get_db_path(), CAMPAIGNS_SCHEMA)
        logger.info("Campaigns database tables created/verified successfully")
    except Exception as e:
        logger.error(f"Error initializing campaigns database: {e}")
        _db_log('error', 'Failed to init campaigns DB', {'error': str(e)})
        raise


def make_slug(title, now_ms=None):
    """lowercased title, non-alphanumeric runs -> '-', plus a millisecond suffix"""
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    base = re.sub(r'[^a-z0-9]+', '-', title.lower()).strip('-')
    return f"{base}-{now_ms}" if base else str(now_ms)


def normalize_rewards(rewards, existing=None):
    """
    Give every reward tier a stable id and the counters payments rely on.

    existing is the stored reward list on edit: tiers are matched by id (or,
    for a tier sent without one, by title) and keep their stored id and
    claimed_count.
    """
    stored_by_id = {r['id']: r for r in existing or [] if r.get('id')}
    stored_by_title = {r.get('title'): r for r in existing or []}
    normalized = []
    for reward in rewards or []:
        if reward.get('id'):
            stored = stored_by_id.get(reward['id'])
        else:
            stored = stored_by_title.get(reward.get('title'))
        limited = reward.get('limited_quantity', reward.get('limitedQuantity'))
        normalized.append({
            'id': stored['id'] if stored else (reward.get('id') or uuid.uuid4().hex[:8]),
            'title': reward.get('title', ''),
            'amount': int(reward.get('amount', 0)),
            'description': reward.get('description', ''),
            'delivery_time': reward.get('delivery_time') or reward.get('deliveryTime') or '',
            'limited_quantity': int(limited) if limited is not None else None,
            'claimed_count': int(stored.get('claimed_count', 0)) if stored else 0,
        })
    return normalized


def normalize_milestones(milestones):
    return [{
        'title': m.get('title', ''),
        'amount': int(m.get('amount', 0)),
        'description': m.get('description', ''),
        'completed': bool(m.get('completed', False)),
    } for m in milestones or []]


def with_derived_fields(campaign, now=None):
    """Attach progress, days_remaining and is_expired"""
    if campaign is None:
        return None
    now = now or utc_now()
    goal = campaign.get('goal_amount') or 0
    current = campaign.get('current_amount') or 0
    campaign['progress'] = round(min(current / goal * 100, 100), 2) if goal else 0

    end_date = from_iso(campaign.get('end_date'))
    if end_date:
        remaining_seconds = (end_date - now).total_seconds()
        campaign['days_remaining'] = max(0, math.ceil(remaining_seconds / 86400))
        campaign['is_expired'] = remaining_seconds <= 0
    else:
        campaign['days_remaining'] = None
        campaign['is_expired'] = False
    return campaign


def _row_to_campaign(row, now=None):
    return with_derived_fields(row_to_dict(row, JSON_FIELDS, BOOL_FIELDS), now)


def create_campaign(creator, data, now=None, status='active'):
    """Insert a campaign for creator. data holds validated fields; drafts are not published."""
    now = now or utc_now()
    duration = data.get('duration', 30)
    timestamp = to_iso(now)
    slug = make_slug(data['title'], int(now.timestamp() * 1000))

    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            INSERT INTO campaigns (
                creator_id, username, title, slug, category, brief, hook, short_description,
                story, ai_generated, goal_amount, currency, cover_image, images, video_url,
                start_date, end_date, milestones, rewards, faqs, status, location, tags,
                published_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            creator['id'], creator['username'], data['title'], slug,
            data.get('category', 'other'), data.get('brief', ''), data.get('hook', ''),
            data.get('short_description', ''), data['story'],
            1 if data.get('ai_generated') else 0,
            data['goal_amount'], data.get('currency', 'INR'),
            data.get('cover_image', ''), json.dumps(data.get('images', [])),
            data.get('video_url', ''),
            timestamp, to_iso(now + timedelta(days=duration)),
            json.dumps(normalize_milestones(data.get('milestones'))),
            json.dumps(normalize_rewards(data.get('rewards'))),
            json.dumps(data.get('faqs', [])),
            status,
            data.get('location', ''), json.dumps(data.get('tags', [])),
            timestamp if status == 'active' else None, timestamp, timestamp,
        ))
        campaign_id = cursor.lastrowid

    logger.info(f"Created {status} campaign {campaign_id}: {data['title']}")
    return get_campaign(campaign_id)


def get_campaign(campaign_id, auto_complete=True):
    """Get a campaign; an active/paused campaign past its end date is completed on read"""
    try:
        campaign_id = int(campaign_id)
    except (TypeError, ValueError):
        return None

    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute('SELECT * FROM campaigns WHERE id = ?', (campaign_id,)).fetchone()
    campaign = _row_to_campaign(row)

    if campaign and auto_complete and campaign['is_expired'] and campaign['status'] in ('active', 'paused'):
        set_status(campaign_id, 'completed')
        campaign['status'] = 'completed'
        logger.info(f"Campaign {campaign_id} passed its end date and was completed")
    return campaign


def get_campaign_by_slug(slug):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute('SELECT id FROM campaigns WHERE slug = ?', (slug,)).fetchone()
    return get_campaign(row['id']) if row else None


def update_campaign(campaign_id, fields, allowed=EDITABLE_FIELDS):
    """Update editable fields; JSON fields are serialised here"""
    set_clauses = []
    values = []
    for field, value in fields.items():
        if field not in allowed:
            continue
        if field == 'rewards':
            stored = get_campaign(campaign_id, auto_complete=False)
            value = normalize_rewards(value, existing=stored['rewards'] if stored else None)
        elif field == 'milestones':
            value = normalize_milestones(value)
        if field in JSON_FIELDS:
            value = json.dumps(value)
        set_clauses.append(f"{field} = ?")
        values.append(value)

    if not set_clauses:
        return get_campaign(campaign_id)

    set_clauses.append("updated_at = ?")
    values.extend([now_iso(), campaign_id])
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute(f"UPDATE campaigns SET {', '.join(set_clauses)} WHERE id = ?", values)
    return get_campaign(campaign_id)


def set_status(campaign_id, status):
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute('UPDATE campaigns SET status = ?, updated_at = ? WHERE id = ?',
                     (status, now_iso(), campaign_id))


def publish_campaign(campaign, now=None):
    """Make a draft live. The campaign runs for as long as the draft was planned to."""
    now = now or utc_now()
    start, end = from_iso(campaign.get('start_date')), from_iso(campaign.get('end_date'))
    duration = (end - start) if start and end and end > start else timedelta(days=30)
    timestamp = to_iso(now)
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute("""
            UPDATE campaigns SET status = 'active', start_date = ?, end_date = ?, published_at = ?,
                                 updated_at = ?
            WHERE id = ? AND status = 'draft'
        """, (timestamp, to_iso(now + duration), timestamp, timestamp, campaign['id']))
    logger.info(f"Published draft campaign {campaign['id']}")
    return get_campaign(campaign['id'], auto_complete=False)


def set_quality_score(campaign_id, score):
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute('UPDATE campaigns SET quality_score = ?, updated_at = ? WHERE id = ?',
                     (score, now_iso(), campaign_id))


def delete_campaign(campaign_id):
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute('DELETE FROM campaign_views WHERE campaign_id = ?', (campaign_id,))
        conn.execute('DELETE FROM campaigns WHERE id = ?', (campaign_id,))
    logger.info(f"Deleted campaign {campaign_id}")
    return True


_SORTS = {
    'recent': 'created_at DESC, id DESC',
    'oldest': 'created_at ASC, id ASC',
    'most-funded': 'current_amount DESC, id DESC',
    'ending-soon': 'end_date ASC, id ASC',
}


def list_campaigns(category=None, search=None, creator=None, sort='recent', page=1, limit=12,
                   statuses=('active',)):
    """Public listing. Returns (campaigns, total)."""
    where = [f"status IN ({', '.join('?' for _ in statuses)})"]
    params = list(statuses)

    if category and category != 'all':
        where.append('category = ?')
        params.append(category)
    if creator:
        where.append('username = ?')
        params.append(creator)
    if search:
        where.append('(title LIKE ? OR brief LIKE ? OR story LIKE ?)')
        like = f"%{search}%"
        params.extend([like, like, like])

    where_sql = ' AND '.join(where)
    order_sql = _SORTS.get(sort, _SORTS['recent'])
    offset = (page - 1) * limit

    with Database.connect(Database.get_db_path()) as conn:
        total = conn.execute(f"SELECT COUNT(*) FROM campaigns WHERE {where_sql}", params).fetchone()[0]
        rows = conn.execute(
            f"SELECT * FROM campaigns WHERE {where_sql} ORDER BY {order_sql} LIMIT ? OFFSET ?",
            params + [limit, offset]
        ).fetchall()
    return [_row_to_campaign(row) for row in rows], total


def list_user_campaigns(user_id):
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute(
            'SELECT * FROM campaigns WHERE creator_id = ? ORDER BY created_at DESC, id DESC', (user_id,)
        ).fetchall()
    return [_row_to_campaign(row) for row in rows]


def trending_score(campaign, now=None):
    """views/day*0.4 + amount/day*0.3 + supporters/day*0.2 + featured bonus*0.1"""
    now = now or utc_now()
    created = from_iso(campaign['created_at']) or now
    days = max(1.0, (now - created).total_seconds() / 86400)
    featured_bonus = 100 if campaign.get('featured') else 0
    return (
        (campaign.get('views') or 0) / days * 0.4
        + (campaign.get('current_amount') or 0) / days * 0.3
        + (campaign.get('supporters') or 0) / days * 0.2
        + featured_bonus * 0.1
    )


def trending_campaigns(limit=10, now=None):
    now = now or utc_now()
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("SELECT * FROM campaigns WHERE status = 'active'").fetchall()
    campaigns = [_row_to_campaign(row, now) for row in rows]
    for campaign in campaigns:
        campaign['trending_score'] = round(trending_score(campaign, now), 4)
    campaigns.sort(key=lambda c: c['trending_score'], reverse=True)
    return campaigns[:limit]


def category_counts():
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("""
            SELECT category, COUNT(*) AS count, SUM(current_amount) AS total_raised,
                   AVG(goal_amount) AS avg_goal
            FROM campaigns
            WHERE status IN ('active', 'completed')
            GROUP BY category
            ORDER BY count DESC
        """).fetchall()
    counts = {
        row['category']: {
            'count': row['count'],
            'totalRaised': row['total_raised'] or 0,
            'avgGoal': int(round(row['avg_goal'] or 0)),
        }
        for row in rows
    }
    return counts, sum(c['count'] for c in counts.values())


def track_view(campaign_id, user_id=None):
    """Increment the view counter; signed-in views are also logged for recommendations"""
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute('UPDATE campaigns SET views = views + 1 WHERE id = ?', (campaign_id,))
        if cursor.rowcount == 0:
            return False
        conn.execute('INSERT INTO campaign_views (campaign_id, user_id, viewed_at) VALUES (?, ?, ?)',
                     (campaign_id, user_id, now_iso()))
    return True


def track_share(campaign_id):
    """Increment the share counter; None for a missing campaign or a draft"""
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute(
            "UPDATE campaigns SET shares = shares + 1 WHERE id = ? AND status != 'draft'", (campaign_id,)
        )
        if cursor.rowcount == 0:
            return None
        return conn.execute('SELECT shares FROM campaigns WHERE id = ?', (campaign_id,)).fetchone()['shares']


def views_since(campaign_ids, since):
    if not campaign_ids:
        return 0
    placeholders = ', '.join('?' for _ in campaign_ids)
    with Database.connect(Database.get_db_path()) as conn:
        return conn.execute(
            f"SELECT COUNT(*) FROM campaign_views WHERE campaign_id IN ({placeholders}) AND viewed_at >= ?",
            list(campaign_ids) + [to_iso(since)]
        ).fetchone()[0]


def recently_viewed_categories(user_id, limit=20):
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("""
            SELECT c.category, c.id FROM campaign_views v
            JOIN campaigns c ON c.id = v.campaign_id
            WHERE v.user_id = ?
            ORDER BY v.viewed_at DESC, v.id DESC
            LIMIT ?
        """, (user_id, limit)).fetchall()
    return [row['category'] for row in rows], {row['id'] for row in rows}


def create_report(target_type, target_id, reporter_id, reason, description=''):
    """Raises DuplicateReportError when this reporter already reported the target"""
    with Database.connect(Database.get_db_path()) as conn:
        existing = conn.execute("""
            SELECT id FROM reports WHERE target_type = ? AND target_id = ? AND reporter_id = ?
        """, (target_type, target_id, reporter_id)).fetchone()
        if existing:
            raise DuplicateReportError(f"{target_type} {target_id} already reported")
        cursor = conn.execute("""
            INSERT INTO reports (target_type, target_id, reporter_id, reason, description, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (target_type, target_id, reporter_id, reason, description, now_iso()))
        report_id = cursor.lastrowid
    _db_log('warning', f'{target_type} {target_id} reported for {reason}',
            {'report_id': report_id, 'reporter_id': reporter_id})
    return report_id


def close_expired_campaigns(now=None):
    """Complete every active/paused campaign whose end date has passed"""
    now_value = to_iso(now or utc_now())
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            UPDATE campaigns SET status = 'completed', updated_at = ?
            WHERE status IN ('active', 'paused') AND end_date IS NOT NULL AND end_date <= ?
        """, (now_value, now_value))
        closed = cursor.rowcount
    if closed:
        logger.info(f"Closed {closed} expired campaigns")
    return closed


def crossed_milestones(before, after, goal):
    """Percent thresholds (25/50/75/100) passed when the total moved from before to after"""
    if not goal:
        return []
    return [
        pct for pct in MILESTONE_PERCENTAGES
        if before * 100 < goal * pct <= after * 100
    ]


def credit_campaign(conn, campaign_id, amount, supporters=1, reward_id=None):
    """
    Add a successful contribution inside the caller's transaction.
    Returns (amount_before, amount_after, goal) or None when the campaign is gone.
    """
    row = conn.execute('SELECT current_amount, goal_amount, milestones, rewards FROM campaigns WHERE id = ?',
                       (campaign_id,)).fetchone()
    if row is None:
        return None

    before = row['current_amount'] or 0
    after = before + amount

    milestones = json.loads(row['milestones'] or '[]')
    for milestone in milestones:
        if not milestone.get('completed') and milestone.get('amount', 0) <= after:
            milestone['completed'] = True

    rewards = json.loads(row['rewards'] or '[]')
    if reward_id:
        for reward in rewards:
            if reward.get('id') == reward_id:
                reward['claimed_count'] = reward.get('claimed_count', 0) + 1

    conn.execute("""
        UPDATE campaigns
        SET current_amount = ?, supporters = supporters + ?, milestones = ?, rewards = ?, updated_at = ?
        WHERE id = ?
    """, (after, supporters, json.dumps(milestones), json.dumps(rewards), now_iso(), campaign_id))
    return before, after, row['goal_amount']


def adjust_comment_count(conn, campaign_id, delta):
    conn.execute(
        'UPDATE campaigns SET comments_count = MAX(0, comments_count + ?) WHERE id = ?',
        (delta, campaign_id)
    )
