"""
Payments Models
===============

Contributions (one-time and recurring) and recurring-support subscriptions.
Supporter leaderboards are aggregate queries over successful payments.
"""

import calendar
import logging

from getmeachai.core.database import Database, row_to_dict, now_iso, to_iso, utc_now
from getmeachai.modules.auth.database import increment_creator_stats
from getmeachai.modules.campaigns.models import credit_campaign

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ('pending', 'success', 'failed', 'refunded')
PAYMENT_TYPES = ('one-time', 'subscription')
FREQUENCIES = {'monthly': 1, 'quarterly': 3, 'yearly': 12}
SUBSCRIPTION_STATUSES = ('active', 'paused', 'cancelled', 'expired')

PAYMENT_BOOL_FIELDS = ('anonymous', 'hide_amount', 'done')

PAYMENTS_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS payments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        user_id INTEGER,
        to_user INTEGER NOT NULL,
        campaign_id INTEGER,
        oid TEXT UNIQUE NOT NULL,
        payment_id TEXT,
        amount INTEGER NOT NULL,
        currency TEXT DEFAULT 'INR',
        message TEXT DEFAULT '',
        reward_id TEXT,
        type TEXT NOT NULL DEFAULT 'one-time',
        subscription_id INTEGER,
        anonymous INTEGER DEFAULT 0,
        hide_amount INTEGER DEFAULT 0,
        done INTEGER DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'pending',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_payments_campaign ON payments(campaign_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_payments_to_user ON payments(to_user, status, created_at)",
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        subscriber_id INTEGER NOT NULL,
        creator_id INTEGER NOT NULL,
        campaign_id INTEGER,
        razorpay_subscription_id TEXT UNIQUE NOT NULL,
        amount INTEGER NOT NULL,
        frequency TEXT NOT NULL DEFAULT 'monthly',
        status TEXT NOT NULL DEFAULT 'active',
        next_billing_date TEXT,
        start_date TEXT NOT NULL,
        end_date TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_subscriber ON subscriptions(subscriber_id)",
]


def init_payments_db():
    Database.init_schema(Database.get_db_path(), PAYMENTS_SCHEMA)


def add_months(dt, months):
    """Calendar month arithmetic, clamping the day (Jan 31 + 1 month -> Feb 28/29)"""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def next_billing_date(frequency, start=None):
    return add_months(start or utc_now(), FREQUENCIES.get(frequency, 1))


def _to_payment(row):
    return row_to_dict(row, bool_fields=PAYMENT_BOOL_FIELDS)


# ==================== Payments ====================

def create_payment(oid, name, email, amount, to_user, campaign_id=None, user_id=None,
                   currency='INR', message='', reward_id=None, anonymous=False, hide_amount=False,
                   type='one-time', subscription_id=None):
    timestamp = now_iso()
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            INSERT INTO payments (name, email, user_id, to_user, campaign_id, oid, amount, currency,
                                  message, reward_id, type, subscription_id, anonymous, hide_amount,
                                  created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (name, email, user_id, to_user, campaign_id, oid, amount, currency, message or '',
              reward_id, type, subscription_id, 1 if anonymous else 0, 1 if hide_amount else 0,
              timestamp, timestamp))
        payment_id = cursor.lastrowid
    return get_payment(payment_id)


def get_payment(payment_id):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute('SELECT * FROM payments WHERE id = ?', (payment_id,)).fetchone()
    return _to_payment(row) if row else None


def get_payment_by_oid(oid):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute('SELECT * FROM payments WHERE oid = ?', (oid,)).fetchone()
    return _to_payment(row) if row else None


def _credit(conn, payment):
    """Campaign and creator totals for a payment that just succeeded"""
    credit = None
    if payment['campaign_id']:
        credit = credit_campaign(conn, payment['campaign_id'], payment['amount'],
                                 supporters=1, reward_id=payment.get('reward_id'))
    increment_creator_stats(conn, payment['to_user'], payment['amount'])
    return credit


def complete_payment(oid, gateway_payment_id):
    """
    Mark an order paid and credit its campaign exactly once.

    Returns (payment, credit, already_done); credit is (before, after, goal)
    when a campaign was credited. Returns (None, None, False) for an unknown order.
    """
    with Database.connect(Database.get_db_path()) as conn:
        # The guarded UPDATE takes the write lock; only one caller can flip done
        cursor = conn.execute("""
            UPDATE payments SET status = 'success', done = 1, payment_id = ?, updated_at = ?
            WHERE oid = ? AND done = 0
        """, (gateway_payment_id, now_iso(), oid))
        row = conn.execute('SELECT * FROM payments WHERE oid = ?', (oid,)).fetchone()
        if row is None:
            return None, None, False
        payment = _to_payment(row)
        if cursor.rowcount == 0:
            return payment, None, True
        credit = _credit(conn, payment)

    logger.info(f"Payment {oid} completed ({payment['amount']} {payment['currency']})")
    return payment, credit, False


def mark_payment_failed(oid, gateway_payment_id=None):
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            UPDATE payments SET status = 'failed', payment_id = COALESCE(?, payment_id), updated_at = ?
            WHERE oid = ? AND done = 0
        """, (gateway_payment_id, now_iso(), oid))
        return cursor.rowcount > 0


def record_subscription_charge(subscription, gateway_payment_id, amount, supporter_name, supporter_email):
    """Insert a successful recurring payment and credit the campaign. Idempotent per gateway payment."""
    timestamp = now_iso()
    oid = f"sub_{subscription['razorpay_subscription_id']}_{gateway_payment_id}"
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            INSERT OR IGNORE INTO payments (name, email, user_id, to_user, campaign_id, oid, payment_id, amount,
                                  type, subscription_id, done, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'subscription', ?, 1, 'success', ?, ?)
        """, (supporter_name, supporter_email, subscription['subscriber_id'], subscription['creator_id'],
              subscription['campaign_id'], oid, gateway_payment_id, amount, subscription['id'],
              timestamp, timestamp))
        if cursor.rowcount == 0:
            return None, None
        payment = _to_payment(conn.execute('SELECT * FROM payments WHERE id = ?',
                                           (cursor.lastrowid,)).fetchone())
        credit = _credit(conn, payment)
    return payment, credit


def payments_since(creator_id, since):
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("""
            SELECT p.*, c.title AS campaign_title FROM payments p
            LEFT JOIN campaigns c ON c.id = p.campaign_id
            WHERE p.to_user = ? AND p.status = 'success' AND p.created_at >= ?
            ORDER BY p.created_at DESC, p.id DESC
        """, (creator_id, to_iso(since))).fetchall()
    return [_to_payment(row) for row in rows]


def has_supported(user_id, campaign_id):
    if not user_id:
        return False
    with Database.connect(Database.get_db_path()) as conn:
        return conn.execute("""
            SELECT 1 FROM payments WHERE user_id = ? AND campaign_id = ? AND status = 'success' LIMIT 1
        """, (user_id, campaign_id)).fetchone() is not None


def campaign_supporters(campaign_id):
    """Distinct (user_id, email, name) of everyone with a successful payment"""
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("""
            SELECT user_id, email, MAX(name) AS name FROM payments
            WHERE campaign_id = ? AND status = 'success'
            GROUP BY email
        """, (campaign_id,)).fetchall()
    return [dict(row) for row in rows]


# ==================== Supporters / leaderboards ====================

def _display(row):
    data = dict(row)
    if data.get('anonymous'):
        data['name'] = 'Anonymous'
        data['user_id'] = None
    data['anonymous'] = bool(data.get('anonymous'))
    if data.pop('hide_amount', 0):
        data['amount'] = None
    data.pop('email', None)
    return data


def top_supporters(campaign_id, limit=10):
    """Biggest supporters by total contributed, grouped by email"""
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("""
            SELECT email, MAX(name) AS name, MAX(user_id) AS user_id, SUM(amount) AS amount,
                   COUNT(*) AS contributions, MAX(anonymous) AS anonymous,
                   MAX(hide_amount) AS hide_amount, MAX(created_at) AS last_contribution
            FROM payments
            WHERE campaign_id = ? AND status = 'success'
            GROUP BY email
            ORDER BY amount DESC, last_contribution ASC
            LIMIT ?
        """, (campaign_id, limit)).fetchall()
    return [_display(row) for row in rows]


def recent_supporters(campaign_id, page=1, limit=20):
    offset = (page - 1) * limit
    with Database.connect(Database.get_db_path()) as conn:
        total = conn.execute(
            "SELECT COUNT(*) FROM payments WHERE campaign_id = ? AND status = 'success'", (campaign_id,)
        ).fetchone()[0]
        rows = conn.execute("""
            SELECT id, name, email, user_id, amount, message, anonymous, hide_amount, type, created_at
            FROM payments
            WHERE campaign_id = ? AND status = 'success'
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
        """, (campaign_id, limit, offset)).fetchall()
    return [_display(row) for row in rows], total


def campaign_support_stats(campaign_id):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute("""
            SELECT COALESCE(SUM(amount), 0) AS total_raised,
                   COUNT(DISTINCT email) AS supporter_count,
                   COUNT(*) AS contributions
            FROM payments WHERE campaign_id = ? AND status = 'success'
        """, (campaign_id,)).fetchone()
    contributions = row['contributions']
    return {
        'totalRaised': row['total_raised'],
        'supporterCount': row['supporter_count'],
        'averageContribution': round(row['total_raised'] / contributions, 2) if contributions else 0,
    }


def platform_leaderboard(since=None, limit=10):
    """Top supporters across every campaign, anonymous contributions excluded"""
    params = []
    where = "status = 'success' AND anonymous = 0"
    if since is not None:
        where += " AND created_at >= ?"
        params.append(to_iso(since))
    params.append(limit)
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute(f"""
            SELECT email, MAX(name) AS name, MAX(user_id) AS user_id, SUM(amount) AS amount,
                   COUNT(DISTINCT campaign_id) AS campaigns_supported, COUNT(*) AS contributions,
                   0 AS anonymous, 0 AS hide_amount
            FROM payments
            WHERE {where}
            GROUP BY email
            ORDER BY amount DESC
            LIMIT ?
        """, params).fetchall()
    leaderboard = []
    for rank, row in enumerate(rows, start=1):
        entry = _display(row)
        entry['rank'] = rank
        leaderboard.append(entry)
    return leaderboard


def user_contributions(user_id, email=None):
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("""
            SELECT p.id, p.amount, p.currency, p.message, p.type, p.status, p.created_at,
                   p.campaign_id, c.title AS campaign_title, c.slug AS campaign_slug
            FROM payments p
            LEFT JOIN campaigns c ON c.id = p.campaign_id
            WHERE (p.user_id = ? OR (? IS NOT NULL AND p.email = ?)) AND p.status = 'success'
            ORDER BY p.created_at DESC, p.id DESC
        """, (user_id, email, email)).fetchall()
    contributions = [dict(row) for row in rows]
    return contributions, sum(c['amount'] for c in contributions)


# ==================== Subscriptions ====================

def create_subscription(subscriber_id, creator_id, campaign_id, gateway_subscription_id, amount,
                        frequency, now=None):
    now = now or utc_now()
    timestamp = to_iso(now)
    with Database.connect(Database.get_db_path()) as conn:
        cursor = conn.execute("""
            INSERT INTO subscriptions (subscriber_id, creator_id, campaign_id, razorpay_subscription_id,
                                       amount, frequency, status, next_billing_date, start_date,
                                       created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, 'active', ?, ?, ?, ?)
        """, (subscriber_id, creator_id, campaign_id, gateway_subscription_id, amount, frequency,
              to_iso(next_billing_date(frequency, now)), timestamp, timestamp, timestamp))
        subscription_id = cursor.lastrowid
    return get_subscription(subscription_id)


def get_subscription(subscription_id):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute('SELECT * FROM subscriptions WHERE id = ?', (subscription_id,)).fetchone()
    return row_to_dict(row)


def get_subscription_by_gateway_id(gateway_subscription_id):
    with Database.connect(Database.get_db_path()) as conn:
        row = conn.execute('SELECT * FROM subscriptions WHERE razorpay_subscription_id = ?',
                           (gateway_subscription_id,)).fetchone()
    return row_to_dict(row)


def list_user_subscriptions(user_id):
    with Database.connect(Database.get_db_path()) as conn:
        rows = conn.execute("""
            SELECT s.*, c.title AS campaign_title, u.username AS creator_username
            FROM subscriptions s
            LEFT JOIN campaigns c ON c.id = s.campaign_id
            LEFT JOIN users u ON u.id = s.creator_id
            WHERE s.subscriber_id = ?
            ORDER BY s.created_at DESC, s.id DESC
        """, (user_id,)).fetchall()
    return [dict(row) for row in rows]


def set_subscription_status(subscription_id, status, ended=False):
    if status not in SUBSCRIPTION_STATUSES:
        raise ValueError(f"Unknown subscription status: {status}")
    timestamp = now_iso()
    with Database.connect(Database.get_db_path()) as conn:
        if ended:
            conn.execute("""
                UPDATE subscriptions SET status = ?, end_date = ?, updated_at = ? WHERE id = ?
            """, (status, timestamp, timestamp, subscription_id))
        else:
            conn.execute('UPDATE subscriptions SET status = ?, updated_at = ? WHERE id = ?',
                         (status, timestamp, subscription_id))


def advance_billing_date(subscription, now=None):
    """Move next_billing_date one period past now (monthly +1, quarterly +3, yearly +12 months)"""
    upcoming = next_billing_date(subscription['frequency'], now or utc_now())
    with Database.connect(Database.get_db_path()) as conn:
        conn.execute("""
            UPDATE subscriptions SET next_billing_date = ?, status = 'active', updated_at = ? WHERE id = ?
        """, (to_iso(upcoming), now_iso(), subscription['id']))
    return upcoming

