import os
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from .config import Config


def utc_now():
    return datetime.now(timezone.utc)


def to_iso(dt):
    """Serialise a datetime the way every table stores it (UTC, second precision)"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec='seconds')


def from_iso(value):
    if not value:
        return None
    # fromisoformat only accepts a trailing Z from 3.11
    if value.endswith(('Z', 'z')):
        value = value[:-1] + '+00:00'
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def now_iso():
    return to_iso(utc_now())


class Database:
    # Serialises schema creation across request threads
    _lock = threading.Lock()

    @staticmethod
    @contextmanager
    def connect(path):
        """
        Open a connection with dict-like rows.
        Commits on success, rolls back on error, always closes.
        """
        conn = sqlite3.connect(path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def get_db_path(key='APP_DB'):
        """Get a database path from config or environment (3-tier pattern)"""
        try:
            from flask import current_app
            val = current_app.config.get(key)
            if val:
                return val
        except RuntimeError:
            pass
        return getattr(Config, key, None) or os.getenv(key, f'{key.lower()}.db')

    @staticmethod
    def ensure_dir(path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    @classmethod
    def init_schema(cls, path, statements):
        """Run CREATE TABLE / CREATE INDEX statements once per call"""
        cls.ensure_dir(path)
        with cls._lock:
            with cls.connect(path) as conn:
                cursor = conn.cursor()
                for statement in statements:
                    cursor.execute(statement)


def row_to_dict(row, json_fields=(), bool_fields=()):
    """Convert a sqlite3.Row to a plain dict, decoding JSON and boolean columns"""
    if row is None:
        return None
    data = dict(row)
    for field in json_fields:
        if field in data:
            try:
                data[field] = json.loads(data[field]) if data[field] else []
            except (TypeError, ValueError):
                data[field] = []
    for field in bool_fields:
        if field in data:
            data[field] = bool(data[field])
    return data
