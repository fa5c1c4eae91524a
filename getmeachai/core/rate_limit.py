"""
In-memory sliding-window rate limiter.

Each client+endpoint key maps to the timestamps (ms) of its recent requests.
State lives in this process only; a multi-instance deployment needs a shared
store instead.
"""

import math
import time
import logging
import threading
from collections import namedtuple
from datetime import datetime, timezone
from functools import wraps

from flask import request, jsonify, session, current_app

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 5 * 60
STALE_AFTER_MS = 60 * 60 * 1000

RateLimitResult = namedtuple('RateLimitResult', 'allowed limit remaining reset_at retry_after')


def _now_ms():
    return int(time.time() * 1000)


def _ms_to_iso(ms):
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec='milliseconds')


class RateLimiter:
    def __init__(self, max_requests, window_ms, name=None):
        if not isinstance(max_requests, int) or isinstance(max_requests, bool) or max_requests <= 0:
            raise ValueError('max_requests must be a positive integer')
        if not isinstance(window_ms, int) or isinstance(window_ms, bool) or window_ms <= 0:
            raise ValueError('window_ms must be a positive integer')
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.name = name or f'{max_requests}/{window_ms}ms'
        self._requests = {}
        self._lock = threading.Lock()

    def check(self, key, now=None):
        """Record a request for key unless the window is already full"""
        now = _now_ms() if now is None else now
        with self._lock:
            timestamps = [ts for ts in self._requests.get(key, []) if now - ts < self.window_ms]

            if len(timestamps) >= self.max_requests:
                self._requests[key] = timestamps
                oldest = timestamps[0]
                reset_at = oldest + self.window_ms
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=max(1, math.ceil((reset_at - now) / 1000)),
                )

            timestamps.append(now)
            self._requests[key] = timestamps
            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - len(timestamps)),
                reset_at=timestamps[0] + self.window_ms,
                retry_after=0,
            )

    def cleanup(self, now=None):
        """Drop keys with no request in the last hour. Returns the number removed."""
        now = _now_ms() if now is None else now
        with self._lock:
            stale = [
                key for key, timestamps in self._requests.items()
                if not any(now - ts < STALE_AFTER_MS for ts in timestamps)
            ]
            for key in stale:
                del self._requests[key]
        if stale:
            logger.debug(f"Rate limiter {self.name}: purged {len(stale)} stale keys")
        return len(stale)

    def reset(self, key=None):
        with self._lock:
            if key is None:
                self._requests.clear()
            else:
                self._requests.pop(key, None)

    def __len__(self):
        with self._lock:
            return len(self._requests)


def client_identifier():
    """user:<id> for a signed-in session, otherwise ip:<address>"""
    user_id = session.get('user_id')
    if user_id:
        return f'user:{user_id}'

    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        ip = forwarded.split(',')[0].strip()
    else:
        ip = request.headers.get('X-Real-IP') or request.remote_addr or 'unknown'
    return f'ip:{ip}'


def request_key():
    return f'{client_identifier()}:{request.path}'


# Preset name -> (config max key, config window key, default max, default window ms)
PRESETS = {
    'auth': ('RATE_LIMIT_AUTH_MAX', 'RATE_LIMIT_AUTH_WINDOW', 5, 15 * 60 * 1000),
    'api': ('RATE_LIMIT_API_MAX', 'RATE_LIMIT_API_WINDOW', 100, 15 * 60 * 1000),
    'general': ('RATE_LIMIT_GENERAL_MAX', 'RATE_LIMIT_GENERAL_WINDOW', 1000, 15 * 60 * 1000),
    'sensitive': (None, None, 3, 60 * 60 * 1000),
    'ai': ('AI_RATE_LIMIT_MAX', 'AI_RATE_LIMIT_WINDOW', 20, 60 * 60 * 1000),
}


class RateLimitRegistry:
    """Holds one limiter per preset and the background purge thread"""

    def __init__(self):
        self._limiters = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None

    def configure(self, settings):
        """(Re)build preset limiters from a config mapping"""
        with self._lock:
            self._limiters = {}
            for name, (max_key, window_key, default_max, default_window) in PRESETS.items():
                max_requests = settings.get(max_key, default_max) if max_key else default_max
                window_ms = settings.get(window_key, default_window) if window_key else default_window
                self._limiters[name] = RateLimiter(int(max_requests), int(window_ms), name=name)

    def get(self, name):
        with self._lock:
            if not self._limiters:
                self._limiters = {
                    preset: RateLimiter(default_max, default_window, name=preset)
                    for preset, (_, _, default_max, default_window) in PRESETS.items()
                }
            if name not in self._limiters:
                raise KeyError(f"Unknown rate limit preset: {name}")
            return self._limiters[name]

    def cleanup(self, now=None):
        with self._lock:
            limiters = list(self._limiters.values())
        return sum(limiter.cleanup(now) for limiter in limiters)

    def reset(self):
        with self._lock:
            limiters = list(self._limiters.values())
        for limiter in limiters:
            limiter.reset()

    def _run_cleanup(self):
        while not self._stop.wait(CLEANUP_INTERVAL_SECONDS):
            try:
                self.cleanup()
            except Exception as e:
                logger.error(f"Rate limiter cleanup failed: {e}")

    def start_cleanup(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run_cleanup, name='rate-limit-cleanup', daemon=True
        )
        self._thread.start()
        logger.debug("Rate limiter cleanup thread started")

    def stop_cleanup(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1)
        self._thread = None


limiters = RateLimitRegistry()


def _apply_headers(response, result):
    response.headers['X-RateLimit-Limit'] = str(result.limit)
    response.headers['X-RateLimit-Remaining'] = str(result.remaining)
    response.headers['X-RateLimit-Reset'] = _ms_to_iso(result.reset_at)
    return response


def rate_limit(preset='api'):
    """
    View decorator enforcing a preset (or an explicit RateLimiter).
    Rejected requests get a 429 with Retry-After.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_app.config.get('RATE_LIMIT_ENABLED', True):
                return f(*args, **kwargs)

            limiter = preset if isinstance(preset, RateLimiter) else limiters.get(preset)
            result = limiter.check(request_key())

            if not result.allowed:
                logger.warning(f"Rate limit exceeded for {request_key()} ({limiter.name})")
                response = jsonify({
                    'error': 'Too many requests, please try again later.',
                    'retryAfter': result.retry_after,
                    'limit': result.limit,
                    'windowMs': limiter.window_ms,
                })
                response.status_code = 429
                response.headers['Retry-After'] = str(result.retry_after)
                return _apply_headers(response, result)

            response = current_app.make_response(f(*args, **kwargs))
            return _apply_headers(response, result)
        return decorated_function
    return decorator
