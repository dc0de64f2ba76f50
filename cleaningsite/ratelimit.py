"""Fixed-window admission control for the public form endpoints.

Each identifier owns one bucket holding a request count and the absolute
time (epoch milliseconds) at which its window closes. The limiter itself is
backend-agnostic: buckets live either in a process-local dict or in the
``rate_limit_buckets`` table when several instances share one database.
"""
import threading
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .models import RateLimitBucket, db
from .observability import get_sink
from .utils import epoch_millis, utc_now_naive

DEFAULT_SWEEP_INTERVAL_MS = 5 * 60 * 1000


@dataclass
class RateLimitEntry:
    count: int
    reset_at: int


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int

    def headers(self):
        return {
            'X-RateLimit-Limit': str(self.limit),
            'X-RateLimit-Remaining': str(self.remaining),
            'X-RateLimit-Reset': str(self.reset),
        }


class MemoryRateLimitStore:
    """Single-process bucket store. Not shared between workers or hosts."""

    def __init__(self):
        self._entries = {}

    def get(self, key):
        return self._entries.get(key)

    def hit(self, key, limit, window_ms, now):
        entry = self._entries.get(key)
        if entry is None or entry.reset_at <= now:
            entry = RateLimitEntry(count=1, reset_at=now + window_ms)
            self._entries[key] = entry
            return True, entry
        if entry.count >= limit:
            return False, entry
        entry.count += 1
        return True, entry

    def sweep(self, now):
        expired = [key for key, entry in self._entries.items() if entry.reset_at < now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self):
        return len(self._entries)


class DatabaseRateLimitStore:
    """Bucket store backed by the application database.

    Admission is decided by conditional UPDATE statements so that workers
    sharing the table never read-modify-write the same counter.
    """

    def get(self, key):
        row = db.session.execute(
            select(RateLimitBucket.count, RateLimitBucket.reset_at).where(RateLimitBucket.key == key)
        ).one_or_none()
        if row is None:
            return None
        count, reset_at = row
        return RateLimitEntry(count=count, reset_at=reset_at)

    def hit(self, key, limit, window_ms, now):
        try:
            try:
                outcome = self._apply(key, limit, window_ms, now, create=True)
            except IntegrityError:
                # Another worker inserted the bucket first; count against theirs.
                db.session.rollback()
                outcome = self._apply(key, limit, window_ms, now, create=False)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return outcome

    def _increment(self, key, limit, now):
        return db.session.execute(
            update(RateLimitBucket)
            .where(
                RateLimitBucket.key == key,
                RateLimitBucket.reset_at > now,
                RateLimitBucket.count < limit,
            )
            .values(count=RateLimitBucket.count + 1, updated_at=utc_now_naive())
            .execution_options(synchronize_session=False)
        ).rowcount

    def _renew(self, key, window_ms, now):
        return db.session.execute(
            update(RateLimitBucket)
            .where(RateLimitBucket.key == key, RateLimitBucket.reset_at <= now)
            .values(count=1, reset_at=now + window_ms, updated_at=utc_now_naive())
            .execution_options(synchronize_session=False)
        ).rowcount

    def _apply(self, key, limit, window_ms, now, create):
        if self._increment(key, limit, now) or self._renew(key, window_ms, now):
            return True, self.get(key)
        # A concurrent renewal may have opened a new window since the first attempt.
        if self._increment(key, limit, now):
            return True, self.get(key)
        entry = self.get(key)
        if entry is not None:
            return False, entry
        if not create:
            return True, RateLimitEntry(count=1, reset_at=now + window_ms)
        db.session.add(RateLimitBucket(key=key, count=1, reset_at=now + window_ms))
        db.session.flush()
        return True, RateLimitEntry(count=1, reset_at=now + window_ms)

    def sweep(self, now):
        try:
            removed = RateLimitBucket.query.filter(RateLimitBucket.reset_at < now).delete(synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return removed


class RateLimiter:
    def __init__(self, store=None, clock=None, sweep_interval_ms=DEFAULT_SWEEP_INTERVAL_MS):
        self.store = store if store is not None else MemoryRateLimitStore()
        self.clock = clock or epoch_millis
        self.sweep_interval_ms = sweep_interval_ms
        self._lock = threading.Lock()
        self._last_sweep = self.clock()

    def check(self, identifier, limit=5, window_ms=60000):
        """Admit or reject one request. Store failures admit the request and are reported."""
        now = self.clock()
        with self._lock:
            try:
                self._maybe_sweep(now)
            except SQLAlchemyError as exc:
                self._report(exc, 'sweep')
            try:
                admitted, entry = self.store.hit(identifier, limit, window_ms, now)
            except SQLAlchemyError as exc:
                self._report(exc, 'check')
                return RateLimitResult(success=True, limit=limit, remaining=limit - 1, reset=now + window_ms)
            if not admitted:
                return RateLimitResult(success=False, limit=limit, remaining=0, reset=entry.reset_at)
            return RateLimitResult(
                success=True,
                limit=limit,
                remaining=max(0, limit - entry.count),
                reset=entry.reset_at,
            )

    def sweep(self):
        now = self.clock()
        with self._lock:
            return self._sweep(now)

    def _maybe_sweep(self, now):
        if now - self._last_sweep < self.sweep_interval_ms:
            return
        self._sweep(now)

    def _sweep(self, now):
        self._last_sweep = now
        return self.store.sweep(now)

    def _report(self, error, operation):
        get_sink().report_error(error, tags={'module': 'rate-limit', 'operation': operation})


def build_rate_limiter(app):
    backend = (app.config.get('RATE_LIMIT_BACKEND') or 'memory').strip().lower()
    if backend == 'database':
        store = DatabaseRateLimitStore()
    elif backend == 'memory':
        store = MemoryRateLimitStore()
    else:
        raise ValueError(f'Unknown RATE_LIMIT_BACKEND: {backend!r}')
    sweep_seconds = int(app.config.get('RATE_LIMIT_SWEEP_SECONDS') or 300)
    return RateLimiter(store=store, sweep_interval_ms=sweep_seconds * 1000)


def get_rate_limiter():
    return current_app.extensions['rate_limiter']
