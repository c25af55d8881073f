"""Versioned memoization for per-user analytics.

Each (user, metric) pair has a version counter, stored apart from the cached
values. Values are keyed by (user, metric, version): invalidation bumps the
counter instead of deleting anything, so a value computed under version N is
only ever served to readers that asked for version N. Superseded versions are
garbage-collected when a newer value is written, and a value computed for a
version that was bumped in the meantime is dropped instead of stored.
"""

import json
import logging
import threading
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import event, inspect, update
from sqlalchemy.exc import IntegrityError

from .config import config
from .db.database import Database
from .db.models import (
    AnalyticsCacheEntry,
    AnalyticsCacheMetric,
    AnalyticsCacheVersion,
    ExerciseSet,
    Workout,
    WorkoutExercise,
)

logger = logging.getLogger(__name__)

METRIC_TYPES = ("cache_hit", "cache_miss", "invalidation")

# Marks a cache miss so that None remains a cacheable value
MISSING = object()


class InvalidationScope:
    """Tokens already invalidated within one logical unit of work.

    Passing the same scope to several ``invalidate`` calls skips repeated
    version bumps for the same (user, metric). Dropping the scope only costs
    extra writes.
    """

    def __init__(self):
        self.tokens: Set[str] = set()

    @staticmethod
    def token(user_id: int, key: str) -> str:
        return f"{user_id}:{key}"

    def __contains__(self, token: str) -> bool:
        return token in self.tokens

    def __len__(self) -> int:
        return len(self.tokens)

    def add(self, token: str) -> None:
        self.tokens.add(token)

    def reset(self) -> None:
        self.tokens.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.reset()
        return False


class CacheStore:
    """Storage interface for versions, values and daily metrics."""

    def current_version(self, user_id: int, key: str) -> int:
        raise NotImplementedError

    def increment_version(self, user_id: int, key: str, now: datetime) -> int:
        raise NotImplementedError

    def read_value(self, user_id: int, key: str, version: int, fresh_after: datetime) -> Any:
        raise NotImplementedError

    def write_value(self, user_id: int, key: str, version: int, value: Any, now: datetime) -> None:
        raise NotImplementedError

    def increment_metric(self, user_id: int, day: date, metric_type: str, now: datetime) -> None:
        raise NotImplementedError

    def read_metrics(self, user_id: int, day: date) -> Dict[str, int]:
        raise NotImplementedError

    def reset_metrics(self, user_id: int, day: date) -> None:
        raise NotImplementedError


class MemoryCacheStore(CacheStore):
    """Process-local store guarded by a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._versions: Dict[Tuple[int, str], int] = {}
        self._values: Dict[Tuple[int, str, int], Tuple[str, datetime]] = {}
        self._metrics: Dict[Tuple[int, date, str], Tuple[int, datetime]] = {}

    def current_version(self, user_id, key):
        with self._lock:
            return self._versions.get((user_id, key), 1)

    def increment_version(self, user_id, key, now):
        with self._lock:
            version = self._versions.get((user_id, key), 1) + 1
            self._versions[(user_id, key)] = version
            return version

    def read_value(self, user_id, key, version, fresh_after):
        with self._lock:
            stored = self._values.get((user_id, key, version))
        if stored is None or stored[1] < fresh_after:
            return MISSING
        return json.loads(stored[0])

    def write_value(self, user_id, key, version, value, now):
        payload = json.dumps(value)
        with self._lock:
            if version < self._versions.get((user_id, key), 1):
                logger.debug(f"Dropping value for superseded version {user_id}:{key}:{version}")
                return
            self._values[(user_id, key, version)] = (payload, now)
            for stale in [k for k in self._values if k[:2] == (user_id, key) and k[2] < version]:
                del self._values[stale]

    def increment_metric(self, user_id, day, metric_type, now):
        expires_at = now + timedelta(days=config.CACHE_METRICS_TTL_DAYS)
        with self._lock:
            count, _ = self._metrics.get((user_id, day, metric_type), (0, expires_at))
            self._metrics[(user_id, day, metric_type)] = (count + 1, expires_at)

    def read_metrics(self, user_id, day):
        with self._lock:
            return {m: self._metrics.get((user_id, day, m), (0, None))[0] for m in METRIC_TYPES}

    def reset_metrics(self, user_id, day):
        with self._lock:
            for m in METRIC_TYPES:
                self._metrics.pop((user_id, day, m), None)


class SqlCacheStore(CacheStore):
    """Store backed by the analytics cache tables.

    Every operation runs in its own short database session. Counters are
    bumped with a single ``UPDATE ... SET version = version + 1`` so that
    concurrent invalidations never lose an increment.
    """

    def __init__(self, db: Database):
        self.db = db

    def current_version(self, user_id, key):
        with self.db.get_session() as session:
            return self._version(session, user_id, key)

    @staticmethod
    def _version(session, user_id, key) -> int:
        version = (
            session.query(AnalyticsCacheVersion.version)
            .filter_by(user_id=user_id, metric_key=key)
            .scalar()
        )
        return version if version and version > 0 else 1

    def increment_version(self, user_id, key, now):
        with self.db.get_session() as session:
            if not self._bump(session, user_id, key, now):
                try:
                    with session.begin_nested():
                        session.add(AnalyticsCacheVersion(
                            user_id=user_id, metric_key=key, version=2, updated_at=now,
                        ))
                except IntegrityError:
                    # Created concurrently; bump the row that won
                    self._bump(session, user_id, key, now)
            session.flush()
            return self._version(session, user_id, key)

    @staticmethod
    def _bump(session, user_id, key, now) -> bool:
        result = session.execute(
            update(AnalyticsCacheVersion)
            .where(
                AnalyticsCacheVersion.user_id == user_id,
                AnalyticsCacheVersion.metric_key == key,
            )
            .values(version=AnalyticsCacheVersion.version + 1, updated_at=now)
        )
        return result.rowcount > 0

    def read_value(self, user_id, key, version, fresh_after):
        with self.db.get_session() as session:
            entry = (
                session.query(AnalyticsCacheEntry)
                .filter_by(user_id=user_id, metric_key=key, version=version)
                .one_or_none()
            )
            if entry is None or entry.computed_at < fresh_after:
                return MISSING
            return json.loads(entry.value_json)

    def write_value(self, user_id, key, version, value, now):
        payload = json.dumps(value)
        with self.db.get_session() as session:
            if version < self._version(session, user_id, key):
                # Invalidated while computing; nothing will ever read this version
                logger.debug(f"Dropping value for superseded version {user_id}:{key}:{version}")
                return

            entry = (
                session.query(AnalyticsCacheEntry)
                .filter_by(user_id=user_id, metric_key=key, version=version)
                .one_or_none()
            )
            if entry is None:
                try:
                    with session.begin_nested():
                        session.add(AnalyticsCacheEntry(
                            user_id=user_id, metric_key=key, version=version,
                            value_json=payload, computed_at=now,
                        ))
                except IntegrityError:
                    # Another reader computed the same version first; keep theirs
                    logger.debug(f"Cache entry {user_id}:{key}:{version} written concurrently")
            else:
                entry.value_json = payload
                entry.computed_at = now

            session.query(AnalyticsCacheEntry).filter(
                AnalyticsCacheEntry.user_id == user_id,
                AnalyticsCacheEntry.metric_key == key,
                AnalyticsCacheEntry.version < version,
            ).delete(synchronize_session=False)

    def increment_metric(self, user_id, day, metric_type, now):
        expires_at = now + timedelta(days=config.CACHE_METRICS_TTL_DAYS)
        with self.db.get_session() as session:
            result = session.execute(
                update(AnalyticsCacheMetric)
                .where(
                    AnalyticsCacheMetric.user_id == user_id,
                    AnalyticsCacheMetric.day == day,
                    AnalyticsCacheMetric.metric_type == metric_type,
                )
                .values(count=AnalyticsCacheMetric.count + 1, expires_at=expires_at)
            )
            if result.rowcount == 0:
                try:
                    with session.begin_nested():
                        session.add(AnalyticsCacheMetric(
                            user_id=user_id, day=day, metric_type=metric_type,
                            count=1, expires_at=expires_at,
                        ))
                except IntegrityError:
                    session.execute(
                        update(AnalyticsCacheMetric)
                        .where(
                            AnalyticsCacheMetric.user_id == user_id,
                            AnalyticsCacheMetric.day == day,
                            AnalyticsCacheMetric.metric_type == metric_type,
                        )
                        .values(count=AnalyticsCacheMetric.count + 1)
                    )

            session.query(AnalyticsCacheMetric).filter(
                AnalyticsCacheMetric.user_id == user_id,
                AnalyticsCacheMetric.expires_at < now,
            ).delete(synchronize_session=False)

    def read_metrics(self, user_id, day):
        with self.db.get_session() as session:
            rows = (
                session.query(AnalyticsCacheMetric.metric_type, AnalyticsCacheMetric.count)
                .filter_by(user_id=user_id, day=day)
                .all()
            )
        counts = dict(rows)
        return {m: int(counts.get(m, 0)) for m in METRIC_TYPES}

    def reset_metrics(self, user_id, day):
        with self.db.get_session() as session:
            session.query(AnalyticsCacheMetric).filter_by(user_id=user_id, day=day).delete(
                synchronize_session=False
            )


class AnalyticsCache:
    """Fetch-or-compute analytics values under per-metric versions."""

    def __init__(self, store: Optional[CacheStore] = None, clock: Callable[[], datetime] = datetime.utcnow):
        self.store = store or MemoryCacheStore()
        self.clock = clock

    @staticmethod
    def cache_key(user_id: int, key: str, version: int) -> str:
        return f"{config.CACHE_NAMESPACE}:user:{user_id}:{key}:version:{version}"

    def fetch(self, user_id: int, key: str, compute: Callable[[], Any]) -> Any:
        """Return the value for the current version, computing it on a miss.

        Args:
            user_id: Owner of the metric
            key: Metric name, e.g. "streaks"
            compute: Zero-argument callable producing a JSON-serializable value

        Returns:
            Cached or freshly computed value
        """
        now = self.clock()
        version = self.store.current_version(user_id, key)
        fresh_after = now - timedelta(seconds=config.CACHE_VALUE_TTL_SECONDS)

        value = self.store.read_value(user_id, key, version, fresh_after)
        if value is not MISSING:
            self.store.increment_metric(user_id, now.date(), "cache_hit", now)
            logger.debug(f"Analytics cache hit {self.cache_key(user_id, key, version)}")
            return value

        value = compute()
        self.store.write_value(user_id, key, version, value, now)
        self.store.increment_metric(user_id, now.date(), "cache_miss", now)
        logger.debug(f"Analytics cache miss {self.cache_key(user_id, key, version)}")
        return value

    def invalidate(self, user_id: Optional[int], keys: Optional[Iterable[str]] = None,
                   scope: Optional[InvalidationScope] = None) -> List[str]:
        """Bump the version of each key; returns the keys actually bumped."""
        if user_id is None:
            return []

        now = self.clock()
        bumped = []
        for key in (config.ANALYTICS_KEYS if keys is None else keys):
            token = InvalidationScope.token(user_id, key)
            if scope is not None and token in scope:
                logger.debug(f"Skipping repeated invalidation of {token}")
                continue

            version = self.store.increment_version(user_id, key, now)
            self.store.increment_metric(user_id, now.date(), "invalidation", now)
            if scope is not None:
                scope.add(token)
            bumped.append(key)
            logger.debug(f"Invalidated {token}, now at version {version}")

        return bumped

    def metrics_for_user(self, user_id: int, day: Optional[date] = None) -> Dict[str, int]:
        return self.store.read_metrics(user_id, day or self.clock().date())

    def reset_metrics_for_user(self, user_id: int, day: Optional[date] = None) -> None:
        self.store.reset_metrics(user_id, day or self.clock().date())


_DIRTY_USERS = "analytics_dirty_users"
_WORKOUT_TIMING = ("finished_at", "started_at", "user_id")


def _owner_ids(session, obj, is_update: bool) -> Set[int]:
    """Users whose analytics are affected by a flushed training row."""
    if isinstance(obj, Workout):
        if not is_update:
            return {obj.user_id}
        state = inspect(obj)
        if not any(state.attrs[name].history.has_changes() for name in _WORKOUT_TIMING):
            return set()
        owners = {obj.user_id}
        owners.update(uid for uid in state.attrs.user_id.history.deleted if uid is not None)
        return owners

    if isinstance(obj, ExerciseSet):
        obj = vars(obj).get("workout_exercise") or session.get(WorkoutExercise, obj.workout_exercise_id)

    if isinstance(obj, WorkoutExercise):
        workout = vars(obj).get("workout") or session.get(Workout, obj.workout_id)
        return {workout.user_id} if workout is not None else set()

    return set()


def install_invalidation_hooks(db: Database, cache: AnalyticsCache) -> None:
    """Invalidate a user's analytics whenever their training data is committed.

    Flushes collect affected users on the session; a commit invalidates each of
    them once through a fresh ``InvalidationScope``; a rollback discards them.
    """
    tracked = (Workout, WorkoutExercise, ExerciseSet)

    @event.listens_for(db.SessionLocal, "after_flush")
    def collect_dirty_users(session, flush_context):
        dirty = session.info.setdefault(_DIRTY_USERS, set())
        for obj in session.new:
            if isinstance(obj, tracked):
                dirty.update(_owner_ids(session, obj, is_update=False))
        for obj in session.deleted:
            if isinstance(obj, tracked):
                dirty.update(_owner_ids(session, obj, is_update=False))
        for obj in session.dirty:
            if isinstance(obj, tracked) and session.is_modified(obj, include_collections=False):
                dirty.update(_owner_ids(session, obj, is_update=isinstance(obj, Workout)))
        dirty.discard(None)

    @event.listens_for(db.SessionLocal, "after_commit")
    def invalidate_committed(session):
        users = session.info.pop(_DIRTY_USERS, set())
        if not users:
            return
        scope = InvalidationScope()
        for user_id in sorted(users):
            cache.invalidate(user_id, scope=scope)
        logger.info(f"Invalidated analytics cache for {len(users)} user(s) after commit")

    @event.listens_for(db.SessionLocal, "after_rollback")
    def discard_dirty_users(session):
        session.info.pop(_DIRTY_USERS, None)
