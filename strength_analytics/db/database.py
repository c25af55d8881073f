"""Database connection, sessions and the analytics cache bound to them."""

from typing import TYPE_CHECKING, Generator, Optional
from contextlib import contextmanager
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..config import config
from .models import Base

if TYPE_CHECKING:
    from ..cache import AnalyticsCache


class Database:
    """Training store: engine, unit-of-work sessions and analytics cache.

    Every write to training data goes through ``get_session()``. Once
    ``enable_analytics_cache()`` has run, committing such a session
    invalidates the cached dashboard metrics of each user it touched.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or config.DATABASE_URL
        url = make_url(self.database_url)

        if url.get_backend_name() == "sqlite":
            # One shared connection; cache writes run in short sessions beside the caller's
            if url.database and url.database != ":memory:":
                Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(self.database_url, pool_pre_ping=True)

        self.SessionLocal = sessionmaker(autoflush=False, bind=self.engine)
        self.analytics_cache: Optional["AnalyticsCache"] = None

    def create_tables(self):
        """Create training, notification and cache tables."""
        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self):
        Base.metadata.drop_all(bind=self.engine)

    def enable_analytics_cache(self) -> "AnalyticsCache":
        """Store dashboard analytics in the cache tables of this database.

        Installs the session hooks that invalidate a user's metrics when their
        workouts, exercises or sets are committed. Calling it again returns
        the same cache without installing the hooks twice.
        """
        if self.analytics_cache is None:
            from ..cache import AnalyticsCache, SqlCacheStore, install_invalidation_hooks

            self.analytics_cache = AnalyticsCache(SqlCacheStore(self))
            install_invalidation_hooks(self, self.analytics_cache)
        return self.analytics_cache

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Unit of work: commit on success, roll back on any error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        self.engine.dispose()


# Global database instance
_db: Optional[Database] = None


def get_db() -> Database:
    """Application database with its tables created and analytics cache enabled."""
    global _db
    if _db is None:
        _db = Database()
        _db.create_tables()
        _db.enable_analytics_cache()
    return _db


def close_db():
    """Close the global database connection."""
    global _db
    if _db is not None:
        _db.close()
        _db = None
