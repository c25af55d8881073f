"""Dashboard analytics served through the versioned cache."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .analysis import aggregates
from .analysis.personal_records import calculate_timeline
from .analysis.sessions import ExerciseSession
from .cache import AnalyticsCache
from .config import config
from .db.models import User
from .db.repository import TrainingRepository


class DashboardAnalytics:
    """Per-user dashboard rollups, each memoized under its analytics key."""

    def __init__(self, session: Session, user: User, cache: AnalyticsCache, now: Optional[datetime] = None):
        self.user = user
        self.cache = cache
        self.now = now or datetime.utcnow()
        self.repository = TrainingRepository(session)
        self._sessions: Optional[List[ExerciseSession]] = None

    @property
    def history(self) -> List[ExerciseSession]:
        if self._sessions is None:
            self._sessions = self.repository.exercise_sessions(self.user.id, finished_only=True)
        return self._sessions

    def _fetch(self, key: str, compute):
        return self.cache.fetch(self.user.id, key, compute)

    def pr_timeline(self) -> List[Dict[str, Any]]:
        return self._fetch("pr_timeline", lambda: calculate_timeline(
            self.history, now=self.now, unit=self.user.unit,
        ))

    def streaks(self) -> Dict[str, Any]:
        return self._fetch("streaks", lambda: aggregates.calculate_streaks(
            self.repository.finished_workout_times(self.user.id), self.now.date(),
        ))

    def week_comparison(self) -> Dict[str, Any]:
        return self._fetch("week_comparison", lambda: aggregates.week_comparison(
            self.history,
            self.repository.finished_workout_times(self.user.id),
            self.now.date(),
            unit=self.user.unit,
        ))

    def tonnage(self) -> List[Dict[str, Any]]:
        return self._fetch("tonnage", lambda: aggregates.weekly_tonnage(
            self.history, self.now.date(), unit=self.user.unit,
        ))

    def plateaus(self) -> List[Dict[str, Any]]:
        return self._fetch("plateaus", lambda: [
            p.to_dict(self.user.unit) for p in aggregates.detect_plateaus(self.history, self.now)
        ])

    def rep_range_distribution(self) -> Dict[str, int]:
        return self._fetch("rep_range_distribution", lambda: aggregates.rep_range_distribution(
            self.history, self.now,
        ))

    def exercise_frequency(self) -> List[Dict[str, Any]]:
        return self._fetch("exercise_frequency", lambda: aggregates.exercise_frequency(
            self.history, self.now,
        ))

    def all(self) -> Dict[str, Any]:
        """Every dashboard metric keyed by its analytics key."""
        return {key: getattr(self, key)() for key in config.ANALYTICS_KEYS}
