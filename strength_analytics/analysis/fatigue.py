"""Fatigue detection from session performance against a rolling baseline.

The current session is compared with the most recent finished sessions for
the same (exercise, machine) pair:

- Volume (weight x reps) is the primary indicator (70%)
- Average reps contribute 30%
- Perceived effort (RPE) adjusts the score when both sides have it; a higher
  RPE for the same work means more fatigue
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ..config import config
from .sessions import ExerciseSession, sets_average


class FatigueStatus(Enum):
    """Fatigue states ordered from best to worst."""

    FRESH = "fresh"  # performing above baseline
    NORMAL = "normal"
    FATIGUED = "fatigued"
    VERY_FATIGUED = "very_fatigued"


STATUS_COLORS = {
    FatigueStatus.FRESH: "success",
    FatigueStatus.NORMAL: "info",
    FatigueStatus.FATIGUED: "warning",
    FatigueStatus.VERY_FATIGUED: "danger",
}


@dataclass
class Performance:
    """Aggregate performance for a session or a baseline."""
    volume_kg: float
    avg_reps: float
    avg_rpe: Optional[float] = None


@dataclass
class FatigueResult:
    """Outcome of a fatigue analysis."""
    status: FatigueStatus
    performance_vs_baseline: float
    current_performance: Performance
    baseline_performance: Performance
    sessions_analyzed: int
    factors: List[str] = field(default_factory=list)

    @property
    def status_color(self) -> str:
        return STATUS_COLORS[self.status]

    @property
    def status_message(self) -> str:
        pct = round(abs(self.performance_vs_baseline) * 100)
        if self.status == FatigueStatus.FRESH:
            return f"💪 Performing {pct}% above baseline - you're fresh!"
        if self.status == FatigueStatus.NORMAL:
            return "✅ Performing at baseline - normal training capacity"
        if self.status == FatigueStatus.FATIGUED:
            return f"⚠️ Performing {pct}% below baseline - consider lighter load"
        return f"🚨 Performing {pct}% below baseline - high fatigue detected"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "performance_vs_baseline": self.performance_vs_baseline,
            "current_performance": asdict(self.current_performance),
            "baseline_performance": asdict(self.baseline_performance),
            "sessions_analyzed": self.sessions_analyzed,
            "factors": list(self.factors),
            "status_message": self.status_message,
            "status_color": self.status_color,
        }


def _round(value: Optional[float], digits: int = 2) -> Optional[float]:
    return None if value is None else round(value, digits)


class FatigueAnalyzer:
    """Compare a session's performance to the pair's recent baseline."""

    def __init__(self, baseline_sessions: Optional[int] = None, lookback_days: Optional[int] = None):
        if baseline_sessions is None:
            baseline_sessions = config.FATIGUE_BASELINE_SESSIONS
        if lookback_days is None:
            lookback_days = config.FATIGUE_LOOKBACK_DAYS
        self.baseline_sessions = baseline_sessions
        self.lookback_days = lookback_days

    def select_baseline(self, current: ExerciseSession, history: Iterable[ExerciseSession],
                        now: datetime) -> List[ExerciseSession]:
        """Most recent other finished sessions for the pair within the lookback window."""
        cutoff = now - timedelta(days=self.lookback_days)
        candidates = [
            s for s in history
            if s.pair == current.pair
            and s.id != current.id
            and s.is_finished
            and s.finished_at >= cutoff
            and s.working_sets
        ]
        candidates.sort(key=lambda s: s.sort_key, reverse=True)
        return candidates[:self.baseline_sessions]

    def analyze(self, current: ExerciseSession, history: Iterable[ExerciseSession],
                now: Optional[datetime] = None) -> Optional[FatigueResult]:
        """Analyze fatigue for the current session.

        Args:
            current: Session being performed (usually unfinished)
            history: Candidate baseline sessions for the user
            now: Reference time for the lookback window

        Returns:
            FatigueResult, or None when there are no working sets or no baseline
        """
        now = now or datetime.utcnow()
        if not current.working_sets:
            return None

        baseline_sessions = self.select_baseline(current, history, now)
        if not baseline_sessions:
            return None

        current_perf = self.current_performance(current)
        baseline_perf = self.baseline_performance(baseline_sessions)
        delta = self.performance_delta(current_perf, baseline_perf)

        return FatigueResult(
            status=self.determine_status(delta),
            performance_vs_baseline=round(delta, 3),
            current_performance=current_perf,
            baseline_performance=baseline_perf,
            sessions_analyzed=len(baseline_sessions),
            factors=self.identify_factors(current_perf, baseline_perf),
        )

    @staticmethod
    def current_performance(session: ExerciseSession) -> Performance:
        sets = session.working_sets
        return Performance(
            volume_kg=round(session.volume_kg, 2),
            avg_reps=_round(sets_average(s.reps for s in sets)) or 0.0,
            avg_rpe=_round(sets_average(s.rpe for s in sets)),
        )

    @staticmethod
    def baseline_performance(sessions: List[ExerciseSession]) -> Performance:
        """Volume averaged per session; reps and RPE pooled across all sets."""
        pooled = [s for session in sessions for s in session.working_sets]
        avg_volume = sum(session.volume_kg for session in sessions) / float(len(sessions))
        return Performance(
            volume_kg=round(avg_volume, 2),
            avg_reps=_round(sets_average(s.reps for s in pooled)) or 0.0,
            avg_rpe=_round(sets_average(s.rpe for s in pooled)),
        )

    @staticmethod
    def performance_delta(current: Performance, baseline: Performance) -> float:
        """Weighted composite of volume, reps and RPE deltas."""
        if baseline.volume_kg > 0:
            volume_delta = (current.volume_kg - baseline.volume_kg) / baseline.volume_kg
        else:
            volume_delta = 0.0

        if baseline.avg_reps > 0:
            reps_delta = (current.avg_reps - baseline.avg_reps) / baseline.avg_reps
        else:
            reps_delta = 0.0

        if current.avg_rpe is not None and baseline.avg_rpe is not None:
            rpe_adjustment = -(current.avg_rpe - baseline.avg_rpe) / 10.0
        else:
            rpe_adjustment = 0.0

        return (
            volume_delta * config.FATIGUE_VOLUME_WEIGHT
            + reps_delta * config.FATIGUE_REPS_WEIGHT
            + rpe_adjustment
        )

    @staticmethod
    def determine_status(delta: float) -> FatigueStatus:
        if delta <= config.FATIGUE_VERY_FATIGUED_THRESHOLD:
            return FatigueStatus.VERY_FATIGUED
        if delta <= config.FATIGUE_FATIGUED_THRESHOLD:
            return FatigueStatus.FATIGUED
        if delta >= config.FATIGUE_FRESH_THRESHOLD:
            return FatigueStatus.FRESH
        return FatigueStatus.NORMAL

    @staticmethod
    def identify_factors(current: Performance, baseline: Performance) -> List[str]:
        tolerance = config.FATIGUE_FACTOR_TOLERANCE
        factors = []

        if current.volume_kg < baseline.volume_kg * (1 - tolerance):
            factors.append("volume_low")
        elif current.volume_kg > baseline.volume_kg * (1 + tolerance):
            factors.append("volume_high")

        if current.avg_reps < baseline.avg_reps * (1 - tolerance):
            factors.append("reps_low")
        elif current.avg_reps > baseline.avg_reps * (1 + tolerance):
            factors.append("reps_high")

        if current.avg_rpe is not None and baseline.avg_rpe is not None:
            if current.avg_rpe > baseline.avg_rpe + config.FATIGUE_RPE_TOLERANCE:
                factors.append("effort_high")
            elif current.avg_rpe < baseline.avg_rpe - config.FATIGUE_RPE_TOLERANCE:
                factors.append("effort_low")

        return factors


def analyze_fatigue(current: ExerciseSession, history: Iterable[ExerciseSession],
                    now: Optional[datetime] = None) -> Optional[FatigueResult]:
    """Convenience wrapper around ``FatigueAnalyzer().analyze``."""
    return FatigueAnalyzer().analyze(current, history, now)
