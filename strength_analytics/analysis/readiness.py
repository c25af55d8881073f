"""Progression readiness based on rep-target consistency.

An athlete is ready to add load when, over the recent sessions for a pair,
they consistently hit the low end of their usual rep range, their working
weight is not trending down, and they have not just increased it.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..config import config
from .sessions import ExerciseSession, sets_average


@dataclass
class ReadinessResult:
    """Positive readiness verdict for one (exercise, machine) pair."""
    exercise_id: int
    machine_id: Optional[int]
    sessions_analyzed: int
    avg_weight_kg: float
    avg_reps: float
    rep_range: Tuple[int, int]
    consistency_rate: float
    message: str
    ready: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ready": self.ready,
            "exercise_id": self.exercise_id,
            "machine_id": self.machine_id,
            "sessions_analyzed": self.sessions_analyzed,
            "avg_weight_kg": self.avg_weight_kg,
            "avg_reps": self.avg_reps,
            "rep_range": list(self.rep_range),
            "consistency_rate": self.consistency_rate,
            "message": self.message,
        }


def _session_average_weight(session: ExerciseSession) -> float:
    return sets_average(s.weight_kg for s in session.working_sets) or 0.0


class ReadinessChecker:
    """Decide whether a pair is ready for a load increase."""

    def __init__(self, exercise_id: int, machine_id: Optional[int] = None):
        self.exercise_id = exercise_id
        self.machine_id = machine_id

    def recent_sessions(self, history: Iterable[ExerciseSession], now: datetime) -> List[ExerciseSession]:
        """Most recent finished sessions with working sets, newest first."""
        cutoff = now - timedelta(days=config.READINESS_LOOKBACK_DAYS)
        sessions = [
            s for s in history
            if s.exercise_id == self.exercise_id
            and s.machine_id == self.machine_id
            and s.is_finished
            and s.finished_at >= cutoff
            and s.working_sets
        ]
        sessions.sort(key=lambda s: s.sort_key, reverse=True)
        return sessions[:config.READINESS_MAX_SESSIONS]

    def check(self, history: Iterable[ExerciseSession], now: Optional[datetime] = None) -> Optional[ReadinessResult]:
        """Run every readiness guard.

        Args:
            history: The user's sessions; filtered to this pair here
            now: Reference time for the lookback window

        Returns:
            ReadinessResult when ready, otherwise None
        """
        now = now or datetime.utcnow()
        sessions = self.recent_sessions(history, now)
        if len(sessions) < config.READINESS_MIN_SESSIONS:
            return None

        rep_range = self.detect_rep_range(sessions)
        if rep_range is None:
            return None

        rate, avg_weight, avg_reps = self.consistency(sessions, rep_range)
        if rate < config.READINESS_CONSISTENCY_RATE:
            return None
        if self.weight_trending_down(sessions):
            return None
        if self.recently_progressed(sessions):
            return None

        return ReadinessResult(
            exercise_id=self.exercise_id,
            machine_id=self.machine_id,
            sessions_analyzed=len(sessions),
            avg_weight_kg=avg_weight,
            avg_reps=avg_reps,
            rep_range=rep_range,
            consistency_rate=rate,
            message=self.message(sessions[0].display_name, len(sessions), avg_reps, rep_range),
        )

    @staticmethod
    def detect_rep_range(sessions: List[ExerciseSession]) -> Optional[Tuple[int, int]]:
        """Mode of the working-set reps, widened by the rep window on both sides."""
        all_reps = [s.reps for session in sessions for s in session.working_sets if s.reps is not None]
        if not all_reps:
            return None

        # Ties resolve to the first rep count seen, newest session first
        mode_reps = Counter(all_reps).most_common(1)[0][0]
        window = config.READINESS_REP_WINDOW
        return (mode_reps - window, mode_reps + window)

    @staticmethod
    def consistency(sessions: List[ExerciseSession], rep_range: Tuple[int, int]) -> Tuple[float, float, float]:
        """Share of working sets reaching the range floor, with weight and rep averages."""
        sets = [s for session in sessions for s in session.working_sets]
        if not sets:
            return 0.0, 0.0, 0.0

        hitting = sum(1 for s in sets if s.reps is not None and s.reps >= rep_range[0])
        avg_weight = sets_average(s.weight_kg for s in sets)
        avg_reps = sets_average(s.reps for s in sets)
        return (
            hitting / float(len(sets)),
            round(avg_weight, 2) if avg_weight is not None else 0.0,
            round(avg_reps, 2) if avg_reps is not None else 0.0,
        )

    @staticmethod
    def weight_trending_down(sessions: List[ExerciseSession]) -> bool:
        """Newest session more than 5% lighter than the oldest in the window."""
        if len(sessions) < 2:
            return False
        weights = [_session_average_weight(s) for s in reversed(sessions)]
        return weights[-1] < weights[0] * config.READINESS_TREND_DOWN_RATIO

    @staticmethod
    def recently_progressed(sessions: List[ExerciseSession]) -> bool:
        """Two newest sessions already 2.5% heavier than the older ones."""
        if len(sessions) < 3:
            return False
        recent = [_session_average_weight(s) for s in sessions[:2]]
        older = [_session_average_weight(s) for s in sessions[2:]]
        avg_recent = sum(recent) / len(recent)
        avg_older = sum(older) / len(older)
        return avg_recent > avg_older * config.READINESS_RECENT_GAIN_RATIO

    @staticmethod
    def message(display_name: str, session_count: int, avg_reps: float, rep_range: Tuple[int, int]) -> str:
        return (
            f"You've consistently hit {rep_range[0]}+ reps on {display_name} "
            f"for {session_count} sessions (avg: {avg_reps:.1f}). Ready to progress! 💪"
        )


def check_readiness(history: Iterable[ExerciseSession], exercise_id: int, machine_id: Optional[int] = None,
                    now: Optional[datetime] = None) -> Optional[ReadinessResult]:
    return ReadinessChecker(exercise_id, machine_id).check(history, now)
