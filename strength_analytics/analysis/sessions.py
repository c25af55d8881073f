"""Immutable snapshots of logged training used as analyzer input.

Analyzers never touch the database. The repository in ``strength_analytics.db``
materializes these snapshots, and every computation in ``analysis`` is a pure
function over them.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class LoggedSet:
    """A single logged set."""
    weight_kg: Optional[float]
    reps: Optional[int]
    is_warmup: bool = False
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    rpe: Optional[float] = None
    rir: Optional[int] = None
    position: int = 0
    id: Optional[int] = None

    @property
    def is_working(self) -> bool:
        return not self.is_warmup

    @property
    def volume_kg(self) -> float:
        return (self.weight_kg or 0) * (self.reps or 0)

    @property
    def achieved_on(self) -> Optional[date]:
        stamp = self.completed_at or self.created_at
        return stamp.date() if stamp else None


@dataclass(frozen=True)
class ExerciseSession:
    """One exercise on one machine within one workout, with its sets.

    ``started_at``/``finished_at`` belong to the parent workout. A session with
    ``finished_at=None`` is in progress and never part of historical data.
    """
    id: int
    workout_id: int
    exercise_id: int
    machine_id: Optional[int]
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    sets: Tuple[LoggedSet, ...] = field(default_factory=tuple)
    exercise_name: str = ""
    machine_name: Optional[str] = None
    has_weight: bool = True
    user_id: Optional[int] = None

    @property
    def pair(self) -> Tuple[int, Optional[int]]:
        """(exercise, machine) scope key for PRs and baselines."""
        return (self.exercise_id, self.machine_id)

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    @property
    def working_sets(self) -> List[LoggedSet]:
        return [s for s in self.sets if s.is_working]

    @property
    def volume_kg(self) -> float:
        """Total working volume (weight x reps) for the session."""
        return sum(s.volume_kg for s in self.working_sets)

    @property
    def display_name(self) -> str:
        if self.machine_name:
            return f"{self.exercise_name} ({self.machine_name})"
        return self.exercise_name

    @property
    def sort_key(self) -> tuple:
        """Deterministic chronological ordering key."""
        return (self.finished_at or datetime.max, self.workout_id, self.id)


@dataclass(frozen=True)
class WorkoutSnapshot:
    """A workout's identity and timing, independent of its exercises."""
    id: int
    started_at: Optional[datetime]
    finished_at: Optional[datetime]

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    @property
    def duration_minutes(self) -> int:
        if not self.started_at or not self.finished_at:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() // 60)


def pair_sort_key(pair: Tuple[int, Optional[int]]) -> Tuple[int, int]:
    """Order (exercise, machine) pairs with a missing machine first."""
    exercise_id, machine_id = pair
    return (exercise_id, -1 if machine_id is None else machine_id)


def finished_only(sessions: Iterable[ExerciseSession]) -> List[ExerciseSession]:
    return [s for s in sessions if s.is_finished]


def for_pair(sessions: Iterable[ExerciseSession], exercise_id: int,
             machine_id: Optional[int]) -> List[ExerciseSession]:
    return [s for s in sessions if s.exercise_id == exercise_id and s.machine_id == machine_id]


def sets_average(values: Iterable[Optional[float]]) -> Optional[float]:
    """Average of the non-null values, like SQL AVG."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return float(np.mean(present))
