"""Personal record (PR) calculations.

PRs are always scoped to an (exercise, machine) pair: the same exercise on
different equipment is a different movement and is never compared. Four
record types are tracked:

1. Weight PR: heaviest working set
2. Set volume PR: highest weight x reps in one set
3. Session volume PR: highest total working volume in one session
4. e1RM PR: best estimated one-rep max

A first occurrence is a baseline, not a PR. The live checks and the timeline
only report a record when a positive prior record existed.
"""

import calendar
import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..config import config
from .one_rm import estimate_1rm, round_half_up
from .sessions import ExerciseSession, LoggedSet, pair_sort_key
from .units import display_weight

logger = logging.getLogger(__name__)


def months_before(moment: datetime, months: int) -> datetime:
    """Same day-of-month `months` earlier, clamped to the month length."""
    year, month = divmod(moment.year * 12 + moment.month - 1 - months, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _set_record(logged_set: LoggedSet) -> Dict[str, Any]:
    return {
        "weight_kg": logged_set.weight_kg,
        "reps": logged_set.reps,
        "date": logged_set.achieved_on,
    }


def calculate_all(sessions: Iterable[ExerciseSession], has_weight: Optional[bool] = None) -> Dict[str, Any]:
    """Snapshot PRs over a collection of sessions for one pair.

    Args:
        sessions: Sessions to analyze (no historical baseline is applied)
        has_weight: Whether the exercise is weighted; defaults to the
            first session's flag

    Returns:
        Dict with best_set_weight, best_set_volume, best_session_volume and
        best_e1rm, each a dict tagged with the date achieved or None
    """
    prs = {
        "best_set_weight": None,
        "best_set_volume": None,
        "best_session_volume": None,
        "best_e1rm": None,
    }

    sessions = list(sessions)
    if not sessions:
        return prs
    if has_weight is None:
        has_weight = sessions[0].has_weight
    if not has_weight:
        return prs

    sets = [s for session in sessions for s in session.working_sets if (s.weight_kg or 0) > 0]
    if not sets:
        return prs

    heaviest = max(sets, key=lambda s: s.weight_kg)
    prs["best_set_weight"] = _set_record(heaviest)

    biggest = max(sets, key=lambda s: s.volume_kg)
    if biggest.volume_kg > 0:
        prs["best_set_volume"] = dict(_set_record(biggest), volume=biggest.volume_kg)

    prs["best_e1rm"] = _best_e1rm(sets)
    prs["best_session_volume"] = _best_session_volume(sessions)
    return prs


def _best_e1rm(sets: List[LoggedSet]) -> Optional[Dict[str, Any]]:
    best_value = 0.0
    best_set = None

    for logged_set in sets:
        if not logged_set.reps or logged_set.reps <= 0:
            continue
        e1rm = estimate_1rm(logged_set.weight_kg, logged_set.reps)
        if e1rm and e1rm > best_value:
            best_value = e1rm
            best_set = logged_set

    if best_set is None:
        return None
    return dict(_set_record(best_set), e1rm_kg=best_value)


def _best_session_volume(sessions: List[ExerciseSession]) -> Optional[Dict[str, Any]]:
    best = max(sessions, key=lambda s: s.volume_kg)
    if best.volume_kg <= 0:
        return None

    started = best.started_at or best.finished_at
    return {
        "volume": best.volume_kg,
        "workout_id": best.workout_id,
        "date": started.date() if started else None,
    }


def _prior_sessions(session: ExerciseSession, history: Iterable[ExerciseSession]) -> List[ExerciseSession]:
    """Other finished workouts for the same pair."""
    return [
        other for other in history
        if other.pair == session.pair
        and other.workout_id != session.workout_id
        and other.is_finished
    ]


def previous_best_weight(session: ExerciseSession, history: Iterable[ExerciseSession]) -> Optional[float]:
    """Heaviest working set from other finished workouts, or None without history."""
    weights = [
        s.weight_kg
        for other in _prior_sessions(session, history)
        for s in other.working_sets
        if s.weight_kg is not None
    ]
    return max(weights) if weights else None


def is_weight_pr(logged_set: LoggedSet, session: ExerciseSession,
                 history: Iterable[ExerciseSession]) -> bool:
    """Real-time weight PR check for one set.

    Warmups, sets without positive weight or reps, and sets with no prior
    record to beat are never PRs.
    """
    if logged_set.is_warmup:
        return False
    if not logged_set.weight_kg or logged_set.weight_kg <= 0:
        return False
    if not logged_set.reps or logged_set.reps <= 0:
        return False

    prior = previous_best_weight(session, history)
    if prior is None:
        return False
    return logged_set.weight_kg > prior


def is_volume_pr(session: ExerciseSession, history: Iterable[ExerciseSession]) -> bool:
    """Whether this session's working volume beats every other finished session."""
    if not session.has_weight:
        return False

    current = session.volume_kg
    if current <= 0:
        return False

    previous = [other.volume_kg for other in _prior_sessions(session, history)]
    if not previous:
        return False
    return current > max(previous)


def _timeline_sets(session: ExerciseSession) -> List[LoggedSet]:
    sets = [s for s in session.working_sets if s.weight_kg is not None and (s.reps or 0) > 0]
    return sorted(sets, key=lambda s: (s.position, s.id if s.id is not None else 0))


def _event(session: ExerciseSession, on: date, weight_kg: float, reps: int,
           kind: str, unit: str) -> Dict[str, Any]:
    return {
        "exercise_id": session.exercise_id,
        "machine_id": session.machine_id,
        "exercise": session.exercise_name,
        "machine": session.machine_name,
        "date": on.isoformat(),
        "weight": int(round_half_up(display_weight(weight_kg, unit))),
        "reps": reps,
        "type": kind,
    }


def _pair_timeline(sessions: List[ExerciseSession], since: datetime, unit: str) -> List[Dict[str, Any]]:
    finished = [s for s in sessions if s.is_finished]
    history = [s for s in finished if s.finished_at < since]
    window = sorted((s for s in finished if s.finished_at >= since), key=lambda s: s.sort_key)

    best_weight = max(
        (s.weight_kg for session in history for s in session.working_sets if s.weight_kg is not None),
        default=0,
    )
    best_volume = max((session.volume_kg for session in history), default=0)

    events = []
    for session in window:
        on = session.finished_at.date()
        sets = _timeline_sets(session)

        for logged_set in sets:
            if logged_set.weight_kg > best_weight:
                if best_weight > 0:
                    events.append(_event(session, on, logged_set.weight_kg, logged_set.reps, "weight", unit))
                best_weight = logged_set.weight_kg

        volume = sum(s.volume_kg for s in sets)
        if volume > best_volume:
            if best_volume > 0:
                heaviest = max((s.weight_kg for s in sets), default=0)
                events.append(_event(session, on, heaviest, sum(s.reps for s in sets), "session_volume", unit))
            best_volume = volume

    return events


def calculate_timeline(sessions: Iterable[ExerciseSession], since: Optional[datetime] = None,
                       limit: Optional[int] = None, now: Optional[datetime] = None,
                       unit: str = "kg") -> List[Dict[str, Any]]:
    """PRs achieved over time, one event per beaten record.

    Each (exercise, machine) pair is seeded with its best weight and best
    session volume from sessions finished before ``since``, then sessions in
    the window are scanned in finish order. A beat only counts when the
    running best was positive, so a first-ever log produces no events.

    Args:
        sessions: All of a user's exercise sessions; unfinished ones are ignored
        since: Window start (default: 12 months before ``now``)
        limit: Keep only the most recent N events (default 100)
        now: Reference time
        unit: Display unit for event weights

    Returns:
        Events sorted by date, independent of input order
    """
    now = now or datetime.utcnow()
    if since is None:
        since = months_before(now, config.PR_TIMELINE_MONTHS)
    if limit is None:
        limit = config.PR_TIMELINE_LIMIT

    by_pair: Dict[Tuple[int, Optional[int]], List[ExerciseSession]] = defaultdict(list)
    for session in sessions:
        by_pair[session.pair].append(session)

    events = []
    for pair in sorted(by_pair, key=pair_sort_key):
        pair_sessions = by_pair[pair]
        if not pair_sessions[0].has_weight:
            continue
        events.extend(_pair_timeline(pair_sessions, since, unit))

    events.sort(key=lambda e: e["date"])
    logger.debug(f"PR timeline produced {len(events)} events across {len(by_pair)} pairs")
    return events[-limit:] if limit > 0 else []
