"""Calendar-bucketed rollups over a user's finished sessions.

Weeks start on Monday. Every function takes the reference date or time
explicitly and only looks at finished sessions.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional

from ..config import config
from .one_rm import round_half_up
from .sessions import ExerciseSession, finished_only
from .units import display_weight


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def iso_week_label(day: date) -> str:
    """ISO year-week label such as ``2026-W07``."""
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def _as_date(moment) -> date:
    return moment.date() if isinstance(moment, datetime) else moment


def _finished_between(sessions: Iterable[ExerciseSession], start: datetime, end: datetime) -> List[ExerciseSession]:
    return [s for s in finished_only(sessions) if start <= s.finished_at <= end]


def _week_bounds(monday: date):
    start = datetime.combine(monday, time.min)
    end = datetime.combine(monday + timedelta(days=6), time.max)
    return start, end


def calculate_streaks(finish_times: Iterable[datetime], today: date) -> Dict[str, Any]:
    """Current and longest runs of consecutive training weeks.

    The current week may still be empty without breaking the current streak.

    Args:
        finish_times: Finish times of the user's finished workouts
        today: Reference date

    Returns:
        Dict with current, longest and last_workout_days_ago
    """
    workout_dates = sorted({_as_date(t) for t in finish_times if t is not None}, reverse=True)
    if not workout_dates:
        return {"current": 0, "longest": 0, "last_workout_days_ago": None}

    trained_weeks = {week_start(d) for d in workout_dates}
    current_week = week_start(today)

    current = 0
    for weeks_ago in range(config.SUMMARY_STREAK_LOOKBACK_WEEKS + 1):
        monday = week_start(today - timedelta(weeks=weeks_ago))
        if monday in trained_weeks:
            current += 1
        elif current > 0 or monday < current_week:
            break

    longest = 0
    run = 0
    previous = None
    for monday in sorted(trained_weeks, reverse=True):
        if previous is not None and (previous - monday).days == 7:
            run += 1
        else:
            longest = max(longest, run)
            run = 1
        previous = monday
    longest = max(longest, run)

    return {
        "current": current,
        "longest": longest,
        "last_workout_days_ago": (today - workout_dates[0]).days,
    }


def weekly_tonnage(sessions: Iterable[ExerciseSession], today: date, weeks: int = 12,
                   unit: str = "kg") -> List[Dict[str, Any]]:
    """Working volume per calendar week, oldest first."""
    sessions = list(sessions)
    rows = []
    for weeks_ago in range(weeks):
        monday = week_start(today - timedelta(weeks=weeks_ago))
        start, end = _week_bounds(monday)
        volume = sum(s.volume_kg for s in _finished_between(sessions, start, end))
        rows.append({
            "label": monday.strftime("%b %d"),
            "week_start": monday.isoformat(),
            "volume": int(round_half_up(display_weight(volume, unit))),
        })
    return list(reversed(rows))


def week_comparison(sessions: Iterable[ExerciseSession], finish_times: Iterable[datetime], today: date,
                    unit: str = "kg") -> Dict[str, Dict[str, int]]:
    """This calendar week against last: volume, workouts and working sets."""
    sessions = list(sessions)
    finish_times = [t for t in finish_times if t is not None]

    def summarize(monday: date) -> Dict[str, int]:
        start, end = _week_bounds(monday)
        week_sessions = _finished_between(sessions, start, end)
        volume = sum(s.volume_kg for s in week_sessions)
        return {
            "volume": int(round_half_up(display_weight(volume, unit))),
            "workouts": sum(1 for t in finish_times if start <= t <= end),
            "sets": sum(len(s.working_sets) for s in week_sessions),
        }

    this_monday = week_start(today)
    return {
        "this_week": summarize(this_monday),
        "last_week": summarize(this_monday - timedelta(weeks=1)),
    }


def week_to_date_volume(sessions: Iterable[ExerciseSession], now: datetime, weeks_ago: int = 0) -> float:
    """Working volume from Monday 00:00 to the same elapsed point ``weeks_ago`` weeks back."""
    shift = timedelta(weeks=weeks_ago)
    start = datetime.combine(week_start(now.date()), time.min) - shift
    end = now - shift
    return float(sum(s.volume_kg for s in _finished_between(sessions, start, end)))


@dataclass
class Plateau:
    """An exercise without a new weight PR for several weeks."""
    exercise_id: int
    exercise_name: str
    weeks_since_pr: int
    best_weight_kg: float
    last_pr_date: date
    last_workout_date: date

    def to_dict(self, unit: str = "kg") -> Dict[str, Any]:
        return {
            "exercise_id": self.exercise_id,
            "exercise": self.exercise_name,
            "weeks_since_pr": self.weeks_since_pr,
            "best_weight": int(round_half_up(display_weight(self.best_weight_kg, unit))),
            "last_pr_date": self.last_pr_date.strftime("%b %d"),
        }


def _exercise_plateau(exercise_sessions: List[ExerciseSession], today: date) -> Optional[Plateau]:
    ordered = sorted(exercise_sessions, key=lambda s: s.sort_key)
    weighted = [
        (s.weight_kg, session.finished_at.date())
        for session in ordered
        for s in sorted(session.working_sets, key=lambda x: x.position)
        if s.weight_kg is not None
    ]
    if len(weighted) < config.PLATEAU_MIN_SETS:
        return None

    best_weight = 0
    last_pr_date = None
    for weight, finished_on in weighted:
        if weight > best_weight:
            best_weight = weight
            last_pr_date = finished_on
    if last_pr_date is None:
        return None

    weeks_since_pr = (today - last_pr_date).days // 7
    last_workout_date = weighted[-1][1]
    if weeks_since_pr < config.PLATEAU_WEEKS_WITHOUT_PR:
        return None
    if (today - last_workout_date).days > config.PLATEAU_ACTIVE_DAYS:
        return None

    first = ordered[0]
    return Plateau(
        exercise_id=first.exercise_id,
        exercise_name=first.exercise_name,
        weeks_since_pr=weeks_since_pr,
        best_weight_kg=best_weight,
        last_pr_date=last_pr_date,
        last_workout_date=last_workout_date,
    )


def detect_plateaus(sessions: Iterable[ExerciseSession], now: datetime,
                    limit: Optional[int] = None) -> List[Plateau]:
    """Exercises stuck without a weight PR, longest plateau first.

    Candidates are weighted exercises with a weighted working set in the last
    90 days. Plateaus are tracked per exercise across machines.
    """
    limit = config.PLATEAU_LIMIT if limit is None else limit
    finished = finished_only(sessions)
    cutoff = now - timedelta(days=config.PLATEAU_CANDIDATE_DAYS)

    active = []
    for s in finished:
        if s.exercise_id in active or not s.has_weight or s.finished_at < cutoff:
            continue
        if any(x.weight_kg is not None for x in s.working_sets):
            active.append(s.exercise_id)

    plateaus = []
    for exercise_id in sorted(active):
        plateau = _exercise_plateau([s for s in finished if s.exercise_id == exercise_id], now.date())
        if plateau:
            plateaus.append(plateau)

    plateaus.sort(key=lambda p: -p.weeks_since_pr)
    return plateaus[:limit]


def rep_range_distribution(sessions: Iterable[ExerciseSession], now: datetime, days: int = 30) -> Dict[str, int]:
    """Working-set counts per rep bucket over the last ``days`` days."""
    start = now - timedelta(days=days)
    reps = [
        s.reps
        for session in finished_only(sessions) if session.finished_at >= start
        for s in session.working_sets if s.reps is not None
    ]
    return {
        "1-5": sum(1 for r in reps if 1 <= r <= 5),
        "6-10": sum(1 for r in reps if 6 <= r <= 10),
        "11-15": sum(1 for r in reps if 11 <= r <= 15),
        "16+": sum(1 for r in reps if r >= 16),
    }


def exercise_frequency(sessions: Iterable[ExerciseSession], now: datetime, days: int = 90,
                       limit: int = 10) -> List[Dict[str, Any]]:
    """Most frequently performed exercises over the last ``days`` days."""
    start = now - timedelta(days=days)
    counts = Counter(s.exercise_name for s in finished_only(sessions) if s.finished_at >= start)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{"exercise": name, "count": count} for name, count in ranked[:limit]]
