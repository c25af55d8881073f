"""Weekly training summary compared against the trailing 12-week average."""

import sys
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional

from ..config import config
from .aggregates import week_start as monday_of
from .personal_records import calculate_timeline
from .sessions import ExerciseSession, WorkoutSnapshot


def percent_change(current: float, average: float) -> int:
    if not average:
        return 0
    return int(round((current - average) / average * 100))


class WeeklySummaryCalculator:
    """Summarize one calendar week of training.

    Usage:
        calculator = WeeklySummaryCalculator(sessions, workouts, week_start=date(2026, 2, 9))
        summary = calculator.calculate()
    """

    def __init__(self, sessions: Iterable[ExerciseSession], workouts: Iterable[WorkoutSnapshot],
                 week_start: Optional[date] = None, now: Optional[datetime] = None):
        self.now = now or datetime.utcnow()
        self.sessions = [s for s in sessions if s.is_finished]
        self.workouts = [w for w in workouts if w.is_finished]
        self.week_start = monday_of(week_start or self.now.date())
        self.week_end = self.week_start + timedelta(days=6)
        self._this_week = None
        self._new_prs = None

    def calculate(self) -> Dict[str, Any]:
        """Complete summary for the week."""
        return {
            "week_label": self.week_label(),
            "this_week": self.this_week_stats(),
            "vs_average": self.vs_average_stats(),
            "highlights": self.highlights(),
            "top_exercises": self.top_exercises(),
            "new_prs": self.new_prs(),
            "consistency": self.consistency_stats(),
        }

    def week_label(self) -> str:
        if self.week_start == monday_of(self.now.date()):
            return "This Week"
        start, end = self.week_start, self.week_end
        return f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}"

    def _bounds(self, start: date, end: date):
        return datetime.combine(start, time.min), datetime.combine(end, time.max)

    def _workouts_between(self, start: date, end: date) -> List[WorkoutSnapshot]:
        lower, upper = self._bounds(start, end)
        return [w for w in self.workouts if lower <= w.finished_at <= upper]

    def _sessions_between(self, start: date, end: date) -> List[ExerciseSession]:
        lower, upper = self._bounds(start, end)
        return [s for s in self.sessions if lower <= s.finished_at <= upper]

    def this_week_stats(self) -> Dict[str, int]:
        if self._this_week is not None:
            return self._this_week

        workouts = self._workouts_between(self.week_start, self.week_end)
        sessions = self._sessions_between(self.week_start, self.week_end)
        sets = [s for session in sessions for s in session.working_sets]

        self._this_week = {
            "workout_count": len(workouts),
            "total_volume_kg": int(round(sum(s.volume_kg for s in sets))),
            "total_sets": len(sets),
            "total_reps": sum(s.reps or 0 for s in sets),
            "total_duration_minutes": sum(w.duration_minutes for w in workouts),
            "unique_exercises": len({s.exercise_id for s in sessions}),
        }
        return self._this_week

    def vs_average_stats(self) -> Optional[Dict[str, Any]]:
        """This week against the average of the preceding weeks; None without history."""
        weeks = float(config.SUMMARY_HISTORY_WEEKS)
        history_start = self.week_start - timedelta(weeks=config.SUMMARY_HISTORY_WEEKS)
        history_end = self.week_start - timedelta(days=1)

        workouts = self._workouts_between(history_start, history_end)
        if not workouts:
            return None

        sets = [
            s for session in self._sessions_between(history_start, history_end)
            for s in session.working_sets
        ]
        avg_workout_count = round(len(workouts) / weeks, 1)
        avg_volume = int(round(sum(s.volume_kg for s in sets) / weeks))
        avg_sets = int(round(len(sets) / weeks))
        avg_duration = int(round(sum(w.duration_minutes for w in workouts) / weeks))

        this_week = self.this_week_stats()
        return {
            "avg_workout_count": avg_workout_count,
            "avg_volume_kg": avg_volume,
            "avg_sets": avg_sets,
            "avg_duration_minutes": avg_duration,
            "workout_count_diff": round(this_week["workout_count"] - avg_workout_count, 1),
            "volume_diff_kg": this_week["total_volume_kg"] - avg_volume,
            "sets_diff": this_week["total_sets"] - avg_sets,
            "workout_count_pct": percent_change(this_week["workout_count"], avg_workout_count),
            "volume_pct": percent_change(this_week["total_volume_kg"], avg_volume),
            "sets_pct": percent_change(this_week["total_sets"], avg_sets),
        }

    def highlights(self) -> List[Dict[str, str]]:
        highlights = []
        this_week = self.this_week_stats()
        vs_avg = self.vs_average_stats()

        if vs_avg and this_week["total_volume_kg"] > vs_avg["avg_volume_kg"] * 1.2:
            highlights.append({
                "type": "volume_spike",
                "message": f"Crushed {abs(vs_avg['volume_pct'])}% more volume than average!",
            })

        if this_week["workout_count"] >= 4:
            highlights.append({
                "type": "consistency",
                "message": f"{this_week['workout_count']} workouts - excellent consistency!",
            })
        elif this_week["workout_count"] == 0:
            highlights.append({
                "type": "missed_week",
                "message": "No workouts this week - let's get back on track!",
            })

        pr_count = len(self.new_prs())
        if pr_count > 0:
            noun = "record" if pr_count == 1 else "records"
            highlights.append({"type": "prs", "message": f"{pr_count} new personal {noun}!"})

        return highlights

    def top_exercises(self, limit: int = 5) -> List[Dict[str, Any]]:
        """Exercises with the most working volume this week."""
        totals: Dict[int, Dict[str, Any]] = {}
        for session in self._sessions_between(self.week_start, self.week_end):
            entry = totals.setdefault(session.exercise_id, {
                "exercise_name": session.exercise_name,
                "volume_kg": 0.0,
                "set_count": 0,
            })
            entry["volume_kg"] += session.volume_kg
            entry["set_count"] += len(session.working_sets)

        ranked = sorted(totals.values(), key=lambda e: (-e["volume_kg"], e["exercise_name"]))
        return [dict(entry, volume_kg=int(round(entry["volume_kg"]))) for entry in ranked[:limit]]

    def new_prs(self, limit: int = 5) -> List[Dict[str, Any]]:
        """Records broken during the week; first-ever lifts do not count."""
        if self._new_prs is not None:
            return self._new_prs[:limit]

        since = datetime.combine(self.week_start, time.min)
        events = calculate_timeline(self.sessions, since=since, limit=sys.maxsize, now=self.now)

        prs = []
        seen = set()
        last_day = self.week_end.isoformat()
        for event in events:
            key = (event["exercise"], event["machine"], event["type"])
            if event["date"] > last_day or key in seen:
                continue
            seen.add(key)
            prs.append({
                "exercise_name": event["exercise"],
                "machine_name": event["machine"],
                "pr_type": event["type"],
                "value_kg": event["weight"],
                "reps": event["reps"],
                "date": event["date"],
            })
        self._new_prs = prs
        return prs[:limit]

    def consistency_stats(self) -> Dict[str, int]:
        recent = self._workouts_between(self.week_start - timedelta(weeks=4), self.week_end)
        return {
            "weeks_trained_last_4": len({monday_of(w.finished_at.date()) for w in recent}),
            "current_streak": self.week_streak(),
        }

    def week_streak(self) -> int:
        """Consecutive weeks with a workout, counting back from this week."""
        trained = {monday_of(w.finished_at.date()) for w in self.workouts}
        streak = 0
        monday = self.week_start
        while monday in trained and streak < config.SUMMARY_STREAK_LOOKBACK_WEEKS:
            streak += 1
            monday -= timedelta(weeks=1)
        return streak
