"""Tests for calendar rollups: streaks, tonnage, plateaus and distributions."""

from datetime import date, datetime

from strength_analytics.analysis.aggregates import (
    calculate_streaks,
    detect_plateaus,
    exercise_frequency,
    iso_week_label,
    rep_range_distribution,
    week_comparison,
    week_start,
    week_to_date_volume,
    weekly_tonnage,
)

TODAY = date(2026, 2, 12)  # Thursday
NOW = datetime(2026, 2, 12, 18, 0)


def test_week_helpers():
    assert week_start(TODAY) == date(2026, 2, 9)
    assert week_start(date(2026, 2, 9)) == date(2026, 2, 9)
    assert iso_week_label(TODAY) == "2026-W07"
    assert iso_week_label(date(2027, 1, 1)) == "2026-W53"


class TestStreaks:
    """Test consecutive training week streaks."""

    def test_consecutive_weeks(self):
        times = [datetime(2026, 2, 10, 9), datetime(2026, 2, 3, 9), datetime(2026, 1, 27, 9)]
        assert calculate_streaks(times, TODAY) == {"current": 3, "longest": 3, "last_workout_days_ago": 2}

    def test_empty_current_week_keeps_streak(self):
        times = [datetime(2026, 2, 3, 9), datetime(2026, 1, 27, 9)]
        assert calculate_streaks(times, TODAY)["current"] == 2

    def test_gap_breaks_streak(self):
        times = [
            datetime(2026, 2, 10), datetime(2026, 1, 27),
            datetime(2025, 12, 1), datetime(2025, 12, 8), datetime(2025, 12, 15),
        ]
        streaks = calculate_streaks(times, TODAY)
        assert streaks["current"] == 1
        assert streaks["longest"] == 3

    def test_no_workouts(self):
        assert calculate_streaks([], TODAY) == {"current": 0, "longest": 0, "last_workout_days_ago": None}


class TestWeeklyVolume:
    """Test tonnage and week-over-week comparisons."""

    def test_weekly_tonnage(self, make_session):
        sessions = [
            make_session(datetime(2026, 2, 10, 10), [(100, 10)]),
            make_session(datetime(2026, 2, 3, 10), [(100, 5)]),
            make_session(None, [(500, 10)]),
        ]
        rows = weekly_tonnage(sessions, TODAY, weeks=3)

        assert [r["label"] for r in rows] == ["Jan 26", "Feb 02", "Feb 09"]
        assert [r["volume"] for r in rows] == [0, 500, 1000]
        assert rows[-1]["week_start"] == "2026-02-09"

    def test_weekly_tonnage_in_lbs(self, make_session):
        rows = weekly_tonnage([make_session(datetime(2026, 2, 10), [(100, 10)])], TODAY, weeks=1, unit="lbs")
        assert rows[0]["volume"] == 2205

    def test_week_comparison(self, make_session):
        sessions = [
            make_session(datetime(2026, 2, 10, 10), [(100, 10), (100, 10)]),
            make_session(datetime(2026, 2, 3, 10), [(100, 5)], warmups=()),
        ]
        times = [datetime(2026, 2, 10, 10), datetime(2026, 2, 3, 10)]

        comparison = week_comparison(sessions, times, TODAY)

        assert comparison["this_week"] == {"volume": 2000, "workouts": 1, "sets": 2}
        assert comparison["last_week"] == {"volume": 500, "workouts": 1, "sets": 1}

    def test_week_to_date_volume(self, make_session):
        now = datetime(2026, 2, 11, 12, 0)  # Wednesday noon
        sessions = [
            make_session(datetime(2026, 2, 4, 10), [(100, 10)]),
            make_session(datetime(2026, 2, 5, 10), [(100, 10)]),
            make_session(datetime(2026, 2, 9, 10), [(50, 10)]),
        ]
        assert week_to_date_volume(sessions, now) == 500
        assert week_to_date_volume(sessions, now, weeks_ago=1) == 1000


class TestPlateaus:
    """Test plateau detection."""

    def test_detects_stalled_exercise(self, make_session):
        sessions = [
            make_session(datetime(2025, 12, 1), [(100, 5)]),
            make_session(datetime(2026, 1, 10), [(95, 5)]),
            make_session(datetime(2026, 2, 5), [(100, 5)]),
        ]
        plateaus = detect_plateaus(sessions, NOW)

        assert len(plateaus) == 1
        plateau = plateaus[0]
        assert plateau.weeks_since_pr == 10
        assert plateau.last_pr_date == date(2025, 12, 1)
        assert plateau.to_dict() == {
            "exercise_id": 1,
            "exercise": "Bench Press",
            "weeks_since_pr": 10,
            "best_weight": 100,
            "last_pr_date": "Dec 01",
        }

    def test_recent_pr_is_not_a_plateau(self, make_session):
        sessions = [
            make_session(datetime(2025, 12, 1), [(100, 5)]),
            make_session(datetime(2026, 1, 10), [(95, 5)]),
            make_session(datetime(2026, 2, 5), [(102.5, 5)]),
        ]
        assert detect_plateaus(sessions, NOW) == []

    def test_inactive_exercise_is_not_a_plateau(self, make_session):
        sessions = [
            make_session(datetime(2025, 11, 20), [(100, 5)]),
            make_session(datetime(2025, 12, 1), [(95, 5)]),
            make_session(datetime(2025, 12, 20), [(95, 5)]),
        ]
        assert detect_plateaus(sessions, NOW) == []

    def test_tracked_across_machines_and_sorted(self, make_session):
        sessions = [
            make_session(datetime(2025, 11, 25), [(100, 5)], machine_id=1),
            make_session(datetime(2026, 2, 5), [(95, 5), (95, 5)], machine_id=2),
            make_session(datetime(2026, 1, 1), [(60, 8)], exercise_id=2, exercise_name="Row"),
            make_session(datetime(2026, 2, 1), [(60, 8), (55, 8)], exercise_id=2, exercise_name="Row"),
        ]
        plateaus = detect_plateaus(sessions, NOW)

        assert [p.exercise_id for p in plateaus] == [1, 2]
        assert detect_plateaus(sessions, NOW, limit=1)[0].exercise_id == 1


class TestDistributions:
    """Test rep range and exercise frequency rollups."""

    def test_rep_range_distribution(self, make_session):
        sessions = [
            make_session(datetime(2026, 2, 10), [(100, 3), (80, 8), (60, 12), (40, 20), (100, 5)]),
            make_session(datetime(2025, 12, 1), [(100, 3)]),
        ]
        assert rep_range_distribution(sessions, NOW) == {"1-5": 2, "6-10": 1, "11-15": 1, "16+": 1}

    def test_exercise_frequency(self, make_session):
        sessions = [
            make_session(datetime(2026, 2, 10), [(100, 5)], exercise_name="Squat"),
            make_session(datetime(2026, 2, 3), [(100, 5)], exercise_name="Squat"),
            make_session(datetime(2026, 2, 3), [(100, 5)], exercise_name="Bench Press"),
            make_session(datetime(2026, 2, 3), [(100, 5)], exercise_name="Deadlift"),
        ]
        assert exercise_frequency(sessions, NOW) == [
            {"exercise": "Squat", "count": 2},
            {"exercise": "Bench Press", "count": 1},
            {"exercise": "Deadlift", "count": 1},
        ]
        assert len(exercise_frequency(sessions, NOW, limit=1)) == 1
