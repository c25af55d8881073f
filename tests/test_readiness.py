"""Tests for progression readiness."""

from datetime import datetime, timedelta

from strength_analytics.analysis.readiness import ReadinessChecker, check_readiness

NOW = datetime(2026, 2, 12, 18, 0)


def _days_ago(days):
    return NOW - timedelta(days=days)


class TestReadinessChecker:
    """Test readiness guards."""

    def test_consistent_sessions_are_ready(self, make_session):
        history = [make_session(_days_ago(d), [(100, 10)] * 3) for d in (9, 5, 2)]

        result = check_readiness(history, exercise_id=1, now=NOW)

        assert result.ready
        assert result.sessions_analyzed == 3
        assert result.rep_range == (8, 12)
        assert result.consistency_rate == 1.0
        assert result.avg_weight_kg == 100.0
        assert "8+ reps on Bench Press" in result.message

    def test_needs_minimum_sessions(self, make_session):
        history = [make_session(_days_ago(d), [(100, 10)] * 3) for d in (5, 2)]
        assert check_readiness(history, exercise_id=1, now=NOW) is None

    def test_old_sessions_do_not_count(self, make_session):
        history = [make_session(_days_ago(d), [(100, 10)] * 3) for d in (60, 45, 2)]
        assert check_readiness(history, exercise_id=1, now=NOW) is None

    def test_inconsistent_reps(self, make_session):
        sets = [(100, 10), (100, 10), (100, 10), (100, 5), (100, 5)]
        history = [make_session(_days_ago(d), sets) for d in (9, 5, 2)]
        assert check_readiness(history, exercise_id=1, now=NOW) is None

    def test_weight_trending_down(self, make_session):
        history = [
            make_session(_days_ago(9), [(100, 10)] * 3),
            make_session(_days_ago(5), [(100, 10)] * 3),
            make_session(_days_ago(2), [(90, 10)] * 3),
        ]
        assert check_readiness(history, exercise_id=1, now=NOW) is None

    def test_recently_progressed(self, make_session):
        history = [
            make_session(_days_ago(9), [(100, 10)] * 3),
            make_session(_days_ago(5), [(105, 10)] * 3),
            make_session(_days_ago(2), [(105, 10)] * 3),
        ]
        assert check_readiness(history, exercise_id=1, now=NOW) is None

    def test_scoped_to_machine(self, make_session):
        history = [make_session(_days_ago(d), [(100, 10)] * 3, machine_id=4) for d in (9, 5, 2)]

        assert check_readiness(history, exercise_id=1, machine_id=None, now=NOW) is None
        assert check_readiness(history, exercise_id=1, machine_id=4, now=NOW) is not None

    def test_recent_sessions_newest_first(self, make_session):
        history = [make_session(_days_ago(d), [(100, 10)]) for d in (9, 2, 5)]
        recent = ReadinessChecker(1).recent_sessions(history, NOW)
        assert [s.finished_at for s in recent] == [_days_ago(2), _days_ago(5), _days_ago(9)]

    def test_to_dict(self, make_session):
        history = [make_session(_days_ago(d), [(100, 10)] * 3) for d in (9, 5, 2)]
        data = check_readiness(history, exercise_id=1, now=NOW).to_dict()
        assert data["rep_range"] == [8, 12]
        assert data["machine_id"] is None
