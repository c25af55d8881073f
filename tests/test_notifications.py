"""Tests for the performance notification service."""

from datetime import datetime, timedelta

import pytest

from strength_analytics.db.models import Notification
from strength_analytics.exceptions import UnknownNotificationKind
from strength_analytics.notifications import (
    PerformanceNotificationService,
    mark_all_read,
    refresh_notifications_for_users,
)
from strength_analytics.payloads import ReadinessPayload, StreakRiskPayload, VolumeDropPayload

NOW = datetime(2026, 2, 12, 18, 0)  # Thursday of 2026-W07


def _refresh(session, user, now=NOW):
    service = PerformanceNotificationService(session, user, now=now)
    service.refresh()
    return service


def _by_kind(session, user):
    rows = session.query(Notification).filter_by(user_id=user.id).all()
    return {n.kind: n for n in rows}


class TestRefresh:
    """Test candidate generation and idempotent upserts."""

    def test_readiness(self, session, log):
        user = log.user()
        bench = log.exercise()
        for day in (2, 5, 9):
            log.workout(user, datetime(2026, 2, day, 10), [(bench, None, [(100, 10)] * 3)])

        _refresh(session, user)
        notification = _by_kind(session, user)["readiness"]

        assert notification.severity == "success"
        assert notification.dedupe_key == f"readiness:{bench.id}::3"
        assert notification.payload == ReadinessPayload(exercise_id=bench.id, machine_id=None)
        assert "Ready to progress" in notification.message

    def test_streak_risk(self, session, log):
        user = log.user()
        bench = log.exercise()
        log.workout(user, datetime(2026, 2, 6, 10), [(bench, None, [(100, 5)])])

        service = _refresh(session, user)
        notifications = _by_kind(session, user)

        assert set(notifications) == {"streak_risk"}
        streak = notifications["streak_risk"]
        assert streak.dedupe_key == "streak-risk:2026-W07"
        assert streak.severity == "warning"
        assert streak.payload == StreakRiskPayload(days_since_last_workout=6)
        assert service.stats.created == 1

    def test_second_refresh_writes_nothing(self, session, log):
        user = log.user()
        bench = log.exercise()
        log.workout(user, datetime(2026, 2, 6, 10), [(bench, None, [(100, 5)])])

        _refresh(session, user)
        second = _refresh(session, user)

        assert second.stats.writes == 0
        assert second.stats.unchanged == 1
        assert session.query(Notification).count() == 1

    def test_same_week_updates_existing_row(self, session, log):
        user = log.user()
        bench = log.exercise()
        log.workout(user, datetime(2026, 2, 6, 10), [(bench, None, [(100, 5)])])

        _refresh(session, user)
        later = _refresh(session, user, now=NOW + timedelta(days=2))

        rows = session.query(Notification).all()
        assert len(rows) == 1
        assert later.stats.updated == 1
        assert rows[0].severity == "danger"
        assert rows[0].payload.days_since_last_workout == 8
        assert rows[0].created_at == NOW

    def test_concurrent_insert_is_applied_as_update(self, session, log, monkeypatch):
        user = log.user()
        bench = log.exercise()
        log.workout(user, datetime(2026, 2, 6, 10), [(bench, None, [(100, 5)])])
        _refresh(session, user)

        service = PerformanceNotificationService(session, user, now=NOW + timedelta(days=1))
        find = service._find
        lookups = []

        def find_after_other_insert(dedupe_key):
            # The first lookup runs before the other refresh's row is visible
            lookups.append(dedupe_key)
            return None if len(lookups) == 1 else find(dedupe_key)

        monkeypatch.setattr(service, "_find", find_after_other_insert)
        service.refresh()

        rows = session.query(Notification).filter_by(user_id=user.id).all()
        assert len(lookups) == 2
        assert len(rows) == 1
        assert service.stats.created == 0
        assert service.stats.updated == 1
        assert rows[0].payload.days_since_last_workout == 7
        assert rows[0].severity == "danger"

    def test_volume_drop(self, session, log):
        user = log.user()
        squat = log.exercise("Squat")
        log.workout(user, datetime(2026, 2, 2, 10), [(squat, None, [(100, 10)] * 5)])
        log.workout(user, datetime(2026, 2, 10, 10), [(squat, None, [(100, 10)])])

        _refresh(session, user)
        notifications = _by_kind(session, user)

        assert set(notifications) == {"volume_drop"}
        drop = notifications["volume_drop"]
        assert drop.dedupe_key == "volume-drop:2026-W07"
        assert drop.payload == VolumeDropPayload(this_week_volume_kg=1000, last_week_volume_kg=5000, ratio=0.2)
        assert "20% of last week" in drop.message

    def test_no_volume_drop_without_a_workout_this_week(self, session, log):
        user = log.user()
        squat = log.exercise("Squat")
        log.workout(user, datetime(2026, 2, 2, 10), [(squat, None, [(100, 10)] * 5)])

        _refresh(session, user, now=datetime(2026, 2, 10, 18))

        assert "volume_drop" not in _by_kind(session, user)

    def test_plateau(self, session, log):
        user = log.user()
        bench = log.exercise()
        log.workout(user, datetime(2025, 12, 1, 10), [(bench, None, [(100, 5)])])
        log.workout(user, datetime(2026, 1, 10, 10), [(bench, None, [(95, 5)])])
        log.workout(user, datetime(2026, 2, 10, 10), [(bench, None, [(100, 5)])])

        _refresh(session, user)
        plateau = _by_kind(session, user)["plateau"]

        assert plateau.dedupe_key == f"plateau:{bench.id}:2025-12-01"
        assert plateau.severity == "danger"
        assert plateau.title == "Bench Press: Plateau Watch"
        assert plateau.payload.weeks_since_pr == 10

    def test_disabled_kind_is_skipped(self, session, log):
        user = log.user(notify_streak_risk=False)
        bench = log.exercise()
        log.workout(user, datetime(2026, 2, 6, 10), [(bench, None, [(100, 5)])])

        _refresh(session, user)

        assert session.query(Notification).count() == 0

    def test_unknown_kind_preference(self, log):
        with pytest.raises(UnknownNotificationKind):
            log.user().enabled_for("pr_celebration")

    def test_no_training_no_notifications(self, session, log):
        user = log.user()
        assert PerformanceNotificationService(session, user, now=NOW).refresh() == []


class TestExpiry:
    """Test retirement of notifications whose condition no longer holds."""

    def _streak_user(self, log):
        user = log.user()
        bench = log.exercise()
        log.workout(user, datetime(2026, 2, 6, 10), [(bench, None, [(100, 5)])])
        return user, bench

    def test_stale_notification_deleted(self, session, log):
        user, bench = self._streak_user(log)
        _refresh(session, user)

        log.workout(user, datetime(2026, 2, 13, 9), [(bench, None, [(100, 5)])])
        later = _refresh(session, user, now=datetime(2026, 2, 13, 18))

        assert later.stats.deleted == 1
        assert session.query(Notification).count() == 0

    def test_grace_period_keeps_fresh_rows(self, session, log):
        user, bench = self._streak_user(log)
        _refresh(session, user)

        log.workout(user, datetime(2026, 2, 12, 19), [(bench, None, [(100, 5)])])
        later = _refresh(session, user, now=NOW + timedelta(hours=2))

        assert later.stats.deleted == 0
        assert session.query(Notification).count() == 1

    def test_read_notifications_kept(self, session, log):
        user, bench = self._streak_user(log)
        _refresh(session, user)
        assert mark_all_read(session, user.id, now=NOW) == 1

        log.workout(user, datetime(2026, 2, 13, 9), [(bench, None, [(100, 5)])])
        _refresh(session, user, now=datetime(2026, 2, 13, 18))

        remaining = session.query(Notification).one()
        assert remaining.is_read
        assert mark_all_read(session, user.id) == 0


class TestBatchRefresh:
    """Test refreshing several users at once."""

    def test_failure_is_isolated(self, db, training_log):
        with db.get_session() as session:
            log = training_log(session)
            user = log.user()
            log.workout(user, datetime(2026, 2, 6, 10), [(log.exercise(), None, [(100, 5)])])
            user_id = user.id

        result = refresh_notifications_for_users(db, [999, user_id], now=NOW)

        assert result.refreshed == [user_id]
        assert "999" in result.failed[999]
        with db.get_session() as session:
            assert session.query(Notification).filter_by(user_id=user_id).count() == 1
