"""Tests for the command-line interface."""

from datetime import datetime, timedelta

import pytest
from click.testing import CliRunner

from strength_analytics.cli import cli
from strength_analytics.config import config
from strength_analytics.db import database as database_module
from strength_analytics.db.models import Exercise, User


@pytest.fixture
def app_db(db, monkeypatch):
    """The in-memory database installed as the application database."""
    db.enable_analytics_cache()
    monkeypatch.setattr(database_module, "_db", db)
    return db


class TestCli:
    """Smoke tests for commands that need no database."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_one_rm(self):
        result = self.runner.invoke(cli, ["one-rm", "100", "5"])

        assert result.exit_code == 0
        assert "115.8" in result.output
        assert "Training Percentages" in result.output

    def test_one_rm_invalid(self):
        result = self.runner.invoke(cli, ["one-rm", "100", "40"])

        assert result.exit_code == 0
        assert "1-30 reps" in result.output


class TestDashboardCommand:
    """The dashboard command reads through the database's analytics cache."""

    def setup_method(self):
        self.runner = CliRunner()

    def _log_workout(self, db, training_log, user_id=None, days_ago=1):
        with db.get_session() as session:
            log = training_log(session)
            if user_id is None:
                user = log.user()
                exercise = log.exercise()
            else:
                user = session.get(User, user_id)
                exercise = session.query(Exercise).first()
            finished_at = datetime.utcnow() - timedelta(days=days_ago)
            log.workout(user, finished_at, [(exercise, None, [(100, 5), (100, 5)])])
            return user.id

    def test_second_call_is_a_cache_hit(self, app_db, training_log):
        user_id = self._log_workout(app_db, training_log)
        keys = len(config.ANALYTICS_KEYS)

        first = self.runner.invoke(cli, ["dashboard", "--user", str(user_id)])
        second = self.runner.invoke(cli, ["dashboard", "--user", str(user_id), "--show-cache"])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "Bench Press" in first.output
        assert f"{keys} hits, {keys} misses" in second.output
        assert app_db.analytics_cache.metrics_for_user(user_id) == {
            "cache_hit": keys,
            "cache_miss": keys,
            "invalidation": keys,
        }

    def test_committed_workout_recomputes(self, app_db, training_log):
        user_id = self._log_workout(app_db, training_log, days_ago=2)
        keys = len(config.ANALYTICS_KEYS)

        self.runner.invoke(cli, ["dashboard", "--user", str(user_id)])
        self._log_workout(app_db, training_log, user_id=user_id, days_ago=1)
        result = self.runner.invoke(cli, ["dashboard", "--user", str(user_id)])

        assert result.exit_code == 0, result.output
        counts = app_db.analytics_cache.metrics_for_user(user_id)
        assert counts["cache_hit"] == 0
        assert counts["cache_miss"] == 2 * keys
        assert app_db.analytics_cache.store.current_version(user_id, "streaks") == 3

    def test_unknown_user(self, app_db):
        result = self.runner.invoke(cli, ["dashboard", "--user", "999"])
        assert result.exit_code != 0
