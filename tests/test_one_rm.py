"""Tests for e1RM estimation and unit formatting."""

import pytest

from strength_analytics.analysis.one_rm import (
    Formula,
    best_estimated_1rm,
    estimate_1rm,
    estimate_1rm_with,
    estimate_all,
    percentage_table,
    reps_at_percentage,
    round_half_up,
    weight_at_percentage,
)
from strength_analytics.analysis.sessions import LoggedSet
from strength_analytics.analysis.units import format_number, format_weight, from_kg, to_kg


class TestEstimate1RM:
    """Test the averaged six-formula estimate."""

    def test_single_rep_returns_weight(self):
        assert estimate_1rm(140, 1) == 140.0

    def test_average_of_formulas(self):
        assert estimate_1rm(100, 5) == 115.8
        assert estimate_1rm(100, 10) == 130.5

    @pytest.mark.parametrize("weight,reps", [(0, 5), (-20, 5), (100, 0), (100, 31), (None, 5), (100, None)])
    def test_invalid_input(self, weight, reps):
        assert estimate_1rm(weight, reps) is None

    def test_thirty_reps_still_estimated(self):
        assert estimate_1rm(50, 30) is not None

    def test_named_formulas(self):
        assert estimate_1rm_with(100, 10, Formula.EPLEY) == 133.3
        assert estimate_1rm_with(100, 10, Formula.BRZYCKI) == 133.3
        assert estimate_1rm_with(100, 10, Formula.OCONNER) == 125.0
        assert estimate_1rm_with(100, 10, Formula.LOMBARDI) == 125.9

    def test_estimate_all(self):
        estimates = estimate_all(100, 5)
        assert set(estimates) == {f.value for f in Formula}
        assert estimates["epley"] == 116.7
        assert estimate_all(100, 40) == {}

    @pytest.mark.parametrize("formula", list(Formula))
    @pytest.mark.parametrize("weight", [2.5, 20, 62.5, 100, 142.5, 250])
    def test_non_decreasing_in_reps(self, formula, weight):
        estimates = [estimate_1rm_with(weight, reps, formula) for reps in range(1, 31)]
        assert all(later >= earlier for earlier, later in zip(estimates, estimates[1:]))

    @pytest.mark.parametrize("formula", list(Formula))
    @pytest.mark.parametrize("reps", [1, 2, 5, 8, 12, 20, 30])
    def test_non_decreasing_in_weight(self, formula, reps):
        weights = [w / 2 for w in range(1, 601)]
        estimates = [estimate_1rm_with(w, reps, formula) for w in weights]
        assert all(later >= earlier for earlier, later in zip(estimates, estimates[1:]))

    def test_average_non_decreasing(self):
        for weight in (20, 100, 180):
            estimates = [estimate_1rm(weight, reps) for reps in range(1, 31)]
            assert all(later >= earlier for earlier, later in zip(estimates, estimates[1:]))

    def test_best_estimated_1rm(self):
        sets = [LoggedSet(weight_kg=100, reps=5), LoggedSet(weight_kg=120, reps=1), LoggedSet(weight_kg=0, reps=8)]
        best = best_estimated_1rm(sets)
        assert best["weight"] == 120
        assert best["estimated_1rm"] == 120.0
        assert best_estimated_1rm([]) is None


class TestPercentages:
    """Test the percentage-of-1RM table."""

    def test_weight_at_percentage(self):
        assert weight_at_percentage(300, 85) == 255.0
        assert weight_at_percentage(0, 85) is None

    def test_reps_at_percentage(self):
        assert reps_at_percentage(100) == 1
        assert reps_at_percentage(90) == 3
        assert reps_at_percentage(55) == 25
        assert reps_at_percentage(50) == 30
        assert reps_at_percentage(0) is None
        assert reps_at_percentage(120) is None

    def test_percentage_table(self):
        table = percentage_table(200)
        assert [row["percentage"] for row in table] == [100, 95, 90, 85, 80, 75, 70, 65, 60, 55, 50]
        assert table[0] == {"percentage": 100, "weight": 200.0, "estimated_reps": 1}
        assert table[-1]["weight"] == 100.0
        assert percentage_table(0) == []

    def test_round_half_up(self):
        assert round_half_up(24.5) == 25
        assert round_half_up(1.25, 1) == 1.3
        assert round_half_up(2.5) == 3


class TestUnits:
    """Test kg/lbs conversion and display formatting."""

    def test_conversion(self):
        assert from_kg(100, "lbs") == 220.46
        assert to_kg(220.462, "lbs") == 100.0
        assert from_kg(None) is None

    def test_format_number(self):
        assert format_number(100.0) == "100"
        assert format_number(100.5) == "100.5"
        assert format_number(100.25) == "100.25"
        assert format_number(None) == "0"

    def test_format_weight(self):
        assert format_weight(100, include_unit=True) == "100kg"
        assert format_weight(100, "lbs") == "220.46"
        assert format_weight(None) == "—"
