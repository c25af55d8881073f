"""Estimated one-rep max (e1RM) calculations.

Testing a true 1RM is risky and fatiguing, so the maximum is projected from a
submaximal set. Six published prediction formulas are supported; the default
estimate averages all of them, which is more reliable across rep ranges than
any single formula:

- Epley: w * (1 + r/30)
- Brzycki: w * 36 / (37 - r)
- Lombardi: w * r^0.10
- Mayhew: w / (0.522 + 0.419 * e^(-0.055 r))
- O'Conner: w * (1 + 0.025 r)
- Wathan: w / (0.4880 + 0.538 * e^(-0.075 r))

Estimates become unreliable above 10 reps and are refused above 30.
"""

import math
from enum import Enum
from typing import Dict, Iterable, List, Optional, Any

import numpy as np

from ..config import config

PERCENTAGE_STEPS = (100, 95, 90, 85, 80, 75, 70, 65, 60, 55, 50)


class Formula(Enum):
    """Supported e1RM prediction formulas."""
    EPLEY = "epley"
    BRZYCKI = "brzycki"
    LOMBARDI = "lombardi"
    MAYHEW = "mayhew"
    OCONNER = "oconner"
    WATHAN = "wathan"


DEFAULT_FORMULA = Formula.EPLEY


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values (1.25 -> 1.3, 24.5 -> 25)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def is_valid_input(weight: Optional[float], reps: Optional[int]) -> bool:
    """Positive weight and 1..30 reps."""
    if weight is None or reps is None:
        return False
    return weight > 0 and 0 < reps <= config.MAX_ESTIMATION_REPS


def _epley(weight: float, reps: int) -> float:
    return weight * (1 + reps / 30.0)


def _brzycki(weight: float, reps: int) -> Optional[float]:
    if reps >= 37:
        return None
    return weight * (36.0 / (37 - reps))


def _lombardi(weight: float, reps: int) -> float:
    return weight * (reps ** 0.10)


def _mayhew(weight: float, reps: int) -> float:
    return weight / (0.522 + 0.419 * np.exp(-0.055 * reps))


def _oconner(weight: float, reps: int) -> float:
    return weight * (1 + 0.025 * reps)


def _wathan(weight: float, reps: int) -> float:
    return weight / (0.4880 + 0.538 * np.exp(-0.075 * reps))


_FORMULAS = {
    Formula.EPLEY: _epley,
    Formula.BRZYCKI: _brzycki,
    Formula.LOMBARDI: _lombardi,
    Formula.MAYHEW: _mayhew,
    Formula.OCONNER: _oconner,
    Formula.WATHAN: _wathan,
}


def estimate_1rm_with(weight: float, reps: int, formula: Formula = DEFAULT_FORMULA) -> Optional[float]:
    """Estimate 1RM with a single named formula.

    Args:
        weight: Weight lifted (kg)
        reps: Reps completed
        formula: Prediction formula to use

    Returns:
        Estimate rounded to 0.1, or None for invalid input
    """
    if not is_valid_input(weight, reps):
        return None
    if reps == 1:
        return float(weight)

    estimate = _FORMULAS[formula](float(weight), int(reps))
    if estimate is None:
        return None
    return round_half_up(float(estimate), 1)


def estimate_1rm(weight: Optional[float], reps: Optional[int]) -> Optional[float]:
    """Average of all six formulas, rounded to one decimal.

    A single rep returns the weight unchanged. Non-positive weight or reps and
    reps above 30 return None; callers skip such sets.
    """
    if not is_valid_input(weight, reps):
        return None
    if reps == 1:
        return float(weight)

    estimates = [estimate_1rm_with(weight, reps, formula) for formula in Formula]
    estimates = [e for e in estimates if e is not None]
    return round_half_up(float(np.mean(estimates)), 1)


def estimate_all(weight: float, reps: int) -> Dict[str, float]:
    """Estimate from every formula, keyed by formula name."""
    if not is_valid_input(weight, reps):
        return {}
    return {formula.value: estimate_1rm_with(weight, reps, formula) for formula in Formula}


def weight_at_percentage(one_rm: float, percentage: float) -> Optional[float]:
    """Working weight for a percentage of 1RM (300kg at 85% -> 255kg)."""
    if not one_rm or not percentage or one_rm <= 0 or percentage <= 0:
        return None
    return round_half_up(one_rm * (percentage / 100.0), 1)


def reps_at_percentage(percentage: float) -> Optional[int]:
    """Reps possible at a percentage of 1RM, via the inverse Epley formula."""
    if not percentage or percentage <= 0 or percentage > 100:
        return None
    reps = ((100.0 / percentage) - 1) * 30
    return max(int(round_half_up(reps)), 1)


def percentage_table(one_rm: float) -> List[Dict[str, Any]]:
    """Training table of weight and estimated reps from 100% down to 50%."""
    if not one_rm or one_rm <= 0:
        return []

    return [
        {
            "percentage": pct,
            "weight": weight_at_percentage(one_rm, pct),
            "estimated_reps": reps_at_percentage(pct),
        }
        for pct in PERCENTAGE_STEPS
    ]


def best_estimated_1rm(sets: Iterable) -> Optional[Dict[str, Any]]:
    """Find the set with the highest e1RM.

    Args:
        sets: Objects exposing ``weight_kg`` and ``reps``

    Returns:
        Dict with weight, reps, estimated_1rm and the set itself, or None
    """
    best = None
    best_e1rm = 0.0

    for logged_set in sets:
        e1rm = estimate_1rm(logged_set.weight_kg, logged_set.reps)
        if e1rm is None or e1rm <= best_e1rm:
            continue
        best_e1rm = e1rm
        best = {
            "weight": logged_set.weight_kg,
            "reps": logged_set.reps,
            "estimated_1rm": e1rm,
            "set": logged_set,
        }

    return best
