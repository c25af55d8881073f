"""Analysis module for strength training signals."""

from .fatigue import FatigueAnalyzer, FatigueResult, FatigueStatus, analyze_fatigue
from .one_rm import estimate_1rm, percentage_table
from .readiness import ReadinessChecker, ReadinessResult, check_readiness
from .sessions import ExerciseSession, LoggedSet, WorkoutSnapshot
from .weekly_summary import WeeklySummaryCalculator

__all__ = [
    "ExerciseSession",
    "LoggedSet",
    "WorkoutSnapshot",
    "estimate_1rm",
    "percentage_table",
    "FatigueAnalyzer",
    "FatigueResult",
    "FatigueStatus",
    "analyze_fatigue",
    "ReadinessChecker",
    "ReadinessResult",
    "check_readiness",
    "WeeklySummaryCalculator",
]
