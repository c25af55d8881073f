"""Configuration management for the Strength Analytics engine."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./strength_analytics.db")

    # Application
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DATA_DIR: Path = Path.home() / ".strength_analytics"

    # e1RM estimation
    MAX_ESTIMATION_REPS: int = int(os.getenv("MAX_ESTIMATION_REPS", "30"))

    # PR timeline
    PR_TIMELINE_MONTHS: int = int(os.getenv("PR_TIMELINE_MONTHS", "12"))
    PR_TIMELINE_LIMIT: int = int(os.getenv("PR_TIMELINE_LIMIT", "100"))

    # Fatigue analysis (performance vs rolling baseline)
    FATIGUE_BASELINE_SESSIONS: int = int(os.getenv("FATIGUE_BASELINE_SESSIONS", "10"))
    FATIGUE_LOOKBACK_DAYS: int = int(os.getenv("FATIGUE_LOOKBACK_DAYS", "60"))
    FATIGUE_FRESH_THRESHOLD: float = float(os.getenv("FATIGUE_FRESH_THRESHOLD", "0.05"))
    FATIGUE_FATIGUED_THRESHOLD: float = float(os.getenv("FATIGUE_FATIGUED_THRESHOLD", "-0.10"))
    FATIGUE_VERY_FATIGUED_THRESHOLD: float = float(os.getenv("FATIGUE_VERY_FATIGUED_THRESHOLD", "-0.20"))
    FATIGUE_VOLUME_WEIGHT: float = float(os.getenv("FATIGUE_VOLUME_WEIGHT", "0.7"))
    FATIGUE_REPS_WEIGHT: float = float(os.getenv("FATIGUE_REPS_WEIGHT", "0.3"))
    FATIGUE_FACTOR_TOLERANCE: float = 0.10  # +/-10% volume or reps
    FATIGUE_RPE_TOLERANCE: float = 1.0  # +/-1 RPE point

    # Progression readiness (rep consistency)
    READINESS_MIN_SESSIONS: int = int(os.getenv("READINESS_MIN_SESSIONS", "3"))
    READINESS_MAX_SESSIONS: int = int(os.getenv("READINESS_MAX_SESSIONS", "10"))
    READINESS_LOOKBACK_DAYS: int = int(os.getenv("READINESS_LOOKBACK_DAYS", "30"))
    READINESS_CONSISTENCY_RATE: float = float(os.getenv("READINESS_CONSISTENCY_RATE", "0.75"))
    READINESS_REP_WINDOW: int = 2  # mode +/- 2 reps
    READINESS_TREND_DOWN_RATIO: float = float(os.getenv("READINESS_TREND_DOWN_RATIO", "0.95"))
    READINESS_RECENT_GAIN_RATIO: float = float(os.getenv("READINESS_RECENT_GAIN_RATIO", "1.025"))

    # Plateau detection
    PLATEAU_MIN_SETS: int = int(os.getenv("PLATEAU_MIN_SETS", "3"))
    PLATEAU_WEEKS_WITHOUT_PR: int = int(os.getenv("PLATEAU_WEEKS_WITHOUT_PR", "4"))
    PLATEAU_DANGER_WEEKS: int = int(os.getenv("PLATEAU_DANGER_WEEKS", "8"))
    PLATEAU_ACTIVE_DAYS: int = int(os.getenv("PLATEAU_ACTIVE_DAYS", "30"))
    PLATEAU_CANDIDATE_DAYS: int = int(os.getenv("PLATEAU_CANDIDATE_DAYS", "90"))
    PLATEAU_LIMIT: int = int(os.getenv("PLATEAU_LIMIT", "5"))

    # Notifications
    NOTIFICATION_FEED_SIZE: int = int(os.getenv("NOTIFICATION_FEED_SIZE", "20"))
    NOTIFICATION_GRACE_HOURS: float = float(os.getenv("NOTIFICATION_GRACE_HOURS", "6"))
    READINESS_PAIR_SAMPLE: int = int(os.getenv("READINESS_PAIR_SAMPLE", "8"))
    STREAK_RISK_DAYS: int = int(os.getenv("STREAK_RISK_DAYS", "4"))
    STREAK_DANGER_DAYS: int = int(os.getenv("STREAK_DANGER_DAYS", "7"))
    VOLUME_DROP_RATIO: float = float(os.getenv("VOLUME_DROP_RATIO", "0.6"))

    NOTIFICATION_KINDS = ("readiness", "plateau", "streak_risk", "volume_drop", "rest_timer")
    PERFORMANCE_KINDS = ("readiness", "plateau", "streak_risk", "volume_drop")
    SEVERITIES = ("success", "info", "warning", "danger")

    # Analytics cache
    CACHE_VALUE_TTL_SECONDS: int = int(os.getenv("CACHE_VALUE_TTL_SECONDS", "180"))
    CACHE_METRICS_TTL_DAYS: int = int(os.getenv("CACHE_METRICS_TTL_DAYS", "8"))
    CACHE_NAMESPACE: str = os.getenv("CACHE_NAMESPACE", "dashboard:analytics:v2")

    ANALYTICS_KEYS = (
        "pr_timeline",
        "rep_range_distribution",
        "exercise_frequency",
        "streaks",
        "week_comparison",
        "tonnage",
        "plateaus",
    )

    # Weekly summary
    SUMMARY_HISTORY_WEEKS: int = int(os.getenv("SUMMARY_HISTORY_WEEKS", "12"))
    SUMMARY_STREAK_LOOKBACK_WEEKS: int = 52

    @classmethod
    def ensure_dirs(cls) -> None:
        """Ensure required directories exist."""
        cls.DATA_DIR.mkdir(parents=True, exist_ok=True)


config = Config()
