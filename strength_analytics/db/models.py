"""Database models for logged training, notifications and the analytics cache."""

from datetime import datetime
from typing import Optional
from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Date,
    Boolean,
    Text,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship

from ..exceptions import UnknownNotificationKind

Base = declarative_base()


class User(Base):
    """Athlete account with unit and notification preferences."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    preferred_unit = Column(String(10), default="kg")  # kg or lbs

    # Per-kind notification preferences
    notify_readiness = Column(Boolean, default=True, nullable=False)
    notify_plateau = Column(Boolean, default=True, nullable=False)
    notify_streak_risk = Column(Boolean, default=True, nullable=False)
    notify_volume_drop = Column(Boolean, default=True, nullable=False)
    notify_rest_timer_in_app = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    workouts = relationship("Workout", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    PREFERENCE_COLUMNS = {
        "readiness": "notify_readiness",
        "plateau": "notify_plateau",
        "streak_risk": "notify_streak_risk",
        "volume_drop": "notify_volume_drop",
        "rest_timer": "notify_rest_timer_in_app",
    }

    @property
    def unit(self) -> str:
        return self.preferred_unit or "kg"

    def enabled_for(self, kind: str) -> bool:
        """Whether the user wants notifications of this kind."""
        column = self.PREFERENCE_COLUMNS.get(kind)
        if column is None:
            raise UnknownNotificationKind(kind)
        value = getattr(self, column)
        # Unflushed instances have not received column defaults yet
        return True if value is None else bool(value)

    def __repr__(self):
        return f"<User(id={self.id}, name={self.name})>"


class Exercise(Base):
    """Exercise catalog entry."""

    __tablename__ = "exercises"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    exercise_type = Column(String(20), default="reps")  # reps, time, distance
    has_weight = Column(Boolean, default=True, nullable=False)
    primary_muscle_group = Column(String(50))
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Exercise(id={self.id}, name={self.name})>"


class Machine(Base):
    """Piece of equipment an exercise is performed on."""

    __tablename__ = "machines"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    equipment_type = Column(String(50))  # barbell, machine, cable, ...
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Machine(id={self.id}, name={self.name})>"


class Workout(Base):
    """A training session. finished_at is NULL while the session is in progress."""

    __tablename__ = "workouts"
    __table_args__ = (Index("ix_workouts_user_finished", "user_id", "finished_at"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="workouts")
    workout_exercises = relationship(
        "WorkoutExercise",
        back_populates="workout",
        order_by="WorkoutExercise.position",
        cascade="all, delete-orphan",
    )

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    @property
    def duration_minutes(self) -> Optional[int]:
        if not self.started_at or not self.finished_at:
            return None
        return round((self.finished_at - self.started_at).total_seconds() / 60)

    def __repr__(self):
        return f"<Workout(id={self.id}, user_id={self.user_id}, finished_at={self.finished_at})>"


class WorkoutExercise(Base):
    """One exercise performed on one machine within a workout."""

    __tablename__ = "workout_exercises"

    id = Column(Integer, primary_key=True)
    workout_id = Column(Integer, ForeignKey("workouts.id"), nullable=False, index=True)
    exercise_id = Column(Integer, ForeignKey("exercises.id"), nullable=False, index=True)
    machine_id = Column(Integer, ForeignKey("machines.id"), index=True)
    position = Column(Integer, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

    workout = relationship("Workout", back_populates="workout_exercises")
    exercise = relationship("Exercise")
    machine = relationship("Machine")
    sets = relationship(
        "ExerciseSet",
        back_populates="workout_exercise",
        order_by="ExerciseSet.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<WorkoutExercise(id={self.id}, exercise_id={self.exercise_id}, machine_id={self.machine_id})>"


class ExerciseSet(Base):
    """A single logged set."""

    __tablename__ = "exercise_sets"

    id = Column(Integer, primary_key=True)
    workout_exercise_id = Column(Integer, ForeignKey("workout_exercises.id"), nullable=False, index=True)
    position = Column(Integer, default=1)
    weight_kg = Column(Float)  # always stored in kg
    reps = Column(Integer)
    is_warmup = Column(Boolean, default=False, nullable=False)
    rpe = Column(Float)  # 1-10
    rir = Column(Integer)  # 0-10
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    workout_exercise = relationship("WorkoutExercise", back_populates="sets")

    def __repr__(self):
        return f"<ExerciseSet(id={self.id}, weight_kg={self.weight_kg}, reps={self.reps}, warmup={self.is_warmup})>"


class Notification(Base):
    """In-app analytics notification, upserted by (user_id, dedupe_key)."""

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("user_id", "dedupe_key", name="uq_notifications_user_dedupe_key"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    kind = Column(String(30), nullable=False)
    severity = Column(String(20), nullable=False, default="info")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    dedupe_key = Column(String(255), nullable=False)
    metadata_json = Column("metadata", Text, nullable=False, default="{}")  # kind-tagged payload
    read_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="notifications")

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def mark_read(self, now: Optional[datetime] = None) -> None:
        if self.read_at is None:
            self.read_at = now or datetime.utcnow()

    @property
    def payload(self):
        """Typed metadata payload for this notification."""
        from ..payloads import payload_from_json

        return payload_from_json(self.metadata_json)

    def __repr__(self):
        return f"<Notification(user_id={self.user_id}, kind={self.kind}, dedupe_key={self.dedupe_key})>"


class AnalyticsCacheVersion(Base):
    """Per (user, metric) version counter."""

    __tablename__ = "analytics_cache_versions"
    __table_args__ = (UniqueConstraint("user_id", "metric_key", name="uq_cache_version_user_metric"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    metric_key = Column(String(100), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<AnalyticsCacheVersion(user_id={self.user_id}, key={self.metric_key}, version={self.version})>"


class AnalyticsCacheEntry(Base):
    """Memoized metric value computed under one version."""

    __tablename__ = "analytics_cache_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "metric_key", "version", name="uq_cache_entry_user_metric_version"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    metric_key = Column(String(100), nullable=False)
    version = Column(Integer, nullable=False)
    value_json = Column(Text, nullable=False)
    computed_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<AnalyticsCacheEntry(user_id={self.user_id}, key={self.metric_key}, version={self.version})>"


class AnalyticsCacheMetric(Base):
    """Daily cache hit/miss/invalidation counters per user."""

    __tablename__ = "analytics_cache_metrics"
    __table_args__ = (
        UniqueConstraint("user_id", "day", "metric_type", name="uq_cache_metric_user_day_type"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    day = Column(Date, nullable=False)
    metric_type = Column(String(20), nullable=False)  # cache_hit, cache_miss, invalidation
    count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime)

    def __repr__(self):
        return f"<AnalyticsCacheMetric(user_id={self.user_id}, day={self.day}, {self.metric_type}={self.count})>"
