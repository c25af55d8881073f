"""Database module for Strength Analytics."""

from .database import Database, get_db, close_db
from .models import (
    User,
    Exercise,
    Machine,
    Workout,
    WorkoutExercise,
    ExerciseSet,
    Notification,
)
from .repository import TrainingRepository

__all__ = [
    "Database",
    "get_db",
    "close_db",
    "User",
    "Exercise",
    "Machine",
    "Workout",
    "WorkoutExercise",
    "ExerciseSet",
    "Notification",
    "TrainingRepository",
]
