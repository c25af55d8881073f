"""Shared fixtures: an in-memory database and builders for training data."""

from datetime import datetime, timedelta

import pytest

from strength_analytics.analysis.sessions import ExerciseSession, LoggedSet
from strength_analytics.db.database import Database
from strength_analytics.db.models import Exercise, ExerciseSet, Machine, User, Workout, WorkoutExercise


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def session(db):
    with db.get_session() as s:
        yield s


class TrainingLog:
    """Builds users, catalog entries and finished workouts in a session."""

    def __init__(self, session):
        self.session = session

    def user(self, name="Alex", **kwargs) -> User:
        user = User(name=name, **kwargs)
        self.session.add(user)
        self.session.flush()
        return user

    def exercise(self, name="Bench Press", has_weight=True) -> Exercise:
        exercise = Exercise(name=name, has_weight=has_weight)
        self.session.add(exercise)
        self.session.flush()
        return exercise

    def machine(self, name="Flat Bench") -> Machine:
        machine = Machine(name=name)
        self.session.add(machine)
        self.session.flush()
        return machine

    def workout(self, user, finished_at, entries, started_at=None) -> Workout:
        """Log a workout.

        ``entries`` is a list of (exercise, machine, sets) where each set is
        a (weight_kg, reps) tuple.
        """
        if started_at is None and finished_at is not None:
            started_at = finished_at - timedelta(hours=1)
        workout = Workout(user=user, started_at=started_at, finished_at=finished_at)

        for position, (exercise, machine, sets) in enumerate(entries, start=1):
            workout_exercise = WorkoutExercise(exercise=exercise, machine=machine, position=position)
            for set_position, (weight, reps) in enumerate(sets, start=1):
                workout_exercise.sets.append(ExerciseSet(
                    position=set_position,
                    weight_kg=weight,
                    reps=reps,
                    created_at=finished_at or started_at,
                ))
            workout.workout_exercises.append(workout_exercise)

        self.session.add(workout)
        self.session.flush()
        return workout


@pytest.fixture
def log(session):
    return TrainingLog(session)


@pytest.fixture
def make_session():
    """Factory for in-memory ExerciseSession snapshots."""
    counter = {"id": 0}

    def build(finished_at, sets, exercise_id=1, machine_id=None, workout_id=None, session_id=None,
              exercise_name="Bench Press", machine_name=None, has_weight=True, warmups=()):
        counter["id"] += 1
        logged = []
        for position, values in enumerate(sets, start=1):
            weight, reps = values[0], values[1]
            rpe = values[2] if len(values) > 2 else None
            logged.append(LoggedSet(
                weight_kg=weight,
                reps=reps,
                rpe=rpe,
                is_warmup=position in warmups,
                created_at=finished_at,
                position=position,
                id=counter["id"] * 100 + position,
            ))

        return ExerciseSession(
            id=session_id or counter["id"],
            workout_id=workout_id or counter["id"],
            exercise_id=exercise_id,
            machine_id=machine_id,
            started_at=finished_at - timedelta(hours=1) if finished_at else datetime(2026, 1, 1),
            finished_at=finished_at,
            sets=tuple(logged),
            exercise_name=exercise_name,
            machine_name=machine_name,
            has_weight=has_weight,
        )

    return build


@pytest.fixture
def training_log():
    """The TrainingLog builder, for tests that manage their own sessions."""
    return TrainingLog
