"""Read access to logged training as immutable analysis snapshots."""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload, selectinload

from ..analysis.sessions import ExerciseSession, LoggedSet, WorkoutSnapshot
from ..exceptions import UserNotFound
from .models import User, Workout, WorkoutExercise, ExerciseSet

# Distinguishes "any machine" from "no machine" (machine_id IS NULL)
ANY_MACHINE = object()


def to_logged_set(exercise_set: ExerciseSet) -> LoggedSet:
    return LoggedSet(
        weight_kg=exercise_set.weight_kg,
        reps=exercise_set.reps,
        is_warmup=bool(exercise_set.is_warmup),
        completed_at=exercise_set.completed_at,
        created_at=exercise_set.created_at,
        rpe=exercise_set.rpe,
        rir=exercise_set.rir,
        position=exercise_set.position or 0,
        id=exercise_set.id,
    )


def to_exercise_session(workout_exercise: WorkoutExercise) -> ExerciseSession:
    """Snapshot a workout exercise together with its workout timing and sets."""
    workout = workout_exercise.workout
    exercise = workout_exercise.exercise
    machine = workout_exercise.machine
    sets = sorted(workout_exercise.sets, key=lambda s: (s.position or 0, s.id or 0))

    return ExerciseSession(
        id=workout_exercise.id,
        workout_id=workout.id,
        exercise_id=workout_exercise.exercise_id,
        machine_id=workout_exercise.machine_id,
        started_at=workout.started_at,
        finished_at=workout.finished_at,
        sets=tuple(to_logged_set(s) for s in sets),
        exercise_name=exercise.name if exercise else "",
        machine_name=machine.name if machine else None,
        has_weight=bool(exercise.has_weight) if exercise else True,
        user_id=workout.user_id,
    )


class TrainingRepository:
    """Query a user's training data through an open SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def exercise_sessions(
        self,
        user_id: int,
        exercise_id: Optional[int] = None,
        machine_id=ANY_MACHINE,
        finished_only: bool = False,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        exclude_workout_id: Optional[int] = None,
    ) -> List[ExerciseSession]:
        """Exercise sessions for a user, ordered by workout finish time.

        Args:
            user_id: Owner of the workouts
            exercise_id: Restrict to one exercise
            machine_id: Restrict to one machine; None means "no machine"
            finished_only: Skip in-progress workouts
            since: Minimum finish time (implies finished)
            until: Maximum finish time, exclusive (implies finished)
            exclude_workout_id: Leave one workout out

        Returns:
            List of ExerciseSession snapshots
        """
        query = (
            self.session.query(WorkoutExercise)
            .join(Workout, WorkoutExercise.workout_id == Workout.id)
            .options(
                joinedload(WorkoutExercise.workout),
                joinedload(WorkoutExercise.exercise),
                joinedload(WorkoutExercise.machine),
                selectinload(WorkoutExercise.sets),
            )
            .filter(Workout.user_id == user_id)
        )

        if exercise_id is not None:
            query = query.filter(WorkoutExercise.exercise_id == exercise_id)
        if machine_id is not ANY_MACHINE:
            if machine_id is None:
                query = query.filter(WorkoutExercise.machine_id.is_(None))
            else:
                query = query.filter(WorkoutExercise.machine_id == machine_id)
        if finished_only or since is not None or until is not None:
            query = query.filter(Workout.finished_at.isnot(None))
        if since is not None:
            query = query.filter(Workout.finished_at >= since)
        if until is not None:
            query = query.filter(Workout.finished_at < until)
        if exclude_workout_id is not None:
            query = query.filter(Workout.id != exclude_workout_id)

        query = query.order_by(Workout.finished_at, Workout.id, WorkoutExercise.id)
        return [to_exercise_session(we) for we in query.all()]

    def exercise_session(self, workout_exercise_id: int) -> Optional[ExerciseSession]:
        workout_exercise = self.session.get(WorkoutExercise, workout_exercise_id)
        if workout_exercise is None:
            return None
        return to_exercise_session(workout_exercise)

    def workouts(self, user_id: int, finished_only: bool = True) -> List[WorkoutSnapshot]:
        query = self.session.query(Workout).filter(Workout.user_id == user_id)
        if finished_only:
            query = query.filter(Workout.finished_at.isnot(None))
        return [
            WorkoutSnapshot(id=w.id, started_at=w.started_at, finished_at=w.finished_at)
            for w in query.order_by(Workout.finished_at, Workout.id).all()
        ]

    def finished_workout_times(self, user_id: int) -> List[datetime]:
        """Finish times of the user's finished workouts, newest first."""
        rows = (
            self.session.query(Workout.finished_at)
            .filter(Workout.user_id == user_id, Workout.finished_at.isnot(None))
            .order_by(Workout.finished_at.desc())
            .all()
        )
        return [row[0] for row in rows]

    def last_finished_at(self, user_id: int) -> Optional[datetime]:
        times = self.finished_workout_times(user_id)
        return times[0] if times else None

    def recent_pairs(self, user_id: int, since: datetime, limit: int) -> List[Tuple[int, Optional[int]]]:
        """Distinct (exercise, machine) pairs from recent finished workouts, most recent first."""
        rows = (
            self.session.query(WorkoutExercise.exercise_id, WorkoutExercise.machine_id)
            .join(Workout, WorkoutExercise.workout_id == Workout.id)
            .filter(
                Workout.user_id == user_id,
                Workout.finished_at.isnot(None),
                Workout.finished_at >= since,
            )
            .order_by(Workout.finished_at.desc(), Workout.id.desc(), WorkoutExercise.position)
            .all()
        )

        pairs = []
        for exercise_id, machine_id in rows:
            pair = (exercise_id, machine_id)
            if pair not in pairs:
                pairs.append(pair)
            if len(pairs) >= limit:
                break
        return pairs
