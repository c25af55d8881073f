"""Performance notifications built from the training analyzers.

``PerformanceNotificationService.refresh`` is idempotent: every notification
is keyed by a dedupe key derived from the condition it reports (not from the
time it was generated), so re-running with unchanged data maps onto the same
rows and writes nothing.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .analysis.aggregates import detect_plateaus, iso_week_label, week_start, week_to_date_volume
from .analysis.readiness import ReadinessChecker
from .analysis.sessions import ExerciseSession
from .analysis.units import format_weight
from .config import config
from .db.database import Database
from .db.models import Notification, User
from .db.repository import TrainingRepository
from .payloads import (
    NotificationPayload,
    PlateauPayload,
    ReadinessPayload,
    StreakRiskPayload,
    VolumeDropPayload,
    payload_to_json,
)

logger = logging.getLogger(__name__)


@dataclass
class NotificationCandidate:
    """A notification the current data says should exist."""
    kind: str
    severity: str
    title: str
    message: str
    dedupe_key: str
    payload: NotificationPayload

    def fields(self) -> Dict[str, str]:
        """Column values written to the notification row."""
        return {
            "kind": self.kind,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "metadata_json": payload_to_json(self.payload),
        }


@dataclass
class RefreshStats:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0

    @property
    def writes(self) -> int:
        return self.created + self.updated + self.deleted


@dataclass
class BatchRefreshResult:
    refreshed: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)


def _same_metadata(stored: Optional[str], candidate: str) -> bool:
    try:
        return json.loads(stored or "{}") == json.loads(candidate)
    except ValueError:
        return False


class PerformanceNotificationService:
    """Build, upsert and expire performance notifications for one user."""

    def __init__(self, session: Session, user: User, now: Optional[datetime] = None):
        self.session = session
        self.user = user
        self.now = now or datetime.utcnow()
        self.repository = TrainingRepository(session)
        self.stats = RefreshStats()
        self._sessions: Optional[List[ExerciseSession]] = None

    @property
    def history(self) -> List[ExerciseSession]:
        """All of the user's finished exercise sessions."""
        if self._sessions is None:
            self._sessions = self.repository.exercise_sessions(self.user.id, finished_only=True)
        return self._sessions

    def refresh(self) -> List[Notification]:
        """Synchronize the user's performance notifications with current data.

        Returns:
            The user's most recent notifications, read and unread
        """
        self.stats = RefreshStats()
        candidates = [c for c in self.build_candidates() if self.user.enabled_for(c.kind)]
        keys = [c.dedupe_key for c in candidates]

        for candidate in candidates:
            self.upsert(candidate)
        self.session.flush()
        self.expire_stale(keys)

        stats = self.stats
        logger.info(
            f"Refreshed notifications for user {self.user.id}: {stats.created} created, "
            f"{stats.updated} updated, {stats.unchanged} unchanged, {stats.deleted} deleted"
        )
        return self.recent()

    def build_candidates(self) -> List[NotificationCandidate]:
        candidates = []
        candidates.extend(self.readiness_candidates())
        candidates.extend(self.plateau_candidates())
        for candidate in (self.streak_risk_candidate(), self.volume_drop_candidate()):
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    def readiness_candidates(self) -> List[NotificationCandidate]:
        since = self.now - timedelta(days=config.READINESS_LOOKBACK_DAYS)
        pairs = self.repository.recent_pairs(self.user.id, since, config.READINESS_PAIR_SAMPLE)

        candidates = []
        for exercise_id, machine_id in pairs:
            readiness = ReadinessChecker(exercise_id, machine_id).check(self.history, self.now)
            if readiness is None:
                continue

            machine_part = "" if machine_id is None else machine_id
            candidates.append(NotificationCandidate(
                kind="readiness",
                severity="success",
                title="Ready to Progress",
                message=readiness.message,
                dedupe_key=f"readiness:{exercise_id}:{machine_part}:{readiness.sessions_analyzed}",
                payload=ReadinessPayload(exercise_id=exercise_id, machine_id=machine_id),
            ))
        return candidates

    def plateau_candidates(self) -> List[NotificationCandidate]:
        unit = self.user.unit
        candidates = []
        for plateau in detect_plateaus(self.history, self.now):
            severity = "danger" if plateau.weeks_since_pr >= config.PLATEAU_DANGER_WEEKS else "warning"
            candidates.append(NotificationCandidate(
                kind="plateau",
                severity=severity,
                title=f"{plateau.exercise_name}: Plateau Watch",
                message=(
                    f"No new weight PR for {plateau.weeks_since_pr} weeks. "
                    f"Best: {format_weight(plateau.best_weight_kg, unit)}{unit}."
                ),
                dedupe_key=f"plateau:{plateau.exercise_id}:{plateau.last_pr_date.isoformat()}",
                payload=PlateauPayload(exercise_id=plateau.exercise_id, weeks_since_pr=plateau.weeks_since_pr),
            ))
        return candidates

    def streak_risk_candidate(self) -> Optional[NotificationCandidate]:
        last_finished_at = self.repository.last_finished_at(self.user.id)
        if last_finished_at is None:
            return None

        days_since = (self.now.date() - last_finished_at.date()).days
        if days_since < config.STREAK_RISK_DAYS:
            return None

        return NotificationCandidate(
            kind="streak_risk",
            severity="danger" if days_since >= config.STREAK_DANGER_DAYS else "warning",
            title="Consistency Streak At Risk",
            message=f"No workout logged in {days_since} days. A short session today keeps momentum.",
            dedupe_key=f"streak-risk:{iso_week_label(self.now.date())}",
            payload=StreakRiskPayload(days_since_last_workout=days_since),
        )

    def volume_drop_candidate(self) -> Optional[NotificationCandidate]:
        monday = datetime.combine(week_start(self.now.date()), time.min)
        trained_this_week = any(
            monday <= t <= self.now for t in self.repository.finished_workout_times(self.user.id)
        )
        if not trained_this_week:
            return None

        this_week = week_to_date_volume(self.history, self.now, weeks_ago=0)
        last_week = week_to_date_volume(self.history, self.now, weeks_ago=1)
        if last_week <= 0:
            return None

        ratio = this_week / last_week
        if ratio >= config.VOLUME_DROP_RATIO:
            return None

        return NotificationCandidate(
            kind="volume_drop",
            severity="warning",
            title="Weekly Volume Down",
            message=f"Current week volume is {round(ratio * 100)}% of last week. Consider a catch-up session.",
            dedupe_key=f"volume-drop:{iso_week_label(self.now.date())}",
            payload=VolumeDropPayload(
                this_week_volume_kg=int(round(this_week)),
                last_week_volume_kg=int(round(last_week)),
                ratio=round(ratio, 2),
            ),
        )

    def _find(self, dedupe_key: str) -> Optional[Notification]:
        return (
            self.session.query(Notification)
            .filter(Notification.user_id == self.user.id, Notification.dedupe_key == dedupe_key)
            .one_or_none()
        )

    def upsert(self, candidate: NotificationCandidate) -> Notification:
        """Create or update the row for a candidate, writing only on a field diff.

        A concurrent refresh may insert the same key first; the unique
        constraint then rejects our insert and the existing row is updated.
        """
        values = candidate.fields()
        notification = self._find(candidate.dedupe_key)

        if notification is None:
            notification = Notification(
                user_id=self.user.id,
                dedupe_key=candidate.dedupe_key,
                created_at=self.now,
                updated_at=self.now,
                **values,
            )
            try:
                with self.session.begin_nested():
                    self.session.add(notification)
            except IntegrityError:
                logger.debug(f"Notification {candidate.dedupe_key} inserted concurrently, updating")
                notification = self._find(candidate.dedupe_key)
            else:
                self.stats.created += 1
                logger.debug(f"Created notification {candidate.dedupe_key}")
                return notification

        if self._differs(notification, values):
            for name, value in values.items():
                setattr(notification, name, value)
            notification.updated_at = self.now
            self.stats.updated += 1
            logger.debug(f"Updated notification {candidate.dedupe_key}")
        else:
            self.stats.unchanged += 1
        return notification

    @staticmethod
    def _differs(notification: Notification, values: Dict[str, str]) -> bool:
        for name, value in values.items():
            if name == "metadata_json":
                if not _same_metadata(notification.metadata_json, value):
                    return True
            elif getattr(notification, name) != value:
                return True
        return False

    def expire_stale(self, active_keys: Iterable[str]) -> int:
        """Delete unread performance notifications whose condition no longer holds.

        Rows younger than the grace period survive so a fresh alert is not
        removed before the user has seen it. Read history is never touched.
        """
        cutoff = self.now - timedelta(hours=config.NOTIFICATION_GRACE_HOURS)
        query = self.session.query(Notification).filter(
            Notification.user_id == self.user.id,
            Notification.kind.in_(config.PERFORMANCE_KINDS),
            Notification.read_at.is_(None),
            Notification.created_at < cutoff,
        )
        active_keys = list(active_keys)
        if active_keys:
            query = query.filter(Notification.dedupe_key.notin_(active_keys))

        deleted = query.delete(synchronize_session="fetch")
        self.stats.deleted += deleted
        if deleted:
            logger.info(f"Expired {deleted} stale notifications for user {self.user.id}")
        return deleted

    def recent(self) -> List[Notification]:
        return (
            self.session.query(Notification)
            .filter(Notification.user_id == self.user.id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(config.NOTIFICATION_FEED_SIZE)
            .all()
        )


def refresh_notifications_for_users(db: Database, user_ids: Iterable[int],
                                    now: Optional[datetime] = None) -> BatchRefreshResult:
    """Refresh several users, each in its own database session.

    A failure for one user is logged and recorded; the others still run.
    """
    result = BatchRefreshResult()
    for user_id in user_ids:
        try:
            with db.get_session() as session:
                user = TrainingRepository(session).get_user(user_id)
                PerformanceNotificationService(session, user, now=now).refresh()
        except Exception as e:
            logger.exception(f"Notification refresh failed for user {user_id}")
            result.failed[user_id] = str(e)
        else:
            result.refreshed.append(user_id)
    return result


def mark_all_read(session: Session, user_id: int, now: Optional[datetime] = None) -> int:
    """Mark every unread notification for the user as read."""
    now = now or datetime.utcnow()
    updated = (
        session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read_at.is_(None))
        .update({Notification.read_at: now}, synchronize_session="fetch")
    )
    logger.debug(f"Marked {updated} notifications read for user {user_id}")
    return updated
