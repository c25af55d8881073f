"""Typed notification metadata.

Each notification kind carries a small fixed payload. Payloads are stored as
JSON with a ``kind`` tag and parsed back into the matching dataclass.
"""

import json
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Union

from .exceptions import UnknownNotificationKind


@dataclass(frozen=True)
class ReadinessPayload:
    exercise_id: int
    machine_id: Optional[int]

    kind = "readiness"


@dataclass(frozen=True)
class PlateauPayload:
    exercise_id: int
    weeks_since_pr: int

    kind = "plateau"


@dataclass(frozen=True)
class StreakRiskPayload:
    days_since_last_workout: int

    kind = "streak_risk"


@dataclass(frozen=True)
class VolumeDropPayload:
    this_week_volume_kg: int
    last_week_volume_kg: int
    ratio: float

    kind = "volume_drop"


@dataclass(frozen=True)
class RestTimerPayload:
    """Rest timer alerts are raised by the client; the payload only names the set."""
    exercise_id: Optional[int] = None
    rest_seconds: Optional[int] = None

    kind = "rest_timer"


NotificationPayload = Union[
    ReadinessPayload, PlateauPayload, StreakRiskPayload, VolumeDropPayload, RestTimerPayload
]

PAYLOAD_TYPES = {
    cls.kind: cls
    for cls in (ReadinessPayload, PlateauPayload, StreakRiskPayload, VolumeDropPayload, RestTimerPayload)
}


def payload_to_dict(payload: NotificationPayload) -> Dict[str, Any]:
    """Serialize with the kind tag first."""
    data = {"kind": payload.kind}
    data.update(asdict(payload))
    return data


def payload_to_json(payload: NotificationPayload) -> str:
    return json.dumps(payload_to_dict(payload), sort_keys=True)


def payload_from_dict(data: Dict[str, Any]) -> Optional[NotificationPayload]:
    """Build the payload for a tagged dict.

    Args:
        data: Dict with a ``kind`` tag and the payload fields

    Returns:
        The payload, or None for an empty dict

    Raises:
        UnknownNotificationKind: The tag names no known kind
    """
    if not data:
        return None

    fields = dict(data)
    kind = fields.pop("kind", None)
    cls = PAYLOAD_TYPES.get(kind)
    if cls is None:
        raise UnknownNotificationKind(kind)
    return cls(**fields)


def payload_from_json(raw: Optional[str]) -> Optional[NotificationPayload]:
    if not raw:
        return None
    return payload_from_dict(json.loads(raw))
