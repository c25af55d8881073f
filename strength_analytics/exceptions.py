"""Exceptions raised by the Strength Analytics engine."""


class StrengthAnalyticsError(Exception):
    """Base class for library errors."""


class UnknownNotificationKind(StrengthAnalyticsError):
    """Raised when a notification kind is outside the supported set."""

    def __init__(self, kind: str):
        super().__init__(f"Unknown notification kind: {kind!r}")
        self.kind = kind


class UserNotFound(StrengthAnalyticsError):
    """Raised when a user id does not exist in the store."""

    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id
