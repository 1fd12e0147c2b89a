# src/domain/notifications.py

from dataclasses import dataclass, field
from enum import Enum


class NotificationKind(str, Enum):
    RECEIPT = "receipt"
    REJECTION = "rejection"
    OTP = "otp"


@dataclass(frozen=True)
class Notification:
    """
    An email the engine wants sent once its transaction is done.

    `snapshot` holds plain values only, never ORM objects, so delivery can
    happen after the database session is closed.
    """

    kind: NotificationKind
    email: str
    name: str
    snapshot: dict = field(default_factory=dict)
    reason: str | None = None
