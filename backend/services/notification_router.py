"""
Bank Correspondence Hub - Notification Router

In-process notification feed. Notifications are records, not deliveries:
nothing is sent over a real transport.

Every notification targets exactly one audience, either a role or a specific
user. Read state is global on the record.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Callable

from .hub_errors import ValidationError
from .hub_models import Role, User, utc_now, to_iso

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ALERT = "alert"
    INFO = "info"


@dataclass(frozen=True)
class Audience:
    """A role or a specific user; exactly one of the two."""
    target_role: Optional[Role] = None
    target_user_id: Optional[str] = None

    def __post_init__(self):
        if (self.target_role is None) == (self.target_user_id is None):
            raise ValidationError(
                "Notification audience needs exactly one of target_role or target_user_id",
                {"target_role": self.target_role, "target_user_id": self.target_user_id},
            )

    @classmethod
    def role(cls, role: Role) -> "Audience":
        return cls(target_role=role)

    @classmethod
    def user(cls, user_id: str) -> "Audience":
        return cls(target_user_id=user_id)

    def includes(self, viewer: User) -> bool:
        return self.target_role == viewer.role or self.target_user_id == viewer.id


@dataclass(frozen=True)
class NotificationDraft:
    """A notification derived by the engine, not yet in the feed."""
    title: str
    message: str
    type: NotificationType
    audience: Audience


@dataclass
class Notification:
    id: str
    title: str
    message: str
    type: NotificationType
    audience: Audience
    timestamp: datetime = field(default_factory=utc_now)
    read: bool = False

    def visible_to(self, viewer: User) -> bool:
        return self.audience.includes(viewer)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value,
            "timestamp": to_iso(self.timestamp),
            "read": self.read,
            "target_role": self.audience.target_role.value if self.audience.target_role else None,
            "target_user_id": self.audience.target_user_id,
        }


class NotificationRouter:
    """
    Global notification feed (newest first) with per-viewer filtering.

    Usage:
        router = NotificationRouter()
        router.emit("Team Update", "Jane added to team.", NotificationType.SUCCESS, Audience.role(Role.BOSS))
        router.resolve_audience(boss_user)
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._feed: List[Notification] = []
        self._clock = clock or utc_now
        self._lock = threading.Lock()

    def emit(
        self,
        title: str,
        message: str,
        type: NotificationType,
        audience: Audience
    ) -> Notification:
        """Append an unread notification to the feed."""
        notification = Notification(
            id=uuid.uuid4().hex,
            title=title,
            message=message,
            type=NotificationType(type),
            audience=audience,
            timestamp=self._clock(),
        )
        with self._lock:
            self._feed.insert(0, notification)
        logger.debug(
            "Notification %s [%s] -> role=%s user=%s: %s",
            notification.id, notification.type.value,
            audience.target_role, audience.target_user_id, title
        )
        return notification

    def dispatch(self, draft: NotificationDraft) -> Notification:
        return self.emit(draft.title, draft.message, draft.type, draft.audience)

    def resolve_audience(self, viewer: User) -> List[Notification]:
        """Notifications addressed to the viewer's role or to the viewer directly."""
        with self._lock:
            return [n for n in self._feed if n.visible_to(viewer)]

    def mark_read(self, notification_id: str) -> bool:
        with self._lock:
            for notification in self._feed:
                if notification.id == notification_id:
                    notification.read = True
                    return True
        return False

    def mark_all_read_for_viewer(self, viewer: User) -> int:
        """Mark every notification visible to the viewer as read. Returns how many flipped."""
        flipped = 0
        with self._lock:
            for notification in self._feed:
                if notification.visible_to(viewer) and not notification.read:
                    notification.read = True
                    flipped += 1
        return flipped

    def unread_count(self, viewer: User) -> int:
        return sum(1 for n in self.resolve_audience(viewer) if not n.read)

    def all(self) -> List[Notification]:
        with self._lock:
            return list(self._feed)

    def __len__(self) -> int:
        return len(self._feed)
