"""
Bank Correspondence Hub - Reminder Scheduler

Holds due-timestamped follow-ups on work items and fires each one exactly once.

A sweep marks a reminder processed and produces its notification in the same
step. The flag flips before the notification is handed to the router, so a
failed emit never causes a second firing.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from .hub_errors import NotFoundError
from .hub_models import Reminder, utc_now
from .notification_router import Audience, NotificationDraft, NotificationType

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 10
DEFAULT_REMINDER_MESSAGE = "Scheduled follow-up reminder."
GENERIC_REMINDER_TITLE = "Reminder: Follow-up"


def reminder_title(subject: Optional[str]) -> str:
    if subject is None:
        return GENERIC_REMINDER_TITLE
    return f"Reminder: {subject[:20]}..."


class ReminderScheduler:

    def __init__(
        self,
        reminders: Optional[Iterable[Reminder]] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self._reminders: List[Reminder] = list(reminders or [])
        self._clock = clock or utc_now

    def load(self, reminders: Iterable[Reminder]):
        self._reminders = list(reminders)

    def schedule(
        self,
        email_id: str,
        target_user_id: str,
        message: str,
        due_at: datetime,
        created_by: str
    ) -> Reminder:
        reminder = Reminder(
            id=uuid.uuid4().hex,
            email_id=email_id,
            target_user_id=target_user_id,
            message=message or "",
            due_at=due_at,
            created_by=created_by,
        )
        self._reminders.append(reminder)
        logger.info(
            "Reminder %s scheduled for item %s -> user %s at %s",
            reminder.id, email_id, target_user_id, due_at.isoformat()
        )
        return reminder

    def get(self, reminder_id: str) -> Reminder:
        for reminder in self._reminders:
            if reminder.id == reminder_id:
                return reminder
        raise NotFoundError(f"Reminder {reminder_id} not found", {"reminder_id": reminder_id})

    def due(self, now: Optional[datetime] = None) -> List[Reminder]:
        now = now or self._clock()
        return [r for r in self._reminders if not r.processed and r.due_at <= now]

    def sweep(
        self,
        now: Optional[datetime] = None,
        resolve_subject: Optional[Callable[[str], Optional[str]]] = None
    ) -> List[NotificationDraft]:
        """
        Fire every unprocessed reminder whose due time has passed.

        Args:
            now: Sweep time (defaults to the scheduler clock)
            resolve_subject: Looks up the related work item's subject;
                returns None when the item no longer exists

        Returns:
            One notification draft per fired reminder
        """
        drafts = []
        for reminder in self.due(now):
            reminder.processed = True
            subject = resolve_subject(reminder.email_id) if resolve_subject else None
            drafts.append(NotificationDraft(
                reminder_title(subject),
                reminder.message or DEFAULT_REMINDER_MESSAGE,
                NotificationType.WARNING,
                Audience.user(reminder.target_user_id),
            ))
            logger.info("Reminder %s fired for user %s", reminder.id, reminder.target_user_id)
        return drafts

    def all(self) -> List[Reminder]:
        return list(self._reminders)

    def pending(self) -> List[Reminder]:
        return [r for r in self._reminders if not r.processed]

    def __len__(self) -> int:
        return len(self._reminders)
