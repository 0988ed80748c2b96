"""
Bank Correspondence Hub - Engine Instance

CorrespondenceHub owns all engine state (roster, work items, reminders,
notification feed, deduplication window) and exposes it through a named
command API plus read-only snapshots.

Concurrency:
    Every command runs under one asyncio.Lock, so "read roster, decide
    assignment, write item" is atomic with respect to user deletion and to
    other intake events. Persistence writes happen inside the lock.

Error handling:
    The pure WorkflowEngine raises HubError subclasses. The hub absorbs them
    into CommandResult objects; callers never see an exception for a refused
    command. A failed store write restores the in-memory state captured before
    the command and is reported as a PersistenceError.

Notifications raised by a command are held back until its writes succeed.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List, Callable, Iterable

from . import dispatcher
from .correspondence_classifier import classify
from .demo_seed import demo_users, demo_work_items
from .hub_errors import HubError, NotFoundError, PersistenceError, ValidationError
from .hub_models import (
    Reminder,
    Role,
    User,
    UserStatus,
    WorkItem,
    WorkItemStatus,
    parse_iso,
    utc_now,
)
from .intake_deduplicator import IntakeDeduplicator, normalize_intake_payload
from .notification_router import (
    Audience,
    Notification,
    NotificationDraft,
    NotificationRouter,
    NotificationType,
)
from .reminder_scheduler import ReminderScheduler
from .state_store import StateStore, USERS, WORK_ITEMS, REMINDERS, COLLECTIONS
from .workflow_engine import (
    ACTIVE_STATUSES,
    IntakeSource,
    TransitionOutcome,
    WorkflowAction,
    WorkflowEngine,
)

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """
    Outcome of a hub command.

    On success the fields relevant to the command are set: item for workflow
    commands, user for roster commands, item and reminder for set_reminder,
    user and count for delete_user, count for read-state commands.
    """
    success: bool
    item: Optional[WorkItem] = None
    user: Optional[User] = None
    reminder: Optional[Reminder] = None
    count: Optional[int] = None
    error: Optional[HubError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "item": self.item.to_dict() if self.item else None,
            "user": self.user.to_dict() if self.user else None,
            "reminder": self.reminder.to_dict() if self.reminder else None,
            "count": self.count,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class IntakeRunStats:
    """Counters for one intake run (poll cycle, push, or simulated message)."""
    source: str
    started_at: datetime = field(default_factory=utc_now)
    received: int = 0
    created: int = 0
    duplicates: int = 0
    dropped: int = 0
    assigned: int = 0
    queued: int = 0
    created_ids: List[str] = field(default_factory=list)
    upstream_error: Optional[str] = None
    store_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "started_at": self.started_at.isoformat(),
            "received": self.received,
            "created": self.created,
            "duplicates": self.duplicates,
            "dropped": self.dropped,
            "assigned": self.assigned,
            "queued": self.queued,
            "created_ids": list(self.created_ids),
            "upstream_error": self.upstream_error,
            "store_error": self.store_error,
        }


class CorrespondenceHub:
    """
    The dispatch & state engine instance.

    Usage:
        hub = CorrespondenceHub(InMemoryStateStore())
        await hub.load(seed_demo_data=True)
        await hub.ingest([{"id": "msg-1", "subject": "Loan application review"}])
        result = await hub.submit_report("msg-1", "worker-1", "Client contacted.")
    """

    def __init__(
        self,
        store: StateStore,
        router: Optional[NotificationRouter] = None,
        scheduler: Optional[ReminderScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
        claim_worker_on_dispatch: bool = True
    ):
        self.store = store
        self._clock = clock or utc_now
        self.router = router or NotificationRouter(clock=self._clock)
        self.scheduler = scheduler or ReminderScheduler(clock=self._clock)
        self.claim_worker_on_dispatch = claim_worker_on_dispatch
        self.deduplicator = IntakeDeduplicator()
        self.roster_version = 0
        self._users: List[User] = []
        self._items: List[WorkItem] = []
        self._outbox: List[NotificationDraft] = []
        self._lock = asyncio.Lock()
        self._loaded = False

    # =========================================================================
    # LIFECYCLE & PERSISTENCE
    # =========================================================================

    async def load(self, seed_demo_data: bool = False):
        """Load all collections from the store, seeding demo data into an empty store."""
        async with self._lock:
            await self.store.initialize()
            self._users = [User.from_dict(r) for r in await self.store.load(USERS)]
            self._items = [WorkItem.from_dict(r) for r in await self.store.load(WORK_ITEMS)]
            reminders = [Reminder.from_dict(r) for r in await self.store.load(REMINDERS)]
            self.scheduler.load(reminders)

            if seed_demo_data and not self._users and not self._items:
                self._users = demo_users()
                self._items = demo_work_items(self._clock())
                await self._persist(USERS, WORK_ITEMS)
                logger.info("Seeded demo roster (%d users) and %d work items", len(self._users), len(self._items))

            self.deduplicator = IntakeDeduplicator(item.id for item in self._items)
            self.roster_version += 1
            self._loaded = True
            logger.info(
                "Hub loaded from %s: %d users, %d work items, %d reminders",
                self.store.get_store_name(), len(self._users), len(self._items), len(reminders)
            )

    def _records(self, collection: str) -> List[Dict[str, Any]]:
        if collection == USERS:
            return [u.to_dict() for u in self._users]
        if collection == WORK_ITEMS:
            return [i.to_dict() for i in self._items]
        if collection == REMINDERS:
            return [r.to_dict() for r in self.scheduler.all()]
        raise ValueError(f"Unknown collection '{collection}'. Valid: {list(COLLECTIONS)}")

    async def _persist(self, *collections: str):
        for collection in collections:
            records = self._records(collection)
            try:
                await self.store.save(collection, records)
            except Exception as e:
                raise PersistenceError(
                    f"Failed to save {collection} to {self.store.get_store_name()}: {e}", collection
                ) from e

    def _snapshot(self, collections: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        """Serialized copies of the collections a command may write."""
        return {collection: self._records(collection) for collection in collections}

    async def _rollback(self, snapshot: Dict[str, List[Dict[str, Any]]]):
        """Restore memory from the snapshot and write it back over any partial save."""
        self._outbox.clear()
        if USERS in snapshot:
            self._users = [User.from_dict(r) for r in snapshot[USERS]]
            self._bump_roster()
        if WORK_ITEMS in snapshot:
            self._items = [WorkItem.from_dict(r) for r in snapshot[WORK_ITEMS]]
            self.deduplicator = IntakeDeduplicator(item.id for item in self._items)
        if REMINDERS in snapshot:
            self.scheduler.load(Reminder.from_dict(r) for r in snapshot[REMINDERS])

        for collection, records in snapshot.items():
            try:
                await self.store.save(collection, records)
            except Exception as e:
                logger.error("Could not write back %s after rollback: %s", collection, e)

    def _deliver(self, drafts: Iterable[NotificationDraft]):
        self._outbox.extend(drafts)

    def _notify(self, title: str, message: str, note_type: NotificationType, audience: Audience):
        self._outbox.append(NotificationDraft(title, message, note_type, audience))

    def _flush_outbox(self) -> List[Notification]:
        drafts, self._outbox = self._outbox, []
        return [self.router.dispatch(draft) for draft in drafts]

    def _bump_roster(self):
        self.roster_version += 1

    def _release_if_idle(self, worker_id: Optional[str]):
        """Return a claimed worker to Available once no active item is assigned to them."""
        if not self.claim_worker_on_dispatch or not worker_id:
            return
        worker = self._find_user(worker_id)
        if worker is None or worker.status != UserStatus.BUSY:
            return
        if any(i.assigned_worker_id == worker_id and i.status in ACTIVE_STATUSES for i in self._items):
            return
        worker.status = UserStatus.AVAILABLE
        self._bump_roster()
        logger.info("Worker %s released (no active work items)", worker_id)

    async def _run(
        self,
        command: str,
        actor_id: Optional[str],
        operation: Callable[[], CommandResult],
        collections: Iterable[str],
        failure_audience: Optional[Audience] = None
    ) -> CommandResult:
        """
        Run one command under the lock.

        The operation validates before it mutates. On HubError nothing is
        persisted; a ValidationError additionally alerts the actor (or the
        given failure audience). If a write fails the touched collections are
        rolled back and no notification goes out.
        """
        async with self._lock:
            snapshot = self._snapshot(collections)
            try:
                result = operation()
                await self._persist(*collections)
            except PersistenceError as e:
                logger.error("Command %s rolled back (actor=%s): %s", command, actor_id, e.message)
                await self._rollback(snapshot)
                return CommandResult(success=False, error=e)
            except HubError as e:
                self._outbox.clear()
                logger.warning("Command %s refused (actor=%s): %s", command, actor_id, e.message)
                if isinstance(e, ValidationError):
                    audience = failure_audience
                    if audience is None and actor_id and self._find_user(actor_id):
                        audience = Audience.user(actor_id)
                    if audience is not None:
                        self.router.emit("Operation Failed", e.message, NotificationType.ALERT, audience)
                return CommandResult(success=False, error=e)
            self._flush_outbox()
            return result

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def _find_user(self, user_id: str) -> Optional[User]:
        for user in self._users:
            if user.id == user_id:
                return user
        return None

    def _get_user(self, user_id: str) -> User:
        user = self._find_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", {"user_id": user_id})
        return user

    def _find_item(self, item_id: str) -> Optional[WorkItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def _get_item(self, item_id: str) -> WorkItem:
        item = self._find_item(item_id)
        if item is None:
            raise NotFoundError(f"Work item {item_id} not found", {"item_id": item_id})
        return item

    def _subject_for(self, item_id: str) -> Optional[str]:
        item = self._find_item(item_id)
        return item.subject if item else None

    # =========================================================================
    # INTAKE & DISPATCH
    # =========================================================================

    def _dispatch(self, item: WorkItem, now: datetime) -> TransitionOutcome:
        """Assign the item to the first available worker, or queue it. Caller holds the lock."""
        decision = dispatcher.decide(item.id, self._users)
        if decision.assigned:
            outcome = WorkflowEngine.auto_allocate(item, decision.worker, now)
            if self.claim_worker_on_dispatch:
                decision.worker.status = UserStatus.BUSY
                self._bump_roster()
        else:
            outcome = WorkflowEngine.record_queued(item, now)
        self._deliver(outcome.notifications)
        return outcome

    async def ingest(
        self,
        raw_records: Iterable[Any],
        source: IntakeSource = IntakeSource.WEBHOOK
    ) -> IntakeRunStats:
        """
        Normalize, deduplicate, classify, create and dispatch each raw record.

        Records without subject and body are dropped before the dedup check, so
        they never consume their id.
        """
        source = IntakeSource(source)
        stats = IntakeRunStats(source=source.value, started_at=self._clock())
        async with self._lock:
            snapshot = self._snapshot((USERS, WORK_ITEMS))
            now = self._clock()
            for raw in raw_records:
                stats.received += 1
                message = normalize_intake_payload(raw)
                if message is None:
                    stats.dropped += 1
                    continue
                if not self.deduplicator.should_accept(message.id):
                    stats.duplicates += 1
                    continue

                item = WorkflowEngine.create_work_item(message, classify(message.subject, message.body), source, now)
                self._items.insert(0, item)
                stats.created += 1
                stats.created_ids.append(item.id)

                if self._dispatch(item, now).status_changed:
                    stats.assigned += 1
                else:
                    stats.queued += 1

            if stats.created > 1:
                self._notify(
                    "System Sync",
                    f"{stats.created} new emails imported from Webhook",
                    NotificationType.SUCCESS,
                    Audience.role(Role.BOSS),
                )
            if stats.created:
                try:
                    await self._persist(USERS, WORK_ITEMS)
                except PersistenceError as e:
                    # Ids are released too, so the next run retries these records
                    logger.error("Intake (%s) rolled back: %s", stats.source, e.message)
                    await self._rollback(snapshot)
                    stats.store_error = e.message
                    stats.created = stats.assigned = stats.queued = 0
                    stats.created_ids = []
            self._flush_outbox()

        logger.info(
            "Intake (%s): received=%d created=%d duplicates=%d dropped=%d assigned=%d queued=%d",
            stats.source, stats.received, stats.created, stats.duplicates,
            stats.dropped, stats.assigned, stats.queued
        )
        return stats

    async def redispatch(self, item_id: str, actor_id: str) -> CommandResult:
        """Run dispatch again for a queued (DETECTED) item."""
        def operation():
            self._get_user(actor_id)
            item = self._get_item(item_id)
            WorkflowEngine.ensure_allowed(item, WorkflowAction.AUTO_ALLOCATE)
            if dispatcher.select_worker(self._users) is None:
                raise ValidationError("No available workers to dispatch to", {"item_id": item_id})
            self._dispatch(item, self._clock())
            return CommandResult(success=True, item=item)

        return await self._run("redispatch", actor_id, operation, (USERS, WORK_ITEMS))

    # =========================================================================
    # ROSTER COMMANDS
    # =========================================================================

    async def add_user(self, name: str, role: Any, actor_id: Optional[str] = None) -> CommandResult:
        def operation():
            if not name or not name.strip():
                raise ValidationError("'name' is required", {"field": "name"})
            try:
                user_role = Role(role)
            except ValueError:
                raise ValidationError(f"Unknown role '{role}'", {"field": "role", "valid": [r.value for r in Role]})

            user = User(
                id=f"{user_role.value.lower()}-{uuid.uuid4().hex[:8]}",
                name=name.strip(),
                role=user_role,
                status=UserStatus.AVAILABLE if user_role == Role.WORKER else None,
            )
            self._users.append(user)
            self._bump_roster()
            self._notify("Team Update", f"{user.name} added to team.", NotificationType.SUCCESS, Audience.role(Role.BOSS))
            logger.info("User added: %s (%s, %s)", user.id, user.name, user.role.value)
            return CommandResult(success=True, user=user)

        return await self._run("add_user", actor_id, operation, (USERS,))

    async def delete_user(self, user_id: str, actor_id: str) -> CommandResult:
        """Remove a user and unassign every work item that references them, atomically."""
        def operation():
            if user_id == actor_id:
                raise ValidationError("You cannot delete your own account.", {"user_id": user_id})
            self._get_user(actor_id)
            user = self._get_user(user_id)

            now = self._clock()
            unassigned = 0
            for item in self._items:
                if WorkflowEngine.unassign_deleted_worker(item, user.id, now):
                    unassigned += 1

            self._users.remove(user)
            self._bump_roster()
            self._notify(
                "Team Update", "User removed and tasks unassigned.", NotificationType.INFO, Audience.role(Role.BOSS)
            )
            logger.info("User deleted: %s (%d work items unassigned)", user.id, unassigned)
            return CommandResult(success=True, user=user, count=unassigned)

        return await self._run(
            "delete_user", actor_id, operation, (USERS, WORK_ITEMS),
            failure_audience=Audience.role(Role.BOSS) if user_id == actor_id else None,
        )

    async def set_user_status(self, user_id: str, status: Any, actor_id: Optional[str] = None) -> CommandResult:
        def operation():
            user = self._get_user(user_id)
            if user.role != Role.WORKER:
                raise ValidationError(
                    f"Only workers carry an availability status ({user.name} is {user.role.value})",
                    {"user_id": user_id},
                )
            try:
                new_status = UserStatus(status)
            except ValueError:
                raise ValidationError(
                    f"Unknown status '{status}'", {"field": "status", "valid": [s.value for s in UserStatus]}
                )
            user.status = new_status
            self._bump_roster()
            logger.info("User %s status -> %s", user.id, new_status.value)
            return CommandResult(success=True, user=user)

        return await self._run("set_user_status", actor_id, operation, (USERS,))

    # =========================================================================
    # WORK ITEM COMMANDS
    # =========================================================================

    async def _item_command(
        self,
        command: str,
        item_id: str,
        actor_id: str,
        apply: Callable[[WorkItem, User, datetime], TransitionOutcome]
    ) -> CommandResult:
        def operation():
            actor = self._get_user(actor_id)
            item = self._get_item(item_id)
            previous_worker_id = item.assigned_worker_id
            outcome = apply(item, actor, self._clock())
            self._release_if_idle(previous_worker_id)
            self._deliver(outcome.notifications)
            return CommandResult(success=True, item=item)

        return await self._run(command, actor_id, operation, (USERS, WORK_ITEMS))

    async def start_work(self, item_id: str, actor_id: str) -> CommandResult:
        return await self._item_command(
            "start_work", item_id, actor_id,
            lambda item, actor, now: WorkflowEngine.start_work(item, actor, now),
        )

    async def submit_report(self, item_id: str, actor_id: str, report_content: Optional[str]) -> CommandResult:
        return await self._item_command(
            "submit_report", item_id, actor_id,
            lambda item, actor, now: WorkflowEngine.submit_report(item, actor, report_content, now),
        )

    async def approve(self, item_id: str, actor_id: str, comments: Optional[str] = None) -> CommandResult:
        return await self._item_command(
            "approve", item_id, actor_id,
            lambda item, actor, now: WorkflowEngine.approve(item, actor, comments, now),
        )

    async def reject(self, item_id: str, actor_id: str, comments: Optional[str]) -> CommandResult:
        return await self._item_command(
            "reject", item_id, actor_id,
            lambda item, actor, now: WorkflowEngine.reject(item, actor, comments, now),
        )

    async def reassign(
        self,
        item_id: str,
        actor_id: str,
        worker_id: str,
        note: Optional[str] = None
    ) -> CommandResult:
        return await self._item_command(
            "reassign", item_id, actor_id,
            lambda item, actor, now: WorkflowEngine.reassign(item, actor, self._get_user(worker_id), note, now),
        )

    async def archive(self, item_id: str, actor_id: str) -> CommandResult:
        return await self._item_command(
            "archive", item_id, actor_id,
            lambda item, actor, now: WorkflowEngine.archive(item, actor, now),
        )

    async def forward(self, item_id: str, actor_id: str, recipient: str, note: str = "") -> CommandResult:
        """Forward to a team member (matched by name or id) or to an external address."""
        def resolve(recipient_key: str) -> Optional[User]:
            for user in self._users:
                if user.name == recipient_key or user.id == recipient_key:
                    return user
            return None

        return await self._item_command(
            "forward", item_id, actor_id,
            lambda item, actor, now: WorkflowEngine.forward(
                item, actor, recipient, resolve(recipient) if recipient else None, note, now
            ),
        )

    async def set_reminder(
        self,
        item_id: str,
        actor_id: str,
        due_at: Any,
        note: str = ""
    ) -> CommandResult:
        """
        Schedule a follow-up on the item.

        The reminder targets the assigned worker, or the actor when the item is
        unassigned.
        """
        def operation():
            actor = self._get_user(actor_id)
            item = self._get_item(item_id)
            if due_at is None or due_at == "":
                raise ValidationError("'due_at' is required", {"item_id": item_id, "field": "due_at"})
            try:
                due = parse_iso(due_at)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid due_at '{due_at}'", {"item_id": item_id, "field": "due_at"})

            now = self._clock()
            outcome = WorkflowEngine.record_reminder(item, actor, due, now)
            reminder = self.scheduler.schedule(
                email_id=item.id,
                target_user_id=item.assigned_worker_id or actor.id,
                message=note or "",
                due_at=due,
                created_by=actor.id,
            )
            self._deliver(outcome.notifications)
            return CommandResult(success=True, item=item, reminder=reminder)

        return await self._run("set_reminder", actor_id, operation, (WORK_ITEMS, REMINDERS))

    # =========================================================================
    # NOTIFICATIONS & REMINDERS
    # =========================================================================

    async def mark_read(self, notification_id: str) -> CommandResult:
        def operation():
            if not self.router.mark_read(notification_id):
                raise NotFoundError(f"Notification {notification_id} not found", {"notification_id": notification_id})
            return CommandResult(success=True, count=1)

        return await self._run("mark_read", None, operation, ())

    async def mark_all_read(self, viewer_id: str) -> CommandResult:
        def operation():
            viewer = self._get_user(viewer_id)
            return CommandResult(success=True, count=self.router.mark_all_read_for_viewer(viewer))

        return await self._run("mark_all_read", viewer_id, operation, ())

    async def sweep_reminders(self, now: Optional[datetime] = None) -> List[Notification]:
        """Fire every due reminder once. Reminders are persisted as processed before notifying."""
        async with self._lock:
            snapshot = self._snapshot((REMINDERS,))
            drafts = self.scheduler.sweep(now or self._clock(), self._subject_for)
            if not drafts:
                return []
            try:
                await self._persist(REMINDERS)
            except PersistenceError as e:
                logger.error("Reminder sweep rolled back, %d reminders stay pending: %s", len(drafts), e.message)
                await self._rollback(snapshot)
                return []
            self._deliver(drafts)
            return self._flush_outbox()

    # =========================================================================
    # SNAPSHOTS (read-only copies)
    # =========================================================================

    def list_work_items(
        self,
        status: Optional[Any] = None,
        assigned_worker_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        try:
            status_filter = WorkItemStatus(status) if status else None
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'", {"valid": WorkflowEngine.get_all_statuses()})
        return [
            item.to_dict() for item in self._items
            if (status_filter is None or item.status == status_filter)
            and (assigned_worker_id is None or item.assigned_worker_id == assigned_worker_id)
        ]

    def get_work_item(self, item_id: str) -> Dict[str, Any]:
        item = self._get_item(item_id)
        data = item.to_dict()
        data["allowed_actions"] = WorkflowEngine.get_allowed_actions(item.status)
        return data

    def list_users(self, role: Optional[Any] = None) -> List[Dict[str, Any]]:
        try:
            role_filter = Role(role) if role else None
        except ValueError:
            raise ValidationError(f"Unknown role '{role}'", {"valid": [r.value for r in Role]})
        return [u.to_dict() for u in self._users if role_filter is None or u.role == role_filter]

    def get_user(self, user_id: str) -> Dict[str, Any]:
        return self._get_user(user_id).to_dict()

    def get_reminder(self, reminder_id: str) -> Dict[str, Any]:
        return self.scheduler.get(reminder_id).to_dict()

    def has_seen_message(self, message_id: str) -> bool:
        """True once an external message id has been admitted (or was known at load)."""
        return self.deduplicator.has_seen(message_id)

    def list_reminders(self, pending_only: bool = False) -> List[Dict[str, Any]]:
        reminders = self.scheduler.pending() if pending_only else self.scheduler.all()
        return [r.to_dict() for r in reminders]

    def notifications_for(self, viewer_id: str) -> Dict[str, Any]:
        viewer = self._get_user(viewer_id)
        notifications = self.router.resolve_audience(viewer)
        return {
            "viewer_id": viewer.id,
            "unread": self.router.unread_count(viewer),
            "notifications": [n.to_dict() for n in notifications],
        }

    def queue_counts(self) -> Dict[str, Any]:
        by_status = {s.value: 0 for s in WorkItemStatus}
        for item in self._items:
            by_status[item.status.value] += 1
        return {
            "total": len(self._items),
            "unassigned": sum(1 for i in self._items if not i.assigned_worker_id and not i.is_terminal),
            "by_status": by_status,
        }

    def summary(self) -> Dict[str, Any]:
        return {
            "loaded": self._loaded,
            "store": self.store.get_store_name(),
            "users": len(self._users),
            "work_items": len(self._items),
            "reminders": len(self.scheduler),
            "pending_reminders": len(self.scheduler.pending()),
            "notifications": len(self.router),
            "dedup_window": len(self.deduplicator),
            "roster_version": self.roster_version,
        }
