"""
Bank Correspondence Hub - Workflow State Machine

This module implements a deterministic state machine for bank correspondence
work items moving through the four-role approval pipeline:

    intake (DETECTED) -> field work (ASSIGNED / IN_PROGRESS)
        -> supervisory review (PENDING_APPROVAL -> APPROVED | REJECTED)
        -> archival (COMPLETED)

The workflow engine is pure business logic with no direct HTTP or DB calls.
Every command validates first and mutates second: a refused command leaves the
item untouched (no status change, no history entry, no notification).
Every accepted status transition appends exactly one history entry.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List, Tuple, FrozenSet, Any

from .correspondence_classifier import ClassificationResult
from .dispatcher import AUTO_DISPATCH_ACTOR
from .hub_errors import IllegalTransition, ValidationError
from .hub_models import (
    Priority,
    Role,
    User,
    WorkItem,
    WorkItemStatus,
    WorkflowHistoryEntry,
    utc_now,
)
from .intake_deduplicator import IntakeMessage
from .notification_router import Audience, NotificationDraft, NotificationType

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "System"


# =============================================================================
# WORKFLOW ACTIONS
# =============================================================================

class WorkflowAction(str, Enum):
    """Actions that trigger work item status transitions."""
    AUTO_ALLOCATE = "auto_allocate"
    START_WORK = "start_work"
    SUBMIT_REPORT = "submit_report"
    APPROVE = "approve"
    REJECT = "reject"
    REASSIGN = "reassign"
    ARCHIVE = "archive"
    UNASSIGN = "unassign"


class IntakeSource(str, Enum):
    """Where a work item entered the pipeline."""
    WEBHOOK = "webhook"
    SIMULATION = "simulation"


INTAKE_HISTORY_LABELS = {
    IntakeSource.WEBHOOK: "Imported from Webhook",
    IntakeSource.SIMULATION: "Email Detected",
}

TERMINAL_STATUSES: FrozenSet[WorkItemStatus] = frozenset({WorkItemStatus.COMPLETED})
NON_TERMINAL_STATUSES: FrozenSet[WorkItemStatus] = frozenset(
    s for s in WorkItemStatus if s not in TERMINAL_STATUSES
)

# Statuses in which the assigned worker still owes work on the item
ACTIVE_STATUSES: FrozenSet[WorkItemStatus] = frozenset({
    WorkItemStatus.ASSIGNED, WorkItemStatus.IN_PROGRESS, WorkItemStatus.REJECTED,
})


# =============================================================================
# TRANSITION TABLE
# =============================================================================

# Format: {action: (allowed_source_statuses, destination_status)}
WORKFLOW_TRANSITIONS: Dict[WorkflowAction, Tuple[FrozenSet[WorkItemStatus], WorkItemStatus]] = {
    WorkflowAction.AUTO_ALLOCATE: (
        frozenset({WorkItemStatus.DETECTED}),
        WorkItemStatus.ASSIGNED,
    ),
    WorkflowAction.START_WORK: (
        frozenset({WorkItemStatus.ASSIGNED}),
        WorkItemStatus.IN_PROGRESS,
    ),
    WorkflowAction.SUBMIT_REPORT: (
        frozenset({WorkItemStatus.ASSIGNED, WorkItemStatus.IN_PROGRESS, WorkItemStatus.REJECTED}),
        WorkItemStatus.PENDING_APPROVAL,
    ),
    WorkflowAction.APPROVE: (
        frozenset({WorkItemStatus.PENDING_APPROVAL}),
        WorkItemStatus.APPROVED,
    ),
    WorkflowAction.REJECT: (
        frozenset({WorkItemStatus.PENDING_APPROVAL}),
        WorkItemStatus.REJECTED,
    ),
    WorkflowAction.REASSIGN: (
        NON_TERMINAL_STATUSES,
        WorkItemStatus.ASSIGNED,
    ),
    WorkflowAction.ARCHIVE: (
        frozenset({WorkItemStatus.APPROVED}),
        WorkItemStatus.COMPLETED,
    ),
    WorkflowAction.UNASSIGN: (
        NON_TERMINAL_STATUSES,
        WorkItemStatus.DETECTED,
    ),
}


@dataclass
class TransitionOutcome:
    """Result of an accepted command: the history entry it appended and the notifications it owes."""
    item: WorkItem
    history_entry: WorkflowHistoryEntry
    notifications: List[NotificationDraft] = field(default_factory=list)
    status_changed: bool = True


def _required_text(value: Optional[str], field_name: str, item_id: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(
            f"'{field_name}' is required",
            {"item_id": item_id, "field": field_name},
        )
    return str(value)


def _require_role(actor: User, role: Role, action: WorkflowAction, item_id: str):
    if actor.role != role:
        raise ValidationError(
            f"Only {role.value} users can {action.value} (acting user is {actor.role.value})",
            {"item_id": item_id, "actor_id": actor.id, "required_role": role.value},
        )


# =============================================================================
# MAIN WORKFLOW ENGINE
# =============================================================================

class WorkflowEngine:
    """
    Work item state machine.

    Commands take the item plus the acting user and return a TransitionOutcome,
    or raise IllegalTransition / ValidationError without touching the item.
    """

    @staticmethod
    def can_transition(
        current_status: Optional[WorkItemStatus],
        action: WorkflowAction
    ) -> Tuple[bool, Optional[WorkItemStatus], str]:
        """
        Check if an action is valid from the given status.

        Returns:
            (can_transition, next_status, reason)
        """
        action = WorkflowAction(action)
        definition = WORKFLOW_TRANSITIONS.get(action)
        if definition is None:
            return (False, None, f"No transition defined for action '{action.value}'")

        allowed_sources, next_status = definition
        current_key = WorkItemStatus(current_status) if current_status else None

        if current_key not in allowed_sources:
            valid = sorted(s.value for s in allowed_sources)
            current_label = current_key.value if current_key else None
            return (False, None, f"Action '{action.value}' not valid for status '{current_label}'. Valid: {valid}")

        return (True, next_status, "Transition allowed")

    @staticmethod
    def ensure_allowed(item: WorkItem, action: WorkflowAction) -> WorkItemStatus:
        can, next_status, reason = WorkflowEngine.can_transition(item.status, action)
        if not can:
            logger.warning(
                "Invalid workflow transition: item=%s, current=%s, action=%s, reason=%s",
                item.id, item.status.value, action.value, reason
            )
            raise IllegalTransition(action.value, item.status.value, reason)
        return next_status

    @staticmethod
    def advance(
        item: WorkItem,
        action: WorkflowAction,
        label: str,
        actor: str = SYSTEM_ACTOR,
        updates: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> WorkflowHistoryEntry:
        """
        Apply a transition to the item in place.

        Args:
            item: The work item (modified in place)
            action: The workflow action being applied
            label: History label describing the action
            actor: Display name of who/what triggered this transition
            updates: Field values to set together with the status change
            now: Timestamp for the history entry

        Raises:
            IllegalTransition: if the current status does not allow the action
        """
        next_status = WorkflowEngine.ensure_allowed(item, action)
        previous_status = item.status

        for attr, value in (updates or {}).items():
            setattr(item, attr, value)

        history_entry = WorkflowHistoryEntry(
            timestamp=now or utc_now(),
            action=label,
            actor=actor,
            from_status=previous_status.value,
            to_status=next_status.value,
        )
        item.status = next_status
        item.history.append(history_entry)

        logger.info(
            "Workflow transition: item=%s, %s -> %s (action=%s, actor=%s)",
            item.id, previous_status.value, next_status.value, action.value, actor
        )
        return history_entry

    @staticmethod
    def append_note(
        item: WorkItem,
        label: str,
        actor: str = SYSTEM_ACTOR,
        now: Optional[datetime] = None
    ) -> WorkflowHistoryEntry:
        """Append a history entry that does not change status (forward, reminder, queueing)."""
        history_entry = WorkflowHistoryEntry(
            timestamp=now or utc_now(),
            action=label,
            actor=actor,
        )
        item.history.append(history_entry)
        return history_entry

    # =========================================================================
    # INTAKE
    # =========================================================================

    @staticmethod
    def create_work_item(
        message: IntakeMessage,
        classification: ClassificationResult,
        source: IntakeSource = IntakeSource.WEBHOOK,
        now: Optional[datetime] = None
    ) -> WorkItem:
        """Create a new work item in DETECTED with its intake history entry."""
        now = now or utc_now()
        item = WorkItem(
            id=message.id,
            sender=message.sender,
            subject=message.subject,
            body=message.body,
            bank_name=message.bank_name,
            received_at=message.received_at,
            category=classification.category,
            priority=classification.priority,
            status=WorkItemStatus.DETECTED,
            attachments=list(message.attachments),
        )
        item.history.append(WorkflowHistoryEntry(
            timestamp=now,
            action=INTAKE_HISTORY_LABELS[IntakeSource(source)],
            actor=SYSTEM_ACTOR,
            from_status=None,
            to_status=WorkItemStatus.DETECTED.value,
        ))
        logger.info(
            "Work item created: item=%s, category=%s, priority=%s, source=%s",
            item.id, item.category.value, item.priority.value, IntakeSource(source).value
        )
        return item

    @staticmethod
    def auto_allocate(item: WorkItem, worker: User, now: Optional[datetime] = None) -> TransitionOutcome:
        """DETECTED -> ASSIGNED on the dispatcher's choice."""
        if worker.role != Role.WORKER:
            raise ValidationError(
                f"User {worker.id} is not a worker",
                {"item_id": item.id, "user_id": worker.id},
            )
        entry = WorkflowEngine.advance(
            item,
            WorkflowAction.AUTO_ALLOCATE,
            label=f"Auto-allocated to {worker.name}",
            actor=AUTO_DISPATCH_ACTOR,
            updates={"assigned_worker_id": worker.id},
            now=now,
        )
        note_type = NotificationType.ALERT if item.priority == Priority.URGENT else NotificationType.INFO
        return TransitionOutcome(item, entry, [
            NotificationDraft(
                "Webhook Assignment",
                f"Incoming: {item.subject[:30]}...",
                note_type,
                Audience.user(worker.id),
            ),
        ])

    @staticmethod
    def record_queued(item: WorkItem, now: Optional[datetime] = None) -> TransitionOutcome:
        """No worker available: item stays DETECTED, the boss is warned."""
        entry = WorkflowEngine.append_note(item, "Queued - No Agents Available", SYSTEM_ACTOR, now)
        return TransitionOutcome(item, entry, [
            NotificationDraft(
                "Unassigned Webhook Email",
                f"Action required: {item.bank_name}",
                NotificationType.WARNING,
                Audience.role(Role.BOSS),
            ),
        ], status_changed=False)

    # =========================================================================
    # HUMAN ACTIONS
    # =========================================================================

    @staticmethod
    def start_work(item: WorkItem, actor: User, now: Optional[datetime] = None) -> TransitionOutcome:
        """ASSIGNED -> IN_PROGRESS, only by the assigned worker."""
        WorkflowEngine.ensure_allowed(item, WorkflowAction.START_WORK)
        if actor.id != item.assigned_worker_id:
            raise ValidationError(
                "Only the assigned worker can start work on this item",
                {"item_id": item.id, "actor_id": actor.id},
            )
        entry = WorkflowEngine.advance(item, WorkflowAction.START_WORK, "Work Started", actor.name, now=now)
        return TransitionOutcome(item, entry, [])

    @staticmethod
    def submit_report(
        item: WorkItem,
        actor: User,
        report_content: Optional[str],
        now: Optional[datetime] = None
    ) -> TransitionOutcome:
        """{ASSIGNED, IN_PROGRESS, REJECTED} -> PENDING_APPROVAL with a non-empty report, by the assigned worker."""
        WorkflowEngine.ensure_allowed(item, WorkflowAction.SUBMIT_REPORT)
        if actor.id != item.assigned_worker_id:
            raise ValidationError(
                "Only the assigned worker can submit a report for this item",
                {"item_id": item.id, "actor_id": actor.id},
            )
        report_content = _required_text(report_content, "report_content", item.id)
        entry = WorkflowEngine.advance(
            item,
            WorkflowAction.SUBMIT_REPORT,
            "Report Submitted",
            actor.name,
            updates={"report_content": report_content},
            now=now,
        )
        return TransitionOutcome(item, entry, [
            NotificationDraft(
                "Approval Request",
                f"Report pending: {item.subject}",
                NotificationType.WARNING,
                Audience.role(Role.SUPERVISOR),
            ),
        ])

    @staticmethod
    def approve(
        item: WorkItem,
        actor: User,
        comments: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> TransitionOutcome:
        """PENDING_APPROVAL -> APPROVED by a supervisor. Notifies admins and the assigned worker."""
        WorkflowEngine.ensure_allowed(item, WorkflowAction.APPROVE)
        _require_role(actor, Role.SUPERVISOR, WorkflowAction.APPROVE, item.id)
        updates = {"supervisor_comments": comments} if comments and comments.strip() else None
        entry = WorkflowEngine.advance(
            item, WorkflowAction.APPROVE, "Approved by Supervisor", actor.name, updates=updates, now=now
        )
        notifications = [
            NotificationDraft(
                "Document Ready",
                f"Approved: {item.subject}",
                NotificationType.SUCCESS,
                Audience.role(Role.ADMIN),
            ),
        ]
        if item.assigned_worker_id:
            notifications.append(NotificationDraft(
                "Report Approved",
                "Your report was approved.",
                NotificationType.SUCCESS,
                Audience.user(item.assigned_worker_id),
            ))
        return TransitionOutcome(item, entry, notifications)

    @staticmethod
    def reject(
        item: WorkItem,
        actor: User,
        comments: Optional[str],
        now: Optional[datetime] = None
    ) -> TransitionOutcome:
        """PENDING_APPROVAL -> REJECTED. Supervisor comments are mandatory."""
        WorkflowEngine.ensure_allowed(item, WorkflowAction.REJECT)
        _require_role(actor, Role.SUPERVISOR, WorkflowAction.REJECT, item.id)
        comments = _required_text(comments, "supervisor_comments", item.id)
        entry = WorkflowEngine.advance(
            item,
            WorkflowAction.REJECT,
            "Rejected by Supervisor",
            actor.name,
            updates={"supervisor_comments": comments},
            now=now,
        )
        notifications = []
        if item.assigned_worker_id:
            notifications.append(NotificationDraft(
                "Action Required",
                "Report rejected. See comments.",
                NotificationType.ALERT,
                Audience.user(item.assigned_worker_id),
            ))
        return TransitionOutcome(item, entry, notifications)

    @staticmethod
    def reassign(
        item: WorkItem,
        actor: User,
        worker: User,
        note: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> TransitionOutcome:
        """Any non-terminal status -> ASSIGNED with a new assignee."""
        WorkflowEngine.ensure_allowed(item, WorkflowAction.REASSIGN)
        _require_role(actor, Role.SUPERVISOR, WorkflowAction.REASSIGN, item.id)
        if worker.role != Role.WORKER:
            raise ValidationError(
                f"{worker.name} is not a field worker",
                {"item_id": item.id, "user_id": worker.id, "role": worker.role.value},
            )
        if item.status == WorkItemStatus.ASSIGNED and item.assigned_worker_id == worker.id:
            raise ValidationError(
                f"Item is already assigned to {worker.name}",
                {"item_id": item.id, "user_id": worker.id},
            )
        updates: Dict[str, Any] = {"assigned_worker_id": worker.id}
        if note and note.strip():
            updates["supervisor_comments"] = f"Reassigned by supervisor. Note: {note}"
        entry = WorkflowEngine.advance(
            item, WorkflowAction.REASSIGN, f"Reassigned to {worker.name}", actor.name, updates=updates, now=now
        )
        return TransitionOutcome(item, entry, [
            NotificationDraft(
                "Task Reassigned",
                f"Assigned: {item.subject}",
                NotificationType.INFO,
                Audience.user(worker.id),
            ),
        ])

    @staticmethod
    def archive(item: WorkItem, actor: User, now: Optional[datetime] = None) -> TransitionOutcome:
        """APPROVED -> COMPLETED (terminal), by an admin."""
        WorkflowEngine.ensure_allowed(item, WorkflowAction.ARCHIVE)
        _require_role(actor, Role.ADMIN, WorkflowAction.ARCHIVE, item.id)
        entry = WorkflowEngine.advance(item, WorkflowAction.ARCHIVE, "Document Archived", actor.name, now=now)
        return TransitionOutcome(item, entry, [
            NotificationDraft(
                "Workflow Completed",
                f"{item.subject} archived.",
                NotificationType.SUCCESS,
                Audience.role(Role.BOSS),
            ),
        ])

    @staticmethod
    def unassign_deleted_worker(
        item: WorkItem,
        worker_id: str,
        now: Optional[datetime] = None
    ) -> Optional[TransitionOutcome]:
        """
        Clear a deleted worker's reference from the item.

        Non-terminal items revert to DETECTED. Archived items keep their status
        and only lose the reference. Returns None when the item does not
        reference the worker.
        """
        if item.assigned_worker_id != worker_id:
            return None
        if item.is_terminal:
            item.assigned_worker_id = None
            entry = WorkflowEngine.append_note(item, "Assignee removed (User deleted)", SYSTEM_ACTOR, now)
            return TransitionOutcome(item, entry, [], status_changed=False)
        entry = WorkflowEngine.advance(
            item,
            WorkflowAction.UNASSIGN,
            "Unassigned (User deleted)",
            SYSTEM_ACTOR,
            updates={"assigned_worker_id": None},
            now=now,
        )
        return TransitionOutcome(item, entry, [])

    # =========================================================================
    # NON-STATUS ACTIONS (legal from any state, including COMPLETED)
    # =========================================================================

    @staticmethod
    def forward(
        item: WorkItem,
        actor: User,
        recipient: str,
        target_user: Optional[User] = None,
        note: str = "",
        now: Optional[datetime] = None
    ) -> TransitionOutcome:
        """Forward to a team member (notified) or an external address (history only)."""
        recipient = _required_text(recipient, "recipient", item.id)
        if target_user:
            label = f"Forwarded to {target_user.name}"
            sent_to = target_user.name
        else:
            label = f"Forwarded to external: {recipient}"
            sent_to = recipient

        entry = WorkflowEngine.append_note(item, label, actor.name, now)
        notifications = []
        if target_user:
            notifications.append(NotificationDraft(
                f"Fwd: {item.subject}",
                f"Forwarded by {actor.name}. Note: {note or ''}",
                NotificationType.INFO,
                Audience.user(target_user.id),
            ))
        notifications.append(NotificationDraft(
            "Email Forwarded",
            f"Sent to {sent_to}",
            NotificationType.SUCCESS,
            Audience.role(actor.role),
        ))
        return TransitionOutcome(item, entry, notifications, status_changed=False)

    @staticmethod
    def record_reminder(
        item: WorkItem,
        actor: User,
        due_at: datetime,
        now: Optional[datetime] = None
    ) -> TransitionOutcome:
        entry = WorkflowEngine.append_note(item, "Reminder set", actor.name, now)
        return TransitionOutcome(item, entry, [
            NotificationDraft(
                "Reminder Scheduled",
                f"Set for {due_at.strftime('%Y-%m-%d %H:%M %Z').strip()}",
                NotificationType.SUCCESS,
                Audience.role(Role.BOSS),
            ),
        ], status_changed=False)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def get_all_statuses() -> List[str]:
        return [s.value for s in WorkItemStatus]

    @staticmethod
    def get_allowed_actions(status: WorkItemStatus) -> List[str]:
        """Actions that are legal from the given status."""
        return [
            action.value for action, (sources, _) in WORKFLOW_TRANSITIONS.items()
            if WorkItemStatus(status) in sources
        ]
