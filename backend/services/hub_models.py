"""
Bank Correspondence Hub - Domain Records

Work items, users and reminders tracked by the dispatch & state engine,
plus the enums shared by every component.

All timestamps are timezone-aware UTC datetimes. They serialize to ISO-8601
strings (with microseconds and offset) so that history and reminder due times
round-trip exactly through any StateStore backend.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, Enum):
    """Team roles. Exactly one per user, fixed at creation."""
    BOSS = "BOSS"
    WORKER = "WORKER"
    SUPERVISOR = "SUPERVISOR"
    ADMIN = "ADMIN"


class UserStatus(str, Enum):
    """Availability of a field worker. Other roles carry no status."""
    AVAILABLE = "Available"
    BUSY = "Busy"
    OFFLINE = "Offline"


class Category(str, Enum):
    """Correspondence categories assigned by the classifier."""
    ACCOUNT_STATEMENT = "Account Statement"
    TRANSACTION_ALERT = "Transaction Alert"
    LOAN_CORRESPONDENCE = "Loan Correspondence"
    PAYMENT_NOTIFICATION = "Payment Notification"
    GENERAL = "General Banking"


class Priority(str, Enum):
    URGENT = "URGENT"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class WorkItemStatus(str, Enum):
    """
    Work item status values.

    DETECTED -> ASSIGNED -> IN_PROGRESS -> PENDING_APPROVAL
        -> APPROVED -> COMPLETED (terminal)
        -> REJECTED -> PENDING_APPROVAL / ASSIGNED (revision loop)
    """
    DETECTED = "DETECTED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


# =============================================================================
# TIME HELPERS
# =============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp written by to_iso(). Naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class WorkflowHistoryEntry:
    """Represents a single entry in a work item's history."""
    timestamp: datetime
    action: str
    actor: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": to_iso(self.timestamp),
            "action": self.action,
            "actor": self.actor,
            "from_status": self.from_status,
            "to_status": self.to_status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowHistoryEntry":
        return cls(
            timestamp=parse_iso(data["timestamp"]),
            action=data["action"],
            actor=data["actor"],
            from_status=data.get("from_status"),
            to_status=data.get("to_status"),
        )


@dataclass
class WorkItem:
    """One inbound correspondence record tracked through the approval pipeline."""
    id: str
    sender: str
    subject: str
    body: str
    bank_name: str
    received_at: datetime
    category: Category
    priority: Priority
    status: WorkItemStatus = WorkItemStatus.DETECTED
    assigned_worker_id: Optional[str] = None
    report_content: Optional[str] = None
    supervisor_comments: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    history: List[WorkflowHistoryEntry] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status == WorkItemStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "subject": self.subject,
            "body": self.body,
            "bank_name": self.bank_name,
            "received_at": to_iso(self.received_at),
            "category": self.category.value,
            "priority": self.priority.value,
            "status": self.status.value,
            "assigned_worker_id": self.assigned_worker_id,
            "report_content": self.report_content,
            "supervisor_comments": self.supervisor_comments,
            "attachments": list(self.attachments),
            "history": [entry.to_dict() for entry in self.history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkItem":
        return cls(
            id=data["id"],
            sender=data["sender"],
            subject=data["subject"],
            body=data["body"],
            bank_name=data["bank_name"],
            received_at=parse_iso(data["received_at"]),
            category=Category(data["category"]),
            priority=Priority(data["priority"]),
            status=WorkItemStatus(data.get("status", WorkItemStatus.DETECTED.value)),
            assigned_worker_id=data.get("assigned_worker_id"),
            report_content=data.get("report_content"),
            supervisor_comments=data.get("supervisor_comments"),
            attachments=list(data.get("attachments") or []),
            history=[WorkflowHistoryEntry.from_dict(h) for h in data.get("history", [])],
        )


@dataclass
class User:
    """A team member. `status` only applies to workers."""
    id: str
    name: str
    role: Role
    status: Optional[UserStatus] = None

    @property
    def is_available_worker(self) -> bool:
        return self.role == Role.WORKER and self.status == UserStatus.AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "status": self.status.value if self.status else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        status = data.get("status")
        return cls(
            id=data["id"],
            name=data["name"],
            role=Role(data["role"]),
            status=UserStatus(status) if status else None,
        )


@dataclass
class Reminder:
    """A scheduled follow-up on a work item. `processed` only ever goes False -> True."""
    id: str
    email_id: str
    target_user_id: str
    message: str
    due_at: datetime
    created_by: str
    processed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email_id": self.email_id,
            "target_user_id": self.target_user_id,
            "message": self.message,
            "due_at": to_iso(self.due_at),
            "processed": self.processed,
            "created_by": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reminder":
        return cls(
            id=data["id"],
            email_id=data["email_id"],
            target_user_id=data["target_user_id"],
            message=data.get("message", ""),
            due_at=parse_iso(data["due_at"]),
            created_by=data["created_by"],
            processed=bool(data.get("processed", False)),
        )
