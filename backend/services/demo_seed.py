"""
Bank Correspondence Hub - Demo Data

Roster and work items written to an empty store when SEED_DEMO_DATA is on.
Timestamps are relative to the load time so the demo queue always looks fresh.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from .dispatcher import AUTO_DISPATCH_ACTOR
from .hub_models import (
    Category,
    Priority,
    Role,
    User,
    UserStatus,
    WorkItem,
    WorkItemStatus,
    WorkflowHistoryEntry,
    utc_now,
)
from .workflow_engine import SYSTEM_ACTOR


def demo_users() -> List[User]:
    return [
        User(id="boss-1", name="CEO MR HABERT", role=Role.BOSS),
        User(id="worker-1", name="John Field", role=Role.WORKER, status=UserStatus.AVAILABLE),
        User(id="worker-2", name="Sarah Site", role=Role.WORKER, status=UserStatus.BUSY),
        User(id="super-1", name="Mike Manager", role=Role.SUPERVISOR),
        User(id="super-2", name="Steve Supervisor", role=Role.SUPERVISOR),
        User(id="admin-1", name="Magola", role=Role.ADMIN),
    ]


def _entry(at: datetime, action: str, actor: str, from_status=None, to_status=None) -> WorkflowHistoryEntry:
    return WorkflowHistoryEntry(
        timestamp=at,
        action=action,
        actor=actor,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value if to_status else None,
    )


def demo_work_items(now: Optional[datetime] = None) -> List[WorkItem]:
    now = now or utc_now()

    def hours(n: float) -> datetime:
        return now - timedelta(hours=n)

    return [
        WorkItem(
            id="email-1",
            sender="transactions@stanbic.co.ug",
            subject="Daily Transaction Report - Kampala Branch",
            body=(
                "Please review the attached transaction logs for the Kampala Road branch discrepancies. "
                "Several high-value UGX transfers require immediate validation."
            ),
            bank_name="Stanbic Bank",
            received_at=hours(2),
            category=Category.ACCOUNT_STATEMENT,
            priority=Priority.HIGH,
            status=WorkItemStatus.ASSIGNED,
            assigned_worker_id="worker-1",
            attachments=["trans_log_kla.pdf", "summary_sheet.xlsx"],
            history=[
                _entry(hours(2.1), "Email Detected", SYSTEM_ACTOR, None, WorkItemStatus.DETECTED),
                _entry(hours(2), "Auto-allocated to John Field", AUTO_DISPATCH_ACTOR,
                       WorkItemStatus.DETECTED, WorkItemStatus.ASSIGNED),
            ],
        ),
        WorkItem(
            id="email-2",
            sender="fraud-alert@centenarybank.co.ug",
            subject="Urgent: Suspicious Activity Detected - Mbarara",
            body=(
                "Multiple failed login attempts from IP 197.239.x.x on Corporate Account #8832 "
                "(Mbarara Branch). Please investigate immediately."
            ),
            bank_name="Centenary Bank",
            received_at=hours(0.5),
            category=Category.TRANSACTION_ALERT,
            priority=Priority.URGENT,
            status=WorkItemStatus.DETECTED,
            attachments=["security_audit_log.json"],
            history=[
                _entry(hours(0.5), "Email Detected", SYSTEM_ACTOR, None, WorkItemStatus.DETECTED),
            ],
        ),
        WorkItem(
            id="email-3",
            sender="loans@dfcugroup.com",
            subject="Loan Application #4492 - Missing Requirements",
            body=(
                "The applicant has provided the URA tax returns but is missing the LC1 letter and "
                "proof of residence (Utility Bill). Please follow up."
            ),
            bank_name="dfcu Bank",
            received_at=hours(24),
            category=Category.LOAN_CORRESPONDENCE,
            priority=Priority.MEDIUM,
            status=WorkItemStatus.PENDING_APPROVAL,
            assigned_worker_id="worker-1",
            report_content=(
                "I have contacted the client. They will send the Umeme bill and LC1 letter by tomorrow."
            ),
            attachments=["ura_return_2023.pdf"],
            history=[
                _entry(hours(24), "Email Detected", SYSTEM_ACTOR, None, WorkItemStatus.DETECTED),
                _entry(hours(23), "Auto-allocated to John Field", AUTO_DISPATCH_ACTOR,
                       WorkItemStatus.DETECTED, WorkItemStatus.ASSIGNED),
                _entry(hours(4), "Report Submitted", "John Field",
                       WorkItemStatus.ASSIGNED, WorkItemStatus.PENDING_APPROVAL),
            ],
        ),
    ]
