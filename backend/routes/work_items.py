"""
Bank Correspondence Hub - Work Items Router

Work item queue snapshots and the named workflow commands. There is no open
partial update: every mutation is one transition-shaped command.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel
import logging

from services.hub_errors import HubError
from .responses import command_response, http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/work-items", tags=["work-items"])

# Correspondence hub - set by main app
hub = None


def set_hub(correspondence_hub):
    global hub
    hub = correspondence_hub


# ==================== MODELS ====================

class ActorRequest(BaseModel):
    actor_id: str


class ReportRequest(ActorRequest):
    report_content: Optional[str] = None


class ReviewRequest(ActorRequest):
    comments: Optional[str] = None


class ReassignRequest(ActorRequest):
    worker_id: str
    note: Optional[str] = None


class ForwardRequest(ActorRequest):
    recipient: str
    note: Optional[str] = ""


class ReminderRequest(ActorRequest):
    due_at: datetime
    note: Optional[str] = ""


# ==================== SNAPSHOTS ====================

@router.get("")
async def list_work_items(
    status: Optional[str] = Query(None),
    assigned_worker_id: Optional[str] = Query(None)
):
    """List work items, newest first."""
    try:
        items = hub.list_work_items(status=status, assigned_worker_id=assigned_worker_id)
    except HubError as e:
        raise http_error(e)
    return {"work_items": items, "total": len(items)}


@router.get("/queue/counts")
async def get_queue_counts():
    """Get counts by workflow status."""
    return hub.queue_counts()


@router.get("/{item_id}")
async def get_work_item(item_id: str):
    try:
        return hub.get_work_item(item_id)
    except HubError as e:
        raise http_error(e)


# ==================== WORKFLOW COMMANDS ====================

@router.post("/{item_id}/start")
async def start_work(item_id: str, request: ActorRequest):
    """Assigned worker picks up the item (ASSIGNED -> IN_PROGRESS)."""
    return command_response(await hub.start_work(item_id, request.actor_id))


@router.post("/{item_id}/submit-report")
async def submit_report(item_id: str, request: ReportRequest):
    return command_response(await hub.submit_report(item_id, request.actor_id, request.report_content))


@router.post("/{item_id}/approve")
async def approve(item_id: str, request: ReviewRequest):
    return command_response(await hub.approve(item_id, request.actor_id, request.comments))


@router.post("/{item_id}/reject")
async def reject(item_id: str, request: ReviewRequest):
    """Reject a pending report. Comments are mandatory."""
    return command_response(await hub.reject(item_id, request.actor_id, request.comments))


@router.post("/{item_id}/reassign")
async def reassign(item_id: str, request: ReassignRequest):
    return command_response(await hub.reassign(item_id, request.actor_id, request.worker_id, request.note))


@router.post("/{item_id}/archive")
async def archive(item_id: str, request: ActorRequest):
    return command_response(await hub.archive(item_id, request.actor_id))


@router.post("/{item_id}/redispatch")
async def redispatch(item_id: str, request: ActorRequest):
    """Retry auto-allocation for a queued item."""
    return command_response(await hub.redispatch(item_id, request.actor_id))


@router.post("/{item_id}/forward")
async def forward(item_id: str, request: ForwardRequest):
    return command_response(await hub.forward(item_id, request.actor_id, request.recipient, request.note or ""))


@router.post("/{item_id}/reminders")
async def set_reminder(item_id: str, request: ReminderRequest):
    return command_response(await hub.set_reminder(item_id, request.actor_id, request.due_at, request.note or ""))
