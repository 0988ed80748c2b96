"""
Bank Correspondence Hub - Reminders Router
"""

from fastapi import APIRouter, Query

from services.hub_errors import HubError
from .responses import http_error

router = APIRouter(prefix="/reminders", tags=["reminders"])

hub = None


def set_hub(correspondence_hub):
    global hub
    hub = correspondence_hub


@router.get("")
async def list_reminders(pending_only: bool = Query(False)):
    reminders = hub.list_reminders(pending_only=pending_only)
    return {"reminders": reminders, "total": len(reminders)}


@router.post("/sweep")
async def sweep_reminders():
    """Fire due reminders now instead of waiting for the next scheduled sweep."""
    fired = await hub.sweep_reminders()
    return {"fired": len(fired), "notifications": [n.to_dict() for n in fired]}


@router.get("/{reminder_id}")
async def get_reminder(reminder_id: str):
    try:
        return hub.get_reminder(reminder_id)
    except HubError as e:
        raise http_error(e)
