"""
Bank Correspondence Hub - Notifications Router

Per-viewer view of the notification feed.
"""

from fastapi import APIRouter, Query

from services.hub_errors import HubError
from .responses import command_response, http_error

router = APIRouter(prefix="/notifications", tags=["notifications"])

hub = None


def set_hub(correspondence_hub):
    global hub
    hub = correspondence_hub


@router.get("")
async def get_notifications(viewer_id: str = Query(...)):
    """Notifications addressed to the viewer's role or to the viewer directly, newest first."""
    try:
        return hub.notifications_for(viewer_id)
    except HubError as e:
        raise http_error(e)


@router.post("/read-all")
async def mark_all_read(viewer_id: str = Query(...)):
    return command_response(await hub.mark_all_read(viewer_id))


@router.post("/{notification_id}/read")
async def mark_read(notification_id: str):
    return command_response(await hub.mark_read(notification_id))
