"""
Bank Correspondence Hub - Users Router

Team roster management.
"""

from typing import Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from services.hub_errors import HubError
from .responses import command_response, http_error

router = APIRouter(prefix="/users", tags=["users"])

hub = None


def set_hub(correspondence_hub):
    global hub
    hub = correspondence_hub


class CreateUserRequest(BaseModel):
    name: str
    role: str
    actor_id: Optional[str] = None


class UserStatusRequest(BaseModel):
    status: str
    actor_id: Optional[str] = None


@router.get("")
async def list_users(role: Optional[str] = Query(None)):
    try:
        users = hub.list_users(role=role)
    except HubError as e:
        raise http_error(e)
    return {"users": users, "total": len(users), "roster_version": hub.roster_version}


@router.get("/{user_id}")
async def get_user(user_id: str):
    try:
        return hub.get_user(user_id)
    except HubError as e:
        raise http_error(e)


@router.post("")
async def create_user(request: CreateUserRequest):
    return command_response(await hub.add_user(request.name, request.role, request.actor_id))


@router.delete("/{user_id}")
async def delete_user(user_id: str, actor_id: str = Query(...)):
    """Delete a user; every work item assigned to them goes back to DETECTED."""
    return command_response(await hub.delete_user(user_id, actor_id))


@router.put("/{user_id}/status")
async def set_user_status(user_id: str, request: UserStatusRequest):
    return command_response(await hub.set_user_status(user_id, request.status, request.actor_id))
