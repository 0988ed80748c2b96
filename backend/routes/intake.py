"""
Bank Correspondence Hub - Intake Router

Manual intake controls: trigger a webhook poll, push records directly, and
inspect poller state.
"""

from typing import Any, List, Union, Dict

from fastapi import APIRouter, Body, HTTPException

from services.workflow_engine import IntakeSource

router = APIRouter(prefix="/intake", tags=["intake"])

# Set by main app; poller and generator are None when disabled
hub = None
poller = None
generator = None


def set_dependencies(correspondence_hub, intake_poller=None, simulated_generator=None):
    global hub, poller, generator
    hub = correspondence_hub
    poller = intake_poller
    generator = simulated_generator


@router.post("/trigger")
async def trigger_poll():
    """Run one webhook poll cycle now."""
    if poller is None:
        raise HTTPException(status_code=400, detail="Intake polling is not configured (set INTAKE_WEBHOOK_URL)")
    stats = await poller.poll_once()
    return stats.to_dict()


@router.post("/ingest")
async def ingest(records: Union[List[Any], Dict[str, Any]] = Body(...)):
    """Push one record or an array of records through the intake pipeline."""
    if isinstance(records, dict):
        records = [records]
    stats = await hub.ingest(records, IntakeSource.WEBHOOK)
    return stats.to_dict()


@router.get("/status")
async def get_intake_status():
    return {
        "polling": poller.status() if poller else None,
        "simulation_enabled": generator is not None,
        "dedup_window": len(hub.deduplicator),
    }


@router.get("/seen/{message_id}")
async def get_message_seen(message_id: str):
    """Whether an upstream message id has already been taken in."""
    return {"message_id": message_id, "seen": hub.has_seen_message(message_id)}
