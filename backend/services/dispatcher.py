"""
Bank Correspondence Hub - Dispatcher

Selects the worker a newly detected work item is auto-allocated to.

Selection is a simple deterministic queue: the first user, in stable roster
order, with role WORKER and status Available. No load balancing.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .hub_models import User

logger = logging.getLogger(__name__)

AUTO_DISPATCH_ACTOR = "Auto-Dispatcher"


@dataclass
class DispatchDecision:
    """Outcome of a dispatch attempt for one work item."""
    item_id: str
    worker: Optional[User] = None

    @property
    def assigned(self) -> bool:
        return self.worker is not None

    def to_dict(self):
        return {
            "item_id": self.item_id,
            "assigned": self.assigned,
            "worker_id": self.worker.id if self.worker else None,
        }


def select_worker(users: Sequence[User]) -> Optional[User]:
    """Return the first Available worker in roster order, or None."""
    for user in users:
        if user.is_available_worker:
            return user
    return None


def decide(item_id: str, users: Sequence[User]) -> DispatchDecision:
    worker = select_worker(users)
    if worker:
        logger.info("Dispatch: item=%s -> worker=%s (%s)", item_id, worker.id, worker.name)
    else:
        logger.info("Dispatch: item=%s queued, no available workers", item_id)
    return DispatchDecision(item_id=item_id, worker=worker)
