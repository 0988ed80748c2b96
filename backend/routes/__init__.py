"""
Bank Correspondence Hub - Routes Package

Modular API routers for the hub's command API and snapshots.
"""

from .work_items import router as work_items_router, set_hub as set_work_items_hub
from .users import router as users_router, set_hub as set_users_hub
from .reminders import router as reminders_router, set_hub as set_reminders_hub
from .notifications import router as notifications_router, set_hub as set_notifications_hub
from .intake import router as intake_router, set_dependencies as set_intake_deps

__all__ = [
    'work_items_router', 'set_work_items_hub',
    'users_router', 'set_users_hub',
    'reminders_router', 'set_reminders_hub',
    'notifications_router', 'set_notifications_hub',
    'intake_router', 'set_intake_deps',
]
