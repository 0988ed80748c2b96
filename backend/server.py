"""
Bank Correspondence Hub - Main Server

Entry point. Routes are organized in /routes/, engine logic in /services/.

Run with:
    uvicorn server:app --host 0.0.0.0 --port 8001
"""

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from contextlib import asynccontextmanager
import asyncio
import logging

# ==================== ROUTERS ====================
from routes import work_items, users, reminders, notifications, intake

# ==================== SERVICES ====================
from services.hub_config import HubSettings, ROOT_DIR
from services.correspondence_hub import CorrespondenceHub
from services.state_store import InMemoryStateStore, JsonFileStateStore, MongoStateStore
from services.intake_poller import IntakeFeedClient, IntakePoller
from services.simulated_intake import SimulatedIntakeGenerator
from services.background_workers import (
    intake_polling_worker,
    reminder_sweep_worker,
    simulated_intake_worker,
    stop_worker,
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

settings = HubSettings.from_env()

hub = None
mongo_client = None
_workers = {}


def build_store(hub_settings: HubSettings):
    """Create the StateStore selected by HUB_STORE_BACKEND."""
    global mongo_client
    if hub_settings.store_backend == "memory":
        return InMemoryStateStore()
    if hub_settings.store_backend == "json":
        state_file = ROOT_DIR / hub_settings.state_file
        return JsonFileStateStore(str(state_file))
    mongo_client = AsyncIOMotorClient(hub_settings.mongo_url)
    return MongoStateStore(mongo_client[hub_settings.db_name])


# ==================== LIFESPAN ====================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global hub

    # Startup
    logger.info("Starting Bank Correspondence Hub (store: %s)...", settings.store_backend)

    hub = CorrespondenceHub(build_store(settings), claim_worker_on_dispatch=settings.dispatch_claims_worker)
    await hub.load(seed_demo_data=settings.seed_demo_data)

    poller = None
    if settings.intake_polling_active:
        poller = IntakePoller(hub, IntakeFeedClient(settings.intake_webhook_url, settings.intake_fetch_timeout_seconds))
    elif settings.intake_polling_enabled:
        logger.warning("INTAKE_POLLING_ENABLED is set but INTAKE_WEBHOOK_URL is empty; polling disabled")

    generator = None
    if settings.simulated_intake_enabled:
        generator = SimulatedIntakeGenerator(hub, skip_probability=settings.simulated_intake_skip_probability)

    # Initialize routers with the hub
    work_items.set_hub(hub)
    users.set_hub(hub)
    reminders.set_hub(hub)
    notifications.set_hub(hub)
    intake.set_dependencies(hub, poller, generator)

    # Background workers
    _workers["Reminder sweep worker"] = asyncio.create_task(
        reminder_sweep_worker(hub, settings.reminder_sweep_interval_seconds)
    )
    if poller:
        _workers["Intake polling worker"] = asyncio.create_task(
            intake_polling_worker(poller, settings.intake_poll_interval_seconds)
        )
    if generator:
        _workers["Simulated intake worker"] = asyncio.create_task(
            simulated_intake_worker(generator, settings.simulated_intake_interval_seconds)
        )

    logger.info("Bank Correspondence Hub started. Workers: %s", ", ".join(_workers))

    yield

    # Shutdown
    logger.info("Shutting down Bank Correspondence Hub...")
    for name, task in list(_workers.items()):
        await stop_worker(task, name)
    _workers.clear()
    await hub.store.close()
    if mongo_client:
        mongo_client.close()


# ==================== APP SETUP ====================
app = FastAPI(
    title="Bank Correspondence Hub",
    description="Workflow dispatch and state engine for bank correspondence",
    version="1.0.0",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API Router with /api prefix
api_router = APIRouter(prefix="/api")

api_router.include_router(work_items.router)
api_router.include_router(users.router)
api_router.include_router(reminders.router)
api_router.include_router(notifications.router)
api_router.include_router(intake.router)


# ==================== ROOT ENDPOINTS ====================
@app.get("/")
async def root():
    return {
        "service": "Bank Correspondence Hub",
        "version": "1.0.0",
        "status": "running"
    }


@api_router.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": "bank-correspondence-hub",
        "hub": hub.summary() if hub else None,
        "workers": {name: not task.done() for name, task in _workers.items()},
        "settings": settings.to_dict(),
    }


# Mount to app
app.include_router(api_router)
