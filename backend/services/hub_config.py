"""
Bank Correspondence Hub - Configuration

All runtime settings come from environment variables (optionally from a .env
file next to server.py). HubSettings.from_env() snapshots them so tests can
build settings without touching os.environ.
"""

import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Any, Mapping, Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent

STORE_BACKENDS = ("mongo", "json", "memory")


def _flag(env: Mapping[str, str], name: str, default: str) -> bool:
    return env.get(name, default).lower() == 'true'


@dataclass
class HubSettings:
    """Runtime settings for the hub and its background workers."""
    # Intake polling
    intake_polling_enabled: bool = False
    intake_webhook_url: str = ""
    intake_poll_interval_seconds: float = 10
    intake_fetch_timeout_seconds: float = 5

    # Reminder sweep
    reminder_sweep_interval_seconds: float = 10

    # Simulated (fallback) intake
    simulated_intake_enabled: bool = False
    simulated_intake_interval_seconds: float = 30
    simulated_intake_skip_probability: float = 0.2

    # Dispatch
    dispatch_claims_worker: bool = True

    # Persistence
    seed_demo_data: bool = True
    store_backend: str = "mongo"
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "bank_correspondence_hub"
    state_file: str = "hub_state.json"

    # HTTP
    cors_origins: str = "*"

    def __post_init__(self):
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(f"HUB_STORE_BACKEND must be one of {list(STORE_BACKENDS)}, got '{self.store_backend}'")
        if not 0.0 <= self.simulated_intake_skip_probability <= 1.0:
            raise ValueError("SIMULATED_INTAKE_SKIP_PROBABILITY must be between 0 and 1")

    @property
    def intake_polling_active(self) -> bool:
        return self.intake_polling_enabled and bool(self.intake_webhook_url)

    @property
    def cors_origin_list(self):
        return [origin.strip() for origin in self.cors_origins.split(',') if origin.strip()]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # Connection strings may carry credentials
        data.pop("mongo_url", None)
        return data

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "HubSettings":
        if env is None:
            load_dotenv(ROOT_DIR / '.env')
            env = os.environ
        return cls(
            intake_polling_enabled=_flag(env, 'INTAKE_POLLING_ENABLED', 'false'),
            intake_webhook_url=env.get('INTAKE_WEBHOOK_URL', ''),
            intake_poll_interval_seconds=float(env.get('INTAKE_POLL_INTERVAL_SECONDS', '10')),
            intake_fetch_timeout_seconds=float(env.get('INTAKE_FETCH_TIMEOUT_SECONDS', '5')),
            reminder_sweep_interval_seconds=float(env.get('REMINDER_SWEEP_INTERVAL_SECONDS', '10')),
            simulated_intake_enabled=_flag(env, 'SIMULATED_INTAKE_ENABLED', 'false'),
            simulated_intake_interval_seconds=float(env.get('SIMULATED_INTAKE_INTERVAL_SECONDS', '30')),
            simulated_intake_skip_probability=float(env.get('SIMULATED_INTAKE_SKIP_PROBABILITY', '0.2')),
            dispatch_claims_worker=_flag(env, 'DISPATCH_CLAIMS_WORKER', 'true'),
            seed_demo_data=_flag(env, 'SEED_DEMO_DATA', 'true'),
            store_backend=env.get('HUB_STORE_BACKEND', 'mongo').lower(),
            mongo_url=env.get('MONGO_URL', 'mongodb://localhost:27017'),
            db_name=env.get('DB_NAME', 'bank_correspondence_hub'),
            state_file=env.get('HUB_STATE_FILE', 'hub_state.json'),
            cors_origins=env.get('CORS_ORIGINS', '*'),
        )
