"""
Bank Correspondence Hub - Background Workers

Fixed-interval asyncio loops started in the FastAPI lifespan and cancelled on
shutdown. A failing cycle is logged and the loop keeps running.
"""

import asyncio
import logging
from typing import Optional

from .correspondence_hub import CorrespondenceHub
from .intake_poller import IntakePoller
from .simulated_intake import SimulatedIntakeGenerator

logger = logging.getLogger(__name__)


async def intake_polling_worker(poller: IntakePoller, interval_seconds: float):
    """Poll the intake webhook every interval."""
    logger.info("Intake polling worker started (interval: %ss, url: %s)", interval_seconds, poller.client.url)

    while True:
        try:
            await poller.poll_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Intake polling worker error: %s", str(e))

        await asyncio.sleep(interval_seconds)


async def reminder_sweep_worker(hub: CorrespondenceHub, interval_seconds: float):
    """Fire due reminders every interval."""
    logger.info("Reminder sweep worker started (interval: %ss)", interval_seconds)

    while True:
        try:
            fired = await hub.sweep_reminders()
            if fired:
                logger.info("Reminder sweep fired %d reminders", len(fired))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Reminder sweep worker error: %s", str(e))

        await asyncio.sleep(interval_seconds)


async def simulated_intake_worker(generator: SimulatedIntakeGenerator, interval_seconds: float):
    """Inject a simulated message every interval (skipping some cycles)."""
    logger.info(
        "Simulated intake worker started (interval: %ss, skip probability: %s)",
        interval_seconds, generator.skip_probability
    )

    while True:
        try:
            await generator.run_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Simulated intake worker error: %s", str(e))

        await asyncio.sleep(interval_seconds)


async def stop_worker(task: Optional[asyncio.Task], name: str):
    """Cancel a worker task and wait for it to finish."""
    if task and not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("%s stopped", name)
