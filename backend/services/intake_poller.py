"""
Bank Correspondence Hub - Intake Poller

Fetches the external intake feed (a JSON endpoint returning one message or an
array of messages) and hands the records to the hub.

The fetch runs outside the hub lock with a timeout, so a hanging upstream never
blocks user commands. Any fetch failure skips the cycle: no retry, no state
change, the next scheduled poll tries again.
"""

import logging
from typing import Any, List, Optional

import httpx

from .correspondence_hub import CorrespondenceHub, IntakeRunStats
from .hub_errors import UpstreamUnavailable
from .intake_deduplicator import extract_records
from .workflow_engine import IntakeSource

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_SECONDS = 5


class IntakeFeedClient:
    """Single-shot GET against the intake webhook."""

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not url:
            raise ValueError("Intake webhook URL must be configured")
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def fetch(self) -> List[Any]:
        """
        Fetch the current feed contents.

        Returns:
            List of raw records (possibly empty)

        Raises:
            UpstreamUnavailable: transport error, timeout, non-2xx status or
                a body that is not JSON
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(self.url, headers={"Content-Type": "application/json"})
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"Intake feed timed out after {self.timeout}s", details={"url": self.url}) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Intake feed unreachable: {e}", details={"url": self.url}) from e

        if not resp.is_success:
            raise UpstreamUnavailable(
                f"Intake feed returned {resp.status_code}",
                status_code=resp.status_code,
                details={"url": self.url, "body": resp.text[:200]},
            )

        if not resp.content.strip():
            return []
        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable(
                "Intake feed returned a body that is not JSON",
                status_code=resp.status_code,
                details={"url": self.url},
            ) from e
        return extract_records(data)


class IntakePoller:
    """Runs one fetch-and-ingest cycle per call to poll_once()."""

    def __init__(self, hub: CorrespondenceHub, client: IntakeFeedClient):
        self.hub = hub
        self.client = client
        self.last_run: Optional[IntakeRunStats] = None
        self.cycles = 0
        self.failures = 0

    async def poll_once(self) -> IntakeRunStats:
        self.cycles += 1
        try:
            records = await self.client.fetch()
        except UpstreamUnavailable as e:
            self.failures += 1
            logger.warning("Intake poll skipped: %s", e.message)
            stats = IntakeRunStats(source=IntakeSource.WEBHOOK.value, upstream_error=e.message)
            self.last_run = stats
            return stats

        stats = await self.hub.ingest(records, IntakeSource.WEBHOOK)
        self.last_run = stats
        return stats

    def status(self):
        return {
            "url": self.client.url,
            "cycles": self.cycles,
            "failures": self.failures,
            "last_run": self.last_run.to_dict() if self.last_run else None,
        }
