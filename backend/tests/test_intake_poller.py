"""
Tests for the intake poller, simulated intake and background workers.
httpx.MockTransport stands in for the upstream webhook.
"""
import asyncio
import random
from datetime import datetime, timezone

import httpx
import pytest

from services.background_workers import reminder_sweep_worker, stop_worker
from services.correspondence_hub import CorrespondenceHub
from services.hub_errors import UpstreamUnavailable
from services.intake_poller import IntakeFeedClient, IntakePoller
from services.simulated_intake import SimulatedIntakeGenerator, BANK_DOMAINS
from services.state_store import InMemoryStateStore

FEED_URL = "https://hooks.example.test/intake"
NOW = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def client_returning(handler):
    return IntakeFeedClient(FEED_URL, timeout=1, transport=httpx.MockTransport(handler))


async def make_hub():
    hub = CorrespondenceHub(InMemoryStateStore(), clock=lambda: NOW)
    await hub.load(seed_demo_data=True)
    return hub


class TestIntakeFeedClient:
    """Test fetch outcomes."""

    @pytest.mark.asyncio
    async def test_array_response(self):
        client = client_returning(lambda request: httpx.Response(200, json=[{"id": "a"}, {"id": "b"}]))
        assert await client.fetch() == [{"id": "a"}, {"id": "b"}]

    @pytest.mark.asyncio
    async def test_single_object_response(self):
        client = client_returning(lambda request: httpx.Response(200, json={"id": "a", "subject": "s"}))
        assert await client.fetch() == [{"id": "a", "subject": "s"}]

    @pytest.mark.asyncio
    async def test_empty_body(self):
        client = client_returning(lambda request: httpx.Response(200, content=b""))
        assert await client.fetch() == []

    @pytest.mark.asyncio
    async def test_sends_json_content_type(self):
        seen = {}

        def handler(request):
            seen["content_type"] = request.headers.get("content-type")
            seen["method"] = request.method
            return httpx.Response(200, json=[])

        await client_returning(handler).fetch()
        assert seen == {"content_type": "application/json", "method": "GET"}

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        client = client_returning(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(UpstreamUnavailable) as exc:
            await client.fetch()
        assert exc.value.status_code == 503

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        client = client_returning(lambda request: httpx.Response(200, content=b"<html>oops</html>"))
        with pytest.raises(UpstreamUnavailable):
            await client.fetch()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailable):
            await client_returning(handler).fetch()

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamUnavailable):
            await client_returning(handler).fetch()

    def test_url_required(self):
        with pytest.raises(ValueError):
            IntakeFeedClient("")


class TestIntakePoller:
    """Test poll cycles against the hub."""

    @pytest.mark.asyncio
    async def test_poll_creates_items(self):
        hub = await make_hub()
        feed = [{"id": "wh-1", "subject": "Payment received"}, {"id": "wh-2", "subject": "Statement"}]
        poller = IntakePoller(hub, client_returning(lambda request: httpx.Response(200, json=feed)))
        stats = await poller.poll_once()
        assert stats.created == 2
        assert poller.last_run is stats

    @pytest.mark.asyncio
    async def test_repeated_polls_are_idempotent(self):
        hub = await make_hub()
        feed = [{"id": "wh-1", "subject": "Payment received"}]
        poller = IntakePoller(hub, client_returning(lambda request: httpx.Response(200, json=feed)))
        await poller.poll_once()
        second = await poller.poll_once()
        assert second.created == 0
        assert second.duplicates == 1

    @pytest.mark.asyncio
    async def test_failure_swallowed(self):
        hub = await make_hub()
        before = hub.list_work_items()
        poller = IntakePoller(hub, client_returning(lambda request: httpx.Response(500)))
        stats = await poller.poll_once()
        assert stats.upstream_error is not None
        assert stats.created == 0
        assert poller.failures == 1
        assert hub.list_work_items() == before

    @pytest.mark.asyncio
    async def test_status(self):
        hub = await make_hub()
        poller = IntakePoller(hub, client_returning(lambda request: httpx.Response(200, json=[])))
        await poller.poll_once()
        status = poller.status()
        assert status["cycles"] == 1
        assert status["last_run"]["received"] == 0


class TestSimulatedIntake:

    def test_generate_message_shape(self):
        generator = SimulatedIntakeGenerator(hub=None, rng=random.Random(7))
        message = generator.generate_message(1)
        assert message["bankName"] in BANK_DOMAINS
        assert message["sender"] == f"notifications@{BANK_DOMAINS[message['bankName']]}"
        assert message["id"].startswith("mock-1-")
        assert "UGX" in message["body"]
        assert "Ref #" in message["subject"]

    @pytest.mark.asyncio
    async def test_run_once_ingests(self):
        hub = await make_hub()
        generator = SimulatedIntakeGenerator(hub, rng=random.Random(1), skip_probability=0.0)
        stats = await generator.run_once()
        assert stats.created == 1
        item = hub.get_work_item(stats.created_ids[0])
        assert item["history"][0]["action"] == "Email Detected"

    @pytest.mark.asyncio
    async def test_run_once_skips(self):
        hub = await make_hub()
        generator = SimulatedIntakeGenerator(hub, rng=random.Random(1), skip_probability=1.0)
        assert await generator.run_once() is None
        assert len(hub.list_work_items()) == 3


class TestBackgroundWorkers:

    @pytest.mark.asyncio
    async def test_reminder_worker_survives_errors_and_stops(self):
        calls = []

        class FlakyHub:
            async def sweep_reminders(self):
                calls.append(1)
                if len(calls) == 1:
                    raise RuntimeError("store unavailable")
                return []

        task = asyncio.create_task(reminder_sweep_worker(FlakyHub(), 0.01))
        await asyncio.sleep(0.1)
        await stop_worker(task, "Reminder sweep worker")
        assert task.cancelled()
        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_stop_worker_handles_finished_task(self):
        async def noop():
            return None

        task = asyncio.create_task(noop())
        await task
        await stop_worker(task, "noop")
        await stop_worker(None, "missing")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
