"""Tests for probing and concurrent refresh."""

import asyncio

import httpx
import pytest

from appconnect.connectors.base import ProbeContext
from appconnect.engine.refresh import RefreshOrchestrator
from appconnect.engine.registry import ConnectionRegistry
from appconnect.schemas.connection import ConnectionStatus, Family, WebhookCredentials

API_BASE = "http://collab.test/api"

FAST = "https://hooks.example.com/fast"
SLOW = "https://hooks.example.com/slow"


async def slow_webhook(request):
    await asyncio.sleep(2)
    return httpx.Response(200, json={"files": []})


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def orchestrator(registry, http_client):
    context = ProbeContext(client=http_client, api_base_url=API_BASE, token="tok", timeout=0.1)
    return RefreshOrchestrator(registry, context)


def add_webhook(registry, family, url, status=ConnectionStatus.connected):
    connection = registry.add(family, WebhookCredentials(webhook_url=url))
    registry.set_status(connection.id, status, "previous")
    return connection.id


class TestProbeConnection:
    @pytest.mark.asyncio
    async def test_success(self, registry, orchestrator, collaborator):
        collaborator.webhook(FAST, {"files": [{"name": "a.txt"}]})
        cid = add_webhook(registry, Family.webhook_generic, FAST, ConnectionStatus.disconnected)

        connection = await orchestrator.probe_connection(cid)

        assert connection.status == ConnectionStatus.connected
        assert connection.status_message == "1 item(s) found"

    @pytest.mark.asyncio
    async def test_failure_sets_error_and_clears_result(self, registry, orchestrator, collaborator):
        collaborator.webhook(FAST, {"files": [{"name": "a.txt"}]})
        cid = add_webhook(registry, Family.webhook_generic, FAST, ConnectionStatus.disconnected)
        await orchestrator.probe_connection(cid)

        collaborator.webhook(FAST, httpx.Response(500, json={"error": "exploded"}))
        connection = await orchestrator.probe_connection(cid)

        assert connection.status == ConnectionStatus.error
        assert "exploded" in connection.status_message
        assert connection.probe_result is None

    @pytest.mark.asyncio
    async def test_invalid_stored_credentials_become_error(self, registry, orchestrator, collaborator):
        registry.add(Family.webhook_generic)
        connection = await orchestrator.probe_connection("webhook-generic")
        assert connection.status == ConnectionStatus.error
        assert collaborator.requests == []

    @pytest.mark.asyncio
    async def test_reconnect_keeps_identity(self, registry, orchestrator, collaborator):
        collaborator.webhook(FAST, {"files": []})
        cid = add_webhook(registry, Family.webhook_generic, FAST)
        before = registry.get(cid)

        after = await orchestrator.probe_connection(cid)

        assert (after.id, after.family, after.display_name) == (before.id, before.family, before.display_name)

    @pytest.mark.asyncio
    async def test_removed_mid_probe_is_discarded(self, registry, orchestrator, collaborator):
        release = asyncio.Event()

        async def gated(request):
            await release.wait()
            return httpx.Response(200, json={"files": []})

        collaborator.webhook(FAST, gated)
        cid = add_webhook(registry, Family.webhook_generic, FAST, ConnectionStatus.disconnected)
        orchestrator.context.timeout = 1.0

        task = asyncio.create_task(orchestrator.probe_connection(cid))
        await asyncio.sleep(0.01)
        registry.remove(cid)
        release.set()

        assert await task is None
        assert cid not in registry


class TestRefreshAll:
    @pytest.mark.asyncio
    async def test_one_success_one_timeout(self, registry, orchestrator, collaborator):
        collaborator.webhook(FAST, {"files": [{"name": "a.txt"}]})
        collaborator.webhook(SLOW, slow_webhook)
        slow_id = add_webhook(registry, Family.chat_webhook, SLOW)
        fast_id = add_webhook(registry, Family.webhook_generic, FAST)

        await orchestrator.refresh_all()

        assert registry.get(fast_id).status == ConnectionStatus.connected
        slow = registry.get(slow_id)
        assert slow.status == ConnectionStatus.error
        assert "timeout" in slow.status_message.lower()

    @pytest.mark.asyncio
    async def test_probes_run_concurrently(self, registry, orchestrator, collaborator):
        collaborator.webhook(SLOW, slow_webhook)
        for family in (Family.webhook_generic, Family.chat_webhook, Family.cloud_drive):
            add_webhook(registry, family, SLOW)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await orchestrator.refresh_all()

        # three probes each bounded at 0.1s; serial execution would take 0.3s
        assert loop.time() - started < 0.25

    @pytest.mark.asyncio
    async def test_only_connected_and_failed_are_refreshed(self, registry, orchestrator, collaborator):
        collaborator.webhook(FAST, {"files": []})
        add_webhook(registry, Family.webhook_generic, FAST, ConnectionStatus.connected)
        add_webhook(registry, Family.chat_webhook, FAST, ConnectionStatus.error)
        add_webhook(registry, Family.cloud_drive, FAST, ConnectionStatus.disconnected)

        refreshed = await orchestrator.refresh_all()

        assert sorted(c.id for c in refreshed) == ["chat-webhook", "webhook-generic"]
        assert registry.get("cloud-drive").status == ConnectionStatus.disconnected

    @pytest.mark.asyncio
    async def test_nothing_to_refresh(self, orchestrator, collaborator):
        assert await orchestrator.refresh_all() == []
        assert collaborator.requests == []


class TestPeriodicRefresh:
    @pytest.mark.asyncio
    async def test_runs_until_stopped(self, orchestrator):
        calls = []

        async def fake_refresh():
            calls.append(1)
            return []

        orchestrator.refresh_all = fake_refresh
        stop = asyncio.Event()
        task = asyncio.create_task(orchestrator.run_periodic(0.02, stop))
        await asyncio.sleep(0.11)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_zero_interval_disables(self, orchestrator):
        await asyncio.wait_for(orchestrator.run_periodic(0), timeout=1)
