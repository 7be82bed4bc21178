"""Tests for local/remote synchronization."""

import asyncio
import json

import pytest
from pydantic import SecretStr

from appconnect.engine.migration import MigrationOutcome
from appconnect.engine.registry import ConnectionRegistry
from appconnect.engine.sync import SyncEngine, SyncState, clean_loaded, merge_snapshots
from appconnect.schemas.connection import (
    ApiCredentials,
    Connection,
    ConnectionStatus,
    Family,
    ProbeResult,
    WebhookCredentials,
)


def connection(cid, family=Family.webhook_generic, status=ConnectionStatus.disconnected, **extra):
    return Connection(id=cid, family=family, display_name=cid, status=status, **extra)


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def engine(registry, cache, remote, cipher):
    return SyncEngine(registry, cache, remote, cipher, debounce=0.0)


class TestMerge:
    def test_local_wins_on_conflict(self):
        local = [Connection(id="workflow-api", family=Family.workflow_api, display_name="local name")]
        remote = [Connection(id="workflow-api", family=Family.workflow_api, display_name="remote name")]
        merged = merge_snapshots(local, remote)
        assert [c.display_name for c in merged] == ["local name"]

    def test_remote_only_entries_are_adopted_after_local(self):
        local = [connection("webhook-generic")]
        remote = [connection("cloud-drive", Family.cloud_drive), connection("webhook-generic")]
        assert [c.id for c in merge_snapshots(local, remote)] == ["webhook-generic", "cloud-drive"]


class TestLoadCleanup:
    @pytest.mark.parametrize("status", [ConnectionStatus.error, ConnectionStatus.connecting])
    def test_transient_statuses_load_disconnected(self, status):
        loaded = clean_loaded(connection("webhook-generic", status=status, status_message="boom"))
        assert loaded.status == ConnectionStatus.disconnected
        assert loaded.status_message is None
        assert loaded.probe_result is None

    def test_connected_is_kept(self):
        original = connection(
            "webhook-generic",
            status=ConnectionStatus.connected,
            status_message="1 item(s) found",
            probe_result=ProbeResult(message="1 item(s) found"),
        )
        assert clean_loaded(original) is original


class TestLocalPersistence:
    def test_every_mutation_is_written_locally(self, registry, engine, cache):
        registry.add(Family.webhook_generic, WebhookCredentials(webhook_url="https://x/y"))
        registry.set_status("webhook-generic", ConnectionStatus.connected, "ok")

        stored = cache.load_connections()
        assert [c["id"] for c in stored] == ["webhook-generic"]
        assert cache.load_connected_ids() == ["webhook-generic"]

    def test_secrets_are_encrypted_in_the_cache(self, registry, engine, redis_client):
        registry.add(
            Family.workflow_api,
            ApiCredentials(api_url="https://n8n.example.com", api_key=SecretStr("very-secret")),
        )
        raw = redis_client.get("test:connections")
        assert "very-secret" not in raw
        assert "n8n.example.com" in raw

    def test_load_local_round_trip(self, registry, engine, cache, cipher, remote):
        registry.add(
            Family.workflow_api,
            ApiCredentials(api_url="https://n8n.example.com", api_key=SecretStr("k1")),
        )
        registry.set_status("workflow-api", ConnectionStatus.connected, "3 workflow(s) found")

        fresh = ConnectionRegistry()
        SyncEngine(fresh, cache, remote, cipher).load_local()
        loaded = fresh.get("workflow-api")
        assert loaded.credentials.api_key.get_secret_value() == "k1"
        assert loaded.status == ConnectionStatus.connected
        assert fresh.connected_ids == {"workflow-api"}

    def test_load_local_recomputes_connected_ids(self, registry, engine, cache, cipher, remote):
        registry.add(Family.webhook_generic)
        registry.set_status("webhook-generic", ConnectionStatus.error, "boom")
        cache.save_connected_ids(["webhook-generic", "ghost"])

        fresh = ConnectionRegistry()
        SyncEngine(fresh, cache, remote, cipher).load_local()
        assert fresh.connected_ids == set()
        assert fresh.get("webhook-generic").status == ConnectionStatus.disconnected

    def test_load_local_does_not_push(self, registry, cache, cipher, remote, collaborator):
        cache.save_connections([cipher.dump_connection(connection("webhook-generic"))])
        fresh = ConnectionRegistry()
        SyncEngine(fresh, cache, remote, cipher).load_local()
        assert collaborator.requests == []


class TestRemoteLoad:
    @pytest.mark.asyncio
    async def test_merges_remote_only_entries(self, registry, engine, cache, cipher, collaborator):
        cache.save_connections([cipher.dump_connection(
            Connection(id="workflow-api", family=Family.workflow_api, display_name="local")
        )])
        collaborator.remote_state = {
            "connections": [
                cipher.dump_connection(Connection(id="workflow-api", family=Family.workflow_api, display_name="remote")),
                cipher.dump_connection(connection("cloud-drive", Family.cloud_drive)),
            ],
            "connectedIds": [],
        }

        snapshot = await engine.load()
        assert [c.id for c in snapshot.connections] == ["workflow-api", "cloud-drive"]
        assert registry.get("workflow-api").display_name == "local"
        # merged state is written back locally
        assert [c["id"] for c in cache.load_connections()] == ["workflow-api", "cloud-drive"]

    @pytest.mark.asyncio
    async def test_suppressed_after_migration(self, registry, engine, collaborator):
        collaborator.remote_state = {
            "connections": [{"id": "cloud-drive", "family": "cloud-drive", "displayName": "cloud-drive"}],
            "connectedIds": [],
        }
        await engine.load(MigrationOutcome(migrated=True, previous_version="v2", current_version="v3"))
        assert len(registry) == 0
        assert collaborator.requests_to("GET", "/api/connections") == []

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_local(self, registry, engine, cache, cipher, collaborator):
        cache.save_connections([cipher.dump_connection(connection("webhook-generic"))])
        collaborator.remote_fails = True
        snapshot = await engine.load()
        assert [c.id for c in snapshot.connections] == ["webhook-generic"]

    @pytest.mark.asyncio
    async def test_no_session_skips_remote(self, registry, cache, cipher, http_client, collaborator):
        from appconnect.services.remote_store import RemoteStore

        anonymous = RemoteStore(client=http_client, base_url="http://collab.test/api", token="")
        engine = SyncEngine(registry, cache, anonymous, cipher, debounce=0.0)
        await engine.load()
        registry.add(Family.webhook_generic)
        await engine.flush()
        assert collaborator.requests == []
        assert engine.state == SyncState.local_only


class TestPush:
    @pytest.mark.asyncio
    async def test_push_sends_full_snapshot(self, registry, engine, collaborator):
        registry.add(Family.webhook_generic, WebhookCredentials(webhook_url="https://x/y"))
        registry.add(Family.workflow_api)
        assert engine.state == SyncState.sync_pending

        await engine.flush()

        assert engine.state == SyncState.synced
        body = collaborator.remote_state
        assert [c["id"] for c in body["connections"]] == ["webhook-generic", "workflow-api"]
        assert body["connectedIds"] == []

    @pytest.mark.asyncio
    async def test_debounce_collapses_rapid_changes(self, registry, cache, remote, cipher, collaborator):
        engine = SyncEngine(registry, cache, remote, cipher, debounce=0.05)
        registry.add(Family.webhook_generic)
        registry.add(Family.chat_webhook)
        registry.add(Family.cloud_drive)
        await asyncio.sleep(0.2)

        puts = collaborator.requests_to("PUT", "/api/connections")
        assert len(puts) == 1
        assert len(json.loads(puts[0].content)["connections"]) == 3
        assert engine.state == SyncState.synced

    @pytest.mark.asyncio
    async def test_failed_push_is_swallowed_and_state_is_local_only(self, registry, engine, collaborator, caplog):
        collaborator.remote_fails = True
        registry.add(Family.webhook_generic)

        with caplog.at_level("WARNING", logger="appconnect.sync"):
            ok = await engine.push()

        assert ok is False
        assert engine.state == SyncState.local_only
        assert "Remote push" in caplog.text

    @pytest.mark.asyncio
    async def test_change_after_push_is_pending_again(self, registry, engine):
        registry.add(Family.webhook_generic)
        await engine.flush()
        assert engine.state == SyncState.synced

        registry.set_status("webhook-generic", ConnectionStatus.connected, "ok")
        assert engine.state == SyncState.sync_pending

    def test_mutation_without_event_loop_waits_for_flush(self, registry, engine, collaborator):
        registry.add(Family.webhook_generic)
        assert engine.state == SyncState.sync_pending
        assert collaborator.requests == []
        asyncio.run(engine.flush())
        assert engine.state == SyncState.synced
