"""Keeps the registry in step with the local cache and the remote record."""

import asyncio
import logging
from enum import Enum
from typing import Iterable, List, Optional, Set

from appconnect.core.config import settings
from appconnect.core.exceptions import RemoteSyncError
from appconnect.engine.migration import MigrationOutcome
from appconnect.engine.registry import ConnectionRegistry
from appconnect.schemas.connection import Connection, ConnectionStatus, RegistrySnapshot
from appconnect.services.cache_service import CacheService
from appconnect.services.credential_cipher import CredentialCipher
from appconnect.services.remote_store import RemoteStore

logger = logging.getLogger("appconnect.sync")

# Statuses that never survive a reload: the probe that set them is gone.
TRANSIENT_STATUSES = (ConnectionStatus.error, ConnectionStatus.connecting)


class SyncState(str, Enum):
    local_only = "local_only"
    sync_pending = "sync_pending"
    synced = "synced"


def clean_loaded(connection: Connection) -> Connection:
    """Loaded error/connecting records come back as plain disconnected ones."""
    if connection.status not in TRANSIENT_STATUSES:
        return connection
    return connection.model_copy(
        update={
            "status": ConnectionStatus.disconnected,
            "status_message": None,
            "probe_result": None,
        }
    )


def merge_snapshots(local: Iterable[Connection], remote: Iterable[Connection]) -> List[Connection]:
    """Local entries in their order, then entries only the remote has.

    An id present in both keeps the local copy.
    """
    merged = list(local)
    seen = {c.id for c in merged}
    for connection in remote:
        if connection.id not in seen:
            merged.append(connection)
            seen.add(connection.id)
    return merged


class SyncEngine:
    """Local-first persistence with a debounced, best-effort remote push.

    Every registry change is written to the local cache synchronously and
    schedules a push of the full snapshot. Pushes are serialized; a push
    always sends the snapshot current when it starts, so superseded
    schedules collapse into one request. ``state`` reports whether the
    current registry version has reached the remote record.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        cache: CacheService,
        remote: RemoteStore,
        cipher: CredentialCipher,
        debounce: Optional[float] = None,
    ):
        self.registry = registry
        self.cache = cache
        self.remote = remote
        self.cipher = cipher
        self.debounce = settings.SYNC_DEBOUNCE_SECONDS if debounce is None else debounce
        self.synced_version: Optional[int] = None
        self._pending_version: Optional[int] = None
        self._push_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        registry.subscribe(self._on_change)

    @property
    def state(self) -> SyncState:
        version = self.registry.version
        if self.synced_version == version:
            return SyncState.synced
        if self._pending_version == version:
            return SyncState.sync_pending
        return SyncState.local_only

    # ---- load ----
    def load_local(self) -> List[Connection]:
        """Read the local image into the registry without triggering a push."""
        connections = [clean_loaded(c) for c in self.cipher.load_connections(self.cache.load_connections())]
        stored_ids = set(self.cache.load_connected_ids())
        derived_ids = {c.id for c in connections if c.is_connected}
        if stored_ids != derived_ids:
            logger.info(
                "Stored connected ids out of step with records (%d stored, %d connected); "
                "using record status",
                len(stored_ids),
                len(derived_ids),
            )
        self.registry.replace_all(connections, notify=False)
        return connections

    async def merge_remote(self) -> bool:
        """Adopt remote-only entries. Returns False when the remote was unavailable."""
        if not self.remote.has_session:
            return False
        try:
            record = await self.remote.fetch()
        except RemoteSyncError as e:
            logger.warning("Remote load failed; continuing with local cache: %s", e)
            return False
        if record is None:
            return False

        remote = [clean_loaded(c) for c in self.cipher.load_connections(record["connections"])]
        merged = merge_snapshots(self.registry.list(), remote)
        adopted = len(merged) - len(self.registry)
        if adopted:
            logger.info("Adopted %d connection(s) from the remote record", adopted)
        self.registry.replace_all(merged)
        return True

    async def load(self, outcome: Optional[MigrationOutcome] = None) -> RegistrySnapshot:
        """Local cache first, then the remote record unless ``outcome`` forbids it."""
        self.load_local()
        if outcome is not None and outcome.suppress_remote_load:
            logger.info("Skipping remote load after schema migration to %s", outcome.current_version)
        else:
            await self.merge_remote()
        return self.registry.snapshot()

    # ---- save ----
    def persist_local(self, snapshot: Optional[RegistrySnapshot] = None) -> None:
        snapshot = snapshot or self.registry.snapshot()
        self.cache.save_connections(self.cipher.dump_connections(snapshot.connections))
        self.cache.save_connected_ids(snapshot.connected_ids)

    def _on_change(self, snapshot: RegistrySnapshot) -> None:
        self.persist_local(snapshot)
        self.schedule_push(snapshot.version)

    def schedule_push(self, version: int) -> None:
        """Schedule a debounced push; never blocks the caller."""
        if not self.remote.has_session:
            return
        self._pending_version = version
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; version %s waits for flush()", version)
            return
        task = loop.create_task(self._debounced_push(version))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _debounced_push(self, version: int) -> None:
        await asyncio.sleep(self.debounce)
        if self._pending_version != version:
            # A later change rescheduled; that push carries this state too.
            return
        await self.push()

    async def push(self) -> bool:
        """Send the current full snapshot. Failures are logged, not raised."""
        async with self._push_lock:
            snapshot = self.registry.snapshot()
            try:
                await self.remote.save(
                    self.cipher.dump_connections(snapshot.connections),
                    snapshot.connected_ids,
                )
            except RemoteSyncError as e:
                logger.warning("Remote push of version %s failed: %s", snapshot.version, e)
                if self._pending_version == snapshot.version:
                    self._pending_version = None
                return False
            self.synced_version = snapshot.version
            if self._pending_version == snapshot.version:
                self._pending_version = None
            return True

    async def flush(self) -> None:
        """Push any pending change now and drop the debounce timers."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._pending_version is not None:
            await self.push()
