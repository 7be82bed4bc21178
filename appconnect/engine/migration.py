"""One-time schema migration run at startup."""

import logging
from dataclasses import dataclass
from typing import Optional

from appconnect.core.config import settings
from appconnect.core.exceptions import RemoteSyncError
from appconnect.services.cache_service import CacheService
from appconnect.services.remote_store import RemoteStore

logger = logging.getLogger("appconnect.migration")


@dataclass(frozen=True)
class MigrationOutcome:
    """Result of one gate run, passed to ``SyncEngine.load``."""

    migrated: bool
    previous_version: Optional[str]
    current_version: str

    @property
    def suppress_remote_load(self) -> bool:
        # The remote record was just wiped (or failed to be); reloading it now
        # could resurrect the stale state.
        return self.migrated


class MigrationGate:
    """Compares the stored version marker with the current schema version.

    On a stale marker the local snapshot is wiped, the marker is bumped, and
    the remote record is cleared best-effort. A missing marker with an empty
    local cache is a fresh install: the marker is written and nothing is
    wiped, so a new machine never clears a remote record it has not seen.
    """

    def __init__(self, cache: CacheService, remote: RemoteStore, version: Optional[str] = None):
        self.cache = cache
        self.remote = remote
        self.version = version or settings.SCHEMA_VERSION

    def is_stale(self) -> bool:
        stored = self.cache.get_version()
        if stored == self.version:
            return False
        if stored is None and not self.cache.load_connections():
            return False
        return True

    async def run(self) -> MigrationOutcome:
        stored = self.cache.get_version()
        if not self.is_stale():
            if stored != self.version:
                logger.info("Fresh connection cache; writing schema marker %s", self.version)
                self.cache.set_version(self.version)
            return MigrationOutcome(False, stored, self.version)

        logger.info(
            "Connection schema %s is stale (current %s); wiping local and remote state",
            stored,
            self.version,
        )
        self.cache.clear_snapshot()
        self.cache.set_version(self.version)
        try:
            await self.remote.clear()
        except RemoteSyncError as e:
            logger.warning("Remote wipe during migration failed: %s", e)
        return MigrationOutcome(True, stored, self.version)
