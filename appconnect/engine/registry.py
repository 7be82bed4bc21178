"""In-memory source of truth for configured connections."""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set

from appconnect.core.exceptions import ConnectionNotFoundError, DuplicateError
from appconnect.engine.instances import InstanceManager
from appconnect.schemas.connection import (
    Connection,
    ConnectionStatus,
    Family,
    ProbeResult,
    RegistrySnapshot,
)

logger = logging.getLogger("appconnect.registry")

Listener = Callable[[RegistrySnapshot], None]

# Fields callers may patch through ``update``; status goes through set_status.
UPDATABLE_FIELDS = frozenset({"display_name", "credentials", "provider"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionRegistry:
    """Ordered ``id -> Connection`` mapping with a derived connected-id set.

    Every mutation is synchronous, bumps ``version`` and notifies listeners
    with the new snapshot. Each id also carries a probe sequence number:
    ``begin_probe`` hands one out and ``set_status`` drops results stamped
    with anything but the latest, so a late probe never overwrites a newer
    transition.
    """

    def __init__(self, instances: Optional[InstanceManager] = None):
        self.instances = instances or InstanceManager()
        self._connections: Dict[str, Connection] = {}
        self._sequences: Dict[str, int] = {}
        self._listeners: List[Listener] = []
        self.version = 0

    # ---- observation ----
    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _changed(self, notify: bool = True) -> None:
        self.version += 1
        if not notify:
            return
        snapshot = self.snapshot()
        for listener in self._listeners:
            listener(snapshot)

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            connections=list(self._connections.values()),
            connected_ids=sorted(self.connected_ids),
            version=self.version,
        )

    @property
    def connected_ids(self) -> Set[str]:
        return {cid for cid, c in self._connections.items() if c.is_connected}

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def get(self, connection_id: str) -> Connection:
        try:
            return self._connections[connection_id]
        except KeyError:
            raise ConnectionNotFoundError(f"Connection '{connection_id}' not found")

    def find(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def list(self) -> List[Connection]:
        return list(self._connections.values())

    # ---- mutation ----
    def add(
        self,
        family: Family,
        credentials=None,
        display_name: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> Connection:
        """Create a disconnected connection with an id from the instance manager."""
        connection_id, name = self.instances.assign(
            family,
            self._connections.keys(),
            [(c.family, c.provider or None) for c in self._connections.values()],
            display_name,
            provider,
        )
        if connection_id in self._connections:
            raise DuplicateError(f"Connection id '{connection_id}' is already in use")

        connection = Connection(
            id=connection_id,
            family=family,
            display_name=name,
            credentials=credentials,
            provider=provider,
        )
        self._connections[connection_id] = connection
        self._sequences[connection_id] = 0
        logger.info("Added connection %s", connection_id)
        self._changed()
        return connection

    def update(self, connection_id: str, **patch) -> Connection:
        """Patch display name, credentials or provider.

        Any probe still in flight for this id is superseded.
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        current = self.get(connection_id)
        updated = current.model_copy(update={**patch, "updated_at": _now()})
        self._connections[connection_id] = updated
        self._sequences[connection_id] += 1
        self._changed()
        return updated

    def remove(self, connection_id: str) -> Connection:
        connection = self.get(connection_id)
        del self._connections[connection_id]
        self._sequences.pop(connection_id, None)
        logger.info("Removed connection %s", connection_id)
        self._changed()
        return connection

    def begin_probe(self, connection_id: str) -> int:
        """Mark the connection as connecting and return the probe's sequence number."""
        current = self.get(connection_id)
        sequence = self._sequences[connection_id] + 1
        self._sequences[connection_id] = sequence
        self._connections[connection_id] = current.model_copy(
            update={"status": ConnectionStatus.connecting, "updated_at": _now()}
        )
        self._changed()
        return sequence

    def is_current(self, connection_id: str, sequence: int) -> bool:
        return self._sequences.get(connection_id) == sequence

    def set_status(
        self,
        connection_id: str,
        status: ConnectionStatus,
        message: Optional[str] = None,
        probe_result: Optional[ProbeResult] = None,
        sequence: Optional[int] = None,
    ) -> bool:
        """Apply a status transition.

        Returns False when the transition was dropped: the id is gone, or
        ``sequence`` is no longer the latest probe for it. A transition without
        a sequence is a direct user action and supersedes in-flight probes.
        """
        current = self._connections.get(connection_id)
        if current is None:
            logger.debug("Dropping %s status for removed connection %s", status, connection_id)
            return False
        if sequence is not None and not self.is_current(connection_id, sequence):
            logger.debug("Dropping stale probe result #%s for %s", sequence, connection_id)
            return False

        status = ConnectionStatus(status)
        if status == ConnectionStatus.connected:
            if not message:
                message = probe_result.message if probe_result else "Connected"
            if probe_result is None:
                probe_result = ProbeResult(message=message)
        elif status == ConnectionStatus.error:
            message = message or "Connection failed"
            probe_result = None
        elif status == ConnectionStatus.disconnected:
            probe_result = None
        elif probe_result is None:
            probe_result = current.probe_result

        if sequence is None:
            self._sequences[connection_id] += 1
        self._connections[connection_id] = current.model_copy(
            update={
                "status": status,
                "status_message": message,
                "probe_result": probe_result,
                "updated_at": _now(),
            }
        )
        self._changed()
        return True

    def replace_all(self, connections: Iterable[Connection], notify: bool = True) -> None:
        """Swap in a loaded snapshot. Later duplicates of an id are ignored."""
        loaded: Dict[str, Connection] = {}
        for connection in connections:
            if connection.id in loaded:
                logger.warning("Ignoring duplicate connection id %s in loaded snapshot", connection.id)
                continue
            loaded[connection.id] = connection
        self._connections = loaded
        self._sequences = {cid: 0 for cid in loaded}
        self._changed(notify)
