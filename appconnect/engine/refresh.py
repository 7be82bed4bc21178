"""Probing connections and applying the outcome to the registry."""

import asyncio
import logging
from typing import List, Optional

from appconnect.connectors.base import ProbeContext
from appconnect.connectors.builtin import get_connector
from appconnect.core.config import settings
from appconnect.core.exceptions import ConnectorError, ValidationError
from appconnect.engine.registry import ConnectionRegistry
from appconnect.schemas.connection import Connection, ConnectionStatus

logger = logging.getLogger("appconnect.refresh")

REFRESHABLE_STATUSES = (ConnectionStatus.connected, ConnectionStatus.error)


class RefreshOrchestrator:
    """Runs probes against the registry.

    ``probe_connection`` is the only place a probe happens; adding,
    reconnecting after an edit and refreshing all go through it.
    """

    def __init__(self, registry: ConnectionRegistry, context: ProbeContext):
        self.registry = registry
        self.context = context

    async def probe_connection(self, connection_id: str) -> Optional[Connection]:
        """Probe one connection and record the result.

        Returns the updated record, or None if it was removed meanwhile.
        """
        connection = self.registry.get(connection_id)
        connector = get_connector(connection.family)
        sequence = self.registry.begin_probe(connection_id)

        try:
            result = await connector.probe(
                connection.credentials,
                self.context.for_provider(connection.provider),
            )
        except (ConnectorError, ValidationError) as e:
            logger.info("Probe of %s failed (%s): %s", connection_id, e.kind.value, e.message)
            self.registry.set_status(
                connection_id, ConnectionStatus.error, e.message, sequence=sequence
            )
        else:
            logger.info("Probe of %s succeeded: %s", connection_id, result.message)
            self.registry.set_status(
                connection_id,
                ConnectionStatus.connected,
                result.message,
                probe_result=result,
                sequence=sequence,
            )
        return self.registry.find(connection_id)

    async def refresh_all(self) -> List[Connection]:
        """Re-probe every connected or failed connection concurrently.

        Each result lands in the registry as soon as its probe finishes;
        the call returns once all of them have.
        """
        targets = [c.id for c in self.registry.list() if c.status in REFRESHABLE_STATUSES]
        if not targets:
            return []
        logger.info("Refreshing %d connection(s)", len(targets))

        results = await asyncio.gather(
            *(self.probe_connection(cid) for cid in targets),
            return_exceptions=True,
        )
        refreshed = []
        for cid, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error("Refresh of %s raised %r", cid, result)
            elif result is not None:
                refreshed.append(result)
        return refreshed

    async def run_periodic(
        self,
        interval: Optional[float] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Call ``refresh_all`` every ``interval`` seconds until ``stop_event`` is set."""
        interval = settings.REFRESH_INTERVAL_SECONDS if interval is None else interval
        if interval <= 0:
            return
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self.refresh_all()
