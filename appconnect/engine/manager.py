"""Facade wiring registry, sync, refresh and migration together."""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
from pydantic import ValidationError as SchemaError

from appconnect.connectors.base import ProbeContext
from appconnect.connectors.builtin import get_connector
from appconnect.core.config import settings
from appconnect.core.exceptions import ValidationError
from appconnect.engine.migration import MigrationGate, MigrationOutcome
from appconnect.engine.refresh import RefreshOrchestrator
from appconnect.engine.registry import ConnectionRegistry
from appconnect.engine.sync import SyncEngine
from appconnect.schemas.connection import (
    Connection,
    ConnectionStatus,
    CREDENTIAL_TYPES,
    Family,
)
from appconnect.services.cache_service import CacheService, cache_service
from appconnect.services.credential_cipher import CredentialCipher
from appconnect.services.remote_store import RemoteStore

logger = logging.getLogger("appconnect.manager")

# Credential option a provider key fills in when the form leaves it out.
PROVIDER_DEFAULTS: Dict[Family, Tuple[str, str, Tuple[str, ...]]] = {
    Family.relational_db: ("engine", "engine", ("postgresql", "mysql")),
    Family.device_db: ("engine", "engine", ("postgresql", "mysql")),
    Family.workflow_api: ("api_type", "apiType", ("n8n", "mcp")),
}


def parse_credentials(family: Family, data: Any, provider: Optional[str] = None):
    """Build the family's credential model from a form dict."""
    if data is None or not isinstance(data, dict):
        return data
    data = dict(data)
    if family in PROVIDER_DEFAULTS and provider:
        field, alias, choices = PROVIDER_DEFAULTS[family]
        if provider in choices and not (data.get(field) or data.get(alias)):
            data[alias] = provider
    credentials_type = CREDENTIAL_TYPES[family]
    data.setdefault("kind", credentials_type.model_fields["kind"].default)
    try:
        return credentials_type.model_validate(data)
    except SchemaError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or None
        raise ValidationError(f"Invalid credentials: {first.get('msg')}", field=field)


class ConnectionManager:
    """Everything the UI layer calls. One instance per session."""

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        remote: Optional[RemoteStore] = None,
        cipher: Optional[CredentialCipher] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        api_base_url: Optional[str] = None,
        token: Optional[str] = None,
        probe_timeout: Optional[float] = None,
        schema_version: Optional[str] = None,
        debounce: Optional[float] = None,
    ):
        token = settings.SESSION_TOKEN if token is None else token
        api_base_url = api_base_url or settings.API_BASE_URL
        probe_timeout = probe_timeout or settings.PROBE_TIMEOUT_SECONDS

        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=probe_timeout)
        self.cache = cache or cache_service
        self.remote = remote or RemoteStore(
            client=self.http, base_url=api_base_url, token=token, timeout=probe_timeout
        )
        self.cipher = cipher or CredentialCipher()

        self.registry = ConnectionRegistry()
        self.sync = SyncEngine(self.registry, self.cache, self.remote, self.cipher, debounce)
        self.refresher = RefreshOrchestrator(
            self.registry,
            ProbeContext(
                client=self.http,
                api_base_url=api_base_url,
                token=token,
                timeout=probe_timeout,
            ),
        )
        self.migration = MigrationGate(self.cache, self.remote, schema_version)
        self.outcome: Optional[MigrationOutcome] = None

    async def __aenter__(self) -> "ConnectionManager":
        await self.startup()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.shutdown()

    async def startup(self) -> MigrationOutcome:
        self.outcome = await self.migration.run()
        snapshot = await self.sync.load(self.outcome)
        logger.info(
            "Loaded %d connection(s), %d connected",
            len(snapshot.connections),
            len(snapshot.connected_ids),
        )
        return self.outcome

    async def shutdown(self) -> None:
        await self.sync.flush()
        await self.remote.aclose()
        if self._owns_http:
            await self.http.aclose()

    # ---- lifecycle ----
    async def add_connection(
        self,
        family: Union[Family, str],
        credentials: Any,
        display_name: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> Optional[Connection]:
        """Validate, register and run the initial probe."""
        family = Family(family)
        credentials = parse_credentials(family, credentials, provider)
        get_connector(family).validate(credentials)
        connection = self.registry.add(family, credentials, display_name, provider)
        return await self.refresher.probe_connection(connection.id)

    async def edit_credentials(self, connection_id: str, credentials: Any) -> Optional[Connection]:
        """Replace credentials and reconnect with them."""
        connection = self.registry.get(connection_id)
        credentials = parse_credentials(connection.family, credentials, connection.provider)
        get_connector(connection.family).validate(credentials)
        self.registry.update(connection_id, credentials=credentials)
        return await self.refresher.probe_connection(connection_id)

    async def connect(self, connection_id: str) -> Optional[Connection]:
        return await self.refresher.probe_connection(connection_id)

    def disconnect(self, connection_id: str) -> Connection:
        """Drop runtime state; credentials stay for a one-click reconnect."""
        self.registry.set_status(connection_id, ConnectionStatus.disconnected)
        return self.registry.get(connection_id)

    def remove(self, connection_id: str) -> Connection:
        return self.registry.remove(connection_id)

    async def refresh_all(self) -> List[Connection]:
        return await self.refresher.refresh_all()

    def get(self, connection_id: str) -> Connection:
        return self.registry.get(connection_id)

    def list(self) -> List[Connection]:
        return self.registry.list()

    def public_view(self) -> List[Dict[str, Any]]:
        return [c.public_dict() for c in self.registry.list()]
