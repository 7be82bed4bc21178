"""Connection data model: families, credentials, probe results and snapshots.

Wire and cache images use camelCase keys (``displayName``, ``statusMessage``,
``probeResult``); Python code uses the snake_case attribute names.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any, Union, Literal, Annotated

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel


class Family(str, Enum):
    """Integration type. Determines which connector handles a connection."""
    webhook_generic = "webhook-generic"
    cloud_drive = "cloud-drive"
    chat_webhook = "chat-webhook"
    chat_bot = "chat-bot"
    relational_db = "relational-db"
    workflow_api = "workflow-api"
    device_db = "device-db"


# Families allowing several named instances; every other family is a singleton.
MULTI_INSTANCE_FAMILIES = frozenset({Family.workflow_api})


class ConnectionStatus(str, Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    error = "error"


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- Credentials ----
class WebhookCredentials(_Model):
    """Single webhook URL (generic webhooks, cloud drives, chat webhooks)."""
    kind: Literal["webhook"] = "webhook"
    webhook_url: str = ""


class DatabaseCredentials(_Model):
    """Relational database login."""
    kind: Literal["database"] = "database"
    engine: str = "postgresql"
    host: str = ""
    port: Optional[int] = None
    username: str = ""
    password: SecretStr = SecretStr("")
    database: str = ""


class ApiCredentials(_Model):
    """Bearer/API-key REST endpoint (workflow servers)."""
    kind: Literal["api"] = "api"
    api_url: str = ""
    api_key: SecretStr = SecretStr("")
    api_type: str = "n8n"


class ChatBotCredentials(_Model):
    """Discord-style bot: one URL lists channels, the other sends messages."""
    kind: Literal["chat-bot"] = "chat-bot"
    channels_url: str = ""
    send_url: str = ""


Credentials = Annotated[
    Union[WebhookCredentials, DatabaseCredentials, ApiCredentials, ChatBotCredentials],
    Field(discriminator="kind"),
]

CREDENTIAL_TYPES: Dict[Family, type] = {
    Family.webhook_generic: WebhookCredentials,
    Family.cloud_drive: WebhookCredentials,
    Family.chat_webhook: WebhookCredentials,
    Family.chat_bot: ChatBotCredentials,
    Family.relational_db: DatabaseCredentials,
    Family.device_db: DatabaseCredentials,
    Family.workflow_api: ApiCredentials,
}

SECRET_FIELDS = ("password", "api_key")

# Sub-services exposed by providers, reported alongside a successful probe.
PROVIDER_CHILDREN: Dict[str, List[str]] = {
    "google-drive": ["Google Docs", "Google Sheets", "Google Slides"],
}


# ---- Probe results ----
class ProbeItem(_Model):
    """One entry of a probe's item list (file, workflow, channel, database)."""
    id: Optional[str] = None
    name: str = "Unknown"
    type: Optional[str] = None
    created: Optional[str] = None
    modified: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class ChildService(_Model):
    name: str
    status: ConnectionStatus = ConnectionStatus.disconnected


class ProbeResult(_Model):
    """Normalized payload of a successful probe.

    An empty ``items`` list is the explicit "no items" marker.
    """
    message: str
    items: List[ProbeItem] = Field(default_factory=list)
    children: List[ChildService] = Field(default_factory=list)

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items


# ---- Connection ----
class Connection(_Model):
    """One configured integration."""
    id: str
    family: Family
    display_name: str
    status: ConnectionStatus = ConnectionStatus.disconnected
    status_message: Optional[str] = None
    credentials: Optional[Credentials] = None
    provider: Optional[str] = None
    probe_result: Optional[ProbeResult] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.connected

    def public_dict(self) -> Dict[str, Any]:
        """Display-safe rendering; secrets come out masked."""
        return self.model_dump(mode="json", by_alias=True)


class RegistrySnapshot(_Model):
    """Full ordered state of the registry at one instant."""
    connections: List[Connection] = Field(default_factory=list)
    connected_ids: List[str] = Field(default_factory=list)
    version: int = 0
