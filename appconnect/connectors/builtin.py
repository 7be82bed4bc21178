"""Built-in connectors: webhook, chat bot, relational database, workflow API."""

from typing import Dict, Any

from appconnect.connectors.base import (
    ConnectorBase,
    ProbeContext,
    require_fields,
    require_url,
    secret_value,
)
from appconnect.connectors.normalize import (
    extract_items,
    to_channel_items,
    to_probe_items,
)
from appconnect.core.exceptions import (
    ForbiddenError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from appconnect.schemas.connection import (
    ApiCredentials,
    ChatBotCredentials,
    ChildService,
    ConnectionStatus,
    DatabaseCredentials,
    Family,
    ProbeResult,
    PROVIDER_CHILDREN,
    WebhookCredentials,
)


class WebhookConnector(ConnectorBase):
    """Webhook-backed provider probed through the server-side proxy (GET)."""

    credentials_type = WebhookCredentials

    def __init__(self, family: Family = Family.webhook_generic, noun: str = "item"):
        self.family = family
        self._noun = noun

    def _validate(self, credentials: WebhookCredentials) -> None:
        require_url(credentials.webhook_url, "webhook_url")

    async def _probe(self, credentials: WebhookCredentials, context: ProbeContext) -> ProbeResult:
        body = await self.post_json(
            context,
            "/webhook-proxy",
            {"url": credentials.webhook_url.strip(), "method": "GET"},
        )
        items = to_probe_items(extract_items(body))
        if items:
            message = f"{len(items)} {self._noun}(s) found"
        else:
            message = "Connected (no items)"

        children = [
            ChildService(name=name, status=ConnectionStatus.connected)
            for name in PROVIDER_CHILDREN.get(context.provider or "", [])
        ]
        return ProbeResult(message=message, items=items, children=children)


class ChatBotConnector(ConnectorBase):
    """Discord-style bot. Only the channel-discovery step belongs to connection
    management; sending goes through ``send_url`` elsewhere."""

    family = Family.chat_bot
    credentials_type = ChatBotCredentials

    def _validate(self, credentials: ChatBotCredentials) -> None:
        require_url(credentials.channels_url, "channels_url")
        require_url(credentials.send_url, "send_url")

    async def _probe(self, credentials: ChatBotCredentials, context: ProbeContext) -> ProbeResult:
        body = await self.post_json(
            context,
            "/webhook-proxy",
            {"url": credentials.channels_url.strip(), "method": "GET"},
        )
        channels = to_channel_items(extract_items(body, keys=("channels",)))
        if channels:
            message = f"{len(channels)} channel(s) found"
        else:
            message = "Connected (no channels found)"
        return ProbeResult(message=message, items=channels)


class DatabaseConnector(ConnectorBase):
    """PostgreSQL / MySQL server, probed by listing its databases."""

    credentials_type = DatabaseCredentials
    engines = ("postgresql", "mysql")

    def __init__(self, family: Family = Family.relational_db):
        self.family = family

    def _validate(self, credentials: DatabaseCredentials) -> None:
        if credentials.engine not in self.engines:
            raise ValidationError(
                f"Unsupported database type: {credentials.engine}", field="engine"
            )
        require_fields(credentials, ["host", "port", "username", "database"])
        if not 0 < credentials.port < 65536:
            raise ValidationError("port must be between 1 and 65535", field="port")

    async def _probe(self, credentials: DatabaseCredentials, context: ProbeContext) -> ProbeResult:
        payload = {
            "type": credentials.engine,
            "host": credentials.host.strip(),
            "port": credentials.port,
            "username": credentials.username,
            "password": secret_value(credentials.password),
            "database": credentials.database,
        }
        try:
            body = await self.post_json(context, "/database/list", payload)
        except (UnauthorizedError, ForbiddenError) as e:
            raise type(e)(
                "Authentication failed: Invalid username or password. Please check your credentials."
            )

        databases = body.get("databases") if isinstance(body, dict) else None
        if not isinstance(databases, list):
            raise UpstreamError("Unexpected response format from database server")

        items = to_probe_items(databases, default_type="database")
        return ProbeResult(message=f"{len(items)} database(s) found", items=items)


class WorkflowApiConnector(ConnectorBase):
    """Workflow-automation server (n8n REST API, or an MCP endpoint)."""

    family = Family.workflow_api
    credentials_type = ApiCredentials
    api_types = ("n8n", "mcp")

    def _validate(self, credentials: ApiCredentials) -> None:
        if credentials.api_type not in self.api_types:
            raise ValidationError(
                f"Unsupported API type: {credentials.api_type}", field="api_type"
            )
        require_url(credentials.api_url, "api_url")
        require_fields(credentials, ["api_key"])

    async def _probe(self, credentials: ApiCredentials, context: ProbeContext) -> ProbeResult:
        body = await self.post_json(
            context,
            "/workflow-api/list",
            {
                "apiUrl": credentials.api_url.strip(),
                "apiKey": secret_value(credentials.api_key),
                "apiType": credentials.api_type,
            },
        )
        if credentials.api_type == "mcp":
            return ProbeResult(message="MCP server connected")

        workflows = to_probe_items(extract_items(body), default_type="workflow")
        return ProbeResult(message=f"{len(workflows)} workflow(s) found", items=workflows)


# Connector registry
CONNECTOR_REGISTRY: Dict[Family, ConnectorBase] = {
    Family.webhook_generic: WebhookConnector(Family.webhook_generic),
    Family.cloud_drive: WebhookConnector(Family.cloud_drive, noun="file"),
    Family.chat_webhook: WebhookConnector(Family.chat_webhook, noun="file"),
    Family.chat_bot: ChatBotConnector(),
    Family.relational_db: DatabaseConnector(Family.relational_db),
    Family.device_db: DatabaseConnector(Family.device_db),
    Family.workflow_api: WorkflowApiConnector(),
}


def get_connector(family: Any) -> ConnectorBase:
    """Get the connector instance for a family."""
    connector = CONNECTOR_REGISTRY.get(Family(family))
    if not connector:
        raise ValueError(f"Unknown connector family: {family}")
    return connector
