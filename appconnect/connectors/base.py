"""Abstract base class for connectors and the shared probe plumbing."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlparse

import httpx
from pydantic import SecretStr

from appconnect.core.config import settings
from appconnect.core.exceptions import (
    ConnectorError,
    ForbiddenError,
    ProbeTimeout,
    UnauthorizedError,
    UnreachableError,
    UpstreamError,
    ValidationError,
)
from appconnect.connectors.normalize import parse_body
from appconnect.schemas.connection import Family, ProbeResult


@dataclass
class ProbeContext:
    """Everything a probe needs besides the credentials themselves."""

    client: httpx.AsyncClient
    api_base_url: str = settings.API_BASE_URL
    token: Optional[str] = None
    timeout: float = settings.PROBE_TIMEOUT_SECONDS
    provider: Optional[str] = None

    def url(self, path: str) -> str:
        return f"{self.api_base_url.rstrip('/')}/{path.lstrip('/')}"

    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def for_provider(self, provider: Optional[str]) -> "ProbeContext":
        return ProbeContext(
            client=self.client,
            api_base_url=self.api_base_url,
            token=self.token,
            timeout=self.timeout,
            provider=provider,
        )


def secret_value(value: Any) -> Any:
    return value.get_secret_value() if isinstance(value, SecretStr) else value


def require_fields(credentials: Any, fields: Sequence[str]) -> None:
    """Fail with a field-level error on the first missing or blank field."""
    for field in fields:
        value = secret_value(getattr(credentials, field, None))
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field} is required", field=field)


def require_url(value: Optional[str], field: str) -> None:
    """Check that ``value`` is an absolute http(s) URL."""
    if not value or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    parsed = urlparse(value.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(
            f'Invalid URL for {field}. Use a full URL like "https://your-domain.com"',
            field=field,
        )


def error_detail(response: httpx.Response) -> str:
    """Best-effort human message from an error response body."""
    body = parse_body(response.text)
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


class ConnectorBase(ABC):
    """Base class for all connectors.

    Subclasses implement ``_validate`` (structural checks, no I/O) and ``_probe``
    (one network round-trip returning the canonical payload). ``probe`` wraps
    ``_probe`` with the deadline and maps every transport failure onto the
    closed ``ConnectorError`` taxonomy.
    """

    family: Family
    credentials_type: type

    def validate(self, credentials: Any) -> None:
        """Raise ValidationError if ``credentials`` cannot be probed."""
        if credentials is None:
            raise ValidationError("Credentials are required", field="credentials")
        if not isinstance(credentials, self.credentials_type):
            raise ValidationError(
                f"{self.family.value} expects {self.credentials_type.__name__}",
                field="credentials",
            )
        self._validate(credentials)

    @abstractmethod
    def _validate(self, credentials: Any) -> None:
        ...

    async def probe(self, credentials: Any, context: ProbeContext) -> ProbeResult:
        """Validate, then run the connectivity probe under the context deadline."""
        self.validate(credentials)
        try:
            return await asyncio.wait_for(self._probe(credentials, context), timeout=context.timeout)
        except ConnectorError:
            raise
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise ProbeTimeout("Connection timeout - service not responding")
        except httpx.TransportError as e:
            raise UnreachableError(f"Cannot reach service: {e}")
        except httpx.HTTPError as e:
            raise UpstreamError(f"Request failed: {e}")
        except ValueError as e:
            raise UpstreamError(f"Malformed response: {e}")

    @abstractmethod
    async def _probe(self, credentials: Any, context: ProbeContext) -> ProbeResult:
        ...

    async def post_json(self, context: ProbeContext, path: str, body: Dict[str, Any]) -> Any:
        """POST to a collaborator endpoint and return the parsed body."""
        response = await context.client.post(
            context.url(path),
            json=body,
            headers=context.headers(),
            timeout=context.timeout,
        )
        self.raise_for_status(response)
        return parse_body(response.text)

    @staticmethod
    def raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        code = response.status_code
        detail = error_detail(response)
        if code == 401:
            raise UnauthorizedError(f"Unauthorized (401): {detail}")
        if code == 403:
            raise ForbiddenError(f"Forbidden (403): {detail}")
        if code == 504:
            raise ProbeTimeout(detail)
        if code == 502:
            raise UnreachableError(detail)
        raise UpstreamError(f"HTTP {code}: {detail}")
