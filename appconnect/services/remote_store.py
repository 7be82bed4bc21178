"""HTTP client for the server-held connection record (GET/PUT /connections)."""

import logging
from typing import Optional, Dict, Any, List

import httpx

from appconnect.core.config import settings
from appconnect.core.exceptions import RemoteSyncError

logger = logging.getLogger("appconnect.remote")


class RemoteStore:
    """Reads and replaces the full remote snapshot for the current session.

    Without a session token there is no remote record: ``fetch`` returns None
    and ``save`` does nothing.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.token = token if token is not None else settings.SESSION_TOKEN
        self.timeout = timeout or settings.PROBE_TIMEOUT_SECONDS

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    @property
    def has_session(self) -> bool:
        return bool(self.token)

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
        }

    async def _request(self, method: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(
                method,
                f"{self.base_url}/connections",
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise RemoteSyncError(f"Remote record {method} failed: {e}")
        if not response.is_success:
            raise RemoteSyncError(f"Remote record {method} returned HTTP {response.status_code}")
        return response

    async def fetch(self) -> Optional[Dict[str, Any]]:
        """Return ``{"connections": [...], "connectedIds": [...]}`` or None."""
        if not self.has_session:
            return None
        response = await self._request("GET")
        try:
            data = response.json()
        except ValueError:
            raise RemoteSyncError("Remote record is not valid JSON")
        if not isinstance(data, dict):
            raise RemoteSyncError("Remote record has an unexpected shape")
        return {
            "connections": data.get("connections") or [],
            "connectedIds": data.get("connectedIds") or [],
        }

    async def save(self, connections: List[Dict[str, Any]], connected_ids: List[str]) -> None:
        """Replace the remote record with a full snapshot."""
        if not self.has_session:
            logger.debug("No session token; skipping remote push")
            return
        await self._request(
            "PUT",
            json={"connections": connections, "connectedIds": sorted(connected_ids)},
        )

    async def clear(self) -> None:
        await self.save([], [])

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
