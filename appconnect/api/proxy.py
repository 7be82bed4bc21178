"""Outbound calls made on behalf of the client: webhook proxy and workflow listing."""

import ipaddress
import json
import logging
from typing import AsyncIterator
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from appconnect.core.config import settings
from appconnect.core.security import get_current_user_id
from appconnect.schemas.schemas import WebhookProxyRequest, WorkflowListRequest

logger = logging.getLogger("appconnect.api.proxy")

router = APIRouter(tags=["proxy"])

BLOCKED_HOSTNAMES = {
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "metadata.google.internal",
    "169.254.169.254",
}


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """Per-request outbound client; redirects are not followed."""
    async with httpx.AsyncClient(follow_redirects=False) as client:
        yield client


def is_blocked_host(hostname: str) -> bool:
    """True for hosts on internal or private networks."""
    hostname = (hostname or "").lower().strip("[]")
    if not hostname or hostname in BLOCKED_HOSTNAMES:
        return True
    if hostname.startswith(("10.", "192.168.", "172.")):
        return True
    if hostname.endswith((".local", ".internal")):
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local or address.is_unspecified


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/webhook-proxy")
async def webhook_proxy(
    body: WebhookProxyRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    user_id: int = Depends(get_current_user_id),
):
    """Call a user-supplied webhook server-side and relay its body."""
    parsed = urlparse(body.url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return _error(400, "Only http and https protocols are allowed")
    if is_blocked_host(parsed.hostname):
        return _error(403, "Webhook URL targeting internal networks is not allowed")

    method = body.method.upper()
    if method not in ("GET", "POST"):
        return _error(400, f"Unsupported method: {body.method}")

    limit = settings.WEBHOOK_PROXY_MAX_BYTES
    try:
        async with client.stream(
            method,
            body.url.strip(),
            json=body.payload if method == "POST" else None,
            headers={"Content-Type": "application/json"},
            timeout=settings.PROBE_TIMEOUT_SECONDS,
        ) as upstream:
            data = b""
            async for chunk in upstream.aiter_bytes():
                if len(data) + len(chunk) > limit:
                    logger.warning("Webhook response from %s exceeded %d bytes", parsed.hostname, limit)
                    return _error(502, "Webhook response too large")
                data += chunk
            status_code = upstream.status_code
    except httpx.TimeoutException:
        return _error(504, "Webhook timeout")
    except httpx.HTTPError as e:
        return _error(502, f"Webhook unreachable: {e}")

    text = data.decode("utf-8", errors="replace")
    if not text.strip():
        return JSONResponse(
            status_code=status_code,
            content={"success": True, "files": [], "message": "Webhook reachable (empty response)"},
        )
    try:
        json.loads(text)
    except ValueError:
        return JSONResponse(
            status_code=status_code,
            content={"success": True, "files": [], "rawResponse": text[:500]},
        )
    return Response(content=data, status_code=status_code, media_type="application/json")


def workflows_url(api_url: str) -> str:
    """``<scheme>://<host><base path>/api/v1/workflows``."""
    parsed = urlparse(api_url)
    base_path = parsed.path.rstrip("/") if parsed.path not in ("", "/") else ""
    return f"{parsed.scheme}://{parsed.netloc}{base_path}/api/v1/workflows"


@router.post("/workflow-api/list")
async def list_workflows(
    body: WorkflowListRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    user_id: int = Depends(get_current_user_id),
):
    """List workflows on an n8n server; MCP endpoints are only checked for a valid URL."""
    if not body.api_url or not body.api_key:
        return _error(400, "Missing apiUrl or apiKey")

    parsed = urlparse(body.api_url.strip())
    valid_url = parsed.scheme in ("http", "https") and bool(parsed.netloc)

    if body.api_type == "mcp":
        if not valid_url:
            return _error(
                400,
                'Invalid MCP URL format. Please use full URL like "https://your-domain.com/mcp-server/http"',
            )
        return {"data": [], "statusMessage": "MCP server connection configured"}

    if not valid_url:
        return _error(400, f"Invalid API URL format: {body.api_url}")

    try:
        upstream = await client.get(
            workflows_url(body.api_url.strip()),
            headers={"X-N8N-API-KEY": body.api_key, "Content-Type": "application/json"},
            timeout=settings.WORKFLOW_API_TIMEOUT_SECONDS,
        )
    except httpx.TimeoutException:
        logger.error("Workflow API request to %s timed out", parsed.hostname)
        return _error(504, "Request timeout - API server not responding")
    except httpx.HTTPError as e:
        logger.error("Workflow API request to %s failed: %s", parsed.hostname, e)
        return _error(500, f"Connection error: {e}")

    if upstream.status_code == 401:
        logger.error("Workflow API 401 Unauthorized - Invalid API key or endpoint")
        return JSONResponse(
            status_code=401,
            content={"error": "Unauthorized (401): Invalid API key or endpoint", "statusCode": 401},
        )
    if upstream.status_code >= 400:
        logger.error("Workflow API error %s: %s", upstream.status_code, upstream.text[:200])
        if upstream.text:
            return Response(
                content=upstream.content,
                status_code=upstream.status_code,
                media_type="application/json",
            )
        return _error(upstream.status_code, f"HTTP {upstream.status_code}")
    return Response(content=upstream.content, status_code=upstream.status_code, media_type="application/json")
