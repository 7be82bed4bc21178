"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


# ---- Remote record ----
class ConnectionsState(BaseModel):
    """Full snapshot stored per user. Connections are kept as opaque dicts."""
    connections: List[Dict[str, Any]] = Field(default_factory=list)
    connected_ids: List[str] = Field(default_factory=list, alias="connectedIds")

    class Config:
        populate_by_name = True


class SuccessResponse(BaseModel):
    success: bool = True


# ---- Webhook proxy ----
class WebhookProxyRequest(BaseModel):
    url: str = Field(..., min_length=1)
    method: str = "GET"
    payload: Optional[Any] = None


# ---- Workflow API ----
class WorkflowListRequest(BaseModel):
    api_url: Optional[str] = Field(None, alias="apiUrl")
    api_key: Optional[str] = Field(None, alias="apiKey")
    api_type: str = Field("n8n", alias="apiType")

    class Config:
        populate_by_name = True


# ---- Database listing ----
class DatabaseListRequest(BaseModel):
    type: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None


class DatabaseListResponse(BaseModel):
    success: bool = True
    databases: List[str]
    type: str
