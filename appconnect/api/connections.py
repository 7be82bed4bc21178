"""Remote record API router: one connection snapshot per user."""

import json
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from appconnect.core.config import settings
from appconnect.core.exceptions import bad_request, payload_too_large
from appconnect.core.security import get_current_user_id
from appconnect.db.session import get_db
from appconnect.models.connection_record import ConnectionRecord
from appconnect.schemas.schemas import ConnectionsState, SuccessResponse

logger = logging.getLogger("appconnect.api.connections")

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("", response_model=ConnectionsState, response_model_by_alias=True)
async def get_connections(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Return the caller's stored snapshot (empty if none)."""
    record = db.query(ConnectionRecord).filter(ConnectionRecord.user_id == user_id).first()
    if record is None:
        return ConnectionsState()
    try:
        return ConnectionsState.model_validate_json(record.state_json)
    except SchemaError:
        logger.warning("Stored snapshot for user %s is unreadable; returning empty", user_id)
        return ConnectionsState()


@router.put("", response_model=SuccessResponse)
async def put_connections(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Replace the caller's snapshot."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > settings.MAX_BODY_BYTES:
        raise payload_too_large()
    raw = await request.body()
    if len(raw) > settings.MAX_BODY_BYTES:
        raise payload_too_large()

    try:
        state = ConnectionsState.model_validate_json(raw or b"{}")
    except SchemaError as e:
        raise bad_request(f"Invalid connection snapshot: {e.errors()[0].get('msg')}")

    state_json = json.dumps(state.model_dump(by_alias=True))
    record = db.query(ConnectionRecord).filter(ConnectionRecord.user_id == user_id).first()
    if record is None:
        db.add(ConnectionRecord(user_id=user_id, state_json=state_json))
    else:
        record.state_json = state_json
    db.commit()
    logger.info("Stored %d connection(s) for user %s", len(state.connections), user_id)
    return SuccessResponse()
