"""HTTP middleware for the collaborator API: CORS and the access log.

Every response carries ``X-Request-Id``. A caller-supplied id is reused when
it looks like one of ours, so a client's sync push and the matching server
log line can be correlated. The access log names the authenticated user,
which ``get_current_user_id`` stores on ``request.state``.
"""

import logging
import re
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from appconnect.core.config import settings

logger = logging.getLogger("appconnect.http")

REQUEST_ID_HEADER = "X-Request-Id"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def resolve_request_id(incoming: Optional[str]) -> str:
    if incoming and _REQUEST_ID_PATTERN.match(incoming):
        return incoming
    return uuid.uuid4().hex


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        duration = round((time.perf_counter() - started) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)

        user_id = getattr(request.state, "user_id", None)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s -> %s in %sms user=%s id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            user_id if user_id is not None else "-",
            request_id,
        )
        return response


def setup_middleware(app: FastAPI) -> None:
    """Install CORS and the access log on ``app``."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "PUT", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(AccessLogMiddleware)
