"""Database listing API router."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from appconnect.core.config import settings
from appconnect.core.security import get_current_user_id
from appconnect.schemas.schemas import DatabaseListRequest, DatabaseListResponse

logger = logging.getLogger("appconnect.api.databases")

router = APIRouter(prefix="/database", tags=["database"])

DRIVERS = {
    "postgresql": "postgresql+psycopg2",
    "mysql": "mysql+pymysql",
}

LIST_QUERIES = {
    "postgresql": "SELECT datname FROM pg_database "
                  "WHERE datistemplate = false AND datname != 'postgres' ORDER BY datname",
    "mysql": "SHOW DATABASES",
}

MYSQL_SYSTEM_DATABASES = {"information_schema", "mysql", "performance_schema", "sys"}


def fetch_database_names(body: DatabaseListRequest) -> List[str]:
    """Connect with the given login and list user databases."""
    url = URL.create(
        drivername=DRIVERS[body.type],
        username=body.username,
        password=body.password or None,
        host=body.host.strip(),
        port=body.port,
        database=body.database or ("postgres" if body.type == "postgresql" else None),
    )
    engine = create_engine(
        url,
        poolclass=NullPool,
        connect_args={"connect_timeout": settings.DATABASE_CONNECT_TIMEOUT_SECONDS},
    )
    try:
        with engine.connect() as conn:
            names = [str(row[0]) for row in conn.execute(text(LIST_QUERIES[body.type]))]
    finally:
        engine.dispose()

    if body.type == "mysql":
        names = [n for n in names if n not in MYSQL_SYSTEM_DATABASES]
    return names


@router.post("/list", response_model=DatabaseListResponse)
def list_databases(
    body: DatabaseListRequest,
    user_id: int = Depends(get_current_user_id),
):
    """List databases on a PostgreSQL or MySQL server."""
    if not body.type or not body.host or not body.port or not body.username:
        return JSONResponse(
            status_code=400,
            content={"error": "Missing required credentials: type, host, port, username"},
        )
    if body.type not in DRIVERS:
        return JSONResponse(status_code=400, content={"error": "Unsupported database type"})

    try:
        databases = fetch_database_names(body)
    except SQLAlchemyError as e:
        reason = getattr(e, "orig", None) or e
        logger.warning("Database listing on %s:%s failed: %s", body.host, body.port, reason)
        return JSONResponse(status_code=500, content={"error": f"Connection failed: {reason}"})

    return DatabaseListResponse(databases=databases, type=body.type)
