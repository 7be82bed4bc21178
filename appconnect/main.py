"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from appconnect.core.config import settings
from appconnect.core.middleware import setup_middleware
from appconnect.core.exceptions import (
    AppConnectError,
    ConnectionNotFoundError,
    DuplicateError,
)

from appconnect.api.connections import router as connections_router
from appconnect.api.proxy import router as proxy_router
from appconnect.api.databases import router as databases_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("appconnect")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s API", settings.APP_NAME)
    try:
        from appconnect.db.session import init_db
        init_db()
        logger.info("Record store ready")
    except SQLAlchemyError as e:
        logger.warning("Record store not available: %s", e)

    yield

    logger.info("Shutting down %s API", settings.APP_NAME)


app = FastAPI(
    title="AppConnect API",
    description="Connection records, webhook proxy and listing endpoints for integrations",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


@app.exception_handler(AppConnectError)
async def appconnect_exception_handler(request: Request, exc: AppConnectError):
    if isinstance(exc, ConnectionNotFoundError):
        status_code = 404
    elif isinstance(exc, DuplicateError):
        status_code = 409
    else:
        status_code = 400
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message},
    )

# Register routers
app.include_router(connections_router, prefix="/api")
app.include_router(proxy_router, prefix="/api")
app.include_router(databases_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
