"""
NPS Survey API

Public survey backend: records responses and runs each campaign's
post-submit automation (webhook, redirect, return to form).
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nps_api.config import get_settings
from nps_api.middleware import RequestIDMiddleware, configure_logging
from nps_api.routers import survey
from nps_api.services.http_client import close_shared_client

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    configure_logging(logging.DEBUG if settings.debug else logging.INFO)
    yield
    survey.get_registry().close_all()
    await close_shared_client()
    logger.info("NPS survey API shut down")


app = FastAPI(
    title="NPS Survey API",
    description="Public NPS surveys with post-submit webhook and redirect automation",
    version="0.1.0",
    lifespan=lifespan,
)

# Request ID (runs first, outermost middleware)
app.add_middleware(RequestIDMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(survey.router, prefix="/api/nps")


def _check_config() -> str:
    """Verify required configuration is loaded. Returns 'ok' or 'fail'."""
    s = get_settings()
    return "ok" if s.storage_api_url else "fail"


@app.get("/api/nps/health")
async def health_check() -> JSONResponse:
    """Health check verifying configuration."""
    checks = {"config": _check_config()}
    failed = [k for k, v in checks.items() if v != "ok"]
    if failed:
        logger.warning("Health check degraded, failed: %s", ", ".join(failed))

    result: dict[str, Any] = {
        "status": "degraded" if failed else "ok",
        "service": "nps-survey-api",
        "version": "0.1.0",
        "checks": checks,
        "sessions": len(survey.get_registry()),
    }
    return JSONResponse(content=result, status_code=200)
