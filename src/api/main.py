from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from src.api.middleware.access_gate import AccessGateMiddleware
from src.api.middleware.paths import is_api_path
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.routes import api_router
from src.config import get_settings
from src.db.connection import check_db_health, get_sessionmaker
from src.handlers.system_user import resolve_system_user_id
from src.ops.events import configure_logging
from src.security.data_protection import get_data_protection_config
from src.security.tokens import get_token_config

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    settings = get_settings()
    # Fails fast with ConfigurationError when secret material is missing.
    get_token_config()
    protection_config = get_data_protection_config()

    async with get_sessionmaker()() as session:
        app.state.system_user_id = await resolve_system_user_id(
            session, email=settings.sa_email, config=protection_config
        )
    logger.info("Startup complete (system user resolved: %s)", app.state.system_user_id is not None)
    yield


app = FastAPI(title="CECMS Auth Core", version="0.1.0", lifespan=lifespan)
app.add_middleware(AccessGateMiddleware)
app.add_middleware(RequestContextMiddleware)
app.include_router(api_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> Response:
    """JSON API callers get the {success, message} envelope with 400 for unreadable bodies."""
    if not is_api_path(request.url.path):
        return await request_validation_exception_handler(request, exc)
    error_types = sorted({str(error.get("type", "invalid")) for error in exc.errors()})
    logger.info(
        "Rejected invalid request body for %s: %s",
        request.url.path,
        ", ".join(error_types),
        extra={"event_type": "api.request.invalid", "ops_payload": {"path": request.url.path, "errors": error_types}},
    )
    return JSONResponse(status_code=400, content={"success": False, "message": "Invalid request body"})


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health/db")
async def health_db() -> dict[str, str]:
    if await check_db_health():
        return {"status": "ok"}
    raise HTTPException(status_code=503, detail="database unavailable")
