"""
backend/lastman/main.py

Purpose:
    FastAPI application bootstrap: middleware and router wiring, exception
    mapping, and the scheduler that runs the round resolution sweep.

Dependencies:
    - lastman.database
    - lastman.workers.round_resolver
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

import lastman.database as _db
from lastman.config import settings
from lastman.database import close_db, connect_db
from lastman.middleware.logging import StructuredLoggingMiddleware, setup_logging

logger = logging.getLogger("lastman")
scheduler = AsyncIOScheduler()
SWEEP_JOB_ID = "round_resolver"


def _register_sweep_job() -> bool:
    from lastman.workers.round_resolver import sweep_locked_rounds

    if not settings.RESOLVER_SWEEP_ENABLED or scheduler.get_job(SWEEP_JOB_ID):
        return False
    scheduler.add_job(
        sweep_locked_rounds,
        "interval",
        id=SWEEP_JOB_ID,
        replace_existing=True,
        minutes=settings.RESOLVER_SWEEP_MINUTES,
    )
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()

    scheduler.start()
    if _register_sweep_job():
        logger.info("Round resolver sweep every %d minutes", settings.RESOLVER_SWEEP_MINUTES)
    else:
        logger.info("Round resolver sweep disabled via config")

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    await close_db()


app = FastAPI(
    title="Last Man Standing",
    description="Elimination competitions: one pick per round, lose and you lose a life",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from lastman.routers.competitions import router as competitions_router
from lastman.routers.fixtures import router as fixtures_router
from lastman.routers.rounds import router as rounds_router

app.include_router(competitions_router)
app.include_router(rounds_router)
app.include_router(fixtures_router)


@app.exception_handler(InvalidId)
async def invalid_object_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=400, content={"detail": "Invalid ID."})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate entry."})


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    # Includes transaction conflicts that outlived with_transaction's retries.
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred. Please retry."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check -- verifies the DB connection and the sweep job."""
    from lastman.workers.round_resolver import last_sweep

    sweep = None
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
        sweep = await last_sweep()
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "resolver_sweep": bool(scheduler.get_job(SWEEP_JOB_ID)),
        "resolver_last_sweep": sweep.get("swept_at") if sweep else None,
    }
