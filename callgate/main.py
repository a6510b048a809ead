"""Callgate FastAPI application factory + lifespan lifecycle.

The server hosts the admin API. Enforcement points use the same AdminGate
in-process (app.state.gate); they never go through HTTP.

Startup sequence:
  1. load_config()                → app.state.config
  2. AdminGate.from_config()      → app.state.gate (whitelist + rejection log)
  3. RuleSetLoader.load()         → first rule snapshot (fails fast on a bad file)
  4. rule file watcher            → asyncio task (if gate.watch_rules)
  5. app.state.ready = True

Shutdown (reverse):
  app.state.ready = False → cancel watcher
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from callgate.admin.limiter import limiter
from callgate.admin.middleware import AdminLocalhostMiddleware
from callgate.admin.router import router as admin_router
from callgate.config import Config, load_config
from callgate.gate import AdminGate
from callgate.rules.loader import RuleSetLoader
from callgate.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health(request: Request) -> JSONResponse:
    """Liveness + gate summary. 503 until startup completes."""
    gate = getattr(request.app.state, "gate", None)
    if not getattr(request.app.state, "ready", False) or gate is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    status = gate.status()
    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "rules": status["rules"],
            "whitelisted": status["whitelisted"],
            "pending_rejections": status["pending_rejections"],
        },
    )


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Callgate starting up...")

    # load_config() raises SystemExit on an invalid config before ready=True.
    config: Config = load_config()
    app.state.config = config

    gate = AdminGate.from_config(config)
    app.state.gate = gate

    # A malformed rule file aborts startup: MalformedRuleError propagates.
    rules_path = config.gate.resolved_rules_path
    rule_loader = RuleSetLoader(gate.publish_rules, root_dir=config.gate.resolved_root_dir)
    rule_loader.load(rules_path)
    app.state.rule_loader = rule_loader

    watcher_task: asyncio.Task[None] | None = None
    if config.gate.watch_rules and os.path.exists(rules_path):
        watcher_task = asyncio.create_task(rule_loader.start_watcher(rules_path))
    else:
        logger.debug("Rule file watcher disabled", path=rules_path)

    app.state.ready = True
    logger.info("Callgate ready", **gate.status())

    yield

    logger.info("Callgate shutting down...")
    app.state.ready = False

    if watcher_task is not None and not watcher_task.done():
        watcher_task.cancel()
        try:
            await watcher_task
        except asyncio.CancelledError:
            pass

    logger.info("Callgate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the Callgate admin application.

    Call this directly in tests for an isolated instance; the lifespan only
    runs when the app is served (or entered via TestClient as a context manager).
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="Callgate",
        description="Access-control gate for remote callables and filesystem operations",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    application.state.ready = False
    application.state.gate = None

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Last added runs first: the localhost check fires before rate limiting and auth.
    application.add_middleware(SlowAPIMiddleware)
    application.add_middleware(AdminLocalhostMiddleware)

    application.include_router(health_router)
    application.include_router(admin_router, prefix="/admin")

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return application


app = create_app()
