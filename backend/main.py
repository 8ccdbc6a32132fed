import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import (
    generate_router,
    logs_router,
    runner_router,
    spaces_router,
    tree_router,
    vaults_router,
)
from api.deps import Services
from config import Settings
from db import SQLiteClient
from errors import CodeFlowError
from logging_config import setup_logging

APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def _utc_iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg") or "invalid value")
    return f"{location}: {message}" if location else message


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build an application bound to ``settings`` (environment by default)."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        logger.info("CodeFlow API starting...")

        store = SQLiteClient(settings.database_url, busy_timeout_sec=settings.store_timeout_sec)
        try:
            await store.init_db()
        except Exception as exc:
            await store.close()
            raise RuntimeError("Failed to initialize SQLite during startup") from exc
        app.state.services = Services.build(settings, store)
        logger.info("SQLite database initialized.")

        yield

        logger.info("Closing database connections...")
        await store.close()

    app = FastAPI(
        title="CodeFlow API",
        description="Workspace backend: spaces, vaults and code logs",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    allow_credentials = "*" not in settings.cors_allow_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CodeFlowError)
    async def handle_codeflow_error(request: Request, exc: CodeFlowError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code, content=exc.to_payload(), headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"code": "INVALID_INPUT", "message": _validation_message(exc)},
        )

    app.include_router(spaces_router)
    app.include_router(vaults_router)
    app.include_router(logs_router)
    app.include_router(tree_router)
    app.include_router(runner_router)
    app.include_router(generate_router)

    @app.get("/")
    async def root():
        return {
            "message": "CodeFlow API",
            "version": APP_VERSION,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health(request: Request):
        services: Services = request.app.state.services
        payload: Dict[str, Any] = {
            "status": "ok",
            "timestamp": _utc_iso_now(),
        }
        try:
            payload["store"] = await services.run_store(services.store.get_stats())
        except CodeFlowError as exc:
            payload["status"] = "degraded"
            payload["store"] = {"degraded": True, "reason": exc.message}
        payload["runtime"] = await services.runtime.status()
        return payload

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
