from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nudge.agent.provider_router import ProviderRegistry, build_provider
from nudge.api import ops, providers, sessions, settings as settings_api, vault
from nudge.config import load_settings
from nudge.db.connection import open_connection
from nudge.db.migrations import apply_migrations
from nudge.db.repositories import Repository
from nudge.deps import set_dependencies
from nudge.errors import error_from_exception
from nudge.observability.logging import get_runtime_logger
from nudge.services.chat_service import ChatService
from nudge.services.credential_store import select_credential_store
from nudge.services.settings_store import SettingsStore
from nudge.sse.event_bus import EventBus
from nudge.trace import TRACE_HEADER, bind_trace_id, get_current_trace_id, normalize_trace_id, reset_trace_id

settings = load_settings()
logger = get_runtime_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await apply_migrations(settings.db_path)
    conn = await open_connection(settings.db_path)
    repo = Repository(conn)
    settings_store = SettingsStore(repo, settings.default_vault_path)
    credentials = select_credential_store(repo, settings.secret_key)
    registry = ProviderRegistry(
        lambda provider_id: build_provider(
            provider_id,
            max_tokens=settings.max_tokens,
            custom_tls_verify=settings.custom_tls_verify,
        )
    )
    chat_service = ChatService(
        repo=repo,
        bus=EventBus(),
        settings_store=settings_store,
        credentials=credentials,
        registry=registry,
        max_rounds=settings.max_rounds,
    )
    set_dependencies(repo, settings_store, credentials, registry, chat_service)
    logger.info(
        "runtime_started",
        extra={"path": str(settings.db_path), "details": {"credential_tier": credentials.tier}},
    )

    yield

    await chat_service.cancel()
    await registry.aclose()
    await conn.close()


app = FastAPI(title="Nudge Runtime", version=ops.RUNTIME_VERSION, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["*"],
)


@app.middleware("http")
async def trace_middleware(request: Request, call_next):
    trace_id = normalize_trace_id(request.headers.get(TRACE_HEADER))
    request.state.trace_id = trace_id
    token = bind_trace_id(trace_id)
    started = datetime.now(tz=timezone.utc)
    try:
        response = await call_next(request)
    except Exception as exc:  # noqa: BLE001
        status_code, payload = error_from_exception(exc, trace_id)
        response = JSONResponse(status_code=status_code, content=payload)
    finally:
        reset_trace_id(token)
    duration_ms = int((datetime.now(tz=timezone.utc) - started).total_seconds() * 1000)
    logger.info(
        "http_request",
        extra={
            "trace_id": trace_id,
            "path": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "outcome": "ok" if response.status_code < 400 else "error",
        },
    )
    response.headers[TRACE_HEADER] = trace_id
    return response


@app.exception_handler(Exception)
async def exception_handler(request: Request, exc: Exception):
    trace_id = str(getattr(request.state, "trace_id", get_current_trace_id()))
    status_code, payload = error_from_exception(exc, trace_id)
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers[TRACE_HEADER] = trace_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return await exception_handler(request, exc)


app.include_router(ops.router)
app.include_router(sessions.router)
app.include_router(providers.router)
app.include_router(settings_api.router)
app.include_router(vault.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "nudge.main:app",
        host=settings.runtime_host,
        port=settings.runtime_port,
        reload=settings.dev_mode,
        log_level="debug" if settings.dev_mode else "info",
    )
