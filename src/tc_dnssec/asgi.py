"""
FastAPI + Uvicorn ASGI application — the DNSSEC key HTTP API.

Routes (Traffic Ops envelopes, see tc_dnssec.railway.http_support):
  POST   /cdns/dnssecks/generate          rotate the keys of a CDN
  DELETE /cdns/name/{name}/dnssec         delete a CDN's bundle
  GET    /cdns/name/{name}/dnssec         read a CDN's bundle
  GET    /deliveryservices/{id}/dnssec    read one delivery service's keys
  GET    /health                          liveness probe

Handlers are blocking (psycopg, httpx, key generation), so every request runs
them in a worker thread with asyncio.to_thread. The caller is identified by
the X-TC-User header set by the authenticating proxy in front of this service.

The lifespan wires the adapters from AppSettings and, when refresh CDNs are
configured, starts the background refresh scheduler.

Entry point for production: uvicorn tc_dnssec.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tc_dnssec import __version__
from tc_dnssec.config import AppSettings
from tc_dnssec.handlers import DNSSECHandlers
from tc_dnssec.main import _create_services, configure_structlog
from tc_dnssec.railway import ErrorCode, FailureDescription
from tc_dnssec.railway.http_support import build_response, error_body
from tc_dnssec.scheduler import create_scheduler

USER_HEADER = "X-TC-User"
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: load settings, create services, start the refresh scheduler.
    Shutdown: stop the scheduler and the key-generation pool.

    An app created with injected handlers skips the wiring.
    """
    if getattr(app.state, "handlers", None) is not None:
        yield
        return

    try:
        settings = AppSettings()
    except Exception as e:
        log.error("asgi.startup_error", error=f"Configuration error: {e}")
        raise

    configure_structlog(settings.log_level)
    handlers, refresher, key_factory = _create_services(settings)
    app.state.handlers = handlers

    scheduler = None
    if settings.refresh.cdns:
        scheduler = create_scheduler(
            refresh_fn=refresher.refresh_all,
            cron=settings.refresh.cron,
            run_on_startup=settings.refresh.run_on_startup,
        )
        scheduler.start()
        log.info("asgi.scheduler_started", cron=settings.refresh.cron, cdns=settings.refresh.cdns)

    log.info("asgi.startup_complete", version=__version__)

    yield

    log.info("asgi.shutdown", reason="SIGTERM or server stop")
    if scheduler is not None:
        scheduler.shutdown(wait=True)
    key_factory.close()
    log.info("asgi.shutdown_complete")


async def _validation_error(request: Request, exc: Exception) -> JSONResponse:
    failure = FailureDescription(ErrorCode.BAD_REQUEST, f"invalid request: {exc}")
    return JSONResponse(status_code=400, content=error_body(failure))


def _handlers(request: Request) -> DNSSECHandlers:
    return request.app.state.handlers


def create_app(handlers: DNSSECHandlers | None = None) -> FastAPI:
    """Build the application; tests inject `handlers` to bypass the lifespan wiring."""
    app = FastAPI(
        title="tc-dnssec",
        description="DNSSEC key lifecycle manager for Traffic Control CDNs",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.handlers = handlers
    app.add_exception_handler(RequestValidationError, _validation_error)

    @app.post("/cdns/dnssecks/generate")
    async def generate(request: Request) -> JSONResponse:
        """Rotate the KSK/ZSK of a CDN and of its HTTP/DNS delivery services."""
        body = await request.body()
        user = request.headers.get(USER_HEADER)
        log.info("api.generate", user=user)
        result = await asyncio.to_thread(_handlers(request).generate, body, user)
        return build_response(result)

    @app.delete("/cdns/name/{name}/dnssec")
    async def delete(name: str, request: Request) -> JSONResponse:
        """Delete the stored bundle of a CDN; succeeds if there is none."""
        user = request.headers.get(USER_HEADER)
        log.info("api.delete", cdn=name, user=user)
        result = await asyncio.to_thread(_handlers(request).delete, name, user)
        return build_response(result)

    @app.get("/cdns/name/{name}/dnssec")
    async def get_cdn_keys(name: str, request: Request) -> JSONResponse:
        result = await asyncio.to_thread(_handlers(request).get_cdn_keys, name)
        return build_response(result)

    @app.get("/deliveryservices/{ds_id}/dnssec")
    async def get_delivery_service_keys(ds_id: int, request: Request) -> JSONResponse:
        result = await asyncio.to_thread(_handlers(request).get_delivery_service_keys, ds_id)
        return build_response(result)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Liveness probe."""
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()


if __name__ == "__main__":
    # For local testing: python -m uvicorn tc_dnssec.asgi:app --reload
    import uvicorn

    uvicorn.run(
        "tc_dnssec.asgi:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
