"""
Application entry point — wires dependencies and starts the HTTP server.

Composition root: creates the concrete adapters, injects them into the
rotator, handlers and refresher, and hands the app to uvicorn.

This is the ONLY place where concrete adapter classes are instantiated.
Everything else depends on Protocol interfaces.
"""

from __future__ import annotations

import logging
import sys

import structlog
import uvicorn

from tc_dnssec import __version__
from tc_dnssec.adapters.audit_log import PsycopgAuditLog
from tc_dnssec.adapters.database import PsycopgTransactionRunner
from tc_dnssec.adapters.key_factory import DnssecKeyFactory
from tc_dnssec.adapters.metadata import PsycopgMetadataReader
from tc_dnssec.adapters.riak_store import RiakKeyStore
from tc_dnssec.config import AppSettings
from tc_dnssec.handlers import DNSSECHandlers
from tc_dnssec.refresh import KeyRefresher
from tc_dnssec.rotation import Rotator


def configure_structlog(log_level: str = "INFO") -> None:
    """Configure structlog: contextvars, level, ISO timestamps, console output."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


type _Services = tuple[DNSSECHandlers, KeyRefresher, DnssecKeyFactory]


def _create_services(settings: AppSettings) -> _Services:
    """
    Instantiate the adapters and the services built on them.

    Returns the handlers, the refresher and the key factory (whose worker
    pool has to be closed on shutdown).
    """
    transactions = PsycopgTransactionRunner(
        dsn=settings.database.get_dsn(),
        connect_timeout=settings.database.connect_timeout_seconds,
    )
    key_store = RiakKeyStore(
        nodes=settings.riak.nodes(),
        tls=settings.riak.tls,
        user=settings.riak.user,
        password=settings.riak.get_password(),
        insecure=settings.riak.insecure,
        timeout=settings.request_timeout_seconds,
        retries=settings.riak.retries,
    )
    metadata = PsycopgMetadataReader()
    key_factory = DnssecKeyFactory(
        algorithm=settings.crypto.algorithm,
        key_size=settings.crypto.key_size,
        workers=settings.crypto.workers,
    )
    handlers = DNSSECHandlers(
        transactions=transactions,
        rotator=Rotator(key_store=key_store, metadata=metadata, key_factory=key_factory),
        key_store=key_store,
        metadata=metadata,
        audit_log=PsycopgAuditLog(),
        request_timeout_seconds=settings.request_timeout_seconds,
    )
    refresher = KeyRefresher(
        handlers=handlers,
        key_store=key_store,
        metadata=metadata,
        transactions=transactions,
        cdns=settings.refresh.cdns,
        threshold_days=settings.refresh.threshold_days,
        ttl_seconds=settings.refresh.ttl,
        ksk_expiration_days=settings.refresh.ksk_expiration_days,
        zsk_expiration_days=settings.refresh.zsk_expiration_days,
    )
    return handlers, refresher, key_factory


def main() -> None:
    """Validate configuration and serve the API with uvicorn."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()
    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        algorithm=settings.crypto.algorithm,
        riak_nodes=settings.riak.nodes(),
        refresh_cdns=settings.refresh.cdns,
    )

    uvicorn.run(
        "tc_dnssec.asgi:app",
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
