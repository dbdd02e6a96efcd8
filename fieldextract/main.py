"""FastAPI application entrypoint for the batch PDF field extraction service."""

from __future__ import annotations

import logging
import os
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fieldextract.api import build_api_router
from fieldextract.api.extract import error_response
from fieldextract.config import AppConfig, get_config
from fieldextract.errors import ValidationError
from fieldextract.logging_setup import configure_logging
from fieldextract.services.batch_scheduler import BatchScheduler, SchedulerSettings
from fieldextract.services.interfaces import ExtractionBackend, MetricsClient
from fieldextract.services.job_driver import JobLifecycleDriver
from fieldextract.services.metrics import NullMetrics, PrometheusMetrics
from fieldextract.services.openai_backend import OpenAIAssistantsBackend
from fieldextract.services.retry_orchestrator import ExtractionRetrier
from fieldextract.services.template_cache import SharedTemplateCache
from fieldextract.services.transport import RateLimitedTransport
from fieldextract.utils.logging_utils import structured_log

DEBUG_ENABLED = any(arg == "--debug" for arg in sys.argv) or os.getenv(
    "DEBUG", "false"
).strip().lower() in {"1", "true", "yes", "on"}
LOG_LEVEL = logging.DEBUG if DEBUG_ENABLED else logging.INFO

_API_LOG = logging.getLogger("api")

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def _health_payload() -> dict[str, str]:
    return {"status": "ok"}


def build_scheduler(
    cfg: AppConfig,
    *,
    backend: ExtractionBackend | None = None,
    metrics: MetricsClient | None = None,
) -> BatchScheduler:
    """Wire transport, template cache, driver and retrier into a scheduler.

    Without an API key (and no explicit ``backend``) the scheduler runs
    offline and answers with placeholder data.
    """
    settings = SchedulerSettings(
        batch_size=cfg.batch_size,
        inter_batch_delay=cfg.rate_limit_delay_seconds,
        stagger_delay=cfg.stagger_delay_seconds,
    )
    if backend is None:
        if cfg.offline_mode:
            structured_log(_API_LOG, logging.WARNING, "offline_mode_enabled", component="scheduler")
            return BatchScheduler(retrier=None, settings=settings, metrics=metrics)
        backend = OpenAIAssistantsBackend(api_key=cfg.openai_api_key, model=cfg.openai_model)

    transport = RateLimitedTransport(
        max_attempts=cfg.transport_max_attempts,
        rate_limit_delay=cfg.rate_limit_delay_seconds,
        initial_delay=cfg.initial_delay_seconds,
        max_delay=cfg.max_delay_seconds,
        metrics=metrics,
    )
    remote = backend

    async def _create_template(field_names):
        return await transport.call(
            "create_template", lambda: remote.create_template(field_names)
        )

    driver = JobLifecycleDriver(
        backend=remote,
        transport=transport,
        template_cache=SharedTemplateCache(_create_template),
        poll_interval=cfg.poll_interval_seconds,
        max_wait=cfg.max_wait_seconds,
        max_file_bytes=cfg.max_file_bytes,
        metrics=metrics,
    )
    retrier = ExtractionRetrier(
        driver,
        max_attempts=cfg.max_retries,
        initial_delay=cfg.initial_delay_seconds,
        max_delay=cfg.max_delay_seconds,
        metrics=metrics,
    )
    return BatchScheduler(retrier=retrier, settings=settings, metrics=metrics)


def create_app() -> FastAPI:
    configure_logging(level=LOG_LEVEL)
    get_config.cache_clear()

    cfg = get_config()
    cfg.validate_required()
    app = FastAPI(title="PDF Field Extraction API", version="1.0.0")
    app.state.config = cfg

    if cfg.enable_metrics:
        app.state.metrics = PrometheusMetrics.instrument_app(app)
    else:
        app.state.metrics = NullMetrics()

    app.state.scheduler = build_scheduler(cfg, metrics=app.state.metrics)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOWED_HEADERS,
    )

    @app.exception_handler(ValidationError)
    async def _val_handler(_r: Request, exc: ValidationError) -> JSONResponse:
        return error_response(str(exc))

    # Health endpoints ---------------------------------------------------------
    @app.get("/healthz", summary="Healthz")
    async def healthz():
        return _health_payload()

    @app.get("/health", include_in_schema=False)
    async def health_alias():
        return _health_payload()

    @app.get("/readyz", include_in_schema=False)
    async def readyz():
        return _health_payload()

    @app.get("/", include_in_schema=False)
    async def root_health():
        return _health_payload()

    app.include_router(build_api_router())

    @app.on_event("startup")
    async def _startup_diag():  # pragma: no cover
        routes = [getattr(r, "path", str(r)) for r in app.router.routes]
        _API_LOG.info(
            "boot_canary", extra={"service": "fieldextract", "routes": routes}
        )
        _API_LOG.info("service_config", extra=cfg.summary())

    return app


__all__ = ["create_app", "build_scheduler"]
