"""FastAPI application entrypoint for the document extraction service."""

from __future__ import annotations

import logging
import os
import sys
import uuid
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from docextract import __version__
from docextract.api import build_api_router
from docextract.api.extract import NO_FILE_MESSAGE
from docextract.config import get_config, parse_bool
from docextract.errors import BadRequestError, PayloadTooLargeError, ProcessingError
from docextract.logging_setup import configure_logging, request_context
from docextract.services.metrics import NullMetrics, PrometheusMetrics
from docextract.services.pipeline import build_pipeline
from docextract.utils.logging_utils import structured_log

DEBUG_ENABLED = any(arg == "--debug" for arg in sys.argv) or parse_bool(os.getenv("DEBUG"))
LOG_LEVEL = logging.DEBUG if DEBUG_ENABLED else logging.INFO

_API_LOG = logging.getLogger("api")
REQUEST_ID_HEADER = "X-Request-ID"


def _health_payload() -> dict[str, str]:
    return {"status": "ok"}


def create_app() -> FastAPI:
    configure_logging(level=LOG_LEVEL)
    structured_log(
        logging.getLogger("startup"),
        logging.INFO,
        "service_bootstrap",
        debug_enabled=DEBUG_ENABLED,
    )
    get_config.cache_clear()

    cfg = get_config()
    app = FastAPI(title="Document Text Extraction API", version=__version__)
    app.state.config = cfg

    if cfg.enable_metrics:
        app.state.metrics = PrometheusMetrics.instrument_app(app)
    else:
        app.state.metrics = NullMetrics()
    app.state.pipeline = build_pipeline(cfg, metrics=app.state.metrics)
    structured_log(
        _API_LOG,
        logging.INFO,
        "pipeline_configured",
        completion_mode=cfg.completion_mode,
        analysis_enabled=cfg.enable_analysis,
        bucket=cfg.s3_bucket,
    )

    @app.exception_handler(BadRequestError)
    async def _bad_request_handler(_r: Request, exc: BadRequestError):
        status_code = 413 if isinstance(exc, PayloadTooLargeError) else 400
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _validation_handler(_r: Request, exc: RequestValidationError):
        # The only request input is the multipart "file" part.
        fields = [str(err.get("loc", ())[-1]) for err in exc.errors() if err.get("loc")]
        message = NO_FILE_MESSAGE if "file" in fields or not fields else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(ProcessingError)
    async def _processing_handler(_r: Request, exc: ProcessingError):
        structured_log(
            _API_LOG,
            logging.ERROR,
            "request_failed",
            status_code=exc.status_code,
            error=str(exc),
            error_type=type(exc.__cause__).__name__ if exc.__cause__ else None,
        )
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

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

    @app.middleware("http")
    async def _request_id(request: Request, call_next: Callable[[Request], Any]):
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        with request_context(rid):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response

    @app.on_event("startup")
    async def _startup_diag():  # pragma: no cover
        cfg.validate_required()
        routes = [getattr(r, "path", str(r)) for r in app.router.routes]
        _API_LOG.info(
            "boot_canary", extra={"service": "docextract", "routes": routes}
        )
        _API_LOG.info(
            "service_startup_marker",
            extra={"phase": "post-config", "version": app.version, "port": cfg.port},
        )

    return app


__all__ = ["create_app"]
