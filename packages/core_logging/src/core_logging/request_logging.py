"""
Request middleware shared by the gateway processes: binds ``x-request-id``,
writes request/response bookends and flushes the per-request summary.
"""
from __future__ import annotations

import time
from typing import Dict, Optional, Tuple

from fastapi import FastAPI, Request

import core_metrics
from core_logging import (
    bind_request_id,
    emit_request_error_summary,
    emit_request_summary,
    get_logger,
    log_stage,
    reset_request_aggregate,
)
from core_http.headers import REQUEST_ID
from core_utils.ids import generate_request_id

_QUIET_PATHS: Tuple[str, ...] = ("/healthz", "/readyz", "/metrics")

# Response headers echoed on the ``response_headers`` line
_IDENTITY_HEADERS = {
    "x-store-id": "store_id",
    "x-generation-hash": "root_hash",
    "x-key-exists": "key_exists",
}


def _identity(headers) -> Dict[str, Optional[str]]:
    return {field: headers.get(name) for name, field in _IDENTITY_HEADERS.items()}


def attach_request_logging(
    app: FastAPI,
    *,
    service: str,
    metric_prefix: str,
    quiet_paths: Tuple[str, ...] = _QUIET_PATHS,
) -> None:
    """
    Metrics written per request:
      - {metric_prefix}_ttfb_seconds          histogram, time until headers
      - {metric_prefix}_http_requests_total   counter{method,code}
      - {metric_prefix}_http_5xx_total        counter
    """
    logger = get_logger(service)

    @app.middleware("http")
    async def _request_bookends(request: Request, call_next):
        path = request.url.path or "/"
        loud = path not in quiet_paths
        req_id = request.headers.get(REQUEST_ID) or generate_request_id()
        bind_request_id(req_id)
        reset_request_aggregate()
        t0 = time.perf_counter()
        if loud:
            log_stage(logger, "http.server", "http.server.request",
                      request_id=req_id, http={"method": request.method, "target": path})

        resp = await call_next(request)
        resp.headers[REQUEST_ID] = req_id

        # Bodies may still be streaming; this measures time to headers
        elapsed = time.perf_counter() - t0
        code = str(resp.status_code)
        core_metrics.histogram(f"{metric_prefix}_ttfb_seconds", elapsed)
        core_metrics.counter(f"{metric_prefix}_http_requests_total", 1, method=request.method, code=code)
        if code.startswith("5"):
            core_metrics.counter(f"{metric_prefix}_http_5xx_total", 1)

        if loud:
            log_stage(logger, "http.server", "http.server.response",
                      request_id=req_id, latency_ms=int(elapsed * 1000.0),
                      http={"status_code": resp.status_code, "method": request.method, "target": path})
            log_stage(logger, "summary", "response_headers", request_id=req_id, **_identity(resp.headers))
            emit_request_error_summary(logger, service=service)
            emit_request_summary(logger, service=service)
        return resp


__all__ = ["attach_request_logging"]
