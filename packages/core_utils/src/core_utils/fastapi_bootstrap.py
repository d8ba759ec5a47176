"""
Common FastAPI wiring for gateway processes.

``CORS_ORIGINS`` (comma or whitespace separated) enables CORS for GET/HEAD.
"""
from __future__ import annotations

import os
import re
from typing import List, Optional

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from core_logging.request_logging import attach_request_logging
from core_metrics.fastapi import attach_prometheus_endpoint


def cors_origins(raw: Optional[str]) -> List[str]:
    return [o for o in re.split(r"[\s,]+", raw or "") if o]


def setup_service(app: FastAPI, service_name: str, *, metrics_endpoint: bool = True) -> None:
    """
    Install request logging, ``/metrics`` and optional CORS on *app*.
    Call before registering catch-all routes so the fixed paths match first.
    """
    attach_request_logging(app, service=service_name, metric_prefix=service_name)
    if metrics_endpoint:
        attach_prometheus_endpoint(app)
    origins = cors_origins(os.getenv("CORS_ORIGINS"))
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "HEAD"],
            allow_headers=["*"],
        )


__all__ = ["setup_service", "cors_origins"]
