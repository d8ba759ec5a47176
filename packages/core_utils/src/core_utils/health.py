"""
``/healthz`` and ``/readyz`` for FastAPI services.

A check is a zero-argument callable returning a bool or a JSON-able dict,
sync or async. A readiness dict carrying ``"ready": False`` answers 503.
"""
import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from fastapi import FastAPI
from fastapi.responses import JSONResponse

__all__ = ["attach_health_routes", "HealthCheck"]

CheckResult = Union[bool, Dict[str, Any]]
HealthCheck = Callable[[], Union[CheckResult, Awaitable[CheckResult]]]


async def _evaluate(check: Optional[HealthCheck]) -> Dict[str, Any]:
    if check is None:
        return {"ok": True}
    try:
        outcome = check()
        if inspect.isawaitable(outcome):
            outcome = await outcome
    except Exception:
        return {"ok": False}
    if isinstance(outcome, dict):
        return {"ok": bool(outcome.get("ready", True)), "body": outcome}
    return {"ok": bool(outcome)}


def attach_health_routes(
    app: FastAPI,
    *,
    liveness: Optional[HealthCheck] = None,
    readiness: Optional[HealthCheck] = None,
) -> None:
    @app.get("/healthz", include_in_schema=False)
    async def _healthz() -> JSONResponse:
        res = await _evaluate(liveness)
        body = res.get("body") or {"status": "ok" if res["ok"] else "fail"}
        return JSONResponse(body)

    @app.get("/readyz", include_in_schema=False)
    async def _readyz() -> JSONResponse:
        res = await _evaluate(readiness)
        body = res.get("body") or {"ready": res["ok"]}
        return JSONResponse(body, status_code=200 if res["ok"] else 503)
