"""
Shared ``httpx.AsyncClient`` for calls to the DIG node and the CLVM executor.

Every call carries the bound ``x-request-id`` and a timeout taken from the
stage table in ``core_config.constants``. Non-2xx answers raise
``httpx.HTTPStatusError`` with the response attached; there are no retries.
"""
import time
from typing import Any, AsyncIterator, Dict, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from core_config import get_settings
from core_config.constants import STREAM_CHUNK_BYTES, timeout_for_stage
from core_http.headers import REQUEST_ID
from core_logging import current_request_id, get_logger, log_stage
from core_utils import jsonx

logger = get_logger("core_http")

_shared_client: Optional[httpx.AsyncClient] = None


def _timeout(stage: str) -> httpx.Timeout:
    budget = timeout_for_stage(stage)
    return httpx.Timeout(budget, connect=min(1.0, max(0.1, budget * 0.3)))


def _headers(extra: Optional[Dict[str, str]]) -> Dict[str, str]:
    rid = current_request_id()
    merged = {REQUEST_ID: rid} if rid else {}
    merged.update(extra or {})
    return merged


def _describe(method: str, url: str) -> Tuple[str, Dict[str, str]]:
    parts = urlsplit(url)
    host, target = parts.hostname or "", parts.path or "/"
    return f"{method} {host}{target}", {"method": method, "host": host, "target": target}


def _raise_for_status(resp: httpx.Response, url: str) -> None:
    if resp.status_code >= 400:
        raise httpx.HTTPStatusError(f"{resp.status_code} on {url}", request=resp.request, response=resp)


def get_http_client() -> httpx.AsyncClient:
    """Process-wide client; callers must not close it. Rebuilt if closed."""
    global _shared_client
    if _shared_client is not None and not _shared_client.is_closed:
        return _shared_client
    s = get_settings()
    _shared_client = httpx.AsyncClient(
        timeout=_timeout("store"),
        limits=httpx.Limits(
            max_connections=s.http_max_connections,
            max_keepalive_connections=s.http_max_keepalive,
        ),
    )
    log_stage(logger, "http.client", "http.client.created", request_id=current_request_id() or "startup")
    return _shared_client


async def close_http_client() -> None:
    global _shared_client
    client, _shared_client = _shared_client, None
    if client is not None and not client.is_closed:
        await client.aclose()


async def fetch_json(
    method: str,
    url: str,
    *,
    json: Any = None,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    stage: str = "store",
) -> Any:
    """Send one request and decode the JSON body; an empty body yields None."""
    method = method.upper()
    op, http = _describe(method, url)
    log_stage(logger, "http.client", "http.client.request", op=op, http=http,
              param_keys=sorted(params or {}))
    started = time.perf_counter()
    resp = await get_http_client().request(
        method, url, json=json, params=params, headers=_headers(headers), timeout=_timeout(stage),
    )
    log_stage(logger, "http.client", "http.client.response", op=op,
              http={**http, "status_code": resp.status_code},
              latency_ms=int((time.perf_counter() - started) * 1000.0))
    _raise_for_status(resp, url)
    return jsonx.loads(resp.content) if resp.content else None


async def stream_bytes(
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    chunk_size: int = STREAM_CHUNK_BYTES,
) -> AsyncIterator[bytes]:
    """
    Yield the body of a GET in chunks. The upstream read advances only as the
    consumer pulls; closing the generator closes the upstream response.
    """
    op, http = _describe("GET", url)
    log_stage(logger, "http.client", "http.client.stream_open", op=op, http=http)
    async with get_http_client().stream(
        "GET", url, params=params, headers=_headers(headers), timeout=_timeout("stream"),
    ) as resp:
        if resp.status_code >= 400:
            await resp.aread()
        _raise_for_status(resp, url)
        async for chunk in resp.aiter_bytes(chunk_size):
            yield chunk


__all__ = ["get_http_client", "close_http_client", "fetch_json", "stream_bytes"]
