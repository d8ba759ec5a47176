"""
Structured JSON logging for the gateway processes.

One line per record, encoded with orjson. Identity fields (request id, store
id, root hash, udi...) sit at the top level of the envelope; every other
keyword lands under ``meta``.

In the default *summary* mode ``log_stage`` breadcrumbs are folded into a
per-request aggregate and flushed as one ``request_summary`` line by the
request middleware. Request/response bookends and anything error-like are
always written immediately. ``LOG_EMIT_MODE=verbose`` writes every breadcrumb.
"""
import contextvars
import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional

import orjson

from core_utils.fingerprints import sha256_hex

# ────────────────────────────────────────────────────────────
# Request id context
# ────────────────────────────────────────────────────────────
_REQUEST_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("dig_request_id", default=None)


def bind_request_id(request_id: Optional[str]) -> None:
    """Bind *request_id* to the current context; records logged here carry it."""
    _REQUEST_ID.set(request_id)


def current_request_id() -> Optional[str]:
    return _REQUEST_ID.get()


class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            rid = _REQUEST_ID.get()
            if rid:
                record.request_id = rid
        return True


# ────────────────────────────────────────────────────────────
# Per-request aggregate
# ────────────────────────────────────────────────────────────
class _RequestTrail:
    __slots__ = ("counts", "latencies", "identity", "errors")

    def __init__(self) -> None:
        self.counts: Dict[str, Dict[str, int]] = {}
        self.latencies: Dict[str, List[float]] = {}
        self.identity: Dict[str, str] = {}
        self.errors: List[Dict[str, Any]] = []


_TRAIL: contextvars.ContextVar[Optional[_RequestTrail]] = contextvars.ContextVar("dig_request_trail", default=None)

# Surfaced once on the summary line, last value wins
_IDENTITY_FIELDS = ("request_id", "store_id", "root_hash", "chain", "udi", "key_fp", "outcome")
_ERROR_WORDS = ("error", "failed", "exception", "invalid", "mismatch", "timeout")


def _trail() -> _RequestTrail:
    trail = _TRAIL.get()
    if trail is None:
        trail = _RequestTrail()
        _TRAIL.set(trail)
    return trail


def reset_request_aggregate() -> None:
    _TRAIL.set(_RequestTrail())


def _summary_mode() -> bool:
    return os.getenv("LOG_EMIT_MODE", "summary").lower() in ("summary", "summarize", "compact")


def _looks_like_error(event: str, fields: Dict[str, Any]) -> bool:
    name = (event or "").lower()
    # Syncing stores are a normal state, not a failure
    if name.endswith("sync_pending"):
        return False
    try:
        status = int(fields.get("status_code") or 200)
    except (TypeError, ValueError):
        status = 200
    if status >= 500 or "error" in fields:
        return True
    return any(word in name for word in _ERROR_WORDS)


def _note(stage: str, event: str, fields: Dict[str, Any]) -> None:
    trail = _trail()
    per_stage = trail.counts.setdefault(stage, {})
    per_stage[event] = per_stage.get(event, 0) + 1
    latency = fields.get("latency_ms")
    if isinstance(latency, (int, float)):
        trail.latencies.setdefault(stage, []).append(float(latency))
    for name in _IDENTITY_FIELDS:
        value = fields.get(name)
        if isinstance(value, str) and value:
            trail.identity[name] = value
    http = fields.get("http")
    if isinstance(http, dict):
        if isinstance(http.get("method"), str):
            trail.identity["method"] = http["method"]
        if isinstance(http.get("target"), str):
            trail.identity["path"] = http["target"]
    if _looks_like_error(event, fields):
        trail.errors.append({
            "code": str(fields.get("error_code") or event.upper().replace(".", "_")),
            "where": stage,
            "message": str(fields.get("error_message") or fields.get("error") or event),
        })


def _latency_digest(values: List[float]) -> Dict[str, float]:
    ordered = sorted(values)
    return {
        "count": len(ordered),
        "sum_ms": round(sum(ordered), 3),
        "p50_ms": round(ordered[(len(ordered) - 1) // 2], 3),
        "max_ms": round(ordered[-1], 3),
    }


def emit_request_summary(logger: logging.Logger, *, service: Optional[str] = None) -> None:
    """Flush the current request's aggregate as one ``request_summary`` line."""
    if not _summary_mode():
        return
    trail = _TRAIL.get()
    if trail is None:
        return
    payload: Dict[str, Any] = {
        "stage": "summary",
        "service": service or os.getenv("SERVICE_NAME") or logger.name,
        "events": trail.counts,
        "timers": {s: _latency_digest(v) for s, v in trail.latencies.items() if v},
        **trail.identity,
        "error_count": len(trail.errors),
    }
    cache = trail.counts.get("cache", {})
    hits, misses = cache.get("cache.hit", 0), cache.get("cache.miss", 0)
    if hits + misses:
        payload["cache"] = {"hits": hits, "misses": misses, "hit_rate": round(hits / (hits + misses), 3)}
    if not payload.get("request_id") and current_request_id():
        payload["request_id"] = current_request_id()
    logger.info("request_summary", extra=_sanitize_extra(payload))
    _TRAIL.set(None)


# ────────────────────────────────────────────────────────────
# Errors
# ────────────────────────────────────────────────────────────
def record_error(
    code: str,
    *,
    where: str,
    message: str,
    logger: logging.Logger,
    level: str = "ERROR",
    **extras: Any,
) -> None:
    """
    Write one ERROR line now and keep a crumb for the end-of-request rollup.
    """
    crumb = {"code": str(code), "where": str(where), "message": str(message)}
    _trail().errors.append(crumb)
    payload = {
        "stage": extras.pop("stage", None) or "error",
        "error_code": crumb["code"],
        "error_message": crumb["message"],
        "where": crumb["where"],
        **extras,
    }
    logger.log(getattr(logging, level.upper(), logging.ERROR), "error", extra=_sanitize_extra(payload))


def emit_request_error_summary(logger: logging.Logger, *, service: Optional[str] = None) -> None:
    """One ERROR rollup for a request that accumulated errors; silent otherwise."""
    trail = _TRAIL.get()
    if trail is None or not trail.errors:
        return
    payload: Dict[str, Any] = {
        "stage": "summary",
        "service": service or os.getenv("SERVICE_NAME") or logger.name,
        "error_count": len(trail.errors),
        "errors": trail.errors[:50],
    }
    if current_request_id():
        payload["request_id"] = current_request_id()
    logger.error("request_error_summary", extra=_sanitize_extra(payload))


# ────────────────────────────────────────────────────────────
# Formatting
# ────────────────────────────────────────────────────────────
# LogRecord attributes that never reach the envelope
_RESERVED = frozenset({
    "name", "msg", "args", "levelname", "levelno",
    "pathname", "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message", "asctime",
    "taskName",
})

_TOP_LEVEL = frozenset({
    "stage", "latency_ms", "request_id", "store_id", "root_hash", "udi",
    "status_code", "path", "method",
})


def _fallback(obj: Any) -> Any:
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    if isinstance(obj, BaseException):
        return {"error": obj.__class__.__name__, "message": str(obj)}
    return str(obj)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "service": os.getenv("SERVICE_NAME", record.name),
            "event": record.getMessage(),
        }
        meta: Dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED:
                continue
            if key == "message_extra":
                line["message"] = value
            elif key in _TOP_LEVEL:
                line[key] = value
            else:
                meta[key] = value
        if record.exc_info:
            meta["exc"] = self.formatException(record.exc_info)
        if meta:
            line["meta"] = meta
        return orjson.dumps(line, default=_fallback).decode("utf-8")


def _sanitize_extra(extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Make *extra* safe for ``LogRecord``: ``message`` becomes ``message_extra``,
    other reserved names get a ``meta_`` prefix and a nested ``meta`` dict is
    flattened.
    """
    safe: Dict[str, Any] = {}
    for key, value in (extra or {}).items():
        key = str(key)
        if key == "meta" and isinstance(value, dict):
            for mk, mv in value.items():
                mk = str(mk)
                safe[f"meta_{mk}" if mk in _RESERVED else mk] = mv
        elif key == "message":
            safe["message_extra"] = value
        elif key in _RESERVED:
            safe[f"meta_{key}"] = value
        else:
            safe[key] = value
    return safe


class StructuredLogger(logging.Logger):
    """``logging.Logger`` that folds arbitrary keyword arguments into ``extra``."""

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False, stacklevel=1, **kwargs):  # noqa: PLR0913
        if kwargs:
            extra = {**(extra or {}), **kwargs}
        super()._log(level, msg, args, exc_info=exc_info, extra=_sanitize_extra(extra),
                     stack_info=stack_info, stacklevel=stacklevel)


class DynamicStdoutHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stdout`` is at emit time (capsys, redirect_stdout)."""

    def emit(self, record: logging.LogRecord) -> None:
        self.setStream(sys.stdout)
        super().emit(record)


logging.setLoggerClass(StructuredLogger)


def get_logger(name: str = "dig", level: Optional[str] = None) -> logging.Logger:
    """
    Service roots (names without a dot) own the stdout handler and stop
    propagation; dotted module loggers carry no handler and bubble up.
    """
    logger = logging.getLogger(name)
    if "." not in name:
        if not logger.handlers:
            handler = DynamicStdoutHandler()
            handler.setFormatter(JsonFormatter())
            logger.addHandler(handler)
        logger.propagate = False
    else:
        for h in list(logger.handlers):
            logger.removeHandler(h)
        logger.propagate = True
    logger.setLevel(level or os.getenv("SERVICE_LOG_LEVEL", "INFO"))
    if not any(isinstance(f, _RequestIdFilter) for f in logger.filters):
        logger.addFilter(_RequestIdFilter())
    return logger


# ────────────────────────────────────────────────────────────
# Breadcrumbs
# ────────────────────────────────────────────────────────────
def log_stage(logger: logging.Logger, stage: str, event: str, **fields: Any) -> None:
    """log_stage(logger, "resolve", "udi.redirect", store_id=..., root_hash=...)"""
    payload = {"stage": stage, **fields}
    _note(stage, event, payload)
    bookend = stage == "http.server" and event in ("http.server.request", "http.server.response")
    if _summary_mode() and not bookend and not _looks_like_error(event, payload):
        return
    logger.info(event, extra=_sanitize_extra(payload))


_ONCE_KEYS: set = set()


def log_once_process(logger: logging.Logger, key: str, *, level: int = logging.INFO, event: str, **fields: Any) -> None:
    """Log *event* only the first time *key* is seen in this process."""
    if key in _ONCE_KEYS:
        return
    _ONCE_KEYS.add(key)
    logger.log(level, event, extra=_sanitize_extra(fields))


# ────────────────────────────────────────────────────────────
# Cache breadcrumbs
# ────────────────────────────────────────────────────────────
def cache_key_fp(key: Any) -> str:
    """Short fingerprint of a cache key; raw keys never reach the logs."""
    return "sha256:" + sha256_hex(str(key))[:16]


def log_cache_hit(logger: logging.Logger, *, backend: str, namespace: str, key: Any,
                  age_ms: Optional[int] = None) -> None:
    log_stage(logger, "cache", "cache.hit", backend=backend, namespace=namespace,
              key_fp=cache_key_fp(key), age_ms=age_ms)


def log_cache_miss(logger: logging.Logger, *, backend: str, namespace: str, key: Any,
                   expired: bool = False) -> None:
    log_stage(logger, "cache", "cache.miss", backend=backend, namespace=namespace,
              key_fp=cache_key_fp(key), expired=expired)


def log_cache_set(logger: logging.Logger, *, backend: str, namespace: str, key: Any,
                  ttl_ms: Optional[int] = None) -> None:
    log_stage(logger, "cache", "cache.set", backend=backend, namespace=namespace,
              key_fp=cache_key_fp(key), ttl_ms=ttl_ms)
