from .logger import (
    get_logger,
    log_stage,
    bind_request_id,
    current_request_id,
    reset_request_aggregate,
    log_once_process,
    emit_request_summary,
    emit_request_error_summary,
    record_error,
    log_cache_hit,
    log_cache_miss,
    log_cache_set,
    cache_key_fp,
)

__all__ = [
    "get_logger",
    "log_stage",
    "bind_request_id",
    "current_request_id",
    "reset_request_aggregate",
    "log_once_process",
    "emit_request_summary",
    "emit_request_error_summary",
    "record_error",
    "log_cache_hit",
    "log_cache_miss",
    "log_cache_set",
    "cache_key_fp",
]
