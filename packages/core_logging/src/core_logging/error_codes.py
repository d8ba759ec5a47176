from enum import Enum

class ErrorCode(str, Enum):
    """
    Canonical error codes for the public error envelope and log lines.
    """
    invalid_address           = "invalid_address"
    unknown_chain             = "unknown_chain"
    sync_pending              = "sync_pending"
    key_missing               = "key_missing"
    stream_failure            = "stream_failure"
    challenge_malformed       = "challenge_malformed"
    challenge_mismatch        = "challenge_mismatch"
    peer_not_found            = "peer_not_found"
    validation_failed         = "validation_failed"
    internal                  = "internal"
    upstream_timeout          = "upstream_timeout"
    upstream_error            = "upstream_error"
    cache_unavailable         = "cache_unavailable"

__all__ = ["ErrorCode"]
