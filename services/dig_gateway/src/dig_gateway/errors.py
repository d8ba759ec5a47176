"""
Gateway error taxonomy.

Every recognized failure carries the HTTP status it renders with and an
``ErrorCode`` for logs. Anything that is not a ``GatewayError`` is unexpected
and surfaces as a generic 500 through the standard handlers.
"""
from __future__ import annotations

from typing import Any, Optional

from core_logging.error_codes import ErrorCode


class GatewayError(Exception):
    status_code: int = 500
    code: ErrorCode = ErrorCode.internal

    def __init__(self, message: str = "", **context: Any) -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__
        self.context = context


class InvalidAddress(GatewayError):
    status_code = 400
    code = ErrorCode.invalid_address


class UnknownChain(InvalidAddress):
    code = ErrorCode.unknown_chain

    def __init__(self, chain_name: str, store_id: Optional[str] = None) -> None:
        super().__init__(f"Unknown chain: {chain_name}", chain_name=chain_name, store_id=store_id)
        self.chain_name = chain_name
        self.store_id = store_id


class SyncPending(GatewayError):
    """The node recognizes the store but has not synced it yet."""
    status_code = 202
    code = ErrorCode.sync_pending

    def __init__(self, store_id: str, message: str = "Store is still syncing.") -> None:
        super().__init__(message, store_id=store_id)
        self.store_id = store_id


class KeyMissing(GatewayError):
    status_code = 404
    code = ErrorCode.key_missing


class StreamFailure(GatewayError):
    status_code = 500
    code = ErrorCode.stream_failure


class ChallengeMismatch(GatewayError):
    status_code = 400
    code = ErrorCode.challenge_mismatch

    # "store" | "key" | "version" | "malformed"
    def __init__(self, field: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Challenge {field} does not match the requested content.", field=field)
        self.field = field
        if field == "malformed":
            self.code = ErrorCode.challenge_malformed


class PeerNotFound(GatewayError):
    status_code = 400
    code = ErrorCode.peer_not_found


class InternalError(GatewayError):
    status_code = 500
    code = ErrorCode.internal


class UpstreamError(InternalError):
    """A collaborator answered with something we do not recognize."""
    code = ErrorCode.upstream_error


__all__ = [
    "GatewayError",
    "InvalidAddress",
    "UnknownChain",
    "SyncPending",
    "KeyMissing",
    "StreamFailure",
    "ChallengeMismatch",
    "PeerNotFound",
    "InternalError",
    "UpstreamError",
]
