from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .udi import Udi


# ---- Collaborator payloads ---------------------------------------------------
class StoreState(BaseModel):
    """Latest committed state of a store as reported by the coin-state node."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    root_hash: str
    label: Optional[str] = None
    description: Optional[str] = None
    size_bytes: int = Field(default=0, alias="bytes")


class VersionInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    root_hash: str
    synced: bool = False


class ChallengeBinding(BaseModel):
    """What a serialized challenge token is bound to. ``key`` is hex-encoded."""
    model_config = ConfigDict(frozen=True)

    store_id: str
    key: str
    root_hash: str


# ---- Per-request context -----------------------------------------------------
def _as_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value >= 0 else None


@dataclass(frozen=True)
class ResolvedContext:
    """
    Everything the content gateway needs for one request. Built by the app from
    a resolver outcome; derived copies carry extra headers.
    """
    udi: Udi
    method: str = "GET"
    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def has_key(self) -> bool:
        return bool(self.udi.resource_key)

    @property
    def is_head(self) -> bool:
        return self.method.upper() == "HEAD"

    @property
    def show_keys(self) -> bool:
        return (self.query.get("showKeys") or "").lower() == "true"

    @property
    def offset(self) -> int:
        return _as_int(self.query.get("offset")) or 0

    @property
    def length(self) -> Optional[int]:
        return _as_int(self.query.get("length")) or None

    @property
    def challenge(self) -> Optional[str]:
        return self.query.get("challenge") or None

    @property
    def params(self) -> List[str]:
        raw = self.query.get("params") or ""
        return [p.strip() for p in raw.split(",") if p.strip()]

    def with_headers(self, headers: Mapping[str, str]) -> "ResolvedContext":
        merged: Dict[str, str] = {**self.headers, **headers}
        return replace(self, headers=merged)


__all__ = ["StoreState", "VersionInfo", "ChallengeBinding", "ResolvedContext"]
