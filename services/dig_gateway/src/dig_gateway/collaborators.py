"""
Interfaces of the external systems the gateway consumes.

Store keys are always passed in hex form (UTF-8 bytes of the resource key).
Implementations signal a not-yet-synced store by raising ``SyncPending``.
"""
from __future__ import annotations

from typing import AsyncIterator, List, Optional, Protocol, Sequence

from .models import ChallengeBinding, StoreState, VersionInfo


class CoinState(Protocol):
    async def fetch_latest_version(self, store_id: str) -> StoreState: ...

    async def is_synced(self, store_id: str) -> bool: ...

    async def get_version_history(self, store_id: str) -> List[VersionInfo]: ...


class MerkleStore(Protocol):
    async def has_key(self, store_id: str, key: str, root_hash: str) -> bool: ...

    def open_value_stream(
        self,
        store_id: str,
        key: str,
        root_hash: str,
        offset: int = 0,
        length: Optional[int] = None,
    ) -> AsyncIterator[bytes]: ...

    async def content_hash(self, store_id: str, key: str, root_hash: str) -> Optional[str]: ...

    async def inclusion_proof(self, store_id: str, key: str, sha256: str, root_hash: str) -> str: ...

    async def list_keys(self, store_id: str, root_hash: str) -> List[str]: ...


class PeerNetwork(Protocol):
    async def find_peer_for_store(self, store_id: str, root_hash: Optional[str]) -> Optional[str]: ...


class ChallengeProtocol(Protocol):
    async def deserialize(self, token: str) -> ChallengeBinding: ...

    async def compute_response(self, store_id: str, key: str, root_hash: str, token: str) -> bytes: ...


class ProgramExecutor(Protocol):
    async def execute(self, source: str, params: Sequence[str]) -> str: ...


class StoreRegistry(Protocol):
    def list_stores(self) -> List[str]: ...

    def is_hosted(self, store_id: str) -> bool: ...

    def materialize(self, store_id: str) -> None: ...


__all__ = [
    "CoinState",
    "MerkleStore",
    "PeerNetwork",
    "ChallengeProtocol",
    "ProgramExecutor",
    "StoreRegistry",
]
