"""
In-memory stand-ins for the gateway collaborators.

Everything is keyed the way the real node is: store id → root hash → hex key.
"""
from __future__ import annotations

from typing import AsyncIterator, Dict, List, Optional, Sequence, Set

from redis.exceptions import ConnectionError as RedisConnectionError

from dig_gateway.challenge import ChallengeResponder
from dig_gateway.content import ContentGateway
from dig_gateway.errors import SyncPending
from dig_gateway.exec_cache import ExecutionCache
from dig_gateway.models import ChallengeBinding, StoreState, VersionInfo
from core_utils.fingerprints import sha256_bytes, sha256_hex
from core_utils.ids import hex_encode_key

STORE_ID = "ab" * 32
OTHER_STORE_ID = "cd" * 32
ROOT_V1 = "11" * 32
ROOT_V2 = "22" * 32


class FakeCoinState:
    def __init__(self) -> None:
        self.latest: Dict[str, StoreState] = {}
        self.synced: Dict[str, bool] = {}
        self.pending: Set[str] = set()
        # Stores whose node payload fails validation
        self.malformed: Set[str] = set()
        self.history: Dict[str, List[VersionInfo]] = {}
        self.calls: List[str] = []

    def publish(self, store_id: str, root_hash: str, *, label: str = "Demo Store",
                description: str = "A test store", size_bytes: int = 2048, synced: bool = True) -> None:
        self.latest[store_id] = StoreState(root_hash=root_hash, label=label,
                                           description=description, size_bytes=size_bytes)
        self.synced[store_id] = synced
        self.history.setdefault(store_id, []).append(VersionInfo(root_hash=root_hash, synced=synced))

    async def fetch_latest_version(self, store_id: str) -> StoreState:
        self.calls.append(f"latest:{store_id}")
        if store_id in self.pending or store_id not in self.latest:
            raise SyncPending(store_id)
        if store_id in self.malformed:
            return StoreState.model_validate({"label": "no root hash"})
        return self.latest[store_id]

    async def is_synced(self, store_id: str) -> bool:
        self.calls.append(f"synced:{store_id}")
        return self.synced.get(store_id, False)

    async def get_version_history(self, store_id: str) -> List[VersionInfo]:
        return list(self.history.get(store_id, []))


class FakeMerkleStore:
    def __init__(self, chunk_size: int = 8) -> None:
        self.data: Dict[str, Dict[str, Dict[str, bytes]]] = {}
        self.pending: Set[str] = set()
        self.no_hash: Set[str] = set()
        # hex key → "open" (fail before the first chunk) | "mid" (fail after it)
        self.fail: Dict[str, str] = {}
        self.chunk_size = chunk_size
        self.closed_streams = 0

    def put(self, store_id: str, root_hash: str, key: str, value: bytes) -> str:
        hex_key = hex_encode_key(key)
        self.data.setdefault(store_id, {}).setdefault(root_hash, {})[hex_key] = value
        return hex_key

    def _values(self, store_id: str, root_hash: str) -> Dict[str, bytes]:
        if store_id in self.pending:
            raise SyncPending(store_id)
        return self.data.get(store_id, {}).get(root_hash, {})

    async def has_key(self, store_id: str, key: str, root_hash: str) -> bool:
        return key in self._values(store_id, root_hash)

    async def open_value_stream(
        self,
        store_id: str,
        key: str,
        root_hash: str,
        offset: int = 0,
        length: Optional[int] = None,
    ) -> AsyncIterator[bytes]:
        try:
            value = self._values(store_id, root_hash)[key]
            mode = self.fail.get(key)
            if mode == "open":
                raise OSError("disk read failed")
            end = len(value) if length is None else offset + length
            window = value[offset:end]
            for i in range(0, len(window), self.chunk_size):
                yield window[i:i + self.chunk_size]
                if mode == "mid":
                    raise OSError("disk read failed")
        finally:
            self.closed_streams += 1

    async def content_hash(self, store_id: str, key: str, root_hash: str) -> Optional[str]:
        value = self._values(store_id, root_hash).get(key)
        if value is None or key in self.no_hash:
            return None
        return sha256_hex(value)

    async def inclusion_proof(self, store_id: str, key: str, sha256: str, root_hash: str) -> str:
        return f"proof-{store_id[:8]}-{key}-{sha256[:8]}-{root_hash[:8]}"

    async def list_keys(self, store_id: str, root_hash: str) -> List[str]:
        return sorted(self._values(store_id, root_hash))


class FakePeerNetwork:
    def __init__(self, peers: Optional[Dict[str, str]] = None) -> None:
        self.peers = dict(peers or {})
        self.lookups: List[tuple] = []

    async def find_peer_for_store(self, store_id: str, root_hash: Optional[str]) -> Optional[str]:
        self.lookups.append((store_id, root_hash))
        return self.peers.get(store_id)


class FakeChallengeProtocol:
    def __init__(self) -> None:
        self.bindings: Dict[str, ChallengeBinding] = {}
        self.responses: List[tuple] = []

    def issue(self, token: str, store_id: str, key: str, root_hash: str) -> str:
        self.bindings[token] = ChallengeBinding(store_id=store_id, key=hex_encode_key(key), root_hash=root_hash)
        return token

    async def deserialize(self, token: str) -> ChallengeBinding:
        try:
            return self.bindings[token]
        except KeyError:
            raise ValueError("unknown challenge") from None

    async def compute_response(self, store_id: str, key: str, root_hash: str, token: str) -> bytes:
        self.responses.append((store_id, key, root_hash, token))
        return sha256_bytes(f"{store_id}:{key}:{root_hash}:{token}")


class FakeExecutor:
    def __init__(self) -> None:
        self.calls: List[tuple] = []

    async def execute(self, source: str, params: Sequence[str]) -> str:
        self.calls.append((source, tuple(params)))
        return f"({len(source)} {' '.join(params)})"


class FakeRegistry:
    def __init__(self, hosted: Sequence[str] = ()) -> None:
        self.hosted: Set[str] = set(hosted)
        self.materialized: List[str] = []

    def list_stores(self) -> List[str]:
        return sorted(self.hosted)

    def is_hosted(self, store_id: str) -> bool:
        return store_id in self.hosted

    def materialize(self, store_id: str) -> None:
        self.materialized.append(store_id)
        self.hosted.add(store_id)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Async client double matching the subset ``RedisCache`` uses."""

    def __init__(self, *, fail: bool = False) -> None:
        self.store: Dict[str, bytes] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = fail

    async def get(self, key: str) -> Optional[bytes]:
        if self.fail:
            raise RedisConnectionError("redis down")
        return self.store.get(key)

    async def setex(self, key: str, ttl: int, value: bytes) -> None:
        if self.fail:
            raise RedisConnectionError("redis down")
        self.store[key] = value
        self.ttls[key] = ttl


def build_gateway(fakes, *, cache_all_stores: bool = False) -> ContentGateway:
    """A ContentGateway over the fakes in *fakes* (see the ``fakes`` fixture)."""
    return ContentGateway(
        merkle=fakes.merkle,
        coin_state=fakes.coin,
        peers=fakes.peers,
        registry=fakes.registry,
        exec_cache=ExecutionCache(fakes.executor, clock=fakes.clock),
        challenges=ChallengeResponder(fakes.challenges),
        cache_all_stores=cache_all_stores,
    )
