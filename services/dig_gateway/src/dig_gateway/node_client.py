"""
HTTP adapters for the DIG node sidecar.

One client implements the coin-state, Merkle-store, peer-discovery and
challenge interfaces. The node answers ``404 {"code": "not_synced"}`` for a
store it knows about but has not synced; that becomes ``SyncPending``. Any
other upstream failure becomes ``UpstreamError``.
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import httpx

from core_http.client import fetch_json, stream_bytes
from core_logging import get_logger, log_stage

from .errors import SyncPending, UpstreamError
from .models import ChallengeBinding, StoreState, VersionInfo

logger = get_logger("dig_gateway.node_client")

NOT_SYNCED_CODE = "not_synced"


def _error_code(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    return body.get("code") if isinstance(body, dict) else None


def _map_error(exc: httpx.HTTPError, store_id: str, op: str) -> Exception:
    if isinstance(exc, httpx.HTTPStatusError):
        resp = exc.response
        if resp.status_code == 404 and _error_code(resp) == NOT_SYNCED_CODE:
            return SyncPending(store_id)
        log_stage(logger, "node", "node.upstream_error", op=op, store_id=store_id, status_code=resp.status_code)
        return UpstreamError(f"{op} failed with {resp.status_code}", store_id=store_id)
    log_stage(logger, "node", "node.upstream_error", op=op, store_id=store_id, error=exc.__class__.__name__)
    return UpstreamError(f"{op} failed: {exc.__class__.__name__}", store_id=store_id)


def _is_plain_404(exc: httpx.HTTPError) -> bool:
    return (
        isinstance(exc, httpx.HTTPStatusError)
        and exc.response.status_code == 404
        and _error_code(exc.response) != NOT_SYNCED_CODE
    )


class DigNodeClient:
    def __init__(self, base_url: str):
        self._base = base_url.rstrip("/")

    async def _get(self, path: str, *, store_id: str, op: str, stage: str,
                   params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            return await fetch_json("GET", f"{self._base}{path}", params=params, stage=stage)
        except httpx.HTTPError as exc:
            raise _map_error(exc, store_id, op) from exc

    # ── CoinState ────────────────────────────────────────────────────────
    async def fetch_latest_version(self, store_id: str) -> StoreState:
        data = await self._get(f"/coin/{store_id}/latest", store_id=store_id, op="coin.latest", stage="coin_state")
        return StoreState.model_validate(data)

    async def is_synced(self, store_id: str) -> bool:
        data = await self._get(f"/coin/{store_id}/synced", store_id=store_id, op="coin.synced", stage="coin_state")
        return bool((data or {}).get("synced"))

    async def get_version_history(self, store_id: str) -> List[VersionInfo]:
        data = await self._get(f"/coin/{store_id}/history", store_id=store_id, op="coin.history", stage="coin_state")
        return [VersionInfo.model_validate(item) for item in (data or [])]

    # ── MerkleStore ──────────────────────────────────────────────────────
    def _key_path(self, store_id: str, root_hash: str, key: str) -> str:
        return f"/stores/{store_id}/roots/{root_hash}/keys/{quote(key, safe='')}"

    async def has_key(self, store_id: str, key: str, root_hash: str) -> bool:
        data = await self._get(self._key_path(store_id, root_hash, key) + "/exists",
                               store_id=store_id, op="store.has_key", stage="store")
        return bool((data or {}).get("exists"))

    async def open_value_stream(
        self,
        store_id: str,
        key: str,
        root_hash: str,
        offset: int = 0,
        length: Optional[int] = None,
    ) -> AsyncIterator[bytes]:
        params: Dict[str, Any] = {}
        if offset:
            params["offset"] = offset
        if length is not None:
            params["length"] = length
        url = f"{self._base}{self._key_path(store_id, root_hash, key)}"
        try:
            async for chunk in stream_bytes(url, params=params or None):
                yield chunk
        except httpx.HTTPError as exc:
            raise _map_error(exc, store_id, "store.stream") from exc

    async def content_hash(self, store_id: str, key: str, root_hash: str) -> Optional[str]:
        try:
            data = await fetch_json("GET", f"{self._base}{self._key_path(store_id, root_hash, key)}/sha256",
                                    stage="store")
        except httpx.HTTPError as exc:
            if _is_plain_404(exc):
                return None
            raise _map_error(exc, store_id, "store.sha256") from exc
        return (data or {}).get("sha256") or None

    async def inclusion_proof(self, store_id: str, key: str, sha256: str, root_hash: str) -> str:
        data = await self._get(self._key_path(store_id, root_hash, key) + "/proof",
                               store_id=store_id, op="store.proof", stage="store", params={"sha256": sha256})
        return str((data or {}).get("proof") or "")

    async def list_keys(self, store_id: str, root_hash: str) -> List[str]:
        data = await self._get(f"/stores/{store_id}/roots/{root_hash}/keys",
                               store_id=store_id, op="store.list_keys", stage="store")
        return [str(k) for k in (data or {}).get("keys", [])]

    # ── PeerNetwork ──────────────────────────────────────────────────────
    async def find_peer_for_store(self, store_id: str, root_hash: Optional[str]) -> Optional[str]:
        params = {"version": root_hash} if root_hash else None
        try:
            data = await fetch_json("GET", f"{self._base}/peers/{store_id}", params=params, stage="peer")
        except httpx.HTTPError as exc:
            if _is_plain_404(exc):
                return None
            raise _map_error(exc, store_id, "peer.find") from exc
        return (data or {}).get("peer") or None

    # ── ChallengeProtocol ────────────────────────────────────────────────
    async def deserialize(self, token: str) -> ChallengeBinding:
        try:
            data = await fetch_json("POST", f"{self._base}/challenges/deserialize",
                                    json={"challenge": token}, stage="challenge")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code in (400, 422):
                raise ValueError("malformed challenge") from exc
            raise _map_error(exc, "", "challenge.deserialize") from exc
        except httpx.HTTPError as exc:
            raise _map_error(exc, "", "challenge.deserialize") from exc
        return ChallengeBinding.model_validate(data)

    async def compute_response(self, store_id: str, key: str, root_hash: str, token: str) -> bytes:
        try:
            data = await fetch_json(
                "POST", f"{self._base}/challenges/respond",
                json={"store_id": store_id, "key": key, "root_hash": root_hash, "challenge": token},
                stage="challenge",
            )
        except httpx.HTTPError as exc:
            raise _map_error(exc, store_id, "challenge.respond") from exc
        return bytes.fromhex(str((data or {}).get("response") or ""))


__all__ = ["DigNodeClient", "NOT_SYNCED_CODE"]
