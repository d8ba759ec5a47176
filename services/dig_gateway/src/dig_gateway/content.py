"""
Content gateway: turns a resolved request into exactly one HTTP response.

    Start ─┬─ store not hosted ────────────────► PeerRedirect (400)
           ├─ ?challenge ──────────────────────► ChallengeResponse
           ├─ no key ─► IndexLookup ─┬─────────► Stream (index.html)
           │                         └─────────► Listing
           └─ key ───► KeyExistenceCheck ─┬────► Stream | ExecutionResult
                                          ├────► Listing (GET) | 404 (HEAD)
                                          └────► Error (500)

Any collaborator call may raise ``SyncPending``; that renders the syncing page
(202). Values are streamed as async iterators so the transport pulls chunks
at its own pace.
"""
from __future__ import annotations

import mimetypes
import re
import time
from typing import AsyncIterator, Dict, Optional
from urllib.parse import quote

from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response, StreamingResponse

from core_config.constants import DEFAULT_CONTENT_TYPE, DEFAULT_DOCUMENT, EXECUTABLE_SUFFIX
from core_http import headers as H
from core_logging import get_logger, log_stage, record_error
from core_utils.ids import hex_decode_key, hex_encode_key

from . import metrics, views
from .challenge import ChallengeResponder
from .collaborators import CoinState, MerkleStore, PeerNetwork, StoreRegistry
from .errors import GatewayError, InternalError, KeyMissing, PeerNotFound, StreamFailure, SyncPending
from .exec_cache import ExecutionCache
from .models import ResolvedContext, StoreState

logger = get_logger("dig_gateway.content")

_HEAD_TAG_RE = re.compile(rb"<head(\s[^>]*)?>", re.IGNORECASE)
# Give up looking for <head> after this many bytes and pass through untouched
_HEAD_SCAN_LIMIT = 64 * 1024


def content_type_for(key: str) -> str:
    guessed, _ = mimetypes.guess_type(key, strict=False)
    return guessed or DEFAULT_CONTENT_TYPE


async def _aclose(chunks: AsyncIterator[bytes]) -> None:
    close = getattr(chunks, "aclose", None)
    if close is not None:
        await close()


async def inject_base_href(chunks: AsyncIterator[bytes], href: str) -> AsyncIterator[bytes]:
    """Insert ``<base href>`` right after the opening ``<head>`` tag."""
    tag = f'<base href="{href}">'.encode("utf-8")
    buf = b""
    scanning = True
    try:
        async for chunk in chunks:
            if not scanning:
                yield chunk
                continue
            buf += chunk
            m = _HEAD_TAG_RE.search(buf)
            if m is not None:
                yield buf[: m.end()] + tag + buf[m.end():]
                scanning = False
            elif len(buf) > _HEAD_SCAN_LIMIT:
                yield buf
                scanning = False
        if scanning and buf:
            yield buf
    finally:
        await _aclose(chunks)


class ContentGateway:
    def __init__(
        self,
        *,
        merkle: MerkleStore,
        coin_state: CoinState,
        peers: PeerNetwork,
        registry: StoreRegistry,
        exec_cache: ExecutionCache,
        challenges: ChallengeResponder,
        cache_all_stores: bool = False,
    ):
        self._merkle = merkle
        self._coin_state = coin_state
        self._peers = peers
        self._registry = registry
        self._exec_cache = exec_cache
        self._challenges = challenges
        self._cache_all_stores = cache_all_stores

    # ------------------------------------------------------------------ #
    # Entry point                                                        #
    # ------------------------------------------------------------------ #
    async def serve(self, ctx: ResolvedContext) -> Response:
        udi = ctx.udi
        identity: Dict[str, str] = {}
        H.mirror_identity_headers(identity, store_id=udi.store_id, root_hash=udi.root_hash)
        ctx = ctx.with_headers(identity)
        t0 = time.perf_counter()
        outcome = "error"
        try:
            if self._cache_all_stores:
                self._registry.materialize(udi.store_id)
            if not self._registry.is_hosted(udi.store_id):
                outcome = "peer_redirect"
                return await self._peer_redirect(ctx)
            if ctx.challenge and not ctx.is_head:
                outcome = "challenge"
                return await self._challenge(ctx)
            if not ctx.has_key:
                outcome = "store"
                if ctx.is_head:
                    return await self._head_store(ctx)
                return await self._index(ctx)
            outcome = "key"
            return await self._key(ctx)
        except SyncPending as exc:
            outcome = "sync_pending"
            log_stage(logger, "content", "content.sync_pending", store_id=exc.store_id)
            return await self._syncing(ctx)
        except GatewayError as exc:
            return self._error(ctx, exc)
        finally:
            metrics.histogram("dig_gateway_serve_seconds", time.perf_counter() - t0, outcome=outcome)

    # ------------------------------------------------------------------ #
    # Store-level                                                        #
    # ------------------------------------------------------------------ #
    async def _head_store(self, ctx: ResolvedContext) -> Response:
        synced = await self._coin_state.is_synced(ctx.udi.store_id)
        return Response(status_code=200, headers={**ctx.headers, H.SYNCED: H.bool_header(synced)})

    async def _index(self, ctx: ResolvedContext, *, key_exists: Optional[bool] = None) -> Response:
        udi = ctx.udi
        root = udi.root_hash or ""
        synced = await self._coin_state.is_synced(udi.store_id)
        headers: Dict[str, str] = {**ctx.headers, H.SYNCED: H.bool_header(synced)}
        if key_exists is not None:
            headers[H.KEY_EXISTS] = H.bool_header(key_exists)

        if not ctx.show_keys:
            index_key = hex_encode_key(DEFAULT_DOCUMENT)
            if await self._merkle.has_key(udi.store_id, index_key, root):
                proof = await self._proof(udi.store_id, index_key, root)
                headers[H.PROOF_OF_INCLUSION] = proof
                base = f"/{udi.with_resource_key(None).compact()}/"
                stream = self._merkle.open_value_stream(udi.store_id, index_key, root)
                body = await self._open_stream(inject_base_href(stream, base), ctx)
                log_stage(logger, "content", "content.default_document", store_id=udi.store_id, root_hash=root)
                return StreamingResponse(body, headers=headers, media_type=content_type_for(DEFAULT_DOCUMENT))

        keys = await self._merkle.list_keys(udi.store_id, root)
        prefix = f"/{udi.with_resource_key(None).compact()}"
        links = []
        for hex_key in keys:
            try:
                decoded = hex_decode_key(hex_key)
            except ValueError:
                continue
            links.append((decoded, f"{prefix}/{quote(decoded, safe='/')}"))
        log_stage(logger, "content", "content.listing", store_id=udi.store_id, root_hash=root, keys=len(links))
        return HTMLResponse(views.render_keys_index(udi.store_id, links), headers=headers)

    # ------------------------------------------------------------------ #
    # Key-level                                                          #
    # ------------------------------------------------------------------ #
    async def _key(self, ctx: ResolvedContext) -> Response:
        udi = ctx.udi
        root = udi.root_hash or ""
        key = udi.resource_key or ""
        hex_key = hex_encode_key(key)

        if not await self._merkle.has_key(udi.store_id, hex_key, root):
            log_stage(logger, "content", "content.key_missing", store_id=udi.store_id, root_hash=root)
            if ctx.is_head:
                return Response(status_code=KeyMissing.status_code, headers={**ctx.headers, H.KEY_EXISTS: "false"})
            return await self._index(ctx, key_exists=False)

        proof = await self._proof(udi.store_id, hex_key, root)
        headers = {**ctx.headers, H.KEY_EXISTS: "true", H.PROOF_OF_INCLUSION: proof}

        if key.endswith(EXECUTABLE_SUFFIX):
            if ctx.is_head:
                return Response(status_code=200, headers=headers, media_type="application/json")
            return await self._execute(ctx, hex_key, headers)

        media_type = content_type_for(key)
        if ctx.is_head:
            return Response(status_code=200, headers=headers, media_type=media_type)

        stream = self._merkle.open_value_stream(udi.store_id, hex_key, root, ctx.offset, ctx.length)
        body = await self._open_stream(stream, ctx)
        log_stage(logger, "content", "content.stream", store_id=udi.store_id, root_hash=root,
                  offset=ctx.offset, length=ctx.length)
        return StreamingResponse(body, headers=headers, media_type=media_type)

    async def _proof(self, store_id: str, hex_key: str, root: str) -> str:
        sha256 = await self._merkle.content_hash(store_id, hex_key, root)
        if not sha256:
            raise InternalError("Error retrieving file.", store_id=store_id)
        return await self._merkle.inclusion_proof(store_id, hex_key, sha256, root)

    async def _execute(self, ctx: ResolvedContext, hex_key: str, headers: Dict[str, str]) -> Response:
        udi = ctx.udi
        chunks = self._merkle.open_value_stream(udi.store_id, hex_key, udi.root_hash or "")
        parts = []
        try:
            async for chunk in chunks:
                parts.append(chunk)
        except (SyncPending, StreamFailure):
            raise
        except Exception as exc:
            raise StreamFailure("Error reading program source.", store_id=udi.store_id) from exc
        finally:
            await _aclose(chunks)
        source = b"".join(parts).decode("utf-8", errors="replace")
        params = ctx.params
        result = await self._exec_cache.get_or_compute(udi.to_urn(), params, source)
        log_stage(logger, "content", "content.execute", store_id=udi.store_id, params=len(params))
        return JSONResponse({"source": source, "params": params, "result": result}, headers=headers)

    # ------------------------------------------------------------------ #
    # Streaming                                                          #
    # ------------------------------------------------------------------ #
    async def _open_stream(self, chunks: AsyncIterator[bytes], ctx: ResolvedContext) -> AsyncIterator[bytes]:
        """
        Pull the first chunk before any header is sent so an immediate failure
        can still become a 500. Later failures can only abort the transfer.
        """
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            first = b""
        except SyncPending:
            await _aclose(chunks)
            raise
        except Exception as exc:
            await _aclose(chunks)
            raise StreamFailure("Error streaming file.", store_id=ctx.udi.store_id) from exc
        return self._relay(first, chunks, ctx)

    async def _relay(self, first: bytes, chunks: AsyncIterator[bytes], ctx: ResolvedContext) -> AsyncIterator[bytes]:
        sent = 0
        try:
            if first:
                sent += len(first)
                yield first
            async for chunk in chunks:
                sent += len(chunk)
                yield chunk
        except Exception as exc:
            # Headers are already on the wire; the client sees a truncated body
            record_error(
                StreamFailure.code.value,
                where="content.stream",
                message=str(exc),
                logger=logger,
                store_id=ctx.udi.store_id,
                root_hash=ctx.udi.root_hash,
                bytes_sent=sent,
            )
            raise StreamFailure("Error streaming file.", store_id=ctx.udi.store_id) from exc
        finally:
            await _aclose(chunks)
            metrics.counter("dig_gateway_stream_bytes_total", sent)

    # ------------------------------------------------------------------ #
    # Other terminal states                                              #
    # ------------------------------------------------------------------ #
    async def _challenge(self, ctx: ResolvedContext) -> Response:
        body = await self._challenges.respond(ctx.challenge or "", ctx.udi)
        return Response(content=body, status_code=200, headers=dict(ctx.headers), media_type=DEFAULT_CONTENT_TYPE)

    async def _peer_redirect(self, ctx: ResolvedContext) -> Response:
        udi = ctx.udi
        peer = await self._peers.find_peer_for_store(udi.store_id, udi.root_hash)
        log_stage(logger, "content", "content.peer_lookup", store_id=udi.store_id, found=bool(peer))
        if peer:
            html = views.render_peer_redirect(udi, peer)
        else:
            html = views.render_store_not_found()
        return HTMLResponse(html, status_code=PeerNotFound.status_code, headers=dict(ctx.headers))

    async def _syncing(self, ctx: ResolvedContext) -> Response:
        state: Optional[StoreState] = None
        try:
            state = await self._coin_state.fetch_latest_version(ctx.udi.store_id)
        except GatewayError as exc:
            log_stage(logger, "content", "content.sync_state_unavailable",
                      store_id=ctx.udi.store_id, error=exc.code.value)
        headers = {**ctx.headers, H.SYNCED: "false"}
        if ctx.is_head:
            return Response(status_code=202, headers=headers)
        return HTMLResponse(views.render_syncing(ctx.udi.store_id, state), status_code=202, headers=headers)

    def _error(self, ctx: ResolvedContext, exc: GatewayError) -> Response:
        record_error(
            exc.code.value,
            where="content.serve",
            message=exc.message,
            logger=logger,
            store_id=ctx.udi.store_id,
            status_code=exc.status_code,
        )
        headers = dict(ctx.headers)
        if ctx.has_key:
            headers[H.KEY_EXISTS] = "false"
        if ctx.is_head:
            return Response(status_code=exc.status_code, headers=headers)
        return PlainTextResponse(exc.message, status_code=exc.status_code, headers=headers)


__all__ = ["ContentGateway", "inject_base_href", "content_type_for"]
