"""
Address resolution.

Turns the raw inputs of a request (path, query string, Referer header and the
``udiData`` session cookie) into exactly one outcome:

* ``Resolved``   - a fully specified Udi; the caller serves it and renews the cookie
* ``Redirect``   - the visible URL must change first (missing chain/version,
                   or the identifier has to be recovered from the referrer)
* ``BadRequest`` - no usable store identifier, or a chain outside the allow-list

Fields are filled in a fixed order: explicit identifier (``udi`` query
parameter, else first path segment), then the cookie, then the referrer,
then defaults and the coin-state lookup for the latest version.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit

from core_config.constants import DEFAULT_CHAIN_NAME, UDI_QUERY_PARAM, VALID_CHAIN_NAMES
from core_logging import get_logger, log_stage
from core_logging.error_codes import ErrorCode

from .collaborators import CoinState
from .errors import InvalidAddress, UnknownChain
from .udi import IdentifierParts, Udi, is_root_hash, is_store_id, parse_compact, parse_identifier

logger = get_logger("dig_gateway.resolver")


@dataclass(frozen=True)
class CookieState:
    """Identifier triple remembered between requests (compact form on the wire)."""
    chain_name: Optional[str]
    store_id: str
    root_hash: Optional[str]

    @classmethod
    def decode(cls, raw: Optional[str]) -> Optional["CookieState"]:
        if not raw:
            return None
        parts = parse_compact(raw)
        if not parts.has_store:
            return None
        return cls(parts.chain_name, parts.store_id, parts.root_hash)  # type: ignore[arg-type]

    def encode(self) -> str:
        return ".".join(p for p in (self.chain_name, self.store_id, self.root_hash) if p)

    def as_parts(self) -> IdentifierParts:
        return IdentifierParts(self.chain_name, self.store_id, self.root_hash)


@dataclass(frozen=True)
class Resolved:
    udi: Udi
    cookie: CookieState


@dataclass(frozen=True)
class Redirect:
    location: str


@dataclass(frozen=True)
class BadRequest:
    reason: str
    chain_name: Optional[str] = None
    store_id: Optional[str] = None
    code: ErrorCode = ErrorCode.invalid_address

    @classmethod
    def from_error(cls, exc: InvalidAddress) -> "BadRequest":
        if isinstance(exc, UnknownChain):
            return cls(exc.message, exc.chain_name, exc.store_id, exc.code)
        return cls(exc.message, code=exc.code)


ResolveOutcome = Union[Resolved, Redirect, BadRequest]


def _split_path(path: str) -> list[str]:
    return (path or "").lstrip("/").split("/")


def _collapse_duplicate_store(segments: list[str]) -> list[str]:
    """
    ``/<store>/chia.<store>.<root>/key`` comes from naive relative links;
    drop the leading bare store when the next segment names the same store.
    """
    if len(segments) >= 2 and is_store_id(segments[0]):
        nxt, _ = parse_identifier(segments[1])
        if nxt.store_id == segments[0]:
            return segments[1:]
    return segments


def _query_without_udi(query: str) -> str:
    pairs = parse_qsl(query or "", keep_blank_values=True)
    if not any(k == UDI_QUERY_PARAM for k, _ in pairs):
        return query or ""
    return urlencode([(k, v) for k, v in pairs if k != UDI_QUERY_PARAM])


def _with_query(url: str, query: str) -> str:
    return f"{url}?{query}" if query else url


def _quote_key(key: str) -> str:
    return quote(key, safe="/")


class UdiResolver:
    def __init__(self, coin_state: CoinState):
        self._coin_state = coin_state

    def _explicit_identifier(self, path: str, query: str) -> Tuple[IdentifierParts, str]:
        """Identifier parts and the resource key implied by where they came from."""
        udi_param = next((v for k, v in parse_qsl(query or "", keep_blank_values=True)
                          if k == UDI_QUERY_PARAM and v), None)
        whole_path = "/".join(_split_path(path))
        if udi_param:
            parts, urn_key = parse_identifier(udi_param)
            return parts, whole_path or (urn_key or "")
        segments = _collapse_duplicate_store(_split_path(path))
        parts, _ = parse_identifier(segments[0])
        if not parts.has_store:
            # The first segment is not an identifier; it belongs to the key
            return parts, whole_path
        return parts, "/".join(segments[1:])

    async def resolve(
        self,
        path: str,
        query: str = "",
        referer: Optional[str] = None,
        cookie: Optional[CookieState] = None,
    ) -> ResolveOutcome:
        try:
            return await self._resolve(path, query, referer, cookie)
        except InvalidAddress as exc:
            return BadRequest.from_error(exc)

    async def _resolve(
        self,
        path: str,
        query: str,
        referer: Optional[str],
        cookie: Optional[CookieState],
    ) -> ResolveOutcome:
        parts, key = self._explicit_identifier(path, query)

        # ── Cookie ────────────────────────────────────────────────────────
        if not parts.has_store:
            if cookie is not None:
                log_stage(logger, "resolve", "udi.cookie_adopted", store_id=cookie.store_id)
                parts = cookie.as_parts()
        elif cookie is not None and (not parts.chain_name or not is_root_hash(parts.root_hash)):
            if cookie.store_id == parts.store_id:
                parts = IdentifierParts(
                    parts.chain_name or cookie.chain_name,
                    parts.store_id,
                    parts.root_hash if is_root_hash(parts.root_hash) else cookie.root_hash,
                )
            else:
                log_stage(logger, "resolve", "udi.cookie_ignored", store_id=parts.store_id)

        # ── Referrer ──────────────────────────────────────────────────────
        if not parts.has_store:
            if referer:
                return self._from_referrer(referer, key, query)
            log_stage(logger, "resolve", "udi.invalid_store", path=path)
            raise InvalidAddress("Invalid or missing storeId.")

        store_id = parts.store_id or ""
        chain_name = parts.chain_name
        root_hash = parts.root_hash if is_root_hash(parts.root_hash) else None

        # ── Chain ─────────────────────────────────────────────────────────
        if chain_name and chain_name not in VALID_CHAIN_NAMES:
            log_stage(logger, "resolve", "udi.unknown_chain", chain=chain_name, store_id=store_id)
            raise UnknownChain(chain_name, store_id)

        # ── Visible canonical form ────────────────────────────────────────
        if not chain_name or not root_hash:
            chain_name = chain_name or DEFAULT_CHAIN_NAME
            if not root_hash:
                state = await self._coin_state.fetch_latest_version(store_id)
                root_hash = state.root_hash
            target = f"/{chain_name}.{store_id}.{root_hash}"
            if key:
                target += "/" + _quote_key(key)
            location = _with_query(target, _query_without_udi(query))
            log_stage(logger, "resolve", "udi.redirect", store_id=store_id, root_hash=root_hash)
            return Redirect(location)

        udi = Udi(chain_name=chain_name, store_id=store_id, root_hash=root_hash, resource_key=key or None)
        log_stage(logger, "resolve", "udi.resolved", udi=udi.to_urn(), store_id=store_id, root_hash=root_hash)
        return Resolved(udi=udi, cookie=CookieState(chain_name, store_id, root_hash))

    def _from_referrer(self, referer: str, key: str, query: str) -> ResolveOutcome:
        ref = urlsplit(referer)
        first = _split_path(ref.path)[0]
        ref_parts, _ = parse_identifier(unquote(first))
        if not ref_parts.has_store:
            log_stage(logger, "resolve", "udi.invalid_store", referer_path=ref.path)
            raise InvalidAddress("Invalid or missing storeId.")
        origin = f"{ref.scheme}://{ref.netloc}" if ref.scheme and ref.netloc else ""
        target = f"{origin}/{first}"
        if key:
            target += "/" + _quote_key(key)
        log_stage(logger, "resolve", "udi.referrer_redirect", store_id=ref_parts.store_id)
        return Redirect(_with_query(target, _query_without_udi(query)))


__all__ = ["UdiResolver", "CookieState", "Resolved", "Redirect", "BadRequest", "ResolveOutcome"]
