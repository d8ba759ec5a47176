import asyncio
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from pydantic import ValidationError

from core_cache.redis_cache import RedisCache
from core_cache.redis_client import get_redis_pool
from core_config import Settings, get_settings
from core_config.constants import DEFAULT_CHAIN_NAME, UDI_COOKIE_NAME, UDI_COOKIE_TTL_SEC, UDI_QUERY_PARAM
from core_http import headers as H
from core_http.client import close_http_client, fetch_json
from core_http.errors import attach_standard_error_handlers
from core_logging import get_logger, log_stage, record_error
from core_logging.error_codes import ErrorCode
from core_utils.fastapi_bootstrap import setup_service
from core_utils.health import attach_health_routes

from . import views
from .challenge import ChallengeResponder
from .collaborators import CoinState, StoreRegistry
from .content import ContentGateway
from .errors import GatewayError, InvalidAddress, SyncPending
from .exec_cache import ExecutionCache
from .executor import ClvmExecutor
from .models import ResolvedContext, StoreState
from .node_client import DigNodeClient
from .registry import LocalStoreRegistry
from .resolver import BadRequest, CookieState, Redirect, UdiResolver
from .udi import Udi

SERVICE = "dig_gateway"
logger = get_logger(SERVICE)


@dataclass(frozen=True)
class GatewayServices:
    coin_state: CoinState
    registry: StoreRegistry
    resolver: UdiResolver
    gateway: ContentGateway
    exec_cache: ExecutionCache


def build_services(settings: Settings) -> GatewayServices:
    """Wire the production collaborators from settings."""
    node = DigNodeClient(settings.dig_node_url)
    registry = LocalStoreRegistry(settings.stores_path)
    redis = RedisCache(get_redis_pool()) if settings.exec_cache_backend == "redis" else None
    exec_cache = ExecutionCache(ClvmExecutor(settings.clvm_url), redis=redis)
    gateway = ContentGateway(
        merkle=node,
        coin_state=node,
        peers=node,
        registry=registry,
        exec_cache=exec_cache,
        challenges=ChallengeResponder(node),
        cache_all_stores=settings.cache_all_stores,
    )
    return GatewayServices(
        coin_state=node,
        registry=registry,
        resolver=UdiResolver(node),
        gateway=gateway,
        exec_cache=exec_cache,
    )


def _services(request: Request) -> GatewayServices:
    return request.app.state.services


def _raw_path(request: Request) -> str:
    # scope["path"] is already percent-decoded
    return request.scope.get("path") or "/"


def _raw_query(request: Request) -> str:
    return (request.scope.get("query_string") or b"").decode("latin-1")


async def _store_state_or_none(coin_state: CoinState, store_id: str) -> Optional[StoreState]:
    try:
        return await coin_state.fetch_latest_version(store_id)
    except GatewayError as exc:
        log_stage(logger, "index", "index.store_state_unavailable", store_id=store_id, error=exc.code.value)
    except ValidationError as exc:
        record_error(ErrorCode.upstream_error.value, where="index.store_state", message=str(exc),
                     logger=logger, level="WARNING", store_id=store_id)
    return None


async def precache_store_info(services: GatewayServices) -> None:
    """Warm the node's coin-state cache for every hosted store."""
    for store_id in services.registry.list_stores():
        try:
            await services.coin_state.fetch_latest_version(store_id)
            log_stage(logger, "startup", "precache.store", store_id=store_id)
        except GatewayError as exc:
            record_error(exc.code.value, where="startup.precache", message=exc.message,
                         logger=logger, level="WARNING", store_id=store_id)
        except ValidationError as exc:
            record_error(ErrorCode.upstream_error.value, where="startup.precache", message=str(exc),
                         logger=logger, level="WARNING", store_id=store_id)


def create_app(services: Optional[GatewayServices] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="DIG Content Gateway", version="0.1.0")
    app.state.settings = settings
    app.state.services = services or build_services(settings)

    # Order matters: fixed routes before the catch-all address route
    setup_service(app, SERVICE)
    attach_standard_error_handlers(app, service=SERVICE)

    async def _readiness() -> dict:
        try:
            await fetch_json("GET", f"{settings.dig_node_url.rstrip('/')}/healthz", stage="coin_state")
        except httpx.HTTPError as exc:
            return {"ready": False, "dig_node": exc.__class__.__name__}
        return {"ready": True}

    attach_health_routes(app, liveness=lambda: True, readiness=_readiness)

    @app.middleware("http")
    async def _referrer_policy(request: Request, call_next):
        resp = await call_next(request)
        resp.headers[H.REFERRER_POLICY] = "same-origin"
        return resp

    @app.on_event("startup")
    async def _startup() -> None:
        svc: GatewayServices = app.state.services
        registry = svc.registry
        if isinstance(registry, LocalStoreRegistry):
            registry.ensure_root()
        app.state.precache_task = asyncio.create_task(precache_store_info(svc))
        log_stage(logger, "startup", "service.started", port=settings.port, request_id="startup")

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        task = getattr(app.state, "precache_task", None)
        if task is not None and not task.done():
            task.cancel()
        await close_http_client()

    # ── .well-known ──────────────────────────────────────────────────────
    @app.api_route("/.well-known", methods=["GET", "HEAD"])
    async def well_known(request: Request) -> JSONResponse:
        base = str(request.base_url).rstrip("/")
        return JSONResponse({
            "xch_address": settings.dig_public_key,
            "known_stores_endpoint": f"{base}/.well-known/stores",
        })

    @app.api_route("/.well-known/stores", methods=["GET", "HEAD"])
    async def known_stores(request: Request) -> JSONResponse:
        return JSONResponse(_services(request).registry.list_stores())

    # ── Stores index ─────────────────────────────────────────────────────
    @app.api_route("/", methods=["GET", "HEAD"])
    async def stores_index(request: Request) -> Response:
        if request.query_params.get(UDI_QUERY_PARAM):
            return await serve_address(request)
        svc = _services(request)
        store_ids = svc.registry.list_stores()
        states = await asyncio.gather(*(_store_state_or_none(svc.coin_state, s) for s in store_ids))
        host = request.headers.get("host", "")
        rows = [
            views.render_store_row(Udi(chain_name=DEFAULT_CHAIN_NAME, store_id=s), state, host)
            for s, state in zip(store_ids, states)
        ]
        return HTMLResponse(views.render_stores_index(rows))

    # ── Addressed content ────────────────────────────────────────────────
    @app.api_route("/{address:path}", methods=["GET", "HEAD"])
    async def serve_address(request: Request) -> Response:
        svc = _services(request)
        cookie = CookieState.decode(request.cookies.get(UDI_COOKIE_NAME))
        try:
            outcome = await svc.resolver.resolve(
                _raw_path(request),
                _raw_query(request),
                referer=request.headers.get("referer"),
                cookie=cookie,
            )
        except SyncPending as exc:
            headers = {H.STORE_ID: exc.store_id, H.SYNCED: "false"}
            if request.method == "HEAD":
                return Response(status_code=202, headers=headers)
            return HTMLResponse(views.render_syncing(exc.store_id, None), status_code=202, headers=headers)
        except GatewayError as exc:
            record_error(exc.code.value, where="resolve", message=exc.message, logger=logger)
            return PlainTextResponse("An error occurred while verifying the identifier.", status_code=exc.status_code)

        if isinstance(outcome, Redirect):
            return RedirectResponse(outcome.location, status_code=302)
        if isinstance(outcome, BadRequest):
            log_stage(logger, "resolve", "resolve.bad_request", error=outcome.code.value)
            if outcome.code is ErrorCode.unknown_chain:
                return HTMLResponse(views.render_unknown_chain(outcome.store_id, outcome.chain_name or ""),
                                    status_code=InvalidAddress.status_code)
            return PlainTextResponse(outcome.reason, status_code=InvalidAddress.status_code)

        ctx = ResolvedContext(
            udi=outcome.udi,
            method=request.method,
            query=dict(request.query_params),
        )
        response = await svc.gateway.serve(ctx)
        response.set_cookie(
            UDI_COOKIE_NAME,
            outcome.cookie.encode(),
            max_age=UDI_COOKIE_TTL_SEC,
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
        )
        return response

    return app


app = create_app()
