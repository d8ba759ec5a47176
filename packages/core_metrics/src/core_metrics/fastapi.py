from __future__ import annotations

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest


def attach_prometheus_endpoint(app: FastAPI, path: str = "/metrics", *, registry=REGISTRY) -> None:
    """Expose *registry* in text exposition format at *path*; repeat calls are ignored."""
    name = f"prometheus{path.replace('/', ':')}"
    if any(getattr(route, "name", None) == name for route in app.router.routes):
        return

    @app.api_route(path, methods=["GET", "HEAD"], include_in_schema=False, name=name)
    def _scrape() -> Response:
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


__all__ = ["attach_prometheus_endpoint"]
