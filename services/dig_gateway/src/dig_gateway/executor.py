from __future__ import annotations

from typing import Sequence

import httpx

from core_http.client import fetch_json
from core_logging import get_logger, log_stage
from core_utils import jsonx

from .errors import UpstreamError

logger = get_logger("dig_gateway.executor")


class ClvmExecutor:
    """Runs Chialisp programs on the CLVM execution container."""

    def __init__(self, base_url: str):
        self._url = base_url.rstrip("/") + "/run-chialisp"

    async def execute(self, source: str, params: Sequence[str]) -> str:
        try:
            data = await fetch_json("POST", self._url, json={"clsp": source, "params": list(params)}, stage="exec")
        except httpx.HTTPError as exc:
            log_stage(logger, "exec", "exec.failed", error=str(exc))
            raise UpstreamError("Failed to execute Chialisp program") from exc
        result = (data or {}).get("result") if isinstance(data, dict) else None
        if result is None:
            raise UpstreamError("CLVM response carried no result")
        return result if isinstance(result, str) else jsonx.dumps(result)


__all__ = ["ClvmExecutor"]
