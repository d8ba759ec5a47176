from __future__ import annotations
from hashlib import blake2s
from typing import Sequence


def _fp(*parts: object) -> str:
    """
    Short fingerprint of *parts* for use inside Redis keys. Each part is
    length-prefixed, so distinct part sequences never share an encoding.
    """
    h = blake2s(digest_size=10)
    for p in parts:
        raw = ("" if p is None else str(p)).encode("utf-8")
        h.update(b"%d:" % len(raw))
        h.update(raw)
    return h.hexdigest()


# Execution results
_NS_EXEC = "dig:exec:v2"


def exec_result(resource_path: str, params: Sequence[str]) -> str:
    """Key for one (resource path, ordered params) pair."""
    return f"{_NS_EXEC}:{_fp(resource_path, len(params), *params)}"
