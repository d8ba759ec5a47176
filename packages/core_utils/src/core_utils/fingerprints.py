import hashlib
from typing import Any, Union

import orjson

__all__ = ["canonical_json", "sha256_hex", "sha256_bytes"]

Hashable = Union[str, bytes, bytearray, memoryview]

_CANONICAL = orjson.OPT_SORT_KEYS | orjson.OPT_OMIT_MICROSECONDS


def canonical_json(obj: Any) -> bytes:
    """Compact JSON with sorted keys, stable across runs."""
    return orjson.dumps(obj, option=_CANONICAL)


def sha256_bytes(data: Hashable) -> bytes:
    if isinstance(data, str):
        data = data.encode("utf-8")
    elif not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"cannot hash {type(data).__name__}")
    return hashlib.sha256(data).digest()


def sha256_hex(data: Hashable) -> str:
    return sha256_bytes(data).hex()
