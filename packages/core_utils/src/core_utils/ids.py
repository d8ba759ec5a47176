import re, uuid

__all__ = ["generate_request_id", "hex_encode_key", "hex_decode_key", "is_hex_id"]

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

def generate_request_id() -> str:
    """
    Non-deterministic 16-hex id for logging/health/exception paths.
    """
    return uuid.uuid4().hex[:16]

def hex_encode_key(key: str) -> str:
    """UTF-8 bytes of *key*, hex encoded. Store keys travel in this form."""
    return key.encode("utf-8").hex()

def hex_decode_key(hex_key: str) -> str:
    """Inverse of hex_encode_key. Raises ValueError on non-hex input."""
    return bytes.fromhex(hex_key).decode("utf-8", errors="replace")

def is_hex_id(value: str | None, length: int = 64) -> bool:
    """True when *value* is exactly *length* hex characters."""
    return bool(value) and len(value) == length and bool(_HEX_RE.match(value))
