from .health import *
from .ids import *
from .fingerprints import *
from . import jsonx

__all__ = [
    "attach_health_routes",
    "HealthCheck",
    "generate_request_id",
    "hex_encode_key",
    "hex_decode_key",
    "is_hex_id",
    "canonical_json",
    "sha256_hex",
    "sha256_bytes",
    "jsonx",
]
