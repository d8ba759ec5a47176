"""
Canonical HTTP header names used by the DIG content gateway.
"""
from typing import Final, MutableMapping, Optional

# --- Identity / version (mirrored on every content response) ------------------
GENERATION_HASH: Final[str]    = "X-Generation-Hash"     # resolved root version
STORE_ID: Final[str]           = "X-Store-Id"
KEY_EXISTS: Final[str]         = "X-Key-Exists"          # "true" | "false"
PROOF_OF_INCLUSION: Final[str] = "x-proof-of-inclusion"
SYNCED: Final[str]             = "X-Synced"              # store-level responses only

# --- Standard headers we set explicitly ----------------------------------------
REFERRER_POLICY: Final[str]    = "Referrer-Policy"
REQUEST_ID: Final[str]         = "x-request-id"

def bool_header(value: bool) -> str:
    return "true" if value else "false"

def mirror_identity_headers(
    headers: MutableMapping[str, str],
    *,
    store_id: str,
    root_hash: Optional[str],
    key_exists: Optional[bool] = None,
    proof: Optional[str] = None,
) -> None:
    """
    Write the identity/existence/proof headers to a response-like mapping.
    - Always mirror X-Store-Id; X-Generation-Hash when a version is known.
    - X-Key-Exists and x-proof-of-inclusion only when the path reached them.
    """
    headers[STORE_ID] = str(store_id)
    if root_hash:
        headers[GENERATION_HASH] = str(root_hash)
    if key_exists is not None:
        headers[KEY_EXISTS] = bool_header(key_exists)
    if proof:
        headers[PROOF_OF_INCLUSION] = str(proof)

__all__ = [
    "GENERATION_HASH",
    "STORE_ID",
    "KEY_EXISTS",
    "PROOF_OF_INCLUSION",
    "SYNCED",
    "REFERRER_POLICY",
    "REQUEST_ID",
    "bool_header",
    "mirror_identity_headers",
]
