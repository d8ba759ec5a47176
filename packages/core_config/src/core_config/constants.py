import os

# ── Universal Data Identifier (UDI) ──────────────────────────────────────
# urn:dig:<chain>:<store_id>[:<root_hash>][/<resource_key>]
UDI_NID = "dig"
UDI_NAMESPACE = f"urn:{UDI_NID}"
DEFAULT_CHAIN_NAME = "chia"
VALID_CHAIN_NAMES: tuple[str, ...] = ("chia",)
STORE_ID_LENGTH = 64
ROOT_HASH_LENGTH = 64

# Query parameter that may carry an identifier instead of the first path segment
UDI_QUERY_PARAM = "udi"

# ── Session cookie ───────────────────────────────────────────────────────
UDI_COOKIE_NAME = "udiData"
UDI_COOKIE_TTL_SEC = 300   # 5 minutes, renewed on every successful resolution

# ── Content serving ──────────────────────────────────────────────────────
DEFAULT_DOCUMENT = "index.html"
EXECUTABLE_SUFFIX = ".clsp"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
# Peers run the content server on this port
PEER_CONTENT_PORT = 4161
STREAM_CHUNK_BYTES = int(os.getenv("STREAM_CHUNK_BYTES", "65536"))

# Cache TTL constants
# Services MUST NOT read env for these; only core_config defines them.
TTL_EXEC_CACHE_SEC = 180   # 3 minutes

# Stage budgets (ms) – env override keeps tests happy
TIMEOUT_COIN_STATE_MS = int(os.getenv("TIMEOUT_COIN_STATE_MS", "5000"))
TIMEOUT_STORE_MS      = int(os.getenv("TIMEOUT_STORE_MS", "3000"))
TIMEOUT_PEER_MS       = int(os.getenv("TIMEOUT_PEER_MS", "4000"))
TIMEOUT_CHALLENGE_MS  = int(os.getenv("TIMEOUT_CHALLENGE_MS", "3000"))
TIMEOUT_EXEC_MS       = int(os.getenv("TIMEOUT_EXEC_MS", "10000"))
# Streams only bound the wait for the next chunk
TIMEOUT_STREAM_MS     = int(os.getenv("TIMEOUT_STREAM_MS", "30000"))

_STAGE_TIMEOUTS_MS = {
    "coin_state": TIMEOUT_COIN_STATE_MS,
    "store": TIMEOUT_STORE_MS,
    "peer": TIMEOUT_PEER_MS,
    "challenge": TIMEOUT_CHALLENGE_MS,
    "exec": TIMEOUT_EXEC_MS,
    "stream": TIMEOUT_STREAM_MS,
}

def timeout_for_stage(stage: str) -> float:
    return _STAGE_TIMEOUTS_MS.get(stage, TIMEOUT_STORE_MS) / 1000.0
