"""
Monorepo import shim (dev only).

Loaded automatically by Python at startup *if* the repo root is on sys.path,
so `python -m dig_gateway` works from a checkout without an editable install.
"""
from pathlib import Path
import sys, os, json
from datetime import datetime, timezone

ROOT = Path(__file__).resolve().parent

src_roots = (
    [ROOT]
    + sorted((ROOT / "packages").glob("*/src"))
    + sorted((ROOT / "services").glob("*/src"))
)

# Prepend deterministically (preserve order; avoid dups)
for p in map(str, reversed(src_roots)):
    if p and p not in sys.path:
        sys.path.insert(0, p)

# Optional debug hook (structured line, opt-in)
if os.getenv("DIG_IMPORT_DEBUG") == "1":
    msg = {
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": "INFO",
        "service": "import-shim",
        "event": "sitecustomize.paths_injected",
        "meta": {
            "paths_added": len(src_roots),
            "first_paths": [str(p) for p in src_roots[:3]],
        },
    }
    print(json.dumps(msg), file=sys.stderr)
