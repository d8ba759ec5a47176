import sys
from pathlib import Path

# Ensure the monorepo import shim is active even if PYTHONPATH is minimal.
# Putting the repo root on sys.path lets sitecustomize expose 'packages/*/src'.
ROOT = Path(__file__).resolve().parents[4]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
    import sitecustomize  # noqa: F401,E402

from core_config import get_settings  # noqa: E402
from core_utils.uvicorn_entry import run  # noqa: E402


def main() -> None:
    settings = get_settings()
    run(
        "dig_gateway.app:app",
        port=settings.port,
        host=settings.host,
        log_level=settings.service_log_level.lower(),
    )


if __name__ == "__main__":
    main()
