from __future__ import annotations

from pathlib import Path
from typing import List, Union

from core_logging import get_logger, log_once_process, log_stage

from .udi import is_store_id

logger = get_logger("dig_gateway.registry")


class LocalStoreRegistry:
    """
    Stores hosted by this node: one directory per store id under the
    stores folder. The node process syncs data into these directories.
    """

    def __init__(self, stores_path: Union[str, Path]):
        self._root = Path(stores_path)

    @property
    def root(self) -> Path:
        return self._root

    def ensure_root(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        log_once_process(logger, f"stores_root:{self._root}", event="registry.root_ready", path=str(self._root))

    def list_stores(self) -> List[str]:
        if not self._root.is_dir():
            return []
        return sorted(p.name for p in self._root.iterdir() if p.is_dir() and is_store_id(p.name))

    def is_hosted(self, store_id: str) -> bool:
        return is_store_id(store_id) and (self._root / store_id).is_dir()

    def materialize(self, store_id: str) -> None:
        if not is_store_id(store_id):
            raise ValueError(f"not a store id: {store_id!r}")
        target = self._root / store_id
        if not target.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            log_stage(logger, "registry", "registry.materialized", store_id=store_id)


__all__ = ["LocalStoreRegistry"]
