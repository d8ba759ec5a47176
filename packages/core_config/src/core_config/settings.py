from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_dig_folder() -> str:
    return str(Path.home() / ".dig")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = Field(default="dev", alias="ENVIRONMENT")
    service_log_level: str = Field(default="INFO", alias="SERVICE_LOG_LEVEL")

    # Listener
    port: int = Field(default=4161, alias="PORT")
    host: str = Field(default="0.0.0.0", alias="HOST")

    # Local store data
    dig_folder_path: str = Field(default_factory=_default_dig_folder, alias="DIG_FOLDER_PATH")
    # Raw flag: the content server historically treated an *empty* value as "on",
    # so presence of the variable is what matters.
    cache_all_stores_raw: Optional[str] = Field(default=None, alias="CACHE_ALL_STORES")

    @property
    def cache_all_stores(self) -> bool:  # noqa: D401
        """Force-materialize every served store under the local store folder."""
        raw = self.cache_all_stores_raw
        if raw is None:
            return False
        return raw.strip().lower() not in ("0", "false", "no", "off")

    @property
    def stores_path(self) -> Path:
        return Path(self.dig_folder_path) / "stores"

    # Collaborators
    dig_node_url: str = Field(default="http://localhost:4159", alias="DIG_NODE_URL")
    clvm_url: str = Field(default="http://clvm:4163", alias="CLVM_URL")

    # Published identity for /.well-known (ENV ONLY)
    dig_public_key: str = Field(default="", alias="DIG_PUBLIC_KEY")

    # Execution cache backend: "memory" (process-local) or "redis" (shared)
    exec_cache_backend: str = Field(default="memory", alias="EXEC_CACHE_BACKEND")
    redis_url: str = Field(default="redis://redis:6379/0", alias="REDIS_URL")
    redis_max_connections: int = Field(default=50, alias="REDIS_MAX_CONNECTIONS")

    # HTTP client pool
    http_max_keepalive: int = Field(default=20, alias="HTTP_MAX_KEEPALIVE")
    http_max_connections: int = Field(default=100, alias="HTTP_MAX_CONNECTIONS")

    # Session cookie
    cookie_secure: bool = Field(default=False, alias="COOKIE_SECURE")


def get_settings() -> "Settings":
    return Settings()  # type: ignore


