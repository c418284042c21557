"""Application settings loaded from environment variables.

Hey future me - every knob of the engine lives here! Values come from
``MEDIASHELF_*`` environment variables (nested sections use ``__``, e.g.
``MEDIASHELF_CACHE__TTL_HOURS=12``) or are passed explicitly in tests:

    Settings(database={"url": "sqlite+aiosqlite:///:memory:"})
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_FILENAME = "mediashelf.db"


class DatabaseSettings(BaseModel):
    """Persistent store settings."""

    # None means "derive from storage.data_dir" (see Settings._fill_database_url)
    url: str | None = None
    echo: bool = False


class StorageSettings(BaseModel):
    """Where the engine keeps its own files."""

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".mediashelf")
    state_file: str = "state.json"

    @field_validator("data_dir", mode="after")
    @classmethod
    def _expand_data_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @property
    def state_path(self) -> Path:
        """Absolute path of the key-value state file."""
        return self.data_dir / self.state_file


class ScannerSettings(BaseModel):
    """Directory traversal settings."""

    max_depth: int = Field(default=3, ge=0)
    reconcile_depth: int = Field(default=2, ge=0)
    min_size_bytes: int = Field(default=0, ge=0)
    ignored_dirs: list[str] = Field(
        default_factory=lambda: [
            "cache",
            "Cache",
            "thumbnails",
            ".thumbnails",
            "LOST.DIR",
        ]
    )
    ignored_prefixes: list[str] = Field(default_factory=lambda: ["Android"])
    # Replaces the platform defaults wholesale when set
    default_roots: list[str] | None = None
    batch_size: int = Field(default=100, ge=1)


class CacheSettings(BaseModel):
    """Staleness heuristic settings."""

    ttl_hours: float = Field(default=24.0, gt=0)
    drift_threshold: float = Field(default=0.05, ge=0)
    reconcile_delay_seconds: float = Field(default=5.0, ge=0)
    search_limit: int = Field(default=50, ge=1)


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_level: str = "INFO"
    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object.

    Construct once at startup and pass it explicitly to LibraryIndex.create().
    """

    model_config = SettingsConfigDict(
        env_prefix="MEDIASHELF_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "mediashelf"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    scanner: ScannerSettings = Field(default_factory=ScannerSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @model_validator(mode="after")
    def _fill_database_url(self) -> "Settings":
        if not self.database.url:
            db_path = self.storage.data_dir / DEFAULT_DB_FILENAME
            self.database.url = f"sqlite+aiosqlite:///{db_path}"
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
