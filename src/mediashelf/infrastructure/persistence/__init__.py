"""Infrastructure persistence layer."""

from .batch_utils import batch_execute, iter_batches
from .cache_store import METADATA_LAST_SCAN_STATS, CacheStore
from .database import Database
from .kv_store import KEY_CUSTOM_PATHS, KEY_LAST_SCAN_AT, KeyValueStore
from .migrations import CURRENT_SCHEMA_VERSION, SchemaMigrator
from .models import (
    Base,
    CacheMetadataModel,
    FavoriteModel,
    FolderModel,
    MediaFileModel,
    MediaFileShadowModel,
    PlaylistItemModel,
    PlaylistModel,
    SchemaVersionModel,
)
from .repositories import (
    FavoriteRepository,
    FolderRepository,
    MediaRepository,
    MetadataRepository,
    PlaylistRepository,
)
from .retry import is_lock_error, with_db_retry

__all__ = [
    "Base",
    "CURRENT_SCHEMA_VERSION",
    "CacheMetadataModel",
    "CacheStore",
    "Database",
    "FavoriteModel",
    "FavoriteRepository",
    "FolderModel",
    "FolderRepository",
    "KEY_CUSTOM_PATHS",
    "KEY_LAST_SCAN_AT",
    "KeyValueStore",
    "METADATA_LAST_SCAN_STATS",
    "MediaFileModel",
    "MediaFileShadowModel",
    "MediaRepository",
    "MetadataRepository",
    "PlaylistItemModel",
    "PlaylistModel",
    "PlaylistRepository",
    "SchemaMigrator",
    "SchemaVersionModel",
    "batch_execute",
    "is_lock_error",
    "iter_batches",
    "with_db_retry",
]
