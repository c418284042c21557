# Hey future me - this is the ONE object the rest of the engine talks to for persistence.
# It owns the Database, runs the SchemaMigrator exactly once on open(), and hides the
# repositories behind plain async methods that each run in their own transaction.
#
# THE IMPORTANT BIT is replace_all(). A full rescan can produce tens of thousands of rows,
# and SQLite locks the whole file per write transaction. So:
#   1. rows go into media_files_shadow in batches (one short transaction per batch)
#   2. ONE swap transaction deletes vanished live rows (unless a favorite or playlist item
#      still points at them), upserts the shadow into live, rewrites folders and empties
#      the shadow
# An empty record list never reaches the swap. An unmounted card must not wipe the index.
# Readers only ever see the old table or the new one. Upserting (instead of delete+insert)
# keeps every surviving id in place, so favorites/playlist items don't cascade away.
"""CacheStore: versioned persistent store for the media index."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import sqlalchemy as sa
from sqlalchemy import delete, insert, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from mediashelf.config import Settings
from mediashelf.domain.entities import (
    Folder,
    LibraryStats,
    MediaKind,
    MediaRecord,
    Playlist,
    PlaylistItem,
    utc_now,
)
from mediashelf.domain.exceptions import CacheWriteError
from mediashelf.infrastructure.persistence.batch_utils import batch_execute
from mediashelf.infrastructure.persistence.database import Database
from mediashelf.infrastructure.persistence.migrations import SchemaMigrator
from mediashelf.infrastructure.persistence.models import (
    Base,
    CacheMetadataModel,
    FavoriteModel,
    FolderModel,
    MediaFileModel,
    MediaFileShadowModel,
    PlaylistItemModel,
    PlaylistModel,
)
from mediashelf.infrastructure.persistence.repositories import (
    FavoriteRepository,
    FolderRepository,
    MediaRepository,
    MetadataRepository,
    PlaylistRepository,
    media_to_row,
)
from mediashelf.infrastructure.persistence.retry import with_db_retry

logger = logging.getLogger(__name__)

METADATA_LAST_SCAN_STATS = "last_scan_stats"


class CacheStore:
    """Async facade over the media store."""

    def __init__(
        self,
        database: Database,
        migrator: SchemaMigrator | None = None,
        batch_size: int = 100,
        search_limit: int = 50,
    ) -> None:
        self.database = database
        self.migrator = migrator or SchemaMigrator()
        self.batch_size = batch_size
        self.search_limit = search_limit
        self._schema_version: int | None = None
        self._open_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> CacheStore:
        return cls(
            Database(settings),
            batch_size=settings.scanner.batch_size,
            search_limit=settings.cache.search_limit,
        )

    @property
    def schema_version(self) -> int | None:
        """Version reached by open(); None while closed."""
        return self._schema_version

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def open(self) -> int:
        """Run the schema migrator once and prepare the shadow table.

        Calling open() again on an open store is a no-op.

        Raises:
            MigrationError: if the schema could not be brought forward
        """
        async with self._open_lock:
            if self._schema_version is not None:
                return self._schema_version
            version = await self.migrator.open(self.database)
            # Scratch table, not part of the versioned schema
            async with self.database.engine.begin() as conn:
                await conn.run_sync(
                    lambda sync_conn: MediaFileShadowModel.__table__.create(
                        sync_conn, checkfirst=True
                    )
                )
            self._schema_version = version
            logger.info("Cache store open at schema v%d", version)
            return version

    async def close(self) -> None:
        await self.database.close()
        self._schema_version = None

    async def _ensure_open(self) -> None:
        if self._schema_version is None:
            await self.open()

    # =========================================================================
    # BULK REPLACE
    # =========================================================================

    async def replace_all(
        self,
        records: Sequence[MediaRecord],
        folders: Sequence[Folder] | None = None,
    ) -> None:
        """Replace the whole media set with records.

        folders, when given, replaces the stored root list in the same swap. An empty
        record list is a no-op. Vanished records that a favorite or playlist item still
        points at are kept.

        Raises:
            CacheWriteError: a batch or the swap failed; the live table is unchanged
        """
        if not records:
            logger.warning("replace_all called with no records, keeping the stored media set")
            return

        await self._ensure_open()
        rows = [media_to_row(r) for r in records]
        shadow = MediaFileShadowModel.__table__

        await self._clear_shadow()
        try:
            batches = await batch_execute(
                self.database, insert(shadow), rows, batch_size=self.batch_size
            )
        except CacheWriteError:
            await self._clear_shadow()
            raise

        try:
            removed = await self._swap(records, folders)
        except SQLAlchemyError as e:
            logger.error("Swap of %d staged rows failed: %s", len(rows), e)
            await self._clear_shadow()
            raise CacheWriteError(f"Swap failed: {e}") from e

        logger.info(
            "Replaced media set: %d records in %d batches, %d vanished",
            len(rows),
            batches,
            removed,
        )

    async def _swap(
        self,
        records: Sequence[MediaRecord],
        folders: Sequence[Folder] | None,
    ) -> int:
        live = MediaFileModel.__table__
        shadow = MediaFileShadowModel.__table__
        columns = [c.name for c in live.columns]
        favorites = FavoriteModel.__table__
        items = PlaylistItemModel.__table__

        async with self.database.session_scope() as session:
            # Vanished rows still referenced by a favorite or playlist item stay, so the
            # cascade only ever fires from delete_media()
            result = await session.execute(
                delete(live).where(
                    live.c.id.not_in(select(shadow.c.id)),
                    live.c.id.not_in(select(favorites.c.media_id)),
                    live.c.id.not_in(select(items.c.media_id)),
                )
            )
            removed = int(result.rowcount or 0)  # type: ignore[attr-defined]

            # WHERE true keeps SQLite from parsing ON CONFLICT as a join constraint
            upsert = sqlite_insert(live).from_select(
                columns, select(*(shadow.c[name] for name in columns)).where(sa.true())
            )
            upsert = upsert.on_conflict_do_update(
                index_elements=["id"],
                set_={name: upsert.excluded[name] for name in columns if name != "id"},
            )
            await session.execute(upsert)

            if folders is not None:
                await FolderRepository(session).replace_all(folders)

            audio = sum(1 for r in records if r.kind is MediaKind.AUDIO)
            await MetadataRepository(session).set(
                METADATA_LAST_SCAN_STATS,
                {
                    "total": len(records),
                    "audio": audio,
                    "video": len(records) - audio,
                    "completed_at": utc_now(),
                },
            )
            await session.execute(delete(shadow))
        return removed

    async def _clear_shadow(self) -> None:
        try:
            async with self.database.session_scope() as session:
                await session.execute(delete(MediaFileShadowModel.__table__))
        except SQLAlchemyError as e:
            # Leftovers are wiped again before the next replace_all
            logger.warning("Could not clear staging table: %s", e)

    # =========================================================================
    # MEDIA QUERIES
    # =========================================================================

    async def query_all(self) -> list[MediaRecord]:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await MediaRepository(session).list_all()

    async def query_by_kind(self, kind: MediaKind) -> list[MediaRecord]:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await MediaRepository(session).list_all(MediaKind(kind))

    async def get_media(self, media_id: str) -> MediaRecord | None:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await MediaRepository(session).get(media_id)

    async def search(self, substring: str, limit: int | None = None) -> list[MediaRecord]:
        """Case-insensitive substring search on name or title, ordered by name.

        A blank query matches nothing.
        """
        if not substring or not substring.strip():
            return []
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await MediaRepository(session).search(
                substring.strip(), limit or self.search_limit
            )

    async def count(self) -> int:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await MediaRepository(session).count()

    async def count_by_kind(self) -> dict[MediaKind, int]:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await MediaRepository(session).count_by_kind()

    async def query_folders(self) -> list[Folder]:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await FolderRepository(session).list_all()

    async def stats(self) -> LibraryStats:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            repo = MediaRepository(session)
            by_kind = await repo.count_by_kind()
            return LibraryStats(
                total_records=sum(by_kind.values()),
                audio_count=by_kind[MediaKind.AUDIO],
                video_count=by_kind[MediaKind.VIDEO],
                total_size_bytes=await repo.total_size(),
                schema_version=self._schema_version or 0,
            )

    # =========================================================================
    # SINGLE-ROW WRITES
    # =========================================================================

    @with_db_retry()
    async def upsert_one(self, record: MediaRecord) -> None:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            await MediaRepository(session).upsert(record)

    @with_db_retry()
    async def delete_media(self, media_id: str) -> bool:
        """Delete one record. Its favorite marker and playlist items go with it."""
        await self._ensure_open()
        async with self.database.session_scope() as session:
            deleted = await MediaRepository(session).delete(media_id)
        if deleted:
            logger.info("Deleted media record %s", media_id)
        return deleted

    # =========================================================================
    # METADATA
    # =========================================================================

    async def get_metadata(self, key: str, default: Any = None) -> Any:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await MetadataRepository(session).get(key, default)

    @with_db_retry()
    async def set_metadata(self, key: str, value: Any) -> None:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            await MetadataRepository(session).set(key, value)

    # =========================================================================
    # WIPE / RESET
    # =========================================================================

    @with_db_retry()
    async def clear(self) -> None:
        """Delete all rows (media, metadata, favorites, playlists, folders). Schema stays."""
        await self._ensure_open()
        async with self.database.session_scope() as session:
            for model in (
                PlaylistItemModel,
                PlaylistModel,
                FavoriteModel,
                MediaFileModel,
                CacheMetadataModel,
                FolderModel,
                MediaFileShadowModel,
            ):
                await session.execute(delete(model.__table__))
        logger.info("Cache store cleared")

    async def reset_schema(self) -> int:
        """Drop every table and rebuild from v1. Favorites and playlists are lost."""
        logger.warning("Resetting store schema: all tables are dropped and rebuilt")
        async with self._open_lock:
            async with self.database.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
            self._schema_version = None
        return await self.open()

    # =========================================================================
    # FAVORITES
    # =========================================================================

    @with_db_retry()
    async def add_favorite(self, media_id: str) -> None:
        """Mark media as favorite; adding twice is a no-op.

        Raises:
            EntityNotFoundException: if the media record is unknown
        """
        await self._ensure_open()
        async with self.database.session_scope() as session:
            await FavoriteRepository(session).add(media_id)

    @with_db_retry()
    async def remove_favorite(self, media_id: str) -> bool:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await FavoriteRepository(session).remove(media_id)

    async def is_favorite(self, media_id: str) -> bool:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await FavoriteRepository(session).exists(media_id)

    @with_db_retry()
    async def toggle_favorite(self, media_id: str) -> bool:
        """Flip the favorite flag and return the new state."""
        await self._ensure_open()
        async with self.database.session_scope() as session:
            repo = FavoriteRepository(session)
            if await repo.exists(media_id):
                await repo.remove(media_id)
                return False
            await repo.add(media_id)
            return True

    async def list_favorites(self) -> list[MediaRecord]:
        """Favorite records, newest first."""
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await FavoriteRepository(session).list_records()

    # =========================================================================
    # PLAYLISTS
    # =========================================================================

    @with_db_retry()
    async def create_playlist(self, name: str, cover_image: str | None = None) -> Playlist:
        """Create a playlist.

        Raises:
            ValidationException: if name is blank
        """
        playlist = Playlist(name=name, cover_image=cover_image)
        await self._ensure_open()
        async with self.database.session_scope() as session:
            await PlaylistRepository(session).add(playlist)
        logger.info("Created playlist '%s' (%s)", playlist.name, playlist.id)
        return playlist

    @with_db_retry()
    async def rename_playlist(self, playlist_id: str, name: str) -> Playlist:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await PlaylistRepository(session).rename(playlist_id, name)

    @with_db_retry()
    async def delete_playlist(self, playlist_id: str) -> bool:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await PlaylistRepository(session).delete(playlist_id)

    async def get_playlist(self, playlist_id: str) -> Playlist | None:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await PlaylistRepository(session).get(playlist_id)

    async def list_playlists(self) -> list[Playlist]:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await PlaylistRepository(session).list_all()

    @with_db_retry()
    async def add_to_playlist(self, playlist_id: str, media_id: str) -> PlaylistItem:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await PlaylistRepository(session).add_item(playlist_id, media_id)

    @with_db_retry()
    async def remove_from_playlist(self, playlist_id: str, media_id: str) -> bool:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await PlaylistRepository(session).remove_item(playlist_id, media_id)

    async def playlist_items(self, playlist_id: str) -> list[MediaRecord]:
        await self._ensure_open()
        async with self.database.session_scope() as session:
            return await PlaylistRepository(session).list_items(playlist_id)
