"""Repository implementations over an AsyncSession.

Each repository wraps ONE session handed in by the caller; the caller owns the
transaction (Database.session_scope()). Repositories never commit.
"""

import json
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, literal_column, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.domain.entities import (
    Favorite,
    Folder,
    MediaKind,
    MediaRecord,
    Playlist,
    PlaylistItem,
)
from mediashelf.domain.exceptions import EntityNotFoundException
from mediashelf.domain.value_objects.media_types import split_filename
from mediashelf.infrastructure.persistence.models import (
    CacheMetadataModel,
    FavoriteModel,
    FolderModel,
    MediaFileModel,
    PlaylistItemModel,
    PlaylistModel,
    ensure_utc_aware,
    utc_now,
)

logger = logging.getLogger(__name__)


def media_to_entity(model: MediaFileModel) -> MediaRecord:
    """Convert a media_files row to a MediaRecord."""
    extension = model.extension
    if not extension:
        _, extension = split_filename(model.path)
    created_at = ensure_utc_aware(model.created_at)
    return MediaRecord(
        id=model.id,
        display_name=model.name or "",
        kind=MediaKind(model.type),
        extension=extension,
        size_bytes=model.size or 0,
        created_at=created_at,
        updated_at=ensure_utc_aware(model.updated_at) if model.updated_at else created_at,
        title=model.title,
    )


def media_to_row(record: MediaRecord) -> dict[str, Any]:
    """Column values for one record (media_files and its shadow share the layout)."""
    return {
        "id": record.id,
        "path": record.path,
        "name": record.display_name,
        "title": record.title,
        "size": record.size_bytes,
        "type": record.kind.value,
        "extension": record.extension,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


class MediaRepository:
    """Queries and single-row writes against media_files."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get(self, media_id: str) -> MediaRecord | None:
        """Get a record by id (canonical path)."""
        model = await self.session.get(MediaFileModel, media_id)
        return media_to_entity(model) if model else None

    async def exists(self, media_id: str) -> bool:
        stmt = select(func.count()).where(MediaFileModel.id == media_id)
        return bool((await self.session.execute(stmt)).scalar())

    async def list_all(self, kind: MediaKind | None = None) -> list[MediaRecord]:
        """All records ordered by name, optionally filtered by kind."""
        stmt = select(MediaFileModel).order_by(MediaFileModel.name, MediaFileModel.id)
        if kind is not None:
            stmt = stmt.where(MediaFileModel.type == kind.value)
        result = await self.session.execute(stmt)
        return [media_to_entity(m) for m in result.scalars().all()]

    async def search(self, query: str, limit: int) -> list[MediaRecord]:
        """Case-insensitive substring match on name or title.

        autoescape makes % and _ in user input literal characters.
        """
        stmt = (
            select(MediaFileModel)
            .where(
                MediaFileModel.name.icontains(query, autoescape=True)
                | MediaFileModel.title.icontains(query, autoescape=True)
            )
            .order_by(MediaFileModel.name, MediaFileModel.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [media_to_entity(m) for m in result.scalars().all()]

    async def count(self) -> int:
        stmt = select(func.count()).select_from(MediaFileModel)
        return int((await self.session.execute(stmt)).scalar() or 0)

    async def count_by_kind(self) -> dict[MediaKind, int]:
        """Record count per kind; kinds without records report 0."""
        stmt = select(MediaFileModel.type, func.count()).group_by(MediaFileModel.type)
        counts = dict.fromkeys(MediaKind, 0)
        for kind, total in (await self.session.execute(stmt)).all():
            counts[MediaKind(kind)] = int(total)
        return counts

    async def total_size(self) -> int:
        stmt = select(func.coalesce(func.sum(MediaFileModel.size), 0))
        return int((await self.session.execute(stmt)).scalar() or 0)

    async def upsert(self, record: MediaRecord) -> None:
        """Insert or update one record, keyed by id."""
        row = media_to_row(record)
        stmt = sqlite_insert(MediaFileModel).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={key: stmt.excluded[key] for key in row if key != "id"},
        )
        await self.session.execute(stmt)

    async def delete(self, media_id: str) -> bool:
        """Delete one record; favorites and playlist items cascade in the database."""
        stmt = delete(MediaFileModel).where(MediaFileModel.id == media_id)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]


class FolderRepository:
    """The set of roots walked by the last full scan."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def replace_all(self, folders: Sequence[Folder]) -> None:
        await self.session.execute(delete(FolderModel))
        for folder in folders:
            self.session.add(
                FolderModel(
                    path=folder.path,
                    is_custom=1 if folder.is_custom else 0,
                    created_at=folder.created_at,
                )
            )
        await self.session.flush()

    async def list_all(self) -> list[Folder]:
        result = await self.session.execute(select(FolderModel).order_by(FolderModel.path))
        return [
            Folder(
                path=m.path,
                is_custom=bool(m.is_custom),
                created_at=ensure_utc_aware(m.created_at),
            )
            for m in result.scalars().all()
        ]


class MetadataRepository:
    """cache_metadata key/value rows. Values are stored as JSON text."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get(self, key: str, default: Any = None) -> Any:
        model = await self.session.get(CacheMetadataModel, key)
        if model is None or model.value is None:
            return default
        try:
            return json.loads(model.value)
        except json.JSONDecodeError:
            logger.warning("Unreadable cache metadata value for key '%s', ignoring", key)
            return default

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, default=_json_default)
        stmt = sqlite_insert(CacheMetadataModel).values(
            key=key, value=payload, updated_at=utc_now()
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        await self.session.execute(stmt)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class FavoriteRepository:
    """Favorite markers on media records."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, media_id: str) -> Favorite:
        """Mark a record as favorite. Adding twice keeps the first timestamp.

        Raises:
            EntityNotFoundException: if no media record has this id
        """
        existing = await self.session.get(FavoriteModel, media_id)
        if existing is not None:
            return Favorite(
                media_id=existing.media_id,
                created_at=ensure_utc_aware(existing.created_at),
            )

        if not await MediaRepository(self.session).exists(media_id):
            raise EntityNotFoundException("MediaRecord", media_id)

        model = FavoriteModel(media_id=media_id, created_at=utc_now())
        self.session.add(model)
        await self.session.flush()
        return Favorite(media_id=model.media_id, created_at=model.created_at)

    async def remove(self, media_id: str) -> bool:
        stmt = delete(FavoriteModel).where(FavoriteModel.media_id == media_id)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def exists(self, media_id: str) -> bool:
        return await self.session.get(FavoriteModel, media_id) is not None

    async def list_records(self) -> list[MediaRecord]:
        """Favorite records, newest favorite first."""
        stmt = (
            select(MediaFileModel)
            .join(FavoriteModel, FavoriteModel.media_id == MediaFileModel.id)
            .order_by(
                FavoriteModel.created_at.desc(),
                literal_column("favorites.rowid").desc(),
            )
        )
        result = await self.session.execute(stmt)
        return [media_to_entity(m) for m in result.scalars().all()]


class PlaylistRepository:
    """Playlists and their ordered items."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _to_entity(model: PlaylistModel, item_count: int = 0) -> Playlist:
        return Playlist(
            id=model.id,
            name=model.name,
            cover_image=model.cover_image,
            created_at=ensure_utc_aware(model.created_at),
            updated_at=ensure_utc_aware(model.updated_at),
            item_count=item_count,
        )

    async def _get_model(self, playlist_id: str) -> PlaylistModel:
        model = await self.session.get(PlaylistModel, playlist_id)
        if model is None:
            raise EntityNotFoundException("Playlist", playlist_id)
        return model

    async def add(self, playlist: Playlist) -> None:
        """Add a new playlist."""
        self.session.add(
            PlaylistModel(
                id=playlist.id,
                name=playlist.name,
                cover_image=playlist.cover_image,
                created_at=playlist.created_at,
                updated_at=playlist.updated_at,
            )
        )
        await self.session.flush()

    async def rename(self, playlist_id: str, name: str) -> Playlist:
        model = await self._get_model(playlist_id)
        # Same validation (non-empty, stripped) as creation
        model.name = Playlist(id=model.id, name=name).name
        model.updated_at = utc_now()
        await self.session.flush()
        return await self.get(playlist_id)  # type: ignore[return-value]

    async def delete(self, playlist_id: str) -> bool:
        """Delete a playlist; its items cascade."""
        stmt = delete(PlaylistModel).where(PlaylistModel.id == playlist_id)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    def _with_counts(self) -> Any:
        counts = (
            select(
                PlaylistItemModel.playlist_id.label("playlist_id"),
                func.count(PlaylistItemModel.id).label("item_count"),
            )
            .group_by(PlaylistItemModel.playlist_id)
            .subquery()
        )
        return select(PlaylistModel, func.coalesce(counts.c.item_count, 0)).outerjoin(
            counts, counts.c.playlist_id == PlaylistModel.id
        )

    async def get(self, playlist_id: str) -> Playlist | None:
        stmt = self._with_counts().where(PlaylistModel.id == playlist_id)
        row = (await self.session.execute(stmt)).first()
        if row is None:
            return None
        return self._to_entity(row[0], int(row[1]))

    async def list_all(self) -> list[Playlist]:
        """All playlists, most recently updated first."""
        stmt = self._with_counts().order_by(
            PlaylistModel.updated_at.desc(), PlaylistModel.name
        )
        return [self._to_entity(m, int(c)) for m, c in (await self.session.execute(stmt)).all()]

    async def add_item(self, playlist_id: str, media_id: str) -> PlaylistItem:
        """Append media to a playlist at max(position) + 1.

        Re-adding media already present returns the existing item unchanged.

        Raises:
            EntityNotFoundException: if the playlist or the media record is unknown
        """
        playlist = await self._get_model(playlist_id)
        if not await MediaRepository(self.session).exists(media_id):
            raise EntityNotFoundException("MediaRecord", media_id)

        stmt = select(PlaylistItemModel).where(
            PlaylistItemModel.playlist_id == playlist_id,
            PlaylistItemModel.media_id == media_id,
        )
        existing = (await self.session.execute(stmt)).scalars().first()
        if existing is not None:
            return self._item_to_entity(existing)

        max_stmt = select(func.max(PlaylistItemModel.position)).where(
            PlaylistItemModel.playlist_id == playlist_id
        )
        current_max = (await self.session.execute(max_stmt)).scalar()
        position = 0 if current_max is None else current_max + 1

        model = PlaylistItemModel(
            playlist_id=playlist_id,
            media_id=media_id,
            position=position,
            added_at=utc_now(),
        )
        self.session.add(model)
        playlist.updated_at = utc_now()
        await self.session.flush()
        return self._item_to_entity(model)

    async def remove_item(self, playlist_id: str, media_id: str) -> bool:
        """Remove media from a playlist. Remaining positions are left as they are."""
        stmt = delete(PlaylistItemModel).where(
            PlaylistItemModel.playlist_id == playlist_id,
            PlaylistItemModel.media_id == media_id,
        )
        result = await self.session.execute(stmt)
        removed = bool(result.rowcount)  # type: ignore[attr-defined]
        if removed:
            playlist = await self.session.get(PlaylistModel, playlist_id)
            if playlist is not None:
                playlist.updated_at = utc_now()
        return removed

    async def list_items(self, playlist_id: str) -> list[MediaRecord]:
        """Media records of a playlist in position order.

        Raises:
            EntityNotFoundException: if the playlist is unknown
        """
        await self._get_model(playlist_id)
        stmt = (
            select(MediaFileModel)
            .join(PlaylistItemModel, PlaylistItemModel.media_id == MediaFileModel.id)
            .where(PlaylistItemModel.playlist_id == playlist_id)
            .order_by(PlaylistItemModel.position)
        )
        result = await self.session.execute(stmt)
        return [media_to_entity(m) for m in result.scalars().all()]

    @staticmethod
    def _item_to_entity(model: PlaylistItemModel) -> PlaylistItem:
        return PlaylistItem(
            id=model.id,
            playlist_id=model.playlist_id,
            media_id=model.media_id,
            position=model.position,
            added_at=ensure_utc_aware(model.added_at),
        )
