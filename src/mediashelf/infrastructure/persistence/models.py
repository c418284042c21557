"""SQLAlchemy ORM models for mediashelf.

Hey future me - these classes describe the schema at CURRENT_SCHEMA_VERSION. They are NOT
used to create the live tables: SchemaMigrator builds v1 and walks the ladder up to the
current version, so any column added here needs a matching migration step in
migrations.py (and vice versa). The only table created straight from a model is the
media_files_shadow scratch table used by CacheStore.replace_all().
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# SQLite doesn't preserve timezone info - datetimes come back naive. ALWAYS run values read
# from the DB through this before comparing with datetime.now(UTC).
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class MediaColumnsMixin:
    """Columns shared by the live media table and its shadow."""

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    extension: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=utc_now
    )


# Listen up, id == path == canonical absolute path. Favorites and playlist items point at
# id, and a rescan UPSERTS by id instead of delete+insert, so cascades only fire for files
# that really disappeared (or an explicit delete_media()).
class MediaFileModel(MediaColumnsMixin, Base):
    """Indexed media file."""

    __tablename__ = "media_files"
    __table_args__ = (
        Index("idx_media_type", "type"),
        Index("idx_media_name", "name"),
        Index("idx_media_updated", "updated_at"),
    )


class MediaFileShadowModel(MediaColumnsMixin, Base):
    """Staging table filled batch by batch during replace_all()."""

    __tablename__ = "media_files_shadow"


class FolderModel(Base):
    """Roots walked by the last full scan."""

    __tablename__ = "folders"

    path: Mapped[str] = mapped_column(Text, primary_key=True)
    is_custom: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)


class CacheMetadataModel(Base):
    """Opaque key/value bookkeeping; value holds JSON text."""

    __tablename__ = "cache_metadata"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)


class SchemaVersionModel(Base):
    """Single-row table holding the schema ladder position."""

    __tablename__ = "schema_version"

    version: Mapped[int] = mapped_column(Integer, primary_key=True)


class FavoriteModel(Base):
    """Favorite marker; cascades with its media row."""

    __tablename__ = "favorites"

    media_id: Mapped[str] = mapped_column(
        Text, ForeignKey("media_files.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)


class PlaylistModel(Base):
    """User playlist."""

    __tablename__ = "playlists"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    cover_image: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )


class PlaylistItemModel(Base):
    """Playlist entry; position orders items and is never renumbered."""

    __tablename__ = "playlist_items"
    __table_args__ = (
        UniqueConstraint("playlist_id", "position", name="uq_playlist_items_position"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    playlist_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False
    )
    media_id: Mapped[str] = mapped_column(
        Text, ForeignKey("media_files.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
