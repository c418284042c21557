"""Domain entities."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from mediashelf.domain.exceptions import ValidationException
from mediashelf.domain.value_objects.media_types import (
    MediaKind,
    classify_extension,
    normalize_extension,
    split_filename,
)


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - MediaRecord.id IS the canonical absolute path. Two records with the same
# id are the same file no matter which root found them. kind is never free-form: it must
# match what the extension table says, __post_init__ enforces that.
@dataclass
class MediaRecord:
    """One indexed audio or video file."""

    id: str
    display_name: str
    kind: MediaKind
    extension: str
    size_bytes: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    title: str | None = None

    def __post_init__(self) -> None:
        """Validate record data."""
        if not self.id:
            raise ValidationException("MediaRecord id (canonical path) cannot be empty")
        self.extension = normalize_extension(self.extension)
        expected = classify_extension(self.extension)
        if expected is None:
            raise ValidationException(
                f"Unrecognized media extension '{self.extension}' for {self.id}"
            )
        if isinstance(self.kind, str) and not isinstance(self.kind, MediaKind):
            self.kind = MediaKind(self.kind)
        if self.kind is not expected:
            raise ValidationException(
                f"Kind {self.kind.value} does not match extension {self.extension}"
            )
        if self.title is None:
            self.title = self.display_name

    @classmethod
    def from_path(
        cls,
        canonical_path: str,
        size_bytes: int,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> "MediaRecord":
        """Build a record from a canonical path, deriving name/extension/kind."""
        stem, ext = split_filename(canonical_path)
        kind = classify_extension(ext) if ext else None
        if kind is None:
            raise ValidationException(f"Not a media file: {canonical_path}")
        now = utc_now()
        return cls(
            id=canonical_path,
            display_name=stem,
            kind=kind,
            extension=ext,
            size_bytes=size_bytes,
            created_at=created_at or now,
            updated_at=updated_at or now,
        )

    @property
    def path(self) -> str:
        """Alias for id, the path handed to playback."""
        return self.id

    def content_key(self) -> tuple[str, str, str, str, int, datetime]:
        """Everything except updated_at - equal for two scans of an unchanged file."""
        return (
            self.id,
            self.display_name,
            self.kind.value,
            self.extension,
            self.size_bytes,
            self.created_at,
        )


@dataclass
class ScanResult:
    """Records of one scan pass, split by kind."""

    audio: list[MediaRecord] = field(default_factory=list)
    video: list[MediaRecord] = field(default_factory=list)

    @classmethod
    def from_records(cls, records: list[MediaRecord]) -> "ScanResult":
        """Partition a flat record list by kind, keeping order."""
        return cls(
            audio=[r for r in records if r.kind is MediaKind.AUDIO],
            video=[r for r in records if r.kind is MediaKind.VIDEO],
        )

    def all_records(self) -> list[MediaRecord]:
        """Audio first, then video."""
        return [*self.audio, *self.video]

    @property
    def total(self) -> int:
        return len(self.audio) + len(self.video)


@dataclass
class Favorite:
    """A media record marked as favorite."""

    media_id: str
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Playlist:
    """User playlist; items are stored separately as PlaylistItem rows."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    cover_image: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    item_count: int = 0

    def __post_init__(self) -> None:
        """Validate playlist data."""
        if not self.name or not self.name.strip():
            raise ValidationException("Playlist name cannot be empty")
        self.name = self.name.strip()


# Yo, position is for ORDERING only. It only ever grows (max + 1) and removing an item leaves
# a gap - never renumber, the UNIQUE(playlist_id, position) constraint relies on that.
@dataclass
class PlaylistItem:
    """One media entry inside a playlist."""

    playlist_id: str
    media_id: str
    position: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    added_at: datetime = field(default_factory=utc_now)


@dataclass
class Folder:
    """A root walked by the last full scan."""

    path: str
    is_custom: bool = False
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class LibraryStats:
    """Counters read from the store."""

    total_records: int = 0
    audio_count: int = 0
    video_count: int = 0
    total_size_bytes: int = 0
    schema_version: int = 0


@dataclass
class CacheStats:
    """Store counters plus freshness of the cached index."""

    total_files: int = 0
    audio_files: int = 0
    video_files: int = 0
    cache_date: datetime | None = None
    is_valid: bool = False


class LibraryState(str, Enum):
    """Lifecycle state of the LibraryIndex facade."""

    IDLE = "idle"
    LOADING = "loading"
    READY_FROM_CACHE = "ready_from_cache"
    READY_FROM_SCAN = "ready_from_scan"
    RECONCILING = "reconciling"
    FAILED = "failed"


__all__ = [
    "CacheStats",
    "Favorite",
    "Folder",
    "LibraryState",
    "LibraryStats",
    "MediaKind",
    "MediaRecord",
    "Playlist",
    "PlaylistItem",
    "ScanResult",
    "utc_now",
]
