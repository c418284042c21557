"""Static extension table and media kind classification.

Hey future me - this is THE single source of truth for "is this file media?"!
The kind of a record is derived from its extension and NOTHING else (no magic
bytes, no tag reading). Both the full scanner and the cheap recount go through
classify_extension() so they can never disagree about what counts.
"""

from enum import Enum
from pathlib import PurePath


class MediaKind(str, Enum):
    """Kind of a media record."""

    AUDIO = "audio"
    VIDEO = "video"


AUDIO_EXTENSIONS = frozenset(
    {
        ".mp3",
        ".m4a",
        ".aac",
        ".wav",
        ".flac",
        ".ogg",
        ".wma",
        ".opus",
    }
)

# .webm is a container that usually carries video - it lives here only
VIDEO_EXTENSIONS = frozenset(
    {
        ".mp4",
        ".mkv",
        ".avi",
        ".mov",
        ".wmv",
        ".flv",
        ".webm",
        ".m4v",
        ".3gp",
    }
)

_EXTENSION_TABLE: dict[str, MediaKind] = {
    **{ext: MediaKind.AUDIO for ext in AUDIO_EXTENSIONS},
    **{ext: MediaKind.VIDEO for ext in VIDEO_EXTENSIONS},
}


def normalize_extension(extension: str) -> str:
    """Lowercase an extension and make sure it has a leading dot."""
    ext = extension.strip().lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


def classify_extension(extension: str) -> MediaKind | None:
    """Map an extension (".MP3", "mp3", ".mp3") to its media kind.

    Returns:
        The MediaKind, or None for unrecognized extensions.
    """
    return _EXTENSION_TABLE.get(normalize_extension(extension))


def split_filename(filename: str) -> tuple[str, str]:
    """Split "Song.Name.MP3" into ("Song.Name", ".mp3").

    Hidden-style names without a stem (".mp3") have no extension.
    """
    path = PurePath(filename)
    return path.stem, path.suffix.lower()


def media_kind_for(filename: str) -> MediaKind | None:
    """Classify a filename by its extension."""
    _, ext = split_filename(filename)
    if not ext:
        return None
    return classify_extension(ext)


def is_media_file(filename: str) -> bool:
    """Check if a filename has a recognized audio or video extension."""
    return media_kind_for(filename) is not None
