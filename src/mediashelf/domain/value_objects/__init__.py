"""Domain value objects."""

from mediashelf.domain.value_objects.media_types import (
    AUDIO_EXTENSIONS,
    VIDEO_EXTENSIONS,
    MediaKind,
    classify_extension,
    is_media_file,
    media_kind_for,
    normalize_extension,
    split_filename,
)

__all__ = [
    "AUDIO_EXTENSIONS",
    "VIDEO_EXTENSIONS",
    "MediaKind",
    "classify_extension",
    "is_media_file",
    "media_kind_for",
    "normalize_extension",
    "split_filename",
]
