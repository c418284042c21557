"""Tests for the extension table and media entities."""

from datetime import UTC, datetime

import pytest

from mediashelf.domain.entities import MediaRecord, Playlist, ScanResult
from mediashelf.domain.exceptions import ValidationException
from mediashelf.domain.value_objects import (
    AUDIO_EXTENSIONS,
    VIDEO_EXTENSIONS,
    MediaKind,
    classify_extension,
    is_media_file,
    media_kind_for,
    split_filename,
)


class TestClassifyExtension:
    """Test extension -> kind mapping."""

    @pytest.mark.parametrize("ext", [".mp3", "mp3", ".MP3", " .Flac ", ".opus"])
    def test_audio_extensions(self, ext: str) -> None:
        """Test that audio extensions classify regardless of case and dot."""
        assert classify_extension(ext) is MediaKind.AUDIO

    @pytest.mark.parametrize("ext", [".mp4", ".MKV", "webm", ".3gp", ".m4v"])
    def test_video_extensions(self, ext: str) -> None:
        """Test that video extensions classify regardless of case and dot."""
        assert classify_extension(ext) is MediaKind.VIDEO

    @pytest.mark.parametrize("ext", [".txt", ".jpg", "", ".nomedia", ".mp3.part"])
    def test_unknown_extensions(self, ext: str) -> None:
        """Test that anything outside the table is not media."""
        assert classify_extension(ext) is None

    def test_tables_do_not_overlap(self) -> None:
        """Test that no extension maps to both kinds."""
        assert AUDIO_EXTENSIONS.isdisjoint(VIDEO_EXTENSIONS)


class TestFilenameHelpers:
    """Test filename based helpers."""

    def test_split_filename_keeps_inner_dots(self) -> None:
        assert split_filename("Artist - Song.Live.MP3") == ("Artist - Song.Live", ".mp3")

    def test_media_kind_for_filename(self) -> None:
        assert media_kind_for("clip.MOV") is MediaKind.VIDEO
        assert media_kind_for("notes.txt") is None

    def test_dotfile_without_stem_is_not_media(self) -> None:
        """Test that '.mp3' alone is a hidden file, not an mp3."""
        assert is_media_file(".mp3") is False
        assert is_media_file("song.mp3") is True


class TestMediaRecord:
    """Test MediaRecord validation and construction."""

    def test_from_path_derives_fields(self) -> None:
        """Test that name, extension and kind come from the path."""
        record = MediaRecord.from_path("/music/Song.FLAC", 2048)

        assert record.id == "/music/Song.FLAC"
        assert record.path == record.id
        assert record.display_name == "Song"
        assert record.extension == ".flac"
        assert record.kind is MediaKind.AUDIO
        assert record.size_bytes == 2048
        assert record.title == "Song"

    def test_from_path_rejects_non_media(self) -> None:
        with pytest.raises(ValidationException):
            MediaRecord.from_path("/music/cover.jpg", 10)

    def test_kind_must_match_extension(self) -> None:
        """Test that kind is never free-form."""
        with pytest.raises(ValidationException):
            MediaRecord(id="/a.mp3", display_name="a", kind=MediaKind.VIDEO, extension=".mp3")

    def test_kind_accepts_string_value(self) -> None:
        record = MediaRecord(id="/a.mp4", display_name="a", kind="video", extension="MP4")
        assert record.kind is MediaKind.VIDEO
        assert record.extension == ".mp4"

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValidationException):
            MediaRecord(id="", display_name="a", kind=MediaKind.AUDIO, extension=".mp3")

    def test_content_key_ignores_updated_at(self) -> None:
        """Test that two scans of the same file compare equal by content."""
        created = datetime(2024, 1, 1, tzinfo=UTC)
        first = MediaRecord.from_path(
            "/m/a.mp3", 1, created_at=created, updated_at=datetime(2024, 2, 1, tzinfo=UTC)
        )
        second = MediaRecord.from_path(
            "/m/a.mp3", 1, created_at=created, updated_at=datetime(2024, 3, 1, tzinfo=UTC)
        )
        assert first.content_key() == second.content_key()
        assert first != second


class TestScanResult:
    """Test ScanResult partitioning."""

    def test_from_records_partitions_by_kind(self) -> None:
        records = [
            MediaRecord.from_path("/m/a.mp3", 1),
            MediaRecord.from_path("/m/b.mkv", 1),
            MediaRecord.from_path("/m/c.ogg", 1),
        ]
        result = ScanResult.from_records(records)

        assert [r.display_name for r in result.audio] == ["a", "c"]
        assert [r.display_name for r in result.video] == ["b"]
        assert result.total == 3
        assert [r.display_name for r in result.all_records()] == ["a", "c", "b"]


class TestPlaylistEntity:
    """Test Playlist validation."""

    def test_name_is_stripped(self) -> None:
        assert Playlist(name="  Road trip ").name == "Road trip"

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name_rejected(self, name: str) -> None:
        with pytest.raises(ValidationException):
            Playlist(name=name)
