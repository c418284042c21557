"""Tests for cross-root deduplication."""

from datetime import UTC, datetime

from mediashelf.application.services.deduplicator import deduplicate, merge_results
from mediashelf.domain.entities import MediaRecord, ScanResult


def _record(path: str, size: int = 1) -> MediaRecord:
    when = datetime(2024, 1, 1, tzinfo=UTC)
    return MediaRecord.from_path(path, size, created_at=when, updated_at=when)


class TestDeduplicate:
    """Test first-occurrence-wins deduplication."""

    def test_first_occurrence_wins(self) -> None:
        """Test that the earlier record is kept when ids collide."""
        first = _record("/music/song.mp3", size=100)
        second = _record("/music/song.mp3", size=999)

        result = deduplicate([first, second])

        assert result == [first]
        assert result[0].size_bytes == 100

    def test_order_preserved(self) -> None:
        records = [_record("/b.mp3"), _record("/a.mp3"), _record("/b.mp3"), _record("/c.mp3")]
        assert [r.id for r in deduplicate(records)] == ["/b.mp3", "/a.mp3", "/c.mp3"]

    def test_output_ids_unique(self) -> None:
        records = [_record(f"/m/{i % 3}.mp3") for i in range(10)]
        ids = [r.id for r in deduplicate(records)]
        assert len(ids) == len(set(ids)) == 3

    def test_empty(self) -> None:
        assert deduplicate([]) == []


class TestMergeResults:
    """Test merging per-root results."""

    def test_default_root_beats_custom_root(self) -> None:
        """Test that the earlier root's record survives a collision."""
        from_default = ScanResult(audio=[_record("/music/a.mp3", size=1)])
        from_custom = ScanResult(
            audio=[_record("/music/a.mp3", size=2), _record("/custom/b.mp3")],
            video=[_record("/custom/c.mkv")],
        )

        merged = merge_results([from_default, from_custom])

        assert [r.id for r in merged.audio] == ["/music/a.mp3", "/custom/b.mp3"]
        assert merged.audio[0].size_bytes == 1
        assert [r.id for r in merged.video] == ["/custom/c.mkv"]

    def test_no_results(self) -> None:
        assert merge_results([]).total == 0
