"""Tests for the TTL + recount staleness heuristic."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from mediashelf.application.services.staleness_detector import StalenessDetector
from mediashelf.infrastructure.persistence.kv_store import KEY_LAST_SCAN_AT, KeyValueStore

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=UTC)


@pytest.fixture
def detector(kv_store: KeyValueStore) -> StalenessDetector:
    store = MagicMock()
    store.count = AsyncMock(return_value=1000)
    scanner = MagicMock()
    scanner.count_roots = AsyncMock(return_value=1000)
    return StalenessDetector(kv_store, store, scanner)


class TestFreshness:
    """Test the TTL tier."""

    def test_no_timestamp_is_stale(self, detector: StalenessDetector) -> None:
        assert detector.is_fresh(NOW) is False

    def test_just_inside_ttl_is_fresh(self, detector: StalenessDetector) -> None:
        detector.mark_scanned(NOW - timedelta(hours=24) + timedelta(seconds=1))
        assert detector.is_fresh(NOW) is True

    def test_just_outside_ttl_is_stale(self, detector: StalenessDetector) -> None:
        detector.mark_scanned(NOW - timedelta(hours=24) - timedelta(seconds=1))
        assert detector.is_fresh(NOW) is False

    def test_unparseable_timestamp_is_stale(
        self, detector: StalenessDetector, kv_store: KeyValueStore
    ) -> None:
        kv_store.set(KEY_LAST_SCAN_AT, "yesterday-ish")
        assert detector.is_fresh(NOW) is False
        assert detector.last_scan_at() is None

    def test_future_timestamp_is_stale(self, detector: StalenessDetector) -> None:
        detector.mark_scanned(NOW + timedelta(hours=1))
        assert detector.is_fresh(NOW) is False

    def test_invalidate(self, detector: StalenessDetector) -> None:
        detector.mark_scanned(NOW)
        detector.invalidate()
        assert detector.is_fresh(NOW) is False

    def test_mark_scanned_round_trips(self, detector: StalenessDetector) -> None:
        detector.mark_scanned(NOW)
        assert detector.last_scan_at() == NOW


class TestDrift:
    """Test the recount tier."""

    @pytest.mark.parametrize(
        ("cached", "sampled", "expected"),
        [
            (1000, 940, True),
            (1000, 970, False),
            (1000, 1050, False),
            (1000, 1051, True),
            (0, 0, False),
            (0, 1, True),
        ],
    )
    def test_needs_rescan(
        self, detector: StalenessDetector, cached: int, sampled: int, expected: bool
    ) -> None:
        assert detector.needs_rescan(cached, sampled) is expected

    async def test_quick_reconcile_uses_reconcile_depth(
        self, detector: StalenessDetector
    ) -> None:
        """Test that the recount runs shallower than a full scan."""
        detector._scanner.count_roots.return_value = 900

        decision = await detector.quick_reconcile(["/music"])

        assert decision.cached == 1000
        assert decision.sampled == 900
        assert decision.drifted is True
        detector._scanner.count_roots.assert_awaited_once_with(
            ["/music"], max_depth=2, cancel_token=None
        )
