# Hey future me - two-tier "can we trust the cache?" check:
# 1. TTL: the last full scan finished less than ttl ago -> serve the cache right away.
# 2. Recount: a cheap, shallower walk counts media files and compares with the stored count.
#    More than drift_threshold (5%) off -> a full rescan is worth it.
# Renames and same-count swaps slip through both tiers. That's the accepted price for not
# rescanning on every launch.
"""Staleness detector for the persisted media index."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from mediashelf.config import Settings
from mediashelf.domain.entities import utc_now
from mediashelf.infrastructure.persistence.kv_store import KEY_LAST_SCAN_AT, KeyValueStore

if TYPE_CHECKING:
    from mediashelf.application.services.directory_scanner import (
        CancelToken,
        DirectoryScanner,
    )
    from mediashelf.infrastructure.persistence.cache_store import CacheStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileDecision:
    """Outcome of a quick recount."""

    cached: int
    sampled: int
    drifted: bool


class StalenessDetector:
    """Decides whether the persisted index can be served without a full scan."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        store: "CacheStore",
        scanner: "DirectoryScanner",
        ttl: timedelta = timedelta(hours=24),
        drift_threshold: float = 0.05,
        reconcile_depth: int = 2,
    ) -> None:
        self._kv_store = kv_store
        self._store = store
        self._scanner = scanner
        self.ttl = ttl
        self.drift_threshold = drift_threshold
        self.reconcile_depth = reconcile_depth

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        kv_store: KeyValueStore,
        store: "CacheStore",
        scanner: "DirectoryScanner",
    ) -> "StalenessDetector":
        return cls(
            kv_store,
            store,
            scanner,
            ttl=timedelta(hours=settings.cache.ttl_hours),
            drift_threshold=settings.cache.drift_threshold,
            reconcile_depth=settings.scanner.reconcile_depth,
        )

    def last_scan_at(self) -> datetime | None:
        """Timestamp of the last successful full scan, None if missing or unreadable."""
        raw = self._kv_store.get(KEY_LAST_SCAN_AT)
        if raw is None:
            return None
        try:
            ts = datetime.fromisoformat(str(raw))
        except ValueError:
            logger.warning("Unparseable last-scan timestamp %r, treating cache as stale", raw)
            return None
        return ts if ts.tzinfo else ts.replace(tzinfo=UTC)

    def is_fresh(self, now: datetime | None = None) -> bool:
        """True iff the last scan happened less than ttl before now.

        A timestamp in the future (clock moved back) counts as stale.
        """
        ts = self.last_scan_at()
        if ts is None:
            return False
        now = now or utc_now()
        age = now - ts
        return timedelta(0) <= age < self.ttl

    def mark_scanned(self, now: datetime | None = None) -> None:
        self._kv_store.set(KEY_LAST_SCAN_AT, (now or utc_now()).isoformat())

    def invalidate(self) -> None:
        """Forget the last scan so the next load() does a full scan."""
        self._kv_store.delete(KEY_LAST_SCAN_AT)

    def needs_rescan(self, cached_count: int, sampled_count: int) -> bool:
        """True when the sampled count is more than drift_threshold off the cached count."""
        return abs(sampled_count - cached_count) > cached_count * self.drift_threshold

    async def quick_reconcile(
        self,
        roots: Sequence[str],
        cancel_token: "CancelToken | None" = None,
    ) -> ReconcileDecision:
        """Recount roots at reconcile_depth and compare with the stored record count."""
        cached = await self._store.count()
        sampled = await self._scanner.count_roots(
            roots, max_depth=self.reconcile_depth, cancel_token=cancel_token
        )
        decision = ReconcileDecision(
            cached=cached,
            sampled=sampled,
            drifted=self.needs_rescan(cached, sampled),
        )
        logger.info(
            "Quick reconcile: cached=%d sampled=%d drifted=%s",
            decision.cached,
            decision.sampled,
            decision.drifted,
        )
        return decision
