# Hey future me - this is the front door of the engine! Consumers (UI, player, tests) only ever
# talk to LibraryIndex. It wires PathResolver, DirectoryScanner, the deduplicator, CacheStore
# and StalenessDetector together and owns the lifecycle state.
#
# FLOW of load():
#   cache fresh?  -> read store -> READY_FROM_CACHE -> (after a delay) quick recount
#                                                      -> drift? full scan -> READY_FROM_SCAN
#   cache stale?  -> full scan -> READY_FROM_SCAN
#
# SINGLE-FLIGHT: at most one full scan at a time. A second rescan() while one runs returns
# None right away; a load() during a scan waits for that scan's result instead of starting
# its own. The flag is set before the first await, so two callers can never both get in.
#
# A failed full scan raises ScanError, sets FAILED and keeps `current` at the last good
# result. Callers keep showing that instead of an empty library.
"""LibraryIndex facade: cache-first loading with deferred reconciliation."""

import asyncio
import contextlib
import logging

from sqlalchemy.exc import SQLAlchemyError

from mediashelf.application.services.deduplicator import merge_results
from mediashelf.application.services.directory_scanner import (
    CancelToken,
    DirectoryScanner,
)
from mediashelf.application.services.path_resolver import PathResolver
from mediashelf.application.services.staleness_detector import (
    ReconcileDecision,
    StalenessDetector,
)
from mediashelf.config import Settings, get_settings
from mediashelf.domain.entities import (
    CacheStats,
    Folder,
    LibraryState,
    LibraryStats,
    MediaKind,
    MediaRecord,
    Playlist,
    PlaylistItem,
    ScanResult,
)
from mediashelf.domain.exceptions import (
    PersistenceError,
    ScanCancelledError,
    ScanError,
)
from mediashelf.infrastructure.observability import log_operation, set_correlation_id
from mediashelf.infrastructure.persistence.cache_store import CacheStore
from mediashelf.infrastructure.persistence.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class LibraryIndex:
    """Media library index with a persistent, self-checking cache."""

    def __init__(
        self,
        settings: Settings,
        store: CacheStore,
        resolver: PathResolver,
        scanner: DirectoryScanner,
        detector: StalenessDetector,
    ) -> None:
        self.settings = settings
        self._store = store
        self._resolver = resolver
        self._scanner = scanner
        self._detector = detector

        self._state = LibraryState.IDLE
        self._current: ScanResult | None = None
        self._scanning = False
        self._scan_task: asyncio.Task[ScanResult] | None = None
        self._scan_token: CancelToken | None = None
        self._reconcile_task: asyncio.Task[ReconcileDecision | None] | None = None
        self._reconcile_token: CancelToken | None = None

    @classmethod
    async def create(cls, settings: Settings | None = None) -> "LibraryIndex":
        """Build every collaborator from settings and open the store.

        Raises:
            MigrationError: if the store schema could not be brought forward
        """
        settings = settings or get_settings()
        kv_store = KeyValueStore(settings.storage.state_path)
        store = CacheStore.from_settings(settings)
        await store.open()
        scanner = DirectoryScanner.from_settings(settings.scanner)
        return cls(
            settings,
            store,
            PathResolver(kv_store, settings.scanner.default_roots),
            scanner,
            StalenessDetector.from_settings(settings, kv_store, store, scanner),
        )

    @property
    def state(self) -> LibraryState:
        return self._state

    @property
    def current(self) -> ScanResult | None:
        """Last good result held in memory (None before the first successful load)."""
        return self._current

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def store(self) -> CacheStore:
        return self._store

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load(self, force_rescan: bool = False) -> ScanResult:
        """Return the library, from the cache when it is fresh, else from a full scan.

        Raises:
            ScanError: if a needed full scan failed
        """
        if self._scanning and self._scan_task is not None:
            logger.debug("load() joined the running full scan")
            return await asyncio.shield(self._scan_task)

        if not force_rescan and self._detector.is_fresh():
            previous = self._state
            self._state = LibraryState.LOADING
            records: list[MediaRecord] = []
            try:
                records = await self._store.query_all()
            except (PersistenceError, SQLAlchemyError) as e:
                logger.warning("Reading cached index failed, falling back to full scan: %s", e)
            if not records:
                self._state = previous
            else:
                result = ScanResult.from_records(records)
                self._current = result
                self._state = LibraryState.READY_FROM_CACHE
                logger.info(
                    "Loaded %d audio and %d video records from cache",
                    len(result.audio),
                    len(result.video),
                )
                self._schedule_reconcile()
                return result

        result = await self._full_scan(LibraryState.LOADING)
        if result is None and self._scan_task is not None:
            # Another scan grabbed the flag while the cache read was pending
            return await asyncio.shield(self._scan_task)
        return result or ScanResult()

    async def rescan(self) -> ScanResult | None:
        """Force a full scan. Returns None when a scan is already running.

        Raises:
            ScanError: if the scan failed
        """
        return await self._full_scan(LibraryState.LOADING)

    async def _full_scan(self, state: LibraryState) -> ScanResult | None:
        if self._scanning:
            logger.info("Full scan already running, request coalesced")
            return None
        self._scanning = True
        self._scan_token = CancelToken()
        self._scan_task = asyncio.ensure_future(self._run_full_scan(state, self._scan_token))
        return await asyncio.shield(self._scan_task)

    async def _run_full_scan(self, state: LibraryState, token: CancelToken) -> ScanResult:
        set_correlation_id()
        previous = self._state
        self._state = state
        try:
            async with log_operation(logger, "library.full_scan") as ctx:
                self._resolver.reload()
                roots = self._resolver.resolve_roots()
                ctx["root_count"] = len(roots)

                results = await self._scanner.scan_roots(roots, cancel_token=token)
                merged = merge_results(results)
                token.raise_if_cancelled()

                if merged.total:
                    folders = [
                        Folder(path=r, is_custom=self._resolver.is_custom(r)) for r in roots
                    ]
                    await self._store.replace_all(merged.all_records(), folders)
                    self._detector.mark_scanned()
                else:
                    # Unmounted card or lost permission: keep the stored index and stay stale
                    logger.warning("Full scan found no media, stored index left untouched")
                ctx["audio"] = len(merged.audio)
                ctx["video"] = len(merged.video)
        except ScanCancelledError:
            self._state = previous
            raise
        except (PersistenceError, SQLAlchemyError, OSError) as e:
            self._state = LibraryState.FAILED
            raise ScanError(f"Full scan failed: {e}") from e
        finally:
            self._scanning = False
            self._scan_token = None

        self._current = merged
        self._state = LibraryState.READY_FROM_SCAN
        return merged

    # =========================================================================
    # DEFERRED RECONCILIATION
    # =========================================================================

    def _schedule_reconcile(self) -> None:
        if self._reconcile_task is not None and not self._reconcile_task.done():
            return
        delay = self.settings.cache.reconcile_delay_seconds
        self._reconcile_task = asyncio.create_task(self._reconcile_later(delay))

    async def _reconcile_later(self, delay: float) -> ReconcileDecision | None:
        await asyncio.sleep(delay)
        return await self.reconcile()

    async def reconcile(self) -> ReconcileDecision | None:
        """Cheap recount; runs a full scan when the count drifted too far.

        Returns None when skipped (scan running) or when the recount failed.
        Never raises for scan failures, they are logged.
        """
        if self._scanning:
            logger.debug("Reconcile skipped, full scan running")
            return None

        previous = self._state
        self._state = LibraryState.RECONCILING
        self._reconcile_token = CancelToken()
        try:
            decision = await self._detector.quick_reconcile(
                self._resolver.resolve_roots(), cancel_token=self._reconcile_token
            )
        except ScanCancelledError:
            self._state = previous
            return None
        except (PersistenceError, SQLAlchemyError, OSError) as e:
            logger.warning("Quick reconcile failed: %s", e)
            self._state = previous
            return None
        finally:
            self._reconcile_token = None

        if not decision.drifted:
            self._state = LibraryState.READY_FROM_CACHE
            return decision

        logger.info("Library drifted, starting full rescan")
        try:
            await self._full_scan(LibraryState.RECONCILING)
        except ScanError as e:
            logger.error("Rescan after drift failed, keeping cached library: %s", e)
        except ScanCancelledError:
            logger.info("Rescan after drift cancelled")
        return decision

    # =========================================================================
    # CUSTOM PATHS
    # =========================================================================

    @property
    def custom_paths(self) -> list[str]:
        return self._resolver.custom_paths

    def roots(self) -> list[str]:
        return self._resolver.resolve_roots()

    def add_custom_path(self, path: str) -> bool:
        """Add a custom root. Takes effect on the next full scan."""
        return self._resolver.add_custom_path(path)

    def remove_custom_path(self, path: str) -> bool:
        """Remove a custom root. Its records stay until the next full scan."""
        return self._resolver.remove_custom_path(path)

    # =========================================================================
    # CACHE MAINTENANCE
    # =========================================================================

    async def clear_cache(self) -> None:
        """Wipe all stored rows and forget the last scan."""
        await self._store.clear()
        self._detector.invalidate()
        self._current = None
        self._state = LibraryState.IDLE
        logger.info("Library cache cleared")

    async def recover_store(self) -> int:
        """Last resort after a MigrationError: drop and rebuild the store.

        Favorites and playlists are lost. Never called automatically.
        """
        logger.warning("Recovering store by full schema reset; favorites and playlists are lost")
        version = await self._store.reset_schema()
        self._detector.invalidate()
        self._current = None
        self._state = LibraryState.IDLE
        return version

    async def cache_stats(self) -> CacheStats:
        by_kind = await self._store.count_by_kind()
        return CacheStats(
            total_files=sum(by_kind.values()),
            audio_files=by_kind[MediaKind.AUDIO],
            video_files=by_kind[MediaKind.VIDEO],
            cache_date=self._detector.last_scan_at(),
            is_valid=self._detector.is_fresh(),
        )

    async def stats(self) -> LibraryStats:
        return await self._store.stats()

    # =========================================================================
    # QUERIES / FAVORITES / PLAYLISTS
    # =========================================================================

    async def search(self, query: str, limit: int | None = None) -> list[MediaRecord]:
        return await self._store.search(query, limit)

    async def add_favorite(self, media_id: str) -> None:
        await self._store.add_favorite(media_id)

    async def remove_favorite(self, media_id: str) -> bool:
        return await self._store.remove_favorite(media_id)

    async def toggle_favorite(self, media_id: str) -> bool:
        return await self._store.toggle_favorite(media_id)

    async def is_favorite(self, media_id: str) -> bool:
        return await self._store.is_favorite(media_id)

    async def list_favorites(self) -> list[MediaRecord]:
        return await self._store.list_favorites()

    async def create_playlist(self, name: str, cover_image: str | None = None) -> Playlist:
        return await self._store.create_playlist(name, cover_image)

    async def rename_playlist(self, playlist_id: str, name: str) -> Playlist:
        return await self._store.rename_playlist(playlist_id, name)

    async def delete_playlist(self, playlist_id: str) -> bool:
        return await self._store.delete_playlist(playlist_id)

    async def get_playlist(self, playlist_id: str) -> Playlist | None:
        return await self._store.get_playlist(playlist_id)

    async def list_playlists(self) -> list[Playlist]:
        return await self._store.list_playlists()

    async def add_to_playlist(self, playlist_id: str, media_id: str) -> PlaylistItem:
        return await self._store.add_to_playlist(playlist_id, media_id)

    async def remove_from_playlist(self, playlist_id: str, media_id: str) -> bool:
        return await self._store.remove_from_playlist(playlist_id, media_id)

    async def playlist_items(self, playlist_id: str) -> list[MediaRecord]:
        return await self._store.playlist_items(playlist_id)

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    async def close(self) -> None:
        """Cancel background work, wait for it to stop, then close the store."""
        if self._scan_token is not None:
            self._scan_token.cancel()
        if self._reconcile_token is not None:
            self._reconcile_token.cancel()

        if self._reconcile_task is not None and not self._reconcile_task.done():
            self._reconcile_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reconcile_task

        if self._scan_task is not None and not self._scan_task.done():
            with contextlib.suppress(ScanCancelledError, ScanError, asyncio.CancelledError):
                await self._scan_task

        await self._store.close()
        logger.info("Library index closed")
