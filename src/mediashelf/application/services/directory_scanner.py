# Hey future me - this walks ONE root at a time, depth-first, with an explicit stack instead
# of recursion. The root is depth 0; a subdirectory deeper than max_depth is never opened.
# Every walk runs in a worker thread (asyncio.to_thread), so all the blocking scandir/stat
# calls stay off the event loop. Errors never escape a subtree: an unreadable directory
# simply contributes nothing and its siblings carry on.
"""Bounded-depth directory scanner producing media records."""

import asyncio
import logging
import os
import threading
from collections.abc import Iterable, Iterator, Sequence
from datetime import UTC, datetime

from mediashelf.config import ScannerSettings
from mediashelf.domain.entities import MediaRecord, ScanResult, utc_now
from mediashelf.domain.exceptions import ScanCancelledError, ValidationException
from mediashelf.domain.value_objects.media_types import MediaKind, media_kind_for

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 3
DEFAULT_IGNORED_DIRS = frozenset({"cache", "Cache", "thumbnails", ".thumbnails", "LOST.DIR"})
DEFAULT_IGNORED_PREFIXES = ("Android",)


class CancelToken:
    """Cooperative cancellation flag shared between the event loop and scan threads."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ScanCancelledError()


class DirectoryScanner:
    """Finds audio and video files below a set of roots."""

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_DEPTH,
        min_size_bytes: int = 0,
        ignored_dirs: Iterable[str] = DEFAULT_IGNORED_DIRS,
        ignored_prefixes: Iterable[str] = DEFAULT_IGNORED_PREFIXES,
    ) -> None:
        self.max_depth = max_depth
        self.min_size_bytes = min_size_bytes
        self.ignored_dirs = frozenset(ignored_dirs)
        self.ignored_prefixes = tuple(ignored_prefixes)

    @classmethod
    def from_settings(cls, settings: ScannerSettings) -> "DirectoryScanner":
        return cls(
            max_depth=settings.max_depth,
            min_size_bytes=settings.min_size_bytes,
            ignored_dirs=settings.ignored_dirs,
            ignored_prefixes=settings.ignored_prefixes,
        )

    def is_ignored_dir(self, name: str) -> bool:
        """Hidden directories, the ignore list and ignored prefixes are never entered."""
        return (
            name.startswith(".")
            or name in self.ignored_dirs
            or name.startswith(self.ignored_prefixes)
        )

    # =========================================================================
    # TRAVERSAL
    # =========================================================================

    def _walk(
        self,
        root: str,
        max_depth: int,
        cancel_token: CancelToken | None,
    ) -> Iterator[tuple[os.DirEntry[str], MediaKind]]:
        stack: list[tuple[str, int]] = [(root, 0)]

        while stack:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            directory, depth = stack.pop()

            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                logger.debug("Skipping unreadable directory %s: %s", directory, e)
                continue

            subdirs: list[tuple[str, int]] = []
            for entry in entries:
                try:
                    if entry.is_dir():
                        if depth + 1 <= max_depth and not self.is_ignored_dir(entry.name):
                            subdirs.append((entry.path, depth + 1))
                        continue
                    if not entry.is_file():
                        continue
                except OSError as e:
                    logger.debug("Skipping unreadable entry %s: %s", entry.path, e)
                    continue

                kind = media_kind_for(entry.name)
                if kind is not None:
                    yield entry, kind

            # Reversed so the first subdirectory is popped (and walked) first
            stack.extend(reversed(subdirs))

    def _to_record(self, entry: os.DirEntry[str]) -> MediaRecord | None:
        try:
            st = entry.stat()
            if st.st_size < self.min_size_bytes:
                return None
            canonical = os.path.realpath(entry.path)
        except OSError as e:
            logger.debug("Skipping unreadable file %s: %s", entry.path, e)
            return None

        created = datetime.fromtimestamp(getattr(st, "st_birthtime", st.st_mtime), UTC)
        try:
            return MediaRecord.from_path(
                canonical, st.st_size, created_at=created, updated_at=utc_now()
            )
        except ValidationException:
            # Link with a media name pointing at a non-media target
            logger.debug("Skipping %s: target %s is not media", entry.path, canonical)
            return None

    def iter_entries(
        self,
        root: str,
        max_depth: int | None = None,
        cancel_token: CancelToken | None = None,
    ) -> Iterator[MediaRecord]:
        """Lazily yield one record per media file below root, depth-first.

        The generator is finite and cannot be restarted. It raises
        ScanCancelledError when cancel_token is triggered between directories.
        """
        depth = self.max_depth if max_depth is None else max_depth
        for entry, _kind in self._walk(root, depth, cancel_token):
            record = self._to_record(entry)
            if record is not None:
                yield record

    def scan(
        self,
        root: str,
        max_depth: int | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ScanResult:
        """Scan one root synchronously and partition its records by kind."""
        return ScanResult.from_records(list(self.iter_entries(root, max_depth, cancel_token)))

    def count(
        self,
        root: str,
        max_depth: int | None = None,
        cancel_token: CancelToken | None = None,
    ) -> int:
        """Count media files below root without building records.

        Yo, this is the cheap recount for drift checks: no realpath and no
        dedup. A stat happens only when a minimum size is configured.
        """
        depth = self.max_depth if max_depth is None else max_depth
        total = 0
        for entry, _kind in self._walk(root, depth, cancel_token):
            if self.min_size_bytes:
                try:
                    if entry.stat().st_size < self.min_size_bytes:
                        continue
                except OSError:
                    continue
            total += 1
        return total

    # =========================================================================
    # CONCURRENT FAN-OUT
    # =========================================================================

    async def scan_roots(
        self,
        roots: Sequence[str],
        max_depth: int | None = None,
        cancel_token: CancelToken | None = None,
    ) -> list[ScanResult]:
        """Scan every root concurrently, one worker thread per root.

        A root that fails contributes an empty result. Results come back in
        root order.

        Raises:
            ScanCancelledError: if cancel_token was triggered
        """
        results = await asyncio.gather(
            *(asyncio.to_thread(self.scan, root, max_depth, cancel_token) for root in roots),
            return_exceptions=True,
        )
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        scans: list[ScanResult] = []
        for root, result in zip(roots, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Scan of root %s failed, using empty result: %s", root, result)
                scans.append(ScanResult())
            else:
                logger.debug(
                    "Root %s: %d audio, %d video", root, len(result.audio), len(result.video)
                )
                scans.append(result)
        return scans

    async def count_roots(
        self,
        roots: Sequence[str],
        max_depth: int | None = None,
        cancel_token: CancelToken | None = None,
    ) -> int:
        """Sum of count() over all roots, run concurrently. Failed roots count 0."""
        results = await asyncio.gather(
            *(asyncio.to_thread(self.count, root, max_depth, cancel_token) for root in roots),
            return_exceptions=True,
        )
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        total = 0
        for root, result in zip(roots, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Recount of root %s failed: %s", root, result)
                continue
            total += result
        return total
