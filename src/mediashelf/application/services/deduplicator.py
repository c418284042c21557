"""Deduplication of media records across roots.

Listen up, the same file can be reached from two roots (nested roots, symlinks, a custom
path inside a default one). Records are keyed by canonical path, so a duplicate is simply
a second record with an id we have already seen. The FIRST one wins and input order is
kept. Roots are scanned in resolve_roots() order, so default roots beat custom roots.
"""

import logging
from collections.abc import Iterable

from mediashelf.domain.entities import MediaRecord, ScanResult

logger = logging.getLogger(__name__)


def deduplicate(records: Iterable[MediaRecord]) -> list[MediaRecord]:
    """Drop records whose id was already seen, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[MediaRecord] = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


def merge_results(results: Iterable[ScanResult]) -> ScanResult:
    """Concatenate per-root results in order and deduplicate each kind."""
    audio: list[MediaRecord] = []
    video: list[MediaRecord] = []
    for result in results:
        audio.extend(result.audio)
        video.extend(result.video)

    merged = ScanResult(audio=deduplicate(audio), video=deduplicate(video))
    dropped = len(audio) + len(video) - merged.total
    if dropped:
        logger.debug("Dropped %d duplicate records across roots", dropped)
    return merged
