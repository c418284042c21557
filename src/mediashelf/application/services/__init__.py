"""Application services - scanning, path resolution, staleness and the LibraryIndex facade."""

from mediashelf.application.services.deduplicator import deduplicate, merge_results
from mediashelf.application.services.directory_scanner import (
    CancelToken,
    DirectoryScanner,
)

# Hey future me - LibraryIndex is the only thing most callers need. Everything else is
# exported for tests and for embedding the pieces separately.
from mediashelf.application.services.library_index import LibraryIndex
from mediashelf.application.services.path_resolver import (
    PathResolver,
    platform_default_roots,
)
from mediashelf.application.services.staleness_detector import (
    ReconcileDecision,
    StalenessDetector,
)

__all__ = [
    "CancelToken",
    "DirectoryScanner",
    "LibraryIndex",
    "PathResolver",
    "ReconcileDecision",
    "StalenessDetector",
    "deduplicate",
    "merge_results",
    "platform_default_roots",
]
