"""Path resolver: which directories a full scan walks."""

import logging
import os
import platform
from collections.abc import Mapping, Sequence
from pathlib import Path

from mediashelf.domain.exceptions import ValidationException
from mediashelf.infrastructure.persistence.kv_store import (
    KEY_CUSTOM_PATHS,
    KeyValueStore,
)

logger = logging.getLogger(__name__)

ANDROID_MEDIA_FOLDERS = ("Music", "Download", "Movies", "DCIM")


def platform_default_roots(
    environ: Mapping[str, str] | None = None,
    home: Path | None = None,
    system: str | None = None,
) -> list[str]:
    """Fixed media folders for the current host.

    Android-like hosts expose external storage through EXTERNAL_STORAGE
    (or ANDROID_STORAGE); everyone else gets the usual home folders.
    """
    environ = os.environ if environ is None else environ
    external = environ.get("EXTERNAL_STORAGE") or environ.get("ANDROID_STORAGE")
    if external:
        return [os.path.join(external, name) for name in ANDROID_MEDIA_FOLDERS]

    home = home or Path.home()
    system = system or platform.system()
    video_dir = "Movies" if system == "Darwin" else "Videos"
    return [str(home / "Music"), str(home / video_dir), str(home / "Downloads")]


def normalize_root(path: str) -> str:
    """Expand ~ and drop trailing separators so equal roots compare equal."""
    if not path or not path.strip():
        raise ValidationException("Root path cannot be empty")
    return os.path.normpath(os.path.expanduser(path.strip()))


class PathResolver:
    """Combines platform default roots with user-added custom roots.

    Hey future me - custom paths are NOT checked for existence. A folder on an
    SD card that is not mounted right now is still a valid root; the scanner
    just finds nothing there.
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        default_roots: Sequence[str] | None = None,
    ) -> None:
        self._kv_store = kv_store
        self._default_roots = [
            normalize_root(p)
            for p in (default_roots if default_roots is not None else platform_default_roots())
        ]
        self._custom_paths: list[str] = []
        self.reload()

    @property
    def default_roots(self) -> list[str]:
        return list(self._default_roots)

    @property
    def custom_paths(self) -> list[str]:
        """Copy of the custom root list in insertion order."""
        return list(self._custom_paths)

    def reload(self) -> list[str]:
        """Re-read custom roots from the key-value store."""
        stored = self._kv_store.get(KEY_CUSTOM_PATHS, [])
        if not isinstance(stored, list):
            logger.warning("Ignoring malformed custom path list in state file")
            stored = []

        paths: list[str] = []
        for entry in stored:
            if not isinstance(entry, str) or not entry.strip():
                continue
            normalized = normalize_root(entry)
            if normalized not in paths:
                paths.append(normalized)
        self._custom_paths = paths
        return self.custom_paths

    def resolve_roots(self) -> list[str]:
        """Default roots first, then custom roots; the first occurrence of a root wins."""
        roots: list[str] = []
        for root in [*self._default_roots, *self._custom_paths]:
            if root not in roots:
                roots.append(root)
        return roots

    def is_custom(self, root: str) -> bool:
        """True for custom roots that are not also a default root."""
        normalized = normalize_root(root)
        return normalized in self._custom_paths and normalized not in self._default_roots

    def add_custom_path(self, path: str) -> bool:
        """Add a custom root. Returns False if it is already in the list.

        Raises:
            ValidationException: if path is blank
            PersistenceError: if the list could not be saved
        """
        normalized = normalize_root(path)
        if normalized in self._custom_paths:
            return False
        self._custom_paths.append(normalized)
        self._persist()
        logger.info("Added custom path: %s", normalized)
        return True

    def remove_custom_path(self, path: str) -> bool:
        """Remove a custom root. Returns False if it was not in the list.

        Records already indexed from it stay until the next full scan.
        """
        normalized = normalize_root(path)
        if normalized not in self._custom_paths:
            return False
        self._custom_paths.remove(normalized)
        self._persist()
        logger.info("Removed custom path: %s", normalized)
        return True

    def _persist(self) -> None:
        self._kv_store.set(KEY_CUSTOM_PATHS, self._custom_paths)
