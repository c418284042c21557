# Hey future me - this is the tiny JSON file that lives NEXT to the database. It holds the
# state that must survive a reset_schema(): the custom root list and the last-scan
# timestamp. Writes go to a temp file first and are then renamed over the real one, so a
# crash mid-write leaves the previous version intact.
"""Key-value persisted state (JSON file, atomic writes)."""

import json
import logging
import threading
from pathlib import Path
from typing import Any
from uuid import uuid4

from mediashelf.domain.exceptions import PersistenceError

logger = logging.getLogger(__name__)

KEY_CUSTOM_PATHS = "custom_paths"
KEY_LAST_SCAN_AT = "last_scan_at"


class KeyValueStore:
    """Thread-safe JSON key-value file.

    Unreadable or malformed files are treated as empty (logged at WARNING);
    write failures raise PersistenceError.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw else {}
        except (OSError, ValueError) as e:
            logger.warning("Failed to read state file %s, using empty state: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("State file %s does not hold an object, ignoring", self.path)
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        tmp = self.path.with_name(f"{self.path.name}.tmp_{uuid4().hex}")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise PersistenceError(f"Failed to write state file {self.path}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> bool:
        """Remove a key. Returns False if it was not present."""
        with self._lock:
            data = self._read()
            if key not in data:
                return False
            del data[key]
            self._write(data)
            return True
