"""
Calibration storage - JSON documents keyed by a fixed identifier.

With a directory configured each key is written to `<directory>/<key>.json`
so a calibration survives restarts. Without one the store is memory only.
"""
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

# Fixed identifier the active calibration is stored under
CALIBRATION_KEY = "dartboard_calibration"


class CalibrationStore:
    """Thread-safe storage for calibration documents."""

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        self._store: Dict[str, Dict[str, Any]] = {}
        self._lock = Lock()
        self._directory = Path(directory) if directory else None
        if self._directory is not None:
            self._directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "CalibrationStore":
        return cls(os.environ.get("DARTCAM_CALIBRATION_DIR") or None)

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def save(self, key: str, data: Dict[str, Any]) -> None:
        """Save a calibration document."""
        with self._lock:
            if self._directory is not None:
                path = self._path(key)
                tmp_path = path.with_suffix(".json.tmp")
                tmp_path.write_text(json.dumps(data, indent=2))
                os.replace(tmp_path, path)
                logger.info(f"[STORAGE] Wrote {key} to {path}")
            self._store[key] = {"data": data, "created_at": datetime.now(timezone.utc)}

    def get(self, key: str) -> Optional[Any]:
        """
        Get a calibration document.

        Returns whatever was stored, which may be structurally invalid if the
        file was edited by hand; callers validate. Unparseable files read as
        None.
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is not None:
                return entry["data"]
            if self._directory is None:
                return None
            path = self._path(key)
            if not path.exists():
                return None
            try:
                data = json.loads(path.read_text())
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"[STORAGE] Could not read {path}: {e}")
                return None
            self._store[key] = {"data": data, "created_at": datetime.now(timezone.utc)}
            return data

    def delete(self, key: str) -> bool:
        """Delete a calibration document. Returns True if it existed."""
        with self._lock:
            existed = self._store.pop(key, None) is not None
            if self._directory is not None:
                path = self._path(key)
                if path.exists():
                    path.unlink()
                    existed = True
            return existed

