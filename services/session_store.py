"""
Key-value store for device session data.

Holds what must survive a restart: the selected role, the onboarding
profile, the shop binding and the notification permission. Values are
read once at startup and written on each relevant commit. A missing key
means "not set yet", never an error.

Storage:
    - path given: one JSON object in a file, rewritten atomically
    - no path: in memory only (tests)
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from logging_config import get_logger


logger = get_logger(__name__)

# Keys used by the application
ROLE_KEY = "role"
PROFILE_KEY = "profile"
CONNECTED_KEY = "connected"
SHOP_ID_KEY = "shop_id"
NOTIFICATION_PERMISSION_KEY = "notification_permission"
OPERATOR_SHOP_ID_KEY = "operator_shop_id"


class SessionStore:
    """Thread-safe get/set/delete over a JSON document."""

    def __init__(self, path: Optional[str | Path] = None):
        self._path = Path(path) if path else None
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key: str) -> None:
        """Remove ``key``; deleting an absent key is not an error."""
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._flush()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._data)

    def _load(self) -> Dict[str, Any]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read session store {self._path}: {e}; starting empty")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Session store {self._path} is not a JSON object; starting empty")
            return {}
        logger.info(f"Loaded session store with keys: {sorted(data)}")
        return data

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._path)
