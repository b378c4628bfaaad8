import json
import threading
from pathlib import Path
from typing import Any, Protocol

import structlog

from traeusage.storage import atomic_write

logger = structlog.get_logger()

SESSION_ID_KEY = "session_id"
HOST_KEY = "host"


class SettingsStore(Protocol):
    """
    SettingsStore is the key-value store holding user settings
    such as the session id and the currently selected API host.
    """

    def get(self, key: "str", default: "Any" = None) -> "Any": ...

    def set(self, key: "str", value: "Any") -> "None": ...


class MemorySettings:
    def __init__(self, initial: "dict[str, Any] | None" = None) -> "None":
        self._values: "dict[str, Any]" = dict(initial or {})

    def get(self, key: "str", default: "Any" = None) -> "Any":
        return self._values.get(key, default)

    def set(self, key: "str", value: "Any") -> "None":
        self._values[key] = value


class JsonFileSettings:
    """
    JsonFileSettings keeps settings in a single JSON object on
    disk. Every set() rewrites the file atomically.
    """

    def __init__(self, path: "Path") -> "None":
        self._path = path
        self._lock: "threading.Lock" = threading.Lock()
        self._values: "dict[str, Any]" = self._load()

    def _load(self) -> "dict[str, Any]":
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("settings_unreadable", path=str(self._path))
            return {}
        if not isinstance(data, dict):
            logger.warning("settings_not_an_object", path=str(self._path))
            return {}
        return data

    def get(self, key: "str", default: "Any" = None) -> "Any":
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: "str", value: "Any") -> "None":
        with self._lock:
            self._values[key] = value
            payload = json.dumps(self._values, indent=2).encode("utf-8")
            atomic_write(self._path, payload)
