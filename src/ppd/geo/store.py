"""Local persistent key-value cache.

A small string -> string store backed by one JSON file, written atomically.
Reads tolerate a missing or corrupt file; writes raise ``OSError`` and leave
it to the caller to decide whether persistence is best-effort.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

import orjson

from ppd.utils.logging import get_logger


logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Protocol for string key-value persistence."""

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string or None."""

    def set_item(self, key: str, value: str) -> None:
        """Store a string value; may raise OSError."""


class MemoryStore:
    """In-process store, used when nothing should touch disk."""

    def __init__(self, data: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(data or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStore:
    """JSON file-based store mapping keys to string values."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self._data = {}
            return
        try:
            raw = orjson.loads(self.path.read_bytes())
        except (orjson.JSONDecodeError, OSError) as exc:
            logger.warning("store.load.failed path=%s error=%s", self.path, exc)
            self._data = {}
            return
        if not isinstance(raw, dict):
            logger.warning("store.load.unexpected_shape path=%s", self.path)
            self._data = {}
            return
        self._data = {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value
        self._write()

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = orjson.dumps(self._data, option=orjson.OPT_INDENT_2)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp", prefix=".kv_")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
