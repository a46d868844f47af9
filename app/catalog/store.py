"""Key-value stores holding serialized JSON under string keys."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...


class InMemoryStore(KeyValueStore):
    def __init__(self, initial: dict[str, Any] | None = None):
        # Stored as JSON text; every get() returns a fresh copy
        self._data: dict[str, str] = {k: json.dumps(v) for k, v in (initial or {}).items()}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else default

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)


class JsonFileStore(KeyValueStore):
    """One JSON document on disk; every write replaces the file atomically."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Catalog file %s is corrupt, starting empty: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".catalog-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
