"""Key-value persistence backing the risk tier registry."""

from __future__ import annotations

import copy
import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

from .errors import StoreError

logger = logging.getLogger(__name__)


class KeyValueStore:
    def get(self, key: str) -> Optional[Any]:  # pragma: no cover - interface
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, items: Mapping[str, Any]) -> None:  # pragma: no cover - interface
        """Write every entry of ``items`` or none of them."""

        raise NotImplementedError

    def keys(self) -> Iterator[str]:  # pragma: no cover - interface
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store. Values are copied on the way in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set_many(self, items: Mapping[str, Any]) -> None:
        self._data.update(copy.deepcopy(dict(items)))

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))


class FileKeyValueStore(InMemoryKeyValueStore):
    """JSON document on disk, rewritten atomically once per ``set_many``."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(self._read())

    def _read(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Failed to read registry store {self._path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise StoreError(f"Registry store {self._path} must contain a JSON object")
        return payload

    def set_many(self, items: Mapping[str, Any]) -> None:
        # Memory only changes once the file write has succeeded.
        data = dict(self._data)
        data.update(copy.deepcopy(dict(items)))
        try:
            _atomic_write(self._path, json.dumps(data, indent=2, sort_keys=True))
        except OSError as exc:
            logger.error("Failed to persist registry store %s: %s", self._path, exc)
            raise StoreError(f"Failed to persist registry store {self._path}: {exc}") from exc
        self._data = data


def _atomic_write(path: Path, content: str) -> None:
    tmp = tempfile.NamedTemporaryFile("w", delete=False, dir=path.parent, encoding="utf-8")
    try:
        with tmp as f:
            f.write(content)
            f.flush()
        Path(tmp.name).replace(path)
    except Exception:
        Path(tmp.name).unlink(missing_ok=True)
        raise
