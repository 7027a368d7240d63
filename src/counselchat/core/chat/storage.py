from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path

from counselchat.core.runtime.errors import PersistenceError, StorageQuotaError


class KeyValueStorage(ABC):
    """Same-device string key/value storage scoped to one profile."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self, key: str) -> None:
        raise NotImplementedError

    def is_available(self) -> bool:
        probe = "__counselchat_storage_probe__"
        try:
            self.set(probe, probe)
            self.remove(probe)
        except PersistenceError:
            return False
        return True


def _payload_size(items: dict[str, str]) -> int:
    return sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in items.items())


class MemoryStorage(KeyValueStorage):
    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        candidate = {**self._items, key: value}
        if self.quota_bytes is not None and _payload_size(candidate) > self.quota_bytes:
            raise StorageQuotaError(f"storage quota of {self.quota_bytes} bytes exceeded writing {key}")
        self._items = candidate

    def remove(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """Durable storage kept as one JSON object on disk.

    Writes go to a sibling temp file and are swapped in with ``os.replace`` so a
    crash mid-write leaves the previous contents intact.
    """

    def __init__(self, path: str | Path, quota_bytes: int | None = None) -> None:
        self.path = Path(path)
        self.quota_bytes = quota_bytes

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"cannot read {self.path}: {exc}") from exc
        if not raw.strip():
            return {}
        try:
            content = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"corrupt storage file {self.path}: {exc}") from exc
        if not isinstance(content, dict):
            raise PersistenceError(f"storage file must contain a mapping: {self.path}")
        return {str(k): str(v) for k, v in content.items()}

    def _write_all(self, items: dict[str, str]) -> None:
        if self.quota_bytes is not None and _payload_size(items) > self.quota_bytes:
            raise StorageQuotaError(f"storage quota of {self.quota_bytes} bytes exceeded")
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(items, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise PersistenceError(f"cannot write {self.path}: {exc}") from exc

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        items = self._read_all()
        items[key] = value
        self._write_all(items)

    def remove(self, key: str) -> None:
        items = self._read_all()
        if key in items:
            del items[key]
            self._write_all(items)
