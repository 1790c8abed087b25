from __future__ import annotations

from .rwlock import RWLock

_MISSING = object()


class SafeMap:
    """Thread-safe ``id -> object`` map; reads are shared, writes are exclusive."""

    __slots__ = ("_data", "_lock")

    def __init__(self) -> None:
        self._data: dict[str, object] = {}
        self._lock = RWLock()

    def get(self, key: str) -> tuple[object, bool]:
        with self._lock.read_lock():
            value = self._data.get(key, _MISSING)
        if value is _MISSING:
            return None, False
        return value, True

    def set(self, key: str, value: object) -> None:
        with self._lock.write_lock():
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock.write_lock():
            self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock.read_lock():
            return key in self._data

    def __len__(self) -> int:
        with self._lock.read_lock():
            return len(self._data)
