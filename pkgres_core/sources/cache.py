from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Union

from pkgres_core.registry.types import Packument

PackumentEntry = Union["Future[Packument]", Packument]


class PackumentCache:
    """Single-flight store of packuments keyed by canonical URL.

    An entry is either a pending ``Future`` owned by the caller that is
    fetching it, or the completed packument. Lifetime is owned by whoever
    creates the instance: share one across a command, or make one per call.
    """

    def __init__(self) -> None:
        self._entries: dict[str, PackumentEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> PackumentEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, entry: PackumentEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def claim(self, key: str) -> tuple[PackumentEntry, bool]:
        """Return ``(entry, owner)``; installs a placeholder when the key is absent."""
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing, False
            placeholder: Future[Packument] = Future()
            self._entries[key] = placeholder
            return placeholder, True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
