"""Catalog Index — in-memory latest manifest per resource.

The index is a cache: it is never persisted and must always be derivable
from the registry's ``latest`` tags (see ``core.restore``).  Only the
latest bytes are kept; history lives in the registry's version chain.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager


def resource_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


def split_key(key: str) -> tuple[str, str]:
    """Inverse of ``resource_key``; raises ValueError on malformed keys."""
    namespace, sep, name = key.partition("/")
    if not sep or not namespace or not name or "/" in name:
        raise ValueError(f"malformed resource key: {key!r}")
    return namespace, name


class ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class CatalogIndex:
    """``"namespace/name" -> manifest bytes`` behind one readers/writer lock.

    ``set``/``delete``/``replace_all`` take exclusive access; ``get`` and
    ``snapshot`` take shared access.  ``snapshot`` returns a copy, so a
    caller assembling the catalog never sees a half-applied write.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._entries: dict[str, bytes] = {}

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def set(self, namespace: str, name: str, manifest: bytes) -> None:
        with self._lock.write():
            self._entries[resource_key(namespace, name)] = bytes(manifest)

    def delete(self, namespace: str, name: str) -> bool:
        """Remove an entry; returns whether it was present."""
        with self._lock.write():
            return self._entries.pop(resource_key(namespace, name), None) is not None

    def replace_all(self, entries: Mapping[str, bytes]) -> None:
        """Swap in a complete new mapping in one write."""
        fresh = {key: bytes(value) for key, value in entries.items()}
        with self._lock.write():
            self._entries = fresh

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def get(self, namespace: str, name: str) -> bytes | None:
        with self._lock.read():
            return self._entries.get(resource_key(namespace, name))

    def snapshot(self) -> dict[str, bytes]:
        with self._lock.read():
            return dict(self._entries)

    def keys(self) -> list[str]:
        with self._lock.read():
            return sorted(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock.read():
            return key in self._entries

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)
