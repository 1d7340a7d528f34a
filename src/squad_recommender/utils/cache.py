import json
import logging
import os
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Protocol

log = logging.getLogger("squad.cache")


def cache_json(path: str, ttl_seconds: int, loader: Callable[[], Any]) -> Any:
    """
    Tiny disk cache for the raw feed.
    If the file exists and is fresher than ttl_seconds, return it.
    Otherwise call loader(), write the result, and return it.
    """
    if os.path.exists(path) and time.time() - os.path.getmtime(path) < ttl_seconds:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable cache %s: %s", path, e)

    data = loader()

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
    except OSError as e:
        # best-effort cache; still return data
        log.warning("Could not write cache %s: %s", path, e)

    return data


class ResultStore(Protocol):
    """Memo store for engine results keyed by (catalog version, spec, mode)."""

    def get(self, key: Hashable) -> Optional[Any]: ...

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any: ...

    def clear(self) -> None: ...


class _Flight:
    """One in-progress computation that other callers of the key wait on."""

    def __init__(self):
        self.done = threading.Event()
        self.value: Any = None
        self.error: Optional[Exception] = None


class MemoryResultStore:
    """
    In-process store. Concurrent callers of one key share a single
    computation. A failure is raised to the caller and to everyone already
    waiting on it, and is never stored; the next call computes afresh.
    """

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._data: Dict[Hashable, Any] = {}
        self._flights: Dict[Hashable, _Flight] = {}
        self._guard = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._guard:
            return self._data.get(key)

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        with self._guard:
            if key in self._data:
                return self._data[key]
            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = self._flights[key] = _Flight()

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.value

        try:
            flight.value = compute()
        except Exception as e:
            flight.error = e
            raise
        else:
            with self._guard:
                if len(self._data) >= self.max_entries:
                    # oldest first; dicts keep insertion order
                    self._data.pop(next(iter(self._data)))
                self._data[key] = flight.value
            return flight.value
        finally:
            with self._guard:
                self._flights.pop(key, None)
            flight.done.set()

    def clear(self) -> None:
        with self._guard:
            self._data.clear()

    def __len__(self) -> int:
        with self._guard:
            return len(self._data)
