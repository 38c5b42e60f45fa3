"""
locks.py

In-process mutual exclusion keyed by entity id.
"""

from __future__ import annotations
import contextlib
import threading
from typing import Dict, Hashable, Iterator, List


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class KeyedLocks:
    """
    One re-entrant lock per key, created on first use and dropped once no
    caller holds or waits on it.

    `hold` takes several keys at once and always acquires them in sorted order,
    so two callers asking for overlapping key sets cannot deadlock.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextlib.contextmanager
    def _one(self, key: Hashable) -> Iterator[None]:
        entry = self._checkout(key)
        try:
            with entry.lock:
                yield
        finally:
            self._checkin(key, entry)

    @contextlib.contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        ordered: List[Hashable] = sorted(set(keys), key=repr)
        with contextlib.ExitStack() as stack:
            for key in ordered:
                stack.enter_context(self._one(key))
            yield
