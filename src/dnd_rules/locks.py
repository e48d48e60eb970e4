"""Per-character serialization of mutating operations."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

_registry_lock = threading.Lock()
# character id -> [lock, number of threads holding or waiting on it]
_character_locks: dict[int, list] = {}


def _acquire_entry(character_id: int) -> list:
    with _registry_lock:
        entry = _character_locks.get(character_id)
        if entry is None:
            entry = [threading.RLock(), 0]
            _character_locks[character_id] = entry
        entry[1] += 1
        return entry


def _release_entry(character_id: int, entry: list) -> None:
    with _registry_lock:
        entry[1] -= 1
        if entry[1] == 0:
            del _character_locks[character_id]


@contextmanager
def character_lock(character_id: int) -> Iterator[None]:
    """Hold the lock for one character; re-entrant within a thread.

    Operations on different characters never contend. A character's lock is
    dropped from the registry once no thread holds or waits on it.
    """
    entry = _acquire_entry(character_id)
    try:
        with entry[0]:
            yield
    finally:
        _release_entry(character_id, entry)
