from __future__ import annotations

from pathlib import Path
import sys
import threading

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from dnd_rules import locks
from dnd_rules.locks import character_lock


def test_lock_is_reentrant_and_released_from_registry() -> None:
    with character_lock(101):
        with character_lock(101):
            assert locks._character_locks[101][1] == 2
        assert 101 in locks._character_locks

    assert 101 not in locks._character_locks


def test_lock_is_released_when_the_body_raises() -> None:
    try:
        with character_lock(102):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert 102 not in locks._character_locks


def test_second_thread_waits_for_the_holder() -> None:
    order: list[str] = []

    def worker() -> None:
        with character_lock(103):
            order.append("worker")

    with character_lock(103):
        thread = threading.Thread(target=worker)
        thread.start()
        thread.join(timeout=0.2)
        assert thread.is_alive()
        order.append("holder")

    thread.join(timeout=5)
    assert order == ["holder", "worker"]
    assert 103 not in locks._character_locks
