"""按键加锁的并发行为测试。"""

import threading
import time

from app.packages.idea_repo.utils.locks import KeyedLock


def test_same_key_is_serialized():
    locks = KeyedLock()
    active = 0
    overlaps = []
    guard = threading.Lock()

    def worker():
        nonlocal active
        with locks.hold("idea"):
            with guard:
                active += 1
                overlaps.append(active)
            time.sleep(0.01)
            with guard:
                active -= 1

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert max(overlaps) == 1
    assert locks.active_keys() == []


def test_different_keys_do_not_block():
    locks = KeyedLock()
    done = threading.Event()

    def other():
        with locks.hold("b"):
            done.set()

    with locks.hold("a"):
        t = threading.Thread(target=other)
        t.start()
        assert done.wait(timeout=2)
        t.join()
    assert locks.active_keys() == []


def test_lock_released_on_error():
    locks = KeyedLock()
    try:
        with locks.hold("idea"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    with locks.hold("idea"):
        assert locks.active_keys() == ["idea"]
    assert locks.active_keys() == []
