from __future__ import annotations

import threading

from fanuc_bot.core.session import LiveHandle, LiveSessionRegistry


def _handle(user_id: int = 1, key_id: int = 0) -> LiveHandle:
    return LiveHandle(user_id=user_id, target_id=10, key_id=key_id)


def test_replace_cancels_previous():
    registry = LiveSessionRegistry()
    first, second = _handle(), _handle(key_id=5)

    assert registry.replace(1, first) is None
    assert registry.replace(1, second) is first

    assert first.cancelled
    assert not second.cancelled
    assert registry.get(1) is second
    assert len(registry) == 1


def test_users_are_independent():
    registry = LiveSessionRegistry()
    a, b = _handle(1), _handle(2)

    registry.replace(1, a)
    registry.replace(2, b)

    assert not a.cancelled and not b.cancelled
    assert len(registry) == 2


def test_remove_only_matching_handle():
    registry = LiveSessionRegistry()
    stale, current = _handle(), _handle()
    registry.replace(1, stale)
    registry.replace(1, current)

    assert registry.remove(1, stale) is None
    assert registry.get(1) is current
    assert not current.cancelled

    assert registry.remove(1, current) is current
    assert current.cancelled
    assert registry.get(1) is None


def test_remove_missing_is_noop():
    registry = LiveSessionRegistry()

    assert registry.remove(1) is None


def test_drain_cancels_everything():
    registry = LiveSessionRegistry()
    handles = [_handle(user_id) for user_id in range(5)]
    for h in handles:
        registry.replace(h.user_id, h)

    drained = registry.drain()

    assert set(map(id, drained)) == set(map(id, handles))
    assert all(h.cancelled for h in handles)
    assert len(registry) == 0


def test_concurrent_replace_leaves_one_live_handle():
    registry = LiveSessionRegistry()
    created: list[LiveHandle] = []
    created_lock = threading.Lock()

    def worker() -> None:
        for _ in range(200):
            h = _handle()
            with created_lock:
                created.append(h)
            registry.replace(1, h)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    alive = [h for h in created if not h.cancelled]
    assert alive == [registry.get(1)]
