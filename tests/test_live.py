from __future__ import annotations

import asyncio

import pytest

from conftest import USER_ID, FakeScreen, wait_until
from fanuc_bot.config import LiveConfig
from fanuc_bot.core.errors import NotFoundError
from fanuc_bot.core.types import DEFAULT_KEY_ID
from fanuc_bot.services.kafka import KafkaMessage
from fanuc_bot.services.live import LiveSessionManager

CONNECTING = "Connecting"


def _renders(screen: FakeScreen) -> list[str]:
    """Texts rendered by the loop itself (placeholder excluded)."""
    return [v.text for v in screen.edits if CONNECTING not in v.text]


async def test_start_renders_placeholder_then_message(live, target, screen):
    screen.message_id = 42

    handle = await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)

    assert CONNECTING in screen.edits[0].text
    assert "LIVE: CNC1 [Default]" in screen.edits[0].text
    await wait_until(lambda: len(_renders(screen)) >= 1)
    text = _renders(screen)[0]
    assert "&quot;spindle&quot;: 1200" in text
    assert "12:34:56" in text
    assert live.is_active(USER_ID)
    assert handle.task is not None


async def test_placeholder_is_sent_when_nothing_to_edit(live, target, screen):
    await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)

    assert CONNECTING in screen.sent[0].text
    await wait_until(lambda: len(_renders(screen)) >= 1)


async def test_identical_payloads_render_once(live, target, screen, kafka):
    await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)

    await wait_until(lambda: len(kafka.calls) >= 4)

    assert len(_renders(screen)) == 1


async def test_changed_payload_renders_again(live, target, screen, kafka):
    kafka.script(KafkaMessage(key="", value='{"a": 1}'), KafkaMessage(key="", value='{"a": 2}'))

    await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)

    await wait_until(lambda: len(_renders(screen)) >= 2)
    assert "&quot;a&quot;: 2" in _renders(screen)[-1]


async def test_fetch_error_renders_error_line_and_keeps_ticking(live, target, screen, kafka, unavailable):
    key = target.keys[0]
    kafka.script(unavailable, KafkaMessage(key=key.key, value='{"ok": true}'))

    await live.start_live(USER_ID, target.id, key.id, screen)

    await wait_until(lambda: len(_renders(screen)) >= 2)
    first, second = _renders(screen)[:2]
    assert "❌" in first
    assert "CNC1 [192.168.0.10]" in first
    assert "broker down" in first
    assert "12:34:56" in first
    assert "&quot;ok&quot;: true" in second
    assert kafka.calls[0][2] == "192.168.0.10"


async def test_slow_fetch_is_reported(monitoring, registry, target, screen, kafka):
    kafka.delay = 1.0
    manager = LiveSessionManager(
        LiveConfig(refresh_interval=0.01, fetch_timeout=0.05), monitoring, registry
    )
    try:
        await manager.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)
        await wait_until(lambda: len(_renders(screen)) >= 1)
        assert "no answer within 0.05s" in _renders(screen)[0]
    finally:
        await manager.stop()


async def test_long_payload_is_truncated(monitoring, registry, target, screen, kafka):
    kafka.script(KafkaMessage(key="", value="x" * 500))
    manager = LiveSessionManager(
        LiveConfig(refresh_interval=0.01, max_render_chars=100), monitoring, registry
    )
    try:
        await manager.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)
        await wait_until(lambda: len(_renders(screen)) >= 1)
        text = _renders(screen)[0]
        assert "x" * 100 + "..." in text
        assert "x" * 101 not in text
    finally:
        await manager.stop()


async def test_second_session_replaces_first(live, target, registry):
    key = target.keys[0]
    screen = FakeScreen(message_id=1)

    first = await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)
    await wait_until(lambda: len(_renders(screen)) >= 1)
    second = await live.start_live(USER_ID, target.id, key.id, screen)
    rendered_by_first = [t for t in _renders(screen) if "[Default]" in t]

    assert first.cancelled
    assert not second.cancelled
    assert registry.get(USER_ID) is second
    await wait_until(lambda: first.task.done())
    await wait_until(lambda: any("[192.168.0.10]" in t for t in _renders(screen)))
    await asyncio.sleep(0.05)
    assert [t for t in _renders(screen) if "[Default]" in t] == rendered_by_first


async def test_gone_target_stops_the_session(live, target, screen, registry):
    handle = await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)
    screen.gone = True

    await wait_until(lambda: handle.task.done())

    assert registry.get(USER_ID) is None
    assert handle.cancelled


async def test_stop_live(live, target, screen):
    handle = await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)

    assert live.stop_live(USER_ID) is True
    await wait_until(lambda: handle.task.done())
    assert live.stop_live(USER_ID) is False
    assert not live.is_active(USER_ID)


async def test_stop_without_session_is_noop(live):
    assert live.stop_live(USER_ID) is False


async def test_missing_target_is_not_found(live, target, screen, registry):
    first = await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)

    with pytest.raises(NotFoundError):
        await live.start_live(USER_ID, 9999, DEFAULT_KEY_ID, screen)

    assert first.cancelled
    assert registry.get(USER_ID) is None


async def test_missing_target_without_prior_session(live, user, screen, registry):
    with pytest.raises(NotFoundError):
        await live.start_live(USER_ID, 9999, DEFAULT_KEY_ID, screen)

    assert registry.get(USER_ID) is None
    assert screen.rendered == []


class FloodedScreen(FakeScreen):
    async def edit_current(self, view):
        raise RuntimeError("flood control exceeded")


async def test_failed_placeholder_leaves_no_session(live, target, registry):
    screen = FloodedScreen(message_id=7)

    with pytest.raises(RuntimeError):
        await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)

    assert registry.get(USER_ID) is None
    assert not live.is_active(USER_ID)


async def test_missing_key_is_not_found(live, target, screen):
    with pytest.raises(NotFoundError):
        await live.start_live(USER_ID, target.id, 9999, screen)


async def test_shutdown_cancels_all_sessions(live, target, screen, registry):
    handle = await live.start_live(USER_ID, target.id, DEFAULT_KEY_ID, screen)

    await live.stop()

    assert handle.cancelled
    assert handle.task.done()
    assert len(registry) == 0
