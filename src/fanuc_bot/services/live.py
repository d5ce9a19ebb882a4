"""Live mode: keep one chat message refreshed with the newest Kafka message."""

from __future__ import annotations

import asyncio
from datetime import datetime
from html import escape
from typing import Callable

from fanuc_bot.bot import menu
from fanuc_bot.config import LiveConfig
from fanuc_bot.core.errors import FanucBotError, TargetGone
from fanuc_bot.core.session import LiveHandle, LiveSessionRegistry
from fanuc_bot.log import get_logger
from fanuc_bot.messenger.base import Screen
from fanuc_bot.services.base import Service
from fanuc_bot.services.monitoring import MonitoringService

logger = get_logger(__name__)

Clock = Callable[[], datetime]


class LiveSessionManager(Service):
    """Starts, stops and runs the per-user refresh loops.

    Each loop is an asyncio task owning a LiveHandle. The registry decides
    which handle is current; a loop whose handle was cancelled (stopped, or
    replaced by a newer session) exits at its next check without rendering.
    """

    def __init__(
        self,
        config: LiveConfig,
        monitoring: MonitoringService,
        registry: LiveSessionRegistry,
        clock: Clock | None = None,
    ):
        self._config = config
        self._monitoring = monitoring
        self._registry = registry
        self._clock = clock or datetime.now

    @property
    def service_name(self) -> str:
        return "live"

    async def start(self) -> None:
        logger.info(
            "live_manager_ready",
            refresh_interval=self._config.refresh_interval,
            fetch_timeout=self._config.fetch_timeout,
        )

    async def stop(self) -> None:
        handles = self._registry.drain()
        tasks = [h.task for h in handles if h.task is not None and not h.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("live_manager_stopped", sessions=len(handles))

    async def health_check(self) -> bool:
        return True

    def is_active(self, user_id: int) -> bool:
        return self._registry.get(user_id) is not None

    async def start_live(self, user_id: int, target_id: int, key_id: int, screen: Screen) -> LiveHandle:
        """Replace any running session of the user with a new one on (target, key).

        The previous session is stopped first, even when the new one cannot
        start. Raises NotFoundError when the target or key is gone.
        """
        self.stop_live(user_id)
        subject = await self._monitoring.describe(user_id, target_id, key_id)
        handle = LiveHandle(user_id=user_id, target_id=target_id, key_id=key_id)
        self._registry.replace(user_id, handle)

        try:
            await screen.refresh(menu.live_connecting(subject.title, target_id, key_id))
        except TargetGone:
            self._registry.remove(user_id, handle)
            return handle
        except Exception:
            self._registry.remove(user_id, handle)
            logger.warning("live_placeholder_failed", user_id=user_id, target_id=target_id)
            raise
        if handle.cancelled:
            return handle

        handle.task = asyncio.create_task(self._run(handle, subject.title, screen), name=f"live-{user_id}")
        logger.info("live_started", user_id=user_id, target_id=target_id, key_id=key_id)
        return handle

    def stop_live(self, user_id: int) -> bool:
        """Cancel the user's session; False when there was none."""
        handle = self._registry.remove(user_id)
        if handle is None:
            return False
        logger.info("live_stop_requested", user_id=user_id, target_id=handle.target_id)
        return True

    async def _run(self, handle: LiveHandle, title: str, screen: Screen) -> None:
        last_content: str | None = None
        try:
            while not handle.cancelled:
                content = await self._fetch_content(handle, title)
                if handle.cancelled:
                    break

                if content != last_content:
                    view = menu.live_view(title, handle.target_id, handle.key_id, self._clock(), content)
                    try:
                        await screen.edit_current(view)
                    except TargetGone:
                        logger.info("live_target_gone", user_id=handle.user_id)
                        self._registry.remove(handle.user_id, handle)
                        break
                    except Exception as e:
                        logger.warning("live_render_failed", user_id=handle.user_id, error=str(e))
                    else:
                        last_content = content

                try:
                    await asyncio.wait_for(handle.token.wait(), timeout=self._config.refresh_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            logger.info("live_stopped", user_id=handle.user_id, target_id=handle.target_id)

    async def _fetch_content(self, handle: LiveHandle, title: str) -> str:
        """Body of the live message without its timestamp header."""
        try:
            message = await asyncio.wait_for(
                self._monitoring.fetch_last_message(handle.user_id, handle.target_id, handle.key_id),
                timeout=self._config.fetch_timeout,
            )
        except asyncio.TimeoutError:
            return error_line(title, f"no answer within {self._config.fetch_timeout:g}s")
        except FanucBotError as e:
            logger.debug("live_fetch_failed", user_id=handle.user_id, error=str(e))
            return error_line(title, str(e))

        body = menu.truncate(
            menu.pretty_json(message.value), self._config.max_render_chars, menu.LIVE_TRUNCATED
        )
        return menu.code_block(body)


def error_line(title: str, detail: str) -> str:
    return f"❌ <b>{escape(title)}</b>: {escape(detail)}"
