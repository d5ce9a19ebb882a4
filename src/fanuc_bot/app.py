"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from fanuc_bot.bot.dispatcher import Dispatcher
from fanuc_bot.config import AppConfig
from fanuc_bot.core.wizard import WizardEngine
from fanuc_bot.log import get_logger
from fanuc_bot.messenger.telegram import TelegramAdapter
from fanuc_bot.services.control import ControlService
from fanuc_bot.services.monitoring import MonitoringService
from fanuc_bot.services.service_manager import ServiceManager
from fanuc_bot.storage.database import Database
from fanuc_bot.storage.service_repo import ServiceRepository
from fanuc_bot.storage.target_repo import TargetRepository
from fanuc_bot.storage.user_repo import UserRepository

logger = get_logger(__name__)


class FanucBotApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.user_repo = UserRepository(self.db)
        self.target_repo = TargetRepository(self.db)
        self.service_repo = ServiceRepository(self.db)
        self.service_manager = ServiceManager(config)

        self.monitoring = MonitoringService(self.target_repo, self.service_manager.get_kafka())
        self.control = ControlService(self.service_repo, self.service_manager.get_fanuc())
        self.live = self.service_manager.create_live(self.monitoring)
        self.wizard = WizardEngine(
            self.user_repo, self.target_repo, self.service_repo, self.monitoring, self.control
        )
        self.dispatcher = Dispatcher(
            users=self.user_repo,
            targets=self.target_repo,
            services=self.service_repo,
            wizard=self.wizard,
            monitoring=self.monitoring,
            control=self.control,
            live=self.live,
        )
        self.adapter = TelegramAdapter(config.telegram, self.dispatcher)

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Database
        await self.db.initialize()

        # 2. Services (kafka, fanuc http client, live sessions)
        await self.service_manager.start_all()
        logger.info("services_health", **await self.service_manager.health_check_all())

        # 3. Telegram
        await self.adapter.start()
        logger.info("fanuc_bot_started")

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        try:
            await self.adapter.stop()
        except Exception as e:
            logger.error("adapter_stop_error", error=str(e))

        await self.service_manager.stop_all()
        await self.db.close()
        logger.info("fanuc_bot_stopped")
