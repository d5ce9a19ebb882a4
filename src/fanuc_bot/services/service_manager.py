"""Service lifecycle manager."""

from __future__ import annotations

from fanuc_bot.config import AppConfig
from fanuc_bot.core.session import LiveSessionRegistry
from fanuc_bot.log import get_logger
from fanuc_bot.services.base import Service
from fanuc_bot.services.fanuc import FanucApiClient
from fanuc_bot.services.kafka import KafkaReader
from fanuc_bot.services.live import LiveSessionManager
from fanuc_bot.services.monitoring import MonitoringService

logger = get_logger(__name__)


class ServiceManager:
    """Owns the long-lived collaborators and starts/stops them in order."""

    def __init__(self, config: AppConfig, registry: LiveSessionRegistry | None = None):
        self._kafka = KafkaReader(config.kafka)
        self._fanuc = FanucApiClient(config.fanuc)
        self._registry = registry or LiveSessionRegistry()
        self._live_config = config.live
        self._live: LiveSessionManager | None = None

    def get_kafka(self) -> KafkaReader:
        return self._kafka

    def get_fanuc(self) -> FanucApiClient:
        return self._fanuc

    def get_registry(self) -> LiveSessionRegistry:
        return self._registry

    def create_live(self, monitoring: MonitoringService) -> LiveSessionManager:
        """Build the live manager once the monitoring use case exists."""
        self._live = LiveSessionManager(self._live_config, monitoring, self._registry)
        return self._live

    def _services(self) -> list[Service]:
        services: list[Service] = [self._kafka, self._fanuc]
        if self._live is not None:
            services.append(self._live)
        return services

    async def start_all(self) -> None:
        for service in self._services():
            await service.start()
        logger.info("all_services_started")

    async def stop_all(self) -> None:
        """Stop in reverse order; live loops go first so nothing reads a closed client."""
        for service in reversed(self._services()):
            try:
                await service.stop()
            except Exception as e:
                logger.error("service_stop_error", service=service.service_name, error=str(e))
        logger.info("all_services_stopped")

    async def health_check_all(self) -> dict[str, bool]:
        return {service.service_name: await service.health_check() for service in self._services()}
