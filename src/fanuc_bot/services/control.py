"""Machine control use cases: resolve a saved service and call its remote API."""

from __future__ import annotations

from fanuc_bot.core.errors import NotFoundError
from fanuc_bot.log import get_logger
from fanuc_bot.services.fanuc import ConnectionRequest, FanucApiClient, MachineInfo
from fanuc_bot.storage.models import FanucService
from fanuc_bot.storage.service_repo import ServiceRepository

logger = get_logger(__name__)


class ControlService:
    def __init__(self, services: ServiceRepository, client: FanucApiClient):
        self._services = services
        self._client = client

    async def get_owned_service(self, user_id: int, svc_id: int) -> FanucService:
        service = await self._services.get_service(svc_id)
        if service is None or service.user_id != user_id:
            raise NotFoundError("service", svc_id)
        return service

    async def list_machines(self, user_id: int, svc_id: int) -> list[MachineInfo]:
        svc = await self.get_owned_service(user_id, svc_id)
        return await self._client.list_machines(svc.base_url, svc.api_key)

    async def get_machine(self, user_id: int, svc_id: int, machine_id: str) -> MachineInfo:
        svc = await self.get_owned_service(user_id, svc_id)
        return await self._client.get_machine(svc.base_url, svc.api_key, machine_id)

    async def create_machine(
        self, user_id: int, svc_id: int, request: ConnectionRequest
    ) -> MachineInfo:
        svc = await self.get_owned_service(user_id, svc_id)
        machine = await self._client.create_machine(svc.base_url, svc.api_key, request)
        logger.info("machine_created", service_id=svc_id, machine_id=machine.id, endpoint=request.endpoint)
        return machine

    async def delete_machine(self, user_id: int, svc_id: int, machine_id: str) -> None:
        svc = await self.get_owned_service(user_id, svc_id)
        await self._client.delete_machine(svc.base_url, svc.api_key, machine_id)
        logger.info("machine_deleted", service_id=svc_id, machine_id=machine_id)

    async def start_polling(
        self, user_id: int, svc_id: int, machine_id: str, interval_ms: int
    ) -> None:
        svc = await self.get_owned_service(user_id, svc_id)
        await self._client.start_polling(svc.base_url, svc.api_key, machine_id, interval_ms)
        logger.info("polling_started", service_id=svc_id, machine_id=machine_id, interval_ms=interval_ms)

    async def stop_polling(self, user_id: int, svc_id: int, machine_id: str) -> None:
        svc = await self.get_owned_service(user_id, svc_id)
        await self._client.stop_polling(svc.base_url, svc.api_key, machine_id)
        logger.info("polling_stopped", service_id=svc_id, machine_id=machine_id)

    async def get_program(self, user_id: int, svc_id: int, machine_id: str) -> str:
        svc = await self.get_owned_service(user_id, svc_id)
        return await self._client.get_program_text(svc.base_url, svc.api_key, machine_id)
