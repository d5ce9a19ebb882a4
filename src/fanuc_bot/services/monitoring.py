"""Monitoring use cases: resolve a user's target/key and read Kafka for it."""

from __future__ import annotations

from dataclasses import dataclass

from fanuc_bot.core.errors import NotFoundError
from fanuc_bot.core.types import DEFAULT_KEY_ID
from fanuc_bot.services.kafka import KafkaMessage, KafkaReader
from fanuc_bot.storage.models import MonitoringTarget
from fanuc_bot.storage.target_repo import TargetRepository

DEFAULT_KEY_LABEL = "Default"


@dataclass(frozen=True, slots=True)
class Subject:
    """A (target, key) pair as shown to the user."""

    target: MonitoringTarget
    key_id: int
    key: str  # "" for the default view

    @property
    def key_label(self) -> str:
        return self.key or DEFAULT_KEY_LABEL

    @property
    def title(self) -> str:
        return f"{self.target.name} [{self.key_label}]"


class MonitoringService:
    def __init__(self, targets: TargetRepository, kafka: KafkaReader):
        self._targets = targets
        self._kafka = kafka

    async def get_owned_target(self, user_id: int, target_id: int) -> MonitoringTarget:
        target = await self._targets.get_target(target_id)
        if target is None or target.user_id != user_id:
            raise NotFoundError("target", target_id)
        return target

    async def describe(self, user_id: int, target_id: int, key_id: int) -> Subject:
        """Resolve ids to a Subject, failing with NotFoundError when either is gone."""
        target = await self.get_owned_target(user_id, target_id)
        if key_id == DEFAULT_KEY_ID:
            return Subject(target=target, key_id=DEFAULT_KEY_ID, key="")
        key = target.find_key(key_id)
        if key is None:
            raise NotFoundError("key", key_id)
        return Subject(target=target, key_id=key_id, key=key.key)

    async def fetch_last_message(self, user_id: int, target_id: int, key_id: int) -> KafkaMessage:
        subject = await self.describe(user_id, target_id, key_id)
        return await self._kafka.get_last_message(
            subject.target.broker, subject.target.topic, subject.key
        )
