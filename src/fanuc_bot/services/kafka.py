"""Kafka reader: fetch the most recent record of a topic, optionally filtered by key."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterable

from aiokafka import AIOKafkaConsumer, TopicPartition
from aiokafka.errors import KafkaError

from fanuc_bot.config import KafkaConfig
from fanuc_bot.core.errors import CollaboratorUnavailable, NotFoundError
from fanuc_bot.log import get_logger
from fanuc_bot.services.base import Service

logger = get_logger(__name__)

POLL_TIMEOUT_MS = 500


@dataclass(frozen=True, slots=True)
class KafkaMessage:
    key: str
    value: str
    timestamp: int = 0  # ms since epoch, as reported by the broker


@dataclass(frozen=True, slots=True)
class TailRecord:
    key: str
    value: str
    timestamp: int
    offset: int


def pick_latest(records: Iterable[TailRecord], key_filter: str = "") -> TailRecord | None:
    """Return the newest record matching ``key_filter`` (any key when empty)."""
    best: TailRecord | None = None
    for record in records:
        if key_filter and record.key != key_filter:
            continue
        if best is None or (record.timestamp, record.offset) > (best.timestamp, best.offset):
            best = record
    return best


def _decode(raw: bytes | None) -> str:
    if raw is None:
        return ""
    return raw.decode("utf-8", errors="replace")


class KafkaReader(Service):
    """Short-lived consumer per request; no consumer group, no committed offsets."""

    def __init__(self, config: KafkaConfig):
        self._config = config

    @property
    def service_name(self) -> str:
        return "kafka"

    async def start(self) -> None:
        logger.info("kafka_reader_ready", scan_window=self._config.scan_window)

    async def stop(self) -> None:
        pass

    async def get_last_message(self, broker: str, topic: str, key_filter: str = "") -> KafkaMessage:
        """Read the last record of ``topic`` whose key equals ``key_filter``.

        Only the last ``scan_window`` records of each partition are searched.
        Raises NotFoundError when the topic is empty or no record carries the
        key, CollaboratorUnavailable when the broker cannot be reached.
        """
        if not broker or not topic:
            raise CollaboratorUnavailable("kafka_fetch", "broker or topic is empty")

        consumer = AIOKafkaConsumer(
            bootstrap_servers=broker,
            client_id=self._config.client_id,
            group_id=None,
            enable_auto_commit=False,
            request_timeout_ms=self._config.request_timeout_ms,
        )
        try:
            await consumer.start()
        except KafkaError as e:
            raise CollaboratorUnavailable("kafka_connect", str(e), broker=broker) from e

        try:
            records = await self._read_tail(consumer, topic)
        except KafkaError as e:
            raise CollaboratorUnavailable("kafka_fetch", str(e), broker=broker, topic=topic) from e
        finally:
            await consumer.stop()

        if not records:
            raise NotFoundError("topic", topic, "no messages")

        latest = pick_latest(records, key_filter)
        if latest is None:
            raise NotFoundError(
                "key", key_filter, f"not found in the last {self._config.scan_window} messages"
            )
        return KafkaMessage(key=latest.key, value=latest.value, timestamp=latest.timestamp)

    async def _read_tail(self, consumer: AIOKafkaConsumer, topic: str) -> list[TailRecord]:
        await consumer.topics()  # forces a metadata refresh
        partitions = consumer.partitions_for_topic(topic)
        if not partitions:
            raise NotFoundError("topic", topic)

        tps = [TopicPartition(topic, p) for p in sorted(partitions)]
        consumer.assign(tps)
        beginnings = await consumer.beginning_offsets(tps)
        ends = await consumer.end_offsets(tps)

        pending: dict[TopicPartition, int] = {}
        for tp in tps:
            start = max(beginnings[tp], ends[tp] - self._config.scan_window)
            if start < ends[tp]:
                consumer.seek(tp, start)
                pending[tp] = ends[tp]
        if not pending:
            return []

        records: list[TailRecord] = []
        deadline = asyncio.get_running_loop().time() + self._config.request_timeout_ms / 1000
        while pending and asyncio.get_running_loop().time() < deadline:
            batch = await consumer.getmany(*pending.keys(), timeout_ms=POLL_TIMEOUT_MS)
            for tp, messages in batch.items():
                for msg in messages:
                    records.append(
                        TailRecord(
                            key=_decode(msg.key),
                            value=_decode(msg.value),
                            timestamp=msg.timestamp or 0,
                            offset=msg.offset,
                        )
                    )
                if messages and messages[-1].offset + 1 >= pending.get(tp, 0):
                    pending.pop(tp, None)

        if pending:
            logger.warning("kafka_tail_incomplete", topic=topic, partitions=len(pending))
        return records
