"""Kafka monitoring targets and their keys."""

from __future__ import annotations

from datetime import datetime

from fanuc_bot.storage.database import Database, storage_errors
from fanuc_bot.storage.models import MonitoringKey, MonitoringTarget


class TargetRepository:
    """CRUD over monitoring_targets / monitoring_keys."""

    def __init__(self, db: Database):
        self._db = db

    async def add_target(self, target: MonitoringTarget) -> int:
        """Insert a target together with any keys it carries, in one commit."""
        with storage_errors("add_target", user_id=target.user_id):
            cursor = await self._db.conn.execute(
                """INSERT INTO monitoring_targets (user_id, name, broker, topic)
                   VALUES (?, ?, ?, ?)""",
                (target.user_id, target.name, target.broker, target.topic),
            )
            target_id: int = cursor.lastrowid  # type: ignore[assignment]
            for key in target.keys:
                await self._db.conn.execute(
                    "INSERT INTO monitoring_keys (target_id, key) VALUES (?, ?)",
                    (target_id, key.key),
                )
            await self._db.conn.commit()
        target.id = target_id
        return target_id

    async def delete_target(self, target_id: int, user_id: int) -> bool:
        with storage_errors("delete_target", target_id=target_id):
            cursor = await self._db.conn.execute(
                "DELETE FROM monitoring_targets WHERE id = ? AND user_id = ?",
                (target_id, user_id),
            )
            await self._db.conn.commit()
        return cursor.rowcount > 0

    async def list_targets(self, user_id: int) -> list[MonitoringTarget]:
        with storage_errors("list_targets", user_id=user_id):
            cursor = await self._db.conn.execute(
                "SELECT * FROM monitoring_targets WHERE user_id = ? ORDER BY id",
                (user_id,),
            )
            rows = await cursor.fetchall()
            cursor = await self._db.conn.execute(
                """SELECT k.* FROM monitoring_keys k
                   JOIN monitoring_targets t ON t.id = k.target_id
                   WHERE t.user_id = ?
                   ORDER BY k.id""",
                (user_id,),
            )
            key_rows = await cursor.fetchall()

        keys_by_target: dict[int, list[MonitoringKey]] = {}
        for row in key_rows:
            key = self._row_to_key(row)
            keys_by_target.setdefault(key.target_id, []).append(key)
        return [self._row_to_target(row, keys_by_target.get(row["id"], [])) for row in rows]

    async def get_target(self, target_id: int) -> MonitoringTarget | None:
        with storage_errors("get_target", target_id=target_id):
            cursor = await self._db.conn.execute(
                "SELECT * FROM monitoring_targets WHERE id = ?", (target_id,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            cursor = await self._db.conn.execute(
                "SELECT * FROM monitoring_keys WHERE target_id = ? ORDER BY id", (target_id,)
            )
            key_rows = await cursor.fetchall()
        return self._row_to_target(row, [self._row_to_key(r) for r in key_rows])

    async def add_key(self, target_id: int, key: str) -> int:
        with storage_errors("add_key", target_id=target_id):
            cursor = await self._db.conn.execute(
                "INSERT INTO monitoring_keys (target_id, key) VALUES (?, ?)",
                (target_id, key),
            )
            await self._db.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def delete_key(self, key_id: int) -> bool:
        with storage_errors("delete_key", key_id=key_id):
            cursor = await self._db.conn.execute(
                "DELETE FROM monitoring_keys WHERE id = ?", (key_id,)
            )
            await self._db.conn.commit()
        return cursor.rowcount > 0

    async def get_key(self, key_id: int) -> MonitoringKey | None:
        with storage_errors("get_key", key_id=key_id):
            cursor = await self._db.conn.execute(
                "SELECT * FROM monitoring_keys WHERE id = ?", (key_id,)
            )
            row = await cursor.fetchone()
        return self._row_to_key(row) if row else None

    @staticmethod
    def _row_to_key(row) -> MonitoringKey:
        return MonitoringKey(
            id=row["id"],
            target_id=row["target_id"],
            key=row["key"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_target(row, keys: list[MonitoringKey]) -> MonitoringTarget:
        return MonitoringTarget(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            broker=row["broker"],
            topic=row["topic"],
            keys=keys,
            created_at=datetime.fromisoformat(row["created_at"]),
        )
