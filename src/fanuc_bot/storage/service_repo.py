"""Saved Fanuc service endpoints."""

from __future__ import annotations

from datetime import datetime

from fanuc_bot.storage.database import Database, storage_errors
from fanuc_bot.storage.models import FanucService


class ServiceRepository:
    """CRUD over fanuc_services."""

    def __init__(self, db: Database):
        self._db = db

    async def add_service(self, service: FanucService) -> int:
        with storage_errors("add_service", user_id=service.user_id):
            cursor = await self._db.conn.execute(
                """INSERT INTO fanuc_services (user_id, name, base_url, api_key)
                   VALUES (?, ?, ?, ?)""",
                (service.user_id, service.name, service.base_url, service.api_key),
            )
            await self._db.conn.commit()
        service.id = cursor.lastrowid
        return cursor.lastrowid  # type: ignore[return-value]

    async def delete_service(self, svc_id: int, user_id: int) -> bool:
        with storage_errors("delete_service", service_id=svc_id):
            cursor = await self._db.conn.execute(
                "DELETE FROM fanuc_services WHERE id = ? AND user_id = ?",
                (svc_id, user_id),
            )
            await self._db.conn.commit()
        return cursor.rowcount > 0

    async def list_services(self, user_id: int) -> list[FanucService]:
        with storage_errors("list_services", user_id=user_id):
            cursor = await self._db.conn.execute(
                "SELECT * FROM fanuc_services WHERE user_id = ? ORDER BY id", (user_id,)
            )
            rows = await cursor.fetchall()
        return [self._row_to_service(row) for row in rows]

    async def get_service(self, svc_id: int) -> FanucService | None:
        with storage_errors("get_service", service_id=svc_id):
            cursor = await self._db.conn.execute(
                "SELECT * FROM fanuc_services WHERE id = ?", (svc_id,)
            )
            row = await cursor.fetchone()
        return self._row_to_service(row) if row else None

    @staticmethod
    def _row_to_service(row) -> FanucService:
        return FanucService(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            base_url=row["base_url"],
            api_key=row["api_key"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
