"""User repository: identity plus the persisted wizard state and draft."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from fanuc_bot.core.types import WizardState
from fanuc_bot.log import get_logger
from fanuc_bot.storage.database import NOW_SQL, Database, storage_errors
from fanuc_bot.storage.models import UserSession

logger = get_logger(__name__)


class UserRepository:
    """State store for chat users."""

    def __init__(self, db: Database):
        self._db = db

    async def upsert_user(self, user_id: int, display_name: str, username: str = "") -> None:
        """Create the user or refresh its display name. State and draft are untouched."""
        with storage_errors("upsert_user", user_id=user_id):
            await self._db.conn.execute(
                f"""INSERT INTO users (id, display_name, username)
                   VALUES (?, ?, ?)
                   ON CONFLICT(id)
                   DO UPDATE SET display_name = excluded.display_name,
                                 username = excluded.username,
                                 updated_at = {NOW_SQL}""",
                (user_id, display_name, username),
            )
            await self._db.conn.commit()

    async def get_user_state(self, user_id: int) -> UserSession | None:
        with storage_errors("get_user_state", user_id=user_id):
            cursor = await self._db.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_session(row)

    async def set_state(
        self, user_id: int, state: WizardState, draft: dict[str, Any] | None = None
    ) -> None:
        """Write the FSM state, replacing the draft in the same statement when given."""
        with storage_errors("set_state", user_id=user_id, state=state.value):
            if draft is None:
                await self._db.conn.execute(
                    f"UPDATE users SET state = ?, updated_at = {NOW_SQL} WHERE id = ?",
                    (state.value, user_id),
                )
            else:
                await self._db.conn.execute(
                    f"""UPDATE users SET state = ?, draft_json = ?, updated_at = {NOW_SQL}
                       WHERE id = ?""",
                    (state.value, json.dumps(draft), user_id),
                )
            await self._db.conn.commit()

    async def update_draft_fields(
        self, user_id: int, fields: dict[str, Any], state: WizardState | None = None
    ) -> None:
        """Merge ``fields`` into the stored draft, optionally advancing the state atomically."""
        with storage_errors("update_draft_fields", user_id=user_id):
            await self._db.conn.execute(
                f"""UPDATE users
                   SET draft_json = json_patch(draft_json, ?),
                       state = COALESCE(?, state),
                       updated_at = {NOW_SQL}
                   WHERE id = ?""",
                (json.dumps(fields), state.value if state else None, user_id),
            )
            await self._db.conn.commit()

    @staticmethod
    def _row_to_session(row) -> UserSession:
        try:
            draft = json.loads(row["draft_json"] or "{}")
        except json.JSONDecodeError:
            logger.warning("draft_json_corrupt", user_id=row["id"])
            draft = {}
        return UserSession(
            user_id=row["id"],
            display_name=row["display_name"],
            username=row["username"],
            state=row["state"],
            draft=draft if isinstance(draft, dict) else {},
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
