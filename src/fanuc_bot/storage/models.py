"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from fanuc_bot.core.drafts import Draft, load_draft
from fanuc_bot.core.types import WizardKind, WizardState


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UserSession:
    user_id: int
    display_name: str = ""
    username: str = ""
    state: str = WizardState.IDLE.value  # raw column value, validated by the wizard engine
    draft: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def draft_for(self, kind: WizardKind) -> Draft:
        return load_draft(kind, self.draft)


@dataclass
class MonitoringKey:
    target_id: int
    key: str
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)


@dataclass
class MonitoringTarget:
    user_id: int
    name: str
    broker: str
    topic: str
    keys: list[MonitoringKey] = field(default_factory=list)
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)

    def find_key(self, key_id: int) -> MonitoringKey | None:
        for key in self.keys:
            if key.id == key_id:
                return key
        return None


@dataclass
class FanucService:
    user_id: int
    name: str
    base_url: str
    api_key: str
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)
