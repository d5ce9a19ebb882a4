"""Per-wizard draft records.

Each wizard kind owns its own draft dataclass. The stored draft is tagged with
the kind that wrote it, so a wizard never reads fields left behind by another
one: loading a draft for a different kind yields a fresh, empty variant.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Union

from fanuc_bot.core.types import WizardKind

KIND_FIELD = "kind"


@dataclass
class TargetDraft:
    name: str = ""
    broker: str = ""
    topic: str = ""


@dataclass
class ServiceDraft:
    name: str = ""
    base_url: str = ""


@dataclass
class KeyDraft:
    target_id: int = 0


@dataclass
class ConnectionDraft:
    service_id: int = 0
    endpoint: str = ""
    timeout: int = 5000
    model: str = ""


@dataclass
class PollingDraft:
    service_id: int = 0
    machine_id: str = ""


Draft = Union[TargetDraft, ServiceDraft, KeyDraft, ConnectionDraft, PollingDraft]

DRAFT_TYPES: dict[WizardKind, type] = {
    WizardKind.TARGET: TargetDraft,
    WizardKind.SERVICE: ServiceDraft,
    WizardKind.NEW_KEY: KeyDraft,
    WizardKind.CONNECTION: ConnectionDraft,
    WizardKind.POLLING: PollingDraft,
}


def new_draft(kind: WizardKind, **context: Any) -> Draft:
    """Create an empty draft for ``kind`` seeded with context ids."""
    return DRAFT_TYPES[kind](**context)


def load_draft(kind: WizardKind, data: dict[str, Any] | None) -> Draft:
    """Rebuild the draft of ``kind`` from its stored form."""
    draft_type = DRAFT_TYPES[kind]
    if not data or data.get(KIND_FIELD) != kind.value:
        return draft_type()
    known = {f.name for f in fields(draft_type)}
    return draft_type(**{k: v for k, v in data.items() if k in known})


def dump_draft(kind: WizardKind, draft: Draft) -> dict[str, Any]:
    """Serialize a draft to the tagged dict stored alongside the user state."""
    if not isinstance(draft, DRAFT_TYPES[kind]):
        raise TypeError(f"{type(draft).__name__} is not a {kind} draft")
    return {KIND_FIELD: kind.value, **asdict(draft)}


def draft_field_names(kind: WizardKind) -> set[str]:
    return {f.name for f in fields(DRAFT_TYPES[kind])}
