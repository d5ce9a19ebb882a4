"""Callback action tokens: ``name``, ``name:id`` or ``name:id:secondary``.

Telegram limits callback data to 64 bytes, hence the short machine actions.
"""

from __future__ import annotations

from dataclasses import dataclass

# static
HOME = "home"
WHO = "who_btn"
CANCEL_WIZARD = "cancel_wizard"
ADD_TARGET = "add_target"
TARGETS_LIST = "targets_list"
BACK_TO_LIST = "back_to_list"
SERVICES_LIST = "services_list"
ADD_SERVICE = "add_service"

# target / key: name:target_id[:key_id]
VIEW_TARGET = "view_target"
DEL_TARGET = "del_target"
ADD_KEY_START = "add_key_start"
VIEW_KEY = "view_key"
DEL_KEY = "del_key"
CHECK_MSG = "check_msg"
LIVE_MODE = "live_mode"
STOP_LIVE = "stop_live"

# service: name:svc_id
VIEW_SERVICE = "view_service"
SVC_MACHINES = "svc_machines"
DEL_SERVICE = "del_service"
ADD_CONN = "add_conn"

# machine: name:svc_id:machine_id
VIEW_MACHINE = "vm"
START_POLL = "sp"
STOP_POLL = "stp"
GET_PROGRAM = "gp"
DELETE_CONN = "dc"

STATIC_ACTIONS = frozenset(
    {HOME, WHO, CANCEL_WIZARD, ADD_TARGET, TARGETS_LIST, BACK_TO_LIST, SERVICES_LIST, ADD_SERVICE}
)
ID_ACTIONS = frozenset(
    {VIEW_TARGET, DEL_TARGET, ADD_KEY_START, VIEW_SERVICE, SVC_MACHINES, DEL_SERVICE, ADD_CONN}
)
KEY_ACTIONS = frozenset({VIEW_KEY, DEL_KEY, CHECK_MSG, LIVE_MODE, STOP_LIVE})
MACHINE_ACTIONS = frozenset({VIEW_MACHINE, START_POLL, STOP_POLL, GET_PROGRAM, DELETE_CONN})


@dataclass(frozen=True, slots=True)
class Action:
    name: str
    entity_id: int = 0
    secondary: str = ""

    @property
    def key_id(self) -> int:
        return int(self.secondary) if self.secondary else 0

    @property
    def machine_id(self) -> str:
        return self.secondary


def token(name: str, *parts: object) -> str:
    return ":".join([name, *(str(p) for p in parts)])


def parse_action(data: str) -> Action | None:
    """Parse callback data; None for unknown or malformed tokens."""
    data = (data or "").strip()
    if data in STATIC_ACTIONS:
        return Action(name=data)

    parts = data.split(":", 2)
    name = parts[0]
    if len(parts) < 2 or not _is_number(parts[1]):
        return None
    entity_id = int(parts[1])

    if name in ID_ACTIONS:
        return Action(name=name, entity_id=entity_id)
    if len(parts) < 3 or not parts[2]:
        return None
    if name in KEY_ACTIONS and _is_number(parts[2]):
        return Action(name=name, entity_id=entity_id, secondary=parts[2])
    if name in MACHINE_ACTIONS:
        return Action(name=name, entity_id=entity_id, secondary=parts[2])
    return None


def _is_number(text: str) -> bool:
    return text.isascii() and text.isdigit()
