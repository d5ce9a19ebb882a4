"""Transport-neutral view models rendered by a Screen."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Button:
    label: str
    action: str  # callback token, see fanuc_bot.bot.actions


Keyboard = tuple[tuple[Button, ...], ...]


@dataclass(frozen=True, slots=True)
class View:
    """A message body (HTML) plus its inline keyboard."""

    text: str
    keyboard: Keyboard = ()
    reply_menu: bool = False  # also attach the persistent reply keyboard


@dataclass(frozen=True, slots=True)
class Sender:
    user_id: int
    display_name: str = ""
    username: str = ""


@dataclass(frozen=True, slots=True)
class Document:
    filename: str
    data: bytes
    caption: str = ""
    mime_type: str = "text/plain"


def rows(*buttons: Button | tuple[Button, ...] | list[Button]) -> Keyboard:
    """Build a keyboard; a bare Button is a one-button row."""
    result: list[tuple[Button, ...]] = []
    for item in buttons:
        if isinstance(item, Button):
            result.append((item,))
        else:
            result.append(tuple(item))
    return tuple(result)
