"""Abstract renderer bound to one chat (and, for callbacks, one message)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from fanuc_bot.core.errors import TargetGone
from fanuc_bot.messenger.models import Document, View


class Screen(ABC):
    """Where views for a single inbound update are rendered.

    To support another messenger, subclass this and implement the abstract
    methods; the dispatcher and live sessions only talk to this interface.
    """

    def __init__(self, user_id: int):
        self.user_id = user_id

    @property
    @abstractmethod
    def can_edit(self) -> bool:
        """True when there is a current message that edit_current can target."""
        ...

    @abstractmethod
    async def show_prompt(self, view: View) -> None:
        """Send ``view`` as a new message."""
        ...

    @abstractmethod
    async def edit_current(self, view: View) -> None:
        """Replace the current message with ``view``.

        Raises TargetGone when the message or chat no longer exists.
        """
        ...

    async def notify(self, text: str) -> None:
        """Short, transient notice (a callback toast on Telegram)."""

    @abstractmethod
    async def send_document(self, document: Document) -> None:
        ...

    async def refresh(self, view: View) -> None:
        """Edit the current message when there is one, otherwise send a new one.

        Views carrying the reply menu are always sent, since edits cannot
        attach a reply keyboard.
        """
        if self.can_edit and not view.reply_menu:
            try:
                await self.edit_current(view)
                return
            except TargetGone:
                pass
        await self.show_prompt(view)
