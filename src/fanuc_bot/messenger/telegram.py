"""Telegram messenger adapter using python-telegram-bot v21+."""

from __future__ import annotations

import time
from typing import Any, Awaitable

from telegram import (
    Bot,
    BotCommand,
    CallbackQuery,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    Update,
)
from telegram.constants import ParseMode
from telegram.error import BadRequest, Forbidden, TelegramError
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes
from telegram.ext import MessageHandler as TGMessageHandler
from telegram.ext import filters

from fanuc_bot.bot.dispatcher import COMMANDS, Dispatcher
from fanuc_bot.bot.menu import REPLY_MENU
from fanuc_bot.config import TelegramConfig
from fanuc_bot.core.errors import TargetGone
from fanuc_bot.log import get_logger
from fanuc_bot.messenger.base import Screen
from fanuc_bot.messenger.models import Document, Keyboard, Sender, View

logger = get_logger(__name__)

# BadRequest texts meaning the message (or chat) we render into is gone
GONE_MARKERS = (
    "message to edit not found",
    "message can't be edited",
    "chat not found",
    "message_id_invalid",
)
NOT_MODIFIED_MARKER = "message is not modified"
MAX_TOAST_CHARS = 200

BOT_COMMANDS = [
    BotCommand("start", "Main menu"),
    BotCommand("kafka", "Kafka targets"),
    BotCommand("services", "API services"),
    BotCommand("profile", "Profile"),
    BotCommand("cancel", "Cancel the current dialog"),
]


def inline_markup(keyboard: Keyboard) -> InlineKeyboardMarkup | None:
    if not keyboard:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(b.label, callback_data=b.action) for b in row] for row in keyboard]
    )


def reply_markup() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        [[KeyboardButton(caption) for caption in row] for row in REPLY_MENU],
        resize_keyboard=True,
    )


class TelegramScreen(Screen):
    """Renders into one chat; the current message is the one last sent or pressed."""

    def __init__(
        self,
        bot: Bot,
        chat_id: int,
        message_id: int | None = None,
        query: CallbackQuery | None = None,
    ):
        super().__init__(chat_id)
        self._bot = bot
        self._chat_id = chat_id
        self._message_id = message_id
        self._query = query
        self._answered = False

    @property
    def can_edit(self) -> bool:
        return self._message_id is not None

    async def show_prompt(self, view: View) -> None:
        try:
            if view.reply_menu:
                await self._bot.send_message(
                    chat_id=self._chat_id, text="⌨️ Menu", reply_markup=reply_markup()
                )
            sent = await self._bot.send_message(
                chat_id=self._chat_id,
                text=view.text,
                parse_mode=ParseMode.HTML,
                reply_markup=inline_markup(view.keyboard),
            )
        except Forbidden as e:
            raise TargetGone(str(e)) from e
        except BadRequest as e:
            if _is_gone(e):
                raise TargetGone(str(e)) from e
            raise
        self._message_id = sent.message_id

    async def edit_current(self, view: View) -> None:
        if self._message_id is None:
            raise TargetGone("no message to edit")
        try:
            await self._bot.edit_message_text(
                text=view.text,
                chat_id=self._chat_id,
                message_id=self._message_id,
                parse_mode=ParseMode.HTML,
                reply_markup=inline_markup(view.keyboard),
            )
        except Forbidden as e:
            raise TargetGone(str(e)) from e
        except BadRequest as e:
            if NOT_MODIFIED_MARKER in str(e).lower():
                return
            if _is_gone(e):
                raise TargetGone(str(e)) from e
            raise

    async def notify(self, text: str) -> None:
        if self._query is None or self._answered:
            return
        self._answered = True
        try:
            await self._query.answer(text=text[:MAX_TOAST_CHARS] or None)
        except TelegramError as e:
            logger.debug("telegram_answer_failed", chat_id=self._chat_id, error=str(e))

    async def send_document(self, document: Document) -> None:
        try:
            await self._bot.send_document(
                chat_id=self._chat_id,
                document=document.data,
                filename=document.filename,
                caption=document.caption or None,
            )
        except Forbidden as e:
            raise TargetGone(str(e)) from e

    async def finish(self) -> None:
        """Answer a pending callback query so the client stops its spinner."""
        await self.notify("")


def _is_gone(error: BadRequest) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in GONE_MARKERS)


def _sender(update: Update) -> Sender:
    user = update.effective_user
    chat = update.effective_chat
    return Sender(
        user_id=chat.id if chat else (user.id if user else 0),
        display_name=user.full_name if user else "",
        username=(user.username or "") if user else "",
    )


class TelegramAdapter:
    """Long-polling Telegram front end feeding the Dispatcher."""

    def __init__(self, config: TelegramConfig, dispatcher: Dispatcher):
        self._config = config
        self._dispatcher = dispatcher
        self._app: Application | None = None  # type: ignore[type-arg]

    async def start(self) -> None:
        if not self._config.token:
            raise ValueError("Telegram bot token not configured")

        self._app = Application.builder().token(self._config.token).build()
        self._app.add_handler(CommandHandler(list(COMMANDS), self._on_command))
        self._app.add_handler(CallbackQueryHandler(self._on_callback))
        self._app.add_handler(TGMessageHandler(filters.TEXT & ~filters.COMMAND, self._on_text))
        self._app.add_error_handler(self._on_error)

        await self._app.initialize()
        await self._app.bot.set_my_commands(BOT_COMMANDS)
        await self._app.start()
        await self._app.updater.start_polling(  # type: ignore[union-attr]
            drop_pending_updates=self._config.drop_pending_updates
        )
        logger.info("telegram_adapter_started", bot=self._app.bot.username)

    async def stop(self) -> None:
        if self._app:
            await self._app.updater.stop()  # type: ignore[union-attr]
            await self._app.stop()
            await self._app.shutdown()
            logger.info("telegram_adapter_stopped")

    async def _on_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        msg = update.effective_message
        if not msg or not msg.text or not update.effective_chat:
            return
        command = msg.text.split()[0].split("@")[0]
        screen = TelegramScreen(context.bot, update.effective_chat.id)
        await self._run(
            "CMD", command, update, self._dispatcher.on_command(_sender(update), command, screen)
        )

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if not query or not update.effective_chat:
            return
        message_id = query.message.message_id if query.message else None
        screen = TelegramScreen(context.bot, update.effective_chat.id, message_id, query)
        try:
            await self._run(
                "BTN", query.data or "", update, self._dispatcher.on_action(_sender(update), query.data or "", screen)
            )
        finally:
            await screen.finish()

    async def _on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        msg = update.effective_message
        if not msg or not msg.text or not update.effective_chat:
            return
        screen = TelegramScreen(context.bot, update.effective_chat.id)
        await self._run("TEXT", msg.text, update, self._dispatcher.on_text(_sender(update), msg.text, screen))

    async def _run(self, kind: str, content: str, update: Update, handler: Awaitable[None]) -> None:
        """Await one dispatcher call, logging its outcome and duration."""
        chat_id = update.effective_chat.id if update.effective_chat else None
        started = time.monotonic()
        try:
            await handler
        except TargetGone as e:
            logger.info("telegram_chat_gone", chat_id=chat_id, error=str(e))
        except Exception as e:
            logger.error("telegram_handler_error", kind=kind, chat_id=chat_id, error=str(e), exc_info=True)
        finally:
            logger.info(
                "update_handled",
                kind=kind,
                content=content[:100],
                chat_id=chat_id,
                duration_ms=round((time.monotonic() - started) * 1000, 1),
            )

    async def _on_error(self, update: Any, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("telegram_error", error=str(context.error))
