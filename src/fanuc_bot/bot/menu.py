"""View builders for every screen of the bot. Text is HTML (Telegram parse mode)."""

from __future__ import annotations

import json
from datetime import datetime
from html import escape

from fanuc_bot.bot import actions as a
from fanuc_bot.core.types import DEFAULT_KEY_ID
from fanuc_bot.messenger.models import Button, Keyboard, View, rows
from fanuc_bot.services.fanuc import MachineInfo
from fanuc_bot.services.kafka import KafkaMessage
from fanuc_bot.services.monitoring import DEFAULT_KEY_LABEL, Subject
from fanuc_bot.storage.models import FanucService, MonitoringTarget, UserSession

CHECK_MAX_CHARS = 3800
CHECK_TRUNCATED = "\n... (truncated)"
LIVE_TRUNCATED = "..."

# Persistent reply keyboard; captions typed back by Telegram are routed like actions.
REPLY_KAFKA = "📋 Kafka Reader"
REPLY_SERVICES = "🌐 API Services"
REPLY_PROFILE = "👤 Profile"
REPLY_HOME = "🏠 Home"
REPLY_MENU: tuple[tuple[str, ...], ...] = ((REPLY_KAFKA, REPLY_SERVICES), (REPLY_PROFILE, REPLY_HOME))
REPLY_ROUTES = {
    REPLY_KAFKA: a.TARGETS_LIST,
    REPLY_SERVICES: a.SERVICES_LIST,
    REPLY_PROFILE: a.WHO,
    REPLY_HOME: a.HOME,
}

HOME_BUTTON = Button("🏠 Home", a.HOME)
CANCEL_BUTTON = Button("🚫 Cancel", a.CANCEL_WIZARD)


def pretty_json(raw: str) -> str:
    """Indent ``raw`` when it is JSON, otherwise return it unchanged."""
    try:
        return json.dumps(json.loads(raw), indent=2, ensure_ascii=False)
    except (ValueError, TypeError):
        return raw


def truncate(text: str, limit: int, marker: str) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def code_block(text: str) -> str:
    return f"<pre>{escape(text)}</pre>"


# --- general ---


def main_menu(display_name: str = "", reply_menu: bool = False) -> View:
    greeting = f"👋 Hello, <b>{escape(display_name)}</b>!\n\n" if display_name else ""
    return View(
        text=f"{greeting}🏭 <b>Fanuc fleet console</b>\n\nChoose a section:",
        keyboard=rows(
            Button("📋 Kafka Reader", a.TARGETS_LIST),
            Button("🌐 API Services", a.SERVICES_LIST),
            Button("👤 Profile", a.WHO),
        ),
        reply_menu=reply_menu,
    )


def profile(session: UserSession, target_count: int, service_count: int) -> View:
    lines = [
        "👤 <b>Profile</b>",
        "",
        f"ID: <code>{session.user_id}</code>",
        f"Name: {escape(session.display_name or '-')}",
    ]
    if session.username:
        lines.append(f"Username: @{escape(session.username)}")
    lines += [
        f"State: <code>{escape(session.state)}</code>",
        f"Kafka targets: {target_count}",
        f"API services: {service_count}",
    ]
    return View(text="\n".join(lines), keyboard=rows(HOME_BUTTON))


def prompt(text: str) -> View:
    """A wizard step prompt with a cancel button."""
    return View(text=text, keyboard=rows(CANCEL_BUTTON))


def notice(text: str, back: Button | None = None) -> View:
    return View(text=text, keyboard=rows(back or HOME_BUTTON))


def cancelled() -> View:
    return notice("🚫 Cancelled.")


# --- kafka targets ---


def targets_list(targets: list[MonitoringTarget]) -> View:
    buttons: list[Button] = [Button(f"🔩 {t.name}", a.token(a.VIEW_TARGET, t.id)) for t in targets]
    buttons += [Button("➕ Kafka Target", a.ADD_TARGET), HOME_BUTTON]
    text = "📋 <b>Kafka targets</b>"
    if not targets:
        text += "\n\nNothing saved yet."
    return View(text=text, keyboard=rows(*buttons))


def target_view(target: MonitoringTarget) -> View:
    text = (
        f"🔩 <b>{escape(target.name)}</b>\n\n"
        f"Broker: <code>{escape(target.broker)}</code>\n"
        f"Topic: <code>{escape(target.topic)}</code>\n\n"
        "Choose a key to read:"
    )
    buttons = [Button(f"🔑 {DEFAULT_KEY_LABEL}", a.token(a.VIEW_KEY, target.id, DEFAULT_KEY_ID))]
    buttons += [Button(f"🔑 {k.key}", a.token(a.VIEW_KEY, target.id, k.id)) for k in target.keys]
    keyboard = rows(
        *buttons,
        Button("➕ Add key", a.token(a.ADD_KEY_START, target.id)),
        Button("🗑 Delete target", a.token(a.DEL_TARGET, target.id)),
        Button("🔙 Kafka targets", a.BACK_TO_LIST),
    )
    return View(text=text, keyboard=keyboard)


def _key_back(subject: Subject) -> Button:
    return Button("🔙 Back", a.token(a.VIEW_KEY, subject.target.id, subject.key_id))


def key_view(subject: Subject) -> View:
    target = subject.target
    key_line = (
        "any key (latest message)" if subject.key_id == DEFAULT_KEY_ID else f"<code>{escape(subject.key)}</code>"
    )
    text = (
        f"🔑 <b>{escape(subject.title)}</b>\n\n"
        f"Topic: <code>{escape(target.topic)}</code>\n"
        f"Key: {key_line}"
    )
    buttons: list[Button | tuple[Button, ...]] = [
        (
            Button("📨 Last message", a.token(a.CHECK_MSG, target.id, subject.key_id)),
            Button("🔴 Live", a.token(a.LIVE_MODE, target.id, subject.key_id)),
        )
    ]
    if subject.key_id != DEFAULT_KEY_ID:
        buttons.append(Button("🗑 Delete key", a.token(a.DEL_KEY, target.id, subject.key_id)))
    buttons.append(Button("🔙 Target", a.token(a.VIEW_TARGET, target.id)))
    return View(text=text, keyboard=rows(*buttons))


def check_result(subject: Subject, message: KafkaMessage) -> View:
    body = truncate(pretty_json(message.value), CHECK_MAX_CHARS, CHECK_TRUNCATED)
    key = f"\nKey: <code>{escape(message.key)}</code>" if message.key else ""
    return View(
        text=f"📨 <b>{escape(subject.title)}</b>{key}\n\n{code_block(body)}",
        keyboard=rows(_key_back(subject)),
    )


def check_error(subject: Subject, error: Exception) -> View:
    return View(
        text=f"📨 <b>{escape(subject.title)}</b>\n\n❌ {escape(str(error))}",
        keyboard=rows(_key_back(subject)),
    )


def live_keyboard(target_id: int, key_id: int) -> Keyboard:
    return rows(Button("⏹ Stop", a.token(a.STOP_LIVE, target_id, key_id)))


def live_view(title: str, target_id: int, key_id: int, updated_at: datetime | None, body: str) -> View:
    """``body`` is already HTML."""
    stamp = updated_at.strftime("%H:%M:%S") if updated_at else "--:--:--"
    return View(
        text=f"🔴 <b>LIVE: {escape(title)}</b>\n🕒 {stamp}\n\n{body}",
        keyboard=live_keyboard(target_id, key_id),
    )


def live_connecting(title: str, target_id: int, key_id: int) -> View:
    return live_view(title, target_id, key_id, None, "⏳ Connecting...")


# --- fanuc services ---


def services_list(services: list[FanucService]) -> View:
    buttons = [Button(f"🌐 {s.name}", a.token(a.VIEW_SERVICE, s.id)) for s in services]
    buttons += [Button("➕ API Service", a.ADD_SERVICE), HOME_BUTTON]
    text = "🌐 <b>API services</b>"
    if not services:
        text += "\n\nNothing saved yet."
    return View(text=text, keyboard=rows(*buttons))


def service_view(service: FanucService) -> View:
    text = f"🌐 <b>{escape(service.name)}</b>\n\nURL: <code>{escape(service.base_url)}</code>"
    return View(
        text=text,
        keyboard=rows(
            Button("🔌 Machines", a.token(a.SVC_MACHINES, service.id)),
            Button("🗑 Delete service", a.token(a.DEL_SERVICE, service.id)),
            Button("🔙 API services", a.SERVICES_LIST),
        ),
    )


def machine_icon(machine: MachineInfo) -> str:
    if not machine.connected:
        return "🔴"
    return "🔄" if machine.polling else "🟢"


def machines_list(service: FanucService, machines: list[MachineInfo], error: str = "") -> View:
    text = f"🔌 <b>{escape(service.name)}: machines</b>"
    if error:
        text += f"\n\n❌ {escape(error)}"
    elif not machines:
        text += "\n\nNo connected machines."
    buttons = [
        Button(
            f"{machine_icon(m)} {m.endpoint} ({m.model or '?'})",
            a.token(a.VIEW_MACHINE, service.id, m.id),
        )
        for m in machines
    ]
    buttons += [
        Button("➕ Connect machine", a.token(a.ADD_CONN, service.id)),
        Button("🔙 Service", a.token(a.VIEW_SERVICE, service.id)),
    ]
    return View(text=text, keyboard=rows(*buttons))


def machine_view(svc_id: int, machine: MachineInfo) -> View:
    mode = "🔄 polling" if machine.polling else f"⏸️ {escape(machine.mode or 'idle')}"
    lines = [
        f"{machine_icon(machine)} <b>{escape(machine.endpoint)}</b>",
        "",
        f"ID: <code>{escape(machine.id)}</code>",
        f"Model: {escape(machine.model or '-')}",
        f"Series: {escape(machine.series or '-')}",
        f"Status: {escape(machine.status or '-')}",
        f"Mode: {mode}",
    ]
    if machine.polling and machine.interval:
        lines.append(f"Interval: {machine.interval} ms")
    if machine.timeout:
        lines.append(f"Timeout: {machine.timeout} ms")

    if machine.polling:
        poll = Button("⏹ Stop polling", a.token(a.STOP_POLL, svc_id, machine.id))
    else:
        poll = Button("▶ Start polling", a.token(a.START_POLL, svc_id, machine.id))
    keyboard = rows(
        poll,
        Button("📄 Download program", a.token(a.GET_PROGRAM, svc_id, machine.id)),
        Button("🗑 Delete connection", a.token(a.DELETE_CONN, svc_id, machine.id)),
        Button("🔙 Machines", a.token(a.SVC_MACHINES, svc_id)),
    )
    return View(text="\n".join(lines), keyboard=keyboard)


def machine_error(svc_id: int, error: Exception) -> View:
    return View(
        text=f"❌ <b>Error:</b>\n{escape(str(error))}",
        keyboard=rows(Button("🔙 Machines", a.token(a.SVC_MACHINES, svc_id))),
    )
