"""Dispatcher: routes commands, button presses and free text to use cases and views."""

from __future__ import annotations

from html import escape

from fanuc_bot.bot import actions as a
from fanuc_bot.bot import menu
from fanuc_bot.bot.actions import Action, parse_action
from fanuc_bot.core.errors import CollaboratorUnavailable, NotFoundError
from fanuc_bot.core.types import DEFAULT_KEY_ID, WizardKind, WizardState
from fanuc_bot.core.wizard import StepOutcome, StepReply, WizardEngine
from fanuc_bot.log import get_logger
from fanuc_bot.messenger.base import Screen
from fanuc_bot.messenger.models import Button, Document, Sender
from fanuc_bot.services.control import ControlService
from fanuc_bot.services.live import LiveSessionManager
from fanuc_bot.services.monitoring import MonitoringService
from fanuc_bot.storage.service_repo import ServiceRepository
from fanuc_bot.storage.target_repo import TargetRepository
from fanuc_bot.storage.user_repo import UserRepository

logger = get_logger(__name__)

PROGRAM_FILENAME = "GCODE.NC"

COMMANDS = ("start", "kafka", "services", "profile", "cancel")


class Dispatcher:
    """Entry points called by a messenger adapter for every inbound update.

    Every update upserts the sender first. Showing any list or entity view
    leaves the current context: the user's live session is stopped and a
    running wizard is reset to idle.
    """

    def __init__(
        self,
        users: UserRepository,
        targets: TargetRepository,
        services: ServiceRepository,
        wizard: WizardEngine,
        monitoring: MonitoringService,
        control: ControlService,
        live: LiveSessionManager,
    ):
        self._users = users
        self._targets = targets
        self._services = services
        self._wizard = wizard
        self._monitoring = monitoring
        self._control = control
        self._live = live

    # --- entry points ---

    async def on_start(self, sender: Sender, screen: Screen) -> None:
        await self._touch(sender)
        await self._leave(sender.user_id)
        await screen.show_prompt(menu.main_menu(sender.display_name, reply_menu=True))

    async def on_command(self, sender: Sender, command: str, screen: Screen) -> None:
        command = command.lower().lstrip("/")
        match command:
            case "start":
                await self.on_start(sender, screen)
            case "kafka":
                await self._handle(sender, Action(a.TARGETS_LIST), screen)
            case "services":
                await self._handle(sender, Action(a.SERVICES_LIST), screen)
            case "profile":
                await self._handle(sender, Action(a.WHO), screen)
            case "cancel":
                await self._handle(sender, Action(a.CANCEL_WIZARD), screen)
            case _:
                logger.debug("command_ignored", user_id=sender.user_id, command=command)

    async def on_action(self, sender: Sender, data: str, screen: Screen) -> None:
        action = parse_action(data)
        if action is None:
            logger.debug("action_ignored", user_id=sender.user_id, data=data)
            return
        await self._handle(sender, action, screen)

    async def on_text(self, sender: Sender, text: str, screen: Screen) -> None:
        route = menu.REPLY_ROUTES.get(text.strip())
        if route is not None:
            await self._handle(sender, Action(route), screen)
            return

        await self._touch(sender)
        try:
            reply = await self._wizard.submit_step(sender.user_id, text)
        except CollaboratorUnavailable as e:
            logger.error("wizard_step_failed", user_id=sender.user_id, error=str(e))
            await screen.show_prompt(menu.notice(f"❌ {escape(str(e))}"))
            return
        await self._show_step_reply(reply, screen)

    # --- routing ---

    async def _handle(self, sender: Sender, action: Action, screen: Screen) -> None:
        await self._touch(sender)
        try:
            await self._route(sender.user_id, action, screen)
        except NotFoundError as e:
            logger.info("action_target_missing", user_id=sender.user_id, action=action.name, error=str(e))
            await screen.notify(f"❌ {e}")
            await screen.refresh(menu.notice(f"❌ {escape(str(e))}"))
        except CollaboratorUnavailable as e:
            logger.warning("action_failed", user_id=sender.user_id, action=action.name, error=str(e))
            await screen.refresh(menu.notice(f"❌ {escape(str(e))}"))

    async def _route(self, user_id: int, action: Action, screen: Screen) -> None:
        match action.name:
            case a.HOME:
                await self._leave(user_id)
                await screen.refresh(menu.main_menu())
            case a.WHO:
                await self._leave(user_id)
                await self._show_profile(user_id, screen)
            case a.CANCEL_WIZARD:
                self._live.stop_live(user_id)
                await self._wizard.cancel_wizard(user_id)
                await screen.refresh(menu.cancelled())

            # kafka targets
            case a.TARGETS_LIST | a.BACK_TO_LIST:
                await self._leave(user_id)
                await self._show_targets(user_id, screen)
            case a.ADD_TARGET:
                await self._start_wizard(WizardKind.TARGET, user_id, screen)
            case a.VIEW_TARGET:
                await self._leave(user_id)
                target = await self._monitoring.get_owned_target(user_id, action.entity_id)
                await screen.refresh(menu.target_view(target))
            case a.DEL_TARGET:
                await self._leave(user_id)
                deleted = await self._targets.delete_target(action.entity_id, user_id)
                await screen.notify("✅ Target deleted" if deleted else "❌ Target not found")
                await self._show_targets(user_id, screen)
            case a.ADD_KEY_START:
                await self._start_wizard(WizardKind.NEW_KEY, user_id, screen, target_id=action.entity_id)
            case a.VIEW_KEY:
                await self._leave(user_id)
                subject = await self._monitoring.describe(user_id, action.entity_id, action.key_id)
                await screen.refresh(menu.key_view(subject))
            case a.DEL_KEY:
                await self._leave(user_id)
                await self._delete_key(user_id, action.entity_id, action.key_id, screen)
            case a.CHECK_MSG:
                await self._leave(user_id)
                await self._check_message(user_id, action.entity_id, action.key_id, screen)
            case a.LIVE_MODE:
                await self._reset_wizard(user_id)
                await self._live.start_live(user_id, action.entity_id, action.key_id, screen)
            case a.STOP_LIVE:
                if self._live.stop_live(user_id):
                    await screen.notify("⏹ Live stopped")
                subject = await self._monitoring.describe(user_id, action.entity_id, action.key_id)
                await screen.refresh(menu.key_view(subject))

            # fanuc services
            case a.SERVICES_LIST:
                await self._leave(user_id)
                await self._show_services(user_id, screen)
            case a.ADD_SERVICE:
                await self._start_wizard(WizardKind.SERVICE, user_id, screen)
            case a.VIEW_SERVICE:
                await self._leave(user_id)
                service = await self._control.get_owned_service(user_id, action.entity_id)
                await screen.refresh(menu.service_view(service))
            case a.DEL_SERVICE:
                await self._leave(user_id)
                deleted = await self._services.delete_service(action.entity_id, user_id)
                await screen.notify("✅ Deleted!" if deleted else "❌ Service not found")
                await self._show_services(user_id, screen)
            case a.SVC_MACHINES:
                await self._leave(user_id)
                await self._show_machines(user_id, action.entity_id, screen)
            case a.ADD_CONN:
                await self._start_wizard(WizardKind.CONNECTION, user_id, screen, service_id=action.entity_id)

            # machines
            case a.VIEW_MACHINE:
                await self._leave(user_id)
                await self._show_machine(user_id, action.entity_id, action.machine_id, screen)
            case a.START_POLL:
                await self._start_wizard(
                    WizardKind.POLLING,
                    user_id,
                    screen,
                    service_id=action.entity_id,
                    machine_id=action.machine_id,
                )
            case a.STOP_POLL:
                await self._leave(user_id)
                await self._stop_polling(user_id, action.entity_id, action.machine_id, screen)
            case a.GET_PROGRAM:
                await self._leave(user_id)
                await self._send_program(user_id, action.entity_id, action.machine_id, screen)
            case a.DELETE_CONN:
                await self._leave(user_id)
                await self._delete_connection(user_id, action.entity_id, action.machine_id, screen)

    # --- helpers ---

    async def _touch(self, sender: Sender) -> None:
        await self._users.upsert_user(sender.user_id, sender.display_name, sender.username)

    async def _leave(self, user_id: int) -> None:
        self._live.stop_live(user_id)
        await self._reset_wizard(user_id)

    async def _reset_wizard(self, user_id: int) -> None:
        session = await self._users.get_user_state(user_id)
        if session is not None and session.state != WizardState.IDLE:
            await self._wizard.cancel_wizard(user_id)

    async def _start_wizard(self, kind: WizardKind, user_id: int, screen: Screen, **context) -> None:
        self._live.stop_live(user_id)
        reply = await self._wizard.start_wizard(kind, user_id, **context)
        await screen.refresh(menu.prompt(reply.text))

    async def _show_step_reply(self, reply: StepReply, screen: Screen) -> None:
        if reply.outcome is StepOutcome.IDLE:
            await screen.show_prompt(menu.main_menu(reply_menu=True))
        elif reply.waiting:
            await screen.show_prompt(menu.prompt(reply.text))
        else:
            await screen.show_prompt(menu.notice(reply.text, back=_next_button(reply)))

    async def _show_profile(self, user_id: int, screen: Screen) -> None:
        session = await self._users.get_user_state(user_id)
        if session is None:
            raise NotFoundError("user", user_id)
        targets = await self._targets.list_targets(user_id)
        services = await self._services.list_services(user_id)
        await screen.refresh(menu.profile(session, len(targets), len(services)))

    async def _show_targets(self, user_id: int, screen: Screen) -> None:
        targets = await self._targets.list_targets(user_id)
        await screen.refresh(menu.targets_list(targets))

    async def _show_services(self, user_id: int, screen: Screen) -> None:
        services = await self._services.list_services(user_id)
        await screen.refresh(menu.services_list(services))

    async def _delete_key(self, user_id: int, target_id: int, key_id: int, screen: Screen) -> None:
        target = await self._monitoring.get_owned_target(user_id, target_id)
        if key_id == DEFAULT_KEY_ID or target.find_key(key_id) is None:
            raise NotFoundError("key", key_id)
        await self._targets.delete_key(key_id)
        await screen.notify("✅ Key deleted")
        target = await self._monitoring.get_owned_target(user_id, target_id)
        await screen.refresh(menu.target_view(target))

    async def _check_message(self, user_id: int, target_id: int, key_id: int, screen: Screen) -> None:
        subject = await self._monitoring.describe(user_id, target_id, key_id)
        try:
            message = await self._monitoring.fetch_last_message(user_id, target_id, key_id)
        except (NotFoundError, CollaboratorUnavailable) as e:
            await screen.refresh(menu.check_error(subject, e))
            return
        await screen.refresh(menu.check_result(subject, message))

    async def _show_machines(self, user_id: int, svc_id: int, screen: Screen) -> None:
        service = await self._control.get_owned_service(user_id, svc_id)
        try:
            machines = await self._control.list_machines(user_id, svc_id)
        except CollaboratorUnavailable as e:
            await screen.refresh(menu.machines_list(service, [], error=str(e)))
            return
        await screen.refresh(menu.machines_list(service, machines))

    async def _show_machine(self, user_id: int, svc_id: int, machine_id: str, screen: Screen) -> None:
        try:
            machine = await self._control.get_machine(user_id, svc_id, machine_id)
        except CollaboratorUnavailable as e:
            await screen.notify("❌ Could not load the machine")
            await screen.refresh(menu.machine_error(svc_id, e))
            return
        await screen.refresh(menu.machine_view(svc_id, machine))

    async def _stop_polling(self, user_id: int, svc_id: int, machine_id: str, screen: Screen) -> None:
        try:
            await self._control.stop_polling(user_id, svc_id, machine_id)
        except CollaboratorUnavailable as e:
            await screen.notify("❌ Could not stop polling")
            await screen.refresh(menu.machine_error(svc_id, e))
            return
        await screen.notify("✅ Polling stopped")
        await self._show_machine(user_id, svc_id, machine_id, screen)

    async def _send_program(self, user_id: int, svc_id: int, machine_id: str, screen: Screen) -> None:
        try:
            program = await self._control.get_program(user_id, svc_id, machine_id)
        except CollaboratorUnavailable as e:
            await screen.notify("❌ Could not fetch the program")
            await screen.refresh(menu.machine_error(svc_id, e))
            return
        if not program:
            await screen.notify("The program is empty")
            return
        await screen.send_document(
            Document(
                filename=PROGRAM_FILENAME,
                data=program.encode("utf-8"),
                caption=f"📄 Program of machine {machine_id}",
            )
        )
        await screen.notify("✅ Program sent")

    async def _delete_connection(self, user_id: int, svc_id: int, machine_id: str, screen: Screen) -> None:
        try:
            await self._control.delete_machine(user_id, svc_id, machine_id)
        except CollaboratorUnavailable as e:
            await screen.notify("❌ Could not delete the connection")
            await screen.refresh(menu.machine_error(svc_id, e))
            return
        await screen.notify("✅ Connection deleted")
        await self._show_machines(user_id, svc_id, screen)


def _next_button(reply: StepReply) -> Button | None:
    """Where to go after a wizard finished."""
    if reply.entity_id is None:
        return None
    match reply.kind:
        case WizardKind.TARGET | WizardKind.NEW_KEY:
            return Button("🔩 Open target", a.token(a.VIEW_TARGET, reply.entity_id))
        case WizardKind.SERVICE:
            return Button("🌐 Open service", a.token(a.VIEW_SERVICE, reply.entity_id))
        case WizardKind.CONNECTION:
            return Button("🔌 Machines", a.token(a.SVC_MACHINES, reply.entity_id))
        case WizardKind.POLLING if reply.machine_id:
            return Button("🔙 Machine", a.token(a.VIEW_MACHINE, reply.entity_id, reply.machine_id))
    return None
