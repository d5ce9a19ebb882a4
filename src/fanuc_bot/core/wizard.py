"""Wizard engine: the per-user FSM behind every multi-step data-entry flow.

Each wizard kind declares its steps once in ``FLOWS``. A step names the state
the user sits in while the bot waits for that value, the draft field the value
is stored under and the parser that validates it. The last step of a flow does
not store its value: it is handed straight to the kind's finalizer, which
either persists an entity locally or calls the remote Fanuc service.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from html import escape
from typing import Any, Callable

from fanuc_bot.core.drafts import (
    ConnectionDraft,
    KeyDraft,
    PollingDraft,
    ServiceDraft,
    TargetDraft,
    draft_field_names,
    dump_draft,
    new_draft,
)
from fanuc_bot.core.errors import CollaboratorUnavailable, NotFoundError, StorageUnavailable, ValidationError
from fanuc_bot.core.types import WizardKind, WizardState
from fanuc_bot.log import get_logger
from fanuc_bot.services.control import ControlService
from fanuc_bot.services.fanuc import ConnectionRequest, normalize_base_url
from fanuc_bot.services.monitoring import MonitoringService
from fanuc_bot.storage.models import FanucService, MonitoringKey, MonitoringTarget
from fanuc_bot.storage.service_repo import ServiceRepository
from fanuc_bot.storage.target_repo import TargetRepository
from fanuc_bot.storage.user_repo import UserRepository

logger = get_logger(__name__)

SKIP_WORDS = frozenset({"0", "-", "no"})
UNKNOWN = "Unknown"
DEFAULT_CONN_TIMEOUT_MS = 5000
MIN_POLL_INTERVAL_MS = 100

Parser = Callable[[str], Any]


# --- step parsers ---


def required_text(raw: str) -> str:
    text = raw.strip()
    if not text:
        raise ValidationError("The value must not be empty.")
    return text


def optional_text(default: str) -> Parser:
    """Free text where a skip word (``0``, ``-``, ``no``) means ``default``."""

    def parse(raw: str) -> str:
        text = raw.strip()
        if not text or text.lower() in SKIP_WORDS:
            return default
        return text

    return parse


def integer(minimum: int, default: int | None = None, message: str = "") -> Parser:
    """Whole number ``>= minimum``; skip words map to ``default`` when one is given."""
    message = message or f"Enter a whole number of at least {minimum}."

    def parse(raw: str) -> int:
        text = raw.strip()
        if default is not None and text.lower() in SKIP_WORDS:
            return default
        try:
            value = int(text)
        except ValueError:
            raise ValidationError(message) from None
        if value < minimum:
            raise ValidationError(message)
        return value

    return parse


def host(raw: str) -> str:
    return normalize_base_url(required_text(raw))


# --- flow tables ---


@dataclass(frozen=True, slots=True)
class Step:
    state: WizardState
    field: str
    prompt: str
    parse: Parser = required_text


@dataclass(frozen=True, slots=True)
class WizardFlow:
    kind: WizardKind
    steps: tuple[Step, ...]
    remote: bool = False

    @property
    def first(self) -> Step:
        return self.steps[0]


FLOWS: dict[WizardKind, WizardFlow] = {
    WizardKind.TARGET: WizardFlow(
        kind=WizardKind.TARGET,
        steps=(
            Step(
                WizardState.WAITING_NAME,
                "name",
                "🖊 <b>Step 1/4: Name</b>\n\nEnter a readable name for this machine (e.g. 'Lathe 1'):",
            ),
            Step(
                WizardState.WAITING_BROKER,
                "broker",
                "🔌 <b>Step 2/4: Broker</b>\n\nEnter the broker address (IP:PORT):",
            ),
            Step(
                WizardState.WAITING_TOPIC,
                "topic",
                "📝 <b>Step 3/4: Topic</b>\n\nEnter the Kafka topic name:",
            ),
            Step(
                WizardState.WAITING_KEY,
                "key",
                "🔑 <b>Step 4/4: Key (optional)</b>\n\n"
                "Enter a Kafka key (e.g. the machine IP) or send '0', '-' or 'no' "
                "to read the latest message of any key:",
                optional_text(""),
            ),
        ),
    ),
    WizardKind.SERVICE: WizardFlow(
        kind=WizardKind.SERVICE,
        steps=(
            Step(
                WizardState.WAITING_SVC_NAME,
                "name",
                "🖊 <b>Step 1/3: Name</b>\n\nEnter a name for the API service:",
            ),
            Step(
                WizardState.WAITING_SVC_HOST,
                "base_url",
                "🔗 <b>Step 2/3: Host (IP:PORT)</b>\n\nEnter the service address (http:// is optional):",
                host,
            ),
            Step(
                WizardState.WAITING_SVC_KEY,
                "api_key",
                "🔐 <b>Step 3/3: API key</b>\n\nEnter the service access key:",
            ),
        ),
    ),
    WizardKind.NEW_KEY: WizardFlow(
        kind=WizardKind.NEW_KEY,
        steps=(
            Step(WizardState.WAITING_NEW_KEY, "key", "🔑 <b>New key</b>\n\nEnter the key (filter):"),
        ),
    ),
    WizardKind.CONNECTION: WizardFlow(
        kind=WizardKind.CONNECTION,
        remote=True,
        steps=(
            Step(
                WizardState.WAITING_CONN_ENDPOINT,
                "endpoint",
                "🔌 <b>Step 1/4: Endpoint</b>\n\nEnter the machine IP and port (e.g. 192.168.1.10:8193):",
            ),
            Step(
                WizardState.WAITING_CONN_TIMEOUT,
                "timeout",
                "⏱ <b>Step 2/4: Timeout (ms)</b>\n\nEnter the connection timeout (e.g. 5000).\n"
                f"Send '0' or '-' for the default ({DEFAULT_CONN_TIMEOUT_MS} ms).",
                integer(0, DEFAULT_CONN_TIMEOUT_MS, "Enter a valid number or '-' to skip."),
            ),
            Step(
                WizardState.WAITING_CONN_MODEL,
                "model",
                f"🤖 <b>Step 3/4: Model</b>\n\nEnter the model name.\nSend '0' or '-' for '{UNKNOWN}'.",
                optional_text(UNKNOWN),
            ),
            Step(
                WizardState.WAITING_CONN_SERIES,
                "series",
                "🔢 <b>Step 4/4: Series</b>\n\nEnter the controller series (0i, 30i, 31i).\n"
                f"Send '0' or '-' for '{UNKNOWN}'.",
                optional_text(UNKNOWN),
            ),
        ),
    ),
    WizardKind.POLLING: WizardFlow(
        kind=WizardKind.POLLING,
        remote=True,
        steps=(
            Step(
                WizardState.WAITING_POLL_INTERVAL,
                "interval",
                "⏱ <b>Polling</b>\n\nEnter the polling interval in milliseconds (e.g. 5000):",
                integer(
                    MIN_POLL_INTERVAL_MS,
                    message=f"Enter a valid number (at least {MIN_POLL_INTERVAL_MS} ms).",
                ),
            ),
        ),
    ),
}


def _index_states(flows: dict[WizardKind, WizardFlow]) -> dict[WizardState, tuple[WizardFlow, int]]:
    index: dict[WizardState, tuple[WizardFlow, int]] = {}
    for flow in flows.values():
        for position, step in enumerate(flow.steps):
            if step.state is WizardState.IDLE or step.state in index:
                raise RuntimeError(f"state {step.state} is claimed twice")
            index[step.state] = (flow, position)
        stored = {step.field for step in flow.steps[:-1]}
        missing = stored - draft_field_names(flow.kind)
        if missing:
            raise RuntimeError(f"{flow.kind} draft has no field(s) {sorted(missing)}")
    orphans = set(WizardState) - {WizardState.IDLE} - set(index)
    if orphans:
        raise RuntimeError(f"states without a flow: {sorted(orphans)}")
    return index


STATE_INDEX = _index_states(FLOWS)


def flow_for(state: WizardState) -> WizardKind | None:
    located = STATE_INDEX.get(state)
    return located[0].kind if located else None


# --- engine ---


class StepOutcome(StrEnum):
    PROMPT = "prompt"  # waiting for the next value
    INVALID = "invalid"  # value rejected, state unchanged
    COMPLETED = "completed"  # entity saved, back to idle
    FAILED = "failed"  # saving failed, state kept for a retry
    REMOTE_DONE = "remote_done"
    REMOTE_FAILED = "remote_failed"
    NOT_FOUND = "not_found"
    IDLE = "idle"  # no wizard running
    RESET = "reset"  # unreadable state, back to idle


@dataclass(frozen=True, slots=True)
class StepReply:
    outcome: StepOutcome
    text: str = ""
    kind: WizardKind | None = None
    entity_id: int | None = None  # target or service the wizard worked on
    machine_id: str = ""

    @property
    def waiting(self) -> bool:
        """True while the user is still inside the wizard."""
        return self.outcome in (StepOutcome.PROMPT, StepOutcome.INVALID, StepOutcome.FAILED)


class WizardEngine:
    """Drives wizards over the persisted per-user state.

    The stored state and draft are the only memory: every call re-reads them,
    so a restart in the middle of a wizard continues where the user left off.
    """

    def __init__(
        self,
        users: UserRepository,
        targets: TargetRepository,
        services: ServiceRepository,
        monitoring: MonitoringService,
        control: ControlService,
    ):
        self._users = users
        self._targets = targets
        self._services = services
        self._monitoring = monitoring
        self._control = control
        self._finalizers: dict[WizardKind, Callable[..., Any]] = {
            WizardKind.TARGET: self._finish_target,
            WizardKind.SERVICE: self._finish_service,
            WizardKind.NEW_KEY: self._finish_key,
            WizardKind.CONNECTION: self._finish_connection,
            WizardKind.POLLING: self._finish_polling,
        }

    async def start_wizard(
        self,
        kind: WizardKind,
        user_id: int,
        *,
        target_id: int | None = None,
        service_id: int | None = None,
        machine_id: str | None = None,
    ) -> StepReply:
        """Enter the first state of ``kind`` with a fresh draft.

        Raises NotFoundError (after resetting the user to idle) when the
        target or service the wizard is bound to is gone or not theirs.
        """
        context: dict[str, Any] = {}
        try:
            if kind is WizardKind.NEW_KEY:
                if target_id is None:
                    raise ValueError("new_key wizard needs a target_id")
                await self._monitoring.get_owned_target(user_id, target_id)
                context["target_id"] = target_id
            elif kind in (WizardKind.CONNECTION, WizardKind.POLLING):
                if service_id is None:
                    raise ValueError(f"{kind} wizard needs a service_id")
                await self._control.get_owned_service(user_id, service_id)
                context["service_id"] = service_id
                if kind is WizardKind.POLLING:
                    if not machine_id:
                        raise ValueError("polling wizard needs a machine_id")
                    context["machine_id"] = machine_id
        except NotFoundError:
            await self.cancel_wizard(user_id)
            raise

        flow = FLOWS[kind]
        draft = dump_draft(kind, new_draft(kind, **context))
        await self._users.set_state(user_id, flow.first.state, draft=draft)
        logger.info("wizard_started", user_id=user_id, kind=kind.value, **context)
        return StepReply(StepOutcome.PROMPT, flow.first.prompt, kind=kind)

    async def submit_step(self, user_id: int, raw_text: str) -> StepReply:
        session = await self._users.get_user_state(user_id)
        if session is None or session.state == WizardState.IDLE:
            return StepReply(StepOutcome.IDLE)

        try:
            located = STATE_INDEX.get(WizardState(session.state))
        except ValueError:
            located = None
        if located is None:
            logger.warning("wizard_state_unknown", user_id=user_id, state=session.state)
            await self.cancel_wizard(user_id)
            return StepReply(StepOutcome.RESET, "⚠️ The dialog was reset. Please start again from the menu.")

        flow, position = located
        step = flow.steps[position]
        try:
            value = step.parse(raw_text)
        except ValidationError as e:
            logger.debug("wizard_input_rejected", user_id=user_id, state=step.state.value)
            return StepReply(StepOutcome.INVALID, f"⚠️ {e}", kind=flow.kind)

        if position + 1 < len(flow.steps):
            following = flow.steps[position + 1]
            await self._users.update_draft_fields(user_id, {step.field: value}, state=following.state)
            return StepReply(StepOutcome.PROMPT, following.prompt, kind=flow.kind)

        draft = session.draft_for(flow.kind)
        finalize = self._finalizers[flow.kind]
        if flow.remote:
            return await self._finish_remote(user_id, flow, finalize, draft, value)
        return await self._finish_local(user_id, flow, finalize, draft, value)

    async def cancel_wizard(self, user_id: int) -> None:
        await self._users.set_state(user_id, WizardState.IDLE, draft={})
        logger.debug("wizard_cancelled", user_id=user_id)

    async def _finish_local(
        self, user_id: int, flow: WizardFlow, finalize: Callable[..., Any], draft: Any, value: Any
    ) -> StepReply:
        try:
            reply = await finalize(user_id, draft, value)
        except NotFoundError as e:
            await self.cancel_wizard(user_id)
            return StepReply(StepOutcome.NOT_FOUND, f"❌ {escape(str(e))}", kind=flow.kind)
        except StorageUnavailable as e:
            # state is kept so the user can resend the last value or cancel
            logger.error("wizard_persist_failed", user_id=user_id, kind=flow.kind.value, error=str(e))
            return StepReply(
                StepOutcome.FAILED,
                f"❌ Could not save: {escape(str(e))}\nSend the value again or cancel.",
                kind=flow.kind,
            )
        await self._users.set_state(user_id, WizardState.IDLE, draft={})
        logger.info("wizard_completed", user_id=user_id, kind=flow.kind.value, entity_id=reply.entity_id)
        return reply

    async def _finish_remote(
        self, user_id: int, flow: WizardFlow, finalize: Callable[..., Any], draft: Any, value: Any
    ) -> StepReply:
        try:
            return await finalize(user_id, draft, value)
        except NotFoundError as e:
            return StepReply(StepOutcome.NOT_FOUND, f"❌ {escape(str(e))}", kind=flow.kind)
        except CollaboratorUnavailable as e:
            logger.warning("wizard_remote_failed", user_id=user_id, kind=flow.kind.value, error=str(e))
            return StepReply(
                StepOutcome.REMOTE_FAILED,
                f"❌ Request failed: {escape(str(e))}",
                kind=flow.kind,
                entity_id=getattr(draft, "service_id", None),
                machine_id=getattr(draft, "machine_id", ""),
            )
        finally:
            # remote finalizers always end the wizard
            await self._users.set_state(user_id, WizardState.IDLE, draft={})

    # --- finalizers ---

    async def _finish_target(self, user_id: int, draft: TargetDraft, key: str) -> StepReply:
        target = MonitoringTarget(
            user_id=user_id,
            name=draft.name,
            broker=draft.broker,
            topic=draft.topic,
            keys=[MonitoringKey(target_id=0, key=key)] if key else [],
        )
        target_id = await self._targets.add_target(target)
        return StepReply(
            StepOutcome.COMPLETED,
            f"✅ Target <b>{escape(draft.name)}</b> saved!",
            kind=WizardKind.TARGET,
            entity_id=target_id,
        )

    async def _finish_service(self, user_id: int, draft: ServiceDraft, api_key: str) -> StepReply:
        service = FanucService(user_id=user_id, name=draft.name, base_url=draft.base_url, api_key=api_key)
        svc_id = await self._services.add_service(service)
        return StepReply(
            StepOutcome.COMPLETED,
            f"✅ Service <b>{escape(draft.name)}</b> saved!",
            kind=WizardKind.SERVICE,
            entity_id=svc_id,
        )

    async def _finish_key(self, user_id: int, draft: KeyDraft, key: str) -> StepReply:
        await self._monitoring.get_owned_target(user_id, draft.target_id)
        await self._targets.add_key(draft.target_id, key)
        return StepReply(
            StepOutcome.COMPLETED,
            f"✅ Key <code>{escape(key)}</code> added!",
            kind=WizardKind.NEW_KEY,
            entity_id=draft.target_id,
        )

    async def _finish_connection(self, user_id: int, draft: ConnectionDraft, series: str) -> StepReply:
        request = ConnectionRequest(
            endpoint=draft.endpoint,
            timeout=draft.timeout,
            model=draft.model or UNKNOWN,
            series=series,
        )
        machine = await self._control.create_machine(user_id, draft.service_id, request)
        return StepReply(
            StepOutcome.REMOTE_DONE,
            "✅ Machine connected!",
            kind=WizardKind.CONNECTION,
            entity_id=draft.service_id,
            machine_id=machine.id,
        )

    async def _finish_polling(self, user_id: int, draft: PollingDraft, interval_ms: int) -> StepReply:
        await self._control.start_polling(user_id, draft.service_id, draft.machine_id, interval_ms)
        return StepReply(
            StepOutcome.REMOTE_DONE,
            f"✅ Polling started ({interval_ms} ms).",
            kind=WizardKind.POLLING,
            entity_id=draft.service_id,
            machine_id=draft.machine_id,
        )
