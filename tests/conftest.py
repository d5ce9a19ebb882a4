from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable

import pytest

from fanuc_bot.bot.dispatcher import Dispatcher
from fanuc_bot.config import LiveConfig
from fanuc_bot.core.errors import CollaboratorUnavailable, NotFoundError, TargetGone
from fanuc_bot.core.session import LiveSessionRegistry
from fanuc_bot.core.wizard import WizardEngine
from fanuc_bot.messenger.base import Screen
from fanuc_bot.messenger.models import Document, View
from fanuc_bot.services.control import ControlService
from fanuc_bot.services.fanuc import ConnectionRequest, MachineInfo
from fanuc_bot.services.kafka import KafkaMessage
from fanuc_bot.services.live import LiveSessionManager
from fanuc_bot.services.monitoring import MonitoringService
from fanuc_bot.storage.database import Database
from fanuc_bot.storage.models import FanucService, MonitoringKey, MonitoringTarget
from fanuc_bot.storage.service_repo import ServiceRepository
from fanuc_bot.storage.target_repo import TargetRepository
from fanuc_bot.storage.user_repo import UserRepository

USER_ID = 1001
OTHER_USER_ID = 2002
FIXED_NOW = datetime(2024, 5, 1, 12, 34, 56)


class FakeScreen(Screen):
    """Records every view; ``gone`` makes all renders raise TargetGone."""

    def __init__(self, user_id: int = USER_ID, message_id: int | None = None):
        super().__init__(user_id)
        self.message_id = message_id
        self.sent: list[View] = []
        self.edits: list[View] = []
        self.notices: list[str] = []
        self.documents: list[Document] = []
        self.rendered: list[View] = []
        self.gone = False

    @property
    def can_edit(self) -> bool:
        return self.message_id is not None

    async def show_prompt(self, view: View) -> None:
        if self.gone:
            raise TargetGone("chat not found")
        self.sent.append(view)
        self.rendered.append(view)
        self.message_id = len(self.sent)

    async def edit_current(self, view: View) -> None:
        if self.gone or self.message_id is None:
            raise TargetGone("message to edit not found")
        self.edits.append(view)
        self.rendered.append(view)

    async def notify(self, text: str) -> None:
        self.notices.append(text)

    async def send_document(self, document: Document) -> None:
        self.documents.append(document)

    @property
    def last(self) -> View:
        return self.rendered[-1]


class FakeKafka:
    """Serves scripted results; the last one repeats once the script runs out."""

    def __init__(self, *results: KafkaMessage | Exception, delay: float = 0.0):
        self.results: list[KafkaMessage | Exception] = list(results) or [KafkaMessage(key="", value="{}")]
        self.delay = delay
        self.calls: list[tuple[str, str, str]] = []

    def script(self, *results: KafkaMessage | Exception) -> None:
        self.results = list(results)

    async def get_last_message(self, broker: str, topic: str, key_filter: str = "") -> KafkaMessage:
        self.calls.append((broker, topic, key_filter))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeFanuc:
    """In-memory stand-in for FanucApiClient."""

    def __init__(self) -> None:
        self.machines: dict[str, MachineInfo] = {}
        self.programs: dict[str, str] = {}
        self.calls: list[tuple[str, Any]] = []
        self.fail: Exception | None = None

    def _check(self, name: str, payload: Any) -> None:
        self.calls.append((name, payload))
        if self.fail is not None:
            raise self.fail

    async def list_machines(self, base_url: str, api_key: str) -> list[MachineInfo]:
        self._check("list_machines", base_url)
        return list(self.machines.values())

    async def get_machine(self, base_url: str, api_key: str, machine_id: str) -> MachineInfo:
        self._check("get_machine", machine_id)
        if machine_id not in self.machines:
            raise NotFoundError("machine", machine_id)
        return self.machines[machine_id]

    async def create_machine(self, base_url: str, api_key: str, request: ConnectionRequest) -> MachineInfo:
        self._check("create_machine", request)
        machine = MachineInfo(
            id=f"m{len(self.machines) + 1}",
            endpoint=request.endpoint,
            model=request.model,
            series=request.series,
            timeout=request.timeout,
            status="connected",
        )
        self.machines[machine.id] = machine
        return machine

    async def delete_machine(self, base_url: str, api_key: str, machine_id: str) -> None:
        self._check("delete_machine", machine_id)
        self.machines.pop(machine_id, None)

    async def start_polling(self, base_url: str, api_key: str, machine_id: str, interval_ms: int) -> None:
        self._check("start_polling", (machine_id, interval_ms))

    async def stop_polling(self, base_url: str, api_key: str, machine_id: str) -> None:
        self._check("stop_polling", machine_id)

    async def get_program_text(self, base_url: str, api_key: str, machine_id: str) -> str:
        self._check("get_program", machine_id)
        return self.programs.get(machine_id, "")


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def users(db):
    return UserRepository(db)


@pytest.fixture
def targets(db):
    return TargetRepository(db)


@pytest.fixture
def services(db):
    return ServiceRepository(db)


@pytest.fixture
async def user(users):
    await users.upsert_user(USER_ID, "Alice", "alice")
    await users.upsert_user(OTHER_USER_ID, "Bob", "bob")
    return USER_ID


@pytest.fixture
async def target(user, targets) -> MonitoringTarget:
    t = MonitoringTarget(
        user_id=USER_ID,
        name="CNC1",
        broker="10.0.0.5:9092",
        topic="telemetry",
        keys=[MonitoringKey(target_id=0, key="192.168.0.10")],
    )
    await targets.add_target(t)
    return await targets.get_target(t.id)


@pytest.fixture
async def service(user, services) -> FanucService:
    svc = FanucService(user_id=USER_ID, name="Shop floor", base_url="http://fanuc:8080", api_key="secret")
    await services.add_service(svc)
    return svc


@pytest.fixture
def kafka():
    return FakeKafka(KafkaMessage(key="192.168.0.10", value='{"spindle": 1200}'))


@pytest.fixture
def fanuc():
    return FakeFanuc()


@pytest.fixture
def monitoring(targets, kafka):
    return MonitoringService(targets, kafka)


@pytest.fixture
def control(services, fanuc):
    return ControlService(services, fanuc)


@pytest.fixture
def registry():
    return LiveSessionRegistry()


@pytest.fixture
def live_config():
    return LiveConfig(refresh_interval=0.01, fetch_timeout=0.5, max_render_chars=3500)


@pytest.fixture
async def live(live_config, monitoring, registry):
    manager = LiveSessionManager(live_config, monitoring, registry, clock=lambda: FIXED_NOW)
    yield manager
    await manager.stop()


@pytest.fixture
def wizard(users, targets, services, monitoring, control):
    return WizardEngine(users, targets, services, monitoring, control)


@pytest.fixture
def dispatcher(users, targets, services, wizard, monitoring, control, live):
    return Dispatcher(
        users=users,
        targets=targets,
        services=services,
        wizard=wizard,
        monitoring=monitoring,
        control=control,
        live=live,
    )


@pytest.fixture
def screen():
    return FakeScreen()


@pytest.fixture
def unavailable():
    return CollaboratorUnavailable("kafka_fetch", "broker down", broker="10.0.0.5:9092")
