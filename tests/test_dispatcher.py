from __future__ import annotations

from conftest import OTHER_USER_ID, USER_ID, FakeScreen, wait_until
from fanuc_bot.bot import actions as a
from fanuc_bot.bot.menu import REPLY_KAFKA
from fanuc_bot.core.errors import CollaboratorUnavailable
from fanuc_bot.core.types import DEFAULT_KEY_ID, WizardState
from fanuc_bot.messenger.models import Sender
from fanuc_bot.services.fanuc import MachineInfo
from fanuc_bot.services.kafka import KafkaMessage

ALICE = Sender(user_id=USER_ID, display_name="Alice", username="alice")


def _actions(screen: FakeScreen) -> list[str]:
    return [b.action for row in screen.last.keyboard for b in row]


async def test_start_registers_user_and_shows_menu(dispatcher, users, screen):
    await dispatcher.on_start(ALICE, screen)

    session = await users.get_user_state(USER_ID)
    assert session.display_name == "Alice"
    assert screen.last.reply_menu
    assert "Alice" in screen.last.text
    assert a.TARGETS_LIST in _actions(screen)


async def test_target_wizard_through_buttons_and_text(dispatcher, users, targets):
    screen = FakeScreen(message_id=1)
    await dispatcher.on_action(ALICE, a.ADD_TARGET, screen)
    assert "Step 1/4" in screen.last.text
    assert _actions(screen) == [a.CANCEL_WIZARD]

    for text in ("CNC1", "10.0.0.5:9092", "telemetry", "no"):
        await dispatcher.on_text(ALICE, text, screen)

    (target,) = await targets.list_targets(USER_ID)
    assert "CNC1" in screen.last.text
    assert a.token(a.VIEW_TARGET, target.id) in _actions(screen)
    assert (await users.get_user_state(USER_ID)).state == WizardState.IDLE


async def test_invalid_step_is_reprompted(dispatcher, service, users):
    screen = FakeScreen(message_id=1)
    await dispatcher.on_action(ALICE, a.token(a.START_POLL, service.id, "m1"), screen)

    await dispatcher.on_text(ALICE, "abc", screen)

    assert "⚠️" in screen.last.text
    assert _actions(screen) == [a.CANCEL_WIZARD]
    assert (await users.get_user_state(USER_ID)).state == WizardState.WAITING_POLL_INTERVAL


async def test_text_while_idle_shows_home(dispatcher, screen):
    await dispatcher.on_text(ALICE, "hello", screen)

    assert screen.last.reply_menu


async def test_reply_caption_navigates_and_resets_wizard(dispatcher, target, users, screen):
    await dispatcher.on_action(ALICE, a.ADD_TARGET, screen)

    await dispatcher.on_text(ALICE, REPLY_KAFKA, screen)

    assert "CNC1" in [b.label for row in screen.last.keyboard for b in row][0]
    assert (await users.get_user_state(USER_ID)).state == WizardState.IDLE


async def test_cancel_command(dispatcher, users, screen):
    await dispatcher.on_action(ALICE, a.ADD_SERVICE, screen)

    await dispatcher.on_command(ALICE, "/cancel", screen)

    assert (await users.get_user_state(USER_ID)).state == WizardState.IDLE
    assert "Cancelled" in screen.last.text


async def test_malformed_action_is_ignored(dispatcher, screen):
    await dispatcher.on_action(ALICE, "view_target:abc", screen)
    await dispatcher.on_action(ALICE, "launch_rockets", screen)

    assert screen.rendered == []


async def test_foreign_target_is_not_found(dispatcher, target):
    bob = Sender(user_id=OTHER_USER_ID, display_name="Bob")
    screen = FakeScreen(user_id=OTHER_USER_ID, message_id=1)

    await dispatcher.on_action(bob, a.token(a.VIEW_TARGET, target.id), screen)

    assert "not found" in screen.last.text
    assert "CNC1" not in screen.last.text


async def test_target_view_lists_default_and_stored_keys(dispatcher, target, screen):
    await dispatcher.on_action(ALICE, a.token(a.VIEW_TARGET, target.id), screen)

    assert a.token(a.VIEW_KEY, target.id, DEFAULT_KEY_ID) in _actions(screen)
    assert a.token(a.VIEW_KEY, target.id, target.keys[0].id) in _actions(screen)


async def test_check_message_pretty_prints(dispatcher, target, screen):
    await dispatcher.on_action(ALICE, a.token(a.CHECK_MSG, target.id, DEFAULT_KEY_ID), screen)

    assert "{\n  &quot;spindle&quot;: 1200\n}" in screen.last.text


async def test_check_message_shows_fetch_error(dispatcher, target, screen, kafka, unavailable):
    kafka.script(unavailable)

    await dispatcher.on_action(ALICE, a.token(a.CHECK_MSG, target.id, DEFAULT_KEY_ID), screen)

    assert "broker down" in screen.last.text
    assert a.token(a.VIEW_KEY, target.id, DEFAULT_KEY_ID) in _actions(screen)


async def test_check_message_truncates_long_payloads(dispatcher, target, screen, kafka):
    kafka.script(KafkaMessage(key="", value="y" * 5000))

    await dispatcher.on_action(ALICE, a.token(a.CHECK_MSG, target.id, DEFAULT_KEY_ID), screen)

    assert "y" * 3800 + "\n... (truncated)" in screen.last.text
    assert "y" * 3801 not in screen.last.text


async def test_navigation_stops_live(dispatcher, live, target):
    screen = FakeScreen(message_id=1)
    await dispatcher.on_action(ALICE, a.token(a.LIVE_MODE, target.id, DEFAULT_KEY_ID), screen)
    assert live.is_active(USER_ID)

    await dispatcher.on_action(ALICE, a.token(a.VIEW_TARGET, target.id), screen)

    assert not live.is_active(USER_ID)


async def test_stop_live_returns_to_key_view(dispatcher, live, target):
    screen = FakeScreen(message_id=1)
    await dispatcher.on_action(ALICE, a.token(a.LIVE_MODE, target.id, DEFAULT_KEY_ID), screen)
    await wait_until(lambda: len(screen.edits) >= 2)

    await dispatcher.on_action(ALICE, a.token(a.STOP_LIVE, target.id, DEFAULT_KEY_ID), screen)

    assert not live.is_active(USER_ID)
    assert "⏹ Live stopped" in screen.notices
    assert a.token(a.LIVE_MODE, target.id, DEFAULT_KEY_ID) in _actions(screen)


async def test_delete_key(dispatcher, target, targets, screen):
    key = target.keys[0]

    await dispatcher.on_action(ALICE, a.token(a.DEL_KEY, target.id, key.id), screen)

    assert await targets.get_key(key.id) is None
    assert "✅ Key deleted" in screen.notices


async def test_default_key_cannot_be_deleted(dispatcher, target, targets, screen):
    await dispatcher.on_action(ALICE, a.token(a.DEL_KEY, target.id, DEFAULT_KEY_ID), screen)

    assert "not found" in screen.last.text
    assert len((await targets.get_target(target.id)).keys) == 1


async def test_delete_target(dispatcher, target, targets, screen):
    await dispatcher.on_action(ALICE, a.token(a.DEL_TARGET, target.id), screen)

    assert await targets.list_targets(USER_ID) == []
    assert "Nothing saved yet" in screen.last.text


async def test_profile_counts(dispatcher, target, service, screen):
    await dispatcher.on_command(ALICE, "/profile", screen)

    assert "Kafka targets: 1" in screen.last.text
    assert "API services: 1" in screen.last.text


async def test_machines_list_shows_api_error_inline(dispatcher, service, fanuc, screen):
    fanuc.fail = CollaboratorUnavailable("list_machines", "connection refused")

    await dispatcher.on_action(ALICE, a.token(a.SVC_MACHINES, service.id), screen)

    assert "connection refused" in screen.last.text
    assert a.token(a.ADD_CONN, service.id) in _actions(screen)


async def test_machine_view_and_polling_toggle(dispatcher, service, fanuc, screen):
    fanuc.machines["m1"] = MachineInfo(id="m1", endpoint="10.1.1.1:8193", status="connected", mode="polling", interval=500)

    await dispatcher.on_action(ALICE, a.token(a.VIEW_MACHINE, service.id, "m1"), screen)

    assert "🔄" in screen.last.text
    assert "Interval: 500 ms" in screen.last.text
    assert a.token(a.STOP_POLL, service.id, "m1") in _actions(screen)

    await dispatcher.on_action(ALICE, a.token(a.STOP_POLL, service.id, "m1"), screen)
    assert ("stop_polling", "m1") in fanuc.calls
    assert "✅ Polling stopped" in screen.notices


async def test_program_is_sent_as_document(dispatcher, service, fanuc, screen):
    fanuc.programs["m1"] = "O0001\nG0 X0\nM30\n"

    await dispatcher.on_action(ALICE, a.token(a.GET_PROGRAM, service.id, "m1"), screen)

    (doc,) = screen.documents
    assert doc.filename == "GCODE.NC"
    assert doc.data == b"O0001\nG0 X0\nM30\n"


async def test_delete_connection(dispatcher, service, fanuc, screen):
    fanuc.machines["m1"] = MachineInfo(id="m1", endpoint="10.1.1.1:8193", status="connected")

    await dispatcher.on_action(ALICE, a.token(a.DELETE_CONN, service.id, "m1"), screen)

    assert "m1" not in fanuc.machines
    assert "✅ Connection deleted" in screen.notices


async def test_remote_failure_shows_machine_error(dispatcher, service, fanuc, screen):
    fanuc.fail = CollaboratorUnavailable("stop_polling", "HTTP 503: busy")

    await dispatcher.on_action(ALICE, a.token(a.STOP_POLL, service.id, "m1"), screen)

    assert "HTTP 503: busy" in screen.last.text
    assert _actions(screen) == [a.token(a.SVC_MACHINES, service.id)]


async def test_connection_wizard_links_to_machines(dispatcher, service, fanuc):
    screen = FakeScreen(message_id=1)
    await dispatcher.on_action(ALICE, a.token(a.ADD_CONN, service.id), screen)

    for text in ("192.168.1.10:8193", "-", "-", "-"):
        await dispatcher.on_text(ALICE, text, screen)

    assert "Machine connected" in screen.last.text
    assert a.token(a.SVC_MACHINES, service.id) in _actions(screen)
