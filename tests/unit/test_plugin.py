"""Unit tests for plugin setup."""

import asyncio

import pytest

from qchat.config.schema import QChatConfig
from qchat.constants import CLOSE_COMMAND, OPEN_COMMAND
from qchat.core.dispatch import Dispatcher
from qchat.core.models import SessionPhase
from qchat.core.process_runner import ProcessRunner
from qchat.plugin import setup


@pytest.mark.asyncio
async def test_setup_registers_commands_and_merges_config(harness):
    host, runner = harness.host, harness.runner
    dispatcher = Dispatcher()

    session = setup(
        host,
        {"display_width": 120, "display_position": "left"},
        base_config=QChatConfig(),
        dispatcher=dispatcher,
        runner=runner,
    )

    assert session.config.display_width == 120
    assert set(host.commands) == {OPEN_COMMAND, CLOSE_COMMAND}

    host.commands[OPEN_COMMAND]()
    assert session.phase is SessionPhase.CHECKING_AUTH
    assert all(layout.width == 120 for layout in host.surfaces.values())
    assert all(layout.position.value == "left" for layout in host.surfaces.values())

    host.commands[CLOSE_COMMAND]()
    assert session.phase is SessionPhase.IDLE

    await asyncio.sleep(0)
    runner.resolve_probe(0)
    await dispatcher.drain()
    assert session.phase is SessionPhase.IDLE


def test_default_runner_shares_the_session_dispatcher(harness):
    dispatcher = Dispatcher()

    session = setup(harness.host, base_config=QChatConfig(), dispatcher=dispatcher)

    assert isinstance(session._runner, ProcessRunner)
    assert session._runner.tasks is dispatcher
