"""In-memory host, runner and scheduler for state machine tests."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import pytest

from qchat.config.schema import QChatConfig
from qchat.core.dispatch import Dispatcher
from qchat.core.models import CapturedOutput, SurfaceLayout
from qchat.core.process_runner import SpawnFailure
from qchat.core.session import QChatSession


class FakeHost:
    """Records every host call in `events` (shared with FakeRunner)."""

    def __init__(self, events: list) -> None:
        self.events = events
        self.surfaces: dict[str, SurfaceLayout] = {}
        self.created: list[str] = []
        self.destroyed: list[str] = []
        self.lines: dict[str, list[str]] = {}
        self.bindings: dict[str, dict[str, Callable[[], None]]] = {}
        self.shown: list[str] = []
        self.focused: list[str] = []
        self.input_mode: list[str] = []
        self.notifications: list[tuple[str, int]] = []
        self.commands: dict[str, Callable[[], None]] = {}
        self.written: dict[str, bytes] = {}
        self.sinks: dict[str, Callable[[bytes], None]] = {}
        self._ids = itertools.count(1)

    def create_surface(self, layout: SurfaceLayout) -> str:
        surface_id = f"s{next(self._ids)}"
        self.surfaces[surface_id] = layout
        self.created.append(surface_id)
        self.events.append(("create", surface_id))
        return surface_id

    def destroy_surface(self, surface_id: str) -> None:
        self.surfaces.pop(surface_id, None)
        self.bindings.pop(surface_id, None)
        self.destroyed.append(surface_id)
        self.events.append(("destroy", surface_id))

    def is_surface_valid(self, surface_id: str) -> bool:
        return surface_id in self.surfaces

    def show_surface(self, surface_id: str) -> None:
        self.shown.append(surface_id)

    def focus_surface(self, surface_id: str) -> None:
        self.focused.append(surface_id)

    def enter_input_mode(self, surface_id: str) -> None:
        self.input_mode.append(surface_id)

    def set_lines(self, surface_id: str, lines: Sequence[str]) -> None:
        self.lines[surface_id] = list(lines)

    def write(self, surface_id: str, data: bytes) -> None:
        self.written[surface_id] = self.written.get(surface_id, b"") + data

    def attach_terminal(self, surface_id: str, sink: Callable[[bytes], None]) -> None:
        self.sinks[surface_id] = sink

    def bind_key(self, surface_id: str, key: str, callback: Callable[[], None]) -> None:
        self.bindings.setdefault(surface_id, {})[key] = callback

    def notify(self, message: str, level: int) -> None:
        self.notifications.append((message, level))

    def register_command(self, name: str, callback: Callable[[], None]) -> None:
        self.commands[name] = callback

    def press(self, surface_id: str, key: str) -> None:
        self.bindings[surface_id][key]()

    @property
    def live(self) -> list[str]:
        return list(self.surfaces)


@dataclass(eq=False)
class FakeProcess:
    command: str
    surface_id: str
    on_exit: Callable[["FakeProcess", int], None]
    pid: int
    inputs: list[str] = field(default_factory=list)
    terminated: bool = False
    exit_code: Optional[int] = None

    def exit(self, code: int = 0) -> None:
        self.exit_code = code
        self.on_exit(self, code)


class FakeRunner:
    """ProcessRunner stand-in whose probes resolve only when the test says so."""

    def __init__(self, events: list) -> None:
        self.events = events
        self.probes: list[tuple[str, asyncio.Future]] = []
        self.started: list[FakeProcess] = []
        self.interactive_error: Optional[Exception] = None
        self.interactive_gate: Optional[asyncio.Event] = None
        self._pids = itertools.count(100)

    async def run_captured(self, command, on_line=None) -> CapturedOutput:
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self.probes.append((command, future))
        self.events.append(("probe", command))
        return await future

    def resolve_probe(self, exit_code: int, stdout: str = "", stderr: str = "") -> None:
        self.probes[-1][1].set_result(CapturedOutput(exit_code=exit_code, stdout=stdout, stderr=stderr))

    def fail_probe(self, error: Exception) -> None:
        self.probes[-1][1].set_exception(error)

    async def run_interactive(self, command, surface_id, on_exit, columns=None, rows=24) -> FakeProcess:
        if self.interactive_gate is not None:
            await self.interactive_gate.wait()
        await asyncio.sleep(0)
        if self.interactive_error is not None:
            raise self.interactive_error
        process = FakeProcess(command=command, surface_id=surface_id, on_exit=on_exit, pid=next(self._pids))
        self.started.append(process)
        self.events.append(("start", command))
        return process

    def send_input(self, handle: FakeProcess, text: str) -> bool:
        if handle.exit_code is not None:
            return False
        handle.inputs.append(text)
        self.events.append(("input", text))
        return True

    def terminate(self, handle: FakeProcess, grace: float = 0.0) -> None:
        handle.terminated = True
        self.events.append(("terminate", handle.pid))


class _Timer:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    def __init__(self) -> None:
        self.scheduled: list[tuple[int, Callable[[], None], _Timer]] = []

    def schedule_after(self, delay_ms: int, callback: Callable[[], None]) -> _Timer:
        timer = _Timer()
        self.scheduled.append((delay_ms, callback, timer))
        return timer

    def fire_all(self) -> None:
        due, self.scheduled = self.scheduled, []
        for _, callback, timer in due:
            if not timer.cancelled:
                callback()


@dataclass
class Harness:
    session: QChatSession
    host: FakeHost
    runner: FakeRunner
    scheduler: FakeScheduler
    dispatcher: Dispatcher
    events: list

    async def settle(self) -> None:
        await self.dispatcher.drain()


@pytest.fixture
def qchat_config() -> QChatConfig:
    return QChatConfig()


@pytest.fixture
def harness(qchat_config: QChatConfig) -> Harness:
    events: list = []
    host = FakeHost(events)
    runner = FakeRunner(events)
    scheduler = FakeScheduler()
    dispatcher = Dispatcher()
    session = QChatSession(
        host=host,
        runner=runner,  # type: ignore[arg-type]
        scheduler=scheduler,
        dispatcher=dispatcher,
        config=qchat_config,
    )
    return Harness(session, host, runner, scheduler, dispatcher, events)
