"""Process layer for QChat: background captures and pty-attached interactive runs.

ProcessRunner holds no session state. It spawns, pumps output, and reports
exits; the session decides what an exit means.
"""

from __future__ import annotations

import asyncio
import fcntl
import os
import pty
import signal
import struct
import termios
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

import structlog

from qchat.constants import OUTPUT_DRAIN_TIMEOUT_S, PTY_READ_CHUNK
from qchat.core.dispatch import Dispatcher
from qchat.core.models import CapturedOutput
from qchat.core.protocols import SurfaceHost
from qchat.utils import to_argv

logger = structlog.get_logger(__name__)

Command = Union[str, Sequence[str]]
LineCallback = Callable[[str, str], None]


class SpawnFailure(Exception):
    """The process could not be started at all (missing binary, OS refusal)."""

    def __init__(self, command: Sequence[str], reason: str) -> None:
        self.command = list(command)
        self.reason = reason
        super().__init__(f"Failed to start {' '.join(self.command) or '<empty command>'}: {reason}")


@dataclass(eq=False)
class ProcessHandle:
    """A running interactive process attached to a surface.

    Valid for `send_input` until its exit notification has fired.
    """

    command: list[str]
    surface_id: str
    pid: int
    _process: asyncio.subprocess.Process = field(repr=False)
    _master_fd: Optional[int] = field(default=None, repr=False)
    _output_closed: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    exit_code: Optional[int] = None

    @property
    def exited(self) -> bool:
        return self.exit_code is not None

    @property
    def alive(self) -> bool:
        return self.exit_code is None


ExitCallback = Callable[[ProcessHandle, int], None]


def _set_window_size(fd: int, rows: int, cols: int) -> None:
    with suppress(OSError):
        fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _parse_command(command: Command) -> list[str]:
    try:
        argv = to_argv(command)
    except ValueError as e:
        # shlex rejects unbalanced quotes and trailing escapes
        shown = [command] if isinstance(command, str) else list(command)
        raise SpawnFailure(shown, f"invalid command line ({e})") from e
    if not argv:
        raise SpawnFailure(argv, "empty command")
    return argv


def _acquire_controlling_tty() -> None:
    """Runs in the child after setsid(): make the pty slave (fd 0) its terminal."""
    with suppress(OSError):
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class ProcessRunner:
    """Spawns external processes in captured or interactive-terminal mode."""

    def __init__(self, host: SurfaceHost, tasks: Optional[Dispatcher] = None) -> None:
        self._host = host
        self._tasks = tasks or Dispatcher()

    @property
    def tasks(self) -> Dispatcher:
        """Dispatcher that owns exit watchers and termination tasks."""
        return self._tasks

    async def run_captured(self, command: Command, on_line: Optional[LineCallback] = None) -> CapturedOutput:
        """Run `command` in the background and collect its output until exit.

        A non-zero exit code is a normal result, not an error.

        Args:
            command: Shell-like string or argv list
            on_line: Optional callback receiving ("stdout"|"stderr", line) as lines arrive

        Returns:
            Exit code plus the full stdout/stderr text

        Raises:
            SpawnFailure: If the process could not be started
        """
        argv = _parse_command(command)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            logger.error("Failed to spawn %s: %s", argv, e)
            raise SpawnFailure(argv, e.strerror or str(e)) from e

        async def _collect(stream: Optional[asyncio.StreamReader], name: str) -> str:
            if stream is None:
                return ""
            data = bytearray()
            partial = b""
            while True:
                chunk = await stream.read(PTY_READ_CHUNK)
                if not chunk:
                    break
                data += chunk
                if on_line:
                    *lines, partial = (partial + chunk).split(b"\n")
                    for raw in lines:
                        on_line(name, raw.decode("utf-8", errors="replace"))
            if on_line and partial:
                on_line(name, partial.decode("utf-8", errors="replace"))
            return data.decode("utf-8", errors="replace")

        try:
            stdout, stderr = await asyncio.gather(
                _collect(process.stdout, "stdout"),
                _collect(process.stderr, "stderr"),
            )
        except BaseException:
            # Never leave the child unreaped, including on cancellation
            with suppress(ProcessLookupError, PermissionError):
                os.killpg(process.pid, signal.SIGKILL)
            await asyncio.shield(process.wait())
            raise
        exit_code = await process.wait()
        logger.debug("Captured run %s exited with %d", argv[0], exit_code)
        return CapturedOutput(exit_code=exit_code, stdout=stdout, stderr=stderr)

    async def run_interactive(
        self,
        command: Command,
        surface_id: str,
        on_exit: ExitCallback,
        columns: Optional[int] = None,
        rows: int = 24,
    ) -> ProcessHandle:
        """Start `command` on a fresh pty whose output is written into `surface_id`.

        `on_exit(handle, exit_code)` fires exactly once, after all pty output
        has been delivered, however the process ends.

        Raises:
            SpawnFailure: If the process could not be started
        """
        argv = _parse_command(command)
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            logger.error("No pty available for %s: %s", argv, e)
            raise SpawnFailure(argv, f"cannot open a terminal ({e.strerror or e})") from e

        if columns:
            _set_window_size(slave_fd, rows, columns)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
            )
        except OSError as e:
            os.close(master_fd)
            logger.error("Failed to spawn %s: %s", argv, e)
            raise SpawnFailure(argv, e.strerror or str(e)) from e
        finally:
            os.close(slave_fd)

        os.set_blocking(master_fd, False)
        handle = ProcessHandle(command=argv, surface_id=surface_id, pid=process.pid, _process=process)
        handle._master_fd = master_fd

        asyncio.get_running_loop().add_reader(master_fd, self._pump_output, handle)
        self._host.attach_terminal(surface_id, lambda data: self._write(handle, data))
        self._tasks.spawn(self._watch_exit(handle, on_exit), name=f"qchat-exit-{process.pid}")

        logger.info("Started %s (pid %d) on surface %s", argv[0], process.pid, surface_id)
        return handle

    def _pump_output(self, handle: ProcessHandle) -> None:
        fd = handle._master_fd
        if fd is None:
            return
        try:
            data = os.read(fd, PTY_READ_CHUNK)
        except BlockingIOError:
            return
        except OSError:
            # EIO once every slave end is closed
            data = b""
        if not data:
            self._stop_reading(handle)
            return
        if self._host.is_surface_valid(handle.surface_id):
            self._host.write(handle.surface_id, data)

    def _stop_reading(self, handle: ProcessHandle) -> None:
        fd = handle._master_fd
        if fd is not None:
            with suppress(ValueError, RuntimeError):
                asyncio.get_running_loop().remove_reader(fd)
        handle._output_closed.set()

    def _close_pty(self, handle: ProcessHandle) -> None:
        self._stop_reading(handle)
        fd, handle._master_fd = handle._master_fd, None
        if fd is not None:
            with suppress(OSError):
                os.close(fd)

    async def _watch_exit(self, handle: ProcessHandle, on_exit: ExitCallback) -> None:
        exit_code = await handle._process.wait()
        # Grandchildren may keep the slave open; don't wait on them forever
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(handle._output_closed.wait(), timeout=OUTPUT_DRAIN_TIMEOUT_S)
        self._close_pty(handle)
        handle.exit_code = exit_code
        logger.info("Process %s (pid %d) exited with code %d", handle.command[0], handle.pid, exit_code)
        on_exit(handle, exit_code)

    def _write(self, handle: ProcessHandle, data: bytes) -> bool:
        fd = handle._master_fd
        if handle.exited or fd is None:
            return False
        try:
            os.write(fd, data)
        except OSError as e:
            logger.debug("Dropped input for pid %d: %s", handle.pid, e)
            return False
        return True

    def send_input(self, handle: ProcessHandle, text: str) -> bool:
        """Best-effort write to the process's input.

        Returns:
            False when the process has already exited or the write failed
        """
        return self._write(handle, text.encode("utf-8"))

    def terminate(self, handle: ProcessHandle, grace: float = 0.0) -> None:
        """Stop the process if it is still running after `grace` seconds.

        SIGTERM first, SIGKILL if it survives another `grace` seconds.
        """
        if handle.exited:
            return
        self._tasks.spawn(self._terminate(handle, grace), name=f"qchat-terminate-{handle.pid}")

    async def _terminate(self, handle: ProcessHandle, grace: float) -> None:
        process = handle._process
        for sig in (None, signal.SIGTERM, signal.SIGKILL):
            if sig is not None:
                if process.returncode is not None:
                    return
                logger.debug("Sending %s to pid %d", sig.name, handle.pid)
                with suppress(ProcessLookupError):
                    os.killpg(handle.pid, sig)
            if sig is signal.SIGKILL:
                return
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(asyncio.shield(process.wait()), timeout=grace)
                return
