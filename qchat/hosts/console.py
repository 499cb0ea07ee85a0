"""Console host: runs a QChat session in a plain terminal.

All surfaces share the one terminal, so "showing" a surface means redrawing
it. Input is line based:

- `:Name` runs a registered command (`:QChatOpen`, `:QChatClose`)
- on a read-only surface, a line equal to a bound key runs its action
- on a terminal surface, the line plus a newline is sent to the process
"""

from __future__ import annotations

import itertools
import logging
import sys
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Optional, Sequence

import structlog
from rich.console import Console
from rich.panel import Panel
from rich.style import Style
from rich.text import Text

from qchat.core.models import SurfaceKind, SurfaceLayout
from qchat.core.protocols import Action, InputSink

logger = structlog.get_logger(__name__)

_NOTIFY_STYLES = {
    logging.DEBUG: Style(dim=True),
    logging.INFO: Style(color="cyan"),
    logging.WARNING: Style(color="yellow"),
    logging.ERROR: Style(color="red", bold=True),
}


@dataclass
class _Surface:
    layout: SurfaceLayout
    lines: list[str] = field(default_factory=list)
    bindings: dict[str, Action] = field(default_factory=dict)
    sink: Optional[InputSink] = None


class ConsoleHost:
    """SurfaceHost backed by the current terminal."""

    def __init__(self, console: Optional[Console] = None, output: Optional[BinaryIO] = None) -> None:
        self.console = console or Console()
        self._output = output
        self._surfaces: dict[str, _Surface] = {}
        self._commands: dict[str, Action] = {}
        self._visible: Optional[str] = None
        self._ids: Callable[[], int] = itertools.count(1).__next__

    # SurfaceHost -------------------------------------------------------

    def create_surface(self, layout: SurfaceLayout) -> str:
        surface_id = f"{layout.kind.value}-{self._ids()}"
        self._surfaces[surface_id] = _Surface(layout=layout)
        logger.debug("Created surface %s (%s)", surface_id, layout.title)
        return surface_id

    def destroy_surface(self, surface_id: str) -> None:
        self._surfaces.pop(surface_id, None)
        if self._visible == surface_id:
            self._visible = None

    def is_surface_valid(self, surface_id: str) -> bool:
        return surface_id in self._surfaces

    def show_surface(self, surface_id: str) -> None:
        surface = self._surfaces.get(surface_id)
        if surface is None:
            return
        self._visible = surface_id
        if surface.layout.kind is SurfaceKind.READONLY_STATUS:
            self._draw_status(surface)
        else:
            self.console.rule(Text(surface.layout.title, style=Style(bold=True)))

    def focus_surface(self, surface_id: str) -> None:
        if surface_id in self._surfaces and self._visible != surface_id:
            self.show_surface(surface_id)

    def enter_input_mode(self, surface_id: str) -> None:
        logger.debug("Input mode on %s", surface_id)

    def set_lines(self, surface_id: str, lines: Sequence[str]) -> None:
        surface = self._surfaces.get(surface_id)
        if surface is None:
            return
        surface.lines = list(lines)
        if self._visible == surface_id:
            self._draw_status(surface)

    def write(self, surface_id: str, data: bytes) -> None:
        if self._visible != surface_id:
            return
        output = self._output if self._output is not None else sys.stdout.buffer
        output.write(data)
        output.flush()

    def attach_terminal(self, surface_id: str, sink: InputSink) -> None:
        surface = self._surfaces.get(surface_id)
        if surface is not None:
            surface.sink = sink

    def bind_key(self, surface_id: str, key: str, callback: Action) -> None:
        surface = self._surfaces.get(surface_id)
        if surface is not None:
            surface.bindings[key] = callback

    def notify(self, message: str, level: int) -> None:
        self.console.print(Text(message, style=_NOTIFY_STYLES.get(level, Style())))

    def register_command(self, name: str, callback: Action) -> None:
        self._commands[name] = callback

    # Input -------------------------------------------------------------

    def feed_line(self, line: str) -> bool:
        """Dispatch one line typed by the user.

        Returns:
            True if the line was consumed by a command, binding or process
        """
        text = line.rstrip("\r\n")
        if text.startswith(":"):
            command = self._commands.get(text[1:].strip())
            if command is None:
                self.notify(f"Unknown command: {text}", logging.WARNING)
                return False
            command()
            return True

        surface = self._surfaces.get(self._visible) if self._visible else None
        if surface is None:
            return False
        if surface.layout.kind is SurfaceKind.READONLY_STATUS:
            action = surface.bindings.get(text.strip())
            if action is None:
                return False
            action()
            return True
        if surface.sink is not None:
            surface.sink((text + "\n").encode("utf-8"))
            return True
        return False

    def _draw_status(self, surface: _Surface) -> None:
        self.console.clear()
        self.console.print(
            Panel(
                Text("\n".join(surface.lines)),
                title=surface.layout.title,
                width=surface.layout.width,
            )
        )
