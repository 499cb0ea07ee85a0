"""Protocol definitions for the host the session is embedded in.

The host (an editor, a terminal multiplexer, a plain console) owns the real
windows and key handling. QChat only holds the opaque surface ids it returns.
"""

from typing import Callable, Protocol, Sequence, runtime_checkable

from qchat.core.models import SurfaceLayout

Action = Callable[[], None]
InputSink = Callable[[bytes], None]


@runtime_checkable
class Cancellable(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class SurfaceHost(Protocol):
    """Window/buffer/terminal capabilities the session needs from its host."""

    def create_surface(self, layout: SurfaceLayout) -> str:
        """Allocate a surface and return its id."""
        ...

    def destroy_surface(self, surface_id: str) -> None:
        """Release a surface. Key bindings scoped to it vanish with it."""
        ...

    def is_surface_valid(self, surface_id: str) -> bool: ...

    def show_surface(self, surface_id: str) -> None:
        """Make the surface the visible content of the session window.

        Used to swap the status text for the chat terminal without recreating
        the window.
        """
        ...

    def focus_surface(self, surface_id: str) -> None: ...

    def enter_input_mode(self, surface_id: str) -> None: ...

    def set_lines(self, surface_id: str, lines: Sequence[str]) -> None:
        """Replace the whole content of a read-only surface."""
        ...

    def write(self, surface_id: str, data: bytes) -> None:
        """Append terminal output to a scrollback surface."""
        ...

    def attach_terminal(self, surface_id: str, sink: InputSink) -> None:
        """Route keystrokes typed into the surface to `sink`."""
        ...

    def bind_key(self, surface_id: str, key: str, callback: Action) -> None: ...

    def notify(self, message: str, level: int) -> None:
        """Show a notification; `level` is a `logging` level."""
        ...

    def register_command(self, name: str, callback: Action) -> None: ...


@runtime_checkable
class Scheduler(Protocol):
    """Deferred callbacks on the host's single UI thread."""

    def schedule_after(self, delay_ms: int, callback: Action) -> Cancellable: ...
