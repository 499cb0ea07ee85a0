"""Data models for QChat sessions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from qchat.core.process_runner import ProcessHandle


class SessionPhase(str, Enum):
    """Lifecycle phase of the chat session."""

    IDLE = "idle"
    CHECKING_AUTH = "checking_auth"
    AWAITING_LOGIN = "awaiting_login"
    LOGGING_IN = "logging_in"
    ACTIVE = "active"
    CLOSING = "closing"


class SurfaceKind(str, Enum):
    SCROLLBACK = "scrollback"
    READONLY_STATUS = "readonly-status"


class DisplayPosition(str, Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class SurfaceLayout:
    """Where and how the host should place a new surface.

    Attributes:
        kind: Terminal-capable scrollback or read-only status text
        width: Columns of the side window (ignored for modal surfaces)
        position: Side of the editor the window opens on
        title: Name shown by the host (buffer/pane name)
        modal: Full-size surface used for the interactive login
    """

    kind: SurfaceKind
    width: int
    position: DisplayPosition
    title: str
    modal: bool = False


@dataclass(frozen=True)
class CapturedOutput:
    """Result of a background process run to completion."""

    exit_code: int
    stdout: str
    stderr: str


@dataclass(frozen=True)
class ProbeTicket:
    """Identity of one in-flight authentication probe."""

    generation: int
    command: str


@dataclass
class SessionState:  # pylint: disable=too-many-instance-attributes
    """The single aggregate owned by a QChatSession.

    Only the session's transition handlers mutate it. Handles are cleared as
    soon as the resource behind them is released.
    """

    phase: SessionPhase = SessionPhase.IDLE
    display_surface_id: Optional[str] = None
    status_surface_id: Optional[str] = None
    chat_process: Optional["ProcessHandle"] = None
    auth_probe: Optional[ProbeTicket] = None
    login_surface_id: Optional[str] = None
    login_process: Optional["ProcessHandle"] = None
    generation: int = 0

    def has_resources(self) -> bool:
        return any(
            handle is not None
            for handle in (
                self.display_surface_id,
                self.status_surface_id,
                self.chat_process,
                self.auth_probe,
                self.login_surface_id,
                self.login_process,
            )
        )

    def reset(self) -> None:
        """Back to Idle with every handle unset."""
        self.phase = SessionPhase.IDLE
        self.display_surface_id = None
        self.status_surface_id = None
        self.chat_process = None
        self.auth_probe = None
        self.login_surface_id = None
        self.login_process = None
        self.generation += 1


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session for callers outside the state machine."""

    phase: SessionPhase
    has_display_surface: bool
    has_status_surface: bool
    has_chat_process: bool
    has_auth_probe: bool
    has_login_surface: bool
    has_login_process: bool
