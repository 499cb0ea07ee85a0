from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from qchat.constants import (
    DEFAULT_CHAT_COMMAND,
    DEFAULT_DISPLAY_WIDTH,
    DEFAULT_LOGIN_COMMAND,
    DEFAULT_LOGIN_KEY,
    DEFAULT_LOGIN_SETTLE_MS,
    DEFAULT_PROBE_COMMAND,
    DEFAULT_QUIT_KEY,
    DEFAULT_SHUTDOWN_GRACE_S,
    DEFAULT_SURFACE_TITLE,
    DEFAULT_UNAUTHENTICATED_PATTERNS,
)


class QChatConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    # Window placement
    display_width: int = Field(default=DEFAULT_DISPLAY_WIDTH, ge=1)
    display_position: Literal["left", "right"] = "right"
    surface_title: str = DEFAULT_SURFACE_TITLE

    # Tool commands (shell-like strings, split with shlex)
    chat_command: str = DEFAULT_CHAT_COMMAND
    probe_command: str = DEFAULT_PROBE_COMMAND
    login_command: str = DEFAULT_LOGIN_COMMAND
    unauthenticated_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_UNAUTHENTICATED_PATTERNS))

    # Status surface keys
    login_key: str = DEFAULT_LOGIN_KEY
    quit_key: str = DEFAULT_QUIT_KEY

    login_settle_ms: int = Field(default=DEFAULT_LOGIN_SETTLE_MS, ge=0)
    shutdown_grace_s: float = Field(default=DEFAULT_SHUTDOWN_GRACE_S, ge=0)

    debug_logging: bool = False

    @field_validator("chat_command", "probe_command", "login_command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Command must not be empty")
        return v

    @field_validator("login_key", "quit_key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not v or any(ch.isspace() for ch in v):
            raise ValueError(f"Invalid key binding: {v!r}")
        return v
