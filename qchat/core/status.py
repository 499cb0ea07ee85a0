"""Status surface rendering.

The status surface is the only feedback the user gets while the auth probe
runs and while a login is required, so every message is a full-screen
replacement rather than an appended line.
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from qchat.core.protocols import Action, SurfaceHost

logger = structlog.get_logger(__name__)


class StatusPresenter:
    """Renders text lines into read-only surfaces and binds their keys."""

    def __init__(self, host: SurfaceHost) -> None:
        self._host = host

    def render(self, surface_id: Optional[str], lines: Sequence[str]) -> bool:
        """Replace the visible content of `surface_id` with `lines`.

        Returns:
            False if the surface no longer exists (nothing rendered)
        """
        if surface_id is None or not self._host.is_surface_valid(surface_id):
            logger.debug("Skipping render into stale surface %s", surface_id)
            return False
        self._host.set_lines(surface_id, list(lines))
        return True

    def bind_action(self, surface_id: Optional[str], key: str, action: Action) -> bool:
        """Run `action` when `key` is pressed in `surface_id`."""
        if surface_id is None or not self._host.is_surface_valid(surface_id):
            logger.debug("Skipping key binding %r on stale surface %s", key, surface_id)
            return False
        self._host.bind_key(surface_id, key, action)
        return True


def initializing_lines(title: str) -> list[str]:
    return [title, "", "Checking authentication status..."]


def login_required_lines(title: str, login_key: str, quit_key: str, detail: Optional[str] = None) -> list[str]:
    lines = [title, "", "You are not logged in.", "You need to log in before starting a chat."]
    if detail:
        lines += ["", f"  {detail}"]
    lines += ["", f"Press '{login_key}' to log in", f"Press '{quit_key}' to quit"]
    return lines


def spawn_error_lines(title: str, error: str, quit_key: str) -> list[str]:
    return [title, "", "Something went wrong:", f"  {error}", "", f"Press '{quit_key}' to quit"]
