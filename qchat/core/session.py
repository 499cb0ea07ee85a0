"""Session state machine for the Q chat integration.

One QChatSession owns one SessionState: at most one chat process, one login
process and one set of surfaces exist at a time. Public entry points (`open`,
`close`, bound key actions) return immediately; progress happens in
continuations spawned on the Dispatcher, and each continuation checks that
the handle it was started for is still the one held by the state before it
touches anything. A continuation that fails the check is a stale callback
and is dropped.

Phases:
    IDLE -> CHECKING_AUTH -> ACTIVE
                          -> AWAITING_LOGIN -> LOGGING_IN -> (settle) -> IDLE -> open()
    any  -> close() -> IDLE
"""

from __future__ import annotations

import logging
from typing import Optional

import structlog

from qchat.config.schema import QChatConfig
from qchat.constants import QUIT_DIRECTIVE
from qchat.core.auth import AuthCheck, classify_probe
from qchat.core.dispatch import Dispatcher
from qchat.core.models import (
    DisplayPosition,
    ProbeTicket,
    SessionPhase,
    SessionSnapshot,
    SessionState,
    SurfaceKind,
    SurfaceLayout,
)
from qchat.core.process_runner import ProcessHandle, ProcessRunner, SpawnFailure
from qchat.core.protocols import Scheduler, SurfaceHost
from qchat.core.status import StatusPresenter, initializing_lines, login_required_lines, spawn_error_lines

logger = structlog.get_logger(__name__)


class QChatSession:  # pylint: disable=too-many-instance-attributes
    """Owns the chat session lifecycle and drives the process and status layers."""

    def __init__(
        self,
        host: SurfaceHost,
        runner: ProcessRunner,
        scheduler: Scheduler,
        dispatcher: Dispatcher,
        config: QChatConfig,
        presenter: Optional[StatusPresenter] = None,
    ) -> None:
        self._host = host
        self._runner = runner
        self._scheduler = scheduler
        self._dispatcher = dispatcher
        self._config = config
        self._presenter = presenter or StatusPresenter(host)
        self._state = SessionState()

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def config(self) -> QChatConfig:
        return self._config

    def snapshot(self) -> SessionSnapshot:
        state = self._state
        return SessionSnapshot(
            phase=state.phase,
            has_display_surface=state.display_surface_id is not None,
            has_status_surface=state.status_surface_id is not None,
            has_chat_process=state.chat_process is not None,
            has_auth_probe=state.auth_probe is not None,
            has_login_surface=state.login_surface_id is not None,
            has_login_process=state.login_process is not None,
        )

    # ------------------------------------------------------------------
    # Public commands
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Ensure a session is visible. No-op while one already exists."""
        state = self._state
        if state.phase is not SessionPhase.IDLE:
            if state.phase is SessionPhase.ACTIVE:
                self._host.notify("Q Chat is already running", logging.INFO)
            logger.info("open() ignored: session is %s", state.phase.value)
            return

        status_id = self._allocate_side_surfaces()
        self._presenter.render(status_id, initializing_lines(self._config.surface_title))

        ticket = ProbeTicket(generation=state.generation, command=self._config.probe_command)
        state.auth_probe = ticket
        self._set_phase(SessionPhase.CHECKING_AUTH)
        self._dispatcher.spawn(self._run_probe(ticket), name="qchat-auth-probe")

    def close(self) -> None:
        """Tear the session down from any phase. Safe to call when idle."""
        state = self._state
        if state.phase is SessionPhase.IDLE and not state.has_resources():
            logger.debug("close() ignored: no session")
            return

        self._set_phase(SessionPhase.CLOSING)

        chat, state.chat_process = state.chat_process, None
        if chat is not None:
            self._runner.send_input(chat, QUIT_DIRECTIVE)
            self._runner.terminate(chat, grace=self._config.shutdown_grace_s)

        login, state.login_process = state.login_process, None
        if login is not None:
            self._runner.terminate(login, grace=self._config.shutdown_grace_s)

        # A probe still in flight will find no matching ticket and drop its result
        state.auth_probe = None

        self._release_surfaces()
        self._set_phase(SessionPhase.IDLE)
        state.reset()
        logger.info("Session closed")

    # ------------------------------------------------------------------
    # Authentication probe
    # ------------------------------------------------------------------

    async def _run_probe(self, ticket: ProbeTicket) -> None:
        try:
            result = await self._runner.run_captured(ticket.command, on_line=self._log_probe_line)
        except SpawnFailure as e:
            self._on_probe_failure(ticket, e)
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Auth probe %s failed: %s", ticket.command, e, exc_info=True)
            self._on_probe_failure(ticket, e)
            return

        check = classify_probe(result, self._config.unauthenticated_patterns)
        logger.info("Auth probe finished: %s (exit %d)", check.status.value, check.exit_code)
        if check.authenticated:
            await self._start_chat(ticket)
        else:
            self._on_unauthenticated(ticket, check)

    @staticmethod
    def _log_probe_line(stream: str, line: str) -> None:
        logger.debug("auth probe %s: %s", stream, line)

    def _is_current_probe(self, ticket: ProbeTicket) -> bool:
        if self._state.auth_probe is ticket:
            return True
        logger.debug("Dropping stale probe result (generation %d)", ticket.generation)
        return False

    def _on_unauthenticated(self, ticket: ProbeTicket, check: AuthCheck) -> None:
        if not self._is_current_probe(ticket):
            return
        state = self._state
        state.auth_probe = None

        cfg = self._config
        status_id = state.status_surface_id
        self._presenter.render(
            status_id,
            login_required_lines(cfg.surface_title, cfg.login_key, cfg.quit_key, detail=check.detail),
        )
        self._presenter.bind_action(status_id, cfg.login_key, self._on_login_action)
        self._presenter.bind_action(status_id, cfg.quit_key, self.close)
        if status_id is not None:
            self._host.focus_surface(status_id)
        self._set_phase(SessionPhase.AWAITING_LOGIN)

    def _on_probe_failure(self, ticket: ProbeTicket, error: Exception) -> None:
        if not self._is_current_probe(ticket):
            return
        self._state.auth_probe = None
        self._show_error(error)

    # ------------------------------------------------------------------
    # Chat process
    # ------------------------------------------------------------------

    async def _start_chat(self, ticket: ProbeTicket) -> None:
        if not self._is_current_probe(ticket):
            return
        state = self._state
        display_id = state.display_surface_id
        if display_id is None or not self._host.is_surface_valid(display_id):
            logger.warning("Display surface is gone; closing session")
            self.close()
            return

        self._host.show_surface(display_id)
        try:
            handle = await self._runner.run_interactive(
                self._config.chat_command,
                display_id,
                self._on_chat_exit,
                columns=self._config.display_width,
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            if not isinstance(e, SpawnFailure):
                logger.error("Starting chat failed: %s", e, exc_info=True)
            if not self._is_current_probe(ticket):
                return
            state.auth_probe = None
            self._show_error(e)
            return

        if not self._is_current_probe(ticket):
            # Closed while the process was starting
            self._runner.send_input(handle, QUIT_DIRECTIVE)
            self._runner.terminate(handle, grace=self._config.shutdown_grace_s)
            return

        state.auth_probe = None
        state.chat_process = handle
        self._destroy_surface(state.status_surface_id)
        state.status_surface_id = None
        self._set_phase(SessionPhase.ACTIVE)
        self._host.focus_surface(display_id)
        self._host.enter_input_mode(display_id)

    def _on_chat_exit(self, handle: ProcessHandle, exit_code: int) -> None:
        state = self._state
        if state.chat_process is not handle:
            logger.debug("Ignoring exit of stale chat process (pid %d)", handle.pid)
            return
        state.chat_process = None
        self._host.notify(f"Q Chat process exited with code {exit_code}", logging.INFO)
        self._release_surfaces()
        self._set_phase(SessionPhase.IDLE)
        state.reset()

    # ------------------------------------------------------------------
    # Login flow
    # ------------------------------------------------------------------

    def _on_login_action(self) -> None:
        state = self._state
        if state.phase is not SessionPhase.AWAITING_LOGIN:
            logger.debug("Ignoring login action in phase %s", state.phase.value)
            return

        chat, state.chat_process = state.chat_process, None
        if chat is not None:
            self._runner.send_input(chat, QUIT_DIRECTIVE)
            self._runner.terminate(chat, grace=self._config.shutdown_grace_s)
        self._release_surfaces()

        modal_id = self._host.create_surface(self._layout(SurfaceKind.SCROLLBACK, modal=True))
        state.login_surface_id = modal_id
        self._host.show_surface(modal_id)
        self._set_phase(SessionPhase.LOGGING_IN)
        self._dispatcher.spawn(self._start_login(modal_id), name="qchat-login")

    async def _start_login(self, modal_id: str) -> None:
        state = self._state
        try:
            handle = await self._runner.run_interactive(self._config.login_command, modal_id, self._on_login_exit)
        except Exception as e:  # pylint: disable=broad-exception-caught
            if not isinstance(e, SpawnFailure):
                logger.error("Starting login failed: %s", e, exc_info=True)
            if state.login_surface_id != modal_id:
                return
            self._destroy_surface(modal_id)
            state.login_surface_id = None
            self._allocate_side_surfaces()
            self._show_error(e)
            return

        if state.login_surface_id != modal_id:
            logger.debug("Login surface replaced while starting; stopping login process")
            self._runner.terminate(handle)
            return

        state.login_process = handle
        self._host.focus_surface(modal_id)
        self._host.enter_input_mode(modal_id)

    def _on_login_exit(self, handle: ProcessHandle, exit_code: int) -> None:
        state = self._state
        if state.login_process is not handle:
            logger.debug("Ignoring exit of stale login process (pid %d)", handle.pid)
            return
        state.login_process = None
        logger.info("Login process exited with code %d", exit_code)
        modal_id = state.login_surface_id
        self._scheduler.schedule_after(self._config.login_settle_ms, lambda: self._finish_login(modal_id))

    def _finish_login(self, modal_id: Optional[str]) -> None:
        state = self._state
        if state.phase is not SessionPhase.LOGGING_IN or state.login_surface_id != modal_id:
            logger.debug("Dropping stale login settle timer")
            return
        self._destroy_surface(modal_id)
        state.login_surface_id = None
        self._set_phase(SessionPhase.IDLE)
        state.reset()
        # Re-run the whole check instead of assuming the login worked
        self.open()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _layout(self, kind: SurfaceKind, modal: bool = False) -> SurfaceLayout:
        cfg = self._config
        title = f"{cfg.surface_title} Login" if modal else cfg.surface_title
        return SurfaceLayout(
            kind=kind,
            width=cfg.display_width,
            position=DisplayPosition(cfg.display_position),
            title=title,
            modal=modal,
        )

    def _allocate_side_surfaces(self) -> str:
        """Create the chat and status surfaces and show the status one."""
        state = self._state
        state.display_surface_id = self._host.create_surface(self._layout(SurfaceKind.SCROLLBACK))
        state.status_surface_id = self._host.create_surface(self._layout(SurfaceKind.READONLY_STATUS))
        self._host.show_surface(state.status_surface_id)
        return state.status_surface_id

    def _show_error(self, error: Exception) -> None:
        state = self._state
        cfg = self._config
        status_id = state.status_surface_id
        if status_id is not None and self._host.is_surface_valid(status_id):
            self._host.show_surface(status_id)
        self._presenter.render(status_id, spawn_error_lines(cfg.surface_title, str(error), cfg.quit_key))
        self._presenter.bind_action(status_id, cfg.quit_key, self.close)
        self._host.notify(str(error), logging.ERROR)
        self._set_phase(SessionPhase.AWAITING_LOGIN)

    def _destroy_surface(self, surface_id: Optional[str]) -> None:
        if surface_id is not None and self._host.is_surface_valid(surface_id):
            self._host.destroy_surface(surface_id)

    def _release_surfaces(self) -> None:
        state = self._state
        for attr in ("status_surface_id", "display_surface_id", "login_surface_id"):
            self._destroy_surface(getattr(state, attr))
            setattr(state, attr, None)

    def _set_phase(self, phase: SessionPhase) -> None:
        if self._state.phase is not phase:
            logger.debug("Session phase %s -> %s", self._state.phase.value, phase.value)
            self._state.phase = phase
