"""qchat: run the Q chat session in the current terminal."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

import structlog
from rich.console import Console

from qchat.config import config as default_config
from qchat.config import load_config
from qchat.config.schema import QChatConfig
from qchat.core.auth import classify_probe
from qchat.core.dispatch import Dispatcher
from qchat.core.models import SessionPhase
from qchat.core.process_runner import ProcessRunner, SpawnFailure
from qchat.hosts.console import ConsoleHost
from qchat.logging_config import setup_logging
from qchat.plugin import setup

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_UNAUTHENTICATED = 1
EXIT_SPAWN_FAILURE = 2

_IDLE_POLL_S = 0.1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qchat", description="Q chat session in your terminal.")
    parser.add_argument("--config", type=Path, help="Path to qchat.yml (default: ~/.qchat/qchat.yml)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("open", help="Open a chat session (default)")
    sub.add_parser("probe", help="Only check whether you are logged in")
    return parser


async def _probe(cfg: QChatConfig, console: Console) -> int:
    runner = ProcessRunner(ConsoleHost(console=console))
    try:
        result = await runner.run_captured(cfg.probe_command)
    except SpawnFailure as e:
        console.print(f"[red]{e}[/red]")
        return EXIT_SPAWN_FAILURE

    check = classify_probe(result, cfg.unauthenticated_patterns)
    if check.authenticated:
        console.print(f"[green]Logged in[/green] {check.identity or ''}".rstrip())
        return EXIT_OK
    console.print(f"[yellow]Not logged in[/yellow] (exit {check.exit_code})")
    if check.detail:
        console.print(f"  {check.detail}")
    return EXIT_UNAUTHENTICATED


async def _open(cfg: QChatConfig) -> int:
    host = ConsoleHost()
    dispatcher = Dispatcher()
    session = setup(host, base_config=cfg, dispatcher=dispatcher)

    loop = asyncio.get_running_loop()
    stdin_fd = sys.stdin.fileno()
    stdin_closed = asyncio.Event()
    pending = b""

    def _on_stdin() -> None:
        nonlocal pending
        chunk = os.read(stdin_fd, 4096)
        if not chunk:
            stdin_closed.set()
            return
        pending += chunk
        while b"\n" in pending:
            raw, pending = pending.split(b"\n", 1)
            host.feed_line(raw.decode("utf-8", errors="replace"))

    loop.add_reader(stdin_fd, _on_stdin)
    try:
        session.open()
        while not stdin_closed.is_set():
            await asyncio.sleep(_IDLE_POLL_S)
            if session.phase is SessionPhase.IDLE and dispatcher.pending() == 0:
                break
    finally:
        loop.remove_reader(stdin_fd)
        session.close()
        # Let quit directives and termination escalation run to completion
        try:
            await asyncio.wait_for(dispatcher.drain(), timeout=cfg.shutdown_grace_s * 2 + 1)
        except asyncio.TimeoutError:
            logger.warning("Processes still running at exit")
        await dispatcher.shutdown()
    return EXIT_OK


def _main_impl(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    cfg = load_config(args.config) if args.config else default_config
    if args.debug:
        cfg = cfg.model_copy(update={"debug_logging": True})
    setup_logging(debug=cfg.debug_logging)

    if args.command == "probe":
        return asyncio.run(_probe(cfg, Console()))
    return asyncio.run(_open(cfg))


def main() -> None:
    try:
        sys.exit(_main_impl())
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
