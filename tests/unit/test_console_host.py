"""Unit tests for the console host."""

import io
import logging

from rich.console import Console

from qchat.core.models import DisplayPosition, SurfaceKind, SurfaceLayout
from qchat.hosts.console import ConsoleHost


def _host():
    console = Console(file=io.StringIO(), width=100, force_terminal=False)
    output = io.BytesIO()
    return ConsoleHost(console=console, output=output), console, output


def _layout(kind):
    return SurfaceLayout(kind, 60, DisplayPosition.RIGHT, "Q Chat")


def test_status_surface_is_drawn_when_shown():
    host, console, _ = _host()
    status = host.create_surface(_layout(SurfaceKind.READONLY_STATUS))

    host.set_lines(status, ["Checking authentication status..."])
    assert "Checking" not in console.file.getvalue()

    host.show_surface(status)
    assert "Checking authentication status..." in console.file.getvalue()


def test_terminal_output_only_for_visible_surface():
    host, _, output = _host()
    chat = host.create_surface(_layout(SurfaceKind.SCROLLBACK))

    host.write(chat, b"hidden")
    host.show_surface(chat)
    host.write(chat, b"visible")

    assert output.getvalue() == b"visible"


def test_feed_line_dispatches_commands_bindings_and_input():
    host, console, _ = _host()
    calls = []
    host.register_command("QChatOpen", lambda: calls.append("open"))

    assert host.feed_line(":QChatOpen\n")
    assert not host.feed_line(":Nope")
    assert "Unknown command" in console.file.getvalue()

    status = host.create_surface(_layout(SurfaceKind.READONLY_STATUS))
    host.bind_key(status, "l", lambda: calls.append("login"))
    host.show_surface(status)
    assert host.feed_line("l\n")
    assert not host.feed_line("x\n")

    chat = host.create_surface(_layout(SurfaceKind.SCROLLBACK))
    received = []
    host.attach_terminal(chat, received.append)
    host.show_surface(chat)
    assert host.feed_line("hello\r\n")

    assert calls == ["open", "login"]
    assert received == [b"hello\n"]


def test_destroy_surface_drops_bindings_and_visibility():
    host, _, _ = _host()
    status = host.create_surface(_layout(SurfaceKind.READONLY_STATUS))
    host.bind_key(status, "q", lambda: None)
    host.show_surface(status)

    host.destroy_surface(status)

    assert not host.is_surface_valid(status)
    assert not host.feed_line("q")


def test_notify_prints_message():
    host, console, _ = _host()

    host.notify("Q Chat process exited with code 0", logging.INFO)

    assert "exited with code 0" in console.file.getvalue()
