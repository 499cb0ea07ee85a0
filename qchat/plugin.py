"""Plugin entry point: wire a QChatSession into a host."""

from __future__ import annotations

from typing import Any, Mapping, Optional

import structlog

from qchat.config import config as default_config
from qchat.config import merge_config
from qchat.config.schema import QChatConfig
from qchat.constants import CLOSE_COMMAND, OPEN_COMMAND
from qchat.core.dispatch import Dispatcher
from qchat.core.process_runner import ProcessRunner
from qchat.core.protocols import Scheduler, SurfaceHost
from qchat.core.session import QChatSession
from qchat.logging_config import setup_logging

logger = structlog.get_logger(__name__)


def setup(
    host: SurfaceHost,
    user_config: Optional[Mapping[str, Any]] = None,
    *,
    base_config: Optional[QChatConfig] = None,
    dispatcher: Optional[Dispatcher] = None,
    scheduler: Optional[Scheduler] = None,
    runner: Optional[ProcessRunner] = None,
) -> QChatSession:
    """Build a session for `host` and register the QChatOpen/QChatClose commands.

    Args:
        host: The embedding host's surface/key/command capabilities
        user_config: Keys overriding the loaded configuration
        base_config: Configuration to merge into (defaults to qchat.config.config)
        dispatcher: Background task owner (a new one if omitted)
        scheduler: Deferred callback provider (the dispatcher if omitted)
        runner: Process layer (a pty-backed ProcessRunner sharing `dispatcher` if omitted)

    Returns:
        The session; the host's commands call its `open`/`close`.
    """
    cfg = merge_config(base_config or default_config, user_config)
    setup_logging(debug=cfg.debug_logging)

    dispatcher = dispatcher or Dispatcher()
    session = QChatSession(
        host=host,
        runner=runner or ProcessRunner(host, dispatcher),
        scheduler=scheduler or dispatcher,
        dispatcher=dispatcher,
        config=cfg,
    )
    host.register_command(OPEN_COMMAND, session.open)
    host.register_command(CLOSE_COMMAND, session.close)
    logger.debug("Registered %s/%s commands", OPEN_COMMAND, CLOSE_COMMAND)
    return session
