"""QChat logging configuration.

QChat logs through `structlog` on top of the standard library. The terminal
belongs to the chat process, so records go to a log file (default:
`~/.qchat/qchat.log`, override with `QCHAT_LOG_PATH`) instead of stderr.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import structlog

from qchat.constants import DEFAULT_LOG_PATH, LOG_ENV_LEVEL, LOG_ENV_PATH

_configured = False

_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.format_exc_info,
    structlog.dev.ConsoleRenderer(colors=False),
]


def _configure_structlog() -> None:
    structlog.configure(
        processors=list(_PROCESSORS),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def install_quiet_defaults() -> None:
    """Route QChat logging through the stdlib and drop it until `setup_logging` runs.

    Called on package import so records emitted while the configuration is
    loaded never reach stdout. Leaves an existing structlog configuration alone.
    """
    logger = logging.getLogger("qchat")
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    if not structlog.is_configured():
        _configure_structlog()


def _resolve_level(level: Optional[str], debug: bool) -> int:
    name = level or os.getenv(LOG_ENV_LEVEL) or ("DEBUG" if debug else "INFO")
    resolved = logging.getLevelName(name.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Optional[str] = None, debug: bool = False, force: bool = False) -> None:
    """Configure QChat logging.

    Safe to call more than once; later calls are no-ops unless `force` is set.

    Args:
        level: Optional override for `QCHAT_LOG_LEVEL`.
        debug: Use DEBUG when no explicit level is configured.
        force: Reconfigure even if logging was already set up.
    """
    global _configured
    if _configured and not force:
        return

    log_path = Path(os.getenv(LOG_ENV_PATH, DEFAULT_LOG_PATH)).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger("qchat")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_resolve_level(level, debug))
    root.propagate = False

    _configure_structlog()
    _configured = True
