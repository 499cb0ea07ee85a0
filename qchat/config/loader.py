from pathlib import Path
from typing import Any, Mapping, Optional

import structlog
import yaml
from pydantic import BaseModel

from qchat.config.schema import QChatConfig
from qchat.utils import expand_env_vars

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.qchat/qchat.yml")


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Optional[Path]) -> None:
    """Warn about keys the schema does not know (typos, removed options)."""
    if model.model_extra:
        logger.warning("Unknown keys in %s at %s: %s", path, config_path or "<user config>", list(model.model_extra))


def load_config(path: Optional[Path] = None) -> QChatConfig:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to qchat.yml. Defaults to ~/.qchat/qchat.yml.

    Returns:
        The validated configuration; defaults when the file is missing or unreadable.

    Raises:
        pydantic.ValidationError: If the file has invalid values.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH
    path = path.expanduser()
    if not path.exists():
        return QChatConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to read config file %s: %s", path, e)
        return QChatConfig()

    if not isinstance(raw, dict):
        logger.warning("Ignoring config file %s: top level is not a mapping", path)
        return QChatConfig()

    model = QChatConfig.model_validate(expand_env_vars(raw))
    _warn_unknown_keys(model, "root", path)
    return model


def merge_config(base: QChatConfig, overrides: Optional[Mapping[str, Any]]) -> QChatConfig:
    """Return `base` with user-supplied keys overriding it, re-validated."""
    if not overrides:
        return base
    merged = {**base.model_dump(), **dict(overrides)}
    model = QChatConfig.model_validate(merged)
    _warn_unknown_keys(model, "user_config", None)
    return model
