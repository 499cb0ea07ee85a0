"""Global configuration management.

Config is loaded at module import time and available globally via:
    from qchat.config import config
"""

import os
from pathlib import Path

from dotenv import load_dotenv

from qchat.config.loader import DEFAULT_CONFIG_PATH, load_config, merge_config
from qchat.config.schema import QChatConfig

# Load .env (allow override for tests)
_env_path = os.getenv("QCHAT_ENV_PATH")
load_dotenv(Path(_env_path).expanduser() if _env_path else None)

_config_path = os.getenv("QCHAT_CONFIG_PATH")
config: QChatConfig = load_config(Path(_config_path) if _config_path else DEFAULT_CONFIG_PATH)

__all__ = ["QChatConfig", "config", "load_config", "merge_config"]
