"""QChat - session manager for the Q chat CLI."""

from qchat.logging_config import install_quiet_defaults

__version__ = "0.3.0"

install_quiet_defaults()
