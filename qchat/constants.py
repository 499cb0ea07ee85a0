"""Constants used across QChat.

Tool commands and status texts live here so the session and the status
presenter agree on them.
"""

# External tool (not user-configurable)
QUIT_DIRECTIVE = "/quit\n"

# Default subcommands of the `q` tool
DEFAULT_CHAT_COMMAND = "q chat"
DEFAULT_PROBE_COMMAND = "q whoami"
DEFAULT_LOGIN_COMMAND = "q login"

# Diagnostic fragments the probe prints when the user is not authenticated
DEFAULT_UNAUTHENTICATED_PATTERNS = ["Not logged in", "authentication", "log in"]

# Surfaces
DEFAULT_SURFACE_TITLE = "Q Chat"
DEFAULT_DISPLAY_WIDTH = 80
DEFAULT_LOGIN_KEY = "l"
DEFAULT_QUIT_KEY = "q"

# Timing
DEFAULT_LOGIN_SETTLE_MS = 1000  # Let the login tool print its final message
DEFAULT_SHUTDOWN_GRACE_S = 2.0  # Time to honour /quit or SIGTERM before SIGKILL
OUTPUT_DRAIN_TIMEOUT_S = 0.5  # Max wait for pty output after the process exits
PTY_READ_CHUNK = 4096

# Host command names
OPEN_COMMAND = "QChatOpen"
CLOSE_COMMAND = "QChatClose"

# Logging
LOG_ENV_LEVEL = "QCHAT_LOG_LEVEL"
LOG_ENV_PATH = "QCHAT_LOG_PATH"
DEFAULT_LOG_PATH = "~/.qchat/qchat.log"
