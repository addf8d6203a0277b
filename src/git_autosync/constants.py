import os
from pathlib import Path

"""Global constants and path definitions for git-autosync.

This module defines the filesystem layout (adhering to XDG standards where
applicable), application identifiers, and the fixed strings shown by the
status line.
"""

# --- Identity ---
APP_NAME = "git-autosync"
"""str: The human-readable application name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-autosync"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

# --- Configuration Paths ---
_CONFIG_OVERRIDE = os.environ.get("GIT_AUTOSYNC_CONFIG_DIR")
CONFIG_DIR: Path = (
    Path(_CONFIG_OVERRIDE) if _CONFIG_OVERRIDE else Path.home() / ".config/git-autosync"
)
"""Path: The directory for user configuration files."""

SETTINGS_FILE: Path = CONFIG_DIR / "settings.json"
"""Path: The persisted settings record."""

# --- Status line ---
STATUS_PREFIX = "git: "
"""str: The tag prepended to every status line."""

MAX_MESSAGE_LENGTH = 100
"""int: Transient messages are truncated to this many characters."""

DEFAULT_MESSAGE_TIMEOUT_MS = 4 * 1000
"""int: How long an ordinary message stays on the status line."""

ERROR_MESSAGE_TIMEOUT_MS = 10 * 1000
"""int: How long an error message stays on the status line."""

TICK_SECONDS = 1.0
"""float: How often the daemon redraws the status line."""
