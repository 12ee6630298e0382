import os
from pathlib import Path

"""Global constants and filesystem layout definitions for dotconf.

This module defines the application identifiers, the configuration search
paths, and the directory layout of a dotfiles repository.
"""

# --- Identity ---
APP_NAME = "dotconf"
"""str: The human-readable application name, also used as the logger name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "dotconf"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "dotconf.log"
"""Path: The file path for the rotating log."""

# --- Configuration Paths ---
CONFIG_CANDIDATES = (
    ".dotconf",
    ".dotfiles.conf",
    ".config/dotconf",
    ".config/dotfiles.conf",
    ".config/dotconf/config.toml",
)
"""tuple[str]: Home-relative configuration files, searched in order."""

DEFAULT_DOTFILES_DIR = "~/.dotfiles"
"""str: Repository root used when nothing else is configured."""

DOTFILES_DIR_ENV = "DOTFILES_DIR"
"""str: Environment variable overriding the repository root."""

SECRET_KEY_ENV = "DOTCONF_SECRET_KEY"
"""str: Environment variable overriding the secret key path."""

# --- Repository Layout ---
LEDGER_DIR = "cfg"
"""str: Repository subdirectory holding the ledgers."""

ARCHIVE_DIR = "deleted"
"""str: Repository subdirectory receiving copies released by `remove`."""

ROOT_SUBTREE = "root"
"""str: Content subtree for files living directly under the filesystem root."""

HOME_PLACEHOLDER = "~"
"""str: Portable token replacing the home directory in ledger entries."""

BACKUP_MARKER = ".bkp-"
"""str: Infix separating a file name from its backup suffix."""
