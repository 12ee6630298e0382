"""dotconf: keep dotfiles in a repository, symlinked back into place.

This package provides the command-line interface, the tracked-file ledgers,
the symlink sync engine, and the PGP channel that stores secret files
encrypted inside the repository.
"""

from . import (
    cli,
    config,
    constants,
    errors,
    keys,
    ledger,
    ops,
    paths,
    secret_channel,
    sync,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "errors",
    "keys",
    "ledger",
    "ops",
    "paths",
    "secret_channel",
    "sync",
]
