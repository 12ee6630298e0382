"""Shared fixtures: an isolated home directory, repository and PGP key."""

import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pgpy
import pytest

from dotconf import keys
from dotconf.constants import APP_NAME
from dotconf.ops import Settings
from dotconf.sync import SyncEngine


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Creates a fake home directory and points `$HOME` at it."""
    home_dir = (tmp_path / "home").resolve()
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.delenv("DOTFILES_DIR", raising=False)
    monkeypatch.delenv("DOTCONF_SECRET_KEY", raising=False)
    monkeypatch.chdir(home_dir)
    return home_dir


@pytest.fixture
def repo(home: Path) -> Path:
    """Returns the (not yet created) dotfiles repository root."""
    return home / ".dotfiles"


@pytest.fixture
def engine(repo: Path, home: Path) -> SyncEngine:
    return SyncEngine(repo, home)


@pytest.fixture
def settings(home: Path, repo: Path) -> Settings:
    """Settings resolved against the fake home, with no secret key set."""
    return Settings(home=home, repository_root=repo)


@pytest.fixture(scope="session")
def pgp_key() -> pgpy.PGPKey:
    """Session-scoped RSA-2048 key, generated once for all PGP tests."""
    return keys.build_key("dotconf-test")


@pytest.fixture
def key_file(tmp_path: Path, pgp_key: pgpy.PGPKey) -> Path:
    """Writes the session key to an armored file."""
    path = tmp_path / "keys" / "secret.asc"
    path.parent.mkdir()
    path.write_text(str(pgp_key))
    return path


@pytest.fixture(autouse=True)
def isolated_log_file(tmp_path: Path, mocker: MagicMock) -> Path:
    """Keeps CLI runs from writing to the real state directory."""
    log_file = tmp_path / "state" / "dotconf.log"
    mocker.patch("dotconf.cli.LOG_FILE", log_file)
    return log_file


@pytest.fixture(autouse=True)
def reset_logger() -> Iterator[None]:
    """Drops handlers installed by `setup_logging` during a test."""
    yield
    logger = logging.getLogger(APP_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
