"""Tests for the configuration management subsystem."""

import logging
from pathlib import Path

import pytest

from dotconf.config import Config, parse_size, resolve_home, resolve_secret_key
from dotconf.errors import HomeNotDefined, SecretKeyRequired


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.options.source_control_folder == "~/.dotfiles"
    assert conf.options.secret_key is None
    assert conf.limits.max_log_size == 5 * 1024 * 1024
    assert conf.source is None


def test_config_load_without_files(home: Path) -> None:
    assert Config.load(home) == Config()


def test_config_load_reads_options(home: Path) -> None:
    """Verifies that a TOML file at the first candidate is merged."""
    (home / ".dotconf").write_text(
        "[options]\n"
        'source_control_folder = "~/src/dots"\n'
        'secret_key = "~/.keys/dots.asc"\n'
        "[limits]\n"
        'max_log_size = "1mb"\n'
    )

    conf = Config.load(home)

    assert conf.source == home / ".dotconf"
    assert conf.options.source_control_folder == "~/src/dots"
    assert conf.options.secret_key == "~/.keys/dots.asc"
    assert conf.limits.max_log_size == 1024 * 1024


def test_config_load_first_candidate_wins(home: Path) -> None:
    """Verifies the search order: earlier candidates shadow later ones."""
    (home / ".config").mkdir()
    (home / ".config" / "dotfiles.conf").write_text(
        '[options]\nsource_control_folder = "~/later"\n'
    )
    (home / ".dotfiles.conf").write_text(
        '[options]\nsource_control_folder = "~/earlier"\n'
    )

    conf = Config.load(home)

    assert conf.options.source_control_folder == "~/earlier"


def test_config_load_skips_directories(home: Path) -> None:
    """Verifies that a config directory does not shadow the file inside it."""
    config_dir = home / ".config" / "dotconf"
    config_dir.mkdir(parents=True)
    (config_dir / "config.toml").write_text('[options]\nsecret_key = "/k.asc"\n')

    conf = Config.load(home)

    assert conf.source == config_dir / "config.toml"
    assert conf.options.secret_key == "/k.asc"


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760
    assert parse_size("1.5gb") == int(1.5 * 1024**3)

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_config_invalid_keys_and_values(
    home: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        home (Path): The fake home directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.WARNING)

    (home / ".dotconf").write_text(
        "[options]\n"
        "source_control_folder = 42\n"
        'fake_setting = "ignored"\n'
        "[limits]\n"
        'max_log_size = "10 gallons"\n'
    )

    conf = Config.load(home)

    assert conf.options.source_control_folder == "~/.dotfiles"
    assert conf.limits.max_log_size == 5242880

    assert "Unknown config keys in [options]: fake_setting" in caplog.text
    assert "Config error in [options].source_control_folder" in caplog.text
    assert "Config error in [limits].max_log_size: Invalid size format" in caplog.text


def test_config_syntax_error_keeps_defaults(
    home: Path, caplog: pytest.LogCaptureFixture
) -> None:
    (home / ".dotconf").write_text("[options\nbroken")

    conf = Config.load(home)

    assert conf.options == Config().options
    assert "Config syntax error" in caplog.text


def test_resolve_home(home: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Verifies that an unset or empty $HOME is an error.

    Args:
        home (Path): The fake home directory.
        monkeypatch (pytest.MonkeyPatch): Pytest fixture for the environment.
    """
    assert resolve_home() == home

    monkeypatch.setenv("HOME", "")
    with pytest.raises(HomeNotDefined):
        resolve_home()

    monkeypatch.delenv("HOME")
    with pytest.raises(HomeNotDefined):
        resolve_home()


def test_resolve_secret_key_precedence(
    home: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Verifies explicit value, then environment, then config file.

    Args:
        home (Path): The fake home directory.
        monkeypatch (pytest.MonkeyPatch): Pytest fixture for the environment.
    """
    conf = Config()
    with pytest.raises(SecretKeyRequired):
        resolve_secret_key(None, conf)

    conf.options.secret_key = "~/from-config.asc"
    assert resolve_secret_key(None, conf) == home / "from-config.asc"

    monkeypatch.setenv("DOTCONF_SECRET_KEY", "~/from-env.asc")
    assert resolve_secret_key(None, conf) == home / "from-env.asc"

    assert resolve_secret_key("/explicit.asc", conf) == Path("/explicit.asc")
