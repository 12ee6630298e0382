import logging
import os
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_CANDIDATES,
    DEFAULT_DOTFILES_DIR,
    SECRET_KEY_ENV,
)
from .errors import HomeNotDefined, SecretKeyRequired
from .paths import expand_path

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '5MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def resolve_home() -> Path:
    """Returns the user's home directory from `$HOME`.

    Raises:
        HomeNotDefined: If the variable is unset or empty.
    """
    home = os.environ.get("HOME")
    if not home:
        raise HomeNotDefined()
    return Path(home)


def _path_string(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected a non-empty path, got '{value}'")
    return value


_VALIDATORS = {"max_log_size": parse_size}


@dataclass
class OptionsConfig:
    """Repository and key locations.

    Attributes:
        source_control_folder (str): Root of the dotfiles repository.
        secret_key (str | None): Armored secret key used for secrets.
    """

    source_control_folder: str = DEFAULT_DOTFILES_DIR
    secret_key: str | None = None


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for the log file before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        options (OptionsConfig): Repository and key locations.
        limits (LimitsConfig): Resource limits.
        source (Path | None): The file the configuration was read from.
    """

    options: OptionsConfig = field(default_factory=OptionsConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    source: Path | None = None

    @classmethod
    def load(cls, home: Path) -> "Config":
        """Loads the first configuration file found under `home`.

        Files are searched in `CONFIG_CANDIDATES` order; directories are
        skipped. When nothing is found the defaults are returned.

        Args:
            home (Path): The user's home directory.

        Returns:
            Config: The merged configuration object.
        """
        instance = cls()
        for candidate in CONFIG_CANDIDATES:
            path = home / candidate
            if path.is_file():
                instance._merge_from_file(path)
                instance.source = path
                break
        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "options" in data:
                self.options = self._update_dataclass(
                    "options", self.options, data["options"]
                )
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Returns a copy of `instance` with the valid entries of `updates` applied.

        Unknown keys and values rejected by their validator are logged and
        leave the default in place.
        """
        known = instance.__dataclass_fields__
        unknown = sorted(k for k in updates if k not in known)
        if unknown:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(unknown)}. Ignoring."
            )

        accepted = {}
        for key, raw in updates.items():
            if key not in known:
                continue
            validate = _VALIDATORS.get(key, _path_string)
            try:
                accepted[key] = validate(raw)
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{key}: {e}. "
                    "Falling back to default."
                )

        return replace(instance, **accepted)


def resolve_secret_key(explicit: Path | str | None, config: Config) -> Path:
    """Picks the secret key path: explicit override, environment, then config.

    Args:
        explicit (Path | str | None): A path given on the command line.
        config (Config): The loaded configuration.

    Returns:
        Path: The expanded key path.

    Raises:
        SecretKeyRequired: If no source provides a key path.
    """
    if explicit:
        return expand_path(explicit)
    from_env = os.environ.get(SECRET_KEY_ENV)
    if from_env:
        return expand_path(from_env)
    if config.options.secret_key:
        return expand_path(config.options.secret_key)
    raise SecretKeyRequired()
