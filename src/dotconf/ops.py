import getpass
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .config import Config, resolve_home, resolve_secret_key
from .constants import APP_NAME, DOTFILES_DIR_ENV
from .errors import DotconfError
from .keys import generate_key, load_key
from .ledger import Category, Ledger, TrackedEntry
from .paths import expand_home, expand_path, points_into
from .secret_channel import SecretChannel, release
from .sync import Direction, SyncEngine, SyncReport

logger = logging.getLogger(APP_NAME)


@dataclass
class Settings:
    """Everything resolved from the environment before touching the repository.

    Attributes:
        home (Path): The user's home directory.
        repository_root (Path): Root of the dotfiles repository.
        config (Config): The loaded configuration.
        secret_key (Path | str | None): Key path given on the command line.
    """

    home: Path
    repository_root: Path
    config: Config = field(default_factory=Config)
    secret_key: Path | str | None = None

    @classmethod
    def resolve(
        cls,
        dotfiles_dir: Path | str | None = None,
        secret_key: Path | str | None = None,
    ) -> "Settings":
        """Resolves home, configuration and repository root.

        The repository root comes from `dotfiles_dir`, then `$DOTFILES_DIR`,
        then ``options.source_control_folder``; a relative root is anchored
        at the working directory.

        Raises:
            HomeNotDefined: If `$HOME` is not set.
        """
        home = resolve_home()
        config = Config.load(home)
        raw_root = (
            dotfiles_dir
            or os.environ.get(DOTFILES_DIR_ENV)
            or config.options.source_control_folder
        )
        return cls(
            home=home,
            repository_root=expand_path(raw_root).absolute(),
            config=config,
            secret_key=secret_key,
        )

    @property
    def ledger(self) -> Ledger:
        return Ledger(self.repository_root, self.home)

    @property
    def engine(self) -> SyncEngine:
        return SyncEngine(self.repository_root, self.home)

    def key_path(self) -> Path:
        """Raises `SecretKeyRequired` when no key is configured."""
        return resolve_secret_key(self.secret_key, self.config)


def track(path: str | os.PathLike, category: Category, settings: Settings) -> bool:
    """Adds `path` to a ledger. Returns False if it was already tracked."""
    return settings.ledger.add(path, category)


def untrack(
    path: str | os.PathLike,
    category: Category,
    settings: Settings,
    keep: bool = False,
) -> tuple[bool, Path | None]:
    """Removes `path` from a ledger and releases its repository copy.

    A plain file still symlinked to its copy is moved back in place of the
    symlink; any other copy is archived under ``<repository>/deleted``.

    Args:
        path (str | os.PathLike): The tracked file.
        category (Category): The ledger to remove it from.
        settings (Settings): Resolved settings.
        keep (bool): Leave the repository copy untouched.

    Returns:
        tuple[bool, Path | None]: Whether a ledger line was removed, and the
        archive location if the copy was archived.
    """
    removed = settings.ledger.remove(path, category)
    if not removed or keep:
        return removed, None

    tracked = expand_home(settings.ledger.key_for(path), settings.home)
    if category is Category.PLAIN:
        return removed, settings.engine.release(tracked)
    return removed, release(settings.engine, tracked)


def run_sync(
    direction: Direction,
    settings: Settings,
    passphrase: Callable[[], str] | None = None,
) -> SyncReport:
    """Runs a full sync pass: plain files first, then secrets.

    Per-entry failures are collected in the report. A missing or unreadable
    key abandons the secret half only.

    Raises:
        LedgerReadError: If a ledger cannot be read.
        RollbackFailed: If a half-applied transfer could not be undone.
    """
    report = SyncReport()
    engine = settings.engine
    ledger = settings.ledger

    report.outcomes.extend(engine.sync(ledger.list(Category.PLAIN), direction))

    secrets = ledger.list(Category.SECRET)
    if not secrets:
        return report

    try:
        key = load_key(settings.key_path())
    except DotconfError as e:
        logger.error(f"Skipping {len(secrets)} secret(s): {e}")
        report.secret_error = e
        return report

    channel = SecretChannel(engine, key, passphrase)
    report.outcomes.extend(channel.sync(secrets, direction))
    return report


def create_key(settings: Settings, passphrase: str | None = None) -> Path:
    """Generates a new secret key at the configured location."""
    return generate_key(settings.key_path(), getpass.getuser(), passphrase)


@dataclass
class EntryState:
    """Display information about a tracked entry.

    Attributes:
        entry (TrackedEntry): The ledger entry.
        repository_path (Path): Where its body lives in the repository.
        in_repository (bool): Whether the repository copy exists.
        linked (bool): Whether the filesystem path is a symlink into the
            repository (always False for secrets).
        on_filesystem (bool): Whether the filesystem path exists.
    """

    entry: TrackedEntry
    repository_path: Path
    in_repository: bool
    linked: bool
    on_filesystem: bool


def describe(settings: Settings, categories: list[Category]) -> list[EntryState]:
    """Reports the on-disk state of every entry in `categories`."""
    engine = settings.engine
    states = []
    for category in categories:
        tree = engine.content_root(category)
        for entry in settings.ledger.entries(category):
            repo_path = engine.repository_path(entry.path, category)
            states.append(
                EntryState(
                    entry=entry,
                    repository_path=repo_path,
                    in_repository=repo_path.exists(),
                    linked=entry.path.is_symlink() and points_into(entry.path, tree),
                    on_filesystem=entry.path.exists(),
                )
            )
    return states
