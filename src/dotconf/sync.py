import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .constants import APP_NAME, ARCHIVE_DIR
from .errors import (
    DotconfError,
    FailedWritingToFile,
    RenameFailed,
    RollbackFailed,
    SymlinkFailed,
    TrackedFileNotFound,
    UntrackedSymlinkedFile,
)
from .ledger import Category
from .paths import (
    backup_path,
    ensure_parent_dirs,
    inspect_path,
    links_to,
    points_into,
    read_link,
    to_repository_path,
)

logger = logging.getLogger(APP_NAME)


class Direction(str, Enum):
    """Which side of the sync receives the files."""

    TO_REPOSITORY = "dotfiles"
    TO_FILESYSTEM = "filesystem"

    @classmethod
    def parse(cls, value: str) -> "Direction":
        """Accepts the full names and their one-letter aliases ('d', 'f')."""
        value = value.strip().lower()
        for member in cls:
            if value in (member.value, member.value[0]):
                return member
        raise ValueError(f"Unknown sync direction '{value}'")


class EntryStatus(str, Enum):
    """Terminal state of one entry in a sync pass."""

    ALREADY_LINKED = "already linked"
    LINKED = "linked"
    WRITTEN = "written"
    MISSING = "missing"
    FAILED = "failed"


@dataclass
class EntryOutcome:
    """Result of syncing a single tracked path.

    Attributes:
        path (Path): The tracked filesystem path.
        category (Category): Ledger the path belongs to.
        status (EntryStatus): Where the entry ended up.
        error (DotconfError | None): The failure or warning, if any.
        backup (Path | None): Backup created before an overwrite, if any.
    """

    path: Path
    category: Category
    status: EntryStatus
    error: DotconfError | None = None
    backup: Path | None = None

    @property
    def failed(self) -> bool:
        return self.status is EntryStatus.FAILED


@dataclass
class SyncReport:
    """Collected outcomes of a whole sync pass.

    Attributes:
        outcomes (list[EntryOutcome]): One outcome per processed entry.
        secret_error (DotconfError | None): Set when the secret half of the
            pass was abandoned (missing or unreadable key).
    """

    outcomes: list[EntryOutcome] = field(default_factory=list)
    secret_error: DotconfError | None = None

    @property
    def failures(self) -> list[EntryOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def ok(self) -> bool:
        return not self.failures and self.secret_error is None


@dataclass
class MoveStep:
    """A completed, reversible move of `src` to `dst`."""

    src: Path
    dst: Path

    def undo(self) -> None:
        shutil.move(self.dst, self.src)


def move(src: Path, dst: Path) -> MoveStep:
    """Moves `src` to `dst` and returns the step needed to undo it.

    Raises:
        RenameFailed: If the move fails.
    """
    try:
        shutil.move(src, dst)
    except OSError as e:
        raise RenameFailed(src, dst, e) from e
    return MoveStep(src, dst)


def rollback(path: Path, steps: list[MoveStep], cause: Exception) -> None:
    """Undoes `steps` in reverse order.

    Raises:
        RollbackFailed: If any step cannot be undone.
    """
    for step in reversed(steps):
        try:
            step.undo()
        except OSError as e:
            logger.critical(f"ROLLBACK FAILED {path}: {e}")
            raise RollbackFailed(path, cause, e) from e
    logger.warning(f"Rolled back changes for '{path}'")


class SyncEngine:
    """Moves plain files between the filesystem and the repository.

    Plain file bodies live under ``<repository>/symlinks``; the filesystem
    keeps a symlink pointing at them.

    Attributes:
        repository_root (Path): Root of the dotfiles repository.
        home (Path): The user's home directory.
    """

    def __init__(self, repository_root: Path, home: Path):
        self.repository_root = repository_root
        self.home = home

    def content_root(self, category: Category) -> Path:
        """Returns the content tree holding file bodies of `category`."""
        return self.repository_root / category.value

    def repository_path(self, path: Path, category: Category = Category.PLAIN) -> Path:
        """Maps a tracked path to its location in the content tree."""
        return to_repository_path(path, self.content_root(category), self.home)

    def archive_path(self, repo_path: Path, category: Category) -> Path:
        """Returns where a released repository copy is archived."""
        relative = repo_path.relative_to(self.content_root(category))
        return self.repository_root / ARCHIVE_DIR / category.value / relative

    def sync(self, paths: list[Path], direction: Direction) -> list[EntryOutcome]:
        """Syncs every path independently and collects the outcomes.

        Raises:
            RollbackFailed: If a half-applied transfer could not be undone.
        """
        return [self.sync_entry(path, direction) for path in paths]

    def sync_entry(self, path: Path, direction: Direction) -> EntryOutcome:
        """Syncs one plain entry in `direction`.

        Entry-scoped failures are returned in the outcome; only
        `RollbackFailed` escapes.
        """
        try:
            if direction is Direction.TO_REPOSITORY:
                outcome = self._to_repository(path)
            else:
                outcome = self._to_filesystem(path)
        except RollbackFailed:
            raise
        except DotconfError as e:
            outcome = EntryOutcome(path, Category.PLAIN, EntryStatus.FAILED, e)

        log_outcome(outcome)
        return outcome

    def _to_repository(self, path: Path) -> EntryOutcome:
        is_link, exists = inspect_path(path)
        if is_link:
            if points_into(path, self.content_root(Category.PLAIN)):
                return EntryOutcome(path, Category.PLAIN, EntryStatus.ALREADY_LINKED)
            raise UntrackedSymlinkedFile(path, read_link(path))

        if not exists:
            return EntryOutcome(
                path, Category.PLAIN, EntryStatus.MISSING, TrackedFileNotFound(path)
            )

        repo_path = ensure_parent_dirs(self.repository_path(path))
        steps, backup = self._move_into_repository(path, repo_path)

        try:
            path.symlink_to(repo_path)
        except OSError as e:
            failure = SymlinkFailed(path, repo_path, e)
            rollback(path, steps, failure)
            raise failure from e

        return EntryOutcome(path, Category.PLAIN, EntryStatus.LINKED, backup=backup)

    def _move_into_repository(
        self, path: Path, repo_path: Path
    ) -> tuple[list[MoveStep], Path | None]:
        """Moves `path` to `repo_path`, backing up a stale repository copy.

        Returns:
            tuple[list[MoveStep], Path | None]: The completed steps, in order,
            and the backup of the previous repository copy if one was made.
        """
        steps: list[MoveStep] = []
        backup = None
        if any(inspect_path(repo_path)):
            backup = backup_path(repo_path)
            logger.warning(
                f"Repository copy '{repo_path}' exists, moving to '{backup}'"
            )
            steps.append(move(repo_path, backup))

        try:
            steps.append(move(path, repo_path))
        except RenameFailed as e:
            rollback(path, steps, e)
            raise
        return steps, backup

    def _to_filesystem(self, path: Path) -> EntryOutcome:
        repo_path = self.repository_path(path)
        if not inspect_path(repo_path)[1]:
            return EntryOutcome(
                path,
                Category.PLAIN,
                EntryStatus.MISSING,
                TrackedFileNotFound(repo_path),
            )

        backup = None
        if any(inspect_path(path)):
            if links_to(path, repo_path):
                return EntryOutcome(path, Category.PLAIN, EntryStatus.ALREADY_LINKED)
            backup = backup_path(path)
            move(path, backup)
            logger.info(f"Backed up '{path}' to '{backup}'")

        ensure_parent_dirs(path)
        try:
            path.symlink_to(repo_path)
        except OSError as e:
            raise SymlinkFailed(path, repo_path, e) from e

        return EntryOutcome(path, Category.PLAIN, EntryStatus.LINKED, backup=backup)

    def release(self, path: Path) -> Path | None:
        """Gives the repository copy of an untracked plain file back.

        If `path` is still a symlink to its repository copy, the file is moved
        back in place of the symlink. Otherwise an existing repository copy is
        archived under ``<repository>/deleted/symlinks``.

        Returns:
            Path | None: The archive location, or None if nothing was archived.

        Raises:
            FailedWritingToFile: If the symlink cannot be removed.
            RenameFailed: If the copy cannot be moved.
            SymlinkFailed: If restoring failed and the symlink could not be
                recreated.
        """
        repo_path = self.repository_path(path)
        if not any(inspect_path(repo_path)):
            return None

        if links_to(path, repo_path):
            try:
                path.unlink()
            except OSError as e:
                raise FailedWritingToFile(path, e) from e
            try:
                move(repo_path, path)
            except RenameFailed:
                try:
                    path.symlink_to(repo_path)
                except OSError as e:
                    raise SymlinkFailed(path, repo_path, e) from e
                raise
            logger.info(f"Restored '{path}' from the repository")
            return None

        return archive(repo_path, self.archive_path(repo_path, Category.PLAIN))


def archive(repo_path: Path, destination: Path) -> Path:
    """Moves a repository copy into the archive, never overwriting."""
    ensure_parent_dirs(destination)
    if any(inspect_path(destination)):
        destination = backup_path(destination)
    move(repo_path, destination)
    logger.info(f"Archived '{repo_path}' to '{destination}'")
    return destination


def log_outcome(outcome: EntryOutcome) -> None:
    """Writes one log line per entry, leveled by how it ended."""
    if outcome.status is EntryStatus.FAILED:
        logger.error(f"SYNC ERROR {outcome.path}: {outcome.error}")
    elif outcome.status is EntryStatus.MISSING:
        logger.warning(f"SKIPPED {outcome.path}: {outcome.error}")
    elif outcome.status is EntryStatus.ALREADY_LINKED:
        logger.info(f"'{outcome.path}' already tracked")
    else:
        logger.info(f"{outcome.status.value.upper()} {outcome.path}")
