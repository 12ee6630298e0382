"""Path mapping between the filesystem and the dotfiles repository.

The mapping rule places a tracked file inside a content tree of the
repository:

- files directly under ``/`` go to ``<tree>/root/<name>``,
- files directly under the home directory go to ``<tree>/<name>``,
- anything else mirrors its full parent path, ``<tree>/<parent>/<name>``.

The mapping functions are pure. The filesystem helpers at the bottom turn
OS errors into `DotconfError`s so a sync pass can record them per entry.
"""

import os
import random
from pathlib import Path, PurePath

from .constants import BACKUP_MARKER, HOME_PLACEHOLDER, ROOT_SUBTREE
from .errors import (
    CouldNotCreateDirectories,
    CouldNotOpenFile,
    InvalidPath,
    PathConversionError,
)


def to_repository_path(path: PurePath, repository_root: Path, home: PurePath) -> Path:
    """Maps an absolute filesystem path to its location in a content tree.

    Args:
        path (PurePath): Absolute path of the tracked file.
        repository_root (Path): The content tree (e.g. ``<repo>/symlinks``).
        home (PurePath): The user's home directory.

    Returns:
        Path: The repository location of the file.

    Raises:
        InvalidPath: If the path is relative or has no final component.
    """
    path = PurePath(path)
    if not path.is_absolute() or not path.name:
        raise InvalidPath(path)

    parent = path.parent
    if parent == PurePath(parent.anchor):
        return repository_root / ROOT_SUBTREE / path.name
    if parent == PurePath(home):
        return repository_root / path.name
    return repository_root / parent.relative_to(parent.anchor) / path.name


def from_repository_path(
    repository_path: PurePath, repository_root: Path, home: Path
) -> Path:
    """Inverts `to_repository_path` for a path inside `repository_root`.

    Raises:
        InvalidPath: If the path is not strictly inside the content tree.
    """
    try:
        parts = PurePath(repository_path).relative_to(repository_root).parts
    except ValueError:
        raise InvalidPath(repository_path) from None

    if not parts:
        raise InvalidPath(repository_path)
    if len(parts) == 1:
        return Path(home) / parts[0]
    if len(parts) == 2 and parts[0] == ROOT_SUBTREE:
        return Path("/") / parts[1]
    return Path("/", *parts)


def ensure_parent_dirs(path: Path) -> Path:
    """Creates the directories leading to `path`.

    Returns:
        Path: The same path, for chaining.

    Raises:
        CouldNotCreateDirectories: If the parent cannot be created.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CouldNotCreateDirectories(path.parent, e) from e
    return path


def expand_path(raw: str | os.PathLike) -> Path:
    """Expands ``~`` and environment variables in a user supplied path."""
    return Path(os.path.expandvars(os.path.expanduser(os.fspath(raw))))


def normalize_path(raw: str | os.PathLike, cwd: Path | None = None) -> Path:
    """Turns user input into the absolute path that identifies a tracked file.

    Variables are expanded, relative paths are anchored at `cwd`, and the
    parent directories are resolved. The final component is left alone so a
    file that is already a symlink keeps its own name.

    Raises:
        InvalidPath: If the input designates the filesystem root.
        PathConversionError: If the parent cannot be resolved.
    """
    path = expand_path(raw)
    if not path.is_absolute():
        path = (cwd or Path.cwd()) / path
    path = Path(os.path.normpath(path))
    if not path.name:
        raise InvalidPath(path)
    try:
        return path.parent.resolve() / path.name
    except (OSError, RuntimeError) as e:
        raise PathConversionError(path, str(e)) from e


def abbreviate_home(path: Path, home: Path) -> str:
    """Renders `path` with the home prefix replaced by the placeholder."""
    for base in dict.fromkeys((home, home.resolve())):
        if path == base:
            return HOME_PLACEHOLDER
        if path.is_relative_to(base):
            return f"{HOME_PLACEHOLDER}/{path.relative_to(base).as_posix()}"
    return str(path)


def expand_home(stored: str, home: Path) -> Path:
    """Inverse of `abbreviate_home` for a ledger line."""
    if stored == HOME_PLACEHOLDER:
        return home
    if stored.startswith(HOME_PLACEHOLDER + "/"):
        return home / stored[len(HOME_PLACEHOLDER) + 1 :]
    return Path(stored)


def points_into(link: Path, tree: Path) -> bool:
    """Tells whether the symlink `link` resolves to a location inside `tree`."""
    try:
        target = link.resolve()
    except (OSError, RuntimeError):
        return False
    return target.is_relative_to(tree.resolve())


def backup_path(original: Path) -> Path:
    """Returns a sibling of `original` suitable as a pre-overwrite backup.

    The suffix is a random 32-bit unsigned integer, so repeated backups of
    the same file rarely collide. Uniqueness is not guaranteed; callers
    surface a failed rename instead of overwriting.
    """
    suffix = random.getrandbits(32)
    return original.with_name(f"{original.name}{BACKUP_MARKER}{suffix}")


def inspect_path(path: Path) -> tuple[bool, bool]:
    """Returns whether `path` is a symlink and whether it exists.

    Raises:
        CouldNotOpenFile: If the path cannot be examined (permissions, name
            too long, ...).
    """
    try:
        return path.is_symlink(), path.exists()
    except OSError as e:
        raise CouldNotOpenFile(path, e) from e


def links_to(link: Path, target: Path) -> bool:
    """Tells whether the symlink `link` resolves to the same file as `target`.

    An unresolvable link (loop, unreadable component) does not match.
    """
    try:
        return link.is_symlink() and link.resolve() == target.resolve()
    except (OSError, RuntimeError):
        return False


def read_link(link: Path) -> Path:
    """Returns the raw target of the symlink `link`."""
    try:
        return Path(os.readlink(link))
    except OSError as e:
        raise CouldNotOpenFile(link, e) from e
