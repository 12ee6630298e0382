import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .constants import APP_NAME, LEDGER_DIR
from .errors import LedgerReadError, LedgerWriteError, RenameFailed
from .paths import abbreviate_home, expand_home, normalize_path

logger = logging.getLogger(APP_NAME)


class Category(str, Enum):
    """Kind of tracked file. The value names both its ledger and content tree."""

    PLAIN = "symlinks"
    SECRET = "secrets"


@dataclass(frozen=True)
class TrackedEntry:
    """A path under management.

    Attributes:
        path (Path): Absolute filesystem path of the file.
        category (Category): Ledger the entry belongs to.
        stored (str): The ledger line, with the home prefix abbreviated.
    """

    path: Path
    category: Category
    stored: str


class Ledger:
    """Line-oriented record of tracked paths, one file per category.

    Ledgers live at ``<repository>/cfg/<category>``. Each line is a path,
    abbreviated to ``~/...`` when it lies under the home directory so the
    repository can be cloned on machines with a different home.

    Attributes:
        repository_root (Path): Root of the dotfiles repository.
        home (Path): The user's home directory.
    """

    def __init__(self, repository_root: Path, home: Path):
        self.repository_root = repository_root
        self.home = home

    def ledger_path(self, category: Category) -> Path:
        """Returns the ledger file for `category`."""
        return self.repository_root / LEDGER_DIR / category.value

    def _read_lines(self, category: Category) -> list[str] | None:
        """Reads non-blank ledger lines, or None if the ledger does not exist."""
        path = self.ledger_path(category)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return [line.rstrip("\n") for line in f if line.strip()]
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise LedgerReadError(path, e) from e

    def entries(self, category: Category) -> list[TrackedEntry]:
        """Returns the tracked entries of `category` in ledger order.

        Raises:
            LedgerReadError: If the ledger exists but cannot be read.
        """
        return [
            TrackedEntry(expand_home(line, self.home), category, line)
            for line in self._read_lines(category) or []
        ]

    def list(self, category: Category) -> list[Path]:
        """Returns the absolute paths tracked in `category`.

        A missing or empty ledger yields an empty list.
        """
        return [entry.path for entry in self.entries(category)]

    def key_for(self, path: str | os.PathLike) -> str:
        """Normalizes user input into the string stored in the ledger."""
        return abbreviate_home(normalize_path(path), self.home)

    def add(self, path: str | os.PathLike, category: Category) -> bool:
        """Appends `path` to the ledger of `category`.

        Args:
            path (str | os.PathLike): The file to track, in any user form.
            category (Category): Target ledger.

        Returns:
            bool: False if the path was already tracked (ledger unchanged).

        Raises:
            LedgerReadError: If the existing ledger cannot be read.
            LedgerWriteError: If the ledger or its directory cannot be written.
        """
        key = self.key_for(path)
        ledger = self.ledger_path(category)

        if key in (self._read_lines(category) or []):
            logger.info(f"'{key}' is already tracked in '{category.value}'")
            return False

        try:
            ledger.parent.mkdir(parents=True, exist_ok=True)
            with open(ledger, "a", encoding="utf-8") as f:
                f.write(f"{key}\n")
        except OSError as e:
            raise LedgerWriteError(ledger, e) from e

        logger.info(f"'{key}' has been added to '{category.value}'")
        return True

    def remove(self, path: str | os.PathLike, category: Category) -> bool:
        """Drops `path` from the ledger of `category`.

        The ledger is rewritten to a temporary file in the same directory and
        renamed over the original, so an interrupted rewrite leaves the
        previous ledger intact.

        Returns:
            bool: False if no line matched (ledger unchanged).

        Raises:
            LedgerReadError: If the ledger is missing or unreadable.
            LedgerWriteError: If the temporary ledger cannot be written.
            RenameFailed: If the temporary ledger cannot replace the original.
        """
        key = self.key_for(path)
        ledger = self.ledger_path(category)

        lines = self._read_lines(category)
        if lines is None:
            raise LedgerReadError(
                ledger, FileNotFoundError(f"No such ledger: '{ledger}'")
            )

        kept = [line for line in lines if line != key]
        if len(kept) == len(lines):
            logger.info(f"'{key}' is not tracked in '{category.value}'")
            return False

        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{category.value}.", suffix=".tmp", dir=ledger.parent
            )
        except OSError as e:
            raise LedgerWriteError(ledger, e) from e

        tmp_path = Path(tmp_name)
        try:
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.writelines(f"{line}\n" for line in kept)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise LedgerWriteError(tmp_path, e) from e
            try:
                os.replace(tmp_path, ledger)
            except OSError as e:
                raise RenameFailed(tmp_path, ledger, e) from e
        except (LedgerWriteError, RenameFailed):
            tmp_path.unlink(missing_ok=True)
            raise

        logger.info(f"'{key}' has been removed from '{category.value}'")
        return True
