"""Encrypted transport of secret files into and out of the repository.

Secrets are never symlinked. Exporting encrypts the plaintext to the
configured key and stores the armored message under
``<repository>/secrets``; importing decrypts it back over the filesystem
copy, keeping a backup of whatever was there.
"""

import logging
from collections.abc import Callable
from pathlib import Path

import pgpy
from pgpy.constants import CompressionAlgorithm, SymmetricKeyAlgorithm
from pgpy.errors import PGPDecryptionError, PGPError

from .constants import APP_NAME
from .errors import (
    CouldNotOpenFile,
    DotconfError,
    FailedDecryptingContent,
    FailedEncryptingContent,
    FailedWritingToFile,
    KeyLocked,
    MessageNotUTF8Encoded,
    NoContentInPGPMessage,
    PGPMessageReadError,
    TrackedFileNotFound,
)
from .ledger import Category
from .paths import backup_path, ensure_parent_dirs, inspect_path
from .sync import (
    Direction,
    EntryOutcome,
    EntryStatus,
    SyncEngine,
    archive,
    log_outcome,
    move,
)

logger = logging.getLogger(APP_NAME)

CIPHER = SymmetricKeyAlgorithm.AES128


class SecretChannel:
    """Encrypts secrets into the repository and decrypts them back.

    Attributes:
        engine (SyncEngine): Supplies the repository layout.
        key (pgpy.PGPKey): The private key; its public half encrypts.
        passphrase (Callable[[], str] | None): Asked once, only if the key is
            protected.
    """

    def __init__(
        self,
        engine: SyncEngine,
        key: pgpy.PGPKey,
        passphrase: Callable[[], str] | None = None,
    ):
        self.engine = engine
        self.key = key
        self.passphrase = passphrase
        self._passphrase_value: str | None = None

    def repository_path(self, path: Path) -> Path:
        return self.engine.repository_path(path, Category.SECRET)

    def encrypt(self, plaintext: bytes, source: Path) -> str:
        """Returns `plaintext` as an armored message for the key's public part."""
        try:
            message = pgpy.PGPMessage.new(
                plaintext,
                format="b",
                compression=CompressionAlgorithm.Uncompressed,
            )
            encrypted = self.key.pubkey.encrypt(message, cipher=CIPHER)
        except (PGPError, ValueError, TypeError) as e:
            raise FailedEncryptingContent(source, e) from e
        return str(encrypted)

    def decrypt(self, armored: str, source: Path) -> str:
        """Decrypts an armored message and returns its literal data as text.

        Raises:
            PGPMessageReadError: If `armored` is not a PGP message.
            KeyLocked: If the key is protected and cannot be unlocked.
            FailedDecryptingContent: If the message is not for this key.
            NoContentInPGPMessage: If no literal data packet is present.
            MessageNotUTF8Encoded: If the literal data is not UTF-8.
        """
        try:
            message = pgpy.PGPMessage.from_blob(armored)
        except (PGPError, ValueError, TypeError, NotImplementedError) as e:
            raise PGPMessageReadError(source, e) from e

        if not self.key.is_protected:
            return _literal_text(self._decrypt_message(message, source), source)

        try:
            with self.key.unlock(self._get_passphrase()):
                decrypted = self._decrypt_message(message, source)
        except PGPDecryptionError as e:
            raise KeyLocked(e) from e
        return _literal_text(decrypted, source)

    def _decrypt_message(
        self, message: pgpy.PGPMessage, source: Path
    ) -> pgpy.PGPMessage:
        try:
            return self.key.decrypt(message)
        except (PGPError, PGPDecryptionError, ValueError) as e:
            raise FailedDecryptingContent(source) from e

    def _get_passphrase(self) -> str:
        if self._passphrase_value is None:
            if self.passphrase is None:
                raise KeyLocked()
            self._passphrase_value = self.passphrase()
        return self._passphrase_value

    def export(self, path: Path) -> EntryOutcome:
        """Encrypts `path` into the repository, leaving the plaintext in place."""
        if not inspect_path(path)[1]:
            return EntryOutcome(
                path, Category.SECRET, EntryStatus.MISSING, TrackedFileNotFound(path)
            )

        try:
            plaintext = path.read_bytes()
        except OSError as e:
            raise CouldNotOpenFile(path, e) from e
        try:
            plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MessageNotUTF8Encoded(path) from e

        armored = self.encrypt(plaintext, path)

        repo_path = ensure_parent_dirs(self.repository_path(path))
        try:
            repo_path.write_text(armored, encoding="utf-8")
        except OSError as e:
            raise FailedWritingToFile(repo_path, e) from e

        return EntryOutcome(path, Category.SECRET, EntryStatus.WRITTEN)

    def import_(self, path: Path) -> EntryOutcome:
        """Decrypts the repository copy of `path` onto the filesystem."""
        repo_path = self.repository_path(path)
        if not inspect_path(repo_path)[1]:
            return EntryOutcome(
                path,
                Category.SECRET,
                EntryStatus.MISSING,
                TrackedFileNotFound(repo_path),
            )

        try:
            armored = repo_path.read_text(encoding="utf-8")
        except OSError as e:
            raise CouldNotOpenFile(repo_path, e) from e
        except UnicodeDecodeError as e:
            raise PGPMessageReadError(repo_path, e) from e

        clear = self.decrypt(armored, repo_path)

        backup = None
        if any(inspect_path(path)):
            backup = backup_path(path)
            move(path, backup)
            logger.info(f"Backed up '{path}' to '{backup}'")

        ensure_parent_dirs(path)
        try:
            path.write_text(clear, encoding="utf-8", newline="")
            path.chmod(0o600)
        except OSError as e:
            raise FailedWritingToFile(path, e) from e

        return EntryOutcome(path, Category.SECRET, EntryStatus.WRITTEN, backup=backup)

    def sync_entry(self, path: Path, direction: Direction) -> EntryOutcome:
        """Transfers one secret; failures are returned, never raised."""
        try:
            if direction is Direction.TO_REPOSITORY:
                outcome = self.export(path)
            else:
                outcome = self.import_(path)
        except DotconfError as e:
            outcome = EntryOutcome(path, Category.SECRET, EntryStatus.FAILED, e)

        log_outcome(outcome)
        return outcome

    def sync(self, paths: list[Path], direction: Direction) -> list[EntryOutcome]:
        return [self.sync_entry(path, direction) for path in paths]


def release(engine: SyncEngine, path: Path) -> Path | None:
    """Archives the ciphertext of an untracked secret.

    The plaintext on the filesystem is left untouched.

    Returns:
        Path | None: The archive location, or None if there was no copy.
    """
    repo_path = engine.repository_path(path, Category.SECRET)
    if not any(inspect_path(repo_path)):
        return None
    return archive(repo_path, engine.archive_path(repo_path, Category.SECRET))


def _literal_text(decrypted: pgpy.PGPMessage, source: Path) -> str:
    try:
        kind = decrypted.type
    except NotImplementedError:
        kind = None
    if kind != "literal":
        raise NoContentInPGPMessage(source)

    try:
        content = decrypted.message
        if isinstance(content, str):
            return content
        return bytes(content).decode("utf-8")
    except UnicodeDecodeError as e:
        raise MessageNotUTF8Encoded(source) from e
