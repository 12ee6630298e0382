"""Tests for the encrypted secret channel."""

from pathlib import Path
from unittest.mock import MagicMock

import pgpy
import pytest

from dotconf import keys
from dotconf.errors import (
    CouldNotOpenFile,
    FailedDecryptingContent,
    KeyLocked,
    MessageNotUTF8Encoded,
    PGPMessageReadError,
)
from dotconf.ledger import Category
from dotconf.secret_channel import SecretChannel, release
from dotconf.sync import Direction, EntryStatus, SyncEngine


@pytest.fixture(scope="module")
def protected_key() -> pgpy.PGPKey:
    """A second key, protected by the passphrase 'hunter2'."""
    return keys.build_key("dotconf-protected", passphrase="hunter2")


@pytest.fixture
def channel(engine: SyncEngine, pgp_key: pgpy.PGPKey) -> SecretChannel:
    return SecretChannel(engine, pgp_key)


def test_encrypt_decrypt_roundtrip(channel: SecretChannel, tmp_path: Path) -> None:
    """Verifies that decrypting an encrypted payload yields the original text."""
    armored = channel.encrypt(b"hello", tmp_path / "f")

    assert armored.startswith("-----BEGIN PGP MESSAGE-----")
    assert channel.decrypt(armored, tmp_path / "f") == "hello"


def test_decrypt_with_wrong_key_fails(
    channel: SecretChannel, engine: SyncEngine, protected_key: pgpy.PGPKey
) -> None:
    """Verifies that a message for another key is reported as a key mismatch."""
    other = SecretChannel(engine, protected_key, passphrase=lambda: "hunter2")
    armored = other.encrypt(b"not for you", Path("x"))

    with pytest.raises(FailedDecryptingContent):
        channel.decrypt(armored, Path("x"))


def test_decrypt_garbage_is_read_error(channel: SecretChannel) -> None:
    with pytest.raises(PGPMessageReadError):
        channel.decrypt("this is not a pgp message", Path("x"))


def test_protected_key_without_passphrase(
    engine: SyncEngine, protected_key: pgpy.PGPKey
) -> None:
    """Verifies that a protected key with no passphrase source is locked."""
    channel = SecretChannel(engine, protected_key)
    armored = channel.encrypt(b"secret", Path("x"))

    with pytest.raises(KeyLocked):
        channel.decrypt(armored, Path("x"))


def test_protected_key_wrong_passphrase(
    engine: SyncEngine, protected_key: pgpy.PGPKey
) -> None:
    channel = SecretChannel(engine, protected_key, passphrase=lambda: "wrong")
    armored = channel.encrypt(b"secret", Path("x"))

    with pytest.raises(KeyLocked):
        channel.decrypt(armored, Path("x"))


def test_protected_key_asks_passphrase_once(
    engine: SyncEngine, protected_key: pgpy.PGPKey, mocker: MagicMock
) -> None:
    """Verifies that the passphrase callable is consulted a single time.

    Args:
        engine (SyncEngine): Supplies the repository layout.
        protected_key (pgpy.PGPKey): The passphrase-protected key.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    ask = mocker.Mock(return_value="hunter2")
    channel = SecretChannel(engine, protected_key, passphrase=ask)
    first = channel.encrypt(b"one", Path("a"))
    second = channel.encrypt(b"two", Path("b"))

    assert channel.decrypt(first, Path("a")) == "one"
    assert channel.decrypt(second, Path("b")) == "two"
    ask.assert_called_once_with()
    assert not protected_key.is_unlocked


def test_export_keeps_plaintext(channel: SecretChannel, home: Path) -> None:
    """Verifies that exporting writes ciphertext and leaves the file in place."""
    secret = home / ".netrc"
    secret.write_text("machine example.com password s3cret\n")

    outcome = channel.sync_entry(secret, Direction.TO_REPOSITORY)

    repo_copy = channel.repository_path(secret)
    assert outcome.status is EntryStatus.WRITTEN
    assert outcome.category is Category.SECRET
    assert repo_copy.parent == channel.engine.content_root(Category.SECRET)
    assert "s3cret" not in repo_copy.read_text()
    assert not secret.is_symlink()
    assert secret.read_text() == "machine example.com password s3cret\n"


def test_export_rejects_binary(channel: SecretChannel, home: Path) -> None:
    secret = home / ".blob"
    secret.write_bytes(b"\xff\xfe\x00binary")

    outcome = channel.sync_entry(secret, Direction.TO_REPOSITORY)

    assert outcome.status is EntryStatus.FAILED
    assert isinstance(outcome.error, MessageNotUTF8Encoded)
    assert not channel.repository_path(secret).exists()


def test_import_restores_with_backup(channel: SecretChannel, home: Path) -> None:
    """Verifies that importing backs up the local file and writes the plaintext."""
    secret = home / ".pgpass"
    secret.write_text("db:5432:*:user:pw\r\n")
    channel.export(secret)
    secret.write_text("local edit")

    outcome = channel.sync_entry(secret, Direction.TO_FILESYSTEM)

    assert outcome.status is EntryStatus.WRITTEN
    assert outcome.backup is not None
    assert outcome.backup.read_text() == "local edit"
    assert secret.read_bytes() == b"db:5432:*:user:pw\r\n"
    assert secret.stat().st_mode & 0o777 == 0o600


def test_import_missing_ciphertext(channel: SecretChannel, home: Path) -> None:
    outcome = channel.sync_entry(home / ".absent", Direction.TO_FILESYSTEM)

    assert outcome.status is EntryStatus.MISSING
    assert not (home / ".absent").exists()


def test_import_corrupt_ciphertext_fails_entry(
    channel: SecretChannel, home: Path
) -> None:
    """Verifies that one unreadable message fails its entry but not the pass."""
    good = home / ".good"
    good.write_text("fine")
    channel.export(good)
    bad_copy = channel.repository_path(home / ".bad")
    bad_copy.write_text("garbage")

    outcomes = channel.sync([home / ".bad", good], Direction.TO_FILESYSTEM)

    assert outcomes[0].status is EntryStatus.FAILED
    assert isinstance(outcomes[0].error, PGPMessageReadError)
    assert outcomes[1].status is EntryStatus.WRITTEN


def test_release_archives_ciphertext(channel: SecretChannel, home: Path) -> None:
    """Verifies that untracking a secret archives its repository copy only."""
    secret = home / ".netrc"
    secret.write_text("x")
    channel.export(secret)

    archived = release(channel.engine, secret)

    assert archived == channel.engine.repository_root / "deleted" / "secrets" / ".netrc"
    assert archived.read_text().startswith("-----BEGIN PGP MESSAGE-----")
    assert not channel.repository_path(secret).exists()
    assert secret.read_text() == "x"


def test_unreadable_secret_does_not_stop_pass(
    channel: SecretChannel, home: Path, mocker: MagicMock
) -> None:
    """Verifies that a secret the OS refuses to examine fails only its own entry.

    Args:
        channel (SecretChannel): Channel for the session key.
        home (Path): The fake home directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    (home / ".locked").write_text("hidden")
    (home / ".ok").write_text("token")
    real_exists = Path.exists

    def exists(self: Path, *args: object, **kwargs: object) -> bool:
        if self.name == ".locked":
            raise PermissionError(13, "Permission denied", str(self))
        return real_exists(self, *args, **kwargs)

    mocker.patch.object(Path, "exists", autospec=True, side_effect=exists)

    outcomes = channel.sync([home / ".locked", home / ".ok"], Direction.TO_REPOSITORY)

    assert outcomes[0].status is EntryStatus.FAILED
    assert isinstance(outcomes[0].error, CouldNotOpenFile)
    assert outcomes[1].status is EntryStatus.WRITTEN
    assert channel.repository_path(home / ".ok").is_file()
