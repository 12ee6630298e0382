"""Exception taxonomy for dotconf.

Every error raised on purpose by the package derives from `DotconfError`, so
the CLI can print a single human-readable line for anything expected and
leave real bugs to the traceback.
"""

from pathlib import Path


class DotconfError(Exception):
    """Base class for all expected dotconf failures."""


# --- Resolution ---


class HomeNotDefined(DotconfError):
    def __init__(self) -> None:
        super().__init__("$HOME is not defined")


class SecretKeyRequired(DotconfError):
    def __init__(self) -> None:
        super().__init__(
            "Secret key is required (use --secret-key or set options.secret_key)"
        )


class InvalidPath(DotconfError):
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(f"Path has no parent or file name: '{path}'")


class PathConversionError(DotconfError):
    def __init__(self, path: Path | str, reason: str = "") -> None:
        self.path = Path(path)
        detail = f": {reason}" if reason else ""
        super().__init__(f"Failed resolving path '{path}'{detail}")


# --- Filesystem ---


class CouldNotCreateDirectories(DotconfError):
    def __init__(self, path: Path, err: OSError) -> None:
        self.path = path
        self.err = err
        super().__init__(f"Could not create directories leading to '{path}': {err}")


class CouldNotOpenFile(DotconfError):
    def __init__(self, path: Path, err: OSError) -> None:
        self.path = path
        self.err = err
        super().__init__(f"Could not open file '{path}': {err}")


class FailedWritingToFile(DotconfError):
    def __init__(self, path: Path, err: OSError) -> None:
        self.path = path
        self.err = err
        super().__init__(f"An error occurred while writing to '{path}': {err}")


class RenameFailed(DotconfError):
    def __init__(self, src: Path, dst: Path, err: OSError) -> None:
        self.src = src
        self.dst = dst
        self.err = err
        super().__init__(f"Unable to move '{src}' to '{dst}': {err}")


# --- Ledger ---


class LedgerReadError(DotconfError):
    def __init__(self, path: Path, err: OSError | UnicodeDecodeError) -> None:
        self.path = path
        self.err = err
        super().__init__(f"Unable to read ledger '{path}': {err}")


class LedgerWriteError(DotconfError):
    def __init__(self, path: Path, err: OSError) -> None:
        self.path = path
        self.err = err
        super().__init__(f"Unable to write ledger '{path}': {err}")


# --- Sync entries ---


class TrackedFileNotFound(DotconfError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"File not found: '{path}'")


class UntrackedSymlinkedFile(DotconfError):
    def __init__(self, path: Path, target: Path) -> None:
        self.path = path
        self.target = target
        super().__init__(
            f"File is not a dotfile, but a symlink to '{target}': '{path}'"
        )


class SymlinkFailed(DotconfError):
    def __init__(self, link: Path, target: Path, err: OSError) -> None:
        self.link = link
        self.target = target
        self.err = err
        super().__init__(f"Unable to link '{link}' to '{target}': {err}")


class RollbackFailed(DotconfError):
    """Raised when a partially applied transfer could not be undone.

    The filesystem may be left inconsistent, so this is never collected as an
    ordinary entry outcome.
    """

    def __init__(self, path: Path, cause: Exception, err: Exception) -> None:
        self.path = path
        self.cause = cause
        self.err = err
        super().__init__(
            f"Failed rolling back changes for '{path}' after '{cause}': {err}"
        )


# --- Cryptography ---


class KeyLoadError(DotconfError):
    def __init__(self, path: Path, err: Exception) -> None:
        self.path = path
        self.err = err
        super().__init__(f"An error occurred while reading PGP key '{path}': {err}")


class KeyAlreadyExists(DotconfError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Refusing to overwrite existing key '{path}'")


class KeyGenerationFailed(DotconfError):
    def __init__(self, err: Exception) -> None:
        self.err = err
        super().__init__(f"PGP key generation failed: {err}")


class KeyLocked(DotconfError):
    def __init__(self, err: Exception | None = None) -> None:
        self.err = err
        detail = f": {err}" if err else " (no passphrase supplied)"
        super().__init__(f"Failed unlocking private key{detail}")


class FailedEncryptingContent(DotconfError):
    def __init__(self, path: Path, err: Exception) -> None:
        self.path = path
        self.err = err
        super().__init__(f"An error occurred while encrypting '{path}': {err}")


class PGPMessageReadError(DotconfError):
    def __init__(self, path: Path, err: Exception) -> None:
        self.path = path
        self.err = err
        super().__init__(f"Error reading PGP message in '{path}': {err}")


class FailedDecryptingContent(DotconfError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Error while decrypting '{path}': incorrect key")


class NoContentInPGPMessage(DotconfError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"No literal data in decrypted message '{path}'")


class MessageNotUTF8Encoded(DotconfError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Content of decrypted message '{path}' is not UTF-8")
