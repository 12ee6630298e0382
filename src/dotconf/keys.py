import logging
from pathlib import Path

import pgpy
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)
from pgpy.errors import PGPError

from .constants import APP_NAME
from .errors import (
    CouldNotOpenFile,
    FailedWritingToFile,
    KeyAlreadyExists,
    KeyGenerationFailed,
    KeyLoadError,
)
from .paths import ensure_parent_dirs

logger = logging.getLogger(APP_NAME)

KEY_SIZE = 2048
KEY_USAGE = {KeyFlags.Sign, KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage}


def build_key(name: str, passphrase: str | None = None) -> pgpy.PGPKey:
    """Generates a self-signed RSA key usable for the secret channel.

    The primary key signs and encrypts but does not certify other keys.
    Preferences advertise AES-256, SHA-256 and ZLIB. The key is protected
    only when a non-empty passphrase is given.

    Args:
        name (str): User id attached to the key.
        passphrase (str | None): Optional passphrase protecting the key.

    Returns:
        pgpy.PGPKey: The generated private key.

    Raises:
        KeyGenerationFailed: If PGPy rejects any step.
    """
    try:
        key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, KEY_SIZE)
        uid = pgpy.PGPUID.new(name)
        key.add_uid(
            uid,
            usage=KEY_USAGE,
            hashes=[HashAlgorithm.SHA256],
            ciphers=[SymmetricKeyAlgorithm.AES256],
            compression=[CompressionAlgorithm.ZLIB],
        )
        if passphrase:
            key.protect(passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    except (PGPError, ValueError, TypeError) as e:
        raise KeyGenerationFailed(e) from e
    return key


def generate_key(output_path: Path, name: str, passphrase: str | None = None) -> Path:
    """Generates a key and writes it, armored, to a new file.

    Args:
        output_path (Path): Destination of the armored secret key.
        name (str): User id attached to the key.
        passphrase (str | None): Optional passphrase protecting the key.

    Returns:
        Path: The written key file.

    Raises:
        KeyAlreadyExists: If `output_path` exists.
        CouldNotCreateDirectories: If the parent directory cannot be created.
        KeyGenerationFailed: If key generation fails.
        FailedWritingToFile: If the armored key cannot be written.
    """
    if output_path.exists() or output_path.is_symlink():
        raise KeyAlreadyExists(output_path)
    ensure_parent_dirs(output_path)

    key = build_key(name, passphrase)

    try:
        with open(output_path, "x", encoding="utf-8") as f:
            f.write(str(key))
    except FileExistsError:
        raise KeyAlreadyExists(output_path) from None
    except OSError as e:
        raise FailedWritingToFile(output_path, e) from e

    output_path.chmod(0o600)
    logger.info(f"Generated PGP key {key.fingerprint} at '{output_path}'")
    return output_path


def load_key(path: Path) -> pgpy.PGPKey:
    """Reads an armored secret key from `path`.

    Raises:
        CouldNotOpenFile: If the file cannot be read.
        KeyLoadError: If the content is not a usable secret key.
    """
    try:
        blob = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CouldNotOpenFile(path, e) from e
    except UnicodeDecodeError as e:
        raise KeyLoadError(path, e) from e

    try:
        key, _ = pgpy.PGPKey.from_blob(blob)
    except (PGPError, ValueError, TypeError, NotImplementedError) as e:
        raise KeyLoadError(path, e) from e

    if key.is_public:
        raise KeyLoadError(path, ValueError("expected a secret key, got a public key"))
    return key
