"""AES-256-GCM encryption for store credentials and generation keys.

Key source precedence:
    1. STORELOOM_CREDENTIAL_KEY env var (base64-encoded 32-byte key)
    2. Key file in the data directory (auto-generated on first use)

Ciphertext format: versioned JSON envelope with AAD binding, so an
envelope copied onto another row fails to decrypt.
"""

import base64
import binascii
import json
import logging
import os
import platform
import stat
from pathlib import Path

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

KEY_FILENAME = ".storeloom_key"
_CURRENT_VERSION = 1
_ALGORITHM = "AES-256-GCM"
_REQUIRED_KEY_LENGTH = 32


class CredentialDecryptionError(Exception):
    """Raised when credential decryption fails for any reason."""


def _read_key_file(key_path: Path) -> bytes:
    key = key_path.read_bytes()
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise ValueError(
            f"Key file {key_path} has invalid length {len(key)} "
            f"(expected {_REQUIRED_KEY_LENGTH}). Delete the file to regenerate."
        )
    return key


def get_or_create_key(key_dir: Path | None = None) -> bytes:
    """Load or generate the 32-byte AES-256 encryption key.

    Args:
        key_dir: Directory for the key file. Defaults to the data directory.

    Returns:
        32-byte encryption key.

    Raises:
        ValueError: If the key has an invalid length or invalid base64.
    """
    env_key = os.environ.get("STORELOOM_CREDENTIAL_KEY", "").strip()
    if env_key:
        try:
            key = base64.b64decode(env_key, validate=True)
        except binascii.Error as e:
            raise ValueError(
                f"STORELOOM_CREDENTIAL_KEY contains invalid base64: {e}"
            ) from e
        if len(key) != _REQUIRED_KEY_LENGTH:
            raise ValueError(
                f"STORELOOM_CREDENTIAL_KEY has invalid length {len(key)} "
                f"(expected {_REQUIRED_KEY_LENGTH})"
            )
        return key

    if key_dir is None:
        from src.utils.paths import get_data_dir

        key_dir = get_data_dir()
    key_dir.mkdir(parents=True, exist_ok=True)
    key_path = key_dir / KEY_FILENAME

    if key_path.exists():
        return _read_key_file(key_path)

    key = os.urandom(_REQUIRED_KEY_LENGTH)
    try:
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        try:
            os.write(fd, key)
        finally:
            os.close(fd)
    except FileExistsError:
        # Another worker created the file first
        return _read_key_file(key_path)

    if platform.system() != "Windows":
        os.chmod(key_path, stat.S_IRUSR | stat.S_IWUSR)

    logger.info("Generated new encryption key at %s", key_path)
    return key


def encrypt_credentials(credentials: dict, key: bytes, aad: str = "") -> str:
    """Encrypt a credentials dict to a versioned JSON envelope string.

    Returns:
        JSON string envelope: {"v":1, "alg":"AES-256-GCM", "nonce":"<b64>", "ct":"<b64>"}.

    Raises:
        ValueError: If key is not exactly 32 bytes.
    """
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise ValueError(
            f"Encryption key must be exactly {_REQUIRED_KEY_LENGTH} bytes "
            f"(got {len(key)})."
        )
    nonce = os.urandom(12)
    plaintext = json.dumps(credentials, sort_keys=True).encode("utf-8")
    aad_bytes = aad.encode("utf-8") if aad else None
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, aad_bytes)
    envelope = {
        "v": _CURRENT_VERSION,
        "alg": _ALGORITHM,
        "nonce": base64.b64encode(nonce).decode("ascii"),
        "ct": base64.b64encode(ciphertext).decode("ascii"),
    }
    return json.dumps(envelope)


def decrypt_credentials(encrypted: str, key: bytes, aad: str = "") -> dict:
    """Decrypt a versioned JSON envelope string back to a credentials dict.

    Raises:
        CredentialDecryptionError: If decryption fails for any reason,
            including wrong key length.
    """
    if len(key) != _REQUIRED_KEY_LENGTH:
        raise CredentialDecryptionError(
            f"Decryption key must be exactly {_REQUIRED_KEY_LENGTH} bytes "
            f"(got {len(key)})."
        )

    try:
        envelope = json.loads(encrypted)
    except (json.JSONDecodeError, TypeError) as e:
        raise CredentialDecryptionError(f"Invalid envelope format: {e}") from e

    if not isinstance(envelope, dict):
        raise CredentialDecryptionError("Invalid envelope format: not an object")

    version = envelope.get("v")
    if version != _CURRENT_VERSION:
        raise CredentialDecryptionError(
            f"Unsupported envelope version {version} (expected {_CURRENT_VERSION})"
        )

    alg = envelope.get("alg")
    if alg != _ALGORITHM:
        raise CredentialDecryptionError(
            f"Unsupported algorithm '{alg}' (expected '{_ALGORITHM}')"
        )

    try:
        nonce = base64.b64decode(envelope["nonce"], validate=True)
        ciphertext = base64.b64decode(envelope["ct"], validate=True)
    except (KeyError, TypeError, binascii.Error) as e:
        raise CredentialDecryptionError(f"Malformed envelope fields: {e}") from e

    if len(nonce) != 12:
        raise CredentialDecryptionError(
            f"Invalid nonce length {len(nonce)} (expected 12)"
        )

    try:
        aad_bytes = aad.encode("utf-8") if aad else None
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, aad_bytes)
        result = json.loads(plaintext.decode("utf-8"))
    except Exception as e:
        raise CredentialDecryptionError(f"Decryption failed: {e}") from e
    if not isinstance(result, dict):
        raise CredentialDecryptionError(
            f"Decrypted payload is not a dict (got {type(result).__name__})"
        )
    return result


class CredentialCipher:
    """Key-holding wrapper used by services to seal and open envelopes.

    The key is resolved lazily on first use so importing the service layer
    never touches the filesystem.
    """

    def __init__(self, key: bytes | None = None, key_dir: Path | None = None) -> None:
        self._key = key
        self._key_dir = key_dir

    @property
    def key(self) -> bytes:
        if self._key is None:
            self._key = get_or_create_key(self._key_dir)
        return self._key

    def seal(self, payload: dict, aad: str) -> str:
        """Encrypt ``payload`` bound to ``aad`` (usually 'kind:row_id')."""
        return encrypt_credentials(payload, self.key, aad=aad)

    def open(self, envelope: str, aad: str) -> dict:
        """Decrypt an envelope produced by :meth:`seal` with the same ``aad``."""
        return decrypt_credentials(envelope, self.key, aad=aad)
