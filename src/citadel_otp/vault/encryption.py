# Vault - Encryption Service
#
# Password/PIN -> encryption key (PBKDF2-SHA256, 310k iterations)
# Account list encryption (AES-256-GCM), fresh salt + nonce per call
# PIN verification hash (PBKDF2-SHA256, 100k iterations, own salt)

import base64
import binascii
import getpass
import hashlib
import logging
import os
import platform
import secrets
import socket
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.exceptions import AuthenticationFailure, FormatError, ValidationError
from .models import VAULT_FORMAT_VERSION, EncryptedBundle, PinRecord

logger = logging.getLogger(__name__)

MIN_PIN_LENGTH = 4
DEFAULT_KEY_TAG = "citadel-otp-default-key-v1"


# ── Encryption context ───────────────────────────────────────────────


@dataclass(frozen=True)
class UserPin:
    """Encrypt under a user-chosen PIN/password."""
    secret: str

    def __repr__(self) -> str:
        return "UserPin(secret=***)"


@dataclass(frozen=True)
class DeviceDefault:
    """Encrypt under the device-derived default key (PIN protection off)."""


EncryptionContext = Union[UserPin, DeviceDefault]


def resolve_context(password: Union[str, EncryptionContext, None]) -> EncryptionContext:
    """Map a boundary value onto an EncryptionContext; falsy -> DeviceDefault."""
    if isinstance(password, (UserPin, DeviceDefault)):
        return password
    if not password:
        return DeviceDefault()
    return UserPin(password)


def validate_pin(pin: str) -> Tuple[bool, str]:
    """
    Check a new PIN before it is set up.

    Returns:
        (is_valid, error_message)
    """
    if not pin or len(pin) < MIN_PIN_LENGTH:
        return False, f"PIN must be at least {MIN_PIN_LENGTH} digits"
    return True, ""


# ── Default key ──────────────────────────────────────────────────────


def collect_environment_attributes() -> Sequence[str]:
    """Stable local attributes the default key is derived from."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return [
        "citadel-otp",
        socket.gethostname() or "unknown",
        platform.system() or "unknown",
        platform.machine() or "unknown",
        format(uuid.getnode(), "x"),
        user,
    ]


class DefaultKeyCache:
    """Process-lifetime memo of the default key with explicit invalidation."""

    def __init__(self):
        self._value: Optional[str] = None

    def get(self) -> Optional[str]:
        return self._value

    def set(self, value: str) -> None:
        self._value = value

    def clear(self) -> None:
        self._value = None


# ── Crypto engine ────────────────────────────────────────────────────


class VaultCrypto:
    """
    Handles encryption/decryption of the vault's account list.

    Flow:
    1. Caller supplies an EncryptionContext (UserPin or DeviceDefault)
    2. PBKDF2 derives a 256-bit key from the password + fresh salt
    3. AES-256-GCM encrypts/decrypts with a fresh 96-bit nonce
    4. Salt, nonce and ciphertext travel together as an EncryptedBundle

    The default key used for DeviceDefault is obfuscation, not secrecy:
    anyone with local code execution can rebuild it. Users who care
    should enable a PIN.
    """

    # PBKDF2 parameters
    PBKDF2_ITERATIONS = 310_000
    PIN_ITERATIONS = 100_000
    KEY_LENGTH = 32    # 256 bits for AES-256
    SALT_LENGTH = 16   # 128-bit salt
    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)

    def __init__(
        self,
        environment: Callable[[], Sequence[str]] = collect_environment_attributes,
    ):
        self._environment = environment
        self.default_key_cache = DefaultKeyCache()

    @staticmethod
    def _pbkdf2(secret: str, salt: bytes, iterations: int, length: int) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt,
            iterations=iterations,
            backend=default_backend()
        )
        return kdf.derive(secret.encode("utf-8"))

    def derive_key(self, password: str, salt: bytes) -> bytes:
        """
        Derive the AES key from a password using PBKDF2.

        Args:
            password: PIN/password or the default key
            salt: Random salt (stored with the bundle)

        Returns:
            256-bit encryption key
        """
        return self._pbkdf2(password, salt, self.PBKDF2_ITERATIONS, self.KEY_LENGTH)

    def get_default_key(self) -> str:
        """Deterministic device key, cached until clear_default_key_cache()."""
        cached = self.default_key_cache.get()
        if cached:
            return cached

        material = ":".join([*self._environment(), DEFAULT_KEY_TAG])
        digest = hashlib.sha256(material.encode("utf-8")).digest()
        key = self.encode_for_storage(digest)
        self.default_key_cache.set(key)
        return key

    def clear_default_key_cache(self) -> None:
        """Invalidate the cached default key (logout/security events)."""
        self.default_key_cache.clear()

    def _password_for(self, context: EncryptionContext) -> str:
        if isinstance(context, UserPin):
            if not context.secret:
                raise ValidationError("PIN/password must not be empty")
            return context.secret
        if isinstance(context, DeviceDefault):
            return self.get_default_key()
        raise TypeError(f"Unknown encryption context: {type(context).__name__}")

    def encrypt(self, plaintext: str, context: EncryptionContext) -> EncryptedBundle:
        """
        Encrypt plaintext using AES-256-GCM.

        A new salt and nonce are generated on every call, even for the
        same password.
        """
        salt = os.urandom(self.SALT_LENGTH)
        nonce = os.urandom(self.NONCE_LENGTH)
        key = self.derive_key(self._password_for(context), salt)

        ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)

        return EncryptedBundle(
            salt=self.encode_for_storage(salt),
            iv=self.encode_for_storage(nonce),
            ciphertext=self.encode_for_storage(ciphertext),
            version=VAULT_FORMAT_VERSION,
        )

    def decrypt(self, bundle: EncryptedBundle, context: EncryptionContext) -> str:
        """
        Decrypt an encrypted bundle.

        Raises:
            AuthenticationFailure: wrong password or corrupted data; the two
                cases are deliberately indistinguishable
        """
        password = self._password_for(context)
        try:
            salt = self.decode_from_storage(bundle.salt)
            nonce = self.decode_from_storage(bundle.iv)
            ciphertext = self.decode_from_storage(bundle.ciphertext)
            key = self.derive_key(password, salt)
            plaintext_bytes = AESGCM(key).decrypt(nonce, ciphertext, None)
            return plaintext_bytes.decode("utf-8")
        except (InvalidTag, binascii.Error, ValueError, TypeError):
            # UnicodeDecodeError is a ValueError
            raise AuthenticationFailure() from None

    # ── PIN ──────────────────────────────────────────────────────────

    def hash_pin(self, pin: str, salt: bytes) -> str:
        """PIN verification hash, separate from vault key derivation."""
        return self.encode_for_storage(
            self._pbkdf2(pin, salt, self.PIN_ITERATIONS, self.KEY_LENGTH)
        )

    def setup_pin(self, pin: str) -> PinRecord:
        """Generate a fresh salt and hash for a new PIN."""
        is_valid, error_msg = validate_pin(pin)
        if not is_valid:
            raise ValidationError(error_msg)
        salt = os.urandom(self.SALT_LENGTH)
        return PinRecord(hash=self.hash_pin(pin, salt), salt=self.encode_for_storage(salt))

    def verify_pin(self, pin: str, stored_hash: str, stored_salt: str) -> bool:
        """
        Verify a PIN against a stored hash + salt (constant-time compare).

        Raises:
            FormatError: the stored salt is not valid base64
        """
        if not pin:
            return False
        try:
            salt = self.decode_from_storage(stored_salt)
        except (binascii.Error, ValueError):
            raise FormatError("Corrupted PIN record") from None
        return secrets.compare_digest(self.hash_pin(pin, salt), stored_hash)

    # ── Encoding ─────────────────────────────────────────────────────

    @staticmethod
    def encode_for_storage(data: bytes) -> str:
        """Encode binary data as base64 text for JSON storage."""
        return base64.b64encode(data).decode("utf-8")

    @staticmethod
    def decode_from_storage(data: str) -> bytes:
        """Decode base64 text, rejecting non-alphabet characters."""
        return base64.b64decode(data.encode("utf-8"), validate=True)
