# OTP - Time-based One-Time Passwords (RFC 6238)
#
# Base32 secret validation, code generation/verification and the
# countdown math used by the live code list.

import hashlib
import hmac
import re
import secrets
import struct
import time
from enum import Enum
from typing import Callable, Optional

from ..core.exceptions import ValidationError

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
MIN_SECRET_LENGTH = 8
MAX_DIGITS = 10

DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30
DEFAULT_WINDOW = 1

_BASE32_RE = re.compile(r"^[A-Z2-7]+$")
_WHITESPACE_RE = re.compile(r"\s+")


class OTPAlgorithm(str, Enum):
    """HMAC hash functions supported for code generation."""
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def hashfunc(self):
        return {
            OTPAlgorithm.SHA1: hashlib.sha1,
            OTPAlgorithm.SHA256: hashlib.sha256,
            OTPAlgorithm.SHA512: hashlib.sha512,
        }[self]


DEFAULT_ALGORITHM = OTPAlgorithm.SHA1


def normalize_secret(secret: str) -> str:
    """Uppercase, drop all whitespace and trailing '=' padding."""
    if not isinstance(secret, str):
        return ""
    return _WHITESPACE_RE.sub("", secret).upper().rstrip("=")


def is_valid_secret(secret: str) -> bool:
    """True if the normalized secret is Base32 and at least 8 characters."""
    clean = normalize_secret(secret)
    return bool(_BASE32_RE.match(clean)) and len(clean) >= MIN_SECRET_LENGTH


def coerce_algorithm(algorithm) -> OTPAlgorithm:
    """Map 'sha1', 'SHA-256', OTPAlgorithm.SHA512, ... onto OTPAlgorithm."""
    if isinstance(algorithm, OTPAlgorithm):
        return algorithm
    if algorithm is None or algorithm == "":
        return DEFAULT_ALGORITHM
    name = str(algorithm).upper().replace("-", "")
    try:
        return OTPAlgorithm(name)
    except ValueError:
        raise ValidationError(f"Unsupported algorithm: {algorithm}") from None


def validate_otp_params(digits, period, algorithm=DEFAULT_ALGORITHM) -> OTPAlgorithm:
    """
    Reject zero/negative/non-integer digits and period before generation.

    Returns:
        The coerced OTPAlgorithm
    """
    if isinstance(digits, bool) or not isinstance(digits, int) or digits <= 0:
        raise ValidationError(f"Digits must be a positive integer, got {digits!r}")
    if digits > MAX_DIGITS:
        raise ValidationError(f"Digits must be at most {MAX_DIGITS}, got {digits}")
    if isinstance(period, bool) or not isinstance(period, int) or period <= 0:
        raise ValidationError(f"Period must be a positive integer, got {period!r}")
    return coerce_algorithm(algorithm)


def decode_secret(secret: str) -> bytes:
    """
    Decode a Base32 secret into raw HMAC key bytes.

    Lenient about length: 5 bits are taken per character and whatever is
    left over once the last full byte is emitted is dropped, so secrets of
    any length >= 8 decode (base64.b32decode rejects 9, 11, 14, ... chars).
    """
    if not is_valid_secret(secret):
        raise ValidationError("Invalid Base32 secret key")

    out = bytearray()
    buffer = 0
    bits = 0
    for char in normalize_secret(secret):
        buffer = (buffer << 5) | BASE32_ALPHABET.index(char)
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)
            buffer &= (1 << bits) - 1
    return bytes(out)


def hotp(key: bytes, counter: int, digits: int, algorithm: OTPAlgorithm) -> str:
    """HMAC-based code for one counter value (RFC 4226 dynamic truncation)."""
    msg = struct.pack(">Q", counter)
    digest = hmac.new(key, msg, algorithm.hashfunc).digest()

    offset = digest[-1] & 0x0F
    code = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    code = code % (10 ** digits)
    return str(code).zfill(digits)


def format_display(code: Optional[str]) -> str:
    """Group a code for display: 6 -> 'XXX XXX', 8 -> 'XXXX XXXX'."""
    if not code:
        return "--- ---"
    if len(code) == 6:
        return f"{code[:3]} {code[3:]}"
    if len(code) == 8:
        return f"{code[:4]} {code[4:]}"
    return code


def generate_secret(length: int = 32) -> str:
    """Random Base32 secret of the given length (no padding)."""
    if length < MIN_SECRET_LENGTH:
        raise ValidationError(f"Secret length must be at least {MIN_SECRET_LENGTH}")
    return "".join(secrets.choice(BASE32_ALPHABET) for _ in range(length))


class CodeEngine:
    """
    Generates and verifies RFC 6238 time-based codes.

    All time arithmetic uses integer seconds since the epoch taken from
    ``clock``; tests inject a fixed clock.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    def now(self) -> int:
        return int(self.clock())

    def counter(self, period: int = DEFAULT_PERIOD, for_time: Optional[int] = None) -> int:
        """Time step fed into the HMAC: floor(unix_time / period)."""
        validate_otp_params(DEFAULT_DIGITS, period)
        t = self.now() if for_time is None else int(for_time)
        return t // period

    def generate_code(
        self,
        secret: str,
        digits: int = DEFAULT_DIGITS,
        period: int = DEFAULT_PERIOD,
        algorithm=DEFAULT_ALGORITHM,
        for_time: Optional[int] = None,
    ) -> str:
        """
        Generate the code for the current (or given) time.

        Raises:
            ValidationError: invalid secret, digits, period or algorithm
        """
        algo = validate_otp_params(digits, period, algorithm)
        key = decode_secret(secret)
        return hotp(key, self.counter(period, for_time), digits, algo)

    def verify_code(
        self,
        token: str,
        secret: str,
        digits: int = DEFAULT_DIGITS,
        period: int = DEFAULT_PERIOD,
        algorithm=DEFAULT_ALGORITHM,
        window: int = DEFAULT_WINDOW,
        for_time: Optional[int] = None,
    ) -> bool:
        """Accept the token for the current counter or any counter within ±window."""
        algo = validate_otp_params(digits, period, algorithm)
        if window < 0:
            raise ValidationError(f"Window must not be negative, got {window}")
        key = decode_secret(secret)

        candidate = _WHITESPACE_RE.sub("", token or "")
        if len(candidate) != digits or not candidate.isdigit():
            return False

        current = self.counter(period, for_time)
        matched = False
        for step in range(-window, window + 1):
            counter = current + step
            if counter < 0:
                continue
            # Check every step so timing does not reveal which one matched
            if hmac.compare_digest(candidate, hotp(key, counter, digits, algo)):
                matched = True
        return matched

    def remaining_seconds(self, period: int = DEFAULT_PERIOD) -> int:
        """Seconds left in the current window, in [1, period]."""
        validate_otp_params(DEFAULT_DIGITS, period)
        return period - (self.now() % period)

    def elapsed_fraction(self, period: int = DEFAULT_PERIOD) -> float:
        """0.0 right after a refresh, approaching 1.0 before expiry."""
        return 1 - self.remaining_seconds(period) / period
