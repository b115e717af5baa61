# OTP Module - Time-based codes and provisioning URIs

from .totp import (
    CodeEngine,
    OTPAlgorithm,
    format_display,
    generate_secret,
    is_valid_secret,
    normalize_secret,
)
from .uri import ParsedCredential, generate_uri, parse_uri

__all__ = [
    "CodeEngine",
    "OTPAlgorithm",
    "format_display",
    "generate_secret",
    "is_valid_secret",
    "normalize_secret",
    "ParsedCredential",
    "generate_uri",
    "parse_uri",
]
