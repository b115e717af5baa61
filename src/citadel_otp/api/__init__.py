# API Module - Local REST API for the OTP vault

from .security import get_session_token, initialize_session_token, verify_session_token

__all__ = [
    "initialize_session_token",
    "get_session_token",
    "verify_session_token",
]
