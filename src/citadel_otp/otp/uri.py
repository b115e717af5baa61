# OTP - Provisioning URI (otpauth://)
#
# Format: otpauth://totp/ISSUER:ACCOUNT?secret=BASE32&issuer=ISSUER
#         &algorithm=SHA1&digits=6&period=30

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Union
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit

from ..core.exceptions import ValidationError
from .totp import DEFAULT_DIGITS, DEFAULT_PERIOD, normalize_secret

SCHEME = "otpauth"
SUPPORTED_TYPES = ("totp", "hotp")
UNKNOWN_ISSUER = "Unknown"

# encodeURIComponent leaves these unescaped
_LABEL_SAFE = "!'()*~"


@dataclass
class ParsedCredential:
    """A credential record produced from a provisioning URI."""

    type: str
    issuer: str
    account: str
    secret: str
    algorithm: str = "SHA1"
    digits: int = DEFAULT_DIGITS
    period: int = DEFAULT_PERIOD

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _int_or_default(raw: str, default: int) -> int:
    try:
        return int(raw.strip())
    except (AttributeError, ValueError):
        return default


def parse_uri(uri: str) -> ParsedCredential:
    """
    Parse an otpauth:// URI into a credential record.

    Raises:
        ValidationError: wrong scheme, unsupported type, malformed URL,
            or missing secret
    """
    if not uri or not isinstance(uri, str):
        raise ValidationError("Invalid URI: must be a string")

    trimmed = uri.strip()
    if not trimmed.lower().startswith(f"{SCHEME}://"):
        raise ValidationError(f"Invalid URI: must start with {SCHEME}://")

    try:
        parts = urlsplit(trimmed)
    except ValueError:
        raise ValidationError("Invalid URI: malformed URL") from None

    otp_type = parts.netloc.lower()
    if otp_type not in SUPPORTED_TYPES:
        raise ValidationError(f"Unsupported OTP type: {otp_type}")

    label = unquote(parts.path[1:] if parts.path.startswith("/") else parts.path)
    issuer = ""
    account = label
    if ":" in label:
        issuer, _, account = label.partition(":")
        issuer = issuer.strip()
        account = account.strip()

    params: Dict[str, str] = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        params.setdefault(key, value)

    # issuer parameter overrides the label issuer if present
    if params.get("issuer"):
        issuer = params["issuer"]

    secret = params.get("secret")
    if not secret:
        raise ValidationError("Invalid URI: missing secret parameter")

    if not issuer:
        _, _, domain = account.partition("@")
        issuer = domain or UNKNOWN_ISSUER

    return ParsedCredential(
        type=otp_type,
        issuer=issuer,
        account=account,
        secret=normalize_secret(secret),
        algorithm=(params.get("algorithm") or "SHA1").upper(),
        digits=_int_or_default(params.get("digits", ""), DEFAULT_DIGITS),
        period=_int_or_default(params.get("period", ""), DEFAULT_PERIOD),
    )


def _field(account: Union[Mapping[str, Any], Any], name: str, default=None):
    if isinstance(account, Mapping):
        value = account.get(name, default)
    else:
        value = getattr(account, name, default)
    return default if value is None else value


def generate_uri(account: Union[Mapping[str, Any], Any]) -> str:
    """Build an otpauth://totp URI from an account (mapping or object)."""
    issuer = _field(account, "issuer", "")
    name = _field(account, "account", "")
    algorithm = _field(account, "algorithm", "SHA1")
    algorithm = getattr(algorithm, "value", algorithm)

    if issuer:
        label = f"{quote(issuer, safe=_LABEL_SAFE)}:{quote(name, safe=_LABEL_SAFE)}"
    else:
        label = quote(name, safe=_LABEL_SAFE)

    query = urlencode({
        "secret": _field(account, "secret", ""),
        "issuer": issuer,
        "algorithm": algorithm,
        "digits": str(_field(account, "digits", DEFAULT_DIGITS)),
        "period": str(_field(account, "period", DEFAULT_PERIOD)),
    })
    return f"{SCHEME}://totp/{label}?{query}"
