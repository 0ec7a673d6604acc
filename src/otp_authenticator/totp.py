"""TOTP (Time-based One-Time Password) engine.

Pure functions over raw secret bytes; nothing here keeps state, so every
function is safe to call from any number of concurrent tasks or threads.

Codes are compatible with any RFC 6238 authenticator app (Google
Authenticator, Microsoft Authenticator, Authy, 1Password, FreeOTP).

Uses pyotp internally for the HMAC-SHA1 truncation step.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

import pyotp

from .exceptions import InsufficientEntropyError

#: 160-bit key, the length recommended by RFC 4226 for HMAC-SHA1.
SECRET_LENGTH = 20
DEFAULT_STEP = 30
DEFAULT_DIGITS = 6
DEFAULT_WINDOW = 1

Timestamp = Union[datetime, int, float]


@dataclass(frozen=True)
class TotpEnrollment:
    """TOTP setup data shown to a user once, when enrolling an app.

    Attributes:
        secret: Base32-encoded TOTP secret.
        manual_key: Secret in groups of 4 for manual entry.
        qr_uri: otpauth:// URI for QR code generation.
    """

    secret: str
    manual_key: str
    qr_uri: str


def generate_secret(seed: bytes | None = None) -> bytes:
    """Generate a fresh 20-byte TOTP key.

    Args:
        seed: Optional caller-supplied bytes mixed into the key. The seed
            is never the only entropy source: it is combined through
            HMAC-SHA1 keyed by bytes read from the OS random source.

    Returns:
        Raw secret bytes.

    Raises:
        InsufficientEntropyError: If the OS random source cannot be read.
    """
    try:
        key = secrets.token_bytes(SECRET_LENGTH)
    except (OSError, NotImplementedError) as exc:
        raise InsufficientEntropyError(
            "Operating system random source is unavailable"
        ) from exc

    if seed:
        key = hmac.new(key, seed, hashlib.sha1).digest()
    return key


def encode_secret(secret: bytes) -> str:
    """Render a secret as unpadded, upper-case base-32 text."""
    return base64.b32encode(secret).decode("ascii").rstrip("=")


def decode_secret(text: str) -> bytes:
    """Inverse of :func:`encode_secret`.

    Tolerates lower case, embedded spaces and missing padding, so keys
    typed in from :func:`format_manual_key` output decode as well.
    """
    normalized = "".join(text.split()).upper().rstrip("=")
    padding = -len(normalized) % 8
    return base64.b32decode(normalized + "=" * padding)


def format_manual_key(secret: bytes) -> str:
    """Format a secret for manual entry (groups of 4 characters)."""
    encoded = encode_secret(secret)
    return " ".join(encoded[i : i + 4] for i in range(0, len(encoded), 4))


def time_counter(at_time: Timestamp, step: int = DEFAULT_STEP) -> int:
    """Return the time-step counter ``floor(unix_seconds / step)``.

    Naive datetimes are interpreted as UTC.
    """
    if step <= 0:
        raise ValueError("step must be a positive number of seconds")

    if isinstance(at_time, datetime):
        if at_time.tzinfo is None:
            at_time = at_time.replace(tzinfo=timezone.utc)
        seconds = at_time.timestamp()
    else:
        seconds = float(at_time)

    if seconds < 0:
        raise ValueError("TOTP time must not precede the unix epoch")
    return math.floor(seconds / step)


def code_at_counter(secret: bytes, counter: int, digits: int = DEFAULT_DIGITS) -> str:
    """Compute the HOTP code for an explicit counter value."""
    if not secret:
        raise ValueError("secret must not be empty")
    return pyotp.HOTP(encode_secret(secret), digits=digits).at(counter)


def compute_code(
    secret: bytes,
    at_time: Timestamp,
    step: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
) -> str:
    """Compute the TOTP code for ``at_time``.

    HMAC-SHA1 over the 8-byte big-endian time-step counter, dynamic
    truncation to 31 bits, ``mod 10**digits`` and left zero padding.

    Example:
        ```python
        secret = b"12345678901234567890"
        assert compute_code(secret, 59) == "287082"
        ```
    """
    return code_at_counter(secret, time_counter(at_time, step), digits)


def match_counter(
    secret: bytes,
    candidate: str,
    at_time: Timestamp,
    step: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
    window_steps: int = DEFAULT_WINDOW,
) -> int | None:
    """Find the time-step counter a candidate code belongs to.

    Searches ``[counter - window_steps, counter + window_steps]`` (earliest
    first) to tolerate clock drift.

    Returns:
        The matching counter, or None when no counter in the window matches.
        Callers use the counter to reject replays of an accepted code.
    """
    if window_steps < 0:
        raise ValueError("window_steps must not be negative")

    candidate = candidate.strip()
    if len(candidate) != digits or not (candidate.isascii() and candidate.isdigit()):
        return None

    current = time_counter(at_time, step)
    for counter in range(max(0, current - window_steps), current + window_steps + 1):
        if hmac.compare_digest(code_at_counter(secret, counter, digits), candidate):
            return counter
    return None


def verify_code(
    secret: bytes,
    candidate: str,
    at_time: Timestamp,
    step: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
    window_steps: int = DEFAULT_WINDOW,
) -> bool:
    """Check a candidate code within ``±window_steps`` time steps."""
    return (
        match_counter(secret, candidate, at_time, step, digits, window_steps)
        is not None
    )


def provisioning_uri(
    secret: bytes,
    account_name: str,
    issuer: str,
    step: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
) -> str:
    """Build the otpauth:// URI authenticator apps scan from a QR code."""
    totp = pyotp.TOTP(
        encode_secret(secret),
        digits=digits,
        interval=step,
        issuer=issuer,
    )
    return totp.provisioning_uri(name=account_name, issuer_name=issuer)


def build_enrollment(
    secret: bytes,
    account_name: str,
    issuer: str,
    step: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
) -> TotpEnrollment:
    """Bundle everything a user needs to configure an authenticator app."""
    return TotpEnrollment(
        secret=encode_secret(secret),
        manual_key=format_manual_key(secret),
        qr_uri=provisioning_uri(secret, account_name, issuer, step, digits),
    )


__all__: list[str] = [
    "SECRET_LENGTH",
    "DEFAULT_STEP",
    "DEFAULT_DIGITS",
    "DEFAULT_WINDOW",
    "Timestamp",
    "TotpEnrollment",
    "generate_secret",
    "encode_secret",
    "decode_secret",
    "format_manual_key",
    "time_counter",
    "code_at_counter",
    "compute_code",
    "match_counter",
    "verify_code",
    "provisioning_uri",
    "build_enrollment",
]
