"""ULID generation and conversion helpers.

Identifiers are handed out as canonical 26-character Crockford Base32 strings
and stored as 16-byte big-endian binary.
"""

from __future__ import annotations

import secrets
import time

ULID_BYTES_LENGTH = 16
_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODE = {char: index for index, char in enumerate(_ALPHABET)}
_MAX_ULID = (1 << 128) - 1


def generate_ulid_str(*, timestamp_ms: int | None = None) -> str:
    """Generate a new ULID string; high 48 bits hold the millisecond clock."""
    ts_ms = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    if ts_ms < 0 or ts_ms >= (1 << 48):
        raise ValueError("timestamp_ms out of ULID 48-bit range")
    entropy = int.from_bytes(secrets.token_bytes(10), byteorder="big")
    return _encode((ts_ms << 80) | entropy)


def ulid_str_to_bytes(value: str) -> bytes:
    """Decode a canonical ULID string into 16-byte binary."""
    candidate = value.strip().upper()
    if len(candidate) != 26:
        raise ValueError("ULID string must be exactly 26 characters")
    number = 0
    for char in candidate:
        if char not in _DECODE:
            raise ValueError(f"Invalid ULID character: {char!r}")
        number = (number << 5) | _DECODE[char]
    if number > _MAX_ULID:
        raise ValueError("ULID value exceeds 128-bit range")
    return number.to_bytes(ULID_BYTES_LENGTH, byteorder="big")


def ulid_bytes_to_str(value: bytes) -> str:
    """Encode 16-byte ULID binary into its canonical string."""
    if len(value) != ULID_BYTES_LENGTH:
        raise ValueError("ULID bytes must be exactly 16 bytes")
    return _encode(int.from_bytes(value, byteorder="big"))


def is_ulid_str(value: str) -> bool:
    """Return whether ``value`` decodes as a canonical ULID string."""
    try:
        ulid_str_to_bytes(value)
    except ValueError:
        return False
    return True


def _encode(number: int) -> str:
    chars: list[str] = []
    for _ in range(26):
        number, remainder = divmod(number, 32)
        chars.append(_ALPHABET[remainder])
    return "".join(reversed(chars))
