"""Run identifier generation and validation."""

from __future__ import annotations

import re
import secrets
import time
from collections.abc import Callable
from typing import Final

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
ULID_RANDOM_BYTES: Final[int] = 10
ULID_MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1
RUN_ID_PREFIX: Final[str] = "run"

# Externally supplied run ids end up in file names, so keep them to one path segment.
_RUN_TOKEN_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")
_DECODE_TABLE: Final[dict[str, int]] = {
    char: index for index, char in enumerate(CROCKFORD_BASE32_ALPHABET)
}

_RandBytes = Callable[[int], bytes]


def generate_ulid(
    *,
    timestamp_ms: int | None = None,
    randbytes: _RandBytes | None = None,
) -> str:
    """Generate a ULID as a 26-character uppercase Crockford Base32 string."""
    ts_ms = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if not 0 <= ts_ms <= ULID_MAX_TIMESTAMP_MS:
        raise ValueError(
            f"timestamp_ms out of range: expected 0..{ULID_MAX_TIMESTAMP_MS}, got {ts_ms}"
        )
    provider = secrets.token_bytes if randbytes is None else randbytes
    random_bytes = bytes(provider(ULID_RANDOM_BYTES))
    if len(random_bytes) != ULID_RANDOM_BYTES:
        raise ValueError(f"randbytes must return exactly {ULID_RANDOM_BYTES} bytes")
    value = (ts_ms << 80) | int.from_bytes(random_bytes, "big")
    return _encode_crockford_base32(value, ULID_LENGTH)


def generate_run_id(*, timestamp_ms: int | None = None, randbytes: _RandBytes | None = None) -> str:
    """Return ``run-<ulid>``; ids sort lexicographically by creation time."""
    return f"{RUN_ID_PREFIX}-{generate_ulid(timestamp_ms=timestamp_ms, randbytes=randbytes)}"


def validate_run_token(run_id: str) -> str:
    """Validate a run id that may come from the environment and return it stripped."""
    if not isinstance(run_id, str):
        raise ValueError(f"run_id must be a string, got {type(run_id).__name__}")
    candidate = run_id.strip()
    if not _RUN_TOKEN_RE.fullmatch(candidate):
        raise ValueError(f"run_id must be a single safe path segment (got {run_id!r})")
    return candidate


def validate_run_id(run_id: str) -> None:
    """Validate the canonical ``run-<ulid>`` format."""
    lead = f"{RUN_ID_PREFIX}-"
    if not isinstance(run_id, str) or not run_id.startswith(lead):
        raise ValueError(f"expected prefix '{lead}'")
    ulid_part = run_id[len(lead) :]
    if len(ulid_part) != ULID_LENGTH:
        raise ValueError(f"ulid length must be {ULID_LENGTH}, got {len(ulid_part)}")
    for index, char in enumerate(ulid_part):
        if char.upper() not in _DECODE_TABLE:
            raise ValueError(f"invalid ULID character {char!r} at index {index}")
    if _DECODE_TABLE[ulid_part[0].upper()] > 7:
        raise ValueError("ulid overflow: value exceeds maximum 128-bit ULID")


def _encode_crockford_base32(value: int, length: int) -> str:
    mask = 0b11111
    chars = ["0"] * length
    working = value
    for index in range(length - 1, -1, -1):
        chars[index] = CROCKFORD_BASE32_ALPHABET[working & mask]
        working >>= 5
    if working != 0:
        raise ValueError(f"value does not fit into {length} Crockford Base32 characters")
    return "".join(chars)


__all__ = [
    "CROCKFORD_BASE32_ALPHABET",
    "RUN_ID_PREFIX",
    "ULID_LENGTH",
    "generate_run_id",
    "generate_ulid",
    "validate_run_id",
    "validate_run_token",
]
