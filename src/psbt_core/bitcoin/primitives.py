"""Primitive value types — txid, outpoint, fixed-width integer ranges.

Sequence numbers, locktimes, output indexes and amounts are plain ``int``
values; the helpers here only decide whether a value fits the wire width
it is serialized with.
"""

from __future__ import annotations

import dataclasses

# ---------------------------------------------------------------------------
# Protocol constants
# ---------------------------------------------------------------------------

# Sequence value that opts out of relative locktime and replacement
SEQUENCE_FINAL = 0xFFFFFFFF

# Locktimes below this value are block heights, at or above are UNIX times
LOCKTIME_THRESHOLD = 500_000_000

TXID_SIZE = 32

UINT8_MAX = 0xFF
UINT32_MAX = 0xFFFFFFFF
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


# ---------------------------------------------------------------------------
# Range helpers
# ---------------------------------------------------------------------------


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_uint8(value: object) -> bool:
    """Check that *value* fits an unsigned 8-bit field."""
    return _is_int(value) and 0 <= value <= UINT8_MAX  # type: ignore[operator]


def is_uint32(value: object) -> bool:
    """Check that *value* fits an unsigned 32-bit field."""
    return _is_int(value) and 0 <= value <= UINT32_MAX  # type: ignore[operator]


def is_int32(value: object) -> bool:
    """Check that *value* fits a signed 32-bit field."""
    return _is_int(value) and INT32_MIN <= value <= INT32_MAX  # type: ignore[operator]


def is_int64(value: object) -> bool:
    """Check that *value* fits a signed 64-bit field."""
    return _is_int(value) and INT64_MIN <= value <= INT64_MAX  # type: ignore[operator]


# ---------------------------------------------------------------------------
# Txid / OutPoint
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True, order=True)
class Txid:
    """A transaction id.

    Attributes:
        raw: 32-byte hash in internal byte order (as serialized on the wire).
    """

    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, bytes) or len(self.raw) != TXID_SIZE:
            msg = f"Txid must be {TXID_SIZE} bytes"
            raise ValueError(msg)

    @classmethod
    def from_hex(cls, hex_str: str) -> Txid:
        """Parse a txid from display (reversed) hex."""
        return cls(bytes.fromhex(hex_str)[::-1])

    def hex(self) -> str:
        """Txid in display (reversed) hex."""
        return self.raw[::-1].hex()

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return self.hex()


@dataclasses.dataclass(frozen=True, order=True)
class OutPoint:
    """Reference to a previous transaction output."""

    txid: Txid
    index: int

    def __str__(self) -> str:
        return f"{self.txid.hex()}:{self.index}"
