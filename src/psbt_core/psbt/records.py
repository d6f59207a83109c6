"""PSBT record types — version-agnostic global, input and output maps.

Records are plain mutable data: every field a version may carry is present
as an optional attribute, and nothing here checks that the populated set
matches a version. Only :func:`psbt_core.psbt.validator.validate` decides
that, and only :class:`psbt_core.psbt.container.Psbt` holds records that
passed it.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import NamedTuple

from psbt_core.bitcoin.primitives import Txid
from psbt_core.bitcoin.transaction import Transaction


class PsbtVersion(enum.IntEnum):
    """PSBT format generations."""

    V0 = 0
    V2 = 2


class TxModifiable(enum.IntFlag):
    """``PSBT_GLOBAL_TX_MODIFIABLE`` bit field."""

    INPUTS = 0x01
    OUTPUTS = 0x02
    HAS_SIGHASH_SINGLE = 0x04


@dataclasses.dataclass
class PsbtGlobal:
    """The global map.

    Attributes:
        unsigned_tx: Embedded unsigned transaction (V0 only).
        tx_version: Version of the transaction being built (V2 only).
        fallback_locktime: Locktime used when no input requires one (V2 only).
        tx_modifiable: Whether inputs/outputs may still be added (V2 only).
        xpubs: Serialized extended public key -> opaque key source.
        proprietary: Proprietary key data -> value.
        unknown: Full key bytes -> value, for unrecognised key types.
    """

    unsigned_tx: Transaction | None = None
    tx_version: int | None = None
    fallback_locktime: int | None = None
    tx_modifiable: TxModifiable | None = None
    xpubs: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    proprietary: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    unknown: dict[bytes, bytes] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass
class PsbtInput:
    """One input map.

    Signing data (signatures, scripts, keys, preimages) is carried as opaque
    bytes. The outpoint, sequence and locktime requirement fields are the
    version 2 per-input transaction fields.
    """

    non_witness_utxo: bytes | None = None
    witness_utxo: bytes | None = None
    partial_sigs: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    sighash_type: int | None = None
    redeem_script: bytes | None = None
    witness_script: bytes | None = None
    bip32_derivation: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    final_script_sig: bytes | None = None
    final_script_witness: bytes | None = None
    ripemd160_preimages: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    sha256_preimages: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    hash160_preimages: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    hash256_preimages: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    tap_key_sig: bytes | None = None
    tap_script_sigs: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    tap_leaf_scripts: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    tap_bip32_derivation: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    tap_internal_key: bytes | None = None
    tap_merkle_root: bytes | None = None
    proprietary: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    unknown: dict[bytes, bytes] = dataclasses.field(default_factory=dict)

    # Version 2 fields
    previous_tx_id: Txid | None = None
    output_index: int | None = None
    sequence: int | None = None
    required_time_locktime: int | None = None
    required_height_locktime: int | None = None


@dataclasses.dataclass
class PsbtOutput:
    """One output map. ``amount`` and ``script`` are version 2 fields."""

    redeem_script: bytes | None = None
    witness_script: bytes | None = None
    bip32_derivation: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    tap_internal_key: bytes | None = None
    tap_tree: bytes | None = None
    tap_bip32_derivation: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    proprietary: dict[bytes, bytes] = dataclasses.field(default_factory=dict)
    unknown: dict[bytes, bytes] = dataclasses.field(default_factory=dict)

    # Version 2 fields
    amount: int | None = None
    script: bytes | None = None


class PsbtRecords(NamedTuple):
    """A complete record set: what the codec produces and consumes."""

    version: PsbtVersion
    global_: PsbtGlobal
    inputs: list[PsbtInput]
    outputs: list[PsbtOutput]


def is_populated(value: object) -> bool:
    """True when an optional record attribute holds data."""
    if value is None:
        return False
    if isinstance(value, dict):
        return bool(value)
    return True
