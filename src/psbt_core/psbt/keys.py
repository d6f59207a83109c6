"""PSBT key-type registries.

Every recognised key type is described by a :class:`FieldSpec` that names the
record attribute it populates and how its value is encoded. The codec walks
these tables to parse and emit maps; the validator uses the per-version
registries to decide which populated attributes a version permits.
"""

from __future__ import annotations

import dataclasses
import enum

# ---------------------------------------------------------------------------
# Key types
# ---------------------------------------------------------------------------


class GlobalKey(enum.IntEnum):
    """Global map key types."""

    UNSIGNED_TX = 0x00
    XPUB = 0x01
    TX_VERSION = 0x02
    FALLBACK_LOCKTIME = 0x03
    INPUT_COUNT = 0x04
    OUTPUT_COUNT = 0x05
    TX_MODIFIABLE = 0x06
    VERSION = 0xFB
    PROPRIETARY = 0xFC


class InputKey(enum.IntEnum):
    """Input map key types."""

    NON_WITNESS_UTXO = 0x00
    WITNESS_UTXO = 0x01
    PARTIAL_SIG = 0x02
    SIGHASH_TYPE = 0x03
    REDEEM_SCRIPT = 0x04
    WITNESS_SCRIPT = 0x05
    BIP32_DERIVATION = 0x06
    FINAL_SCRIPTSIG = 0x07
    FINAL_SCRIPTWITNESS = 0x08
    RIPEMD160 = 0x0A
    SHA256 = 0x0B
    HASH160 = 0x0C
    HASH256 = 0x0D
    PREVIOUS_TXID = 0x0E
    OUTPUT_INDEX = 0x0F
    SEQUENCE = 0x10
    REQUIRED_TIME_LOCKTIME = 0x11
    REQUIRED_HEIGHT_LOCKTIME = 0x12
    TAP_KEY_SIG = 0x13
    TAP_SCRIPT_SIG = 0x14
    TAP_LEAF_SCRIPT = 0x15
    TAP_BIP32_DERIVATION = 0x16
    TAP_INTERNAL_KEY = 0x17
    TAP_MERKLE_ROOT = 0x18
    PROPRIETARY = 0xFC


class OutputKey(enum.IntEnum):
    """Output map key types."""

    REDEEM_SCRIPT = 0x00
    WITNESS_SCRIPT = 0x01
    BIP32_DERIVATION = 0x02
    AMOUNT = 0x03
    SCRIPT = 0x04
    TAP_INTERNAL_KEY = 0x05
    TAP_TREE = 0x06
    TAP_BIP32_DERIVATION = 0x07
    PROPRIETARY = 0xFC


# ---------------------------------------------------------------------------
# Field descriptors
# ---------------------------------------------------------------------------


class ValueKind(enum.Enum):
    """Wire encoding of a field value."""

    BYTES = "bytes"
    FLAGS = "flags"
    UINT32 = "uint32"
    INT32 = "int32"
    INT64 = "int64"
    TXID = "txid"
    TX = "tx"


@dataclasses.dataclass(frozen=True)
class FieldSpec:
    """How one key type maps onto a record attribute.

    Attributes:
        key_type: The key type number.
        attr: Record attribute populated by this key.
        kind: Encoding of the value.
        keyed: The key data is a map key into a ``dict`` attribute; otherwise
            the key must carry no key data.
        key_data_sizes: Allowed key data lengths for keyed fields (None: any
            non-empty length).
    """

    key_type: int
    attr: str
    kind: ValueKind = ValueKind.BYTES
    keyed: bool = False
    key_data_sizes: tuple[int, ...] | None = None


GLOBAL_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec(GlobalKey.UNSIGNED_TX, "unsigned_tx", ValueKind.TX),
    FieldSpec(GlobalKey.XPUB, "xpubs", keyed=True, key_data_sizes=(78,)),
    FieldSpec(GlobalKey.TX_VERSION, "tx_version", ValueKind.INT32),
    FieldSpec(GlobalKey.FALLBACK_LOCKTIME, "fallback_locktime", ValueKind.UINT32),
    FieldSpec(GlobalKey.TX_MODIFIABLE, "tx_modifiable", ValueKind.FLAGS),
    FieldSpec(GlobalKey.PROPRIETARY, "proprietary", keyed=True),
)

INPUT_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec(InputKey.NON_WITNESS_UTXO, "non_witness_utxo"),
    FieldSpec(InputKey.WITNESS_UTXO, "witness_utxo"),
    FieldSpec(InputKey.PARTIAL_SIG, "partial_sigs", keyed=True, key_data_sizes=(33, 65)),
    FieldSpec(InputKey.SIGHASH_TYPE, "sighash_type", ValueKind.UINT32),
    FieldSpec(InputKey.REDEEM_SCRIPT, "redeem_script"),
    FieldSpec(InputKey.WITNESS_SCRIPT, "witness_script"),
    FieldSpec(InputKey.BIP32_DERIVATION, "bip32_derivation", keyed=True, key_data_sizes=(33, 65)),
    FieldSpec(InputKey.FINAL_SCRIPTSIG, "final_script_sig"),
    FieldSpec(InputKey.FINAL_SCRIPTWITNESS, "final_script_witness"),
    FieldSpec(InputKey.RIPEMD160, "ripemd160_preimages", keyed=True, key_data_sizes=(20,)),
    FieldSpec(InputKey.SHA256, "sha256_preimages", keyed=True, key_data_sizes=(32,)),
    FieldSpec(InputKey.HASH160, "hash160_preimages", keyed=True, key_data_sizes=(20,)),
    FieldSpec(InputKey.HASH256, "hash256_preimages", keyed=True, key_data_sizes=(32,)),
    FieldSpec(InputKey.PREVIOUS_TXID, "previous_tx_id", ValueKind.TXID),
    FieldSpec(InputKey.OUTPUT_INDEX, "output_index", ValueKind.UINT32),
    FieldSpec(InputKey.SEQUENCE, "sequence", ValueKind.UINT32),
    FieldSpec(InputKey.REQUIRED_TIME_LOCKTIME, "required_time_locktime", ValueKind.UINT32),
    FieldSpec(InputKey.REQUIRED_HEIGHT_LOCKTIME, "required_height_locktime", ValueKind.UINT32),
    FieldSpec(InputKey.TAP_KEY_SIG, "tap_key_sig"),
    FieldSpec(InputKey.TAP_SCRIPT_SIG, "tap_script_sigs", keyed=True, key_data_sizes=(64,)),
    FieldSpec(InputKey.TAP_LEAF_SCRIPT, "tap_leaf_scripts", keyed=True),
    FieldSpec(InputKey.TAP_BIP32_DERIVATION, "tap_bip32_derivation", keyed=True, key_data_sizes=(32,)),
    FieldSpec(InputKey.TAP_INTERNAL_KEY, "tap_internal_key"),
    FieldSpec(InputKey.TAP_MERKLE_ROOT, "tap_merkle_root"),
    FieldSpec(InputKey.PROPRIETARY, "proprietary", keyed=True),
)

OUTPUT_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec(OutputKey.REDEEM_SCRIPT, "redeem_script"),
    FieldSpec(OutputKey.WITNESS_SCRIPT, "witness_script"),
    FieldSpec(OutputKey.BIP32_DERIVATION, "bip32_derivation", keyed=True, key_data_sizes=(33, 65)),
    FieldSpec(OutputKey.AMOUNT, "amount", ValueKind.INT64),
    FieldSpec(OutputKey.SCRIPT, "script"),
    FieldSpec(OutputKey.TAP_INTERNAL_KEY, "tap_internal_key"),
    FieldSpec(OutputKey.TAP_TREE, "tap_tree"),
    FieldSpec(OutputKey.TAP_BIP32_DERIVATION, "tap_bip32_derivation", keyed=True, key_data_sizes=(32,)),
    FieldSpec(OutputKey.PROPRIETARY, "proprietary", keyed=True),
)

GLOBAL_FIELDS_BY_TYPE = {spec.key_type: spec for spec in GLOBAL_FIELDS}
INPUT_FIELDS_BY_TYPE = {spec.key_type: spec for spec in INPUT_FIELDS}
OUTPUT_FIELDS_BY_TYPE = {spec.key_type: spec for spec in OUTPUT_FIELDS}


# ---------------------------------------------------------------------------
# Per-version registries
# ---------------------------------------------------------------------------

# Fields that exist only in version 2; everything else is shared
V2_ONLY_GLOBAL_KEYS = frozenset(
    {
        GlobalKey.TX_VERSION,
        GlobalKey.FALLBACK_LOCKTIME,
        GlobalKey.INPUT_COUNT,
        GlobalKey.OUTPUT_COUNT,
        GlobalKey.TX_MODIFIABLE,
    }
)
V2_ONLY_INPUT_KEYS = frozenset(
    {
        InputKey.PREVIOUS_TXID,
        InputKey.OUTPUT_INDEX,
        InputKey.SEQUENCE,
        InputKey.REQUIRED_TIME_LOCKTIME,
        InputKey.REQUIRED_HEIGHT_LOCKTIME,
    }
)
V2_ONLY_OUTPUT_KEYS = frozenset({OutputKey.AMOUNT, OutputKey.SCRIPT})

V0_ONLY_GLOBAL_KEYS = frozenset({GlobalKey.UNSIGNED_TX})

V0_GLOBAL_REGISTRY = frozenset(GlobalKey) - V2_ONLY_GLOBAL_KEYS
V0_INPUT_REGISTRY = frozenset(InputKey) - V2_ONLY_INPUT_KEYS
V0_OUTPUT_REGISTRY = frozenset(OutputKey) - V2_ONLY_OUTPUT_KEYS

V2_GLOBAL_REGISTRY = frozenset(GlobalKey) - V0_ONLY_GLOBAL_KEYS
V2_INPUT_REGISTRY = frozenset(InputKey)
V2_OUTPUT_REGISTRY = frozenset(OutputKey)
