"""PSBT — version-aware records, validation, conversion and the binary codec."""

from psbt_core.psbt.codec import decode, decode_base64, encode, encode_base64
from psbt_core.psbt.container import Psbt
from psbt_core.psbt.converter import extract_unsigned_tx, to_v0, to_v2
from psbt_core.psbt.records import (
    PsbtGlobal,
    PsbtInput,
    PsbtOutput,
    PsbtRecords,
    PsbtVersion,
    TxModifiable,
)
from psbt_core.psbt.validator import resolve_locktime, validate

__all__ = [
    "Psbt",
    "PsbtGlobal",
    "PsbtInput",
    "PsbtOutput",
    "PsbtRecords",
    "PsbtVersion",
    "TxModifiable",
    "decode",
    "decode_base64",
    "encode",
    "encode_base64",
    "extract_unsigned_tx",
    "resolve_locktime",
    "to_v0",
    "to_v2",
    "validate",
]
