"""Binary PSBT codec — key-typed maps for both format versions.

Layout::

    magic "psbt\\xff" | global map | input map * n | output map * m

Each map is a run of ``<varint keylen><key><varint valuelen><value>`` pairs
closed by a single ``0x00``; a key starts with its varint key type, the rest
is key data. The number of input and output maps comes from the embedded
transaction (version 0) or the global count keys (version 2).

Decoding parses structure only: recognised key types become typed record
attributes, unrecognised keys are kept verbatim, and whether the result is
acceptable for its version is left to the validator.

Without an explicit *config*, limits come from a fresh :class:`CodecConfig`,
which reads the ``PSBT_CODEC__*`` environment variables on every call. Pass
a config to pin the limits.
"""

from __future__ import annotations

import base64
import binascii
import logging
import struct
from io import BytesIO
from typing import TYPE_CHECKING

from psbt_core.bitcoin.primitives import TXID_SIZE, Txid
from psbt_core.bitcoin.transaction import (
    Transaction,
    encode_varbytes,
    encode_varint,
    read_exact,
    read_varint,
)
from psbt_core.config.settings import CodecConfig
from psbt_core.errors.psbt_errors import MalformedEncodingError, UnsupportedVersionError
from psbt_core.psbt.keys import (
    GLOBAL_FIELDS,
    GLOBAL_FIELDS_BY_TYPE,
    INPUT_FIELDS,
    INPUT_FIELDS_BY_TYPE,
    OUTPUT_FIELDS,
    OUTPUT_FIELDS_BY_TYPE,
    FieldSpec,
    GlobalKey,
    ValueKind,
)
from psbt_core.psbt.records import (
    PsbtGlobal,
    PsbtInput,
    PsbtOutput,
    PsbtRecords,
    PsbtVersion,
    TxModifiable,
    is_populated,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

PSBT_MAGIC = b"psbt\xff"

_Entry = tuple[bytes, bytes]

# Fixed value widths, in bytes
_FIXED_SIZES = {
    ValueKind.FLAGS: 1,
    ValueKind.UINT32: 4,
    ValueKind.INT32: 4,
    ValueKind.INT64: 8,
    ValueKind.TXID: TXID_SIZE,
}
_STRUCT_FORMATS = {
    ValueKind.FLAGS: "<B",
    ValueKind.UINT32: "<I",
    ValueKind.INT32: "<i",
    ValueKind.INT64: "<q",
}


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode(data: bytes, *, config: CodecConfig | None = None) -> PsbtRecords:
    """Parse a binary PSBT into an unvalidated record set.

    Raises:
        MalformedEncodingError: The bytes are not a well-formed PSBT map
            structure, or exceed the configured limits.
        UnsupportedVersionError: The global version key names an unknown
            version.
    """
    config = config or CodecConfig()
    if len(data) > config.max_encoded_size:
        msg = f"encoded PSBT is {len(data)} bytes, limit is {config.max_encoded_size}"
        raise MalformedEncodingError(msg)
    if not data.startswith(PSBT_MAGIC):
        raise MalformedEncodingError("invalid magic")

    stream = BytesIO(data)
    stream.seek(len(PSBT_MAGIC))

    version, global_, n_inputs, n_outputs = _decode_global(_read_map(stream, config))
    _check_map_count(stream, len(data), n_inputs + n_outputs)

    inputs = [
        _decode_record(PsbtInput(), f"input[{i}]", _read_map(stream, config), INPUT_FIELDS_BY_TYPE)
        for i in range(n_inputs)
    ]
    outputs = [
        _decode_record(
            PsbtOutput(), f"output[{i}]", _read_map(stream, config), OUTPUT_FIELDS_BY_TYPE
        )
        for i in range(n_outputs)
    ]

    if stream.tell() != len(data):
        raise MalformedEncodingError(f"{len(data) - stream.tell()} bytes of trailing data")

    logger.debug(
        "Decoded PSBT v%d: %d bytes, %d inputs, %d outputs",
        version,
        len(data),
        n_inputs,
        n_outputs,
    )
    return PsbtRecords(version, global_, inputs, outputs)


def decode_base64(text: str, *, config: CodecConfig | None = None) -> PsbtRecords:
    """Parse a base64-wrapped PSBT."""
    config = config or CodecConfig()
    # Base64 expands 3 bytes into 4 characters
    if len(text) > (config.max_encoded_size + 2) // 3 * 4 + 2:
        raise MalformedEncodingError("base64 PSBT exceeds the size limit")
    try:
        data = base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedEncodingError(f"invalid base64: {exc}") from exc
    return decode(data, config=config)


def _read_map(stream: BytesIO, config: CodecConfig) -> list[_Entry]:
    """Read one key-value map up to and including its separator."""
    entries: list[_Entry] = []
    seen: set[bytes] = set()
    try:
        while True:
            key = read_exact(stream, read_varint(stream))
            if not key:
                return entries
            if len(entries) >= config.max_map_entries:
                msg = f"map has more than {config.max_map_entries} entries"
                raise MalformedEncodingError(msg)
            if key in seen:
                raise MalformedEncodingError(f"duplicate key {key.hex()}")
            seen.add(key)
            entries.append((key, read_exact(stream, read_varint(stream))))
    except ValueError as exc:
        raise MalformedEncodingError(f"truncated or malformed map: {exc}") from exc


def _split_key(key: bytes) -> tuple[int, bytes]:
    stream = BytesIO(key)
    try:
        key_type = read_varint(stream)
    except ValueError as exc:
        raise MalformedEncodingError(f"bad key type in key {key.hex()}") from exc
    return key_type, key[stream.tell() :]


def _check_map_count(stream: BytesIO, size: int, n_maps: int) -> None:
    # Every map takes at least its one-byte separator
    remaining = size - stream.tell()
    if n_maps > remaining:
        msg = f"{n_maps} maps declared but only {remaining} bytes remain"
        raise MalformedEncodingError(msg)


def _decode_global(entries: list[_Entry]) -> tuple[PsbtVersion, PsbtGlobal, int, int]:
    """Interpret the global map; returns the version and the map counts."""
    version = PsbtVersion.V0
    # The version key decides the framing, so it is inspected before anything else
    for key, value in entries:
        key_type, key_data = _split_key(key)
        if key_type == GlobalKey.VERSION:
            if key_data:
                raise MalformedEncodingError("global.version: unexpected key data")
            raw_version = _decode_fixed("global.version", ValueKind.UINT32, value)
            try:
                version = PsbtVersion(raw_version)
            except ValueError:
                raise UnsupportedVersionError(raw_version) from None
            break

    global_ = PsbtGlobal()
    counts: dict[int, int] = {}
    for key, value in entries:
        key_type, key_data = _split_key(key)
        if key_type == GlobalKey.VERSION:
            continue
        if key_type in (GlobalKey.INPUT_COUNT, GlobalKey.OUTPUT_COUNT):
            name = GlobalKey(key_type).name.lower()
            if version is PsbtVersion.V0:
                raise MalformedEncodingError(f"global.{name}: not valid in version 0 framing")
            if key_data:
                raise MalformedEncodingError(f"global.{name}: unexpected key data")
            counts[key_type] = _decode_count(f"global.{name}", value)
            continue
        _apply(global_, "global", key, key_type, key_data, value, GLOBAL_FIELDS_BY_TYPE)

    if version is PsbtVersion.V2:
        for key_type in (GlobalKey.INPUT_COUNT, GlobalKey.OUTPUT_COUNT):
            if key_type not in counts:
                name = GlobalKey(key_type).name.lower()
                raise MalformedEncodingError(f"global.{name}: required to frame version 2")
        return version, global_, counts[GlobalKey.INPUT_COUNT], counts[GlobalKey.OUTPUT_COUNT]

    tx = global_.unsigned_tx
    if tx is None:
        return version, global_, 0, 0
    return version, global_, len(tx.inputs), len(tx.outputs)


def _decode_count(field: str, value: bytes) -> int:
    stream = BytesIO(value)
    try:
        count = read_varint(stream)
    except ValueError as exc:
        raise MalformedEncodingError(f"{field}: {exc}") from exc
    if stream.tell() != len(value):
        raise MalformedEncodingError(f"{field}: trailing bytes after count")
    return count


def _decode_record(
    record: PsbtInput | PsbtOutput,
    scope: str,
    entries: list[_Entry],
    fields_by_type: dict[int, FieldSpec],
) -> PsbtInput | PsbtOutput:
    for key, value in entries:
        key_type, key_data = _split_key(key)
        _apply(record, scope, key, key_type, key_data, value, fields_by_type)
    return record


def _apply(
    record: object,
    scope: str,
    key: bytes,
    key_type: int,
    key_data: bytes,
    value: bytes,
    fields_by_type: dict[int, FieldSpec],
) -> None:
    """Store one entry on *record*, as a typed field or an unknown key."""
    spec = fields_by_type.get(key_type)
    if spec is None:
        record.unknown[key] = value  # type: ignore[attr-defined]
        return

    field = f"{scope}.{spec.attr}"
    if spec.keyed:
        if not key_data:
            raise MalformedEncodingError(f"{field}: missing key data")
        if spec.key_data_sizes is not None and len(key_data) not in spec.key_data_sizes:
            raise MalformedEncodingError(f"{field}: key data of {len(key_data)} bytes")
        getattr(record, spec.attr)[key_data] = value
        return

    if key_data:
        raise MalformedEncodingError(f"{field}: unexpected key data")
    setattr(record, spec.attr, _decode_value(field, spec.kind, value))


def _decode_value(field: str, kind: ValueKind, value: bytes) -> object:
    if kind is ValueKind.BYTES:
        return value
    if kind is ValueKind.TX:
        try:
            # Unsigned transactions are always serialized without witness
            return Transaction.from_bytes(value, allow_witness=False)
        except ValueError as exc:
            raise MalformedEncodingError(f"{field}: {exc}") from exc
    decoded = _decode_fixed(field, kind, value)
    if kind is ValueKind.FLAGS:
        return TxModifiable(decoded)
    return decoded


def _decode_fixed(field: str, kind: ValueKind, value: bytes) -> object:
    size = _FIXED_SIZES[kind]
    if len(value) != size:
        raise MalformedEncodingError(f"{field}: expected {size} bytes, got {len(value)}")
    if kind is ValueKind.TXID:
        return Txid(value)
    return struct.unpack(_STRUCT_FORMATS[kind], value)[0]


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode(
    version: PsbtVersion,
    global_: PsbtGlobal,
    inputs: Sequence[PsbtInput],
    outputs: Sequence[PsbtOutput],
) -> bytes:
    """Serialize a record set.

    Entries within a map are written sorted by key, which makes the encoding
    canonical: decoding and re-encoding the result reproduces it exactly.
    Records that passed validation always encode; other record sets may
    raise ``struct.error`` or ``ValueError`` for values outside their wire
    width.
    """
    version = PsbtVersion(version)
    global_entries = _encode_record(global_, GLOBAL_FIELDS)
    if version is PsbtVersion.V2:
        global_entries.append((_key(GlobalKey.INPUT_COUNT), encode_varint(len(inputs))))
        global_entries.append((_key(GlobalKey.OUTPUT_COUNT), encode_varint(len(outputs))))
        global_entries.append((_key(GlobalKey.VERSION), struct.pack("<I", version)))

    result = PSBT_MAGIC + _write_map(global_entries)
    for inp in inputs:
        result += _write_map(_encode_record(inp, INPUT_FIELDS))
    for out in outputs:
        result += _write_map(_encode_record(out, OUTPUT_FIELDS))

    logger.debug(
        "Encoded PSBT v%d: %d bytes, %d inputs, %d outputs",
        version,
        len(result),
        len(inputs),
        len(outputs),
    )
    return result


def encode_base64(
    version: PsbtVersion,
    global_: PsbtGlobal,
    inputs: Sequence[PsbtInput],
    outputs: Sequence[PsbtOutput],
) -> str:
    """Serialize a record set as base64 text."""
    return base64.b64encode(encode(version, global_, inputs, outputs)).decode("ascii")


def _key(key_type: int, key_data: bytes = b"") -> bytes:
    return encode_varint(key_type) + key_data


def _write_map(entries: list[_Entry]) -> bytes:
    result = b""
    for key, value in sorted(entries):
        result += encode_varbytes(key) + encode_varbytes(value)
    return result + b"\x00"


def _encode_record(record: object, fields: Sequence[FieldSpec]) -> list[_Entry]:
    entries: list[_Entry] = []
    for spec in fields:
        value = getattr(record, spec.attr)
        if not is_populated(value):
            continue
        if spec.keyed:
            entries.extend((_key(spec.key_type, k), v) for k, v in value.items())
        else:
            entries.append((_key(spec.key_type), _encode_value(spec.kind, value)))
    entries.extend(record.unknown.items())  # type: ignore[attr-defined]
    return entries


def _encode_value(kind: ValueKind, value: object) -> bytes:
    if kind is ValueKind.BYTES:
        return value  # type: ignore[return-value]
    if kind is ValueKind.TX:
        return value.serialize(include_witness=False)  # type: ignore[attr-defined]
    if kind is ValueKind.TXID:
        return bytes(value)  # type: ignore[arg-type]
    return struct.pack(_STRUCT_FORMATS[kind], value)
