"""Structural validation of PSBT record sets.

:func:`validate` is the only gate between untrusted records (decoded bytes,
builder input) and a :class:`~psbt_core.psbt.container.Psbt`. It checks that
the populated fields are exactly those the version permits, that every value
can be represented on the wire, and that the inputs' locktime requirements
can be met by one transaction locktime. It never interprets signatures,
scripts or keys.

Checks run in one pass: version, global map, inputs, outputs, the version 0
record counts, and finally the locktime verdict accumulated while walking
the inputs. Field checks come first, so a forbidden field is reported even
when the record counts are also wrong.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from io import BytesIO

from psbt_core.bitcoin.primitives import (
    LOCKTIME_THRESHOLD,
    TXID_SIZE,
    Txid,
    is_int32,
    is_int64,
    is_uint8,
    is_uint32,
)
from psbt_core.bitcoin.transaction import Transaction, read_varint
from psbt_core.errors.psbt_errors import (
    ForbiddenFieldPresentError,
    LocktimeConflictError,
    MalformedEncodingError,
    MissingRequiredFieldError,
    UnsupportedVersionError,
)
from psbt_core.psbt.keys import (
    GLOBAL_FIELDS,
    GLOBAL_FIELDS_BY_TYPE,
    INPUT_FIELDS,
    INPUT_FIELDS_BY_TYPE,
    OUTPUT_FIELDS,
    OUTPUT_FIELDS_BY_TYPE,
    V0_GLOBAL_REGISTRY,
    V0_INPUT_REGISTRY,
    V0_OUTPUT_REGISTRY,
    V2_GLOBAL_REGISTRY,
    V2_INPUT_REGISTRY,
    V2_OUTPUT_REGISTRY,
    FieldSpec,
    GlobalKey,
    ValueKind,
)
from psbt_core.psbt.records import (
    PsbtGlobal,
    PsbtInput,
    PsbtOutput,
    PsbtVersion,
    is_populated,
)

_REGISTRIES = {
    PsbtVersion.V0: (V0_GLOBAL_REGISTRY, V0_INPUT_REGISTRY, V0_OUTPUT_REGISTRY),
    PsbtVersion.V2: (V2_GLOBAL_REGISTRY, V2_INPUT_REGISTRY, V2_OUTPUT_REGISTRY),
}

# Key types that frame the encoding rather than populate a record attribute
_FRAMING_GLOBAL_KEYS = frozenset(
    {GlobalKey.INPUT_COUNT, GlobalKey.OUTPUT_COUNT, GlobalKey.VERSION}
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate(
    version: object,
    global_: PsbtGlobal,
    inputs: Sequence[PsbtInput],
    outputs: Sequence[PsbtOutput],
) -> PsbtVersion:
    """Decide whether a record set is structurally acceptable for *version*.

    Returns:
        The version as a :class:`PsbtVersion`.

    Raises:
        UnsupportedVersionError: *version* is not a known PSBT version.
        MalformedEncodingError: A value cannot be represented on the wire.
        MissingRequiredFieldError: A field the version requires is absent.
        ForbiddenFieldPresentError: A field the version disallows is populated.
        LocktimeConflictError: Input locktime requirements are unsatisfiable.
    """
    psbt_version = check_version(version)
    global_registry, input_registry, output_registry = _REGISTRIES[psbt_version]

    _check_record("global", global_, GLOBAL_FIELDS, GLOBAL_FIELDS_BY_TYPE, global_registry)
    if psbt_version is PsbtVersion.V0:
        _check_v0_global(global_)
    else:
        _check_v2_global(global_)

    time_only: str | None = None
    height_only: str | None = None
    for index, inp in enumerate(inputs):
        scope = f"input[{index}]"
        _check_record(scope, inp, INPUT_FIELDS, INPUT_FIELDS_BY_TYPE, input_registry)
        if psbt_version is PsbtVersion.V2:
            _require(scope, inp, ("previous_tx_id", "output_index"))
            _check_locktime_ranges(scope, inp)
            has_time = inp.required_time_locktime is not None
            has_height = inp.required_height_locktime is not None
            if has_time and not has_height and time_only is None:
                time_only = scope
            elif has_height and not has_time and height_only is None:
                height_only = scope

    for index, out in enumerate(outputs):
        scope = f"output[{index}]"
        _check_record(scope, out, OUTPUT_FIELDS, OUTPUT_FIELDS_BY_TYPE, output_registry)
        if psbt_version is PsbtVersion.V2:
            _require(scope, out, ("amount", "script"))

    if psbt_version is PsbtVersion.V0:
        tx = global_.unsigned_tx
        _check_map_count("input", len(inputs), len(tx.inputs))  # type: ignore[union-attr]
        _check_map_count("output", len(outputs), len(tx.outputs))  # type: ignore[union-attr]

    if time_only is not None and height_only is not None:
        msg = (
            f"{time_only} requires a time-based locktime but {height_only} "
            "requires a height-based locktime"
        )
        raise LocktimeConflictError(msg)

    return psbt_version


def check_version(version: object) -> PsbtVersion:
    """Map *version* onto a known :class:`PsbtVersion` or raise."""
    if not isinstance(version, int) or isinstance(version, bool):
        raise UnsupportedVersionError(version)
    try:
        return PsbtVersion(version)
    except ValueError:
        raise UnsupportedVersionError(version) from None


def resolve_locktime(global_: PsbtGlobal, inputs: Iterable[PsbtInput]) -> int:
    """Compute the transaction locktime that satisfies every input.

    Height-based locktimes are preferred when every constrained input accepts
    one; the result is the largest required value of the chosen kind. With
    no requirements the fallback locktime (0 when absent) applies.
    """
    constrained = [
        inp
        for inp in inputs
        if inp.required_time_locktime is not None or inp.required_height_locktime is not None
    ]
    if not constrained:
        return global_.fallback_locktime if global_.fallback_locktime is not None else 0
    if all(inp.required_height_locktime is not None for inp in constrained):
        return max(inp.required_height_locktime for inp in constrained)  # type: ignore[type-var]
    if all(inp.required_time_locktime is not None for inp in constrained):
        return max(inp.required_time_locktime for inp in constrained)  # type: ignore[type-var]
    msg = "inputs require both time-based and height-based locktimes"
    raise LocktimeConflictError(msg)


# ---------------------------------------------------------------------------
# Version-specific global rules
# ---------------------------------------------------------------------------


def _check_v0_global(global_: PsbtGlobal) -> None:
    tx = global_.unsigned_tx
    if tx is None:
        raise MissingRequiredFieldError("global.unsigned_tx", "required in version 0")

    # Signing data lives in the input maps, never in the embedded transaction
    for index, txin in enumerate(tx.inputs):
        if txin.script_sig:
            field = f"global.unsigned_tx.inputs[{index}].script_sig"
            raise ForbiddenFieldPresentError(field, "must be empty")
        if txin.witness:
            field = f"global.unsigned_tx.inputs[{index}].witness"
            raise ForbiddenFieldPresentError(field, "must be empty")


def _check_map_count(scope: str, n_records: int, n_tx: int) -> None:
    if n_records < n_tx:
        field = f"{scope}[{n_records}]"
        raise MissingRequiredFieldError(field, f"no map for unsigned transaction {scope} {n_records}")
    if n_records > n_tx:
        field = f"{scope}[{n_tx}]"
        raise MissingRequiredFieldError(field, f"no unsigned transaction {scope} for this map")


def _check_v2_global(global_: PsbtGlobal) -> None:
    _require("global", global_, ("tx_version", "fallback_locktime"))


def _check_locktime_ranges(scope: str, inp: PsbtInput) -> None:
    time_lock = inp.required_time_locktime
    if time_lock is not None and time_lock < LOCKTIME_THRESHOLD:
        msg = f"{scope}.required_time_locktime {time_lock} is below {LOCKTIME_THRESHOLD}"
        raise LocktimeConflictError(msg)
    height_lock = inp.required_height_locktime
    if height_lock is not None and not 0 < height_lock < LOCKTIME_THRESHOLD:
        msg = f"{scope}.required_height_locktime {height_lock} is not a block height"
        raise LocktimeConflictError(msg)


# ---------------------------------------------------------------------------
# Generic field checks
# ---------------------------------------------------------------------------


def _require(scope: str, record: object, attrs: Iterable[str]) -> None:
    for attr in attrs:
        if getattr(record, attr) is None:
            raise MissingRequiredFieldError(f"{scope}.{attr}", "required in version 2")


def _check_record(
    scope: str,
    record: object,
    fields: Sequence[FieldSpec],
    fields_by_type: dict[int, FieldSpec],
    registry: frozenset[int],
) -> None:
    """Check every populated attribute of *record*: permitted and encodable."""
    for spec in fields:
        value = getattr(record, spec.attr)
        if not is_populated(value):
            continue
        field = f"{scope}.{spec.attr}"
        if spec.key_type not in registry:
            raise ForbiddenFieldPresentError(field, "not permitted in this version")
        if spec.keyed:
            _check_keyed(field, spec, value)
        elif not _value_fits(spec.kind, value):
            raise MalformedEncodingError(f"{field}: value {value!r} is not a valid {spec.kind.value}")
    _check_unknown(f"{scope}.unknown", record.unknown, fields_by_type)  # type: ignore[attr-defined]


def _check_keyed(field: str, spec: FieldSpec, mapping: object) -> None:
    if not isinstance(mapping, dict):
        raise MalformedEncodingError(f"{field}: expected a mapping")
    for key_data, value in mapping.items():
        if not isinstance(key_data, bytes) or not key_data:
            raise MalformedEncodingError(f"{field}: key data must be non-empty bytes")
        if spec.key_data_sizes is not None and len(key_data) not in spec.key_data_sizes:
            raise MalformedEncodingError(f"{field}: key data of {len(key_data)} bytes")
        if not isinstance(value, bytes):
            raise MalformedEncodingError(f"{field}: values must be bytes")


def _check_unknown(field: str, unknown: object, fields_by_type: dict[int, FieldSpec]) -> None:
    if not isinstance(unknown, dict):
        raise MalformedEncodingError(f"{field}: expected a mapping")
    for key, value in unknown.items():
        if not isinstance(key, bytes) or not key or not isinstance(value, bytes):
            raise MalformedEncodingError(f"{field}: keys must be non-empty bytes, values bytes")
        try:
            key_type = read_varint(BytesIO(key))
        except ValueError as exc:
            raise MalformedEncodingError(f"{field}: key {key.hex()} has no key type") from exc
        if key_type in fields_by_type or (
            fields_by_type is GLOBAL_FIELDS_BY_TYPE and key_type in _FRAMING_GLOBAL_KEYS
        ):
            raise MalformedEncodingError(f"{field}: key type {key_type:#x} is a recognised field")


def _value_fits(kind: ValueKind, value: object) -> bool:
    if kind is ValueKind.BYTES:
        return isinstance(value, bytes)
    if kind is ValueKind.FLAGS:
        return is_uint8(value)
    if kind is ValueKind.UINT32:
        return is_uint32(value)
    if kind is ValueKind.INT32:
        return is_int32(value)
    if kind is ValueKind.INT64:
        return is_int64(value)
    if kind is ValueKind.TXID:
        return isinstance(value, Txid)
    return isinstance(value, Transaction) and _tx_fits(value)


def _tx_fits(tx: Transaction) -> bool:
    if not (is_int32(tx.version) and is_uint32(tx.locktime)):
        return False
    for txin in tx.inputs:
        if not (
            isinstance(txin.prev_tx_id, bytes)
            and len(txin.prev_tx_id) == TXID_SIZE
            and is_uint32(txin.prev_tx_out_index)
            and is_uint32(txin.sequence)
            and isinstance(txin.script_sig, bytes)
        ):
            return False
    return all(
        is_int64(txout.value) and isinstance(txout.script_pubkey, bytes) for txout in tx.outputs
    )
