"""Version conversion between V0 and V2 PSBTs.

Upgrading moves the embedded transaction's per-input and per-output data
into the records; downgrading synthesizes the embedded transaction from
them. Both directions re-validate the result, and a record set the target
version cannot accept surfaces as :class:`ConversionImpossibleError` with
the validator's error as its cause.

Downgrading loses the V2-only fields (locktime requirements, modification
flags), so neither direction is an inverse of the other. What holds is
``to_v2(to_v0(to_v2(x))) == to_v2(x)``: past the first step, conversion is
idempotent. Callers must not rely on ``to_v0(to_v2(x)) == x``; with the
default :class:`ConversionConfig` this implementation happens to satisfy
it.

Each function takes an optional *config*. When it is omitted a fresh
:class:`ConversionConfig` is built, reading the ``PSBT_CONVERSION__*``
environment variables on every call; pass one to fix the policy.
"""

from __future__ import annotations

import logging

from psbt_core.bitcoin.transaction import Transaction, TxInput, TxOutput
from psbt_core.config.settings import ConversionConfig
from psbt_core.errors.psbt_errors import (
    ConversionImpossibleError,
    LocktimeConflictError,
    PsbtError,
)
from psbt_core.psbt.container import Psbt
from psbt_core.psbt.records import (
    PsbtGlobal,
    PsbtInput,
    PsbtOutput,
    PsbtVersion,
    TxModifiable,
)
from psbt_core.psbt.validator import resolve_locktime

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# V0 -> V2
# ---------------------------------------------------------------------------


def to_v2(psbt: Psbt, *, config: ConversionConfig | None = None) -> Psbt:
    """Upgrade *psbt* to version 2; a V2 container is returned unchanged.

    Raises:
        ConversionImpossibleError: The upgraded records fail validation.
    """
    if psbt.version is PsbtVersion.V2:
        return psbt
    config = config or ConversionConfig()

    _, global_, inputs, outputs = psbt.as_records()
    tx = global_.unsigned_tx
    assert tx is not None  # guaranteed by validation of a V0 container

    for record, txin in zip(inputs, tx.inputs, strict=True):
        record.previous_tx_id = txin.outpoint.txid
        record.output_index = txin.prev_tx_out_index
        record.sequence = txin.sequence
    for record, txout in zip(outputs, tx.outputs, strict=True):
        record.amount = txout.value
        record.script = txout.script_pubkey

    global_.tx_version = tx.version
    global_.fallback_locktime = tx.locktime
    if config.default_tx_modifiable is not None:
        global_.tx_modifiable = TxModifiable(config.default_tx_modifiable)
    global_.unsigned_tx = None

    result = _rebuild(PsbtVersion.V2, global_, inputs, outputs)
    logger.debug("Converted PSBT v0 to v2 (%d inputs, %d outputs)", len(inputs), len(outputs))
    return result


# ---------------------------------------------------------------------------
# V2 -> V0
# ---------------------------------------------------------------------------


def to_v0(psbt: Psbt, *, config: ConversionConfig | None = None) -> Psbt:
    """Downgrade *psbt* to version 0; a V0 container is returned unchanged.

    The embedded transaction takes its outpoints, sequences, amounts and
    scripts from the records in order, its version from ``tx_version`` and
    its locktime from :func:`~psbt_core.psbt.validator.resolve_locktime`.
    Every V2-only field is dropped.

    Raises:
        ConversionImpossibleError: An input has no sequence while
            ``config.require_sequence`` is set, or the downgraded records
            fail validation.
    """
    if psbt.version is PsbtVersion.V0:
        return psbt
    config = config or ConversionConfig()

    _, global_, inputs, outputs = psbt.as_records()
    tx = _synthesize_tx(global_, inputs, outputs, config)

    for index, record in enumerate(inputs):
        dropped = _clear_fields(record, _V2_INPUT_ATTRS)
        if dropped:
            logger.debug("Dropped %s from input %d", ", ".join(dropped), index)
    for record in outputs:
        _clear_fields(record, _V2_OUTPUT_ATTRS)

    if global_.tx_modifiable is not None:
        logger.debug("Dropped tx_modifiable flags %#x", int(global_.tx_modifiable))
    global_.unsigned_tx = tx
    global_.tx_version = None
    global_.fallback_locktime = None
    global_.tx_modifiable = None

    result = _rebuild(PsbtVersion.V0, global_, inputs, outputs)
    logger.debug("Converted PSBT v2 to v0 (%d inputs, %d outputs)", len(inputs), len(outputs))
    return result


# ---------------------------------------------------------------------------
# Transaction extraction
# ---------------------------------------------------------------------------


def extract_unsigned_tx(psbt: Psbt, *, config: ConversionConfig | None = None) -> Transaction:
    """Return the unsigned transaction *psbt* describes.

    Under V0 this is a copy of the embedded transaction; under V2 it is built
    the same way :func:`to_v0` builds it.

    Raises:
        ConversionImpossibleError: A V2 input has no sequence while
            ``config.require_sequence`` is set.
    """
    _, global_, inputs, outputs = psbt.as_records()
    if psbt.version is PsbtVersion.V0:
        assert global_.unsigned_tx is not None  # guaranteed by validation of a V0 container
        return global_.unsigned_tx
    return _synthesize_tx(global_, inputs, outputs, config or ConversionConfig())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_V2_INPUT_ATTRS = (
    "previous_tx_id",
    "output_index",
    "sequence",
    "required_time_locktime",
    "required_height_locktime",
)
_V2_OUTPUT_ATTRS = ("amount", "script")


def _synthesize_tx(
    global_: PsbtGlobal,
    inputs: list[PsbtInput],
    outputs: list[PsbtOutput],
    config: ConversionConfig,
) -> Transaction:
    try:
        locktime = resolve_locktime(global_, inputs)
    except LocktimeConflictError as exc:
        raise ConversionImpossibleError(f"no transaction locktime: {exc.message}") from exc
    tx = Transaction(version=global_.tx_version, locktime=locktime)  # type: ignore[arg-type]
    for index, record in enumerate(inputs):
        sequence = record.sequence
        if sequence is None:
            if config.require_sequence:
                msg = f"input {index} has no sequence"
                raise ConversionImpossibleError(msg)
            sequence = config.default_sequence
            logger.debug("Input %d has no sequence, using %#x", index, sequence)
        tx.inputs.append(
            TxInput(
                prev_tx_id=bytes(record.previous_tx_id),  # type: ignore[arg-type]
                prev_tx_out_index=record.output_index,  # type: ignore[arg-type]
                sequence=sequence,
            )
        )
    for record in outputs:
        tx.outputs.append(TxOutput(value=record.amount, script_pubkey=record.script))  # type: ignore[arg-type]
    return tx


def _clear_fields(record: PsbtInput | PsbtOutput, attrs: tuple[str, ...]) -> list[str]:
    """Reset *attrs* on *record* to absent; returns the names that held data."""
    dropped = [attr for attr in attrs if getattr(record, attr) is not None]
    for attr in attrs:
        setattr(record, attr, None)
    return dropped


def _rebuild(
    version: PsbtVersion,
    global_: PsbtGlobal,
    inputs: list[PsbtInput],
    outputs: list[PsbtOutput],
) -> Psbt:
    try:
        return Psbt.from_records(version, global_, inputs, outputs)  # type: ignore[arg-type]
    except PsbtError as exc:
        msg = f"converted records are not a valid version {int(version)} PSBT: {exc.message}"
        raise ConversionImpossibleError(msg) from exc
