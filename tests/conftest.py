"""Shared test fixtures for py-psbt test suite."""

from __future__ import annotations

import pytest

from psbt_core.bitcoin.primitives import Txid
from psbt_core.bitcoin.transaction import Transaction, TxInput, TxOutput
from psbt_core.psbt.container import Psbt
from psbt_core.psbt.records import (
    PsbtGlobal,
    PsbtInput,
    PsbtOutput,
    PsbtRecords,
    PsbtVersion,
)

PREV_TXID_A = bytes.fromhex("11" * 32)
PREV_TXID_B = bytes.fromhex("22" * 32)
P2WPKH_SCRIPT = bytes.fromhex("0014") + b"\xab" * 20
P2TR_SCRIPT = bytes.fromhex("5120") + b"\xcd" * 32


@pytest.fixture
def unsigned_tx() -> Transaction:
    """A two-input, two-output unsigned transaction."""
    return Transaction(
        version=2,
        inputs=[
            TxInput(prev_tx_id=PREV_TXID_A, prev_tx_out_index=0, sequence=0xFFFFFFFD),
            TxInput(prev_tx_id=PREV_TXID_B, prev_tx_out_index=3),
        ],
        outputs=[
            TxOutput(value=50_000, script_pubkey=P2WPKH_SCRIPT),
            TxOutput(value=12_345, script_pubkey=P2TR_SCRIPT),
        ],
        locktime=800_000,
    )


@pytest.fixture
def v0_records(unsigned_tx: Transaction) -> PsbtRecords:
    """A valid V0 record set around *unsigned_tx*."""
    return PsbtRecords(
        PsbtVersion.V0,
        PsbtGlobal(unsigned_tx=unsigned_tx),
        [
            PsbtInput(witness_utxo=b"\x01" * 31, partial_sigs={b"\x02" * 33: b"\x30" * 71}),
            PsbtInput(),
        ],
        [PsbtOutput(bip32_derivation={b"\x03" * 33: b"\x00" * 8}), PsbtOutput()],
    )


@pytest.fixture
def v0_psbt(v0_records: PsbtRecords) -> Psbt:
    return Psbt.from_records(*v0_records)


def make_v2_input(txid: bytes = PREV_TXID_A, index: int = 0, **fields: object) -> PsbtInput:
    """A V2 input spending ``txid:index`` with extra *fields* set."""
    return PsbtInput(previous_tx_id=Txid(txid), output_index=index, **fields)  # type: ignore[arg-type]


def make_v2_output(amount: int = 50_000, script: bytes = P2WPKH_SCRIPT, **fields: object) -> PsbtOutput:
    """A V2 output paying *amount* to *script* with extra *fields* set."""
    return PsbtOutput(amount=amount, script=script, **fields)  # type: ignore[arg-type]


@pytest.fixture
def v2_records() -> PsbtRecords:
    """A valid V2 record set with explicit sequences."""
    return PsbtRecords(
        PsbtVersion.V2,
        PsbtGlobal(tx_version=2, fallback_locktime=0),
        [
            make_v2_input(PREV_TXID_A, 0, sequence=0xFFFFFFFE),
            make_v2_input(PREV_TXID_B, 1, sequence=0xFFFFFFFF),
        ],
        [make_v2_output(), make_v2_output(12_345, P2TR_SCRIPT)],
    )


@pytest.fixture
def v2_psbt(v2_records: PsbtRecords) -> Psbt:
    return Psbt.from_records(*v2_records)
