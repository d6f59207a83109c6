"""Tests for V0 <-> V2 conversion — psbt/converter.py."""

from __future__ import annotations

import logging

import pytest

from psbt_core.bitcoin.primitives import SEQUENCE_FINAL, Txid
from psbt_core.bitcoin.transaction import Transaction
from psbt_core.config.settings import ConversionConfig
from psbt_core.errors.psbt_errors import (
    ConversionImpossibleError,
    LocktimeConflictError,
    MissingRequiredFieldError,
)
from psbt_core.psbt import container
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


def _v2_psbt(*inputs: PsbtInput, fallback_locktime: int = 0, **global_fields: object) -> Psbt:
    return Psbt.from_records(
        PsbtVersion.V2,
        PsbtGlobal(tx_version=2, fallback_locktime=fallback_locktime, **global_fields),  # type: ignore[arg-type]
        list(inputs),
        [PsbtOutput(amount=1000, script=b"\x51")],
    )


def _input(n: int, **fields: object) -> PsbtInput:
    return PsbtInput(previous_tx_id=Txid(bytes([n + 1]) * 32), output_index=n, **fields)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Upgrade
# ---------------------------------------------------------------------------


class TestToV2:
    def test_identity_when_already_v2(self, v2_psbt: Psbt) -> None:
        assert to_v2(v2_psbt) is v2_psbt

    def test_field_mapping(self, v0_psbt: Psbt, unsigned_tx: Transaction) -> None:
        upgraded = to_v2(v0_psbt)
        assert upgraded.version is PsbtVersion.V2
        _, global_, inputs, outputs = upgraded.as_records()

        assert global_.unsigned_tx is None
        assert global_.tx_version == 2
        assert global_.fallback_locktime == 800_000
        assert global_.tx_modifiable is None

        for record, txin in zip(inputs, unsigned_tx.inputs, strict=True):
            assert record.previous_tx_id == Txid(txin.prev_tx_id)
            assert record.output_index == txin.prev_tx_out_index
            assert record.sequence == txin.sequence
            assert record.required_time_locktime is None
            assert record.required_height_locktime is None
        for record, txout in zip(outputs, unsigned_tx.outputs, strict=True):
            assert record.amount == txout.value
            assert record.script == txout.script_pubkey

    def test_signing_data_preserved(self, v0_psbt: Psbt) -> None:
        original = v0_psbt.as_records()
        upgraded = to_v2(v0_psbt).as_records()
        assert upgraded.inputs[0].witness_utxo == original.inputs[0].witness_utxo
        assert upgraded.inputs[0].partial_sigs == original.inputs[0].partial_sigs
        assert upgraded.outputs[0].bip32_derivation == original.outputs[0].bip32_derivation

    def test_source_unchanged(self, v0_psbt: Psbt, v0_records: PsbtRecords) -> None:
        to_v2(v0_psbt)
        assert v0_psbt.as_records() == v0_records

    def test_configured_tx_modifiable(self, v0_psbt: Psbt) -> None:
        config = ConversionConfig(default_tx_modifiable=3)
        upgraded = to_v2(v0_psbt, config=config)
        assert upgraded.as_records().global_.tx_modifiable == TxModifiable.INPUTS | TxModifiable.OUTPUTS

    def test_revalidation_failure(self, v0_psbt: Psbt, monkeypatch: pytest.MonkeyPatch) -> None:
        def reject(*_args: object) -> PsbtVersion:
            raise MissingRequiredFieldError("global.tx_version", "rejected")

        monkeypatch.setattr(container, "validate", reject)
        with pytest.raises(ConversionImpossibleError) as exc_info:
            to_v2(v0_psbt)
        assert isinstance(exc_info.value.__cause__, MissingRequiredFieldError)


# ---------------------------------------------------------------------------
# Downgrade
# ---------------------------------------------------------------------------


class TestToV0:
    def test_identity_when_already_v0(self, v0_psbt: Psbt) -> None:
        assert to_v0(v0_psbt) is v0_psbt

    def test_synthesized_transaction(self, v2_psbt: Psbt) -> None:
        downgraded = to_v0(v2_psbt)
        assert downgraded.version is PsbtVersion.V0
        _, global_, inputs, outputs = downgraded.as_records()
        tx = global_.unsigned_tx
        v2 = v2_psbt.as_records()

        assert tx.version == 2
        assert tx.locktime == 0
        assert [txin.outpoint.txid for txin in tx.inputs] == [r.previous_tx_id for r in v2.inputs]
        assert [txin.sequence for txin in tx.inputs] == [0xFFFFFFFE, 0xFFFFFFFF]
        assert [txout.value for txout in tx.outputs] == [50_000, 12_345]
        assert all(not txin.script_sig and not txin.witness for txin in tx.inputs)

        assert global_.tx_version is None
        assert global_.fallback_locktime is None
        assert all(r.previous_tx_id is None and r.sequence is None for r in inputs)
        assert all(r.amount is None and r.script is None for r in outputs)

    def test_locktime_from_requirements(self) -> None:
        psbt = _v2_psbt(
            _input(0, required_height_locktime=700_000),
            _input(1, required_height_locktime=750_000, required_time_locktime=1_700_000_000),
            fallback_locktime=5,
        )
        tx = to_v0(psbt).as_records().global_.unsigned_tx
        assert tx.locktime == 750_000

    def test_v2_only_fields_dropped(self) -> None:
        psbt = _v2_psbt(
            _input(0, sequence=1, required_time_locktime=1_700_000_000),
            tx_modifiable=TxModifiable.INPUTS,
        )
        records = to_v0(psbt).as_records()
        assert records.global_.tx_modifiable is None
        assert records.inputs[0].required_time_locktime is None

    def test_absent_sequence_defaults(self, caplog: pytest.LogCaptureFixture) -> None:
        psbt = _v2_psbt(_input(0))
        with caplog.at_level(logging.DEBUG, logger="psbt_core.psbt.converter"):
            tx = to_v0(psbt).as_records().global_.unsigned_tx
        assert tx.inputs[0].sequence == SEQUENCE_FINAL
        assert "no sequence" in caplog.text

    def test_absent_sequence_configured_default(self) -> None:
        config = ConversionConfig(default_sequence=0xFFFFFFFD)
        tx = to_v0(_v2_psbt(_input(0)), config=config).as_records().global_.unsigned_tx
        assert tx.inputs[0].sequence == 0xFFFFFFFD

    def test_absent_sequence_required(self) -> None:
        config = ConversionConfig(require_sequence=True)
        with pytest.raises(ConversionImpossibleError, match="input 0"):
            to_v0(_v2_psbt(_input(0)), config=config)

    def test_default_policy_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PSBT_CONVERSION__REQUIRE_SEQUENCE", "true")
        with pytest.raises(ConversionImpossibleError, match="input 0"):
            to_v0(_v2_psbt(_input(0)))
        downgraded = to_v0(_v2_psbt(_input(0)), config=ConversionConfig(require_sequence=False))
        assert downgraded.as_records().global_.unsigned_tx.inputs[0].sequence == SEQUENCE_FINAL  # type: ignore[union-attr]

    def test_locktime_failure_is_chained(self, v2_psbt: Psbt, monkeypatch: pytest.MonkeyPatch) -> None:
        def conflict(*_args: object) -> int:
            msg = "inputs require both kinds"
            raise LocktimeConflictError(msg)

        monkeypatch.setattr("psbt_core.psbt.converter.resolve_locktime", conflict)
        with pytest.raises(ConversionImpossibleError) as exc_info:
            to_v0(v2_psbt)
        assert isinstance(exc_info.value.__cause__, LocktimeConflictError)


# ---------------------------------------------------------------------------
# Round trips
# ---------------------------------------------------------------------------


class TestRoundTrips:
    def test_v0_survives_upgrade_and_downgrade(self, v0_psbt: Psbt) -> None:
        assert to_v0(to_v2(v0_psbt)) == v0_psbt

    def test_idempotent_past_first_step(self, v0_psbt: Psbt) -> None:
        once = to_v2(v0_psbt)
        assert to_v2(to_v0(once)) == once

    def test_idempotent_for_plain_v2(self, v2_psbt: Psbt) -> None:
        assert to_v2(to_v0(v2_psbt)) == v2_psbt

    def test_requirements_are_lost(self) -> None:
        psbt = _v2_psbt(_input(0, sequence=0, required_height_locktime=700_000))
        restored = to_v2(to_v0(psbt))
        assert restored != psbt
        records = restored.as_records()
        assert records.inputs[0].required_height_locktime is None
        assert records.global_.fallback_locktime == 700_000
        assert to_v2(to_v0(restored)) == restored

    def test_encoded_roundtrip_after_conversion(self, v0_psbt: Psbt) -> None:
        upgraded = to_v2(v0_psbt)
        assert Psbt.from_bytes(upgraded.to_bytes()) == upgraded


# ---------------------------------------------------------------------------
# Unsigned transaction extraction
# ---------------------------------------------------------------------------


class TestExtractUnsignedTx:
    def test_v0_returns_copy(self, v0_psbt: Psbt, unsigned_tx: Transaction) -> None:
        tx = extract_unsigned_tx(v0_psbt)
        assert tx == unsigned_tx
        tx.locktime = 1
        assert extract_unsigned_tx(v0_psbt).locktime == 800_000

    def test_v2_matches_downgrade(self, v2_psbt: Psbt) -> None:
        tx = extract_unsigned_tx(v2_psbt)
        assert tx == to_v0(v2_psbt).as_records().global_.unsigned_tx

    def test_same_txid_across_versions(self, v0_psbt: Psbt, unsigned_tx: Transaction) -> None:
        assert extract_unsigned_tx(to_v2(v0_psbt)).txid() == unsigned_tx.txid()

    def test_require_sequence(self) -> None:
        with pytest.raises(ConversionImpossibleError):
            extract_unsigned_tx(_v2_psbt(_input(0)), config=ConversionConfig(require_sequence=True))
