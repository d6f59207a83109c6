"""Transaction serialisation — compact-size ints, legacy and segwit formats.

Provides the unsigned-transaction model embedded in version 0 PSBTs:
- Compact-size (VarInt) encoding/decoding with canonical-form checks
- TxInput / TxOutput data classes
- Transaction class with serialize / deserialize / txid computation
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from io import BytesIO

from psbt_core.bitcoin.primitives import SEQUENCE_FINAL, TXID_SIZE, OutPoint, Txid
from psbt_core.utils.crypto import sha256d

# ---------------------------------------------------------------------------
# Stream helpers
# ---------------------------------------------------------------------------


def read_exact(stream: BytesIO, n: int) -> bytes:
    """Read exactly *n* bytes or raise ``ValueError``."""
    data = stream.read(n)
    if len(data) != n:
        msg = f"Unexpected end of stream: wanted {n} bytes, got {len(data)}"
        raise ValueError(msg)
    return data


def _unpack(fmt: str, stream: BytesIO) -> int:
    return struct.unpack(fmt, read_exact(stream, struct.calcsize(fmt)))[0]


# ---------------------------------------------------------------------------
# VarInt encoding / decoding
# ---------------------------------------------------------------------------


def encode_varint(n: int) -> bytes:
    """Encode an integer as a Bitcoin-style variable-length integer."""
    if n < 0:
        msg = "Cannot encode a negative varint"
        raise ValueError(msg)
    if n < 0xFD:
        return struct.pack("<B", n)
    if n <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", n)
    if n <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", n)
    return b"\xff" + struct.pack("<Q", n)


def read_varint(stream: BytesIO) -> int:
    """Read a Bitcoin-style variable-length integer from a byte stream.

    Non-canonical encodings (a value that fits a shorter form) are rejected,
    so that every decoded integer re-encodes to the same bytes.
    """
    first = stream.read(1)
    if len(first) == 0:
        msg = "Unexpected end of stream reading varint"
        raise ValueError(msg)
    n = first[0]
    if n < 0xFD:
        return n
    if n == 0xFD:
        value, minimum = _unpack("<H", stream), 0xFD
    elif n == 0xFE:
        value, minimum = _unpack("<I", stream), 0x10000
    else:
        value, minimum = _unpack("<Q", stream), 0x100000000
    if value < minimum:
        msg = "Non-canonical varint encoding"
        raise ValueError(msg)
    return value


def encode_varbytes(data: bytes) -> bytes:
    """Length-prefix *data* with a varint."""
    return encode_varint(len(data)) + data


def read_varbytes(stream: BytesIO) -> bytes:
    """Read a varint length prefix and that many bytes."""
    return read_exact(stream, read_varint(stream))


# ---------------------------------------------------------------------------
# TxInput
# ---------------------------------------------------------------------------


@dataclass
class TxInput:
    """A transaction input.

    Attributes:
        prev_tx_id: 32-byte hash of the previous transaction (internal byte order).
        prev_tx_out_index: Index of the output in the previous transaction.
        script_sig: Unlocking script (scriptSig).
        sequence: Sequence number (default 0xFFFFFFFF).
        witness: Segregated witness stack items.
    """

    prev_tx_id: bytes
    prev_tx_out_index: int
    script_sig: bytes = b""
    sequence: int = SEQUENCE_FINAL
    witness: list[bytes] = field(default_factory=list)

    @property
    def outpoint(self) -> OutPoint:
        """The previous output this input spends."""
        return OutPoint(Txid(self.prev_tx_id), self.prev_tx_out_index)

    def serialize(self) -> bytes:
        """Serialize the input to bytes (without its witness)."""
        result = self.prev_tx_id
        result += struct.pack("<I", self.prev_tx_out_index)
        result += encode_varbytes(self.script_sig)
        result += struct.pack("<I", self.sequence)
        return result

    def serialize_witness(self) -> bytes:
        """Serialize the witness stack of this input."""
        result = encode_varint(len(self.witness))
        for item in self.witness:
            result += encode_varbytes(item)
        return result

    @classmethod
    def deserialize(cls, stream: BytesIO) -> TxInput:
        """Deserialize a transaction input from a byte stream."""
        prev_tx_id = read_exact(stream, TXID_SIZE)
        prev_tx_out_index = _unpack("<I", stream)
        script_sig = read_varbytes(stream)
        sequence = _unpack("<I", stream)
        return cls(
            prev_tx_id=prev_tx_id,
            prev_tx_out_index=prev_tx_out_index,
            script_sig=script_sig,
            sequence=sequence,
        )


# ---------------------------------------------------------------------------
# TxOutput
# ---------------------------------------------------------------------------


@dataclass
class TxOutput:
    """A transaction output.

    Attributes:
        value: Output value in satoshis.
        script_pubkey: Locking script (scriptPubKey).
    """

    value: int
    script_pubkey: bytes

    def serialize(self) -> bytes:
        """Serialize the output to bytes."""
        return struct.pack("<q", self.value) + encode_varbytes(self.script_pubkey)

    @classmethod
    def deserialize(cls, stream: BytesIO) -> TxOutput:
        """Deserialize a transaction output from a byte stream."""
        value = _unpack("<q", stream)
        script_pubkey = read_varbytes(stream)
        return cls(value=value, script_pubkey=script_pubkey)


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------

_SEGWIT_MARKER = 0x00
_SEGWIT_FLAG = 0x01


@dataclass
class Transaction:
    """A Bitcoin transaction.

    Attributes:
        version: Transaction version (default 2).
        inputs: List of transaction inputs.
        outputs: List of transaction outputs.
        locktime: Transaction locktime (default 0).
    """

    version: int = 2
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = 0

    @property
    def has_witness(self) -> bool:
        """True when any input carries witness data."""
        return any(inp.witness for inp in self.inputs)

    def serialize(self, *, include_witness: bool = True) -> bytes:
        """Serialize the transaction to raw bytes.

        The BIP144 extended format is used only when *include_witness* is set
        and at least one input has a witness.
        """
        segwit = include_witness and self.has_witness
        result = struct.pack("<i", self.version)
        if segwit:
            result += bytes([_SEGWIT_MARKER, _SEGWIT_FLAG])
        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()
        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()
        if segwit:
            for inp in self.inputs:
                result += inp.serialize_witness()
        result += struct.pack("<I", self.locktime)
        return result

    @classmethod
    def deserialize(cls, stream: BytesIO, *, allow_witness: bool = True) -> Transaction:
        """Deserialize a transaction from a byte stream.

        With *allow_witness* unset the legacy format is assumed, so a
        zero-input transaction is never mistaken for a segwit marker.
        """
        version = _unpack("<i", stream)
        n_inputs = read_varint(stream)
        segwit = False
        if allow_witness and n_inputs == _SEGWIT_MARKER:
            pos = stream.tell()
            if stream.read(1) == bytes([_SEGWIT_FLAG]):
                segwit = True
                n_inputs = read_varint(stream)
            else:
                stream.seek(pos)
        inputs = [TxInput.deserialize(stream) for _ in range(n_inputs)]
        n_outputs = read_varint(stream)
        outputs = [TxOutput.deserialize(stream) for _ in range(n_outputs)]
        if segwit:
            for inp in inputs:
                inp.witness = [read_varbytes(stream) for _ in range(read_varint(stream))]
            if not any(inp.witness for inp in inputs):
                msg = "Segwit serialization without witness data"
                raise ValueError(msg)
        locktime = _unpack("<I", stream)
        return cls(version=version, inputs=inputs, outputs=outputs, locktime=locktime)

    @classmethod
    def from_bytes(cls, data: bytes, *, allow_witness: bool = True) -> Transaction:
        """Deserialize a transaction from raw bytes, rejecting trailing data."""
        stream = BytesIO(data)
        tx = cls.deserialize(stream, allow_witness=allow_witness)
        if stream.tell() != len(data):
            msg = "Trailing data after transaction"
            raise ValueError(msg)
        return tx

    def txid_bytes(self) -> bytes:
        """Compute the transaction ID as 32 bytes (internal byte order)."""
        return sha256d(self.serialize(include_witness=False))

    def txid(self) -> Txid:
        """Compute the transaction ID (double-SHA256 of the non-witness form)."""
        return Txid(self.txid_bytes())

    def add_input(
        self,
        prev_tx_id: bytes,
        prev_tx_out_index: int,
        script_sig: bytes = b"",
        sequence: int = SEQUENCE_FINAL,
    ) -> TxInput:
        """Add an input to the transaction.

        Returns:
            The newly created :class:`TxInput`.
        """
        inp = TxInput(
            prev_tx_id=prev_tx_id,
            prev_tx_out_index=prev_tx_out_index,
            script_sig=script_sig,
            sequence=sequence,
        )
        self.inputs.append(inp)
        return inp

    def add_output(self, value: int, script_pubkey: bytes) -> TxOutput:
        """Add an output to the transaction.

        Returns:
            The newly created :class:`TxOutput`.
        """
        out = TxOutput(value=value, script_pubkey=script_pubkey)
        self.outputs.append(out)
        return out
