"""Psbt — the validated, logically immutable PSBT container.

A :class:`Psbt` can only be obtained through validation: the constructor
runs :func:`~psbt_core.psbt.validator.validate` on private copies of the
records it is given, and every builder method returns a new instance built
the same way. Nothing mutates an existing instance, so one can be shared
between threads and handed to signers without re-checking its structure.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING

from psbt_core.psbt import codec
from psbt_core.psbt.records import (
    PsbtGlobal,
    PsbtInput,
    PsbtOutput,
    PsbtRecords,
    PsbtVersion,
)
from psbt_core.psbt.validator import validate

if TYPE_CHECKING:
    from collections.abc import Sequence

    from psbt_core.config.settings import CodecConfig

logger = logging.getLogger(__name__)


class Psbt:
    """A partially signed transaction whose records satisfy their version.

    Use :meth:`from_records` or the byte/base64 constructors; all of them
    validate. Read the contents with :meth:`as_records`.
    """

    __slots__ = ("_global", "_inputs", "_outputs", "_version")

    def __init__(
        self,
        version: PsbtVersion | int,
        global_: PsbtGlobal,
        inputs: Sequence[PsbtInput],
        outputs: Sequence[PsbtOutput],
    ) -> None:
        # Copy first so the caller cannot change what was validated
        global_copy = copy.deepcopy(global_)
        inputs_copy = tuple(copy.deepcopy(inp) for inp in inputs)
        outputs_copy = tuple(copy.deepcopy(out) for out in outputs)
        self._version = validate(version, global_copy, inputs_copy, outputs_copy)
        self._global = global_copy
        self._inputs = inputs_copy
        self._outputs = outputs_copy

    # -- Construction --------------------------------------------------------

    @classmethod
    def from_records(
        cls,
        version: PsbtVersion | int,
        global_: PsbtGlobal,
        inputs: Sequence[PsbtInput],
        outputs: Sequence[PsbtOutput],
    ) -> Psbt:
        """Validate a record set and wrap it.

        Raises:
            PsbtError: The validator's error, unchanged.
        """
        return cls(version, global_, inputs, outputs)

    @classmethod
    def from_bytes(cls, data: bytes, *, config: CodecConfig | None = None) -> Psbt:
        """Decode and validate a binary PSBT."""
        return cls(*codec.decode(data, config=config))

    @classmethod
    def from_base64(cls, text: str, *, config: CodecConfig | None = None) -> Psbt:
        """Decode and validate a base64 PSBT."""
        return cls(*codec.decode_base64(text, config=config))

    # -- Copy-on-write builders ----------------------------------------------

    def add_input(self, candidate: PsbtInput) -> Psbt:
        """Return a new PSBT with *candidate* appended to the inputs.

        The whole record set is re-validated, since locktime requirements
        span inputs. The receiver is left untouched either way.
        """
        new = Psbt(self._version, self._global, (*self._inputs, candidate), self._outputs)
        logger.debug("Added input %d to PSBT v%d", len(new._inputs) - 1, self._version)
        return new

    def add_output(self, candidate: PsbtOutput) -> Psbt:
        """Return a new PSBT with *candidate* appended to the outputs."""
        new = Psbt(self._version, self._global, self._inputs, (*self._outputs, candidate))
        logger.debug("Added output %d to PSBT v%d", len(new._outputs) - 1, self._version)
        return new

    def replace_input(self, index: int, candidate: PsbtInput) -> Psbt:
        """Return a new PSBT with input *index* replaced by *candidate*.

        Raises:
            IndexError: No input at *index*.
        """
        inputs = list(self._inputs)
        inputs[index] = candidate
        return Psbt(self._version, self._global, inputs, self._outputs)

    def replace_output(self, index: int, candidate: PsbtOutput) -> Psbt:
        """Return a new PSBT with output *index* replaced by *candidate*.

        Raises:
            IndexError: No output at *index*.
        """
        outputs = list(self._outputs)
        outputs[index] = candidate
        return Psbt(self._version, self._global, self._inputs, outputs)

    def replace_global(self, global_: PsbtGlobal) -> Psbt:
        """Return a new PSBT with a different global map."""
        return Psbt(self._version, global_, self._inputs, self._outputs)

    # -- Read access ---------------------------------------------------------

    @property
    def version(self) -> PsbtVersion:
        return self._version

    @property
    def input_count(self) -> int:
        return len(self._inputs)

    @property
    def output_count(self) -> int:
        return len(self._outputs)

    def as_records(self) -> PsbtRecords:
        """Return a copy of the records for read-only use by collaborators."""
        return PsbtRecords(
            self._version,
            copy.deepcopy(self._global),
            [copy.deepcopy(inp) for inp in self._inputs],
            [copy.deepcopy(out) for out in self._outputs],
        )

    # -- Serialization -------------------------------------------------------

    def to_bytes(self) -> bytes:
        """Encode to the binary PSBT format."""
        return codec.encode(self._version, self._global, self._inputs, self._outputs)

    def to_base64(self) -> str:
        """Encode to base64 text."""
        return codec.encode_base64(self._version, self._global, self._inputs, self._outputs)

    # -- Dunder --------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Psbt):
            return NotImplemented
        return (
            self._version == other._version
            and self._global == other._global
            and self._inputs == other._inputs
            and self._outputs == other._outputs
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"Psbt(version={self._version.name}, inputs={len(self._inputs)}, "
            f"outputs={len(self._outputs)})"
        )
