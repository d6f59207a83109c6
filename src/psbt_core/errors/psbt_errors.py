"""PsbtError — base exception class and the typed failure kinds."""

from __future__ import annotations

import enum


class ErrorKind(enum.StrEnum):
    """Machine-readable failure kinds."""

    MALFORMED_ENCODING = "malformed-encoding"
    UNSUPPORTED_VERSION = "unsupported-version"
    MISSING_REQUIRED_FIELD = "missing-required-field"
    FORBIDDEN_FIELD_PRESENT = "forbidden-field-present"
    LOCKTIME_CONFLICT = "locktime-conflict"
    CONVERSION_IMPOSSIBLE = "conversion-impossible"


class PsbtError(Exception):
    """Base error for all PSBT operations.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code string.
    """

    kind: ErrorKind | None = None

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or (self.kind.value if self.kind else "psbt-error")


class MalformedEncodingError(PsbtError):
    """Bytes do not parse as the key-typed map structure, or a field value
    cannot be represented on the wire."""

    kind = ErrorKind.MALFORMED_ENCODING


class UnsupportedVersionError(PsbtError):
    """Version tag outside the known set."""

    kind = ErrorKind.UNSUPPORTED_VERSION

    def __init__(self, version: object) -> None:
        super().__init__(f"unsupported PSBT version: {version!r}")
        self.version = version


class FieldError(PsbtError):
    """A structural rule about one field was broken.

    Attributes:
        field: Dotted location of the field, e.g. ``input[0].previous_tx_id``.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class MissingRequiredFieldError(FieldError):
    """A field mandatory for the declared version is absent."""

    kind = ErrorKind.MISSING_REQUIRED_FIELD


class ForbiddenFieldPresentError(FieldError):
    """A field disallowed for the declared version is populated."""

    kind = ErrorKind.FORBIDDEN_FIELD_PRESENT


class LocktimeConflictError(PsbtError):
    """Input locktime requirements cannot be met by one transaction locktime."""

    kind = ErrorKind.LOCKTIME_CONFLICT


class ConversionImpossibleError(PsbtError):
    """A V0 <-> V2 conversion cannot produce a valid container."""

    kind = ErrorKind.CONVERSION_IMPOSSIBLE
