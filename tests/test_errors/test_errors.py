"""Tests for the PSBT exception hierarchy."""

from __future__ import annotations

import pytest

from psbt_core.errors.psbt_errors import (
    ConversionImpossibleError,
    ErrorKind,
    FieldError,
    ForbiddenFieldPresentError,
    LocktimeConflictError,
    MalformedEncodingError,
    MissingRequiredFieldError,
    PsbtError,
    UnsupportedVersionError,
)

# ---------------------------------------------------------------------------
# PsbtError base class
# ---------------------------------------------------------------------------


class TestPsbtError:
    def test_default_attributes(self) -> None:
        err = PsbtError("something broke")
        assert str(err) == "something broke"
        assert err.message == "something broke"
        assert err.code == "psbt-error"
        assert err.kind is None

    def test_custom_code(self) -> None:
        err = PsbtError("bad", code="custom")
        assert err.code == "custom"

    def test_is_exception(self) -> None:
        with pytest.raises(PsbtError, match="boom"):
            raise PsbtError("boom")


# ---------------------------------------------------------------------------
# Typed failure kinds
# ---------------------------------------------------------------------------


class TestKinds:
    @pytest.mark.parametrize(
        ("cls", "kind"),
        [
            (MalformedEncodingError, ErrorKind.MALFORMED_ENCODING),
            (LocktimeConflictError, ErrorKind.LOCKTIME_CONFLICT),
            (ConversionImpossibleError, ErrorKind.CONVERSION_IMPOSSIBLE),
        ],
    )
    def test_message_errors(self, cls: type[PsbtError], kind: ErrorKind) -> None:
        err = cls("detail")
        assert isinstance(err, PsbtError)
        assert err.kind is kind
        assert err.code == kind.value
        assert err.message == "detail"

    def test_unsupported_version(self) -> None:
        err = UnsupportedVersionError(1)
        assert err.version == 1
        assert err.code == "unsupported-version"
        assert "1" in err.message

    @pytest.mark.parametrize(
        ("cls", "code"),
        [
            (MissingRequiredFieldError, "missing-required-field"),
            (ForbiddenFieldPresentError, "forbidden-field-present"),
        ],
    )
    def test_field_errors(self, cls: type[FieldError], code: str) -> None:
        err = cls("input[0].sequence", "not permitted")
        assert isinstance(err, FieldError)
        assert err.field == "input[0].sequence"
        assert err.message == "input[0].sequence: not permitted"
        assert err.code == code

    def test_kind_values_are_distinct(self) -> None:
        assert len({kind.value for kind in ErrorKind}) == len(ErrorKind)
