"""Tests for the exception hierarchy."""

from __future__ import annotations

from passdrop.core.exceptions import (
    NotFoundError,
    PassdropException,
    ValidationException,
)


class TestPassdropException:
    def test_to_dict(self):
        exc = PassdropException("boom", {"key": "value"})

        assert exc.to_dict() == {
            "error": "PassdropException",
            "message": "boom",
            "details": {"key": "value"},
        }
        assert str(exc) == "boom"

    def test_default_details(self):
        assert PassdropException("boom").details == {}


class TestValidationException:
    def test_field_and_value(self):
        exc = ValidationException("bad size", field="size_bytes", value=-1)

        assert exc.details == {"field": "size_bytes", "value": "-1"}
        assert exc.field == "size_bytes"
        assert exc.value == -1
        assert isinstance(exc, PassdropException)

    def test_without_field(self):
        assert ValidationException("bad").details == {}


class TestNotFoundError:
    def test_message(self):
        exc = NotFoundError("upload", "rec-1")

        assert exc.message == "upload not found: rec-1"
        assert exc.resource_type == "upload"
        assert exc.resource_id == "rec-1"
