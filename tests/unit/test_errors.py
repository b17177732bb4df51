"""Unit tests for the application error taxonomy."""

from __future__ import annotations

import pytest

from lukaut.errors import (
    ECONFLICT,
    EINTERNAL,
    EINVALID,
    ENOTFOUND,
    EPAYMENT,
    INTERNAL_ERROR_MESSAGE,
    LukautError,
    ValidationError,
    error_code,
    error_message,
    http_status_for,
    internal,
    not_found,
)


class TestHttpStatus:
    @pytest.mark.parametrize(
        "code,status",
        [
            ("invalid", 400),
            ("unauthorized", 401),
            ("payment", 402),
            ("forbidden", 403),
            ("not_found", 404),
            ("conflict", 409),
            ("gone", 410),
            ("too_large", 413),
            ("rate_limit", 429),
            ("internal", 500),
            ("not_impl", 501),
        ],
    )
    def test_code_maps_to_status(self, code, status):
        assert http_status_for(code) == status

    def test_unknown_code_is_500(self):
        assert http_status_for("no_such_code") == 500


class TestErrorCode:
    def test_none_has_empty_code(self):
        assert error_code(None) == ""

    def test_application_error_keeps_code(self):
        assert error_code(LukautError(ECONFLICT, "taken")) == ECONFLICT

    def test_foreign_exception_is_internal(self):
        assert error_code(RuntimeError("boom")) == EINTERNAL


class TestErrorMessage:
    def test_user_message_is_returned(self):
        assert error_message(LukautError(EPAYMENT, "Upgrade your plan")) == "Upgrade your plan"

    def test_internal_details_are_hidden(self):
        exc = internal(RuntimeError("password=hunter2 leaked"), op="reports.generate")
        assert error_message(exc) == INTERNAL_ERROR_MESSAGE
        assert "hunter2" not in error_message(exc)

    def test_foreign_exception_is_generic(self):
        assert error_message(KeyError("secret")) == INTERNAL_ERROR_MESSAGE

    def test_empty_message_falls_back(self):
        assert error_message(LukautError(EINVALID)) == INTERNAL_ERROR_MESSAGE


class TestStringForm:
    def test_includes_op_and_code(self):
        exc = not_found("Inspection", "abc", op="inspections.get")
        assert exc.code == ENOTFOUND
        assert str(exc) == "inspections.get: <not_found> Inspection with ID 'abc' not found"

    def test_cause_replaces_message(self):
        cause = ValueError("bad data")
        exc = internal(cause, op="jobs.run")
        assert str(exc) == "jobs.run: bad data"
        assert exc.__cause__ is cause

    def test_validation_error_lists_fields(self):
        exc = ValidationError({"email": "Email is required", "name": "Name is required"})
        assert exc.code == EINVALID
        assert exc.fields == {"email": "Email is required", "name": "Name is required"}
        assert str(exc) == "validation failed: email: Email is required, name: Name is required"
