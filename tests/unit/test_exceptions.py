"""
Unit tests for the exception system.

Covers error kinds, the response dict shape, factory functions and
correlation id propagation.
"""

import pytest

from hera_core.exceptions import (
    AlreadyReversedError,
    BaseError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    GuardrailViolationError,
    HasDependentsError,
    IntegrityViolationError,
    NotFoundError,
    ServiceError,
    ValidationError,
    clear_correlation_id,
    duplicate,
    get_correlation_id,
    not_found,
    permission_denied,
    set_correlation_id,
    validation_failed,
)


class TestBaseError:
    """Test BaseError class."""

    def test_basic_error_creation(self):
        error = BaseError("Test error message")

        assert error.message == "Test error message"
        assert error.error_code == ErrorCode.INTERNAL_ERROR
        assert error.status_code == 500
        assert error.kind == "InternalError"
        assert error.cause is None
        assert error.context["error_id"] == error.error_id
        assert str(error) == "Test error message"

    def test_error_with_cause(self):
        original = ValueError("Original error")
        error = BaseError("Wrapped error", cause=original)

        assert error.cause is original
        assert error.context["cause"]["type"] == "ValueError"
        assert error.context["cause"]["message"] == "Original error"
        assert error.error_chain == [error, original]

    def test_to_dict_shape(self):
        error = BaseError("Broken", error_code=ErrorCode.DATABASE_ERROR, table="core_entity")

        payload = error.to_dict()["error"]

        assert payload["kind"] == "InternalError"
        assert payload["code"] == "1001"
        assert payload["message"] == "Broken"
        assert payload["context"] == {"table": "core_entity"}
        assert "cause" not in payload

    def test_to_dict_includes_cause_on_request(self):
        error = BaseError("Wrapped", cause=KeyError("missing"))

        payload = error.to_dict(include_cause=True)["error"]
        assert payload["cause"]["type"] == "KeyError"
        assert "traceback" not in payload["cause"]

        with_trace = error.to_dict(include_cause=True, include_traceback=True)["error"]
        assert with_trace["cause"]["traceback"]

    def test_add_context_is_fluent(self):
        error = BaseError("Test").add_context(entity_id="e-1", attempt=2)

        assert error.context["entity_id"] == "e-1"
        assert error.context["attempt"] == 2


class TestErrorKinds:
    """Every caller-facing kind carries its code and status."""

    @pytest.mark.parametrize(
        "error, kind, code, status",
        [
            (ValidationError("bad"), "ValidationError", ErrorCode.VALIDATION_FAILED, 400),
            (NotFoundError("gone"), "NotFound", ErrorCode.NOT_FOUND, 404),
            (ConflictError("taken"), "Conflict", ErrorCode.CONFLICT, 409),
            (HasDependentsError("busy", entity_id="e-1"), "HasDependents", ErrorCode.HAS_DEPENDENTS, 409),
            (AlreadyReversedError("t-1"), "AlreadyReversed", ErrorCode.ALREADY_REVERSED, 409),
            (GuardrailViolationError("mixed", guardrail="branch"), "GuardrailViolation", ErrorCode.GUARDRAIL_VIOLATION, 422),
            (ForbiddenError("no"), "Forbidden", ErrorCode.PERMISSION_DENIED, 403),
            (IntegrityViolationError("leak"), "IntegrityViolation", ErrorCode.INTEGRITY_VIOLATION, 500),
        ],
    )
    def test_kind_code_and_status(self, error, kind, code, status):
        assert error.kind == kind
        assert error.error_code == code
        assert error.status_code == status
        assert error.to_dict()["error"]["kind"] == kind

    def test_validation_error_field(self):
        error = ValidationError("Invalid smart code", field="lines[2].smart_code")

        assert error.field == "lines[2].smart_code"
        assert error.to_dict()["error"]["context"]["field"] == "lines[2].smart_code"

    def test_guardrail_line_index(self):
        error = GuardrailViolationError("Branch mismatch", guardrail="branch_consistency", line_index=1)

        assert error.line_index == 1
        assert error.context["guardrail"] == "branch_consistency"

    def test_guardrail_without_line(self):
        error = GuardrailViolationError("Header only", guardrail="currency")

        assert error.line_index is None
        assert "line_index" not in error.context

    def test_has_dependents_is_a_conflict(self):
        error = HasDependentsError("Entity has dependents", entity_id="e-1", relationships=2)

        assert isinstance(error, ConflictError)
        assert error.context["entity_id"] == "e-1"
        assert error.context["relationships"] == 2

    def test_already_reversed_message(self):
        error = AlreadyReversedError("t-42")

        assert "t-42" in error.message
        assert error.context["transaction_id"] == "t-42"

    def test_integrity_issues_default_empty(self):
        assert IntegrityViolationError("clean?").context["issues"] == []

    def test_service_error_operation(self):
        error = ServiceError("Boom", operation="post", cause=RuntimeError("x"))

        assert error.context["operation"] == "post"
        assert error.kind == "InternalError"


class TestFactories:
    """Test error factory functions."""

    def test_not_found(self):
        error = not_found("Entity", entity_id="e-1")

        assert isinstance(error, NotFoundError)
        assert error.message == "Entity not found: entity_id=e-1"
        assert error.context["resource_type"] == "Entity"
        assert error.context["entity_id"] == "e-1"

    def test_not_found_without_identifiers(self):
        assert not_found("Organization").message == "Organization not found"

    def test_duplicate(self):
        error = duplicate("Transaction", transaction_code="POS-1")

        assert isinstance(error, ConflictError)
        assert error.error_code == ErrorCode.DUPLICATE
        assert error.message == "Duplicate Transaction: transaction_code=POS-1"

    def test_validation_failed(self):
        error = validation_failed("currency", "usdollar", "must be 3 letters")

        assert error.field == "currency"
        assert error.context["value"] == "usdollar"
        assert error.context["reason"] == "must be 3 letters"
        assert "currency" in error.message

    def test_permission_denied(self):
        error = permission_denied("onboard", "Organization", organization_id="o-1")

        assert isinstance(error, ForbiddenError)
        assert error.message == "Permission denied: onboard on Organization"
        assert error.context["action"] == "onboard"
        assert error.context["organization_id"] == "o-1"


class TestCorrelationId:
    """Correlation ids are stamped on errors created while one is set."""

    def test_set_get_clear(self):
        set_correlation_id("corr-1")
        assert get_correlation_id() == "corr-1"

        clear_correlation_id()
        assert get_correlation_id() is None

    def test_clear_without_value(self):
        clear_correlation_id()
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_error_carries_correlation_id(self):
        set_correlation_id("corr-2")
        try:
            error = NotFoundError("gone")
        finally:
            clear_correlation_id()

        payload = error.to_dict()["error"]
        assert payload["correlation_id"] == "corr-2"
        assert "correlation_id" not in payload["context"]

    def test_error_without_correlation_id(self):
        clear_correlation_id()
        error = NotFoundError("gone")

        assert "correlation_id" not in error.to_dict()["error"]
