"""Tests for explicit organization scoping and its logging binding."""

import pytest

from hera_core.context.organization_context import (
    get_current_organization_id,
    organization_context,
    organization_scoped,
    require_organization_id,
)
from hera_core.exceptions import ErrorCode, ValidationError


class TestRequireOrganizationId:
    def test_strips_whitespace(self):
        assert require_organization_id("  org-1 ") == "org-1"

    @pytest.mark.parametrize("value", [None, "", "   ", 42])
    def test_rejects_missing_or_blank(self, value):
        with pytest.raises(ValidationError) as exc_info:
            require_organization_id(value)

        assert exc_info.value.field == "organization_id"
        assert exc_info.value.error_code == ErrorCode.MISSING_REQUIRED


class TestOrganizationContext:
    def test_binds_and_restores(self):
        assert get_current_organization_id() is None

        with organization_context("org-1") as organization_id:
            assert organization_id == "org-1"
            assert get_current_organization_id() == "org-1"

        assert get_current_organization_id() is None

    def test_nested_blocks_restore_outer(self):
        with organization_context("outer"):
            with organization_context("inner"):
                assert get_current_organization_id() == "inner"
            assert get_current_organization_id() == "outer"

    def test_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with organization_context("org-1"):
                raise RuntimeError("boom")

        assert get_current_organization_id() is None

    def test_rejects_blank_id(self):
        with pytest.raises(ValidationError):
            with organization_context(""):
                pass


class Ledger:
    @organization_scoped
    def bound(self, org_id, suffix=""):
        return org_id, get_current_organization_id(), suffix


class TestOrganizationScoped:
    def test_passes_validated_id(self):
        assert Ledger().bound(" org-7 ", suffix="x") == ("org-7", "org-7", "x")
        assert get_current_organization_id() is None

    def test_rejects_missing_id(self):
        with pytest.raises(ValidationError):
            Ledger().bound(None)

    def test_keeps_function_metadata(self):
        assert Ledger.bound.__name__ == "bound"
