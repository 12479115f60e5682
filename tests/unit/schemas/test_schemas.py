"""Tests for input schemas and the pydantic-to-engine error mapping."""

from decimal import Decimal

import pytest

from hera_core.exceptions import ErrorCode, ValidationError
from hera_core.schemas.entity_schema import EntityFilter, EntityUpsert
from hera_core.schemas.relationship_schema import RelationshipPage, RelationshipUpsert
from hera_core.schemas.transaction_schema import TransactionHeaderInput, TransactionLineInput
from hera_core.schemas.validation import parse_input
from tests.unit.conftest import CUSTOMER_CODE


class TestParseInput:
    def test_returns_model_instance_unchanged(self):
        upsert = EntityUpsert(entity_type="customer", entity_name="Jane", smart_code=CUSTOMER_CODE)

        assert parse_input(EntityUpsert, upsert) is upsert

    def test_missing_field_uses_prefix(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(EntityUpsert, {"entity_type": "customer", "entity_name": "Jane"}, "payload")

        error = exc_info.value
        assert error.field == "payload.smart_code"
        assert error.error_code == ErrorCode.MISSING_REQUIRED

    def test_nested_list_index_in_path(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(
                EntityUpsert,
                {
                    "entity_type": "customer",
                    "entity_name": "Jane",
                    "smart_code": CUSTOMER_CODE,
                    "dynamic_fields": [{"field_name": "email"}, {"value": 3}],
                },
            )

        assert exc_info.value.field == "dynamic_fields[1].field_name"

    def test_invalid_format_code(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(EntityFilter, {"status": "exploded"})

        assert exc_info.value.field == "status"
        assert exc_info.value.error_code == ErrorCode.INVALID_FORMAT

    def test_model_level_error_falls_back_to_prefix(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(TransactionLineInput, {"smart_code": CUSTOMER_CODE, "quantity": "2"}, "lines[0]")

        assert exc_info.value.field == "lines[0]"

    def test_all_errors_are_listed(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(RelationshipUpsert, {})

        fields = {err["field"] for err in exc_info.value.context["errors"]}
        assert {"from_entity_id", "to_entity_id", "relationship_type", "smart_code"} <= fields


class TestEntitySchemas:
    def test_upsert_normalizes(self):
        upsert = EntityUpsert(
            entity_type=" customer ", entity_name="  Jane  ", smart_code=CUSTOMER_CODE
        )

        assert upsert.entity_type == "CUSTOMER"
        assert upsert.entity_name == "Jane"
        assert upsert.dynamic_fields == []

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(
                EntityUpsert, {"entity_type": "customer", "entity_name": "   ", "smart_code": CUSTOMER_CODE}
            )

        assert exc_info.value.field == "entity_name"

    def test_filter_forbids_unknown_keys(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(EntityFilter, {"colour": "blue"}, "filters")

        assert exc_info.value.field == "filters.colour"


class TestTransactionSchemas:
    def test_line_amount_derived(self):
        line = TransactionLineInput(smart_code=CUSTOMER_CODE, quantity="2", unit_amount="12.50")

        assert line.line_amount == Decimal("25.00")
        assert line.line_type == "ITEM"
        assert line.line_data == {}

    def test_explicit_line_amount_kept(self):
        line = TransactionLineInput(
            smart_code=CUSTOMER_CODE, quantity="2", unit_amount="10", line_amount="19.99"
        )

        assert line.line_amount == Decimal("19.99")

    def test_header_defaults(self):
        header = TransactionHeaderInput(transaction_type="sale", smart_code=CUSTOMER_CODE, currency="usd")

        assert header.transaction_type == "SALE"
        assert header.currency == "USD"
        assert header.status == "posted"
        assert header.metadata == {}

    def test_header_rejects_unknown_status(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(
                TransactionHeaderInput,
                {"transaction_type": "sale", "smart_code": CUSTOMER_CODE, "status": "reversed"},
                "header",
            )

        assert exc_info.value.field == "header.status"


class TestRelationshipSchemas:
    def test_type_normalized(self):
        upsert = RelationshipUpsert(
            from_entity_id="a", to_entity_id="b", relationship_type=" assigned_to ", smart_code=CUSTOMER_CODE
        )

        assert upsert.relationship_type == "ASSIGNED_TO"

    def test_page_has_more(self):
        assert RelationshipPage().has_more is False
        assert RelationshipPage(next_cursor="abc").has_more is True
