"""
Tests for reconciliation rules, guardrails and policy resolution.
"""

from decimal import Decimal

import pytest

from hera_core.exceptions import ErrorCode, GuardrailViolationError, ValidationError
from hera_core.governance.policies import (
    BRANCH_SALES_POLICY,
    DEFAULT_POLICY,
    JOURNAL_POLICY,
    BalancedJournal,
    BranchGuardrail,
    LinesSumToTotal,
    PolicyRegistry,
    TransactionPolicy,
    default_registry,
    is_gl_line,
)
from hera_core.governance.smart_code import validate_smart_code
from hera_core.schemas.transaction_schema import TransactionHeaderInput, TransactionLineInput

TOLERANCE = Decimal("0.01")
LINE_CODE = "HERA.SALON.POS.LINE.SERVICE.V1"


def header(**overrides):
    values = {"transaction_type": "POS_SALE", "smart_code": "HERA.SALON.POS.TXN.SALE.V1"}
    values.update(overrides)
    return TransactionHeaderInput(**values)


def line(amount, **overrides):
    values = {"smart_code": LINE_CODE, "line_amount": Decimal(amount)}
    values.update(overrides)
    return TransactionLineInput(**values)


def gl(amount, side, **data):
    return line(amount, line_type="GL", line_data={"side": side, **data})


class TestLinesSumToTotal:
    """Non-ledger lines reconcile against the header total."""

    def test_computes_missing_total(self):
        total = LinesSumToTotal().reconcile(header(), [line("10.50"), line("4.50")], TOLERANCE)

        assert total == Decimal("15.00")

    def test_accepts_difference_within_tolerance(self):
        total = LinesSumToTotal().reconcile(
            header(total_amount=Decimal("15.005")), [line("10.50"), line("4.50")], TOLERANCE
        )

        assert total == Decimal("15.005")

    def test_mismatch_names_total_amount(self):
        with pytest.raises(ValidationError) as exc_info:
            LinesSumToTotal().reconcile(
                header(total_amount=Decimal("20")), [line("10"), line("5")], TOLERANCE
            )

        assert exc_info.value.field == "total_amount"
        assert exc_info.value.error_code == ErrorCode.RECONCILIATION_FAILED

    def test_ledger_lines_are_not_summed(self):
        total = LinesSumToTotal().reconcile(header(), [line("10"), gl("10", "DR")], TOLERANCE)

        assert total == Decimal("10")


class TestBalancedJournal:
    """Debits equal credits per currency."""

    def test_balanced_journal_returns_sum_of_debits(self):
        lines = [gl("100", "DR"), gl("60", "CR"), gl("40", "cr")]

        assert BalancedJournal().reconcile(header(), lines, TOLERANCE) == Decimal("100")

    def test_unbalanced_journal_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            BalancedJournal().reconcile(header(), [gl("100", "DR"), gl("90", "CR")], TOLERANCE)

        assert exc_info.value.field == "lines"
        assert exc_info.value.error_code == ErrorCode.RECONCILIATION_FAILED

    def test_balance_is_checked_per_currency(self):
        lines = [
            gl("100", "DR", currency="USD"),
            gl("100", "CR", currency="EUR"),
        ]
        with pytest.raises(ValidationError) as exc_info:
            BalancedJournal().reconcile(header(), lines, TOLERANCE)

        assert exc_info.value.context["currency"] == "EUR"

    def test_missing_side_names_the_line(self):
        with pytest.raises(ValidationError) as exc_info:
            BalancedJournal().reconcile(header(), [gl("10", "DR"), line("10")], TOLERANCE)

        assert exc_info.value.field == "lines[1].line_data.side"

    def test_negative_amount_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            BalancedJournal().reconcile(header(), [gl("-10", "DR"), gl("-10", "CR")], TOLERANCE)

        assert exc_info.value.field == "lines[0].line_amount"

    def test_declared_total_matching_debits_is_kept(self):
        lines = [gl("100", "DR"), gl("100", "CR")]

        total = BalancedJournal().reconcile(header(total_amount=Decimal("100.00")), lines, TOLERANCE)

        assert total == Decimal("100.00")

    def test_declared_total_must_match_debits(self):
        lines = [gl("100", "DR"), gl("100", "CR")]
        with pytest.raises(ValidationError) as exc_info:
            BalancedJournal().reconcile(header(total_amount=Decimal("999")), lines, TOLERANCE)

        assert exc_info.value.field == "total_amount"
        assert exc_info.value.error_code == ErrorCode.RECONCILIATION_FAILED
        assert exc_info.value.context["debits"] == "100"

    def test_declared_total_uses_header_currency_debits(self):
        lines = [
            gl("100", "DR", currency="USD"),
            gl("100", "CR", currency="USD"),
            gl("30", "DR", currency="EUR"),
            gl("30", "CR", currency="EUR"),
        ]

        total = BalancedJournal().reconcile(header(total_amount=Decimal("100")), lines, TOLERANCE)

        assert total == Decimal("100")


class TestBranchGuardrail:
    """Every line carries the header's branch."""

    def test_consistent_branches_pass(self):
        BranchGuardrail().check(
            header(metadata={"branch_id": "BR-1"}),
            [line("1", line_data={"branch_id": "BR-1"})],
        )

    def test_mismatched_line_is_named_by_index(self):
        lines = [
            line("1", line_data={"branch_id": "BR-1"}),
            line("1", line_data={"branch_id": "BR-1"}),
            line("1", line_data={"branch_id": "BR-2"}),
        ]
        with pytest.raises(GuardrailViolationError) as exc_info:
            BranchGuardrail().check(header(metadata={"branch_id": "BR-1"}), lines)

        assert exc_info.value.line_index == 2
        assert exc_info.value.context["guardrail"] == "branch_consistency"

    def test_missing_header_branch_is_a_violation(self):
        with pytest.raises(GuardrailViolationError):
            BranchGuardrail().check(header(), [line("1", line_data={"branch_id": "BR-1"})])


class TestPolicyRegistry:
    """Policy resolution order."""

    def test_default_registry_resolution(self):
        registry = default_registry()

        def resolve(transaction_type, code):
            return registry.resolve(transaction_type, validate_smart_code(code))

        assert resolve("JOURNAL_ENTRY", "HERA.ACME.BOOKS.TXN.ENTRY.V1") is JOURNAL_POLICY
        assert resolve("POS_SALE", "HERA.SALON.POS.TXN.SALE.V1") is BRANCH_SALES_POLICY
        assert resolve("ADJUSTMENT", "HERA.FIN.GL.TXN.ADJUST.V1") is JOURNAL_POLICY
        assert resolve("SUBSCRIPTION", "HERA.SAAS.BILLING.TXN.RENEWAL.V1") is DEFAULT_POLICY

    def test_longest_type_prefix_wins(self):
        special = TransactionPolicy("special", LinesSumToTotal())
        registry = default_registry()
        registry.register_transaction_type("POS_REFUND", special)

        code = validate_smart_code("HERA.SALON.POS.TXN.REFUND.V1")
        assert registry.resolve("POS_REFUND_PARTIAL", code) is special
        assert registry.resolve("POS_SALE", code) is BRANCH_SALES_POLICY

    def test_family_prefix_before_segment(self):
        custom = TransactionPolicy("custom", LinesSumToTotal())
        registry = PolicyRegistry()
        registry.register_smart_code_segment("GL", JOURNAL_POLICY)
        registry.register_smart_code_family("HERA.FIN.GL.TXN.ACCRUAL", custom)

        assert registry.resolve("ANY", validate_smart_code("HERA.FIN.GL.TXN.ACCRUAL.V2")) is custom
        assert registry.resolve("ANY", validate_smart_code("HERA.FIN.GL.TXN.OTHER.V1")) is JOURNAL_POLICY

    def test_policy_runs_guardrails_before_reconcile(self):
        with pytest.raises(GuardrailViolationError):
            BRANCH_SALES_POLICY.run_guardrails(header(), [line("1")])


def test_is_gl_line():
    assert is_gl_line(line("1", line_type="journal"))
    assert is_gl_line(line("1", line_data={"side": "DR"}))
    assert not is_gl_line(line("1"))
