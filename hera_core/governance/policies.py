"""
Posting policies keyed by transaction-type and smart-code family.

A policy bundles one reconciliation rule (how lines relate to the header
total) with zero or more guardrails (cross-line consistency checks). The
registry resolves a policy once per post, at the validation boundary:

1. longest registered transaction-type prefix
2. longest registered smart-code family prefix
3. registered smart-code segment (``GL``, ``FIN``)
4. the default policy
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, Optional, Sequence, Tuple

from ..constants import LineSide
from ..exceptions import ErrorCode, GuardrailViolationError, ValidationError
from ..utils.logger import get_logger
from .smart_code import SmartCode

if TYPE_CHECKING:
    from ..schemas.transaction_schema import TransactionHeaderInput, TransactionLineInput

GL_LINE_TYPES = frozenset({"GL", "JOURNAL"})

ZERO = Decimal("0")


def is_gl_line(line: "TransactionLineInput") -> bool:
    """Ledger lines carry a debit/credit side instead of a signed amount."""
    return line.line_type.upper() in GL_LINE_TYPES or "side" in (line.line_data or {})


def line_currency(header: "TransactionHeaderInput", line: "TransactionLineInput") -> str:
    return (line.line_data or {}).get("currency") or header.currency


class ReconciliationRule(ABC):
    """How line amounts must relate to the header."""

    name: str = "reconciliation"

    @abstractmethod
    def reconcile(
        self,
        header: "TransactionHeaderInput",
        lines: Sequence["TransactionLineInput"],
        tolerance: Decimal,
    ) -> Decimal:
        """
        Check the lines against the header.

        Returns:
            The header total to persist

        Raises:
            ValidationError: With the offending field or line
        """


class LinesSumToTotal(ReconciliationRule):
    """Non-ledger lines sum to the header total; omitted totals are computed."""

    name = "lines_sum_to_total"

    def reconcile(self, header, lines, tolerance):
        line_sum = sum((line.line_amount for line in lines if not is_gl_line(line)), ZERO)

        if header.total_amount is None:
            return line_sum

        if abs(line_sum - header.total_amount) > tolerance:
            raise ValidationError(
                f"Line amounts ({line_sum}) do not match total_amount ({header.total_amount})",
                field="total_amount",
                error_code=ErrorCode.RECONCILIATION_FAILED,
                rule=self.name,
                line_sum=str(line_sum),
                total_amount=str(header.total_amount),
            )
        return header.total_amount


class BalancedJournal(ReconciliationRule):
    """Debits equal credits per currency; every line states its side."""

    name = "balanced_journal"

    def reconcile(self, header, lines, tolerance):
        debits: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        credits: Dict[str, Decimal] = defaultdict(lambda: ZERO)

        for index, line in enumerate(lines):
            side = str((line.line_data or {}).get("side", "")).upper()
            if side not in (LineSide.DEBIT.value, LineSide.CREDIT.value):
                raise ValidationError(
                    f"Line {index} must declare side DR or CR",
                    field=f"lines[{index}].line_data.side",
                    error_code=ErrorCode.VALIDATION_FAILED,
                    rule=self.name,
                    line_index=index,
                )
            if line.line_amount < 0:
                raise ValidationError(
                    f"Line {index} amount must not be negative",
                    field=f"lines[{index}].line_amount",
                    error_code=ErrorCode.VALIDATION_FAILED,
                    rule=self.name,
                    line_index=index,
                )

            currency = line_currency(header, line)
            if side == LineSide.DEBIT.value:
                debits[currency] += line.line_amount
            else:
                credits[currency] += line.line_amount

        for currency in sorted(set(debits) | set(credits)):
            if abs(debits[currency] - credits[currency]) > tolerance:
                raise ValidationError(
                    f"Journal is not balanced for {currency}: "
                    f"debits {debits[currency]} != credits {credits[currency]}",
                    field="lines",
                    error_code=ErrorCode.RECONCILIATION_FAILED,
                    rule=self.name,
                    currency=currency,
                    debits=str(debits[currency]),
                    credits=str(credits[currency]),
                )

        if header.total_amount is None:
            return sum(debits.values(), ZERO)

        debit_total = debits[header.currency]
        if abs(debit_total - header.total_amount) > tolerance:
            raise ValidationError(
                f"total_amount ({header.total_amount}) does not match the "
                f"{header.currency} debit total ({debit_total})",
                field="total_amount",
                error_code=ErrorCode.RECONCILIATION_FAILED,
                rule=self.name,
                currency=header.currency,
                debits=str(debit_total),
                total_amount=str(header.total_amount),
            )
        return header.total_amount


class Guardrail(ABC):
    """Cross-line consistency rule checked before reconciliation."""

    name: str = "guardrail"

    @abstractmethod
    def check(
        self, header: "TransactionHeaderInput", lines: Sequence["TransactionLineInput"]
    ) -> None:
        """Raise GuardrailViolationError naming the first offending line."""


class BranchGuardrail(Guardrail):
    """Every line belongs to the header's branch."""

    name = "branch_consistency"

    def check(self, header, lines):
        header_branch = (header.metadata or {}).get("branch_id")
        if not header_branch:
            raise GuardrailViolationError(
                "Transaction header is missing metadata.branch_id",
                guardrail=self.name,
                field="metadata.branch_id",
            )

        for index, line in enumerate(lines):
            line_branch = (line.line_data or {}).get("branch_id")
            if line_branch != header_branch:
                raise GuardrailViolationError(
                    f"Line {index} branch_id {line_branch!r} does not match "
                    f"header branch_id {header_branch!r}",
                    guardrail=self.name,
                    line_index=index,
                    field=f"lines[{index}].line_data.branch_id",
                    expected=header_branch,
                    actual=line_branch,
                )


@dataclass(frozen=True)
class TransactionPolicy:
    """Reconciliation rule plus guardrails for one family of transactions."""

    name: str
    rule: ReconciliationRule
    guardrails: Tuple[Guardrail, ...] = field(default_factory=tuple)

    def run_guardrails(self, header, lines) -> None:
        for guardrail in self.guardrails:
            guardrail.check(header, lines)

    def reconcile(self, header, lines, tolerance: Decimal) -> Decimal:
        return self.rule.reconcile(header, lines, tolerance)


JOURNAL_POLICY = TransactionPolicy("journal", BalancedJournal())
BRANCH_SALES_POLICY = TransactionPolicy("branch_sales", LinesSumToTotal(), (BranchGuardrail(),))
DEFAULT_POLICY = TransactionPolicy("default", LinesSumToTotal())


class PolicyRegistry:
    """Single lookup table from transaction family to posting policy."""

    def __init__(self, default: TransactionPolicy = DEFAULT_POLICY):
        self.default = default
        self._by_type_prefix: Dict[str, TransactionPolicy] = {}
        self._by_family_prefix: Dict[str, TransactionPolicy] = {}
        self._by_segment: Dict[str, TransactionPolicy] = {}
        self.logger = get_logger()

    def register_transaction_type(self, prefix: str, policy: TransactionPolicy) -> None:
        """Register a policy for transaction types starting with ``prefix``."""
        self._by_type_prefix[prefix.upper()] = policy

    def register_smart_code_family(self, prefix: str, policy: TransactionPolicy) -> None:
        """Register a policy for smart codes whose family starts with ``prefix``."""
        self._by_family_prefix[prefix.upper()] = policy

    def register_smart_code_segment(self, segment: str, policy: TransactionPolicy) -> None:
        """Register a policy for smart codes containing ``segment`` between prefix and version."""
        self._by_segment[segment.upper()] = policy

    @staticmethod
    def _longest_prefix(value: str, table: Dict[str, TransactionPolicy]) -> Optional[TransactionPolicy]:
        matches = [prefix for prefix in table if value.startswith(prefix)]
        if not matches:
            return None
        return table[max(matches, key=len)]

    def resolve(self, transaction_type: str, smart_code: SmartCode) -> TransactionPolicy:
        policy = self._longest_prefix(transaction_type.upper(), self._by_type_prefix)
        if policy is None:
            policy = self._longest_prefix(smart_code.family, self._by_family_prefix)
        if policy is None:
            policy = next(
                (p for segment, p in self._by_segment.items() if smart_code.has_segment(segment)),
                None,
            )
        if policy is None:
            policy = self.default

        self.logger.debug(
            "Resolved posting policy",
            extra={
                "transaction_type": transaction_type,
                "smart_code": smart_code.code,
                "policy": policy.name,
            },
        )
        return policy


def default_registry() -> PolicyRegistry:
    """Registry with the built-in journal and branch-guarded families."""
    registry = PolicyRegistry()

    registry.register_transaction_type("JOURNAL_ENTRY", JOURNAL_POLICY)
    registry.register_transaction_type("GL_", JOURNAL_POLICY)
    registry.register_smart_code_segment("GL", JOURNAL_POLICY)
    registry.register_smart_code_segment("FIN", JOURNAL_POLICY)

    for prefix in ("POS_", "APPT_", "INVENTORY_", "SALON_", "SERVICE_"):
        registry.register_transaction_type(prefix, BRANCH_SALES_POLICY)

    return registry
