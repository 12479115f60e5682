"""Smart code validation and posting policies."""

from .policies import (
    BalancedJournal,
    BranchGuardrail,
    Guardrail,
    LinesSumToTotal,
    PolicyRegistry,
    ReconciliationRule,
    TransactionPolicy,
    default_registry,
)
from .smart_code import SmartCode, canonicalize, is_valid_smart_code, validate_smart_code

__all__ = [
    "SmartCode",
    "canonicalize",
    "is_valid_smart_code",
    "validate_smart_code",
    "BalancedJournal",
    "BranchGuardrail",
    "Guardrail",
    "LinesSumToTotal",
    "PolicyRegistry",
    "ReconciliationRule",
    "TransactionPolicy",
    "default_registry",
]
