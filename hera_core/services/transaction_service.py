"""
Transaction ledger with direct SQLAlchemy access.

State machine: ``draft -> posted -> reversed``. Posted transactions are never
edited. A reversal is a new posted transaction pointing back at the original;
the original flips to ``reversed`` through a conditional single-row UPDATE so
that only one of several racing reversers can win.
"""

import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update

from ..constants import Ledger, Limits, LineSide, TransactionStatus
from ..context.operation_context import operation
from ..context.organization_context import organization_scoped
from ..db.db_base import utc_now
from ..db.db_transaction_models import Transaction, TransactionLine
from ..exceptions import (
    AlreadyReversedError,
    BaseError,
    ConflictError,
    ErrorCode,
    ValidationError,
    duplicate,
    not_found,
)
from ..governance.policies import PolicyRegistry, TransactionPolicy, default_registry, is_gl_line
from ..governance.smart_code import validate_smart_code
from ..schemas.transaction_schema import (
    ReversalResult,
    TransactionFilter,
    TransactionHeaderInput,
    TransactionLineInput,
    TransactionRead,
)
from ..schemas.validation import parse_input
from .base_service import SessionManagedService

_OPPOSITE_SIDE = {
    LineSide.DEBIT.value: LineSide.CREDIT.value,
    LineSide.CREDIT.value: LineSide.DEBIT.value,
}


def assign_line_numbers(lines: List[TransactionLineInput]) -> None:
    """
    Fill missing line numbers with the lowest unused ones, in input order.

    Raises:
        ValidationError: If two lines claim the same number
    """
    used = set()
    for index, line in enumerate(lines):
        if line.line_number is None:
            continue
        if line.line_number in used:
            raise ValidationError(
                f"Duplicate line_number {line.line_number}",
                field=f"lines[{index}].line_number",
                error_code=ErrorCode.VALIDATION_FAILED,
                line_index=index,
            )
        used.add(line.line_number)

    next_number = 1
    for line in lines:
        if line.line_number is not None:
            continue
        while next_number in used:
            next_number += 1
        line.line_number = next_number
        used.add(next_number)


def mirror_line(line: TransactionLineInput) -> TransactionLineInput:
    """The reversing counterpart of a posted line."""
    data = dict(line.line_data)
    quantity = line.quantity
    amount = line.line_amount

    if is_gl_line(line):
        side = str(data.get("side", "")).upper()
        data["side"] = _OPPOSITE_SIDE.get(side, side)
    else:
        quantity = -quantity if quantity is not None else None
        amount = -amount

    return TransactionLineInput(
        line_number=line.line_number,
        line_type=line.line_type,
        entity_id=line.entity_id,
        description=line.description,
        quantity=quantity,
        unit_amount=line.unit_amount,
        line_amount=amount,
        smart_code=line.smart_code,
        line_data=data,
    )


class TransactionService(SessionManagedService):
    """Post, finalize, reverse and read transactions."""

    def __init__(self, session=None, logger=None, policies: Optional[PolicyRegistry] = None):
        super().__init__(session=session, logger=logger)
        self.policies = policies or default_registry()

    @operation()
    @organization_scoped
    def post(
        self,
        org_id: str,
        header: Any,
        lines: Optional[Sequence[Any]] = None,
        actor_id: Optional[str] = None,
    ) -> TransactionRead:
        """
        Validate and persist a transaction with its lines.

        Args:
            org_id: Owning organization
            header: Header dict or TransactionHeaderInput; ``status="draft"``
                stores it without reconciliation
            lines: Line dicts or TransactionLineInput objects
            actor_id: Stamped as created_by/updated_by

        Raises:
            ValidationError: Bad smart code, missing field, duplicate line number
                or failed reconciliation
            GuardrailViolationError: A guarded family's lines disagree with the header
            ConflictError: The transaction_code is already used in this organization
            NotFoundError: A referenced entity is not in this organization
        """
        self._require_organization(org_id)
        self._guard_platform_write(org_id)

        header_input = parse_input(TransactionHeaderInput, header, field_prefix="header")
        header_code = validate_smart_code(header_input.smart_code, field="header.smart_code")
        header_input.smart_code = header_code.code

        line_inputs = self._parse_lines(lines or [])
        self._check_references(org_id, header_input, line_inputs)

        if header_input.transaction_code:
            self._check_code_available(org_id, header_input.transaction_code)
        else:
            header_input.transaction_code = self._generate_code(header_input.transaction_type)

        if header_input.status == TransactionStatus.DRAFT.value:
            # Undeclared draft totals stay empty until the policy computes them
            total = header_input.total_amount
        else:
            policy = self.policies.resolve(header_input.transaction_type, header_code)
            total = self._apply_policy(policy, header_input, line_inputs)

        try:
            with self.transaction():
                transaction = self._persist(
                    org_id, header_input, line_inputs, total, header_input.status, actor_id
                )

                self.logger.info(
                    "Posted transaction",
                    extra={
                        "transaction_id": transaction.id,
                        "transaction_code": transaction.transaction_code,
                        "transaction_type": transaction.transaction_type,
                        "status": transaction.status,
                        "lines": len(line_inputs),
                    },
                )
                return TransactionRead.model_validate(transaction)

        except BaseError:
            raise
        except Exception as e:
            self._handle_service_exception("post", e)

    def _parse_lines(self, lines: Sequence[Any]) -> List[TransactionLineInput]:
        if len(lines) > self.config.ledger.max_lines:
            raise ValidationError(
                f"Too many lines: {len(lines)} > {self.config.ledger.max_lines}",
                field="lines",
                error_code=ErrorCode.VALIDATION_FAILED,
            )

        parsed = []
        for index, line in enumerate(lines):
            line_input = parse_input(TransactionLineInput, line, field_prefix=f"lines[{index}]")
            line_input.smart_code = validate_smart_code(
                line_input.smart_code, field=f"lines[{index}].smart_code", line_index=index
            ).code
            parsed.append(line_input)

        assign_line_numbers(parsed)
        return parsed

    def _check_references(
        self,
        org_id: str,
        header: TransactionHeaderInput,
        lines: List[TransactionLineInput],
    ) -> None:
        if header.source_entity_id:
            self._require_entity(org_id, header.source_entity_id, "header.source_entity_id")
        if header.target_entity_id:
            self._require_entity(org_id, header.target_entity_id, "header.target_entity_id")
        for index, line in enumerate(lines):
            if line.entity_id:
                self._require_entity(org_id, line.entity_id, f"lines[{index}].entity_id")

    def _check_code_available(self, org_id: str, transaction_code: str) -> None:
        exists = self.session.execute(
            select(Transaction.id).where(
                Transaction.organization_id == org_id,
                Transaction.transaction_code == transaction_code,
            )
        ).first()
        if exists:
            raise duplicate("Transaction", transaction_code=transaction_code)

    def _reversal_code(self, org_id: str, transaction_code: str) -> str:
        """Code of the mirror transaction; must fit the column and be unused."""
        code = f"{transaction_code}{Ledger.REVERSAL_CODE_SUFFIX}"
        if len(code) > Limits.MAX_CODE_LENGTH:
            raise ValidationError(
                f"Reversal code would exceed {Limits.MAX_CODE_LENGTH} characters",
                field="transaction_code",
                error_code=ErrorCode.VALIDATION_FAILED,
                reversal_code=code,
            )
        taken = self.session.execute(
            select(Transaction.id).where(
                Transaction.organization_id == org_id,
                Transaction.transaction_code == code,
            )
        ).first()
        if taken:
            raise ValidationError(
                f"Reversal code {code} is already used by another transaction",
                field="transaction_code",
                error_code=ErrorCode.VALIDATION_FAILED,
                reversal_code=code,
            )
        return code

    @staticmethod
    def _generate_code(transaction_type: str) -> str:
        return f"{transaction_type}-{utc_now():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"

    def _apply_policy(
        self,
        policy: TransactionPolicy,
        header: TransactionHeaderInput,
        lines: List[TransactionLineInput],
    ) -> Decimal:
        if self.config.features.enforce_guardrails:
            policy.run_guardrails(header, lines)
        return policy.reconcile(header, lines, self.config.ledger.balance_tolerance)

    def _persist(
        self,
        org_id: str,
        header: TransactionHeaderInput,
        lines: List[TransactionLineInput],
        total: Decimal,
        status: str,
        actor_id: Optional[str],
        reversal_of_id: Optional[str] = None,
    ) -> Transaction:
        transaction = Transaction(
            organization_id=org_id,
            transaction_type=header.transaction_type,
            transaction_code=header.transaction_code,
            smart_code=header.smart_code,
            transaction_date=header.transaction_date or utc_now(),
            source_entity_id=header.source_entity_id,
            target_entity_id=header.target_entity_id,
            total_amount=total,
            currency=header.currency,
            status=status,
            reversal_of_id=reversal_of_id,
            transaction_metadata=header.metadata,
            created_by=actor_id,
            updated_by=actor_id,
        )
        for line in sorted(lines, key=lambda item: item.line_number):
            transaction.lines.append(
                TransactionLine(
                    organization_id=org_id,
                    line_number=line.line_number,
                    line_type=line.line_type,
                    entity_id=line.entity_id,
                    description=line.description,
                    quantity=line.quantity,
                    unit_amount=line.unit_amount,
                    line_amount=line.line_amount,
                    smart_code=line.smart_code,
                    line_data=line.line_data,
                )
            )
        self.session.add(transaction)
        self.session.flush()
        return transaction

    def _load_transaction(self, org_id: str, transaction_id: str) -> Transaction:
        transaction = self.session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id, Transaction.organization_id == org_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if transaction is None:
            raise not_found("Transaction", transaction_id=transaction_id)
        return transaction

    def _compare_and_set_status(
        self,
        org_id: str,
        transaction_id: str,
        expected: TransactionStatus,
        new: TransactionStatus,
        actor_id: Optional[str],
        **values,
    ) -> bool:
        result = self.session.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.organization_id == org_id,
                Transaction.status == expected.value,
            )
            .values(status=new.value, updated_at=utc_now(), updated_by=actor_id, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @operation()
    @organization_scoped
    def finalize(
        self, org_id: str, transaction_id: str, actor_id: Optional[str] = None
    ) -> TransactionRead:
        """
        Post a draft: run its policy and move it to ``posted``.

        Raises:
            NotFoundError: If the transaction is not in this organization
            ConflictError: If it is no longer a draft
        """
        self._require_organization(org_id)
        draft = TransactionRead.model_validate(self._load_transaction(org_id, transaction_id))
        if draft.status != TransactionStatus.DRAFT.value:
            raise ConflictError(
                f"Only draft transactions can be finalized (status={draft.status})",
                error_code=ErrorCode.INVALID_STATE_TRANSITION,
                transaction_id=transaction_id,
                status=draft.status,
            )

        header = draft.header_input()
        lines = [line.to_input() for line in draft.lines]
        policy = self.policies.resolve(header.transaction_type, validate_smart_code(header.smart_code))
        total = self._apply_policy(policy, header, lines)

        with self.transaction():
            if not self._compare_and_set_status(
                org_id,
                transaction_id,
                TransactionStatus.DRAFT,
                TransactionStatus.POSTED,
                actor_id,
                total_amount=total,
            ):
                raise ConflictError(
                    "Transaction changed state while finalizing",
                    error_code=ErrorCode.INVALID_STATE_TRANSITION,
                    transaction_id=transaction_id,
                )

            self.logger.info("Finalized transaction", extra={"transaction_id": transaction_id})
            return TransactionRead.model_validate(self._load_transaction(org_id, transaction_id))

    @operation()
    @organization_scoped
    def reverse(
        self,
        org_id: str,
        original_id: str,
        reason: str,
        reversal_smart_code: str,
        actor_id: Optional[str] = None,
    ) -> ReversalResult:
        """
        Create the mirror transaction of a posted one and mark the original reversed.

        GL lines swap DR/CR; all other lines negate quantity and line_amount.

        Raises:
            ValidationError: Empty reason, malformed smart code, or a draft original
            NotFoundError: If the original is not in this organization
            AlreadyReversedError: If the original was already reversed
        """
        self._require_organization(org_id)

        if not reason or not str(reason).strip():
            raise ValidationError(
                "A reversal reason is required",
                field="reason",
                error_code=ErrorCode.MISSING_REQUIRED,
            )
        reversal_code = validate_smart_code(reversal_smart_code, field="reversal_smart_code")

        original = TransactionRead.model_validate(self._load_transaction(org_id, original_id))
        if original.status == TransactionStatus.REVERSED.value:
            raise AlreadyReversedError(original_id)
        if original.status != TransactionStatus.POSTED.value:
            raise ValidationError(
                f"Only posted transactions can be reversed (status={original.status})",
                field="original_id",
                error_code=ErrorCode.INVALID_STATE_TRANSITION,
            )

        header = original.header_input()
        header.transaction_code = self._reversal_code(org_id, original.transaction_code)
        header.smart_code = reversal_code.code
        header.transaction_date = utc_now()
        header.total_amount = None
        header.metadata = {
            **original.metadata,
            "reversal_reason": str(reason).strip(),
            "reversed_transaction_code": original.transaction_code,
        }
        lines = [mirror_line(line.to_input()) for line in original.lines]

        # Judged by the original's family so the mirror balances the same way
        policy = self.policies.resolve(
            original.transaction_type, validate_smart_code(original.smart_code)
        )
        total = self._apply_policy(policy, header, lines)

        try:
            with self.transaction():
                if not self._compare_and_set_status(
                    org_id,
                    original_id,
                    TransactionStatus.POSTED,
                    TransactionStatus.REVERSED,
                    actor_id,
                ):
                    raise AlreadyReversedError(original_id)

                reversal = self._persist(
                    org_id,
                    header,
                    lines,
                    total,
                    TransactionStatus.POSTED.value,
                    actor_id,
                    reversal_of_id=original_id,
                )

                self.logger.info(
                    "Reversed transaction",
                    extra={
                        "transaction_id": reversal.id,
                        "original_transaction_id": original_id,
                        "lines_reversed": len(lines),
                    },
                )
                return ReversalResult(
                    transaction_id=reversal.id,
                    original_transaction_id=original_id,
                    lines_reversed=len(lines),
                    transaction=TransactionRead.model_validate(reversal),
                )

        except BaseError:
            raise
        except Exception as e:
            self._handle_service_exception("reverse", e, original_id)

    @operation()
    @organization_scoped
    def get(self, org_id: str, transaction_id: str) -> TransactionRead:
        """
        Get one transaction with its lines.

        Raises:
            NotFoundError: If the transaction is not in this organization
        """
        return TransactionRead.model_validate(self._load_transaction(org_id, transaction_id))

    @operation()
    @organization_scoped
    def list(
        self,
        org_id: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[TransactionRead]:
        self._require_organization(org_id)
        criteria = parse_input(TransactionFilter, filters or {}, field_prefix="filters")

        stmt = select(Transaction).where(Transaction.organization_id == org_id)
        if criteria.transaction_type:
            stmt = stmt.where(Transaction.transaction_type == criteria.transaction_type)
        if criteria.status:
            stmt = stmt.where(Transaction.status == criteria.status.value)
        if criteria.smart_code:
            stmt = stmt.where(Transaction.smart_code == criteria.smart_code)
        if criteria.source_entity_id:
            stmt = stmt.where(Transaction.source_entity_id == criteria.source_entity_id)
        if criteria.target_entity_id:
            stmt = stmt.where(Transaction.target_entity_id == criteria.target_entity_id)
        if criteria.date_from:
            stmt = stmt.where(Transaction.transaction_date >= criteria.date_from)
        if criteria.date_to:
            stmt = stmt.where(Transaction.transaction_date <= criteria.date_to)

        stmt = (
            stmt.order_by(Transaction.transaction_date, Transaction.id)
            .offset(self._offset(offset))
            .limit(self._page_size(limit))
            .execution_options(populate_existing=True)
        )
        return [TransactionRead.model_validate(t) for t in self.session.execute(stmt).scalars()]
