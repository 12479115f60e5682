"""
Pydantic schemas for transaction headers, lines and reversals.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import Ledger, TransactionStatus
from .mixins import CoreRecordMixin, ReadModel


class TransactionLineInput(BaseModel):
    """One line to post. ``line_amount`` defaults to quantity x unit_amount."""

    line_number: Optional[int] = Field(default=None, ge=1)
    line_type: str = Field(default="ITEM", min_length=1, max_length=50)
    entity_id: Optional[str] = Field(default=None, max_length=36)
    description: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_amount: Optional[Decimal] = None
    line_amount: Optional[Decimal] = None
    smart_code: str
    line_data: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("line_type")
    def normalize_line_type(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("line_data", mode="before")
    def none_to_empty(cls, v: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return v or {}

    @model_validator(mode="after")
    def derive_line_amount(self) -> "TransactionLineInput":
        if self.line_amount is None:
            if self.quantity is None or self.unit_amount is None:
                raise ValueError("line_amount is required when quantity and unit_amount are not both given")
            self.line_amount = self.quantity * self.unit_amount
        return self


class TransactionHeaderInput(BaseModel):
    """Transaction header to post."""

    transaction_type: str = Field(min_length=1, max_length=100)
    smart_code: str
    transaction_code: Optional[str] = Field(default=None, max_length=100)
    transaction_date: Optional[datetime] = None
    source_entity_id: Optional[str] = Field(default=None, max_length=36)
    target_entity_id: Optional[str] = Field(default=None, max_length=36)
    total_amount: Optional[Decimal] = None
    currency: str = Field(default=Ledger.DEFAULT_CURRENCY, min_length=3, max_length=3)
    status: Literal["draft", "posted"] = TransactionStatus.POSTED.value
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("transaction_type")
    def normalize_type(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("transaction_type must not be blank")
        return v

    @field_validator("currency")
    def normalize_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("metadata", mode="before")
    def none_to_empty(cls, v: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return v or {}


class TransactionFilter(BaseModel):
    """Filters accepted by transaction listing."""

    transaction_type: Optional[str] = None
    status: Optional[TransactionStatus] = None
    smart_code: Optional[str] = None
    source_entity_id: Optional[str] = None
    target_entity_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("transaction_type")
    def normalize_type(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class TransactionLineRead(ReadModel):
    """Stored transaction line."""

    id: str
    line_number: int
    line_type: str
    entity_id: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_amount: Optional[Decimal] = None
    line_amount: Decimal
    smart_code: str
    line_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("line_data", mode="before")
    def none_to_empty(cls, v: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return v or {}

    def to_input(self) -> TransactionLineInput:
        """The line as it would be posted, for re-running policies."""
        return TransactionLineInput(
            line_number=self.line_number,
            line_type=self.line_type,
            entity_id=self.entity_id,
            description=self.description,
            quantity=self.quantity,
            unit_amount=self.unit_amount,
            line_amount=self.line_amount,
            smart_code=self.smart_code,
            line_data=dict(self.line_data),
        )


class TransactionRead(CoreRecordMixin):
    """Schema for reading a transaction with its lines."""

    transaction_type: str
    transaction_code: str
    smart_code: str
    transaction_date: datetime
    source_entity_id: Optional[str] = None
    target_entity_id: Optional[str] = None
    total_amount: Optional[Decimal] = None
    currency: str
    status: str
    reversal_of_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("transaction_metadata", "metadata")
    )
    lines: List[TransactionLineRead] = Field(default_factory=list)

    @field_validator("metadata", mode="before")
    def none_to_empty(cls, v: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return v or {}

    def header_input(self) -> TransactionHeaderInput:
        """The header as it would be posted, for re-running policies."""
        return TransactionHeaderInput(
            transaction_type=self.transaction_type,
            smart_code=self.smart_code,
            transaction_code=self.transaction_code,
            transaction_date=self.transaction_date,
            source_entity_id=self.source_entity_id,
            target_entity_id=self.target_entity_id,
            total_amount=self.total_amount,
            currency=self.currency,
            metadata=dict(self.metadata),
        )


class ReversalResult(BaseModel):
    """Outcome of reversing a posted transaction."""

    transaction_id: str
    original_transaction_id: str
    lines_reversed: int
    transaction: TransactionRead
