"""
Arrangement and instalment models.

Attributes are snake_case in Python; ``to_dict``/``from_dict`` use the
camelCase field names of stored records so existing data loads unchanged.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from arrangement_engine.core.exceptions import ValidationError
from arrangement_engine.utils.dates import to_date
from arrangement_engine.utils.money import format_amount, parse_amount, parse_optional_amount


class ArrangementStatus(str, Enum):
    SCHEDULED = "Scheduled"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    MISSED = "Missed"


# Statuses in which an arrangement is no longer awaiting payment
CLOSED_STATUSES = frozenset({ArrangementStatus.COMPLETED, ArrangementStatus.CANCELLED})


class InstalmentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class RecurrenceType(str, Enum):
    NONE = "none"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class EngineModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted (camelCase, JSON-safe) shape."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Create from a stored record, raising the engine's ValidationError on bad input."""
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ValidationError(first.get("msg", str(e)), field=field, value=first.get("input"))


class Instalment(EngineModel):
    """One scheduled payment within a plan."""

    id: Optional[str] = None
    instalment_number: Optional[int] = None
    amount: Decimal
    scheduled_date: date
    status: InstalmentStatus = InstalmentStatus.PENDING
    paid_date: Optional[date] = None
    paid_amount: Optional[Decimal] = None

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        amount = parse_amount(v, field="amount")
        if amount < 0:
            raise ValueError("Instalment amount cannot be negative")
        return amount

    @field_validator("paid_amount", mode="before")
    @classmethod
    def validate_paid_amount(cls, v):
        if v is None:
            return None
        return parse_amount(v, field="paidAmount")

    @field_validator("scheduled_date", "paid_date", mode="before")
    @classmethod
    def validate_dates(cls, v):
        if v is None:
            return None
        return to_date(v)

    @model_validator(mode="after")
    def check_paid_fields(self) -> "Instalment":
        if self.status == InstalmentStatus.PAID and self.paid_date is None:
            raise ValueError("A paid instalment must record its paidDate")
        if self.status == InstalmentStatus.PAID and self.paid_amount is None:
            # Older records settled the scheduled amount without storing it
            self.paid_amount = self.amount
        return self

    @field_serializer("amount", "paid_amount", when_used="json")
    def serialize_money(self, v: Optional[Decimal]):
        # Stored records hold instalment amounts as plain numbers
        return float(v) if v is not None else None

    @property
    def is_paid(self) -> bool:
        return self.status == InstalmentStatus.PAID

    @property
    def settled_amount(self) -> Decimal:
        """What was actually collected for a paid instalment."""
        return self.paid_amount if self.paid_amount is not None else self.amount


class ReminderSchedule(EngineModel):
    """Per-arrangement override of the reminder policy."""

    days_before_payment: List[int] = Field(default_factory=list)
    enabled: bool = True

    @field_validator("days_before_payment")
    @classmethod
    def validate_days(cls, v: List[int]) -> List[int]:
        if any(day < 0 for day in v):
            raise ValueError("Reminder offsets must be zero or positive")
        return v


class Arrangement(EngineModel):
    """A debt-repayment agreement between an agent and a debtor."""

    id: str
    address_index: int
    address: str = ""
    customer_name: Optional[str] = None
    phone_number: Optional[str] = None
    case_reference: Optional[str] = None
    notes: Optional[str] = None

    status: ArrangementStatus = ArrangementStatus.SCHEDULED
    scheduled_date: date
    scheduled_time: Optional[str] = None
    amount: Optional[str] = None
    total_amount_owed: Optional[Decimal] = None

    payment_instalments: Optional[List[Instalment]] = None
    current_instalment_index: int = 0
    payments_made: Optional[int] = None
    total_payments: Optional[int] = None

    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_interval: Optional[int] = None

    last_reminder_sent: Optional[datetime] = None
    reminder_count: int = 0
    reminder_schedule: Optional[ReminderSchedule] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return format_amount(parse_amount(v, field="amount"))

    @field_validator("total_amount_owed", mode="before")
    @classmethod
    def validate_total(cls, v):
        return parse_optional_amount(v, field="totalAmountOwed")

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def validate_scheduled_date(cls, v):
        return to_date(v, field="scheduledDate")

    @field_validator("scheduled_time")
    @classmethod
    def validate_scheduled_time(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("recurrence_type", mode="before")
    @classmethod
    def validate_recurrence_type(cls, v):
        # Older records and the creation form use "single" for one-off payments
        if v is None or v == "single":
            return RecurrenceType.NONE
        return v

    @field_validator("current_instalment_index", "reminder_count", mode="before")
    @classmethod
    def default_counters(cls, v):
        return 0 if v is None else v

    @field_serializer("total_amount_owed", when_used="json")
    def serialize_total(self, v: Optional[Decimal]):
        return float(v) if v is not None else None

    @property
    def has_ledger(self) -> bool:
        return bool(self.payment_instalments)

    @property
    def is_active(self) -> bool:
        """Still awaiting payment."""
        return self.status not in CLOSED_STATUSES


def diff_fields(before: EngineModel, after: EngineModel) -> Dict[str, Any]:
    """
    Persisted-shape fields that differ between two snapshots of a model.

    This is the partial update handed to the persistence collaborator.
    """
    old = before.model_dump(by_alias=True, mode="json")
    new = after.model_dump(by_alias=True, mode="json")
    return {key: value for key, value in new.items() if old.get(key) != value}
