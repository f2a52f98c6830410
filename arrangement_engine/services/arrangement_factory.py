"""
Arrangement Factory

Validates arrangement form input and builds new Scheduled arrangements
with their instalment ledger.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

import structlog
from pydantic import Field, field_validator

from arrangement_engine.core.exceptions import InconsistentStateError, ValidationError
from arrangement_engine.models.arrangement import (
    Arrangement,
    ArrangementStatus,
    EngineModel,
    Instalment,
    RecurrenceType,
)
from arrangement_engine.services import recurrence
from arrangement_engine.utils.dates import to_date
from arrangement_engine.utils.money import (
    CENT,
    ZERO,
    format_amount,
    parse_amount,
    quantize,
    sum_amounts,
)

logger = structlog.get_logger(__name__)

# Explicit plans may differ from the balance by at most a penny
PLAN_TOLERANCE = CENT


class ArrangementDraft(EngineModel):
    """Unvalidated arrangement form input."""

    address: str = ""
    address_index: Optional[int] = None
    customer_name: Optional[str] = None
    phone_number: Optional[str] = None
    case_reference: Optional[str] = None
    notes: Optional[str] = None

    total_amount_owed: str = ""
    previous_payments: List[str] = Field(default_factory=list)

    start_date: date
    scheduled_time: Optional[str] = None
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_interval: int = 1
    number_of_instalments: int = 1

    # Supplied when the agent edits the generated plan by hand
    instalments: Optional[List[Instalment]] = None

    @field_validator("start_date", mode="before")
    @classmethod
    def validate_start_date(cls, v):
        return to_date(v, field="startDate")

    @field_validator("total_amount_owed", mode="before")
    @classmethod
    def stringify_total(cls, v):
        return "" if v is None else str(v)

    @field_validator("previous_payments", mode="before")
    @classmethod
    def stringify_payments(cls, v):
        return [str(p) for p in (v or [])]

    @field_validator("recurrence_type", mode="before")
    @classmethod
    def validate_recurrence_type(cls, v):
        if v is None or v == "single":
            return RecurrenceType.NONE
        return v

    @property
    def is_single_payment(self) -> bool:
        return self.recurrence_type == RecurrenceType.NONE or self.number_of_instalments < 2


def previous_payments_total(draft: ArrangementDraft) -> Decimal:
    """Sum of the positive previous payments; blanks are skipped."""
    total = ZERO
    for raw in draft.previous_payments:
        if not raw.strip():
            continue
        amount = parse_amount(raw, field="previousPayments")
        if amount > ZERO:
            total += amount
    return quantize(total)


def validate_draft(draft: ArrangementDraft) -> Decimal:
    """
    Check a draft before anything is built.

    Returns:
        The balance left to schedule once previous payments are deducted

    Raises:
        ValidationError: Missing address, bad total or an invalid explicit plan
        InconsistentStateError: Previous payments exceed the total owed
    """
    if not draft.address or not draft.address.strip():
        raise ValidationError("Address is required", field="address", value=draft.address)

    total = parse_amount(draft.total_amount_owed, field="totalAmountOwed")
    if total <= ZERO:
        raise ValidationError(
            "Enter a valid amount", field="totalAmountOwed", value=draft.total_amount_owed
        )

    remaining = quantize(total - previous_payments_total(draft))
    if remaining < ZERO:
        raise InconsistentStateError("Previous payments exceed total amount")

    if draft.instalments is not None:
        if not draft.instalments:
            raise ValidationError("A plan needs at least one instalment", field="instalments", value=[])
        if any(inst.amount <= ZERO for inst in draft.instalments):
            raise ValidationError(
                "All instalments must have a positive amount", field="instalments"
            )
        allocated = sum_amounts(inst.amount for inst in draft.instalments)
        if abs(allocated - remaining) > PLAN_TOLERANCE:
            raise ValidationError(
                f"Instalments must total £{format_amount(remaining)}",
                field="instalments",
                value=format_amount(allocated),
            )

    return remaining


def plan_for_draft(draft: ArrangementDraft, remaining: Decimal) -> List[Instalment]:
    """Explicit instalments if given, else a generated plan, else one payment."""
    if draft.instalments:
        return [
            inst.model_copy(update={
                "id": inst.id or f"inst_{i + 1}",
                "instalment_number": i + 1,
            })
            for i, inst in enumerate(draft.instalments)
        ]

    if draft.is_single_payment:
        return [
            Instalment(
                id="inst_1",
                instalment_number=1,
                amount=remaining,
                scheduled_date=draft.start_date,
            )
        ]

    return recurrence.generate_instalments(
        start_date=draft.start_date,
        recurrence_type=draft.recurrence_type,
        interval=draft.recurrence_interval,
        count=draft.number_of_instalments,
        total_amount=remaining,
    )


def build_arrangement(
    draft: ArrangementDraft,
    arrangement_id: str,
    address_index: int,
    now: datetime,
) -> Arrangement:
    """Validate a draft and build the new Scheduled arrangement."""
    remaining = validate_draft(draft)
    if remaining <= ZERO:
        raise ValidationError(
            "Nothing left to arrange once previous payments are deducted",
            field="totalAmountOwed",
            value=draft.total_amount_owed,
        )

    instalments = plan_for_draft(draft, remaining)
    first = instalments[0]
    is_recurring = not draft.is_single_payment and len(instalments) > 1

    arrangement = Arrangement(
        id=arrangement_id,
        address_index=address_index,
        address=draft.address.strip(),
        customer_name=draft.customer_name,
        phone_number=draft.phone_number,
        case_reference=draft.case_reference,
        notes=draft.notes,
        status=ArrangementStatus.SCHEDULED,
        scheduled_date=first.scheduled_date,
        scheduled_time=draft.scheduled_time,
        amount=format_amount(first.amount),
        total_amount_owed=remaining,
        payment_instalments=instalments,
        current_instalment_index=0,
        payments_made=0,
        total_payments=len(instalments),
        recurrence_type=draft.recurrence_type if is_recurring else RecurrenceType.NONE,
        recurrence_interval=draft.recurrence_interval if is_recurring else None,
        created_at=now,
        updated_at=now,
    )

    logger.info(
        "Built arrangement",
        arrangement_id=arrangement_id,
        address_index=address_index,
        instalments=len(instalments),
        total_amount_owed=format_amount(remaining),
        recurrence_type=arrangement.recurrence_type.value,
    )
    return arrangement


def replace_plan(arrangement: Arrangement, instalments: List[Instalment], now: datetime) -> Arrangement:
    """
    Swap in an edited plan.

    Paid entries of the existing ledger are kept in front; the supplied
    instalments replace everything still pending. The index moves to the
    first pending entry and the arrangement mirrors its date and amount.
    """
    if not instalments:
        raise ValidationError("A plan needs at least one instalment", field="instalments", value=[])
    if any(inst.amount <= ZERO for inst in instalments):
        raise ValidationError("All instalments must have a positive amount", field="instalments")

    paid = [inst for inst in (arrangement.payment_instalments or []) if inst.is_paid]
    pending = [inst for inst in instalments if not inst.is_paid]
    if not pending:
        raise ValidationError("A plan needs at least one pending instalment", field="instalments")

    combined = []
    for i, inst in enumerate(paid + pending):
        combined.append(inst.model_copy(update={
            "id": inst.id or f"inst_{i + 1}",
            "instalment_number": i + 1,
        }))

    current = combined[len(paid)]
    return arrangement.model_copy(update={
        "payment_instalments": combined,
        "current_instalment_index": len(paid),
        "scheduled_date": current.scheduled_date,
        "amount": format_amount(current.amount),
        "total_payments": len(combined),
        "payments_made": len(paid),
        "updated_at": now,
    })
