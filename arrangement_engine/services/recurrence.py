"""Instalment plan generation for split balances"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

import structlog

from arrangement_engine.config import settings
from arrangement_engine.core.exceptions import ValidationError
from arrangement_engine.models.arrangement import Instalment, RecurrenceType
from arrangement_engine.utils.dates import add_months, add_weeks
from arrangement_engine.utils.money import ZERO, parse_amount, parse_positive_amount, quantize, sum_amounts

logger = structlog.get_logger(__name__)

MIN_INSTALMENTS = 2


def instalment_date(start_date: date, recurrence_type: RecurrenceType, interval: int, index: int) -> date:
    """Due date of the ``index``-th instalment (0-based) for a cadence."""
    if recurrence_type == RecurrenceType.WEEKLY:
        return add_weeks(start_date, index * interval)
    if recurrence_type == RecurrenceType.BIWEEKLY:
        # Fixed fortnightly cadence, interval does not apply
        return add_weeks(start_date, index * 2)
    if recurrence_type == RecurrenceType.MONTHLY:
        return add_months(start_date, index * interval)
    raise ValidationError(
        "A recurring plan needs a weekly, biweekly or monthly cadence",
        field="recurrence_type",
        value=getattr(recurrence_type, "value", recurrence_type),
    )


def generate_instalments(
    start_date: date,
    recurrence_type: RecurrenceType,
    interval: int,
    count: int,
    total_amount,
    absorb_remainder: Optional[bool] = None,
) -> List[Instalment]:
    """
    Split a balance into ``count`` dated instalments.

    Each instalment is ``total / count`` rounded to the penny. When
    ``absorb_remainder`` is on (the configured default) the last instalment
    takes the rounding difference so the plan sums exactly to the total;
    otherwise every instalment is the uniform split and the plan may drift
    from the total by at most ``count * 0.005``.

    Args:
        start_date: Due date of the first instalment
        recurrence_type: weekly, biweekly or monthly
        interval: Multiplier for weekly/monthly cadences (ignored for biweekly)
        count: Number of instalments, at least 2
        total_amount: Balance to split (Decimal or decimal string)
        absorb_remainder: Put the rounding remainder on the last instalment

    Returns:
        List of pending Instalment objects, numbered from 1

    Example:
        £100.00 over 3 -> [33.33, 33.33, 33.34]
    """
    try:
        recurrence_type = RecurrenceType(recurrence_type)
    except ValueError:
        raise ValidationError("Unknown recurrence type", field="recurrence_type", value=recurrence_type)
    if recurrence_type == RecurrenceType.NONE:
        raise ValidationError(
            "A recurring plan needs a weekly, biweekly or monthly cadence",
            field="recurrence_type",
            value=recurrence_type.value,
        )
    if count < MIN_INSTALMENTS:
        raise ValidationError(
            f"A plan needs at least {MIN_INSTALMENTS} instalments; treat it as a single payment",
            field="count",
            value=count,
        )
    if recurrence_type != RecurrenceType.BIWEEKLY and (interval is None or interval < 1):
        raise ValidationError("Recurrence interval must be at least 1", field="interval", value=interval)

    total = parse_positive_amount(total_amount, field="total_amount")
    if absorb_remainder is None:
        absorb_remainder = settings.absorb_rounding_remainder

    base_amount = quantize(total / count)
    instalments = []
    for i in range(count):
        instalments.append(
            Instalment(
                id=f"inst_{i + 1}",
                instalment_number=i + 1,
                scheduled_date=instalment_date(start_date, recurrence_type, interval or 1, i),
                amount=base_amount,
            )
        )

    if absorb_remainder:
        remainder = total - base_amount * count
        if remainder != ZERO:
            last = instalments[-1]
            instalments[-1] = last.model_copy(update={"amount": quantize(last.amount + remainder)})

    logger.debug(
        "Generated instalment plan",
        recurrence_type=recurrence_type.value,
        interval=interval,
        count=count,
        total=str(total),
        instalment_amount=str(base_amount),
    )
    return instalments


def rebalance_instalments(
    instalments: List[Instalment], index: int, new_amount, total_amount
) -> List[Instalment]:
    """
    Set one instalment's amount and spread what is left over the later ones.

    Earlier instalments are untouched. If the edited amounts already exceed
    the total, the later instalments are left as they were and the caller's
    total check reports the mismatch.
    """
    if not 0 <= index < len(instalments):
        raise ValidationError("No instalment at that position", field="index", value=index)

    amount = parse_amount(new_amount, field="amount")
    if amount < ZERO:
        raise ValidationError("Amount cannot be negative", field="amount", value=new_amount)
    total = parse_amount(total_amount, field="total_amount")

    updated = [inst.model_copy() for inst in instalments]
    updated[index] = updated[index].model_copy(update={"amount": amount})

    following = len(updated) - index - 1
    if following <= 0:
        return updated

    allocated = sum_amounts(inst.amount for inst in updated[: index + 1])
    left = total - allocated
    if left < ZERO:
        return updated

    share = quantize(left / following)
    for i in range(index + 1, len(updated)):
        updated[i] = updated[i].model_copy(update={"amount": share})

    drift = total - sum_amounts(inst.amount for inst in updated)
    if drift != ZERO:
        updated[-1] = updated[-1].model_copy(update={"amount": quantize(updated[-1].amount + drift)})
    return updated


def reschedule_instalment(instalments: List[Instalment], index: int, new_date: date) -> List[Instalment]:
    if not 0 <= index < len(instalments):
        raise ValidationError("No instalment at that position", field="index", value=index)
    updated = [inst.model_copy() for inst in instalments]
    updated[index] = updated[index].model_copy(update={"scheduled_date": new_date})
    return updated


def plan_total(instalments: List[Instalment]) -> Decimal:
    return sum_amounts(inst.amount for inst in instalments)
