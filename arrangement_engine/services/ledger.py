"""
Instalment ledger projections.

Pure, side-effect-free views over an arrangement's progress. Other modules
ask these functions instead of reading ``payments_made``/``total_payments``
or the instalment list directly, so a change to how progress is stored
stays inside this module.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from arrangement_engine.models.arrangement import Arrangement, Instalment
from arrangement_engine.utils.money import ZERO, parse_amount, quantize, sum_amounts


def current_instalment(arrangement: Arrangement) -> Optional[Instalment]:
    """Instalment at the current index, or None without a ledger."""
    if not arrangement.has_ledger:
        return None
    index = arrangement.current_instalment_index
    if 0 <= index < len(arrangement.payment_instalments):
        return arrangement.payment_instalments[index]
    return None


def next_instalment(arrangement: Arrangement) -> Optional[Instalment]:
    if not arrangement.has_ledger:
        return None
    index = arrangement.current_instalment_index + 1
    if 0 <= index < len(arrangement.payment_instalments):
        return arrangement.payment_instalments[index]
    return None


def is_last_instalment(arrangement: Arrangement) -> bool:
    """A single-payment arrangement is trivially on its last payment."""
    if not arrangement.has_ledger:
        return True
    return arrangement.current_instalment_index >= len(arrangement.payment_instalments) - 1


def total_instalments(arrangement: Arrangement) -> int:
    if arrangement.has_ledger:
        return len(arrangement.payment_instalments)
    if arrangement.total_payments:
        return arrangement.total_payments
    return 1


def paid_instalments(arrangement: Arrangement) -> int:
    if arrangement.has_ledger:
        return sum(1 for inst in arrangement.payment_instalments if inst.is_paid)
    return arrangement.payments_made or 0


def amount_paid(arrangement: Arrangement) -> Decimal:
    """Total collected: paid ledger entries, else flat amount times payments made."""
    if not arrangement.has_ledger:
        if not arrangement.amount or not arrangement.payments_made:
            return ZERO
        return quantize(parse_amount(arrangement.amount) * arrangement.payments_made)
    return sum_amounts(inst.settled_amount for inst in arrangement.payment_instalments if inst.is_paid)


def remaining_balance(arrangement: Arrangement) -> Decimal:
    """
    Balance still owed, floored at zero.

    Uses ``total_amount_owed`` when recorded. Otherwise a ledger falls back
    to the current amount, and flat counters owe ``amount`` once per
    scheduled payment.
    """
    if arrangement.total_amount_owed is not None:
        owed = arrangement.total_amount_owed
    elif arrangement.amount:
        owed = parse_amount(arrangement.amount)
        if not arrangement.has_ledger:
            owed = quantize(owed * total_instalments(arrangement))
    else:
        owed = ZERO
    return max(ZERO, quantize(owed - amount_paid(arrangement)))


def completion_percentage(arrangement: Arrangement) -> int:
    total = total_instalments(arrangement)
    if total <= 0:
        return 0
    return min(100, round(paid_instalments(arrangement) * 100 / total))


def current_amount_due(arrangement: Arrangement) -> Optional[Decimal]:
    """Amount of the current obligation: the current instalment, else the flat amount."""
    instalment = current_instalment(arrangement)
    if instalment is not None:
        return instalment.amount
    if arrangement.amount:
        return parse_amount(arrangement.amount)
    return None


@dataclass(frozen=True)
class ProgressView:
    """Progress of one arrangement, computed once from the projections above."""

    total_instalments: int
    paid_instalments: int
    remaining_balance: Decimal
    completion_percentage: int
    amount_due: Optional[Decimal]
    current_instalment: Optional[Instalment]
    next_instalment: Optional[Instalment]
    is_last_instalment: bool

    @property
    def remaining_instalments(self) -> int:
        return max(0, self.total_instalments - self.paid_instalments)


def progress_view(arrangement: Arrangement) -> ProgressView:
    return ProgressView(
        total_instalments=total_instalments(arrangement),
        paid_instalments=paid_instalments(arrangement),
        remaining_balance=remaining_balance(arrangement),
        completion_percentage=completion_percentage(arrangement),
        amount_due=current_amount_due(arrangement),
        current_instalment=current_instalment(arrangement),
        next_instalment=next_instalment(arrangement),
        is_last_instalment=is_last_instalment(arrangement),
    )
