"""Read-only queries over arrangement lists for dashboards"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from arrangement_engine.config import settings
from arrangement_engine.models.arrangement import Arrangement, ArrangementStatus
from arrangement_engine.services import ledger
from arrangement_engine.utils.dates import add_days, end_of_week, start_of_week
from arrangement_engine.utils.money import ZERO, sum_amounts


def active_arrangements(arrangements: Iterable[Arrangement]) -> List[Arrangement]:
    return [a for a in arrangements if a.is_active]


def upcoming_arrangements(
    arrangements: Iterable[Arrangement], today: date, days_ahead: Optional[int] = None
) -> List[Arrangement]:
    """Active arrangements due between today and ``days_ahead`` days from now, inclusive."""
    if days_ahead is None:
        days_ahead = settings.upcoming_days_ahead
    horizon = add_days(today, days_ahead)
    return [a for a in active_arrangements(arrangements) if today <= a.scheduled_date <= horizon]


def overdue_arrangements(arrangements: Iterable[Arrangement], today: date) -> List[Arrangement]:
    """Arrangements still Scheduled whose due date has passed."""
    return [
        a for a in arrangements
        if a.status == ArrangementStatus.SCHEDULED and a.scheduled_date < today
    ]


def arrangements_due_this_week(
    arrangements: Iterable[Arrangement], today: date, week_starts_on: Optional[int] = None
) -> List[Arrangement]:
    if week_starts_on is None:
        week_starts_on = settings.week_starts_on
    first = start_of_week(today, week_starts_on)
    last = end_of_week(today, week_starts_on)
    return [a for a in active_arrangements(arrangements) if first <= a.scheduled_date <= last]


def sort_by_due_date(arrangements: Iterable[Arrangement]) -> List[Arrangement]:
    """Soonest first; same-day arrangements are ordered by time, untimed ones first."""
    return sorted(arrangements, key=lambda a: (a.scheduled_date, a.scheduled_time or "00:00"))


def group_by_due_date(arrangements: Iterable[Arrangement]) -> Dict[date, List[Arrangement]]:
    groups: Dict[date, List[Arrangement]] = {}
    for arrangement in sort_by_due_date(arrangements):
        groups.setdefault(arrangement.scheduled_date, []).append(arrangement)
    return groups


def total_amount_due(arrangements: Iterable[Arrangement]) -> Decimal:
    """Sum of the current amount due across arrangements not yet completed."""
    amounts = []
    for arrangement in arrangements:
        if arrangement.status == ArrangementStatus.COMPLETED:
            continue
        due = ledger.current_amount_due(arrangement)
        if due is not None:
            amounts.append(due)
    return sum_amounts(amounts) if amounts else ZERO


@dataclass(frozen=True)
class ArrangementStats:
    total: int
    due_today: int
    overdue: int
    total_amount_due: Decimal


def arrangement_stats(arrangements: Iterable[Arrangement], today: date) -> ArrangementStats:
    arrangements = list(arrangements)
    return ArrangementStats(
        total=len(arrangements),
        due_today=sum(1 for a in arrangements if a.scheduled_date == today),
        overdue=len(overdue_arrangements(arrangements, today)),
        total_amount_due=total_amount_due(arrangements),
    )
