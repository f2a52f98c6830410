"""
Arrangement State Machine

Owns arrangement status transitions and the three payment actions
(Continue, Paid-in-Full, Defaulted). Every operation is pure: it takes an
arrangement snapshot plus the current time and returns an ActionResult with
the next state, the partial-field diff to persist and the outcome to report
to accounting. The input arrangement is never modified.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

import structlog

from arrangement_engine.config import settings
from arrangement_engine.core.exceptions import InconsistentStateError, InvalidTransitionError
from arrangement_engine.core.logging import log_business_event
from arrangement_engine.models.arrangement import (
    Arrangement,
    ArrangementStatus,
    Instalment,
    InstalmentStatus,
    diff_fields,
)
from arrangement_engine.services import ledger
from arrangement_engine.utils.money import format_amount, parse_positive_amount

logger = structlog.get_logger(__name__)


class PaymentAction(Enum):
    CONTINUE = "continue"
    PAID_IN_FULL = "paid_in_full"
    DEFAULTED = "defaulted"


class OutcomeCode(str, Enum):
    """Tags reported to the accounting collaborator."""

    ARR = "ARR"  # arrangement instalment collected
    PIF = "PIF"  # paid in full
    DONE = "Done"  # closed without payment


ALLOWED_TRANSITIONS: Dict[ArrangementStatus, FrozenSet[ArrangementStatus]] = {
    ArrangementStatus.SCHEDULED: frozenset({
        ArrangementStatus.CONFIRMED,
        ArrangementStatus.COMPLETED,
        ArrangementStatus.MISSED,
        ArrangementStatus.CANCELLED,
    }),
    ArrangementStatus.CONFIRMED: frozenset({
        ArrangementStatus.COMPLETED,
        ArrangementStatus.MISSED,
        ArrangementStatus.CANCELLED,
    }),
    ArrangementStatus.MISSED: frozenset({
        ArrangementStatus.SCHEDULED,
        ArrangementStatus.CANCELLED,
    }),
    ArrangementStatus.COMPLETED: frozenset(),
    ArrangementStatus.CANCELLED: frozenset(),
}

PAYABLE_STATUSES = frozenset({ArrangementStatus.SCHEDULED, ArrangementStatus.CONFIRMED})


@dataclass(frozen=True)
class OutcomeRecord:
    """What the accounting collaborator is told about a payment event."""

    address_index: int
    outcome: OutcomeCode
    amount: Optional[str]
    arrangement_id: str
    case_reference: Optional[str] = None

    def as_call_args(self) -> tuple:
        return (
            self.address_index,
            self.outcome.value,
            self.amount,
            self.arrangement_id,
            self.case_reference,
        )


@dataclass(frozen=True)
class ActionResult:
    """Next state of an arrangement after an action."""

    arrangement: Arrangement
    changes: Dict[str, Any]
    outcome: Optional[OutcomeRecord] = None
    action: Optional[str] = None

    @property
    def progress(self) -> ledger.ProgressView:
        return ledger.progress_view(self.arrangement)


def _mark_paid(instalment: Instalment, paid_on, amount) -> Instalment:
    if instalment.is_paid:
        # Already settled by an earlier attempt of the same action
        return instalment
    return instalment.model_copy(update={
        "status": InstalmentStatus.PAID,
        "paid_date": paid_on,
        "paid_amount": amount,
    })


class ArrangementStateMachine:
    """
    Applies status changes and payment actions to arrangements.

    With ``enforce_guard`` on (the configured default) any action on an
    arrangement outside Scheduled/Confirmed raises InvalidTransitionError
    and nothing changes. With it off the actions run regardless of status.
    """

    def __init__(self, enforce_guard: Optional[bool] = None):
        self.enforce_guard = settings.enforce_status_guard if enforce_guard is None else enforce_guard

    @staticmethod
    def can_transition(current: ArrangementStatus, target: ArrangementStatus) -> bool:
        return ArrangementStatus(target) in ALLOWED_TRANSITIONS[ArrangementStatus(current)]

    @staticmethod
    def can_take_payment(arrangement: Arrangement) -> bool:
        return arrangement.status in PAYABLE_STATUSES

    def _check_payable(self, arrangement: Arrangement, action: PaymentAction) -> None:
        if self.enforce_guard and not self.can_take_payment(arrangement):
            logger.warning(
                "Rejected payment action on ineligible arrangement",
                arrangement_id=arrangement.id,
                action=action.value,
                status=arrangement.status.value,
            )
            raise InvalidTransitionError(
                current_status=arrangement.status.value,
                action=action.value,
                arrangement_id=arrangement.id,
            )

    def _result(
        self,
        before: Arrangement,
        after: Arrangement,
        action: str,
        outcome: Optional[OutcomeRecord] = None,
    ) -> ActionResult:
        result = ActionResult(
            arrangement=after,
            changes=diff_fields(before, after),
            outcome=outcome,
            action=action,
        )
        log_business_event(
            f"arrangement_{action}",
            arrangement_id=after.id,
            status_before=before.status.value,
            status_after=after.status.value,
            outcome=outcome.outcome.value if outcome else None,
            amount=outcome.amount if outcome else None,
            changed_fields=sorted(result.changes),
        )
        return result

    def transition(self, arrangement: Arrangement, target: ArrangementStatus, now: datetime) -> ActionResult:
        """
        Plain status change (confirm, mark missed, cancel, reschedule after a miss).

        Raises:
            InvalidTransitionError: If the move is not allowed from the current status
        """
        target = ArrangementStatus(target)
        if not self.can_transition(arrangement.status, target):
            raise InvalidTransitionError(
                current_status=arrangement.status.value,
                target_status=target.value,
                arrangement_id=arrangement.id,
            )

        updated = arrangement.model_copy(update={"status": target, "updated_at": now})
        return self._result(arrangement, updated, f"status_{target.value.lower()}")

    def confirm(self, arrangement: Arrangement, now: datetime) -> ActionResult:
        return self.transition(arrangement, ArrangementStatus.CONFIRMED, now)

    def mark_missed(self, arrangement: Arrangement, now: datetime) -> ActionResult:
        return self.transition(arrangement, ArrangementStatus.MISSED, now)

    def cancel(self, arrangement: Arrangement, now: datetime) -> ActionResult:
        return self.transition(arrangement, ArrangementStatus.CANCELLED, now)

    def continue_payment(self, arrangement: Arrangement, now: datetime) -> ActionResult:
        """
        Record the current instalment (or the single payment) as collected.

        Advances to the next instalment when there is one, otherwise
        completes the arrangement.

        Raises:
            InvalidTransitionError: Arrangement is not Scheduled/Confirmed
            ValidationError: The amount to record is missing, non-numeric or not positive
            InconsistentStateError: The ledger index points outside the ledger
        """
        self._check_payable(arrangement, PaymentAction.CONTINUE)
        today = now.date()

        current = ledger.current_instalment(arrangement)
        if arrangement.has_ledger and current is None:
            raise InconsistentStateError(
                f"Instalment index {arrangement.current_instalment_index} is outside a ledger "
                f"of {len(arrangement.payment_instalments)}",
                arrangement_id=arrangement.id,
            )

        raw_amount = current.amount if current is not None else arrangement.amount
        amount = parse_positive_amount(raw_amount, field="amount")

        update: Dict[str, Any] = {"updated_at": now}
        if current is not None:
            instalments = list(arrangement.payment_instalments)
            index = arrangement.current_instalment_index
            instalments[index] = _mark_paid(current, today, amount)
            update["payment_instalments"] = instalments

        following = ledger.next_instalment(arrangement)
        if following is not None:
            update["current_instalment_index"] = arrangement.current_instalment_index + 1
            update["scheduled_date"] = following.scheduled_date
            update["amount"] = format_amount(following.amount)
        else:
            update["status"] = ArrangementStatus.COMPLETED
        already_paid = current is not None and current.is_paid
        update["payments_made"] = ledger.paid_instalments(arrangement) + (0 if already_paid else 1)

        updated = arrangement.model_copy(update=update)
        outcome = OutcomeRecord(
            address_index=arrangement.address_index,
            outcome=OutcomeCode.ARR,
            amount=format_amount(amount),
            arrangement_id=arrangement.id,
            case_reference=arrangement.case_reference,
        )
        return self._result(arrangement, updated, PaymentAction.CONTINUE.value, outcome)

    def paid_in_full(self, arrangement: Arrangement, now: datetime) -> ActionResult:
        """
        Settle the whole remaining balance and complete the arrangement.

        Raises:
            InvalidTransitionError: Arrangement is not Scheduled/Confirmed
        """
        self._check_payable(arrangement, PaymentAction.PAID_IN_FULL)
        today = now.date()

        balance = ledger.remaining_balance(arrangement)

        update: Dict[str, Any] = {
            "status": ArrangementStatus.COMPLETED,
            "payments_made": ledger.total_instalments(arrangement),
            "updated_at": now,
        }
        if arrangement.has_ledger:
            update["payment_instalments"] = [
                _mark_paid(inst, today, inst.amount) for inst in arrangement.payment_instalments
            ]

        updated = arrangement.model_copy(update=update)
        outcome = OutcomeRecord(
            address_index=arrangement.address_index,
            outcome=OutcomeCode.PIF,
            amount=format_amount(balance),
            arrangement_id=arrangement.id,
            case_reference=arrangement.case_reference,
        )
        return self._result(arrangement, updated, PaymentAction.PAID_IN_FULL.value, outcome)

    def defaulted(self, arrangement: Arrangement, now: datetime) -> ActionResult:
        """
        Close the arrangement without a payment; the ledger is left as it is.

        Raises:
            InvalidTransitionError: Arrangement is not Scheduled/Confirmed
        """
        self._check_payable(arrangement, PaymentAction.DEFAULTED)

        updated = arrangement.model_copy(update={
            "status": ArrangementStatus.COMPLETED,
            "updated_at": now,
        })
        outcome = OutcomeRecord(
            address_index=arrangement.address_index,
            outcome=OutcomeCode.DONE,
            amount=None,
            arrangement_id=arrangement.id,
            case_reference=arrangement.case_reference,
        )
        return self._result(arrangement, updated, PaymentAction.DEFAULTED.value, outcome)

    def apply(self, action: PaymentAction, arrangement: Arrangement, now: datetime) -> ActionResult:
        handlers = {
            PaymentAction.CONTINUE: self.continue_payment,
            PaymentAction.PAID_IN_FULL: self.paid_in_full,
            PaymentAction.DEFAULTED: self.defaulted,
        }
        return handlers[PaymentAction(action)](arrangement, now)
