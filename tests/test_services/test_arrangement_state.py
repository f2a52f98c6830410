"""
Tests for arrangement status transitions and payment actions.
"""
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest

from arrangement_engine.core.exceptions import (
    InconsistentStateError,
    InvalidTransitionError,
    ValidationError,
)
from arrangement_engine.models.arrangement import Arrangement, ArrangementStatus, InstalmentStatus
from arrangement_engine.services import ledger
from arrangement_engine.services.arrangement_state import (
    ArrangementStateMachine,
    OutcomeCode,
    PaymentAction,
)


class TestTransitions:
    """Test plain status changes"""

    @pytest.mark.parametrize("current,target", [
        (ArrangementStatus.SCHEDULED, ArrangementStatus.CONFIRMED),
        (ArrangementStatus.SCHEDULED, ArrangementStatus.MISSED),
        (ArrangementStatus.SCHEDULED, ArrangementStatus.CANCELLED),
        (ArrangementStatus.CONFIRMED, ArrangementStatus.COMPLETED),
        (ArrangementStatus.CONFIRMED, ArrangementStatus.MISSED),
        (ArrangementStatus.MISSED, ArrangementStatus.SCHEDULED),
        (ArrangementStatus.MISSED, ArrangementStatus.CANCELLED),
    ])
    def test_allowed(self, current, target):
        assert ArrangementStateMachine.can_transition(current, target) is True

    @pytest.mark.parametrize("current,target", [
        (ArrangementStatus.COMPLETED, ArrangementStatus.SCHEDULED),
        (ArrangementStatus.COMPLETED, ArrangementStatus.MISSED),
        (ArrangementStatus.CANCELLED, ArrangementStatus.SCHEDULED),
        (ArrangementStatus.CONFIRMED, ArrangementStatus.SCHEDULED),
        (ArrangementStatus.MISSED, ArrangementStatus.COMPLETED),
    ])
    def test_not_allowed(self, current, target):
        assert ArrangementStateMachine.can_transition(current, target) is False

    def test_confirm(self, state_machine, single_payment_arrangement, now):
        result = state_machine.confirm(single_payment_arrangement, now)

        assert result.arrangement.status == ArrangementStatus.CONFIRMED
        assert result.changes["status"] == "Confirmed"
        assert result.outcome is None
        assert single_payment_arrangement.status == ArrangementStatus.SCHEDULED

    def test_cancelled_is_terminal(self, state_machine, single_payment_arrangement, now):
        cancelled = state_machine.cancel(single_payment_arrangement, now).arrangement

        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.transition(cancelled, ArrangementStatus.SCHEDULED, now)

        assert exc_info.value.target_status == "Scheduled"

    def test_reschedule_after_miss(self, state_machine, single_payment_arrangement, now):
        missed = state_machine.mark_missed(single_payment_arrangement, now).arrangement

        result = state_machine.transition(missed, ArrangementStatus.SCHEDULED, now)

        assert result.arrangement.status == ArrangementStatus.SCHEDULED


class TestContinuePayment:
    """Test the Continue action"""

    def test_single_payment_scenario(self, state_machine, single_payment_arrangement, now):
        """Test a flat single payment completes the arrangement"""
        result = state_machine.continue_payment(single_payment_arrangement, now)

        assert result.arrangement.status == ArrangementStatus.COMPLETED
        assert result.arrangement.payments_made == 1
        assert result.outcome.as_call_args() == (4, "ARR", "50.00", "arr-single", None)
        assert ledger.remaining_balance(result.arrangement) == Decimal("0.00")

    def test_advances_to_next_instalment(self, state_machine, three_instalment_arrangement, now):
        result = state_machine.continue_payment(three_instalment_arrangement, now)
        updated = result.arrangement

        first = updated.payment_instalments[0]
        assert first.status == InstalmentStatus.PAID
        assert first.paid_date == now.date()
        assert first.paid_amount == Decimal("30.00")
        assert updated.current_instalment_index == 1
        assert updated.scheduled_date == date(2025, 2, 15)
        assert updated.amount == "30.00"
        assert updated.payments_made == 1
        assert updated.status == ArrangementStatus.SCHEDULED
        assert result.outcome.outcome == OutcomeCode.ARR
        assert result.outcome.case_reference == "CASE-42"
        assert set(result.changes) >= {"paymentInstalments", "currentInstalmentIndex", "scheduledDate", "paymentsMade"}

    def test_last_instalment_completes(self, state_machine, three_instalment_arrangement, now):
        arrangement = three_instalment_arrangement
        for _ in range(3):
            arrangement = state_machine.continue_payment(arrangement, now).arrangement

        assert arrangement.status == ArrangementStatus.COMPLETED
        assert arrangement.payments_made == 3
        assert ledger.remaining_balance(arrangement) == Decimal("0.00")

    def test_paid_count_is_monotonic(self, lenient_state_machine, three_instalment_arrangement, now):
        arrangement = three_instalment_arrangement
        counts = [ledger.paid_instalments(arrangement)]
        for _ in range(4):
            arrangement = lenient_state_machine.continue_payment(arrangement, now).arrangement
            counts.append(ledger.paid_instalments(arrangement))

        assert counts == sorted(counts)
        assert ledger.remaining_balance(arrangement) >= Decimal("0.00")

    def test_input_is_not_mutated(self, state_machine, three_instalment_arrangement, now):
        before = three_instalment_arrangement.to_dict()

        state_machine.continue_payment(three_instalment_arrangement, now)

        assert three_instalment_arrangement.to_dict() == before

    def test_missing_amount_rejected(self, state_machine, now):
        arrangement = Arrangement(id="a", address_index=0, scheduled_date="2025-01-15")

        with pytest.raises(ValidationError):
            state_machine.continue_payment(arrangement, now)

    def test_zero_amount_rejected(self, state_machine, now):
        arrangement = Arrangement(id="a", address_index=0, scheduled_date="2025-01-15", amount="0")

        with pytest.raises(ValidationError):
            state_machine.continue_payment(arrangement, now)

    def test_index_outside_ledger(self, state_machine, three_instalment_arrangement, now):
        broken = three_instalment_arrangement.model_copy(update={"current_instalment_index": 7})

        with pytest.raises(InconsistentStateError):
            state_machine.continue_payment(broken, now)

    def test_logs_business_event(self, state_machine, single_payment_arrangement, now):
        with patch("arrangement_engine.services.arrangement_state.log_business_event") as mock_event:
            state_machine.continue_payment(single_payment_arrangement, now)

        mock_event.assert_called_once()
        assert mock_event.call_args.args[0] == "arrangement_continue"
        assert mock_event.call_args.kwargs["outcome"] == "ARR"


class TestPaidInFull:
    """Test the Paid-in-Full action"""

    def test_partial_plan_scenario(self, state_machine, three_instalment_arrangement, now):
        """Test paying off a three-instalment plan after one payment"""
        after_one = state_machine.continue_payment(three_instalment_arrangement, now).arrangement

        result = state_machine.paid_in_full(after_one, now)

        assert result.outcome.outcome == OutcomeCode.PIF
        assert result.outcome.amount == "60.00"
        assert all(inst.is_paid for inst in result.arrangement.payment_instalments)
        assert [inst.paid_date for inst in result.arrangement.payment_instalments[1:]] == [now.date()] * 2
        assert result.arrangement.status == ArrangementStatus.COMPLETED
        assert result.arrangement.payments_made == 3
        assert ledger.remaining_balance(result.arrangement) == Decimal("0.00")

    def test_second_call_rejected_with_guard(self, state_machine, three_instalment_arrangement, now):
        completed = state_machine.paid_in_full(three_instalment_arrangement, now).arrangement

        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.paid_in_full(completed, now)

        assert exc_info.value.current_status == "Completed"
        assert exc_info.value.action == PaymentAction.PAID_IN_FULL.value

    def test_repeat_is_idempotent_without_guard(self, lenient_state_machine, three_instalment_arrangement, now):
        first = lenient_state_machine.paid_in_full(three_instalment_arrangement, now)
        later = datetime(2025, 1, 20, 8, 0)
        second = lenient_state_machine.paid_in_full(first.arrangement, later)

        assert ledger.remaining_balance(first.arrangement) == Decimal("0.00")
        assert ledger.remaining_balance(second.arrangement) == Decimal("0.00")
        assert second.arrangement.status == ArrangementStatus.COMPLETED
        assert second.outcome.amount == "0.00"
        # Already-paid entries keep their original paid date
        assert second.arrangement.payment_instalments == first.arrangement.payment_instalments

    def test_flat_arrangement(self, state_machine, single_payment_arrangement, now):
        result = state_machine.paid_in_full(single_payment_arrangement, now)

        assert result.outcome.amount == "50.00"
        assert result.arrangement.payments_made == 1
        assert ledger.remaining_balance(result.arrangement) == Decimal("0.00")

    def test_flat_counters_without_total_owed(self, state_machine, now):
        """Test that outstanding flat payments are reported, not a zero balance"""
        arrangement = Arrangement(
            id="arr-flat",
            address_index=2,
            scheduled_date="2025-01-22",
            amount="50.00",
            payments_made=1,
            total_payments=4,
            recurrence_type="weekly",
        )

        result = state_machine.paid_in_full(arrangement, now)

        assert result.outcome.amount == "150.00"
        assert result.arrangement.status == ArrangementStatus.COMPLETED
        assert result.arrangement.payments_made == 4
        assert ledger.remaining_balance(result.arrangement) == Decimal("0.00")


class TestDefaulted:
    """Test the Defaulted action"""

    def test_closes_without_payment(self, state_machine, three_instalment_arrangement, now):
        result = state_machine.defaulted(three_instalment_arrangement, now)

        assert result.arrangement.status == ArrangementStatus.COMPLETED
        assert result.arrangement.payment_instalments == three_instalment_arrangement.payment_instalments
        assert result.outcome.as_call_args() == (7, "Done", None, "arr-plan", "CASE-42")
        assert set(result.changes) == {"status", "updatedAt"}

    @pytest.mark.parametrize("status", [ArrangementStatus.COMPLETED, ArrangementStatus.CANCELLED, ArrangementStatus.MISSED])
    def test_guard_rejects_ineligible_status(self, state_machine, single_payment_arrangement, now, status):
        arrangement = single_payment_arrangement.model_copy(update={"status": status})

        for action in PaymentAction:
            with pytest.raises(InvalidTransitionError):
                state_machine.apply(action, arrangement, now)

    def test_confirmed_is_eligible(self, state_machine, single_payment_arrangement, now):
        confirmed = single_payment_arrangement.model_copy(update={"status": ArrangementStatus.CONFIRMED})

        assert state_machine.defaulted(confirmed, now).arrangement.status == ArrangementStatus.COMPLETED
