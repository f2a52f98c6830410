"""
Tests for arrangement draft validation and construction.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from arrangement_engine.core.exceptions import InconsistentStateError, ValidationError
from arrangement_engine.models.arrangement import (
    ArrangementStatus,
    Instalment,
    InstalmentStatus,
    RecurrenceType,
)
from arrangement_engine.services.arrangement_factory import (
    ArrangementDraft,
    build_arrangement,
    replace_plan,
    validate_draft,
)


@pytest.fixture
def draft_data():
    return {
        "address": "  12 High Street ",
        "customerName": "Smith",
        "phoneNumber": "07700900123",
        "caseReference": "CASE-1",
        "totalAmountOwed": "300.00",
        "startDate": "2025-01-15",
        "scheduledTime": "10:00",
        "recurrenceType": "monthly",
        "recurrenceInterval": 1,
        "numberOfInstalments": 3,
    }


class TestValidateDraft:
    """Test draft validation rules"""

    def test_valid_draft_returns_remaining(self, draft_data):
        draft_data["previousPayments"] = ["50.00", ""]

        assert validate_draft(ArrangementDraft.from_dict(draft_data)) == Decimal("250.00")

    def test_blank_address(self, draft_data):
        draft_data["address"] = "   "

        with pytest.raises(ValidationError) as exc_info:
            validate_draft(ArrangementDraft.from_dict(draft_data))

        assert exc_info.value.field == "address"

    @pytest.mark.parametrize("total", ["0", "-10", "abc", ""])
    def test_bad_total(self, draft_data, total):
        draft_data["totalAmountOwed"] = total

        with pytest.raises(ValidationError) as exc_info:
            validate_draft(ArrangementDraft.from_dict(draft_data))

        assert exc_info.value.field == "totalAmountOwed"

    def test_previous_payments_exceed_total(self, draft_data):
        draft_data["previousPayments"] = ["200.00", "150.00"]

        with pytest.raises(InconsistentStateError):
            validate_draft(ArrangementDraft.from_dict(draft_data))

    def test_explicit_instalments_must_match_balance(self, draft_data):
        draft_data["instalments"] = [
            {"amount": "100.00", "scheduledDate": "2025-01-15"},
            {"amount": "150.00", "scheduledDate": "2025-02-15"},
        ]

        with pytest.raises(ValidationError) as exc_info:
            validate_draft(ArrangementDraft.from_dict(draft_data))

        assert exc_info.value.field == "instalments"
        assert "300.00" in exc_info.value.detail

    def test_explicit_instalments_must_be_positive(self, draft_data):
        draft_data["instalments"] = [
            {"amount": "300.00", "scheduledDate": "2025-01-15"},
            {"amount": "0", "scheduledDate": "2025-02-15"},
        ]

        with pytest.raises(ValidationError) as exc_info:
            validate_draft(ArrangementDraft.from_dict(draft_data))

        assert exc_info.value.field == "instalments"

    def test_explicit_instalments_within_a_penny(self, draft_data):
        draft_data["instalments"] = [
            {"amount": "150.00", "scheduledDate": "2025-01-15"},
            {"amount": "149.99", "scheduledDate": "2025-02-15"},
        ]

        assert validate_draft(ArrangementDraft.from_dict(draft_data)) == Decimal("300.00")


class TestBuildArrangement:
    """Test construction of new arrangements"""

    def test_recurring_plan(self, draft_data, now):
        arrangement = build_arrangement(ArrangementDraft.from_dict(draft_data), "arr-new", 3, now)

        assert arrangement.status == ArrangementStatus.SCHEDULED
        assert arrangement.address == "12 High Street"
        assert arrangement.address_index == 3
        assert arrangement.total_amount_owed == Decimal("300.00")
        assert len(arrangement.payment_instalments) == 3
        assert arrangement.scheduled_date == date(2025, 1, 15)
        assert arrangement.amount == "100.00"
        assert arrangement.total_payments == 3
        assert arrangement.payments_made == 0
        assert arrangement.current_instalment_index == 0
        assert arrangement.recurrence_type == RecurrenceType.MONTHLY
        assert arrangement.created_at == now

    def test_single_payment_gets_one_entry_ledger(self, draft_data, now):
        draft_data.update(recurrenceType="single", numberOfInstalments=1)

        arrangement = build_arrangement(ArrangementDraft.from_dict(draft_data), "arr-new", 3, now)

        assert len(arrangement.payment_instalments) == 1
        assert arrangement.payment_instalments[0].amount == Decimal("300.00")
        assert arrangement.recurrence_type == RecurrenceType.NONE
        assert arrangement.recurrence_interval is None
        assert arrangement.total_payments == 1

    def test_one_instalment_count_is_single_payment(self, draft_data, now):
        draft_data["numberOfInstalments"] = 1

        arrangement = build_arrangement(ArrangementDraft.from_dict(draft_data), "arr-new", 3, now)

        assert arrangement.total_payments == 1
        assert arrangement.recurrence_type == RecurrenceType.NONE

    def test_previous_payments_reduce_total(self, draft_data, now):
        draft_data["previousPayments"] = ["60.00"]

        arrangement = build_arrangement(ArrangementDraft.from_dict(draft_data), "arr-new", 3, now)

        assert arrangement.total_amount_owed == Decimal("240.00")
        assert arrangement.amount == "80.00"

    def test_explicit_instalments_are_numbered(self, draft_data, now):
        draft_data["instalments"] = [
            {"amount": "200.00", "scheduledDate": "2025-01-20"},
            {"amount": "100.00", "scheduledDate": "2025-03-01"},
        ]

        arrangement = build_arrangement(ArrangementDraft.from_dict(draft_data), "arr-new", 3, now)

        assert [inst.id for inst in arrangement.payment_instalments] == ["inst_1", "inst_2"]
        assert arrangement.scheduled_date == date(2025, 1, 20)
        assert arrangement.amount == "200.00"

    def test_fully_prepaid_draft_rejected(self, draft_data, now):
        draft_data["previousPayments"] = ["300.00"]

        with pytest.raises(ValidationError):
            build_arrangement(ArrangementDraft.from_dict(draft_data), "arr-new", 3, now)


class TestReplacePlan:
    """Test editing an existing plan"""

    def test_keeps_paid_entries(self, three_instalment_arrangement):
        instalments = list(three_instalment_arrangement.payment_instalments)
        instalments[0] = instalments[0].model_copy(update={
            "status": InstalmentStatus.PAID,
            "paid_date": date(2025, 1, 15),
        })
        arrangement = three_instalment_arrangement.model_copy(update={
            "payment_instalments": instalments,
            "current_instalment_index": 1,
        })
        new_plan = [
            Instalment(amount="20.00", scheduled_date="2025-02-01"),
            Instalment(amount="20.00", scheduled_date="2025-02-15"),
            Instalment(amount="20.00", scheduled_date="2025-03-01"),
        ]
        edited_at = datetime(2025, 1, 20, 9, 0)

        updated = replace_plan(arrangement, new_plan, edited_at)

        assert len(updated.payment_instalments) == 4
        assert updated.payment_instalments[0].is_paid
        assert [inst.instalment_number for inst in updated.payment_instalments] == [1, 2, 3, 4]
        assert updated.current_instalment_index == 1
        assert updated.scheduled_date == date(2025, 2, 1)
        assert updated.amount == "20.00"
        assert updated.total_payments == 4
        assert updated.payments_made == 1
        assert updated.updated_at == edited_at

    def test_rejects_empty_plan(self, three_instalment_arrangement, now):
        with pytest.raises(ValidationError):
            replace_plan(three_instalment_arrangement, [], now)
