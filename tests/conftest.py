"""
Pytest configuration and fixtures for the Arrangement Engine.
"""
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from arrangement_engine.models.arrangement import Arrangement, Instalment
from arrangement_engine.models.reminder import ReminderSettings
from arrangement_engine.services.arrangement_state import ArrangementStateMachine
from arrangement_engine.services.recurrence import generate_instalments


@pytest.fixture
def now() -> datetime:
    """Fixed 'current time' for deterministic tests."""
    return datetime(2025, 1, 13, 10, 30)


@pytest.fixture
def single_payment_arrangement() -> Arrangement:
    """Flat single-payment arrangement with no ledger."""
    return Arrangement(
        id="arr-single",
        address_index=4,
        address="12 High Street",
        customer_name="Smith",
        phone_number="07700900123",
        scheduled_date=date(2025, 1, 15),
        amount="50.00",
    )


@pytest.fixture
def three_instalment_arrangement() -> Arrangement:
    """£90.00 split into three monthly instalments of £30.00."""
    instalments = generate_instalments(
        start_date=date(2025, 1, 15),
        recurrence_type="monthly",
        interval=1,
        count=3,
        total_amount="90.00",
    )
    return Arrangement(
        id="arr-plan",
        address_index=7,
        address="3 Mill Lane",
        customer_name="123456789 Jones",
        phone_number="07700900456",
        case_reference="CASE-42",
        scheduled_date=instalments[0].scheduled_date,
        scheduled_time="14:30",
        amount="30.00",
        total_amount_owed=Decimal("90.00"),
        payment_instalments=instalments,
        payments_made=0,
        total_payments=3,
        recurrence_type="monthly",
        recurrence_interval=1,
    )


@pytest.fixture
def state_machine() -> ArrangementStateMachine:
    return ArrangementStateMachine(enforce_guard=True)


@pytest.fixture
def lenient_state_machine() -> ArrangementStateMachine:
    """State machine without the status guard."""
    return ArrangementStateMachine(enforce_guard=False)


@pytest.fixture
def reminder_settings() -> ReminderSettings:
    return ReminderSettings()


@pytest.fixture
def sample_instalment() -> Instalment:
    return Instalment(id="inst_1", instalment_number=1, amount="25.00", scheduled_date="2025-02-01")


@pytest.fixture
def mock_persistence() -> AsyncMock:
    persistence = AsyncMock()
    persistence.add_arrangement.return_value = None
    return persistence


@pytest.fixture
def mock_accounting() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def mock_address_resolver() -> AsyncMock:
    resolver = AsyncMock()
    resolver.resolve.return_value = 11
    return resolver


@pytest.fixture
def mock_delivery() -> AsyncMock:
    return AsyncMock()
