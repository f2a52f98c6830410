"""
Arrangement Service

Async entry point used by the surrounding application. Each method runs the
pure engine first, then hands the computed state to the collaborators
(persistence, accounting, address resolution, delivery). Collaborator errors
are wrapped in CollaboratorFailure carrying the computed result; nothing is
retried here.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from arrangement_engine.core.exceptions import BusinessRuleError, CollaboratorFailure, ValidationError
from arrangement_engine.core.logging import (
    correlation_context,
    get_logger,
    log_business_event,
    log_error_with_context,
    performance_timing,
)
from arrangement_engine.models.arrangement import Arrangement, ArrangementStatus, Instalment, diff_fields
from arrangement_engine.models.reminder import NotificationStatus, ReminderNotification, ReminderSettings
from arrangement_engine.services.arrangement_factory import (
    ArrangementDraft,
    build_arrangement,
    replace_plan,
    validate_draft,
)
from arrangement_engine.services.arrangement_state import (
    ActionResult,
    ArrangementStateMachine,
    OutcomeCode,
    PaymentAction,
)
from arrangement_engine.services.collaborators import (
    AccountingCollaborator,
    AddressResolver,
    DeliveryCollaborator,
    PersistenceCollaborator,
)
from arrangement_engine.services.message_templates import generate_reminder_message
from arrangement_engine.services.reminder_scheduler import record_reminder_sent, settle_notification
from arrangement_engine.utils.money import ZERO, format_amount, parse_amount

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReminderDispatch:
    """Outcome of sending one reminder."""

    notification: ReminderNotification
    arrangement: Arrangement
    changes: Dict[str, Any]
    message: str


def _new_arrangement_id() -> str:
    return f"arr_{uuid.uuid4().hex}"


class ArrangementService:
    """Orchestrates arrangement changes and their collaborator calls."""

    def __init__(
        self,
        persistence: PersistenceCollaborator,
        accounting: AccountingCollaborator,
        address_resolver: Optional[AddressResolver] = None,
        delivery: Optional[DeliveryCollaborator] = None,
        state_machine: Optional[ArrangementStateMachine] = None,
        id_factory: Callable[[], str] = _new_arrangement_id,
    ):
        self.persistence = persistence
        self.accounting = accounting
        self.address_resolver = address_resolver
        self.delivery = delivery
        self.state_machine = state_machine or ArrangementStateMachine()
        self.id_factory = id_factory

    async def _call(self, collaborator: str, operation: str, call: Callable[[], Awaitable], result: Any = None):
        try:
            return await call()
        except Exception as e:
            log_error_with_context(logger, e, {"collaborator": collaborator, "operation": operation})
            raise CollaboratorFailure(collaborator, f"{operation} failed: {e}", result=result) from e

    async def create_arrangement(self, draft: ArrangementDraft, now: datetime) -> Arrangement:
        """
        Validate a draft, store the new arrangement and report it to accounting.

        Previous payments are reported as ARR with their amounts, then the
        arrangement itself as ARR without an amount when its address is in
        the address list (index >= 0).

        Raises:
            ValidationError / InconsistentStateError: Before any collaborator call
            CollaboratorFailure: A collaborator rejected the call
        """
        validate_draft(draft)

        address_index = draft.address_index
        if address_index is None:
            if self.address_resolver is None:
                raise ValidationError("Address index is required", field="addressIndex", value=None)
            address_index = await self._call(
                "address_resolver", "resolve", lambda: self.address_resolver.resolve(draft.address.strip())
            )

        arrangement = build_arrangement(draft, self.id_factory(), address_index, now)

        with correlation_context(arrangement_id=arrangement.id), performance_timing("create_arrangement"):
            stored_id = await self._call(
                "persistence",
                "add_arrangement",
                lambda: self.persistence.add_arrangement(arrangement.to_dict()),
                result=arrangement,
            )
            if stored_id and stored_id != arrangement.id:
                arrangement = arrangement.model_copy(update={"id": stored_id})

            for raw in draft.previous_payments:
                if not raw.strip():
                    continue
                amount = parse_amount(raw, field="previousPayments")
                if amount <= ZERO:
                    continue
                await self._call(
                    "accounting",
                    "record_outcome",
                    lambda: self.accounting.record_outcome(
                        address_index, OutcomeCode.ARR.value, format_amount(amount), None, arrangement.case_reference
                    ),
                    result=arrangement,
                )

            if address_index >= 0:
                await self._call(
                    "accounting",
                    "record_outcome",
                    lambda: self.accounting.record_outcome(
                        address_index, OutcomeCode.ARR.value, None, arrangement.id, arrangement.case_reference
                    ),
                    result=arrangement,
                )

            log_business_event(
                "arrangement_created",
                arrangement_id=arrangement.id,
                address_index=address_index,
                total_amount_owed=format_amount(arrangement.total_amount_owed or ZERO),
                instalments=len(arrangement.payment_instalments or []),
            )
        return arrangement

    async def _run_action(self, action: PaymentAction, arrangement: Arrangement, now: datetime) -> ActionResult:
        with correlation_context(arrangement_id=arrangement.id), performance_timing(action.value):
            result = self.state_machine.apply(action, arrangement, now)

            await self._call(
                "persistence",
                "update_arrangement",
                lambda: self.persistence.update_arrangement(arrangement.id, result.changes),
                result=result,
            )
            await self._call(
                "accounting",
                "record_outcome",
                lambda: self.accounting.record_outcome(*result.outcome.as_call_args()),
                result=result,
            )
        return result

    async def continue_payment(self, arrangement: Arrangement, now: datetime) -> ActionResult:
        return await self._run_action(PaymentAction.CONTINUE, arrangement, now)

    async def paid_in_full(self, arrangement: Arrangement, now: datetime) -> ActionResult:
        return await self._run_action(PaymentAction.PAID_IN_FULL, arrangement, now)

    async def defaulted(self, arrangement: Arrangement, now: datetime) -> ActionResult:
        return await self._run_action(PaymentAction.DEFAULTED, arrangement, now)

    async def change_status(
        self, arrangement: Arrangement, target: ArrangementStatus, now: datetime
    ) -> ActionResult:
        result = self.state_machine.transition(arrangement, target, now)
        await self._call(
            "persistence",
            "update_arrangement",
            lambda: self.persistence.update_arrangement(arrangement.id, result.changes),
            result=result,
        )
        return result

    async def update_plan(
        self, arrangement: Arrangement, instalments: List[Instalment], now: datetime
    ) -> ActionResult:
        """Replace the pending part of an arrangement's plan."""
        if not arrangement.is_active:
            raise BusinessRuleError(
                "Closed arrangements cannot be re-planned",
                rule_name="closed_arrangement",
                entity_id=arrangement.id,
            )

        updated = replace_plan(arrangement, instalments, now)
        result = ActionResult(arrangement=updated, changes=diff_fields(arrangement, updated), action="update_plan")
        await self._call(
            "persistence",
            "update_arrangement",
            lambda: self.persistence.update_arrangement(arrangement.id, result.changes),
            result=result,
        )
        log_business_event(
            "arrangement_plan_updated",
            arrangement_id=arrangement.id,
            instalments=len(updated.payment_instalments or []),
        )
        return result

    async def delete_arrangement(self, arrangement_id: str) -> None:
        await self._call("persistence", "delete_arrangement", lambda: self.persistence.delete_arrangement(arrangement_id))
        log_business_event("arrangement_deleted", arrangement_id=arrangement_id)

    async def send_reminder(
        self,
        arrangement: Arrangement,
        occurrence: ReminderNotification,
        settings: ReminderSettings,
        now: datetime,
    ) -> ReminderDispatch:
        """
        Render and deliver a reminder, then record it as sent.

        Raises:
            BusinessRuleError: SMS reminders are switched off
            ValidationError: The arrangement has no phone number
            CollaboratorFailure: Delivery or persistence failed
        """
        if not settings.sms_enabled:
            raise BusinessRuleError("SMS reminders are disabled", rule_name="sms_disabled", entity_id=arrangement.id)
        phone_number = (arrangement.phone_number or "").strip()
        if not phone_number:
            raise ValidationError("No phone number for this arrangement", field="phoneNumber", value=None)
        if self.delivery is None:
            raise BusinessRuleError("No delivery channel configured", rule_name="no_delivery", entity_id=arrangement.id)

        message = generate_reminder_message(arrangement, occurrence, settings)
        notification = settle_notification(occurrence, NotificationStatus.SENT, now, message)
        updated = record_reminder_sent(arrangement, now)
        dispatch = ReminderDispatch(
            notification=notification,
            arrangement=updated,
            changes=diff_fields(arrangement, updated),
            message=message,
        )

        with correlation_context(arrangement_id=arrangement.id):
            await self._call("delivery", "send", lambda: self.delivery.send(message, phone_number), result=dispatch)
            await self._call(
                "persistence",
                "save_notification",
                lambda: self.persistence.save_notification(notification.to_dict()),
                result=dispatch,
            )
            await self._call(
                "persistence",
                "update_arrangement",
                lambda: self.persistence.update_arrangement(arrangement.id, dispatch.changes),
                result=dispatch,
            )
            log_business_event(
                "reminder_sent",
                arrangement_id=arrangement.id,
                notification_id=notification.id,
                reminder_type=notification.type.value,
                reminder_count=updated.reminder_count,
            )
        return dispatch

    async def dismiss_reminder(self, occurrence: ReminderNotification, now: datetime) -> ReminderNotification:
        notification = settle_notification(occurrence, NotificationStatus.DISMISSED, now)
        await self._call(
            "persistence",
            "save_notification",
            lambda: self.persistence.save_notification(notification.to_dict()),
            result=notification,
        )
        log_business_event(
            "reminder_dismissed",
            arrangement_id=notification.arrangement_id,
            notification_id=notification.id,
        )
        return notification
