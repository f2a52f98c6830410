"""
Reminder Schedule Evaluator

Works out which payment reminders are due for a set of arrangements, given
the notification log and the user's reminder policy. Reminder occurrences
are derived on demand; only sent or dismissed ones need to be stored.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

import structlog

from arrangement_engine.models.arrangement import Arrangement, ArrangementStatus
from arrangement_engine.models.reminder import (
    ACTED_ON_STATUSES,
    DEFAULT_REMINDER_SETTINGS,
    NotificationStatus,
    ReminderNotification,
    ReminderOccurrence,
    ReminderSettings,
    ReminderType,
)
from arrangement_engine.utils.dates import add_days

logger = structlog.get_logger(__name__)


def reminder_offsets(arrangement: Arrangement, settings: ReminderSettings = DEFAULT_REMINDER_SETTINGS) -> List[int]:
    """
    Days before the due date at which reminders fire, largest first.

    An arrangement's own reminder schedule wins over the global policy;
    a disabled one means no reminders at all.
    """
    override = arrangement.reminder_schedule
    if override is not None:
        if not override.enabled:
            return []
        if override.days_before_payment:
            return sorted(set(override.days_before_payment), reverse=True)

    schedule = settings.customizable_schedule
    days = []
    if schedule.three_day_reminder:
        days.append(3)
    if schedule.one_day_reminder:
        days.append(1)
    if schedule.day_of_reminder:
        days.append(0)
    days.extend(schedule.custom_days)
    return sorted(set(days), reverse=True)


def calculate_reminder_dates(
    arrangement: Arrangement, settings: ReminderSettings = DEFAULT_REMINDER_SETTINGS
) -> List[date]:
    if not settings.global_enabled:
        return []
    return [add_days(arrangement.scheduled_date, -offset) for offset in reminder_offsets(arrangement, settings)]


def get_reminder_type(due_date: date, reminder_date: date, today: date) -> ReminderType:
    """payment_due on the due date itself, overdue once it has passed, custom before."""
    if reminder_date == due_date:
        return ReminderType.PAYMENT_DUE
    if today > due_date:
        return ReminderType.OVERDUE
    return ReminderType.CUSTOM


def create_reminder_notifications(
    arrangement: Arrangement,
    now: datetime,
    settings: ReminderSettings = DEFAULT_REMINDER_SETTINGS,
) -> List[ReminderNotification]:
    """All reminder occurrences for an arrangement as pending notifications."""
    today = now.date()
    return [
        ReminderNotification(
            id=f"{arrangement.id}_reminder_{index}",
            arrangement_id=arrangement.id,
            type=get_reminder_type(arrangement.scheduled_date, fire_date, today),
            scheduled_date=fire_date,
            status=NotificationStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        for index, fire_date in enumerate(calculate_reminder_dates(arrangement, settings))
    ]


def _acted_on_keys(notifications: Iterable[ReminderNotification]) -> Set[Tuple[str, date]]:
    return {
        (n.arrangement_id, n.scheduled_date)
        for n in notifications
        if n.status in ACTED_ON_STATUSES
    }


def evaluate_pending_reminders(
    arrangements: Iterable[Arrangement],
    notifications: Iterable[ReminderNotification],
    settings: ReminderSettings,
    now: datetime,
) -> List[ReminderOccurrence]:
    """
    Reminders that should be surfaced now.

    An occurrence is pending when reminders are globally enabled, its fire
    date (due date minus offset) is today or earlier, and no notification
    for the same arrangement and fire date has been sent or dismissed.
    Occurrences whose fire date is before today are flagged ``is_overdue``.

    Args:
        arrangements: Arrangements to evaluate; closed ones are skipped
        notifications: Recorded notification log
        settings: Reminder policy
        now: Current time; only its date is used

    Returns:
        Pending occurrences, ordered by arrangement then fire date
    """
    if not settings.global_enabled:
        return []

    notifications = list(notifications)
    today = now.date()
    acted_on = _acted_on_keys(notifications)
    stored: Dict[Tuple[str, date], ReminderNotification] = {
        (n.arrangement_id, n.scheduled_date): n
        for n in notifications
        if n.status == NotificationStatus.PENDING
    }

    pending = []
    for arrangement in arrangements:
        if not arrangement.is_active:
            continue
        due_date = arrangement.scheduled_date
        for index, offset in enumerate(reminder_offsets(arrangement, settings)):
            fire_date = add_days(due_date, -offset)
            key = (arrangement.id, fire_date)
            if fire_date > today or key in acted_on:
                continue

            existing = stored.get(key)
            pending.append(
                ReminderOccurrence(
                    id=existing.id if existing else f"{arrangement.id}_reminder_{index}",
                    arrangement_id=arrangement.id,
                    type=get_reminder_type(due_date, fire_date, today),
                    scheduled_date=fire_date,
                    status=NotificationStatus.PENDING,
                    message=existing.message if existing else None,
                    created_at=existing.created_at if existing else now,
                    updated_at=existing.updated_at if existing else now,
                    offset_days=offset,
                    due_date=due_date,
                    is_overdue=fire_date < today,
                )
            )

    logger.debug("Evaluated pending reminders", pending=len(pending), acted_on=len(acted_on))
    return pending


@dataclass(frozen=True)
class ReminderStats:
    total_pending: int
    due_today: int
    overdue_payments: int
    total_arrangements: int


def get_reminder_stats(
    arrangements: Iterable[Arrangement],
    notifications: Iterable[ReminderNotification],
    settings: ReminderSettings,
    now: datetime,
) -> ReminderStats:
    """Dashboard counts over the same inputs as the evaluator."""
    arrangements = list(arrangements)
    today = now.date()
    pending = evaluate_pending_reminders(arrangements, notifications, settings, now)
    active = [a for a in arrangements if a.is_active]
    return ReminderStats(
        total_pending=len(pending),
        due_today=sum(1 for occ in pending if occ.scheduled_date == today),
        # Overdue payments, not overdue reminders
        overdue_payments=sum(
            1 for a in arrangements
            if a.status == ArrangementStatus.SCHEDULED and a.scheduled_date < today
        ),
        total_arrangements=len(active),
    )


def settle_notification(
    occurrence: ReminderNotification,
    status: NotificationStatus,
    now: datetime,
    message: Optional[str] = None,
) -> ReminderNotification:
    """Plain notification record for an occurrence that has been acted on."""
    fields = occurrence.model_dump(include=set(ReminderNotification.model_fields))
    fields.update(status=NotificationStatus(status), updated_at=now)
    if message is not None:
        fields["message"] = message
    return ReminderNotification(**fields)


def update_reminder_status(
    notifications: Iterable[ReminderNotification],
    notification_id: str,
    status: NotificationStatus,
    now: datetime,
    message: Optional[str] = None,
) -> List[ReminderNotification]:
    """Return the log with one notification's status changed."""
    updated = []
    found = False
    for notification in notifications:
        if notification.id == notification_id:
            found = True
            notification = settle_notification(notification, status, now, message)
        updated.append(notification)
    if not found:
        logger.warning("Reminder notification not found", notification_id=notification_id)
    return updated


def cleanup_old_notifications(
    notifications: Iterable[ReminderNotification], arrangements: Iterable[Arrangement]
) -> List[ReminderNotification]:
    """Drop notifications whose arrangement is closed or gone."""
    active_ids = {a.id for a in arrangements if a.is_active}
    kept = [n for n in notifications if n.arrangement_id in active_ids]
    return kept


def record_reminder_sent(arrangement: Arrangement, now: datetime) -> Arrangement:
    return arrangement.model_copy(update={
        "last_reminder_sent": now,
        "reminder_count": arrangement.reminder_count + 1,
        "updated_at": now,
    })
