"""
Models package for the Arrangement Engine.
"""
from .arrangement import (
    Arrangement,
    ArrangementStatus,
    Instalment,
    InstalmentStatus,
    RecurrenceType,
    ReminderSchedule,
)
from .reminder import (
    AgentProfile,
    MessageTemplate,
    NotificationStatus,
    ReminderNotification,
    ReminderOccurrence,
    ReminderSettings,
    ReminderType,
)

__all__ = [
    "Arrangement",
    "ArrangementStatus",
    "Instalment",
    "InstalmentStatus",
    "RecurrenceType",
    "ReminderSchedule",
    "AgentProfile",
    "MessageTemplate",
    "NotificationStatus",
    "ReminderNotification",
    "ReminderOccurrence",
    "ReminderSettings",
    "ReminderType",
]
