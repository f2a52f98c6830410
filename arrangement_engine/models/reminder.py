"""
Reminder notification and notification-policy models.
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from arrangement_engine.models.arrangement import EngineModel
from arrangement_engine.utils.dates import to_date


class ReminderType(str, Enum):
    PAYMENT_DUE = "payment_due"
    OVERDUE = "overdue"
    CUSTOM = "custom"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DISMISSED = "dismissed"


# Statuses that mean a reminder occurrence has been acted on
ACTED_ON_STATUSES = frozenset({NotificationStatus.SENT, NotificationStatus.DISMISSED})


class ReminderNotification(EngineModel):
    """A reminder occurrence for one arrangement."""

    id: str
    arrangement_id: str
    type: ReminderType = ReminderType.PAYMENT_DUE
    scheduled_date: date
    status: NotificationStatus = NotificationStatus.PENDING
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def validate_scheduled_date(cls, v):
        return to_date(v, field="scheduledDate")


class ReminderOccurrence(ReminderNotification):
    """Evaluator output: a notification plus where it sits relative to the due date."""

    offset_days: int
    due_date: date
    is_overdue: bool = False


class CustomizableSchedule(EngineModel):
    three_day_reminder: bool = True
    one_day_reminder: bool = True
    day_of_reminder: bool = True
    custom_days: List[int] = Field(default_factory=list)

    @field_validator("custom_days")
    @classmethod
    def validate_custom_days(cls, v: List[int]) -> List[int]:
        if any(day < 0 for day in v):
            raise ValueError("Custom reminder days must be zero or positive")
        return v


class AgentProfile(EngineModel):
    name: str
    title: str
    signature: str
    contact_info: Optional[str] = None


class MessageTemplate(EngineModel):
    id: str
    name: str
    template: str
    variables: List[str] = Field(default_factory=list)


DEFAULT_AGENT_PROFILE = AgentProfile(
    name="[Agent Name]",
    title="Enforcement Agent",
    signature="Enforcement Agent [Agent Name]",
)

_STANDARD_VARIABLES = ["greeting", "refLine", "date", "time", "amount", "signature"]

DEFAULT_MESSAGE_TEMPLATES = [
    MessageTemplate(
        id="professional_standard",
        name="Professional Standard",
        template=(
            "{greeting}PAYMENT REMINDER\n\n{refLine}Your payment arrangement is due {date}{time}.\n\n"
            "Amount Due: £{amount}\n\nPayment must be made as agreed. Failure to comply may result "
            "in further enforcement action.\n\nContact immediately if unable to pay as arranged.\n\n"
            "{signature}"
        ),
        variables=_STANDARD_VARIABLES,
    ),
    MessageTemplate(
        id="friendly_reminder",
        name="Friendly Reminder",
        template=(
            "{greeting}Payment Reminder\n\n{refLine}This is a friendly reminder that your payment "
            "arrangement is due {date}{time}.\n\nAmount: £{amount}\n\nPlease ensure payment is made "
            "as agreed. If you need to discuss this arrangement, please contact us immediately.\n\n"
            "Thank you,\n{signature}"
        ),
        variables=_STANDARD_VARIABLES,
    ),
    MessageTemplate(
        id="urgent_notice",
        name="Urgent Notice",
        template=(
            "{greeting}URGENT: PAYMENT DUE\n\n{refLine}Your payment arrangement is due {date}{time}.\n\n"
            "Amount Due: £{amount}\n\nIMPORTANT: Payment must be made TODAY as agreed. Failure to "
            "comply will result in immediate further enforcement action.\n\nContact us NOW if unable "
            "to pay.\n\n{signature}"
        ),
        variables=_STANDARD_VARIABLES,
    ),
    MessageTemplate(
        id="custom",
        name="Custom Template",
        template=(
            "{greeting}Payment Reminder\n\n{refLine}Your payment is due {date}{time}.\n\n"
            "Amount: £{amount}\n\n[Customize this message]\n\n{signature}"
        ),
        variables=_STANDARD_VARIABLES,
    ),
]


class ReminderSettings(EngineModel):
    """Per-user notification policy."""

    global_enabled: bool = True
    sms_enabled: bool = True
    customizable_schedule: CustomizableSchedule = Field(default_factory=CustomizableSchedule)
    agent_profile: AgentProfile = Field(default_factory=lambda: DEFAULT_AGENT_PROFILE.model_copy())
    message_templates: List[MessageTemplate] = Field(
        default_factory=lambda: [t.model_copy() for t in DEFAULT_MESSAGE_TEMPLATES]
    )
    active_template_id: str = "professional_standard"

    @model_validator(mode="after")
    def ensure_templates(self) -> "ReminderSettings":
        # At least one template must always exist
        if not self.message_templates:
            self.message_templates = [t.model_copy() for t in DEFAULT_MESSAGE_TEMPLATES]
        return self


DEFAULT_REMINDER_SETTINGS = ReminderSettings()
