"""
Message Template Engine

Renders reminder messages from the user's templates. Substitution is a flat,
single-pass replace over a fixed set of variable names: placeholders that
are not in the set are left exactly as written, and substituted values are
never re-scanned for placeholders.
"""

import re
from datetime import date
from typing import Dict, Optional, Tuple

import structlog

from arrangement_engine.config import settings as engine_settings
from arrangement_engine.models.arrangement import Arrangement
from arrangement_engine.models.reminder import (
    DEFAULT_MESSAGE_TEMPLATES,
    MessageTemplate,
    ReminderNotification,
    ReminderSettings,
)
from arrangement_engine.services import ledger
from arrangement_engine.utils.dates import format_display_date
from arrangement_engine.utils.money import format_amount

logger = structlog.get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")

TEMPLATE_VARIABLES = frozenset({
    "greeting",
    "refLine",
    "referenceNumber",
    "customerName",
    "amount",
    "date",
    "time",
    "signature",
    "agentName",
    "agentTitle",
    "contactInfo",
})

UNKNOWN_AMOUNT_TEXT = "the arranged amount"


def split_customer_reference(customer_name: Optional[str]) -> Tuple[str, str]:
    """
    Split a customer field into (reference, name).

    Agents often type "<case ref> <surname>" into the name field; a leading
    token containing a digit is taken as that reference.
    """
    if not customer_name or not customer_name.strip():
        return "", ""
    parts = customer_name.split()
    if len(parts) >= 2 and any(ch.isdigit() for ch in parts[0]):
        return parts[0], " ".join(parts[1:])
    return "", " ".join(parts)


def build_greeting(customer_name: Optional[str]) -> str:
    if not customer_name or not customer_name.strip():
        return ""
    parts = customer_name.split()
    if len(parts) >= 2:
        return f"Mr/Mrs {' '.join(parts[1:])}, "
    return f"{parts[0]}, "


def resolve_template(settings: ReminderSettings, template_id: Optional[str] = None) -> MessageTemplate:
    """Requested template, else the active one, else the first, else the built-in default."""
    wanted = template_id or settings.active_template_id
    templates = settings.message_templates or DEFAULT_MESSAGE_TEMPLATES
    for template in templates:
        if template.id == wanted:
            return template
    return templates[0]


def build_template_variables(
    arrangement: Arrangement,
    settings: ReminderSettings,
    due_date: Optional[date] = None,
    date_format: Optional[str] = None,
) -> Dict[str, str]:
    """Values for every supported placeholder."""
    customer = (arrangement.customer_name or "").strip()
    embedded_reference, _ = split_customer_reference(customer)
    reference = (arrangement.case_reference or "").strip() or embedded_reference

    due = ledger.current_amount_due(arrangement)
    profile = settings.agent_profile

    return {
        "greeting": build_greeting(customer),
        "refLine": f"Reference: {reference}\n\n" if reference else "",
        "referenceNumber": reference,
        "customerName": customer,
        "amount": format_amount(due) if due is not None else UNKNOWN_AMOUNT_TEXT,
        "date": format_display_date(
            due_date or arrangement.scheduled_date,
            date_format or engine_settings.date_display_format,
        ),
        "time": f" at {arrangement.scheduled_time}" if arrangement.scheduled_time else "",
        "signature": profile.signature,
        "agentName": profile.name,
        "agentTitle": profile.title,
        "contactInfo": profile.contact_info or "",
    }


def render_template(template_text: str, variables: Dict[str, str]) -> str:
    """Replace known ``{name}`` placeholders in one pass."""

    def substitute(match: "re.Match") -> str:
        name = match.group(1)
        if name in TEMPLATE_VARIABLES and name in variables:
            return variables[name]
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(substitute, template_text)


def generate_reminder_message(
    arrangement: Arrangement,
    notification: Optional[ReminderNotification],
    settings: ReminderSettings,
    template_id: Optional[str] = None,
) -> str:
    """
    Compose the reminder text for an arrangement.

    The message always describes the arrangement's current due date and
    amount; the notification only identifies which occurrence is being sent.
    """
    template = resolve_template(settings, template_id)
    variables = build_template_variables(arrangement, settings)
    message = render_template(template.template, variables)
    logger.debug(
        "Rendered reminder message",
        arrangement_id=arrangement.id,
        notification_id=notification.id if notification else None,
        template_id=template.id,
    )
    return message


def _sample_arrangement() -> Arrangement:
    return Arrangement(
        id="preview",
        address_index=0,
        address="1 Sample Street",
        customer_name="Smith",
        case_reference="REF123456",
        scheduled_date=date(2025, 1, 15),
        scheduled_time="14:30",
        amount="150.00",
    )


def preview_template(template_text: str, settings: ReminderSettings) -> str:
    """Render unsaved template text against a fixed sample arrangement."""
    variables = build_template_variables(_sample_arrangement(), settings)
    return render_template(template_text, variables)
