"""Jinja2 rendering of notification emails.

Each notification type maps to a template pair ``<name>.html`` / ``<name>.txt``
under ``templates/``. HTML templates are autoescaped so candidate-supplied
values (names, reasons) cannot inject markup; text templates are not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound, select_autoescape

from schedulehub.domain.models import NotificationType

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

TEMPLATE_NAMES: Dict[str, str] = {
    NotificationType.SELF_SCHEDULE_LINK: "self_schedule_link",
    NotificationType.BOOKING_CONFIRMATION: "booking_confirmation",
    NotificationType.RESCHEDULE_CONFIRMATION: "reschedule_confirmation",
    NotificationType.CANCEL_NOTICE: "cancel_notice",
    NotificationType.REMINDER_24H: "reminder",
    NotificationType.REMINDER_2H: "reminder",
    NotificationType.NUDGE_REMINDER: "nudge",
    NotificationType.NUDGE_REMINDER_URGENT: "nudge",
    NotificationType.ESCALATION_NO_RESPONSE: "escalation",
    NotificationType.ESCALATION_EXPIRED: "escalation",
}

SUBJECTS: Dict[str, str] = {
    NotificationType.SELF_SCHEDULE_LINK: "Schedule your interview{% if requisition_title %} for {{ requisition_title }}{% endif %}",
    NotificationType.BOOKING_CONFIRMATION: "Interview confirmed: {{ scheduled_start_local }}",
    NotificationType.RESCHEDULE_CONFIRMATION: "Interview rescheduled: {{ scheduled_start_local }}",
    NotificationType.CANCEL_NOTICE: "Interview cancelled{% if requisition_title %}: {{ requisition_title }}{% endif %}",
    NotificationType.REMINDER_24H: "Reminder: your interview is tomorrow",
    NotificationType.REMINDER_2H: "Reminder: your interview starts in 2 hours",
    NotificationType.NUDGE_REMINDER: "Reminder: please schedule your interview",
    NotificationType.NUDGE_REMINDER_URGENT: "Action needed: schedule your interview",
    NotificationType.ESCALATION_NO_RESPONSE: "No response from {{ candidate_name }}",
    NotificationType.ESCALATION_EXPIRED: "Scheduling request expired: {{ candidate_name }}",
}


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


class NotificationRenderer:
    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        self._templates_dir = templates_dir or TEMPLATES_DIR
        self._env = Environment(
            loader=FileSystemLoader(str(self._templates_dir)),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )

    def render(self, notification_type: str, payload: Mapping[str, Any]) -> RenderedEmail:
        """Render subject, html and text bodies.

        Raises:
            KeyError: unknown notification type
            TemplateNotFound: template file missing on disk
        """
        name = TEMPLATE_NAMES[notification_type]
        context = _context(notification_type, payload)
        try:
            html = self._env.get_template(f"{name}.html").render(**context)
            text = self._env.get_template(f"{name}.txt").render(**context)
        except TemplateNotFound:
            logger.error("notifications.template_missing", extra={"template": name})
            raise
        subject = self._env.from_string(SUBJECTS[notification_type]).render(**context)
        return RenderedEmail(subject=subject.strip(), html=html.strip(), text=_tidy(text))


def _context(notification_type: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
    context: Dict[str, Any] = {
        "requisition_title": None,
        "is_resend": False,
        "is_urgent": notification_type == NotificationType.NUDGE_REMINDER_URGENT,
        "expired": notification_type == NotificationType.ESCALATION_EXPIRED,
        "reason": None,
        "conference_join_url": None,
    }
    context.update(payload)
    return context


def _tidy(text: str) -> str:
    lines = [line.rstrip() for line in text.strip().split("\n")]
    collapsed: list[str] = []
    for line in lines:
        if not line and collapsed and not collapsed[-1]:
            continue
        collapsed.append(line)
    return "\n".join(collapsed)


__all__ = ["NotificationRenderer", "RenderedEmail", "TEMPLATE_NAMES"]
