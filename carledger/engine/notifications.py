"""Batch job that emails upcoming and overdue reminders.

One run selects every reminder that needs a notification, sends one message
per reminder and records the ``email_sent`` flag for each successful send.
A failed send is logged and left for the next run; it never stops the batch.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .entities import Reminder
from .logging import setup_logger
from .mail import MailDeliveryError, MailTransport
from .metrics import EMAIL_WINDOW_DAYS, ReminderClassification, ReminderStatus, classify_reminder

LOG = setup_logger(__name__)

UPCOMING_ICON = "⏰"
OVERDUE_ICON = "🚨"

__all__ = [
    "NotificationRun",
    "build_subject",
    "build_template_data",
    "describe_status",
    "run_notification_batch",
    "select_for_notification",
]


@dataclass
class NotificationRun:
    """Counters for one notification batch.

    ``upcoming`` and ``overdue`` count the reminders considered, whether or not
    their message went out; ``sent`` and ``failed`` count delivery outcomes.
    """

    sent: int = 0
    upcoming: int = 0
    overdue: int = 0
    failed: int = 0
    failed_ids: list[int | None] = field(default_factory=list)

    @property
    def considered(self) -> int:
        return self.upcoming + self.overdue


def describe_status(days_until_due: int) -> str:
    if days_until_due < 0:
        return f"overdue by {abs(days_until_due)} days"
    return f"due in {days_until_due} days"


def build_subject(reminder: Reminder, classification: ReminderClassification) -> str:
    if classification.status is ReminderStatus.OVERDUE:
        return f"{OVERDUE_ICON} Overdue reminder: {reminder.title}"
    return f"{UPCOMING_ICON} Upcoming reminder: {reminder.title}"


def build_template_data(reminder: Reminder, classification: ReminderClassification) -> dict[str, Any]:
    return {
        "reminder_id": reminder.id,
        "title": reminder.title,
        "reminder_type": reminder.type,
        "description": reminder.description,
        "due_date": reminder.due_date.isoformat(),
        "type": classification.status.value,
        "status": describe_status(classification.days_until_due),
        "days_until_due": classification.days_until_due,
        "mileage_interval": reminder.mileage_interval,
        "current_mileage": reminder.current_mileage,
    }


def select_for_notification(
    reminders: Iterable[Reminder],
    now: datetime,
    window_days: int = EMAIL_WINDOW_DAYS,
) -> list[tuple[Reminder, ReminderClassification]]:
    """Reminders not yet emailed that are upcoming or overdue, soonest due first."""

    selected = []
    for reminder in reminders:
        if reminder.email_sent:
            continue
        classification = classify_reminder(reminder, now, window_days)
        if classification.needs_notification:
            selected.append((reminder, classification))
    selected.sort(key=lambda pair: (pair[0].due_date, pair[0].id or 0))
    return selected


def run_notification_batch(
    reminders: Iterable[Reminder],
    transport: MailTransport,
    recipient: str,
    mark_sent: Callable[[Reminder], Any],
    now: datetime,
    window_days: int = EMAIL_WINDOW_DAYS,
) -> NotificationRun:
    """Send one email per eligible reminder and persist the sent flag.

    Args:
      reminders: Candidate reminders; completed or already emailed ones are skipped.
      transport: Mail transport used for delivery.
      recipient: Address receiving every notification.
      mark_sent: Callback persisting ``email_sent = true`` after a successful send.
      now: Reference time for the classification.
      window_days: Look-ahead window for upcoming reminders.

    Returns:
      Counters describing the run.
    """

    run = NotificationRun()
    for reminder, classification in select_for_notification(reminders, now, window_days):
        if classification.status is ReminderStatus.OVERDUE:
            run.overdue += 1
        else:
            run.upcoming += 1

        subject = build_subject(reminder, classification)
        data = build_template_data(reminder, classification)
        extra = {
            "reminder_id": reminder.id,
            "notification_type": classification.status.value,
            "days_until_due": classification.days_until_due,
        }
        try:
            transport.send(recipient, subject, data)
        except MailDeliveryError as exc:
            run.failed += 1
            run.failed_ids.append(reminder.id)
            LOG.error("Failed to send email for %s: %s", reminder.title, exc, extra=extra)
            continue
        except Exception:
            # A broken transport fails this reminder only; the rest of the batch still runs.
            run.failed += 1
            run.failed_ids.append(reminder.id)
            LOG.exception("Unexpected error sending email for %s", reminder.title, extra=extra)
            continue

        run.sent += 1
        if not mark_sent(reminder):
            LOG.warning("Reminder %s was already flagged as sent by another run", reminder.id, extra=extra)
        LOG.info("Email sent for: %s (%s)", reminder.title, data["status"], extra=extra)

    LOG.info(
        "Notification run finished: sent=%d upcoming=%d overdue=%d failed=%d",
        run.sent,
        run.upcoming,
        run.overdue,
        run.failed,
    )
    return run
