"""
Activity and notification dispatcher.

Every auction state change is followed by side effects: an activity-log entry
and, for registrations, an email to the buyer. These run only after the state
change has been persisted and are best-effort:
- each delivery is attempted up to `max_attempts` times
- a delivery that still fails is logged and reported as False
- no failure is ever raised to the caller, so an email or audit outage never
  blocks or reverses a registration, approval or rejection
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from domain.activity import ActivityEntry
from repositories.activity_log_repository import ActivityLogRepository
from services.email_service import EmailSender

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(
        self,
        activity_log: ActivityLogRepository,
        email_sender: EmailSender,
        max_attempts: int = 2,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._activity_log = activity_log
        self._email_sender = email_sender
        self._max_attempts = max_attempts

    def _deliver(self, kind: str, deliver: Callable[[], None], context: Mapping[str, Any]) -> bool:
        for attempt in range(1, self._max_attempts + 1):
            try:
                deliver()
                return True
            except Exception:
                if attempt < self._max_attempts:
                    logger.warning(
                        f"{kind} delivery failed, retrying",
                        extra={"attempt": attempt, **context},
                    )
                    continue
                logger.exception(
                    f"{kind} delivery failed after {attempt} attempts",
                    extra={"attempt": attempt, **context},
                )
        return False

    def log_activity(self, entry: ActivityEntry) -> bool:
        return self._deliver(
            "Activity log",
            lambda: self._activity_log.append(entry),
            {"action": entry.action.value, "resource_id": entry.resource_id},
        )

    def send_email(
        self,
        *,
        to: str,
        subject: str,
        template_name: str,
        template_data: Mapping[str, Any],
    ) -> bool:
        return self._deliver(
            "Email",
            lambda: self._email_sender.send_email(
                to=to,
                subject=subject,
                template_name=template_name,
                template_data=template_data,
            ),
            {"template_name": template_name},
        )


__all__ = ["NotificationDispatcher"]
