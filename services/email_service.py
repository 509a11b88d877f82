"""
Email transport for auction notifications.

Sends plain-text messages over SMTP. Template rendering is not part of this
subsystem: the message body lists the template data so the recipient still gets
every detail, and the template name travels in an `X-Template` header for
downstream tooling.

Configuration (environment, loaded from the project .env):
- SMTP_HOST, SMTP_PORT (default 465)
- SMTP_USER, SMTP_PASS
- SMTP_FROM (defaults to SMTP_USER)
- SMTP_USE_SSL ("true" by default; "false" uses STARTTLS)
"""

from __future__ import annotations

import logging
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from dotenv import load_dotenv

from domain.errors import DependencyError

load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    def send_email(
        self,
        *,
        to: str,
        subject: str,
        template_name: str,
        template_data: Mapping[str, Any],
    ) -> None: ...


@dataclass(frozen=True, slots=True)
class SmtpSettings:
    host: str
    port: int
    username: Optional[str]
    password: Optional[str]
    sender: str
    use_ssl: bool = True

    @staticmethod
    def from_env() -> "SmtpSettings":
        host = os.getenv("SMTP_HOST")
        if not host:
            raise RuntimeError(
                "Missing environment variable: SMTP_HOST. "
                "Set SMTP_HOST to your outgoing mail server."
            )
        username = os.getenv("SMTP_USER")
        sender = os.getenv("SMTP_FROM") or username
        if not sender:
            raise RuntimeError("Set SMTP_FROM (or SMTP_USER) to the sender address.")
        return SmtpSettings(
            host=host,
            port=int(os.getenv("SMTP_PORT", "465")),
            username=username,
            password=os.getenv("SMTP_PASS"),
            sender=sender,
            use_ssl=os.getenv("SMTP_USE_SSL", "true").lower() != "false",
        )


def _humanize(key: str) -> str:
    return key.replace("_", " ").capitalize()


def build_message(
    *,
    sender: str,
    to: str,
    subject: str,
    template_name: str,
    template_data: Mapping[str, Any],
) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to
    message["Subject"] = subject
    message["X-Template"] = template_name
    lines = [f"{_humanize(key)}: {value}" for key, value in template_data.items()]
    message.set_content("\n".join([subject, ""] + lines) + "\n")
    return message


class SmtpEmailSender:
    """EmailSender that delivers through an SMTP server."""

    def __init__(self, settings: SmtpSettings, timeout: float = 10.0) -> None:
        self._settings = settings
        self._timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        if self._settings.use_ssl:
            return smtplib.SMTP_SSL(self._settings.host, self._settings.port, timeout=self._timeout)
        server = smtplib.SMTP(self._settings.host, self._settings.port, timeout=self._timeout)
        server.starttls()
        return server

    def send_email(
        self,
        *,
        to: str,
        subject: str,
        template_name: str,
        template_data: Mapping[str, Any],
    ) -> None:
        message = build_message(
            sender=self._settings.sender,
            to=to,
            subject=subject,
            template_name=template_name,
            template_data=template_data,
        )
        try:
            with self._connect() as server:
                if self._settings.username and self._settings.password:
                    server.login(self._settings.username, self._settings.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise DependencyError(f"Failed to send '{template_name}' email: {e}") from e

        logger.info(
            "Email sent",
            extra={"template_name": template_name, "subject": subject},
        )


class LoggingEmailSender:
    """EmailSender used when SMTP is not configured: records the message in the log only."""

    def send_email(
        self,
        *,
        to: str,
        subject: str,
        template_name: str,
        template_data: Mapping[str, Any],
    ) -> None:
        logger.warning(
            "SMTP not configured, email not delivered",
            extra={"template_name": template_name, "subject": subject, "recipient": to},
        )


def email_sender_from_env() -> EmailSender:
    if not os.getenv("SMTP_HOST"):
        logger.warning("SMTP_HOST is not set; outgoing emails will only be logged")
        return LoggingEmailSender()
    return SmtpEmailSender(SmtpSettings.from_env())


__all__ = [
    "EmailSender",
    "LoggingEmailSender",
    "SmtpEmailSender",
    "SmtpSettings",
    "build_message",
    "email_sender_from_env",
]
