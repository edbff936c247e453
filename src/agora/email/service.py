"""
Out-of-band delivery of activation messages.

``create_notifier`` picks the transport from ``email_provider``: SMTP by
default, or the Resend HTTP API. Every notifier raises NotificationError
when a message is not accepted, and the invitation workflow compensates on it.
"""

from __future__ import annotations

import ssl
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib
import httpx
import structlog

from agora.config import Settings, get_settings
from agora.errors import NotificationError

logger = structlog.get_logger()

RESEND_URL = "https://api.resend.com/emails"


class Notifier(Protocol):
    """Anything that can deliver a message out-of-band."""

    async def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> None: ...


def _sender(settings: Settings) -> str:
    return f"{settings.email_from_name} <{settings.email_from_address}>"


class SMTPNotifier:
    """Delivers through an SMTP relay with aiosmtplib, upgrading with STARTTLS when configured."""

    provider = "smtp"

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def build_message(self, to: str, subject: str, body: str, html_body: str | None = None) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = _sender(self._settings)
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")
        return msg

    async def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> None:
        s = self._settings
        try:
            await aiosmtplib.send(
                self.build_message(to, subject, body, html_body),
                hostname=s.smtp_host,
                port=s.smtp_port,
                username=s.smtp_username or None,
                password=s.smtp_password or None,
                start_tls=s.smtp_use_tls,
                tls_context=ssl.create_default_context() if s.smtp_use_tls else None,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.warning("email_send_failed", provider=self.provider, error_type=type(exc).__name__)
            raise NotificationError(f"smtp delivery failed: {type(exc).__name__}") from exc
        logger.info("email_sent", provider=self.provider, subject=subject)


class ResendNotifier:
    """Delivers through the Resend HTTP API."""

    provider = "resend"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    async def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> None:
        payload: dict[str, object] = {
            "from": _sender(self._settings),
            "to": [to],
            "subject": subject,
            "text": body,
        }
        if html_body:
            payload["html"] = html_body

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                response = await client.post(
                    RESEND_URL,
                    headers={"Authorization": f"Bearer {self._settings.resend_api_key}"},
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("email_send_failed", provider=self.provider, error_type=type(exc).__name__)
            raise NotificationError(f"resend delivery failed: {type(exc).__name__}") from exc
        logger.info("email_sent", provider=self.provider, subject=subject)


def create_notifier(settings: Settings | None = None) -> Notifier:
    """Build the notifier named by ``email_provider``. Raises ValueError for an unknown name."""
    settings = settings or get_settings()
    name = settings.email_provider.lower()
    if name == "smtp":
        return SMTPNotifier(settings)
    if name == "resend":
        return ResendNotifier(settings)
    msg = f"Unsupported email provider: {settings.email_provider}"
    raise ValueError(msg)
