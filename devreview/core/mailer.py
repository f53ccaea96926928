"""
Outbound email transports.

- SmtpTransport: SMTP with STARTTLS (e.g. Gmail app password)
- ResendTransport: Resend HTTP API over httpx
- LogTransport: development sink, logs instead of sending

Every transport raises on failure; the caller decides what a failure means.
"""

from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage
from functools import lru_cache
from typing import Protocol

import httpx
import structlog

from devreview.core.config import Settings, get_settings

log = structlog.get_logger()


class EmailTransportError(Exception):
    pass


class EmailTransport(Protocol):
    async def send(self, to: str, subject: str, html: str) -> None: ...


class SmtpTransport:
    def __init__(self, settings: Settings):
        self._settings = settings

    def _send_sync(self, message: EmailMessage) -> None:
        s = self._settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.notify_timeout_seconds) as smtp:
            if s.smtp_starttls:
                smtp.starttls()
            if s.smtp_username:
                smtp.login(s.smtp_username, s.smtp_password)
            smtp.send_message(message)

    async def send(self, to: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = self._settings.email_sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailTransportError(f"SMTP delivery failed: {exc}") from exc


class ResendTransport:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = client

    async def send(self, to: str, subject: str, html: str) -> None:
        body = {
            "from": self._settings.email_sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._settings.resend_api_key}"}
        client = self._client or httpx.AsyncClient(timeout=self._settings.notify_timeout_seconds)
        try:
            resp = await client.post(self._settings.resend_api_url, json=body, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise EmailTransportError(f"Resend delivery failed: {exc}") from exc
        finally:
            if self._client is None:
                await client.aclose()


class LogTransport:
    async def send(self, to: str, subject: str, html: str) -> None:
        log.info("mailer.log_transport", to=to, subject=subject, length=len(html))


@lru_cache
def get_transport() -> EmailTransport:
    settings = get_settings()
    if settings.email_transport == "smtp":
        return SmtpTransport(settings)
    if settings.email_transport == "resend":
        return ResendTransport(settings)
    return LogTransport()
