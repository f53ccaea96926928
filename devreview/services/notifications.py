"""
Notification dispatcher: one email to the developer per decision.

Runs after the decision is committed and never rolls it back. A failure is
terminal for the attempt and carries enough context (submission id,
decision, feedback) for the evaluator to resend without deciding again.
"""

from __future__ import annotations

import asyncio
import html
from typing import Optional, Union

import structlog

from devreview.core.config import Settings, get_settings
from devreview.core.errors import NotificationFailed
from devreview.core.mailer import EmailTransport, get_transport
from devreview.models.submission import Submission
from devreview_shared.schemas.common import Decision

log = structlog.get_logger()

ACCEPTED_COLOR = "#10B981"
REJECTED_COLOR = "#EF4444"


def render_decision_email(decision: Decision, feedback: str, full_name: str) -> tuple[str, str]:
    """Return (subject, html_body)."""
    accepted = decision == Decision.ACCEPTED
    subject = "Welcome to the Team!" if accepted else "Your MoonDev Application"
    heading = "Congratulations! 🎉" if accepted else "Thank You for Your Application"
    closing = (
        "<p>We are excited to welcome you to our team!</p>"
        if accepted
        else "<p>Thank you for your interest in MoonDev.</p>"
    )
    body = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h1 style="color: {ACCEPTED_COLOR if accepted else REJECTED_COLOR};">{heading}</h1>'
        f"<p>Dear {html.escape(full_name)},</p>"
        f"<p>{html.escape(feedback)}</p>"
        f"{closing}"
        "<p>Best regards,<br>MoonDev Team</p>"
        "</div>"
    )
    return subject, body


class NotificationDispatcher:
    def __init__(
        self,
        transport: Optional[EmailTransport] = None,
        settings: Optional[Settings] = None,
    ):
        self._transport = transport or get_transport()
        self._settings = settings or get_settings()

    async def notify(
        self,
        email: str,
        decision: Union[Decision, str],
        feedback: str,
        full_name: str,
        *,
        submission_id: Optional[str] = None,
    ) -> None:
        decision = Decision(decision)
        subject, body = render_decision_email(decision, feedback, full_name)
        context = {
            "submission_id": submission_id,
            "decision": decision.value,
            "feedback": feedback,
        }
        try:
            await asyncio.wait_for(
                self._transport.send(email, subject, body),
                timeout=self._settings.notify_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            log.warning("notify.timeout", **context)
            raise NotificationFailed("Sending the notification timed out", retryable=True, **context) from exc
        except Exception as exc:
            log.warning("notify.failed", error=str(exc), **context)
            raise NotificationFailed(f"Email sending failed: {exc}", retryable=True, **context) from exc

        log.info("notify.sent", to=email, **context)

    async def notify_submission(
        self,
        submission: Submission,
        decision: Optional[Union[Decision, str]] = None,
        feedback: Optional[str] = None,
    ) -> None:
        """Notify from a stored row; explicit values override the stored ones."""
        await self.notify(
            submission.email,
            decision or submission.status,
            feedback if feedback is not None else (submission.feedback or ""),
            submission.full_name,
            submission_id=str(submission.id),
        )

    async def notify_in_background(self, submission: Submission) -> None:
        """Background-task entry point: failures are logged, never raised."""
        try:
            await self.notify_submission(submission)
        except NotificationFailed as exc:
            log.error("notify.background_failed", submission_id=str(submission.id), error=exc.message)
