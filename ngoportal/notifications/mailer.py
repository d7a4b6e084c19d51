"""Outbound email over SMTP, including SMS delivery through carrier email gateways."""

from __future__ import annotations

import asyncio
import html
import re
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import TYPE_CHECKING, Any

import structlog

from ngoportal.exceptions import ServiceUnavailable, UpstreamError, ValidationFailed
from ngoportal.utils.sanitize import clean_text

if TYPE_CHECKING:
    from ngoportal.config.settings import Settings

logger = structlog.get_logger(__name__)

CARRIER_GATEWAYS: dict[str, str] = {
    "att": "@txt.att.net",
    "tmobile": "@tmomail.net",
    "verizon": "@vtext.com",
    "sprint": "@messaging.sprintpcs.com",
    "googlefi": "@msg.fi.google.com",
    "uscellular": "@email.uscc.net",
    "cricket": "@sms.cricketwireless.net",
    "boost": "@smsmyboostmobile.com",
    "metropcs": "@mymetropcs.com",
}

DOCUMENT_TYPE_NAMES = {
    "w4": "W-4 Employee Withholding Certificate",
    "contract": "Performance Contract",
    "mediaRelease": "Media Release Agreement",
}

DEFAULT_PROJECT_NAME = "BEAM Orchestra"


@dataclass(frozen=True, slots=True)
class SmtpConfig:
    host: str
    port: int
    user: str | None
    password: str | None
    sender: str | None
    timeout: float = 20.0

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user and self.password)

    @classmethod
    def from_settings(cls, settings: Settings) -> SmtpConfig:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_sender or settings.smtp_user,
            timeout=settings.http_timeout_seconds,
        )


def sms_address(phone: str, carrier: str) -> str:
    """``{10 digits}{gateway}`` or ValidationFailed."""
    digits = re.sub(r"\D", "", phone)
    if len(digits) != 10:
        raise ValidationFailed("Phone number must be 10 digits", reason="invalid_phone")
    gateway = CARRIER_GATEWAYS.get(carrier.lower())
    if gateway is None:
        raise ValidationFailed(
            f"Unknown carrier: {carrier}. Supported: {', '.join(CARRIER_GATEWAYS)}",
            reason="unknown_carrier",
        )
    return f"{digits}{gateway}"


class Mailer:
    def __init__(self, config: SmtpConfig) -> None:
        self._config = config

    @property
    def configured(self) -> bool:
        return self._config.configured

    def _deliver(self, message: EmailMessage) -> None:
        config = self._config
        with smtplib.SMTP(config.host, config.port, timeout=config.timeout) as server:
            server.starttls()
            if config.user and config.password:
                server.login(config.user, config.password)
            server.send_message(message)

    async def send(self, to: str, subject: str, text: str, html_body: str | None = None) -> None:
        if not self.configured:
            raise ServiceUnavailable(
                "Email service not configured", detail="SMTP_USER and SMTP_PASSWORD are required"
            )
        message = EmailMessage()
        message["From"] = self._config.sender or ""
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        if html_body:
            message.add_alternative(html_body, subtype="html")
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email_send_failed", to=to, error=str(exc))
            raise UpstreamError("Failed to send email", detail=str(exc)) from exc
        logger.info("email_sent", to=to, subject=subject)


class NotificationService:
    def __init__(self, mailer: Mailer, *, recipients: list[str]) -> None:
        self._mailer = mailer
        self._recipients = recipients

    async def send_text_invite(self, payload: dict[str, Any]) -> dict[str, Any]:
        phone = clean_text(payload.get("phone"))
        carrier = clean_text(payload.get("carrier"))
        link = clean_text(payload.get("link"))
        if not phone or not carrier or not link:
            raise ValidationFailed("Phone, carrier, and link are required")
        recipient = sms_address(phone, carrier)

        project = clean_text(payload.get("projectName")) or DEFAULT_PROJECT_NAME
        musician = clean_text(payload.get("musicianName"))
        greeting = f"Hi {musician}, " if musician else ""
        text = f"{greeting}You're invited to perform with {project}! Confirm here: {link}"
        await self._mailer.send(
            recipient, f"{project} Invitation", text, f"<p>{html.escape(text)}</p>"
        )
        digits = recipient.split("@", 1)[0]
        return {
            "success": True,
            "message": f"SMS invite sent to {digits} via {carrier}",
            "recipient": recipient,
        }

    async def notify_document(self, payload: dict[str, Any]) -> dict[str, Any]:
        document_type = clean_text(payload.get("documentType"))
        musician_name = clean_text(payload.get("musicianName"))
        musician_email = clean_text(payload.get("musicianEmail"))
        download_url = clean_text(payload.get("downloadUrl"))
        if not document_type or not musician_name or not musician_email or not download_url:
            raise ValidationFailed("Missing required fields")
        if not self._recipients:
            raise ServiceUnavailable(
                "Email service not configured", detail="NOTIFY_RECIPIENTS is empty"
            )

        label = DOCUMENT_TYPE_NAMES.get(document_type, document_type)
        title = DOCUMENT_TYPE_NAMES.get(document_type, "Document")
        subject = f"{title} Submitted - {musician_name}"
        text = (
            f"Document Type: {label}\n"
            f"Musician Name: {musician_name}\n"
            f"Musician Email: {musician_email}\n\n"
            f"A new {label} has been submitted and is ready for review.\n"
            f"View document: {download_url}\n"
        )
        html_body = (
            "<h2>New Document Submission</h2>"
            f"<p><strong>Document Type:</strong> {html.escape(label)}</p>"
            f"<p><strong>Musician Name:</strong> {html.escape(musician_name)}</p>"
            f"<p><strong>Musician Email:</strong> {html.escape(musician_email)}</p>"
            f'<p><a href="{html.escape(download_url, quote=True)}">View Document</a></p>'
        )
        await asyncio.gather(
            *(self._mailer.send(r, subject, text, html_body) for r in self._recipients)
        )
        return {"success": True, "message": "Email notifications sent successfully"}
