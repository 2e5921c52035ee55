"""Outbound confirmation email delivery over SMTP."""
from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from pathlib import Path
from typing import Callable, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import SMTPSettings
from .errors import MailDeliveryError
from .models import Registration

logger = logging.getLogger("eventpass.mailer")

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

CONFIRMATION_SUBJECT = "\U0001F389 Event Registration Confirmed - ISTE"
QR_CONTENT_ID = "qrcode"

Transport = Callable[[EmailMessage], None]


def _build_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
    )


class ConfirmationMailer:
    """Render and deliver the registration confirmation with its QR pass."""

    def __init__(self, settings: SMTPSettings, *, transport: Optional[Transport] = None) -> None:
        self._settings = settings
        self._transport = transport or self._deliver_via_smtp
        self._templates = _build_environment()

    def compose(self, registration: Registration, qr_png: bytes) -> EmailMessage:
        sender = self._settings.from_address
        if not sender:
            raise MailDeliveryError("Mail sender is not configured")

        context = {
            "first_name": registration.first_name,
            "last_name": registration.last_name,
            "registration_id": registration.id,
            "qr_cid": QR_CONTENT_ID,
        }

        message = EmailMessage()
        message["Subject"] = CONFIRMATION_SUBJECT
        message["From"] = formataddr((self._settings.sender_name, sender))
        message["To"] = registration.email
        message["Message-ID"] = make_msgid(domain=sender.rpartition("@")[2] or None)
        message.set_content(self._templates.get_template("confirmation_email.txt").render(**context))
        message.add_alternative(
            self._templates.get_template("confirmation_email.html").render(**context),
            subtype="html",
        )

        html_part = message.get_payload()[1]
        html_part.add_related(
            qr_png,
            maintype="image",
            subtype="png",
            cid=f"<{QR_CONTENT_ID}>",
            filename=f"qrcode-{registration.id}.png",
        )
        return message

    def send_confirmation(self, registration: Registration, qr_png: bytes) -> None:
        message = self.compose(registration, qr_png)
        self._transport(message)
        logger.info("Confirmation email sent to %s for registration #%s", registration.email, registration.id)

    def _deliver_via_smtp(self, message: EmailMessage) -> None:
        settings = self._settings
        try:
            with smtplib.SMTP(settings.host, settings.port, timeout=30) as server:
                if settings.starttls:
                    server.starttls(context=ssl.create_default_context())
                if settings.username:
                    server.login(settings.username, settings.password or "")
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s failed: %s", message["To"], exc)
            raise MailDeliveryError(f"Failed to send confirmation email: {exc}") from exc


__all__ = ["CONFIRMATION_SUBJECT", "ConfirmationMailer", "QR_CONTENT_ID", "TEMPLATE_DIR"]
