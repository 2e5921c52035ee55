from __future__ import annotations

import smtplib
from datetime import datetime, timezone

import pytest

from eventpass.config import SMTPSettings
from eventpass.errors import MailDeliveryError
from eventpass.mailer import CONFIRMATION_SUBJECT, ConfirmationMailer
from eventpass.models import Registration

PNG = b"\x89PNG\r\n\x1a\nfake-image"


def _registration() -> Registration:
    return Registration(
        id=12,
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        phone="9876543210",
        year="2nd",
        branch="Computer Engineering",
        attended=False,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def _settings(**overrides) -> SMTPSettings:
    values = {"host": "smtp.example.com", "port": 2525, "username": "events@example.com", "password": "pw"}
    values.update(overrides)
    return SMTPSettings(**values)


def test_compose_builds_html_message_with_inline_qr() -> None:
    message = ConfirmationMailer(_settings()).compose(_registration(), PNG)

    assert message["Subject"] == CONFIRMATION_SUBJECT
    assert message["To"] == "ada@example.com"
    assert message["From"] == "ISTE Event Team <events@example.com>"

    html = message.get_body(preferencelist=("html",))
    assert html is not None
    assert "cid:qrcode" in html.get_content()
    assert "Ada Lovelace" in html.get_content()

    plain = message.get_body(preferencelist=("plain",))
    assert plain is not None
    assert "12" in plain.get_content()

    images = [part for part in message.walk() if part.get_content_type() == "image/png"]
    assert len(images) == 1
    assert images[0]["Content-ID"] == "<qrcode>"
    assert images[0].get_filename() == "qrcode-12.png"
    assert images[0].get_content() == PNG


def test_send_confirmation_uses_transport() -> None:
    sent = []
    mailer = ConfirmationMailer(_settings(), transport=sent.append)

    mailer.send_confirmation(_registration(), PNG)

    assert len(sent) == 1
    assert sent[0]["To"] == "ada@example.com"


def test_missing_sender_is_a_delivery_error() -> None:
    mailer = ConfirmationMailer(SMTPSettings(), transport=lambda message: None)

    with pytest.raises(MailDeliveryError):
        mailer.send_confirmation(_registration(), PNG)


def test_smtp_failures_become_delivery_errors(monkeypatch) -> None:
    def refuse(*args, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(smtplib, "SMTP", refuse)

    with pytest.raises(MailDeliveryError):
        ConfirmationMailer(_settings()).send_confirmation(_registration(), PNG)


def test_smtp_delivery_logs_in_and_sends(monkeypatch) -> None:
    calls = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            calls.append(("connect", host, port))

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            return False

        def starttls(self, context=None):
            calls.append(("starttls",))

        def login(self, username, password):
            calls.append(("login", username, password))

        def send_message(self, message):
            calls.append(("send", message["To"]))

    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)

    ConfirmationMailer(_settings()).send_confirmation(_registration(), PNG)

    assert calls == [
        ("connect", "smtp.example.com", 2525),
        ("starttls",),
        ("login", "events@example.com", "pw"),
        ("send", "ada@example.com"),
    ]
