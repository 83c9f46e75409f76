"""Tests for the listing digest and error report emails."""

from __future__ import annotations

from roomwatch.config import Settings
from roomwatch.errors import ErrorEntry
from roomwatch.mailer import ERRORS_SUBJECT, LISTINGS_SUBJECT, Mailer, SmtpTransport


def _entry(message: str) -> ErrorEntry:
    return ErrorEntry(
        timestamp="2026-10-19T08:30:00+00:00",
        path="/Kamernet.Crawler",
        method="SYSTEM",
        message=message,
        stack="Traceback (most recent call last):\n  ...",
    )


def test_empty_digest_sends_nothing(digest, errors, fakes):
    transport = fakes.Transport()

    assert Mailer(transport, digest, errors).send_notification_digest() is None
    assert transport.sent == []


def test_successful_send_clears_digest(digest, errors, fakes):
    transport = fakes.Transport()
    digest.insert("<div>Canal flat</div>", 80)

    message_id = Mailer(transport, digest, errors).send_notification_digest()

    assert message_id == "<msg-1@test>"
    [(subject, html)] = transport.sent
    assert subject == LISTINGS_SUBJECT
    assert "<div>Canal flat</div>" in html
    assert digest.is_empty()


def test_failed_send_keeps_digest_and_buffers_error(digest, errors, fakes):
    digest.insert("<div>Canal flat</div>", 80)

    assert Mailer(fakes.Transport(fail=True), digest, errors).send_notification_digest() is None

    assert [entry.html for entry in digest.entries()] == ["<div>Canal flat</div>"]
    [entry] = errors.flush()
    assert entry.path == "/Mailer"
    assert "smtp unavailable" in entry.message


def test_digest_is_kept_without_transport(digest, errors):
    digest.insert("<div>Canal flat</div>", 80)

    assert Mailer(None, digest, errors).send_notification_digest() is None
    assert not digest.is_empty()


def test_error_digest_is_skipped_when_disabled(digest, errors, fakes):
    transport = fakes.Transport()
    errors.add(_entry("boom"))

    assert Mailer(transport, digest, errors).send_error_digest() is None

    assert transport.sent == []
    assert len(errors) == 1


def test_error_digest_is_skipped_when_nothing_pending(digest, errors, fakes):
    transport = fakes.Transport()

    assert Mailer(transport, digest, errors, error_digest_enabled=True).send_error_digest() is None
    assert transport.sent == []


def test_error_digest_flushes_and_escapes_entries(digest, errors, fakes):
    transport = fakes.Transport()
    errors.add(_entry("first <script>alert(1)</script>"))
    errors.add(_entry("second"))
    mailer = Mailer(transport, digest, errors, error_digest_enabled=True)

    assert mailer.send_error_digest() == "<msg-1@test>"
    assert mailer.send_error_digest() is None

    [(subject, html)] = transport.sent
    assert subject == ERRORS_SUBJECT
    assert "first &lt;script&gt;alert(1)&lt;/script&gt;" in html
    assert "second" in html
    assert "/Kamernet.Crawler" in html
    assert len(errors) == 0


def test_failed_error_digest_buffers_only_the_failure(digest, errors, fakes):
    errors.add(_entry("one"))
    errors.add(_entry("two"))

    Mailer(fakes.Transport(fail=True), digest, errors, error_digest_enabled=True).send_error_digest()

    [entry] = errors.flush()
    assert "Error sending error digest" in entry.message


def test_transport_from_settings_requires_host_and_recipient():
    assert SmtpTransport.from_settings(Settings(email_host="smtp.example.com")) is None

    transport = SmtpTransport.from_settings(
        Settings(
            email_host="smtp.example.com",
            email_user="bot@example.com",
            email_pass="pw",
            subscriber_email="me@example.com",
        )
    )

    assert transport.sender == "bot@example.com"
    assert transport.recipient == "me@example.com"
    assert transport.port == 587


def test_smtp_transport_uses_starttls_and_login(monkeypatch):
    sessions = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            self.host, self.port = host, port
            self.calls = []
            self.messages = []
            sessions.append(self)

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            self.calls.append("quit")

        def ehlo(self):
            self.calls.append("ehlo")

        def has_extn(self, name):
            return name == "starttls"

        def starttls(self):
            self.calls.append("starttls")

        def login(self, user, password):
            self.calls.append(("login", user, password))

        def send_message(self, msg):
            self.messages.append(msg)

    monkeypatch.setattr("roomwatch.mailer.smtplib.SMTP", FakeSMTP)
    transport = SmtpTransport("smtp.example.com", 587, "bot", "pw", "bot@example.com", "me@example.com")

    message_id = transport.send(LISTINGS_SUBJECT, "<p>Hello</p>")

    [session] = sessions
    assert session.calls == ["ehlo", "starttls", "ehlo", ("login", "bot", "pw"), "quit"]
    [msg] = session.messages
    assert msg["Subject"] == LISTINGS_SUBJECT
    assert msg["To"] == "me@example.com"
    assert msg.get_content_type() == "multipart/alternative"
    assert msg["Message-ID"] == message_id
    assert message_id.startswith("<")
