"""Tests for shared/email_service.py — template merging and SMTP sending."""

from __future__ import annotations

import smtplib
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

import shared.email_service as email_mod
from shared.email_service import Attachment, SmtpSettings, build_message, merge_template, send_email

_SETTINGS = SmtpSettings(
    host="smtp.example.com",
    port=465,
    username="office@example.com",
    password="app-password",
    sender="office@example.com",
    recipient="backoffice@example.com",
)


# ── Template merging ─────────────────────────────────────────────────────


class TestMergeTemplate:
    def test_basic(self, submission_values):
        subject, body = merge_template(
            "Form Submission - {client} - {period}",
            "New form submission from {client} for period {period}",
            submission_values,
        )
        assert subject == "Form Submission - Acme Ltd - 2024-2025"
        assert body == "New form submission from Acme Ltd for period 2024-2025"

    def test_case_insensitive(self, submission_values):
        _, body = merge_template("", "{CLIENT}", submission_values)
        assert body == "Acme Ltd"

    def test_unresolved_placeholders_left_intact(self, submission_values):
        subject, body = merge_template("Hello {unknown}", "{client} - {missing}", submission_values)
        assert subject == "Hello {unknown}"
        assert body == "Acme Ltd - {missing}"

    def test_empty_value_left_intact(self):
        _, body = merge_template("", "Client: {client}", {"client": ""})
        assert body == "Client: {client}"

    def test_no_placeholders(self, submission_values):
        assert merge_template("Plain", "Body", submission_values) == ("Plain", "Body")


# ── Settings ─────────────────────────────────────────────────────────────


class TestSmtpSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("GMAIL_USER", "me@example.com")
        monkeypatch.setenv("GMAIL_APP_PASSWORD", "pw")
        monkeypatch.setenv("TO_EMAIL", "to@example.com")
        monkeypatch.delenv("SENDER_EMAIL", raising=False)
        monkeypatch.delenv("SMTP_HOST", raising=False)
        monkeypatch.setenv("SMTP_PORT", "2465")
        s = SmtpSettings.from_env()
        assert s.host == "smtp.gmail.com"
        assert s.port == 2465
        assert s.sender == "me@example.com"
        assert s.recipient == "to@example.com"


# ── Message building ─────────────────────────────────────────────────────


def test_build_message_with_attachment():
    msg = build_message(
        "Subject", "Body", [Attachment("docs.zip", b"PK\x03\x04", "application", "zip")], _SETTINGS
    )
    assert msg["To"] == "backoffice@example.com"
    assert msg["From"] == "office@example.com"
    [part] = list(msg.iter_attachments())
    assert part.get_filename() == "docs.zip"
    assert part.get_content_type() == "application/zip"
    assert part.get_content() == b"PK\x03\x04"


# ── Sending ──────────────────────────────────────────────────────────────


class TestSendEmail:
    def test_success(self):
        server = MagicMock()
        with patch.object(email_mod.smtplib, "SMTP_SSL") as mock_ssl:
            mock_ssl.return_value.__enter__.return_value = server
            result = send_email("S", "B", [Attachment("a.zip", b"1")], settings=_SETTINGS)
        assert result["success"] is True
        mock_ssl.assert_called_once()
        assert mock_ssl.call_args[0][:2] == ("smtp.example.com", 465)
        server.login.assert_called_once_with("office@example.com", "app-password")
        server.send_message.assert_called_once()

    def test_explicit_recipient(self):
        server = MagicMock()
        with patch.object(email_mod.smtplib, "SMTP_SSL") as mock_ssl:
            mock_ssl.return_value.__enter__.return_value = server
            send_email("S", "B", to_email="other@example.com", settings=_SETTINGS)
        sent = server.send_message.call_args[0][0]
        assert sent["To"] == "other@example.com"

    def test_smtp_error(self):
        with patch.object(email_mod.smtplib, "SMTP_SSL") as mock_ssl:
            mock_ssl.return_value.__enter__.return_value.login.side_effect = (
                smtplib.SMTPAuthenticationError(535, b"bad credentials")
            )
            result = send_email("S", "B", settings=_SETTINGS)
        assert result["success"] is False
        assert "bad credentials" in result["error"]

    def test_connection_error(self):
        with patch.object(email_mod.smtplib, "SMTP_SSL", side_effect=OSError("unreachable")):
            result = send_email("S", "B", settings=_SETTINGS)
        assert result["success"] is False
        assert "unreachable" in result["error"]

    @pytest.mark.parametrize("field", ["recipient", "username"])
    def test_missing_configuration(self, field):
        settings = replace(_SETTINGS, **{field: ""})
        with patch.object(email_mod.smtplib, "SMTP_SSL") as mock_ssl:
            result = send_email("S", "B", settings=settings)
        assert result["success"] is False
        mock_ssl.assert_not_called()
