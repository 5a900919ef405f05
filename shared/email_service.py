"""Email service — template merging and SMTP delivery with attachments.

Resolves {placeholder} tokens against a dict of values, then sends the
message over SMTP (SSL). Transport settings come from environment
variables, loaded from the repo-root .env when present:

    SMTP_HOST, SMTP_PORT, GMAIL_USER, GMAIL_APP_PASSWORD,
    SENDER_EMAIL, TO_EMAIL

Usage:
    from shared.email_service import merge_template, send_email
"""

from __future__ import annotations

import logging
import os
import re
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path

from dotenv import load_dotenv

_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
if _ENV_PATH.exists():
    load_dotenv(_ENV_PATH)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmtpSettings:
    host: str = "smtp.gmail.com"
    port: int = 465
    username: str = ""
    password: str = ""
    sender: str = ""
    recipient: str = ""

    @classmethod
    def from_env(cls) -> SmtpSettings:
        username = os.environ.get("GMAIL_USER", "")
        return cls(
            host=os.environ.get("SMTP_HOST", "smtp.gmail.com"),
            port=int(os.environ.get("SMTP_PORT", "465")),
            username=username,
            password=os.environ.get("GMAIL_APP_PASSWORD", ""),
            sender=os.environ.get("SENDER_EMAIL", "") or username,
            recipient=os.environ.get("TO_EMAIL", ""),
        )


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    maintype: str = "application"
    subtype: str = "octet-stream"


def merge_template(subject: str, body: str, values: dict) -> tuple[str, str]:
    """Replace {name} placeholders with entries from *values*.

    Lookup is exact first, then case-insensitive. Unresolved placeholders
    are left as-is.

    Returns (merged_subject, merged_body).
    """
    lowered = {str(k).lower(): v for k, v in values.items()}

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key in values and values[key] not in (None, ""):
            return str(values[key])
        val = lowered.get(key.lower())
        if val not in (None, ""):
            return str(val)
        return match.group(0)

    pattern = r"\{(\w+)\}"
    return re.sub(pattern, _replace, subject), re.sub(pattern, _replace, body)


def build_message(
    subject: str,
    body: str,
    attachments: list[Attachment],
    settings: SmtpSettings,
    to_email: str | None = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.sender
    msg["To"] = to_email or settings.recipient
    msg.set_content(body)
    for att in attachments:
        msg.add_attachment(
            att.content,
            maintype=att.maintype,
            subtype=att.subtype,
            filename=att.filename,
        )
    return msg


def send_email(
    subject: str,
    body: str,
    attachments: list[Attachment] | None = None,
    to_email: str | None = None,
    settings: SmtpSettings | None = None,
) -> dict:
    """Send a plain-text email with optional attachments over SMTP_SSL.

    Args:
        subject: email subject line
        body: email body (plain text)
        attachments: files to attach
        to_email: recipient; defaults to TO_EMAIL
        settings: transport settings; defaults to SmtpSettings.from_env()

    Returns:
        dict with "success" (bool) and "message" or "error" keys.
    """
    settings = settings or SmtpSettings.from_env()
    recipient = to_email or settings.recipient
    if not recipient:
        return {"success": False, "error": "No recipient configured (TO_EMAIL)."}
    if not settings.username or not settings.password:
        return {"success": False, "error": "SMTP credentials are not configured."}

    msg = build_message(subject, body, attachments or [], settings, to_email=recipient)
    try:
        context = ssl.create_default_context()
        with smtplib.SMTP_SSL(settings.host, settings.port, context=context) as server:
            server.login(settings.username, settings.password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("Email to %s failed", recipient)
        return {"success": False, "error": str(e)}

    logger.info("Email sent to %s (%d attachment(s))", recipient, len(attachments or []))
    return {"success": True, "message": f"Email sent to {recipient}."}
