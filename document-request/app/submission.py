"""Submission assembly and delivery for the Document Request tool.

Flattens the attached files of applicable sections into a payload, bundles
them into one zip archive laid out as ``<section>/<field>/<filename>`` and
hands the archive to the delivery callable (email by default). Delivery is
all-or-nothing: any failure is reported once and the model keeps every file
so the client can resubmit.
"""

from __future__ import annotations

import io
import logging
import sys as _sys
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable

from app.errors import DeliveryFailed, FormValidationError
from app.form_model import AttachedFile, FormModel
from app.options import FormOptions

_sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))
from shared.email_service import Attachment, SmtpSettings, merge_template, send_email

logger = logging.getLogger(__name__)

REMARKS_FILENAME = "remarks.txt"


@dataclass(frozen=True)
class PayloadEntry:
    section_key: str
    field_key: str
    file: AttachedFile

    @property
    def path(self) -> str:
        return f"{self.section_key}/{self.field_key}"

    @property
    def archive_path(self) -> str:
        filename = PurePosixPath(self.file.name.replace("\\", "/")).name or "document"
        return f"{self.path}/{filename}"


@dataclass
class SubmissionPayload:
    client: str
    period: str
    entries: list[PayloadEntry] = field(default_factory=list)
    remarks: dict[str, str] = field(default_factory=dict)

    @property
    def archive_name(self) -> str:
        return f"{self.client}-{self.period}-documents.zip"

    def paths(self) -> list[str]:
        return [e.archive_path for e in self.entries]


@dataclass
class SubmissionResult:
    success: bool
    error: DeliveryFailed | None = None


Deliver = Callable[[SubmissionPayload], dict]


def assemble(model: FormModel) -> SubmissionPayload:
    """Collect files (and remarks) from applicable sections, in schema order."""
    payload = SubmissionPayload(client=model.client, period=model.period)
    for section in model.schema:
        state = model.sections.get(section.key)
        if state is None or not state.is_applicable:
            continue
        for f in section.fields:
            attached = state.files.get(f.key)
            if attached is not None:
                payload.entries.append(PayloadEntry(section.key, f.key, attached))
        if state.remark.strip():
            payload.remarks[section.key] = state.remark.strip()
    return payload


def render_remarks(payload: SubmissionPayload) -> str:
    return "\n".join(f"[{key}]\n{text}\n" for key, text in payload.remarks.items())


def build_archive(payload: SubmissionPayload) -> bytes:
    """Zip every entry under its ``section/field/filename`` path."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for entry in payload.entries:
            zf.writestr(entry.archive_path, entry.file.content)
        if payload.remarks:
            zf.writestr(REMARKS_FILENAME, render_remarks(payload))
    return buf.getvalue()


def email_delivery(options: FormOptions | None = None, settings: SmtpSettings | None = None) -> Deliver:
    """Delivery callable that mails the archive to the back-office address."""
    options = options or FormOptions()

    def _deliver(payload: SubmissionPayload) -> dict:
        archive = build_archive(payload)
        subject, body = merge_template(
            options.email_subject,
            options.email_body,
            {"client": payload.client, "period": payload.period},
        )
        if payload.remarks:
            body = f"{body}\n\nRemarks:\n{render_remarks(payload)}"
        return send_email(
            subject,
            body,
            attachments=[Attachment(payload.archive_name, archive, "application", "zip")],
            settings=settings,
        )

    return _deliver


class SubmissionAssembler:
    """Builds payloads and sends them, refusing a second send while one is running."""

    def __init__(self, deliver: Deliver | None = None, options: FormOptions | None = None) -> None:
        self.options = options or FormOptions()
        self.deliver = deliver or email_delivery(self.options)
        self.is_submitting = False

    def assemble(self, model: FormModel) -> SubmissionPayload:
        return assemble(model)

    def submit(self, payload: SubmissionPayload) -> SubmissionResult:
        if self.is_submitting:
            return SubmissionResult(False, DeliveryFailed("A submission is already in progress."))

        self.is_submitting = True
        logger.info(
            "Submitting %d file(s) for %s / %s", len(payload.entries), payload.client, payload.period
        )
        try:
            outcome = self.deliver(payload)
        except Exception:
            logger.exception("Delivery raised for %s / %s", payload.client, payload.period)
            return SubmissionResult(False, DeliveryFailed())
        finally:
            self.is_submitting = False

        if not outcome.get("success"):
            logger.error("Delivery failed for %s / %s: %s", payload.client, payload.period, outcome.get("error"))
            return SubmissionResult(False, DeliveryFailed())
        return SubmissionResult(True)

    def submit_model(self, model: FormModel) -> SubmissionResult:
        """Assemble and submit *model*; the model itself is never modified.

        Raises:
            FormValidationError: the model is not ready to submit.
        """
        if not model.is_ready_to_submit():
            raise FormValidationError(
                "form",
                "Please fill in all required fields and complete all applicable "
                "sections before submitting",
            )
        return self.submit(self.assemble(model))
