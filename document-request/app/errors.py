"""Error types for the Document Request tool.

Only SchemaUnavailable and DeliveryFailed are meant to reach the user as
blocking failures; the rest are local and recoverable.
"""

from __future__ import annotations


class DocumentRequestError(Exception):
    """Base class for all document-request errors."""


class SchemaUnavailable(DocumentRequestError):
    """The section/field table could not be fetched or parsed."""

    def __init__(self, sheet_id: str, reason: str) -> None:
        self.sheet_id = sheet_id
        self.reason = reason
        super().__init__(f"Form configuration unavailable for sheet {sheet_id!r}: {reason}")


class FormValidationError(DocumentRequestError):
    """Inline validation problem with the client or period field."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class FileRejected(DocumentRequestError):
    """A file was refused before being attached (too large or wrong type)."""

    TOO_LARGE = "file-too-large"
    INVALID_TYPE = "file-invalid-type"

    def __init__(self, reason: str, message: str, filename: str = "") -> None:
        self.reason = reason
        self.message = message
        self.filename = filename
        super().__init__(message)


class UploadFailed(DocumentRequestError):
    """The attach operation for a single field did not complete."""

    def __init__(self, section_key: str, field_key: str, message: str = "") -> None:
        self.section_key = section_key
        self.field_key = field_key
        self.message = message or "Failed to upload file. Please try again."
        super().__init__(f"{section_key}/{field_key}: {self.message}")


class DeliveryFailed(DocumentRequestError):
    """The bundle-and-email round trip failed as a whole."""

    def __init__(self, message: str = "Failed to submit form. Please try again.") -> None:
        self.message = message
        super().__init__(message)
