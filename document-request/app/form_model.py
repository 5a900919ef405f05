"""In-memory state of one document-request submission.

The model holds the client name, the reporting period and one SectionState
per schema section. Every mutation goes through FormModel so the completion
tracker is updated before the next read. Keys that are not in the schema
are ignored, never added.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable

from app.completion import SectionCompletionTracker
from app.errors import FileRejected, FormValidationError, UploadFailed
from app.options import FormOptions
from app.periods import PERIOD_FORMAT_MESSAGE, Clock, SystemClock, default_period, is_valid_period
from app.sections import FormSchema

if TYPE_CHECKING:
    from app.url_state import UrlDefaults

MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
ACCEPTED_MIME_TYPES = ("image/png", "image/jpeg", "image/gif", "application/pdf")


@dataclass
class AttachedFile:
    """An uploaded document held in memory until submission."""

    name: str
    content: bytes = field(default=b"", repr=False)
    mime_type: str = "application/pdf"

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def validate_file(file: AttachedFile) -> None:
    """Check size and type before a file may be attached.

    Raises:
        FileRejected: with reason ``file-too-large`` or ``file-invalid-type``.
    """
    if file.size_bytes > MAX_FILE_SIZE:
        raise FileRejected(
            FileRejected.TOO_LARGE,
            "File is too large. Maximum size is 5MB",
            file.name,
        )
    if file.mime_type not in ACCEPTED_MIME_TYPES:
        raise FileRejected(
            FileRejected.INVALID_TYPE,
            "File type not supported. Please upload an image or PDF",
            file.name,
        )


@dataclass
class SectionState:
    is_applicable: bool = True
    remark: str = ""
    files: dict[str, AttachedFile] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadTicket:
    """Handle for an attach that has started but not yet finished."""

    section_key: str
    field_key: str
    generation: int


class FormModel:
    """One submission in progress."""

    def __init__(
        self,
        schema: FormSchema,
        client: str = "",
        period: str = "",
        options: FormOptions | None = None,
    ) -> None:
        self.schema = schema
        self.options = options or FormOptions()
        self.client = client
        self.period = period
        self.sections: dict[str, SectionState] = {
            key: SectionState() for key in schema.section_keys()
        }
        self.tracker = SectionCompletionTracker(schema)
        self._launch_applicability: dict[str, bool] = {key: True for key in self.sections}
        self._generations: dict[tuple[str, str], int] = {}
        self._pending: set[tuple[str, str]] = set()

    @classmethod
    def initialize(
        cls,
        schema: FormSchema,
        defaults: UrlDefaults | None = None,
        options: FormOptions | None = None,
        clock: Clock | None = None,
    ) -> FormModel:
        """Create a model with one default SectionState per schema section.

        *defaults* normally comes from URLStateReconciler.derive_defaults; when
        omitted the client is blank, the period is computed from *clock* and
        every section is applicable.
        """
        options = options or FormOptions()
        if defaults is None:
            period = default_period(clock or SystemClock(), options.period_style)
            model = cls(schema, client="", period=period, options=options)
        else:
            model = cls(schema, client=defaults.client, period=defaults.period, options=options)
            if options.applicability_enabled:
                for key, state in model.sections.items():
                    state.is_applicable = defaults.applicability.get(key, True)
                model.set_launch_applicability(defaults.applicability)
        model.tracker.recompute(model.sections)
        return model

    # ── Metadata ─────────────────────────────────────────────────────────

    def set_client(self, client: str) -> None:
        self.client = client

    def set_period(self, period: str) -> None:
        self.period = period

    def validate(self) -> list[FormValidationError]:
        """Inline validation errors for the client and period fields."""
        errors: list[FormValidationError] = []
        if not self.client.strip():
            errors.append(FormValidationError("client", "Client name is required"))
        if not is_valid_period(self.period, strict=self.options.strict_period):
            message = PERIOD_FORMAT_MESSAGE if self.options.strict_period else "Period is required"
            errors.append(FormValidationError("period", message))
        return errors

    # ── Section mutations ────────────────────────────────────────────────

    def _has_slot(self, section_key: str, field_key: str) -> bool:
        return section_key in self.sections and self.schema.has_field(section_key, field_key)

    def set_applicability(self, section_key: str, value: bool) -> None:
        if not self.options.applicability_enabled:
            return
        state = self.sections.get(section_key)
        if state is None or state.is_applicable == value:
            return
        state.is_applicable = value
        self.tracker.on_applicability_changed(section_key, state)

    def set_launch_applicability(self, applicability: dict[str, bool]) -> None:
        """Record the applicability ``reset`` restores (the latest share link's)."""
        if not self.options.applicability_enabled:
            return
        for key in self.sections:
            self._launch_applicability[key] = applicability.get(key, True)

    def set_remark(self, section_key: str, text: str) -> None:
        if not self.options.remarks_enabled:
            return
        state = self.sections.get(section_key)
        if state is not None:
            state.remark = text

    def attach_file(self, section_key: str, field_key: str, file: AttachedFile) -> bool:
        """Put *file* in the slot, replacing whatever was there.

        Returns False (and changes nothing) for an unknown section or field.
        """
        if not self._has_slot(section_key, field_key):
            return False
        slot = (section_key, field_key)
        self._generations[slot] = self._generations.get(slot, 0) + 1
        self._pending.discard(slot)
        state = self.sections[section_key]
        state.files[field_key] = file
        self.tracker.on_file_attached(section_key, state)
        return True

    def remove_file(self, section_key: str, field_key: str) -> None:
        """Clear the slot. Also cancels an upload in flight for it."""
        if not self._has_slot(section_key, field_key):
            return
        slot = (section_key, field_key)
        self._generations[slot] = self._generations.get(slot, 0) + 1
        self._pending.discard(slot)
        state = self.sections[section_key]
        state.files.pop(field_key, None)
        self.tracker.on_file_removed(section_key, state)

    def get_file(self, section_key: str, field_key: str) -> AttachedFile | None:
        state = self.sections.get(section_key)
        return state.files.get(field_key) if state else None

    # ── Uploads in flight ────────────────────────────────────────────────

    def begin_upload(self, section_key: str, field_key: str) -> UploadTicket | None:
        if not self._has_slot(section_key, field_key):
            return None
        slot = (section_key, field_key)
        generation = self._generations.get(slot, 0) + 1
        self._generations[slot] = generation
        self._pending.add(slot)
        return UploadTicket(section_key, field_key, generation)

    def is_uploading(self, section_key: str, field_key: str) -> bool:
        return (section_key, field_key) in self._pending

    def complete_upload(self, ticket: UploadTicket, file: AttachedFile) -> bool:
        """Attach *file* unless the slot was removed or re-uploaded meanwhile."""
        slot = (ticket.section_key, ticket.field_key)
        if self._generations.get(slot) != ticket.generation:
            return False
        return self.attach_file(ticket.section_key, ticket.field_key, file)

    def cancel_upload(self, ticket: UploadTicket) -> None:
        slot = (ticket.section_key, ticket.field_key)
        if self._generations.get(slot) == ticket.generation:
            self._pending.discard(slot)

    async def upload_file(
        self,
        section_key: str,
        field_key: str,
        file: AttachedFile,
        uploader: Callable[[AttachedFile], Awaitable[object]] | None = None,
    ) -> bool:
        """Validate, run *uploader*, then attach.

        The slot keeps its previous file until the upload resolves. Returns
        False when the slot is unknown or a newer change superseded this one.

        Raises:
            FileRejected: the file failed size/type validation.
            UploadFailed: *uploader* raised; the slot is left as it was.
        """
        validate_file(file)
        ticket = self.begin_upload(section_key, field_key)
        if ticket is None:
            return False
        try:
            if uploader is not None:
                await uploader(file)
        except Exception as e:
            self.cancel_upload(ticket)
            raise UploadFailed(section_key, field_key) from e
        return self.complete_upload(ticket, file)

    async def set_file(
        self,
        section_key: str,
        field_key: str,
        file: AttachedFile | None,
        uploader: Callable[[AttachedFile], Awaitable[object]] | None = None,
    ) -> bool:
        """Make the slot match a file picker: *file* is uploaded, ``None`` clears it."""
        if file is None:
            if self.get_file(section_key, field_key) is None:
                return False
            self.remove_file(section_key, field_key)
            return True
        return await self.upload_file(section_key, field_key, file, uploader)

    # ── Derived state ────────────────────────────────────────────────────

    @property
    def completed_sections(self) -> list[str]:
        return self.tracker.completed

    @property
    def applicable_section_count(self) -> int:
        return self.tracker.applicable_section_count(self.sections)

    def is_section_complete(self, section_key: str) -> bool:
        return self.tracker.is_completed(section_key)

    def is_ready_to_submit(self) -> bool:
        return self.tracker.is_ready_to_submit(self)

    def progress(self) -> dict:
        """Completed / applicable section counts for the progress bar."""
        completed = len(self.completed_sections)
        applicable = self.applicable_section_count
        return {
            "completed": completed,
            "applicable": applicable,
            "pct": round((completed / applicable) * 100) if applicable > 0 else 100,
        }

    def reset(self) -> None:
        """Return every section to its launch defaults, dropping files and remarks."""
        for key in self.sections:
            self.sections[key] = SectionState(is_applicable=self._launch_applicability[key])
        for slot in self._generations:
            self._generations[slot] += 1
        self._pending.clear()
        self.tracker.recompute(self.sections)
