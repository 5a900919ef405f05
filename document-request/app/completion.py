"""Section completion tracking for the Document Request tool.

A section is complete when it is applicable and every requested document
has a file attached. Sections marked not applicable are excluded from the
progress denominator rather than counted as complete.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping

from app.periods import is_valid_period
from app.sections import FormSchema

if TYPE_CHECKING:
    from app.form_model import FormModel, SectionState


def is_section_complete(schema: FormSchema, section_key: str, state: SectionState) -> bool:
    """Completion rule for a single section, computed from its current files."""
    if section_key not in schema:
        return False
    if not state.is_applicable:
        return True
    return all(state.files.get(f.key) is not None for f in schema.fields(section_key))


class SectionCompletionTracker:
    """Keeps the set of completed sections in step with the form model."""

    def __init__(self, schema: FormSchema) -> None:
        self.schema = schema
        self._completed: set[str] = set()

    @property
    def completed(self) -> list[str]:
        """Completed section keys, in schema order."""
        return [k for k in self.schema.section_keys() if k in self._completed]

    def is_completed(self, section_key: str) -> bool:
        return section_key in self._completed

    def _refresh(self, section_key: str, state: SectionState) -> None:
        if state.is_applicable and is_section_complete(self.schema, section_key, state):
            self._completed.add(section_key)
        else:
            self._completed.discard(section_key)

    def on_file_attached(self, section_key: str, state: SectionState) -> None:
        self._refresh(section_key, state)

    def on_file_removed(self, section_key: str, state: SectionState) -> None:
        self._refresh(section_key, state)

    def on_applicability_changed(self, section_key: str, state: SectionState) -> None:
        if not state.is_applicable:
            self._completed.discard(section_key)
            return
        # Re-enabled sections only count as complete again after a fresh
        # attach/remove in that section; empty sections need nothing.
        if section_key in self.schema and not self.schema.fields(section_key):
            self._completed.add(section_key)

    def recompute(self, sections: Mapping[str, SectionState]) -> None:
        self._completed.clear()
        for key, state in sections.items():
            self._refresh(key, state)

    def applicable_section_count(self, sections: Mapping[str, SectionState]) -> int:
        return sum(
            1
            for key in self.schema.section_keys()
            if key in sections and sections[key].is_applicable
        )

    def is_ready_to_submit(self, model: FormModel) -> bool:
        if not model.client.strip():
            return False
        if not is_valid_period(model.period, strict=model.options.strict_period):
            return False
        return len(self._completed) == self.applicable_section_count(model.sections)
