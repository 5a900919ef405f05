"""Deployment options for the Document Request tool.

Applicability toggles and remarks are optional capabilities; a deployment
can switch them off in data/config/document-request.json instead of running
a separate form variant.
"""

from __future__ import annotations

import sys as _sys
from dataclasses import asdict, dataclass
from pathlib import Path

_sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))
from shared.config_store import load_with_defaults

TOOL_NAME = "document-request"

PERIOD_STYLES = ("upcoming", "current")


@dataclass(frozen=True)
class FormOptions:
    applicability_enabled: bool = True
    remarks_enabled: bool = True
    strict_period: bool = True
    period_style: str = "upcoming"  # "upcoming" -> 2024-2025 in 2024, "current" -> 2023-2024
    email_subject: str = "Form Submission - {client} - {period}"
    email_body: str = "New form submission from {client} for period {period}"

    def to_dict(self) -> dict:
        return asdict(self)


def load_form_options() -> FormOptions:
    """Read options from the config store, falling back to FormOptions defaults."""
    values = load_with_defaults(TOOL_NAME, FormOptions().to_dict())
    if values["period_style"] not in PERIOD_STYLES:
        values["period_style"] = "upcoming"
    return FormOptions(**values)
