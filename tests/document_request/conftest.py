"""Shared fixtures for the Document Request tool tests."""

import sys
from pathlib import Path

import pytest

_TOOL_DIR = str(Path(__file__).resolve().parent.parent.parent / "document-request")
if _TOOL_DIR not in sys.path:
    sys.path.insert(0, _TOOL_DIR)

from app.sections import FormSchema  # noqa: E402


@pytest.fixture()
def schema():
    """Three-section schema: two with fields, one empty."""
    return FormSchema.from_mapping({
        "general": [
            {"label": "Trial Balance", "description": "Year-end TB"},
            {"label": "General Ledger", "description": ""},
        ],
        "payroll": [
            {"label": "Salary Breakdown", "description": "Monthly summary"},
        ],
        "others": [],
    })
