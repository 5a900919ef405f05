"""Section and field definitions for the Document Request tool.

A form is a list of sections (e.g. "Payroll"), each requesting a list of
documents. The list comes either from the built-in table below or from a
Google Sheets tab exported as CSV, with one row per document and the columns
``label``, ``description`` and ``section name``.

Field keys are derived from labels, so the same spreadsheet always produces
the same keys.
"""

from __future__ import annotations

import io
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

import pandas as pd
import requests

from app.errors import SchemaUnavailable

logger = logging.getLogger(__name__)

CSV_EXPORT_URL = (
    "https://docs.google.com/spreadsheets/d/{spreadsheet_id}/export"
    "?format=csv&id={spreadsheet_id}&gid={sheet_id}"
)

FALLBACK_SECTION = "general"


def field_key(label: str) -> str:
    """Lower-case the label and drop everything that isn't a-z or 0-9."""
    return re.sub(r"[^a-z0-9]", "", label.lower())


def section_title(section_key: str) -> str:
    """Readable title for a section key: ``accountsPayables`` -> ``Accounts Payables``."""
    if section_key in SECTION_TITLES:
        return SECTION_TITLES[section_key]
    words = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", section_key)
    words = re.sub(r"[_\-]+", " ", words).strip()
    return words[:1].upper() + words[1:] if words else section_key


@dataclass(frozen=True)
class FieldDefinition:
    """One requested document within a section."""

    key: str
    label: str
    description: str = ""

    def to_dict(self) -> dict:
        return {"key": self.key, "label": self.label, "description": self.description}


@dataclass(frozen=True)
class SectionDefinition:
    """A named group of requested documents."""

    key: str
    title: str
    description: str = ""
    fields: tuple[FieldDefinition, ...] = field(default_factory=tuple)

    def field_keys(self) -> list[str]:
        return [f.key for f in self.fields]

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "title": self.title,
            "description": self.description,
            "fields": [f.to_dict() for f in self.fields],
        }


def build_fields(section_key: str, entries: Iterable[Mapping[str, Any]]) -> tuple[FieldDefinition, ...]:
    """Turn ``{label, description}`` entries into FieldDefinitions.

    Entries without a label are skipped. Labels that normalise to a key
    already used in the section get a numeric suffix (``salary2``).
    """
    taken: set[str] = set()
    fields: list[FieldDefinition] = []
    for entry in entries:
        label = str(entry.get("label") or "").strip()
        if not label:
            continue
        base = field_key(label) or "field"
        key = base
        n = 2
        while key in taken:
            key = f"{base}{n}"
            n += 1
        if key != base:
            logger.warning(
                "Duplicate field key %r in section %r; using %r for label %r",
                base, section_key, key, label,
            )
        taken.add(key)
        description = str(entry.get("description") or "").strip()
        fields.append(FieldDefinition(key=key, label=label, description=description))
    return tuple(fields)


class FormSchema:
    """Ordered mapping of section key to its requested documents.

    Lookups for unknown sections return empty results instead of raising,
    since a sheet may drop sections that old links still mention.
    """

    def __init__(self, sections: Iterable[SectionDefinition], source: str = "built-in") -> None:
        self._sections: dict[str, SectionDefinition] = {}
        for section in sections:
            self._sections[section.key] = section
        self.source = source

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Iterable[Mapping[str, Any]]],
        source: str = "built-in",
    ) -> FormSchema:
        """Build from ``{section_key: [{label, description}, ...]}``."""
        sections = [
            SectionDefinition(
                key=key,
                title=section_title(key),
                description=SECTION_DESCRIPTIONS.get(key, ""),
                fields=build_fields(key, entries),
            )
            for key, entries in mapping.items()
        ]
        return cls(sections, source=source)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]], source: str = "sheet") -> FormSchema:
        """Group spreadsheet rows by their ``section name`` column, keeping row order."""
        grouped: dict[str, list[Mapping[str, Any]]] = {}
        for row in rows:
            section = str(row.get("section name") or row.get("section") or "").strip()
            grouped.setdefault(section or FALLBACK_SECTION, []).append(row)
        return cls.from_mapping(grouped, source=source)

    def __contains__(self, section_key: object) -> bool:
        return section_key in self._sections

    def __iter__(self) -> Iterator[SectionDefinition]:
        return iter(self._sections.values())

    def __len__(self) -> int:
        return len(self._sections)

    def section_keys(self) -> list[str]:
        return list(self._sections)

    def section(self, section_key: str) -> SectionDefinition | None:
        return self._sections.get(section_key)

    def fields(self, section_key: str) -> tuple[FieldDefinition, ...]:
        section = self._sections.get(section_key)
        return section.fields if section else ()

    def has_field(self, section_key: str, field_key_: str) -> bool:
        return any(f.key == field_key_ for f in self.fields(section_key))

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "sections": [s.to_dict() for s in self._sections.values()],
        }


# ---------------------------------------------------------------------------
# Built-in request list
# ---------------------------------------------------------------------------

SECTION_TITLES: dict[str, str] = {
    "general": "General",
    "statutoryRecord": "Statutory Records",
    "propertyPlantEquipment": "Property, Plant & Equipment",
    "accountsReceivables": "Accounts Receivables",
    "cashAndEquivalent": "Cash & Cash Equivalents",
    "accountsPayables": "Accounts Payables",
    "revenue": "Revenue",
    "adminExpense": "Administrative Expenses",
    "payroll": "Payroll",
    "others": "Others",
    "consolidation": "Consolidation",
}

SECTION_DESCRIPTIONS: dict[str, str] = {
    "general": "Trial balance, ledgers and prior-year financial statements",
    "statutoryRecord": "Company secretarial and registry documents",
    "propertyPlantEquipment": "Fixed asset register and supporting invoices",
    "accountsReceivables": "Customer balances and confirmations",
    "cashAndEquivalent": "Bank statements and reconciliations",
    "accountsPayables": "Supplier balances and confirmations",
    "revenue": "Sales records and contracts",
    "adminExpense": "Operating expense schedules",
    "payroll": "Salary records and statutory contributions",
    "others": "Anything else relevant to the engagement",
    "consolidation": "Group structure and intercompany balances",
}

DEFAULT_SECTIONS: dict[str, list[dict[str, str]]] = {
    "general": [
        {"label": "Trial Balance", "description": "Year-end trial balance (PDF export)"},
        {"label": "General Ledger", "description": "Full general ledger for the period"},
        {"label": "Prior Year Financial Statements", "description": "Signed accounts for the prior period"},
    ],
    "statutoryRecord": [
        {"label": "Certificate of Incorporation", "description": "Including any change-of-name certificates"},
        {"label": "Register of Directors", "description": "Current directors and changes during the period"},
        {"label": "Board Minutes", "description": "Minutes of board meetings held during the period"},
    ],
    "propertyPlantEquipment": [
        {"label": "Fixed Asset Register", "description": "Cost, additions, disposals and depreciation"},
        {"label": "Additions Invoices", "description": "Invoices for significant additions"},
    ],
    "accountsReceivables": [
        {"label": "Aged Receivables Listing", "description": "As at period end"},
        {"label": "Subsequent Receipts", "description": "Bank evidence of receipts after period end"},
    ],
    "cashAndEquivalent": [
        {"label": "Bank Statements", "description": "Statements covering the period end"},
        {"label": "Bank Reconciliation", "description": "Reconciliation for every account at period end"},
        {"label": "Bank Confirmation", "description": "Confirmation letter from each bank"},
    ],
    "accountsPayables": [
        {"label": "Aged Payables Listing", "description": "As at period end"},
        {"label": "Supplier Statements", "description": "Statements from major suppliers"},
    ],
    "revenue": [
        {"label": "Sales Listing", "description": "Monthly sales summary"},
        {"label": "Major Contracts", "description": "Contracts with key customers"},
    ],
    "adminExpense": [
        {"label": "Expense Breakdown", "description": "Administrative expenses by account"},
        {"label": "Rental Agreements", "description": "Office and equipment leases"},
    ],
    "payroll": [
        {"label": "Salary Breakdown", "description": "Monthly payroll summary per employee"},
        {"label": "Statutory Contributions", "description": "Pension and social security filings"},
    ],
    "others": [
        {"label": "Other Supporting Documents", "description": "Any other documents requested"},
    ],
    "consolidation": [
        {"label": "Group Structure Chart", "description": "Ownership percentages for all entities"},
        {"label": "Intercompany Balances", "description": "Reconciled balances between group entities"},
    ],
}


def default_schema() -> FormSchema:
    """The built-in request list."""
    return FormSchema.from_mapping(DEFAULT_SECTIONS, source="built-in")


# ---------------------------------------------------------------------------
# Remote request list (Google Sheets CSV export)
# ---------------------------------------------------------------------------

def parse_schema_csv(text: str, sheet_id: str = "") -> FormSchema:
    """Parse the CSV export of a request-list tab.

    Raises:
        SchemaUnavailable: if the CSV is empty, malformed, or lacks the
            ``label`` / ``section name`` columns.
    """
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise SchemaUnavailable(sheet_id, f"could not parse CSV: {e}") from e

    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = {"label", "section name"} - set(df.columns)
    if missing:
        raise SchemaUnavailable(sheet_id, f"missing columns: {', '.join(sorted(missing))}")
    if df.empty:
        return FormSchema([], source=f"sheet:{sheet_id}")

    df = df.apply(lambda col: col.str.strip())
    df = df[(df != "").any(axis=1)]
    return FormSchema.from_rows(df.to_dict(orient="records"), source=f"sheet:{sheet_id}")


def fetch_schema(sheet_id: str, spreadsheet_id: str | None = None, timeout: int = 15) -> FormSchema:
    """Download a tab of the request-list spreadsheet and parse it.

    Args:
        sheet_id: The tab's ``gid``; this is the path segment of a share link.
        spreadsheet_id: Spreadsheet document ID. Defaults to the
            DEFAULT_FORM_ID environment variable.
        timeout: Request timeout in seconds.

    Raises:
        SchemaUnavailable: on any configuration, network or parse failure.
    """
    spreadsheet_id = spreadsheet_id or os.environ.get("DEFAULT_FORM_ID", "")
    if not spreadsheet_id:
        raise SchemaUnavailable(sheet_id, "DEFAULT_FORM_ID is not set")

    url = CSV_EXPORT_URL.format(spreadsheet_id=spreadsheet_id, sheet_id=sheet_id)
    logger.info("Fetching request list for sheet %s", sheet_id)
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error("Request list fetch failed for sheet %s: %s", sheet_id, e)
        raise SchemaUnavailable(sheet_id, str(e)) from e

    return parse_schema_csv(resp.text, sheet_id)
