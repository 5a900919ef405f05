"""Shareable-link state for the Document Request tool.

A share link carries a launch configuration for the form, not a save
point. It holds three things:

    ?client=Acme%20Ltd&period=2024-2025&payroll=false

``client`` and ``period`` prefill the header fields. Each section key set to
the literal string ``false`` marks that section as not applicable. Files
and remarks are never encoded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping
from urllib.parse import quote, urlencode

from app.form_model import FormModel
from app.options import FormOptions
from app.periods import Clock, SystemClock, default_period, is_valid_period
from app.sections import FormSchema

SHEET_PARAM = "sheet"


@dataclass
class UrlDefaults:
    client: str = ""
    period: str = ""
    applicability: dict[str, bool] = field(default_factory=dict)


def _first(params: Mapping[str, Any], key: str) -> str | None:
    """Single value for *key* from a plain or multi-valued mapping."""
    if key not in params:
        return None
    getlist = getattr(params, "getlist", None)
    value = getlist(key) if callable(getlist) else params[key]
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else None
    return None if value is None else str(value)


class URLStateReconciler:
    """Seeds and resynchronises client, period and applicability from query params."""

    def __init__(
        self,
        schema: FormSchema,
        options: FormOptions | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.schema = schema
        self.options = options or FormOptions()
        self.clock = clock or SystemClock()

    def default_period(self) -> str:
        return default_period(self.clock, self.options.period_style)

    def derive_defaults(self, params: Mapping[str, Any]) -> UrlDefaults:
        """Read the whitelisted fields; anything malformed falls back to a default."""
        client = _first(params, "client") or ""
        period = _first(params, "period")
        if not is_valid_period(period, strict=self.options.strict_period):
            period = self.default_period()
        applicability = {
            key: _first(params, key) != "false" for key in self.schema.section_keys()
        }
        return UrlDefaults(client=client, period=period, applicability=applicability)

    def initialize(self, params: Mapping[str, Any]) -> FormModel:
        return FormModel.initialize(
            self.schema,
            defaults=self.derive_defaults(params),
            options=self.options,
            clock=self.clock,
        )

    def reconcile(self, model: FormModel, params: Mapping[str, Any]) -> UrlDefaults:
        """Push the link's client, period and applicability into *model*.

        Attached files and remarks are left alone. The link's applicability
        becomes what ``reset`` returns to.
        """
        defaults = self.derive_defaults(params)
        model.set_client(defaults.client)
        model.set_period(defaults.period)
        for key, applicable in defaults.applicability.items():
            model.set_applicability(key, applicable)
        model.set_launch_applicability(defaults.applicability)
        return defaults

    def build_share_link(
        self,
        base_url: str,
        *,
        client: str = "",
        period: str = "",
        inapplicable: Iterable[str] = (),
        sheet_id: str | None = None,
    ) -> str:
        """Link an accountant sends to a client.

        *sheet_id* selects a remote request list and is carried as the
        ``sheet`` parameter, e.g. ``https://host?sheet=1234567&client=...``.

        Raises:
            ValueError: an inapplicable section is unknown, or *period* is set
                but malformed.
        """
        unknown = [key for key in inapplicable if key not in self.schema]
        if unknown:
            raise ValueError(f"Unknown section(s): {', '.join(unknown)}")
        if period and not is_valid_period(period, strict=self.options.strict_period):
            raise ValueError(f"Invalid period: {period!r}")

        params: dict[str, str] = {}
        if sheet_id:
            params[SHEET_PARAM] = str(sheet_id)
        if client:
            params["client"] = client
        if period:
            params["period"] = period
        skip = set(inapplicable)
        for key in self.schema.section_keys():
            if key in skip:
                params[key] = "false"

        url = base_url.rstrip("/")
        query = urlencode(params, quote_via=quote)
        return f"{url}?{query}" if query else url
