"""JSON-backed configuration store for office tools.

Each tool keeps its settings in one file under data/config/, named after
the tool (e.g. "document-request.json"). The files are deployment-managed
and read-only to the tools: readers always supply hardcoded defaults, so a
missing or unreadable file means "use defaults".
"""

from __future__ import annotations

import json
from pathlib import Path

CONFIG_DIR = Path(__file__).resolve().parent.parent / "data" / "config"


def _config_path(tool_name: str) -> Path:
    return CONFIG_DIR / f"{tool_name}.json"


def load_config(tool_name: str) -> dict | None:
    """Load a tool's JSON config. Returns None if missing or corrupt."""
    path = _config_path(tool_name)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None


def load_with_defaults(tool_name: str, defaults: dict) -> dict:
    """Return *defaults* overlaid with whatever the tool's config file sets.

    Keys not present in *defaults* are ignored, and a stored value whose type
    differs from the default's is discarded (a hand-edited ``"true"`` string
    does not replace a bool).
    """
    stored = load_config(tool_name) or {}
    merged = dict(defaults)
    for key, default in defaults.items():
        if key not in stored:
            continue
        value = stored[key]
        if default is not None and not isinstance(value, type(default)):
            continue
        merged[key] = value
    return merged
