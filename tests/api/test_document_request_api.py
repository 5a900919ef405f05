"""Tests for document-request/app/api.py — FastAPI endpoints."""

from __future__ import annotations

import asyncio
import io
import re
import zipfile
from unittest.mock import patch

import app.api as api_mod
import app.submission as submission_mod
from app.errors import SchemaUnavailable
from app.sections import FormSchema


def _submit(client, files, fields, client_name="Acme Ltd", period="2024-2025"):
    return client.post(
        "/api/submit",
        data={"client": client_name, "period": period, "fileFields": fields},
        files=[("files", f) for f in files],
    )


# ── Configuration ────────────────────────────────────────────────────────


def test_default_sections(client):
    resp = client.get("/api/sections")
    assert resp.status_code == 200
    keys = [s["key"] for s in resp.json()["sections"]]
    assert keys[0] == "general"
    assert "payroll" in keys


def test_remote_form_config(client):
    schema = FormSchema.from_mapping({"tax": [{"label": "Tax Return"}]}, source="sheet:7")
    with patch.object(api_mod, "fetch_schema", return_value=schema) as mock_fetch:
        resp = client.get("/api/forms/7")
    mock_fetch.assert_called_once_with("7")
    assert resp.status_code == 200
    assert resp.json()["sections"][0]["fields"][0]["key"] == "taxreturn"


def test_remote_form_config_unavailable(client):
    with patch.object(api_mod, "fetch_schema", side_effect=SchemaUnavailable("7", "404")):
        resp = client.get("/api/forms/7")
    assert resp.status_code == 502


def test_defaults_from_query(client):
    resp = client.get("/api/defaults", params={"period": "2023-2024", "statutoryRecord": "false"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["period"] == "2023-2024"
    assert data["client"] == ""
    assert data["applicability"]["statutoryRecord"] is False
    assert data["applicability"]["general"] is True


def test_defaults_malformed_period(client):
    data = client.get("/api/defaults", params={"period": "abc"}).json()
    assert re.match(r"^\d{4}-\d{4}$", data["period"])


def test_defaults_respect_config(client, write_tool_config):
    write_tool_config("document-request", {"strict_period": False})
    data = client.get("/api/defaults", params={"period": "FY24"}).json()
    assert data["period"] == "FY24"


def test_share_link(client):
    resp = client.post("/api/share-link", json={
        "base_url": "https://forms.example.com",
        "client": "Acme Ltd",
        "period": "2024-2025",
        "inapplicable": ["payroll"],
    })
    assert resp.status_code == 200
    assert resp.json()["url"] == (
        "https://forms.example.com?client=Acme%20Ltd&period=2024-2025&payroll=false"
    )


def test_share_link_unknown_section(client):
    resp = client.post("/api/share-link", json={
        "base_url": "https://forms.example.com",
        "inapplicable": ["nope"],
    })
    assert resp.status_code == 400


# ── Submission ───────────────────────────────────────────────────────────


def test_submit_zips_and_emails(client, send_email):
    resp = _submit(
        client,
        [("tb.pdf", b"%PDF", "application/pdf"), ("salary.png", b"PNG", "image/png")],
        ["general/trialbalance", "payroll/salarybreakdown"],
    )
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    args, kwargs = send_email.call_args
    assert args[0] == "Form Submission - Acme Ltd - 2024-2025"
    [attachment] = kwargs["attachments"]
    with zipfile.ZipFile(io.BytesIO(attachment.content)) as zf:
        assert sorted(zf.namelist()) == [
            "general/trialbalance/tb.pdf",
            "payroll/salarybreakdown/salary.png",
        ]


def test_submit_delivery_failure(client):
    with patch.object(
        submission_mod, "send_email", return_value={"success": False, "error": "auth failed"}
    ):
        resp = _submit(client, [("tb.pdf", b"%PDF", "application/pdf")], ["general/trialbalance"])
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to process form submission"}


def test_submit_rejects_large_file(client, send_email):
    big = b"0" * (5 * 1024 * 1024 + 1)
    resp = _submit(client, [("big.pdf", big, "application/pdf")], ["general/trialbalance"])
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "file-too-large"
    send_email.assert_not_called()


def test_submit_rejects_unsupported_type(client, send_email):
    resp = _submit(client, [("a.docx", b"PK", "application/msword")], ["general/trialbalance"])
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "file-invalid-type"


def test_submit_mismatched_fields(client, send_email):
    resp = _submit(client, [("tb.pdf", b"%PDF", "application/pdf")], [])
    assert resp.status_code == 400


def test_submit_bad_field_path(client, send_email):
    resp = _submit(client, [("tb.pdf", b"%PDF", "application/pdf")], ["general"])
    assert resp.status_code == 400


def test_submit_requires_client_and_period(client, send_email):
    resp = _submit(client, [], [], client_name="")
    assert resp.status_code == 400
    resp = _submit(client, [], [], period="2024")
    assert resp.status_code == 400
    send_email.assert_not_called()


def test_submit_rejects_repeated_field_path(client, send_email):
    resp = _submit(
        client,
        [("a.pdf", b"%PDF", "application/pdf"), ("b.pdf", b"%PDF", "application/pdf")],
        ["general/trialbalance", "general/trialbalance"],
    )
    assert resp.status_code == 400
    assert "Duplicate field path" in resp.json()["detail"]
    send_email.assert_not_called()


def test_submit_sends_off_the_event_loop(client):
    loops = []

    def _send(*args, **kwargs):
        try:
            loops.append(asyncio.get_running_loop())
        except RuntimeError:
            loops.append(None)
        return {"success": True}

    with patch.object(submission_mod, "send_email", side_effect=_send):
        resp = _submit(client, [("tb.pdf", b"%PDF", "application/pdf")], ["general/trialbalance"])
    assert resp.status_code == 200
    assert loops == [None]


def test_share_link_for_remote_list(client):
    schema = FormSchema.from_mapping({"tax": [{"label": "Tax Return"}]}, source="sheet:7")
    with patch.object(api_mod, "fetch_schema", return_value=schema):
        resp = client.post("/api/share-link", json={
            "base_url": "http://localhost:8501",
            "client": "Acme",
            "inapplicable": ["tax"],
            "sheet_id": "7",
        })
    assert resp.status_code == 200
    assert resp.json()["url"] == "http://localhost:8501?sheet=7&client=Acme&tax=false"
