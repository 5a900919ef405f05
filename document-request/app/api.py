"""FastAPI backend for the Document Request tool.

Serves the request-list configuration (built-in or from a Google Sheets
tab), derives form defaults from share-link query parameters, builds share
links, and accepts the final submission: the uploaded files are zipped by
section/field and emailed to the back-office address.

Part of the office tool suite.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.errors import FileRejected, SchemaUnavailable
from app.form_model import AttachedFile, validate_file
from app.options import load_form_options
from app.periods import PERIOD_FORMAT_MESSAGE, is_valid_period
from app.sections import FormSchema, default_schema, fetch_schema
from app.submission import PayloadEntry, SubmissionAssembler, SubmissionPayload, email_delivery
from app.url_state import URLStateReconciler

logger = logging.getLogger(__name__)

app = FastAPI(title="Document Request API")


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class ShareLinkRequest(BaseModel):
    """Payload for building a client share link."""

    base_url: str
    client: str = ""
    period: str = ""
    inapplicable: list[str] = []
    sheet_id: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_schema(sheet_id: str | None) -> FormSchema:
    if not sheet_id:
        return default_schema()
    try:
        return fetch_schema(sheet_id)
    except SchemaUnavailable as e:
        logger.error("Request list unavailable: %s", e)
        raise HTTPException(status_code=502, detail=str(e))


def _split_field_path(path: str) -> tuple[str, str]:
    parts = [p for p in path.strip("/").split("/") if p]
    if len(parts) != 2:
        raise HTTPException(status_code=400, detail=f"Invalid field path: {path!r}")
    return parts[0], parts[1]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/api/sections")
def get_default_sections() -> dict[str, Any]:
    """The built-in request list."""
    return default_schema().to_dict()


@app.get("/api/forms/{sheet_id}")
def get_form_config(sheet_id: str) -> dict[str, Any]:
    """Request list from one tab of the configured spreadsheet."""
    return _load_schema(sheet_id).to_dict()


@app.get("/api/defaults")
def get_defaults(
    request: Request,
    sheet: str | None = Query(None, description="Sheet tab ID of a remote request list"),
) -> dict[str, Any]:
    """Form defaults for a share link's query string.

    Malformed periods fall back to the computed default; only ``<section>=false``
    marks a section as not applicable.
    """
    reconciler = URLStateReconciler(_load_schema(sheet), load_form_options())
    return asdict(reconciler.derive_defaults(request.query_params))


@app.post("/api/share-link")
def create_share_link(request: ShareLinkRequest) -> dict[str, str]:
    """Build the link an accountant sends to a client."""
    reconciler = URLStateReconciler(_load_schema(request.sheet_id), load_form_options())
    try:
        url = reconciler.build_share_link(
            request.base_url,
            client=request.client,
            period=request.period,
            inapplicable=request.inapplicable,
            sheet_id=request.sheet_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"url": url}


@app.post("/api/submit")
def submit_documents(
    client: str = Form(""),
    period: str = Form(""),
    files: list[UploadFile] = File(default=[]),
    fileFields: list[str] = Form(default=[]),
) -> Any:
    """Zip the uploaded files by section/field and email the bundle.

    ``files`` and ``fileFields`` are index-aligned: ``fileFields[i]`` is the
    ``section/field`` path of ``files[i]``. Each path may appear once.
    """
    options = load_form_options()
    if not client.strip():
        raise HTTPException(status_code=400, detail="Client name is required")
    if not is_valid_period(period, strict=options.strict_period):
        raise HTTPException(status_code=400, detail=PERIOD_FORMAT_MESSAGE)
    if len(files) != len(fileFields):
        raise HTTPException(
            status_code=400,
            detail=f"Got {len(files)} file(s) but {len(fileFields)} field path(s)",
        )

    payload = SubmissionPayload(client=client, period=period)
    seen: set[tuple[str, str]] = set()
    for upload, path in zip(files, fileFields):
        section_key, field_key = _split_field_path(path)
        if (section_key, field_key) in seen:
            raise HTTPException(status_code=400, detail=f"Duplicate field path: {path!r}")
        seen.add((section_key, field_key))
        attached = AttachedFile(
            name=upload.filename or field_key,
            content=upload.file.read(),
            mime_type=upload.content_type or "",
        )
        try:
            validate_file(attached)
        except FileRejected as e:
            raise HTTPException(
                status_code=400,
                detail={"reason": e.reason, "message": e.message, "filename": e.filename},
            )
        payload.entries.append(PayloadEntry(section_key, field_key, attached))

    result = SubmissionAssembler(email_delivery(options), options).submit(payload)
    if not result.success:
        return JSONResponse(status_code=500, content={"error": "Failed to process form submission"})
    return {"success": True}
