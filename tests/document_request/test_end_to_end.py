"""End-to-end flow: share link -> form -> uploads -> submission (with a failed delivery)."""

from __future__ import annotations

import asyncio
from datetime import date
from unittest.mock import MagicMock

from app.form_model import AttachedFile
from app.periods import FixedClock
from app.sections import FormSchema
from app.submission import SubmissionAssembler
from app.url_state import URLStateReconciler


def test_delivery_failure_keeps_files_and_allows_resubmit():
    schema = FormSchema.from_mapping({
        "general": [{"label": "Trial Balance", "description": "Year-end TB"}],
        "payroll": [{"label": "Salary Breakdown", "description": "Monthly"}],
    })
    reconciler = URLStateReconciler(schema, clock=FixedClock(date(2024, 5, 1)))
    model = reconciler.initialize({"client": "Acme Ltd", "period": "2024-2025"})
    assert not model.is_ready_to_submit()

    asyncio.run(model.upload_file(
        "general", "trialbalance", AttachedFile("tb.pdf", b"%PDF", "application/pdf")
    ))
    asyncio.run(model.upload_file(
        "payroll", "salarybreakdown", AttachedFile("salary.png", b"\x89PNG", "image/png")
    ))
    assert model.is_ready_to_submit()

    deliver = MagicMock(side_effect=[{"success": False, "error": "SMTP down"}, {"success": True}])
    assembler = SubmissionAssembler(deliver)

    first = assembler.submit_model(model)
    assert first.success is False
    assert first.error.message == "Failed to submit form. Please try again."
    assert model.get_file("general", "trialbalance").name == "tb.pdf"
    assert model.get_file("payroll", "salarybreakdown").name == "salary.png"
    assert model.is_ready_to_submit()
    assert not assembler.is_submitting

    second = assembler.submit_model(model)
    assert second.success is True
    payload = deliver.call_args[0][0]
    assert payload.paths() == [
        "general/trialbalance/tb.pdf",
        "payroll/salarybreakdown/salary.png",
    ]
