"""
Fixtures for the document-request API tests.

Every test gets its own config directory so deployment flags saved by one
test never leak into another, and SMTP is never contacted: `send_email`
is patched on the submission module that the API delivers through.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import app.submission as submission_mod
import shared.config_store as config_mod
from app.api import app as api_app


@pytest.fixture(autouse=True)
def isolated_config(tmp_config_dir):
    with patch.object(config_mod, "CONFIG_DIR", tmp_config_dir):
        yield tmp_config_dir


@pytest.fixture()
def client():
    return TestClient(api_app)


@pytest.fixture()
def send_email():
    with patch.object(submission_mod, "send_email", return_value={"success": True}) as mock_send:
        yield mock_send
