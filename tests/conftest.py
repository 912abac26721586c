"""Shared fixtures."""

import os

import pytest


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's own credentials and overrides out of the tests."""
    for name in list(os.environ):
        if name.startswith(("AZURE_OPENAI_", "SWITCHBOARD_", "AZURE_CLIENT_")):
            monkeypatch.delenv(name, raising=False)
    for name in ("ANTHROPIC_API_KEY", "CODEX_ACCESS_TOKEN", "OPENAI_API_KEY", "OPENAI_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
