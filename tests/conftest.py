from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest


# Ensure the project root is importable when running `pytest` via its entrypoint,
# where `sys.path[0]` may not be the repo root.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


DEFAULT_SETTINGS = {
    "FOLIO_PROVIDER": "echo",
    "FOLIO_SERVICE_URL": "http://translate.test",
    "FOLIO_TIMEOUT_SECONDS": 5.0,
    "FOLIO_MAX_RETRIES": 0,
    "FOLIO_BYTE_BUDGET": 9000,
    "FOLIO_TEXT_ENCODING": "utf-8",
    "FOLIO_PAGE_WIDTH": 612,
    "FOLIO_PAGE_HEIGHT": 794,
    "FOLIO_TOP_MARGIN": 70,
    "FOLIO_BOTTOM_MARGIN": 60,
    "FOLIO_LEFT_ORIGIN": 60,
    "FOLIO_LINE_HEIGHT": 14,
    "FOLIO_FONT_SIZE": 12,
    "AZURE_OPENAI_API_KEY": None,
    "AZURE_OPENAI_ENDPOINT": None,
    "AZURE_OPENAI_API_VERSION": None,
    "AZURE_OPENAI_DEPLOYMENT_NAME": None,
    "OPENAI_API_KEY": None,
    "FOLIO_PROVIDER_DEBUG": False,
}


@pytest.fixture
def make_settings():
    """Build a settings object with the same attributes as FolioConfig."""

    def _make(**overrides):
        values = dict(DEFAULT_SETTINGS)
        values.update(overrides)
        return SimpleNamespace(**values)

    return _make
