"""Pytest configuration for test isolation.

- Environment variables the settings loader reads are cleared so a developer's
  shell (or a ``.env`` loaded by an earlier CLI test) never leaks into a test.
- Cached SQLAlchemy engines are disposed after every test; each test that
  needs a database bootstraps its own SQLite file under ``tmp_path``.
- ``settings`` has every wait set to zero so no test sleeps for real.
"""

from __future__ import annotations

import pytest

from db.client import dispose_engines
from statement_ingest.config import IngestSettings

_ENV_VARS = (
    "OPENAI_API_KEY",
    "AWS_REGION",
    "S3_BUCKET_NAME",
    "DATABASE_URL",
    "STATEMENT_INGEST_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _hermetic_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _dispose_engines():
    yield
    dispose_engines()


@pytest.fixture()
def settings() -> IngestSettings:
    return IngestSettings(
        ai_backoff_base_seconds=0.0,
        ocr_poll_interval_seconds=0.0,
        batch_interval_seconds=0.0,
    )
