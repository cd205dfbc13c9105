from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


def pytest_configure():
    # Ensure project root is on sys.path for absolute imports like 'services.contact_registry'
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))
    # Set test environment knobs
    os.environ.setdefault("RUN_ENV", "test")


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    from config.settings import get_settings

    monkeypatch.setenv("RUN_ENV", "test")
    monkeypatch.delenv("SHARE_API_URL", raising=False)
    monkeypatch.delenv("SHARE_TRACE", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "legacy_test.db")


@pytest.fixture
def conn(db_path):
    from db import schema
    from db.connection import get_connection

    c = get_connection(db_path)
    schema.bootstrap(c)
    try:
        yield c
    finally:
        c.close()
