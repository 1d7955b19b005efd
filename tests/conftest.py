"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "migration: tests that build a legacy-shaped store")


@pytest.fixture(autouse=True)
def _isolated_db_path(tmp_path, monkeypatch):
    """Point the default database path at a throwaway file for every test."""
    monkeypatch.setenv("RECIPE_STORE_DB_PATH", str(tmp_path / "default.db"))
