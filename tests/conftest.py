"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import pytest

from tests import make_session_factory


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "db: marks tests as requiring database (deselect with '-m \"not db\"')"
    )


@pytest.fixture
def session_factory():
    """In-memory SQLite schema, fresh per test."""
    return make_session_factory()


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed SQLite so several threads get their own connections."""
    return make_session_factory(f"sqlite:///{tmp_path / 'marketplace.db'}")
