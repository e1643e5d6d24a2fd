"""Pytest configuration for fmtci tests."""

from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture(autouse=True)
def reset_console():
    """Each test starts with a fresh, non-debug console."""
    from fmtci.ui.console import set_console

    set_console(None)
    yield
    set_console(None)


@pytest.fixture
def repo_root() -> Path:
    return REPO_ROOT
