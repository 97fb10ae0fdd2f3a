"""Pytest configuration and shared fixtures for devlink tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Add src (src-layout imports) and tests (shared fakes) to path
_TESTS = Path(__file__).parent
for _path in (_TESTS.parent / "src", _TESTS):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

import pytest

from core.domain.models import Credentials
from fakes import FakeClock, StubBroadcaster


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(email="a@b.com", password="pw", api_key="key", api_secret="secret", schema_name="smartlife")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def broadcaster() -> StubBroadcaster:
    return StubBroadcaster()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep DEVLINK_* variables and user .env files out of the tests."""

    for key in list(os.environ.keys()):
        if key.startswith("DEVLINK_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
