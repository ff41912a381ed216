from __future__ import annotations

import pytest

from device_dna.data.models import IssueLog
from tests.stubs import FakeGraphClientFactory


@pytest.fixture
def graph() -> FakeGraphClientFactory:
    return FakeGraphClientFactory()


@pytest.fixture
def issues() -> IssueLog:
    return IssueLog()


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep settings and token caches out of the real user profile."""

    for name in (
        "TENANT_ID",
        "CLIENT_ID",
        "CLIENT_SECRET",
        "AUTHORITY",
        "SCOPES",
        "TOKEN_CACHE_PATH",
        "INCLUDE_USER_GROUPS",
        "INCLUDE_PROFILE_SETTINGS",
        "REPORT_TIMEOUT",
        "REPORT_MAX_DELAY",
    ):
        monkeypatch.delenv(f"DEVICE_DNA_{name}", raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
