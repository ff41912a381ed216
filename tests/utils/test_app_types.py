from __future__ import annotations

import pytest

from device_dna.utils.app_types import (
    extract_app_type,
    platform_display_name,
    platform_from_odata_type,
    profile_type_name,
)


@pytest.mark.parametrize(
    ("odata_type", "expected"),
    [
        ("#microsoft.graph.win32LobApp", "Win32"),
        ("#microsoft.graph.WINGETAPP", "WinGet"),
        ("#microsoft.graph.unknownApp", None),
        (None, None),
    ],
)
def test_extract_app_type(odata_type: str | None, expected: str | None) -> None:
    assert extract_app_type(odata_type) == expected


@pytest.mark.parametrize(
    ("odata_type", "expected"),
    [
        ("#microsoft.graph.windows10CompliancePolicy", "Windows 10 and later"),
        ("#microsoft.graph.iosGeneralDeviceConfiguration", "iOS/iPadOS"),
        ("#microsoft.graph.macOSCustomConfiguration", "macOS"),
        ("#microsoft.graph.androidWorkProfileGeneralDeviceConfiguration", "Android"),
        ("#microsoft.graph.win32LobApp", "Windows"),
        ("#microsoft.graph.sharedPCConfiguration", None),
    ],
)
def test_platform_from_odata_type(odata_type: str, expected: str | None) -> None:
    assert platform_from_odata_type(odata_type) == expected


def test_platform_display_name() -> None:
    assert platform_display_name("windows10") == "Windows 10 and later"
    assert platform_display_name("macOS, iOS") == "macOS, iOS/iPadOS"
    assert platform_display_name("") is None


def test_profile_type_name_keeps_acronyms() -> None:
    assert profile_type_name("#microsoft.graph.windows10GeneralConfiguration") == (
        "Windows10 General Configuration"
    )
    assert profile_type_name("#microsoft.graph.macOSCustomConfiguration") == "Mac OS Custom Configuration"
