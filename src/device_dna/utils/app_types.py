"""Friendly labels derived from Microsoft Graph ``@odata.type`` values."""

from __future__ import annotations

import re


# Mapping from @odata.type suffix to simplified app type name
APP_TYPE_MAPPING = {
    "win32LobApp": "Win32",
    "win32CatalogApp": "Win32",
    "windowsMobileMSI": "MSI",
    "windowsAppX": "AppX",
    "windowsUniversalAppX": "Universal AppX",
    "winGetApp": "WinGet",
    "windowsStoreApp": "Store",
    "microsoftStoreForBusinessApp": "Store for Business",
    "officeSuiteApp": "Microsoft 365 Apps",
    "windowsMicrosoftEdgeApp": "Edge",
    "windowsWebApp": "Web",
    "webApp": "Web",
    "iosStoreApp": "Store",
    "iosLobApp": "LOB",
    "iosVppApp": "VPP",
    "androidStoreApp": "Store",
    "androidLobApp": "LOB",
    "androidManagedStoreApp": "Managed Store",
    "macOSLobApp": "LOB",
    "macOSDmgApp": "DMG",
    "macOSPkgApp": "PKG",
}

_APP_TYPE_MAPPING_LOWER = {
    key.lower(): value for key, value in APP_TYPE_MAPPING.items()
}

# Longest prefix first so "windows10" wins over "windows".
_PLATFORM_PREFIXES: tuple[tuple[str, str], ...] = (
    ("windows10", "Windows 10 and later"),
    ("windows81", "Windows 8.1"),
    ("windowsphone", "Windows Phone"),
    ("windows", "Windows"),
    ("win32", "Windows"),
    ("win", "Windows"),
    ("officesuite", "Windows"),
    ("microsoftstore", "Windows"),
    ("ios", "iOS/iPadOS"),
    ("macos", "macOS"),
    ("android", "Android"),
    ("aosp", "Android (AOSP)"),
)

_PLATFORM_NAMES = {
    "windows10": "Windows 10 and later",
    "windows": "Windows",
    "ios": "iOS/iPadOS",
    "macos": "macOS",
    "android": "Android",
    "androidenterprise": "Android Enterprise",
    "aosp": "Android (AOSP)",
    "linux": "Linux",
}


# Split camelCase, keeping acronyms such as "OS" together.
_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def _type_name(odata_type: str | None) -> str | None:
    if not odata_type or not isinstance(odata_type, str):
        return None
    return odata_type.replace("#microsoft.graph.", "")


def extract_app_type(odata_type: str | None) -> str | None:
    """Extract simplified app type from a Graph API ``@odata.type`` value.

    >>> extract_app_type("#microsoft.graph.win32LobApp")
    'Win32'
    """

    type_name = _type_name(odata_type)
    if type_name is None:
        return None
    return APP_TYPE_MAPPING.get(type_name) or _APP_TYPE_MAPPING_LOWER.get(
        type_name.lower()
    )


def platform_from_odata_type(odata_type: str | None) -> str | None:
    """Infer the platform of a profile, compliance policy or app.

    >>> platform_from_odata_type("#microsoft.graph.windows10CompliancePolicy")
    'Windows 10 and later'
    """

    type_name = _type_name(odata_type)
    if not type_name:
        return None
    lowered = type_name.lower()
    for prefix, label in _PLATFORM_PREFIXES:
        if lowered.startswith(prefix):
            return label
    return None


def platform_display_name(platforms: str | None) -> str | None:
    """Label for settings catalog ``platforms`` values (``windows10``, ``macOS``...)."""

    if not platforms:
        return None
    labels = [
        _PLATFORM_NAMES.get(part.strip().lower(), part.strip())
        for part in platforms.split(",")
        if part.strip()
    ]
    return ", ".join(labels) or None


def profile_type_name(odata_type: str | None) -> str | None:
    """``#microsoft.graph.windows10GeneralConfiguration`` -> ``Windows10 General Configuration``."""

    type_name = _type_name(odata_type)
    if not type_name:
        return None
    spaced = _WORD_BOUNDARY.sub(" ", type_name)
    return spaced[:1].upper() + spaced[1:]


__all__ = [
    "APP_TYPE_MAPPING",
    "extract_app_type",
    "platform_display_name",
    "platform_from_odata_type",
    "profile_type_name",
]
