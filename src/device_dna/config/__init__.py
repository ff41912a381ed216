"""Configuration helpers for the DeviceDNA collector."""

from .settings import (
    APP_ONLY_SCOPES,
    DEFAULT_GRAPH_SCOPES,
    ReportPollSettings,
    Settings,
    SettingsManager,
)

__all__ = [
    "APP_ONLY_SCOPES",
    "DEFAULT_GRAPH_SCOPES",
    "ReportPollSettings",
    "Settings",
    "SettingsManager",
]
