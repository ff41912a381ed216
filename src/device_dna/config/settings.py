from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

from dotenv import load_dotenv
from platformdirs import user_cache_dir, user_config_dir

APP_NAME = "DeviceDNA"
ENV_PREFIX = "DEVICE_DNA_"
ENV_FILE_NAME = "settings.env"
TOKEN_CACHE_NAME = "msal_cache.bin"

DEFAULT_GRAPH_SCOPES: tuple[str, ...] = (
    "https://graph.microsoft.com/Device.Read.All",
    "https://graph.microsoft.com/Group.Read.All",
    "https://graph.microsoft.com/GroupMember.Read.All",
    "https://graph.microsoft.com/User.Read.All",
    "https://graph.microsoft.com/DeviceManagementManagedDevices.Read.All",
    "https://graph.microsoft.com/DeviceManagementConfiguration.Read.All",
    "https://graph.microsoft.com/DeviceManagementApps.Read.All",
)

# Client-credential flows only accept the resource-wide default scope.
APP_ONLY_SCOPES: tuple[str, ...] = ("https://graph.microsoft.com/.default",)


def config_dir() -> Path:
    path = Path(user_config_dir(APP_NAME, roaming=True))
    path.mkdir(parents=True, exist_ok=True)
    return path


def cache_dir() -> Path:
    path = Path(user_cache_dir(APP_NAME))
    path.mkdir(parents=True, exist_ok=True)
    return path


def log_dir() -> Path:
    path = cache_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass(slots=True)
class ReportPollSettings:
    """Backoff used while waiting on Intune report export jobs."""

    initial_delay: float = 0.5
    growth_factor: float = 1.5
    max_delay: float = 4.0
    timeout: float = 60.0


@dataclass(slots=True)
class Settings:
    """Tenant/app registration data plus collection switches.

    Without a client secret the collector signs in interactively through an
    MSAL public client ("Mobile and desktop applications" registration). With
    a secret it runs app-only through a confidential client.
    """

    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    authority: str | None = None
    graph_scopes: list[str] = field(default_factory=lambda: list(DEFAULT_GRAPH_SCOPES))
    token_cache_path: Path | None = None
    include_user_groups: bool = True
    include_profile_settings: bool = False
    report_poll: ReportPollSettings = field(default_factory=ReportPollSettings)

    def configured_scopes(self) -> Iterable[str]:
        """Return deduplicated scopes preserving order."""

        if self.uses_client_secret:
            yield from APP_ONLY_SCOPES
            return
        seen = set[str]()
        for scope in self.graph_scopes:
            if scope and scope not in seen:
                seen.add(scope)
                yield scope

    @property
    def is_configured(self) -> bool:
        return bool(self.tenant_id and self.client_id)

    @property
    def uses_client_secret(self) -> bool:
        return bool(self.client_secret)

    def derive_authority(self) -> str:
        if self.authority:
            return self.authority
        tenant = self.tenant_id or "organizations"
        return f"https://login.microsoftonline.com/{tenant}"

    def resolved_token_cache_path(self) -> Path:
        if self.token_cache_path is not None:
            return self.token_cache_path
        return cache_dir() / TOKEN_CACHE_NAME


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_scopes(raw: str) -> list[str] | None:
    return [scope.strip() for scope in raw.split(";") if scope.strip()] or None


def _parse_path(raw: str) -> Path:
    return Path(raw).expanduser()


# Environment variable suffix -> (attribute path on Settings, parser).
_ENV_FIELDS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "TENANT_ID": ("tenant_id", str),
    "CLIENT_ID": ("client_id", str),
    "CLIENT_SECRET": ("client_secret", str),
    "AUTHORITY": ("authority", str),
    "SCOPES": ("graph_scopes", _parse_scopes),
    "TOKEN_CACHE_PATH": ("token_cache_path", _parse_path),
    "INCLUDE_USER_GROUPS": ("include_user_groups", _parse_bool),
    "INCLUDE_PROFILE_SETTINGS": ("include_profile_settings", _parse_bool),
    "REPORT_TIMEOUT": ("report_poll.timeout", float),
    "REPORT_MAX_DELAY": ("report_poll.max_delay", float),
}


class SettingsManager:
    """Load settings from ``DEVICE_DNA_*`` variables and the managed env file.

    Real environment variables win over the env file; blank or unparseable
    values leave the default in place.
    """

    def __init__(self, env_file: Path | None = None) -> None:
        self._env_file = env_file or config_dir() / ENV_FILE_NAME

    @property
    def env_file(self) -> Path:
        return self._env_file

    def load(self) -> Settings:
        load_dotenv(self._env_file, override=False)
        settings = Settings()
        for suffix, (attribute, parse) in _ENV_FIELDS.items():
            raw = os.getenv(ENV_PREFIX + suffix)
            if not raw:
                continue
            try:
                value = parse(raw)
            except ValueError:
                continue
            if value is None:
                continue
            owner_path, _, name = attribute.rpartition(".")
            owner = getattr(settings, owner_path) if owner_path else settings
            setattr(owner, name, value)
        return settings

    def save(self, settings: Settings) -> None:
        """Persist identifiers (never the client secret) to the env file."""

        values = {
            "TENANT_ID": settings.tenant_id or "",
            "CLIENT_ID": settings.client_id or "",
            "AUTHORITY": settings.authority or "",
            "SCOPES": ";".join(settings.graph_scopes),
            "INCLUDE_USER_GROUPS": str(settings.include_user_groups).lower(),
            "INCLUDE_PROFILE_SETTINGS": str(settings.include_profile_settings).lower(),
        }
        if settings.token_cache_path is not None:
            values["TOKEN_CACHE_PATH"] = str(settings.token_cache_path)
        self._env_file.parent.mkdir(parents=True, exist_ok=True)
        lines = [f"{ENV_PREFIX}{key}={value}" for key, value in values.items()]
        self._env_file.write_text("\n".join(lines) + "\n", encoding="utf-8")


__all__ = [
    "APP_ONLY_SCOPES",
    "DEFAULT_GRAPH_SCOPES",
    "ReportPollSettings",
    "Settings",
    "SettingsManager",
    "cache_dir",
    "config_dir",
    "log_dir",
]
