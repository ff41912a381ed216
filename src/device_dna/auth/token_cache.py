from __future__ import annotations

import os
from pathlib import Path

import msal

from device_dna.config.settings import TOKEN_CACHE_NAME, cache_dir
from device_dna.utils import get_logger


logger = get_logger(__name__)


class TokenCacheManager:
    """MSAL token cache persisted to a user-only file between collector runs.

    An unreadable cache file is ignored, which simply means signing in again.
    """

    def __init__(self, cache_path: Path | None = None) -> None:
        self._path = cache_path or cache_dir() / TOKEN_CACHE_NAME
        self._cache = self._load()

    @property
    def cache(self) -> msal.SerializableTokenCache:
        return self._cache

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> msal.SerializableTokenCache:
        cache = msal.SerializableTokenCache()
        try:
            state = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return cache
        except OSError as exc:
            logger.warning("Token cache unreadable", path=str(self._path), error=str(exc))
            return cache
        try:
            cache.deserialize(state)
        except ValueError as exc:
            logger.warning("Ignoring corrupt token cache", path=str(self._path), error=str(exc))
            return msal.SerializableTokenCache()
        return cache

    def save(self) -> None:
        """Write the cache when MSAL changed it; the swap is atomic."""

        if not self._cache.has_state_changed:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_name(self._path.name + ".tmp")
        descriptor = os.open(staging, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
            handle.write(self._cache.serialize())
        os.replace(staging, self._path)
        self._cache.has_state_changed = False
        logger.debug("Token cache saved", path=str(self._path))

    def clear(self) -> None:
        """Drop cached accounts, scrubbing the file contents before unlinking."""

        self._cache = msal.SerializableTokenCache()
        try:
            size = self._path.stat().st_size
        except FileNotFoundError:
            return
        try:
            if size:
                with self._path.open("r+b") as handle:
                    handle.write(b"\0" * size)
                    handle.flush()
                    os.fsync(handle.fileno())
            self._path.unlink()
        except OSError as exc:
            logger.warning("Failed to delete token cache", path=str(self._path), error=str(exc))
            return
        logger.info("Cleared MSAL token cache", path=str(self._path))


__all__ = ["TokenCacheManager"]
