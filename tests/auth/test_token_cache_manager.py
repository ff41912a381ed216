from __future__ import annotations

import stat
import sys

import pytest

from device_dna.auth.token_cache import TokenCacheManager


def test_save_writes_only_when_state_changed(tmp_path) -> None:
    path = tmp_path / "nested" / "cache.bin"
    manager = TokenCacheManager(path)

    manager.save()
    assert not path.exists()

    manager.cache.has_state_changed = True
    manager.save()
    assert path.exists()
    assert manager.cache.has_state_changed is False


def test_corrupted_cache_is_ignored(tmp_path) -> None:
    path = tmp_path / "cache.bin"
    path.write_text("not json", encoding="utf-8")

    manager = TokenCacheManager(path)

    assert manager.path == path
    assert manager.cache.serialize()


def test_clear_removes_file(tmp_path) -> None:
    path = tmp_path / "cache.bin"
    path.write_text("{}", encoding="utf-8")
    manager = TokenCacheManager(path)

    manager.clear()

    assert not path.exists()
    manager.clear()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
def test_saved_cache_is_private(tmp_path) -> None:
    path = tmp_path / "cache.bin"
    manager = TokenCacheManager(path)
    manager.cache.has_state_changed = True

    manager.save()

    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert not (tmp_path / "cache.bin.tmp").exists()
