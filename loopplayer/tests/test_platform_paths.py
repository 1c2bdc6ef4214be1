from pathlib import Path

from .. import platform_paths


def test_user_data_dir_on_posix(monkeypatch, tmp_path):
    monkeypatch.setattr(platform_paths, "is_windows", lambda: False)
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    assert platform_paths.get_user_data_dir() == tmp_path / ".loopplayer"
    assert platform_paths.get_store_dir() == tmp_path / ".loopplayer" / "store"


def test_user_data_dir_prefers_appdata_on_windows(monkeypatch, tmp_path):
    monkeypatch.setattr(platform_paths, "is_windows", lambda: True)
    monkeypatch.setenv("APPDATA", str(tmp_path))
    assert platform_paths.get_user_data_dir() == tmp_path / "LoopPlayer"


def test_ensure_dir_creates_nested(tmp_path):
    target = tmp_path / "a" / "b"
    assert platform_paths.ensure_dir(target) == target
    assert target.is_dir()
    # Second call is a no-op
    platform_paths.ensure_dir(target)
