import os
from pathlib import Path

from mindfulspace.backend.app import main


def test_resolve_db_path_stable_across_cwd():
    original = os.getcwd()
    expected = Path(main.__file__).resolve().parents[3] / "mindfulspace.db"
    env_backup = os.environ.pop("MINDFULSPACE_DB_PATH", None)
    env_backup_alt = os.environ.pop("DB_PATH", None)
    try:
        os.chdir(Path(main.__file__).resolve().parents[2])
        resolved = Path(main.resolve_db_path())
        assert resolved == expected
    finally:
        os.chdir(original)
        if env_backup is not None:
            os.environ["MINDFULSPACE_DB_PATH"] = env_backup
        if env_backup_alt is not None:
            os.environ["DB_PATH"] = env_backup_alt


def test_relative_env_path_resolves_against_repo_root(monkeypatch):
    monkeypatch.setenv("MINDFULSPACE_DB_PATH", "data/test.db")
    expected = Path(main.__file__).resolve().parents[3] / "data" / "test.db"
    assert Path(main.resolve_db_path()) == expected


def test_absolute_env_path_kept(monkeypatch, tmp_path):
    target = tmp_path / "wellness.db"
    monkeypatch.setenv("MINDFULSPACE_DB_PATH", str(target))
    assert main.resolve_db_path() == str(target)
