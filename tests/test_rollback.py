import os

from conftest import write_files

from gamepatcher.core.rollback import rollback


def test_rollback_restores_backups_and_purges_partial_output(tmp_path):
    write_files(
        tmp_path,
        {
            "Game.exe": b"exe-v2",
            "Game.exe.backup": b"exe-v1",
            "Game_Data/level0": b"half-written",
            "Game_Data/level0.backup": b"level-v1",
            "Game_Data/level1.new": b"garbage",
            "Game_Data/new.assets.partial": b"garbage",
            "untouched.txt": b"same",
        },
    )

    summary = rollback(tmp_path)

    assert (tmp_path / "Game.exe").read_bytes() == b"exe-v1"
    assert (tmp_path / "Game_Data" / "level0").read_bytes() == b"level-v1"
    assert (tmp_path / "untouched.txt").read_bytes() == b"same"
    leftovers = [p for p in tmp_path.rglob("*") if p.suffix in (".backup", ".new", ".partial")]
    assert leftovers == []
    assert sorted(summary.restored) == ["Game.exe", "Game_Data/level0"]
    assert summary.errors == []


def test_rollback_restores_backup_whose_original_is_gone(tmp_path):
    write_files(tmp_path, {"data/file.bin.backup": b"original"})

    summary = rollback(tmp_path)

    assert (tmp_path / "data" / "file.bin").read_bytes() == b"original"
    assert summary.restored == ["data/file.bin"]


def test_rollback_on_clean_tree_changes_nothing(tmp_path):
    write_files(tmp_path, {"a.bin": b"a"})

    summary = rollback(tmp_path)

    assert summary.restored == []
    assert summary.purged == []
    assert (tmp_path / "a.bin").read_bytes() == b"a"


def test_failed_restore_keeps_the_updated_file_and_its_backup(tmp_path, monkeypatch):
    write_files(
        tmp_path,
        {
            "Game.exe": b"exe-v2",
            "Game.exe.backup": b"exe-v1",
            "Game_Data/level0": b"level-v2",
            "Game_Data/level0.backup": b"level-v1",
        },
    )
    real_replace = os.replace

    def _replace(src, dst):
        if os.path.basename(src) == "Game.exe.backup":
            raise PermissionError("file is locked")
        real_replace(src, dst)

    monkeypatch.setattr("gamepatcher.core.rollback.os.replace", _replace)

    summary = rollback(tmp_path)

    assert (tmp_path / "Game.exe").read_bytes() == b"exe-v2"
    assert (tmp_path / "Game.exe.backup").read_bytes() == b"exe-v1"
    assert (tmp_path / "Game_Data" / "level0").read_bytes() == b"level-v1"
    assert summary.restored == ["Game_Data/level0"]
    assert len(summary.errors) == 1
    assert summary.errors[0].startswith("Game.exe: ")
