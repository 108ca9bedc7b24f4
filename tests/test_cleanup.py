from conftest import write_files

from gamepatcher.core.cleanup import audit_install, cleanup_target, extracted_dir_names, gather_install_info
from gamepatcher.core.settings import UpdaterSettings


def test_cleanup_removes_manifests_backups_and_extracted_dirs(tmp_path):
    write_files(
        tmp_path,
        {
            "Game.exe": b"exe",
            "deletefiles.txt": b"",
            "Game_Data/hdiffmap.json": b"{}",
            "Game_Data/level0": b"level",
            "Game_Data/level0.backup": b"old",
            "game_1.0_1.1_hdiff/stray.bin": b"x",
        },
    )

    summary = cleanup_target(tmp_path, [tmp_path.parent / "game_1.0_1.1_hdiff.7z"])

    assert (tmp_path / "Game.exe").exists()
    assert (tmp_path / "Game_Data" / "level0").exists()
    assert not (tmp_path / "deletefiles.txt").exists()
    assert not (tmp_path / "Game_Data" / "hdiffmap.json").exists()
    assert not (tmp_path / "Game_Data" / "level0.backup").exists()
    assert not (tmp_path / "game_1.0_1.1_hdiff").exists()
    assert summary.errors == []


def test_extracted_dir_names_strip_archive_extensions():
    assert extracted_dir_names(["a/update.7z", "b.zip", "c.tar.gz"]) == ["update", "b", "c"]


def test_audit_of_healthy_install_has_no_warnings(game_dir):
    assert audit_install(game_dir) == []


def test_audit_reports_missing_executable_data_dir_and_leftovers(tmp_path):
    write_files(tmp_path, {"readme.txt": b"x", "stuff/file.new": b"x"})

    warnings = audit_install(tmp_path)

    assert any("No executable" in w for w in warnings)
    assert any("*_Data" in w for w in warnings)
    assert any("leftover" in w for w in warnings)


def test_audit_checks_configured_primary_executable(game_dir):
    warnings = audit_install(game_dir, UpdaterSettings(primary_executable="Launcher.exe"))

    assert warnings == ["Primary executable missing: Launcher.exe"]


def test_gather_install_info(game_dir):
    info = gather_install_info(game_dir)

    assert info.file_count == 4
    assert info.executables == ["Game.exe"]
    assert info.data_dirs == ["Game_Data"]
    assert info.leftovers == []
    assert info.free_bytes is None or info.free_bytes > 0
