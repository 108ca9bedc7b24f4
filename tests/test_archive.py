import subprocess
import zipfile

import pytest

from gamepatcher.core.errors import AuthenticationError, ExtractionError
from gamepatcher.tools.archive import ArchiveExtractor, is_password_failure


def test_safe_extract_rejects_path_traversal(tmp_path):
    extractor = ArchiveExtractor()
    zip_path = tmp_path / "evil.zip"

    with zipfile.ZipFile(zip_path, "w") as zf:
        zf.writestr("../escape.txt", "owned")

    with zipfile.ZipFile(zip_path, "r") as zf:
        with pytest.raises(ExtractionError):
            extractor._safe_extract(zf, str(tmp_path / "out"))


def test_safe_extract_rejects_windows_drive_letter(tmp_path):
    extractor = ArchiveExtractor()
    zip_path = tmp_path / "driveletter.zip"

    with zipfile.ZipFile(zip_path, "w") as zf:
        zf.writestr("C:evil.txt", "owned")

    with zipfile.ZipFile(zip_path, "r") as zf:
        with pytest.raises(ExtractionError):
            extractor._safe_extract(zf, str(tmp_path / "out_drive"))


def test_safe_extract_rejects_symlink_entry(tmp_path):
    extractor = ArchiveExtractor()
    zip_path = tmp_path / "symlink.zip"

    info = zipfile.ZipInfo("link")
    info.create_system = 3
    info.external_attr = (0o120777 << 16)

    with zipfile.ZipFile(zip_path, "w") as zf:
        zf.writestr(info, "target")

    with zipfile.ZipFile(zip_path, "r") as zf:
        with pytest.raises(ExtractionError):
            extractor._safe_extract(zf, str(tmp_path / "out_symlink"))


def test_extract_zip_keeps_directory_layout(tmp_path):
    zip_path = tmp_path / "update.zip"
    with zipfile.ZipFile(zip_path, "w") as zf:
        zf.writestr("Game_Data/level0.hdiff", "patch")
        zf.writestr("deletefiles.txt", "old.bin")

    dest = tmp_path / "archive_0"
    ArchiveExtractor().extract(zip_path, dest)

    assert (dest / "Game_Data" / "level0.hdiff").read_text() == "patch"
    assert (dest / "deletefiles.txt").exists()
    assert ArchiveExtractor().test_archive(zip_path) is True


def test_broken_zip_is_an_extraction_error(tmp_path):
    zip_path = tmp_path / "broken.zip"
    zip_path.write_bytes(b"not a zip")

    with pytest.raises(ExtractionError):
        ArchiveExtractor().extract(zip_path, tmp_path / "out")
    assert ArchiveExtractor().test_archive(zip_path) is False


def test_password_failure_signals():
    assert is_password_failure("ERROR: Wrong password : Game_Data/level0")
    assert is_password_failure("Can not open encrypted archive. Wrong password?")
    assert not is_password_failure("ERROR: Disk full")


def _fake_7z(monkeypatch, returncode, stdout="", stderr=""):
    calls = []

    def _run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    monkeypatch.setattr("gamepatcher.tools.archive.subprocess.run", _run)
    return calls


def test_7z_wrong_password_raises_authentication_error(tmp_path, monkeypatch):
    calls = _fake_7z(monkeypatch, 2, stderr="ERROR: Wrong password : data.bin")
    extractor = ArchiveExtractor()
    monkeypatch.setattr(extractor, "sevenzip_binary", lambda: "7z")

    with pytest.raises(AuthenticationError):
        extractor.extract(tmp_path / "update.7z", tmp_path / "out", "nope")

    assert calls[0][:2] == ["7z", "x"]
    assert "-pnope" in calls[0]
    assert f"-o{tmp_path / 'out'}" in calls[0]


def test_7z_other_failure_is_extraction_error(tmp_path, monkeypatch):
    _fake_7z(monkeypatch, 2, stderr="ERROR: Data Error : data.bin")
    extractor = ArchiveExtractor()
    monkeypatch.setattr(extractor, "sevenzip_binary", lambda: "7z")

    with pytest.raises(ExtractionError) as excinfo:
        extractor.extract(tmp_path / "update.7z", tmp_path / "out")
    assert not isinstance(excinfo.value, AuthenticationError)


def test_7z_test_archive_reports_passphrase_validity(tmp_path, monkeypatch):
    extractor = ArchiveExtractor()
    monkeypatch.setattr(extractor, "sevenzip_binary", lambda: "7z")

    calls = _fake_7z(monkeypatch, 0, stdout="Everything is Ok")
    assert extractor.test_archive(tmp_path / "update.7z", "secret") is True
    assert calls[0][:2] == ["7z", "t"]

    _fake_7z(monkeypatch, 2, stderr="Wrong password")
    assert extractor.test_archive(tmp_path / "update.7z", "bad") is False


def test_missing_7z_binary_is_extraction_error(tmp_path, monkeypatch):
    extractor = ArchiveExtractor(sevenzip_path=str(tmp_path / "no-such-7z"))

    with pytest.raises(ExtractionError, match="7-Zip"):
        extractor.extract(tmp_path / "update.7z", tmp_path / "out")
