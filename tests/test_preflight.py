import pytest
from conftest import FakeExtractor

from gamepatcher.core import preflight
from gamepatcher.core.errors import AuthenticationError, StructuralError
from gamepatcher.core.models import UpdateRequest
from gamepatcher.core.preflight import format_bytes, validate_request, verify_passphrase


def _archive(tmp_path, name="update.7z", size=16):
    path = tmp_path / name
    path.write_bytes(b"x" * size)
    return path


def test_valid_request_passes(tmp_path, game_dir):
    validate_request(UpdateRequest.create(game_dir, [_archive(tmp_path)]))


def test_missing_game_dir(tmp_path):
    with pytest.raises(StructuralError, match="Game directory"):
        validate_request(UpdateRequest.create(tmp_path / "nope", [_archive(tmp_path)]))


def test_missing_archive(tmp_path, game_dir):
    with pytest.raises(StructuralError, match="archive does not exist"):
        validate_request(UpdateRequest.create(game_dir, [tmp_path / "missing.7z"]))


def test_no_archives(game_dir):
    with pytest.raises(StructuralError):
        validate_request(UpdateRequest.create(game_dir, []))


def test_insufficient_disk_space(tmp_path, game_dir, monkeypatch):
    class _Usage:
        free = 10

    monkeypatch.setattr(preflight.psutil, "disk_usage", lambda _path: _Usage())

    with pytest.raises(StructuralError, match="Insufficient disk space"):
        validate_request(UpdateRequest.create(game_dir, [_archive(tmp_path, size=100)]))


def test_unwritable_game_dir(tmp_path, game_dir, monkeypatch):
    monkeypatch.setattr(preflight, "_can_write_dir", lambda _path: False)

    with pytest.raises(StructuralError, match="write permission"):
        validate_request(UpdateRequest.create(game_dir, [_archive(tmp_path)]))


def test_verify_passphrase(tmp_path, game_dir):
    extractor = FakeExtractor({}, passphrase="secret")
    archive = _archive(tmp_path)

    verify_passphrase(UpdateRequest.create(game_dir, [archive], "secret"), extractor)
    verify_passphrase(UpdateRequest.create(game_dir, [archive]), extractor)
    with pytest.raises(AuthenticationError):
        verify_passphrase(UpdateRequest.create(game_dir, [archive], "wrong"), extractor)


def test_format_bytes():
    assert format_bytes(512) == "512.00 B"
    assert format_bytes(3 * 1024 ** 3) == "3.00 GB"
