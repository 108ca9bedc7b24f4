import threading
from pathlib import Path

import pytest

from gamepatcher.core.errors import AuthenticationError, PatchToolError
from gamepatcher.core.workspace import WorkspaceFile


class FakePatchTool:
    """Writes the patch file's bytes as the patched output.

    A patch whose content starts with ``FAIL`` makes the tool fail.
    """

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def apply_patch(self, old_file, patch_file, out_file):
        with self._lock:
            self.calls.append((Path(old_file), Path(patch_file), Path(out_file)))
        payload = Path(patch_file).read_bytes()
        if payload.startswith(b"FAIL"):
            raise PatchToolError(f"hpatchz rejected {Path(patch_file).name}")
        Path(out_file).write_bytes(payload)


class FakeExtractor:
    """Extracts archives from an in-memory table of ``{archive name: {path: bytes}}``."""

    def __init__(self, contents, passphrase=None):
        self.contents = contents
        self.passphrase = passphrase
        self.extracted = []

    def _check(self, archive_path, passphrase):
        return self.passphrase is None or passphrase == self.passphrase

    def test_archive(self, archive_path, passphrase=None):
        return self._check(archive_path, passphrase)

    def extract(self, archive_path, dest_dir, passphrase=None):
        if not self._check(archive_path, passphrase):
            raise AuthenticationError(f"Archive passphrase rejected: {Path(archive_path).name}")
        for relative, data in self.contents[Path(archive_path).name].items():
            path = Path(dest_dir).joinpath(*relative.split("/"))
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        self.extracted.append(Path(archive_path).name)


def write_files(root, files):
    for relative, data in files.items():
        path = Path(root).joinpath(*relative.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data if isinstance(data, bytes) else data.encode("utf-8"))


def workspace_files(archive_dir, archive_index=0):
    archive_dir = Path(archive_dir)
    return [
        WorkspaceFile(path=p, archive_index=archive_index, relative_path=p.relative_to(archive_dir).as_posix())
        for p in sorted(archive_dir.rglob("*"))
        if p.is_file()
    ]


@pytest.fixture
def patch_tool():
    return FakePatchTool()


@pytest.fixture
def game_dir(tmp_path):
    root = tmp_path / "game"
    write_files(
        root,
        {
            "Game.exe": b"exe-v1",
            "UnityPlayer.dll": b"player-v1",
            "Game_Data/level0": b"level-v1",
            "Game_Data/sharedassets0.assets": b"assets-v1",
        },
    )
    return root
