"""Per-run extraction workspace.

The workspace is a temporary directory holding one ``archive_<n>``
subdirectory per input archive. It is exclusively owned by one run and
removed on every exit path.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

ARCHIVE_DIR_PREFIX = "archive_"


@dataclass(frozen=True)
class WorkspaceFile:
    path: Path
    archive_index: int
    relative_path: str  # posix, relative to the archive root

    @property
    def name(self) -> str:
        return self.path.name


class Workspace:
    TEMP_PREFIX = "gamepatcher_"

    def __init__(self, temp_root: Optional[str] = None):
        self._temp_root = temp_root
        self.root: Optional[Path] = None
        self._archive_dirs: list[Path] = []

    def __enter__(self) -> "Workspace":
        self.create()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()

    def create(self) -> Path:
        if self.root is not None:
            return self.root
        self.root = Path(tempfile.mkdtemp(prefix=self.TEMP_PREFIX, dir=self._temp_root))
        logger.info("Created workspace: %s", self.root)
        return self.root

    def destroy(self) -> None:
        if self.root is None:
            return
        root = self.root
        self.root = None
        self._archive_dirs = []
        try:
            shutil.rmtree(root)
            logger.info("Removed workspace: %s", root)
        except FileNotFoundError:
            pass
        except OSError as cleanup_error:
            logger.warning("Workspace cleanup could not remove %s: %s", root, cleanup_error)
            shutil.rmtree(root, ignore_errors=True)

    def new_archive_dir(self) -> Path:
        if self.root is None:
            raise RuntimeError("Workspace has not been created")
        archive_dir = self.root / f"{ARCHIVE_DIR_PREFIX}{len(self._archive_dirs)}"
        archive_dir.mkdir(parents=True, exist_ok=False)
        self._archive_dirs.append(archive_dir)
        return archive_dir

    def iter_files(self) -> Iterator[WorkspaceFile]:
        """Yield every extracted file in archive order, then path order."""
        for index, archive_dir in enumerate(self._archive_dirs):
            for root, dirs, files in os.walk(archive_dir):
                dirs.sort()
                for file_name in sorted(files):
                    full_path = Path(root) / file_name
                    yield WorkspaceFile(
                        path=full_path,
                        archive_index=index,
                        relative_path=full_path.relative_to(archive_dir).as_posix(),
                    )

    def catalog(self) -> list[WorkspaceFile]:
        return list(self.iter_files())
