"""Per-file patch and copy operations.

A patched target is always in one of three observable states: the
original file, the original plus ``<name>.backup`` while the patch tool
runs, or the fully patched file. Output is produced in ``<name>.new``
and swapped in with ``os.replace`` only after it has been checked.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Optional

from .errors import PatchApplicationError, PatchToolError, RestoreError
from .models import (
    BACKUP_SUFFIX,
    NEW_SUFFIX,
    PARTIAL_SUFFIX,
    CopyTask,
    PatchOutcome,
    PatchTask,
    TaskResult,
)
from .resolver import SourceResolver
from .settings import UpdaterSettings
from ..tools.hpatch import PatchTool

logger = logging.getLogger(__name__)


def sibling(path: Path, suffix: str) -> Path:
    return path.with_name(path.name + suffix)


def _remove_file(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class PatchExecutor:
    def __init__(
        self,
        target_root: Path,
        patch_tool: PatchTool,
        resolver: Optional[SourceResolver] = None,
        settings: Optional[UpdaterSettings] = None,
    ):
        self.target_root = Path(target_root)
        self.patch_tool = patch_tool
        self.resolver = resolver
        self.settings = settings or UpdaterSettings()
        # Under the abort policy backups survive until the run ends so
        # the rollback coordinator can restore them.
        self.keep_backups = self.settings.abort_on_failure
        self._run_backups: set[Path] = set()
        self._backup_lock = threading.Lock()

    def is_critical(self, file_name: str) -> bool:
        if not self.settings.tolerate_critical_failures:
            return False
        lowered = file_name.lower()
        return any(fnmatch.fnmatchcase(lowered, p.lower()) for p in self.settings.critical_file_patterns)

    # --------------------------
    # Patch
    # --------------------------
    def apply_patch(self, task: PatchTask) -> TaskResult:
        target = task.target_path(self.target_root)
        relative = task.relative_target

        if not target.exists():
            return self._provision_missing_target(task, target)

        backup = sibling(target, BACKUP_SUFFIX)
        new_file = sibling(target, NEW_SUFFIX)
        self._create_backup(target, backup)

        try:
            _remove_file(new_file)
            self.patch_tool.apply_patch(target, task.patch_file_path, new_file)
            self._verify_output(new_file)
            os.replace(new_file, target)
        except (PatchToolError, PatchApplicationError, OSError, shutil.Error) as e:
            self._restore(target, backup, new_file)
            return self._handle_failure(task, e)

        if not self.keep_backups:
            self._discard_backup(backup)
        logger.info("Patched: %s", relative)
        return TaskResult("patch", relative, PatchOutcome.APPLIED)

    def _provision_missing_target(self, task: PatchTask, target: Path) -> TaskResult:
        relative = task.relative_target
        source = self.resolver.resolve(task) if self.resolver is not None else None
        if source is None:
            logger.warning("Target missing and no source found, skipping patch: %s", relative)
            return TaskResult(
                "patch",
                relative,
                PatchOutcome.SKIPPED_NO_SOURCE,
                "target missing and no source resolved",
            )
        self._install_file(source, target)
        logger.info("Target missing, copied source %s -> %s", source.name, relative)
        return TaskResult("patch", relative, PatchOutcome.COPIED_FROM_SOURCE, f"source: {source.name}")

    def _verify_output(self, new_file: Path) -> None:
        try:
            size = new_file.stat().st_size
        except FileNotFoundError as e:
            raise PatchApplicationError(f"Patch output was not created: {new_file.name}") from e
        if size == 0:
            raise PatchApplicationError(f"Patch output is empty: {new_file.name}")

    def _handle_failure(self, task: PatchTask, error: Exception) -> TaskResult:
        relative = task.relative_target
        if self.is_critical(task.original_file_name):
            logger.warning(
                "Critical file %s could not be patched and was left at its pre-patch state: %s",
                relative,
                error,
            )
            return TaskResult("patch", relative, PatchOutcome.SKIPPED_INCOMPATIBLE, str(error))
        logger.error("Patch failed for %s, original restored: %s", relative, error)
        raise PatchApplicationError(f"Patch failed for {relative}: {error}") from error

    # --------------------------
    # Copy
    # --------------------------
    def copy_new_file(self, task: CopyTask) -> TaskResult:
        target = task.target_path(self.target_root)
        self._install_file(task.source_file_path, target)
        logger.debug("Copied new file: %s", task.relative_target)
        return TaskResult("copy", task.relative_target, PatchOutcome.COPIED_NEW)

    def _install_file(self, source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = sibling(target, PARTIAL_SUFFIX)
        try:
            shutil.copy2(source, partial)
            if self.keep_backups and target.exists():
                self._create_backup(target, sibling(target, BACKUP_SUFFIX))
            os.replace(partial, target)
        except (OSError, shutil.Error):
            _remove_file(partial)
            raise

    # --------------------------
    # Backups
    # --------------------------
    def _create_backup(self, target: Path, backup: Path) -> None:
        if self.keep_backups:
            with self._backup_lock:
                if backup in self._run_backups and backup.exists():
                    return
        try:
            shutil.copy2(target, backup)
        except (OSError, shutil.Error):
            _remove_file(backup)
            raise
        if self.keep_backups:
            with self._backup_lock:
                self._run_backups.add(backup)

    def _discard_backup(self, backup: Path) -> None:
        try:
            _remove_file(backup)
        except OSError as e:
            # Leftover backups are swept by cleanup.
            logger.warning("Could not remove backup %s: %s", backup, e)

    def _restore(self, target: Path, backup: Path, new_file: Path) -> None:
        try:
            _remove_file(new_file)
        except OSError as e:
            logger.warning("Could not remove partial output %s: %s", new_file, e)
        if not backup.exists():
            raise RestoreError(f"Backup missing, cannot restore {target}")
        try:
            os.replace(backup, target)
        except OSError as e:
            raise RestoreError(f"Could not restore {target} from backup: {e}") from e
        with self._backup_lock:
            self._run_backups.discard(backup)
        logger.info("Restored from backup: %s", target.name)
