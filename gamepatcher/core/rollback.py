from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .models import BACKUP_SUFFIX, NEW_SUFFIX, PARTIAL_SUFFIX

logger = logging.getLogger(__name__)


@dataclass
class RollbackSummary:
    restored: list[str] = field(default_factory=list)
    purged: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _relative(root: Path, path: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def rollback(target_root: Path) -> RollbackSummary:
    """Restore every ``*.backup`` over its original, then purge ``*.new`` leftovers.

    Best-effort: errors are logged and collected, never raised.
    """
    target_root = Path(target_root)
    summary = RollbackSummary()
    logger.warning("Rolling back update in %s", target_root)

    for backup in sorted(target_root.rglob(f"*{BACKUP_SUFFIX}")):
        if not backup.is_file():
            continue
        original = backup.with_name(backup.name[: -len(BACKUP_SUFFIX)])
        rel = _relative(target_root, original)
        try:
            # os.replace overwrites files atomically but not directories.
            if original.is_dir() and not original.is_symlink():
                shutil.rmtree(original)
            os.replace(backup, original)
            summary.restored.append(rel)
            logger.info("Rollback restored: %s", rel)
        except (OSError, shutil.Error) as e:
            summary.errors.append(f"{rel}: {e}")
            logger.error("Rollback could not restore %s: %s", rel, e)

    for suffix in (NEW_SUFFIX, PARTIAL_SUFFIX):
        for leftover in sorted(target_root.rglob(f"*{suffix}")):
            if not leftover.is_file():
                continue
            rel = _relative(target_root, leftover)
            try:
                leftover.unlink()
                summary.purged.append(rel)
            except OSError as e:
                summary.errors.append(f"{rel}: {e}")
                logger.error("Rollback could not remove %s: %s", rel, e)

    logger.warning(
        "Rollback finished: %s restored, %s purged, %s error(s)",
        len(summary.restored),
        len(summary.purged),
        len(summary.errors),
    )
    return summary
