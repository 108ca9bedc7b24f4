from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from .workspace import WorkspaceFile

logger = logging.getLogger(__name__)

DEFAULT_DELETE_LIST_NAMES = ("delete.txt", "deletefiles.txt")


@dataclass
class DeletionSummary:
    requested: int = 0
    deleted: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def is_delete_list(file_name: str, names: Iterable[str] = DEFAULT_DELETE_LIST_NAMES) -> bool:
    return file_name.lower() in {n.lower() for n in names}


def normalize_entry(line: str) -> Optional[str]:
    """Return the posix relative path for a manifest line, or None to skip it."""
    entry = line.strip()
    if not entry or entry.startswith("#"):
        return None
    entry = entry.replace("\\", "/")
    while entry.startswith("./"):
        entry = entry[2:]
    entry = entry.lstrip("/").rstrip("/")
    if not entry:
        return None
    parts = PurePosixPath(entry).parts
    if ".." in parts or ":" in parts[0]:
        logger.warning("Ignoring delete-list entry outside the target root: %s", line.strip())
        return None
    return "/".join(p for p in parts if p != ".")


def read_delete_entries(manifests: Iterable[Path]) -> set[str]:
    entries: set[str] = set()
    for manifest in manifests:
        logger.info("Reading delete list: %s", manifest)
        try:
            text = manifest.read_text(encoding="utf-8-sig", errors="replace")
        except OSError as e:
            logger.warning("Could not read delete list %s: %s", manifest, e)
            continue
        for line in text.splitlines():
            entry = normalize_entry(line)
            if entry:
                entries.add(entry)
    return entries


def apply_delete_entries(target_root: Path, entries: Iterable[str]) -> DeletionSummary:
    summary = DeletionSummary()
    for entry in sorted(entries):
        summary.requested += 1
        full_path = target_root.joinpath(*entry.split("/"))
        try:
            if full_path.is_symlink() or full_path.is_file():
                full_path.unlink()
                logger.info("Deleted file: %s", entry)
            elif full_path.is_dir():
                shutil.rmtree(full_path)
                logger.info("Deleted directory: %s", entry)
            else:
                summary.missing.append(entry)
                logger.debug("Delete-list entry not present: %s", entry)
                continue
            summary.deleted.append(entry)
        except (OSError, shutil.Error) as e:
            summary.failed.append(entry)
            logger.warning("Could not delete %s: %s", entry, e)
    return summary


def process_delete_lists(
    target_root: Path,
    workspace_files: Iterable[WorkspaceFile],
    names: Iterable[str] = DEFAULT_DELETE_LIST_NAMES,
) -> DeletionSummary:
    """Remove every path listed by the workspace delete lists. Best-effort."""
    names = tuple(names)
    manifests = [f.path for f in workspace_files if is_delete_list(f.name, names)]
    if not manifests:
        logger.info("No delete list found in workspace")
        return DeletionSummary()

    entries = read_delete_entries(manifests)
    summary = apply_delete_entries(target_root, entries)
    logger.info(
        "Deleted %s/%s delete-list entries (%s missing, %s failed)",
        len(summary.deleted),
        summary.requested,
        len(summary.missing),
        len(summary.failed),
    )
    return summary
