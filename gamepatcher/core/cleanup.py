from __future__ import annotations

import fnmatch
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import psutil

from .models import BACKUP_SUFFIX, NEW_SUFFIX, PARTIAL_SUFFIX
from .settings import UpdaterSettings

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAMES = (
    "delete.txt",
    "deletefiles.txt",
    "hdiffmap.json",
    "hdiff_map.json",
    "hdiff_map.txt",
    "hdifffiles.txt",
)
ARTIFACT_SUFFIXES = (BACKUP_SUFFIX, NEW_SUFFIX, PARTIAL_SUFFIX)


@dataclass
class CleanupSummary:
    removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class InstallInfo:
    root: str
    file_count: int = 0
    total_bytes: int = 0
    executables: list[str] = field(default_factory=list)
    data_dirs: list[str] = field(default_factory=list)
    leftovers: list[str] = field(default_factory=list)
    free_bytes: Optional[int] = None


def _remove(path: Path, root: Path, summary: CleanupSummary) -> None:
    rel = path.relative_to(root).as_posix()
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
        summary.removed.append(rel)
        logger.debug("Cleanup removed: %s", rel)
    except (OSError, shutil.Error) as e:
        summary.errors.append(f"{rel}: {e}")
        logger.warning("Cleanup could not remove %s: %s", rel, e)


def extracted_dir_names(archives: Iterable[Path]) -> list[str]:
    names = []
    for archive in archives:
        name = Path(archive).name
        for suffix in (".tar.gz", ".tar.xz", ".7z", ".zip", ".rar", ".tar"):
            if name.lower().endswith(suffix):
                name = name[: -len(suffix)]
                break
        if name:
            names.append(name)
    return names


def cleanup_target(target_root: Path, archives: Iterable[Path] = ()) -> CleanupSummary:
    """Remove update leftovers from the install. Never raises."""
    target_root = Path(target_root)
    summary = CleanupSummary()
    wanted = {n.lower() for n in MANIFEST_FILE_NAMES}

    try:
        leftovers = [
            p for p in sorted(target_root.rglob("*"))
            if p.is_file() and (p.name.lower() in wanted or p.name.lower().endswith(ARTIFACT_SUFFIXES))
        ]
    except OSError as e:
        summary.errors.append(f"scan failed: {e}")
        logger.warning("Cleanup could not scan %s: %s", target_root, e)
        leftovers = []
    for path in leftovers:
        _remove(path, target_root, summary)

    for dir_name in extracted_dir_names(archives):
        candidate = target_root / dir_name
        if candidate.is_dir():
            _remove(candidate, target_root, summary)

    if summary.removed:
        logger.info("Cleaned up %s leftover file(s)", len(summary.removed))
    else:
        logger.info("No leftover files to clean up")
    return summary


def find_leftovers(target_root: Path) -> list[str]:
    target_root = Path(target_root)
    return sorted(
        p.relative_to(target_root).as_posix()
        for p in target_root.rglob("*")
        if p.is_file() and p.name.lower().endswith(ARTIFACT_SUFFIXES)
    )


def _matching_children(root: Path, patterns: Iterable[str], want_dir: bool) -> list[str]:
    matches = []
    for child in sorted(root.iterdir()):
        if child.is_dir() != want_dir:
            continue
        if any(fnmatch.fnmatch(child.name.lower(), p.lower()) for p in patterns):
            matches.append(child.name)
    return matches


def audit_install(target_root: Path, settings: Optional[UpdaterSettings] = None) -> list[str]:
    """Post-update sanity checks. Returns warnings; never raises."""
    settings = settings or UpdaterSettings()
    target_root = Path(target_root)
    warnings: list[str] = []
    try:
        if settings.primary_executable:
            if not (target_root / settings.primary_executable).is_file():
                warnings.append(f"Primary executable missing: {settings.primary_executable}")
        elif not _matching_children(target_root, ("*.exe",), want_dir=False):
            warnings.append("No executable found in the install root")

        for pattern in settings.expected_data_dirs:
            if not _matching_children(target_root, (pattern,), want_dir=True):
                warnings.append(f"Expected data directory missing: {pattern}")

        leftovers = find_leftovers(target_root)
        if leftovers:
            warnings.append(f"{len(leftovers)} leftover update artifact(s), e.g. {leftovers[0]}")
    except OSError as e:
        warnings.append(f"Integrity check could not complete: {e}")

    for warning in warnings:
        logger.warning("Integrity check: %s", warning)
    return warnings


def gather_install_info(target_root: Path) -> InstallInfo:
    target_root = Path(target_root)
    info = InstallInfo(root=str(target_root))
    for path in target_root.rglob("*"):
        if path.is_file():
            info.file_count += 1
            try:
                info.total_bytes += path.stat().st_size
            except OSError:
                continue
    info.executables = _matching_children(target_root, ("*.exe",), want_dir=False)
    info.data_dirs = _matching_children(target_root, ("*_Data",), want_dir=True)
    info.leftovers = find_leftovers(target_root)
    try:
        info.free_bytes = psutil.disk_usage(str(target_root)).free
    except OSError as e:
        logger.debug("Could not read free space for %s: %s", target_root, e)
    return info
