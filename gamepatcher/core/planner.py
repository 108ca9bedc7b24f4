from __future__ import annotations

import logging
import os
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .deletion import DEFAULT_DELETE_LIST_NAMES, is_delete_list
from .models import CopyTask, PatchTask
from .workspace import WorkspaceFile

logger = logging.getLogger(__name__)


@dataclass
class TaskPlan:
    # One group per target path, archive order inside a group.
    patch_groups: list[list[PatchTask]] = field(default_factory=list)
    copy_tasks: list[CopyTask] = field(default_factory=list)

    @property
    def patch_count(self) -> int:
        return sum(len(group) for group in self.patch_groups)

    @property
    def total(self) -> int:
        return self.patch_count + len(self.copy_tasks)


def _target_key(relative_target: str) -> str:
    return os.path.normcase(relative_target)


def plan_tasks(
    workspace_files: Iterable[WorkspaceFile],
    patch_suffix: str = ".hdiff",
    delete_list_names: Iterable[str] = DEFAULT_DELETE_LIST_NAMES,
    manifest_paths: Iterable[Path] = (),
) -> TaskPlan:
    names = tuple(delete_list_names)
    manifests = set(manifest_paths)
    suffix = patch_suffix.lower()
    groups: dict[str, list[PatchTask]] = {}
    copies: dict[str, CopyTask] = {}

    for item in workspace_files:
        relative_dir = posixpath.dirname(item.relative_path)
        if item.name.lower().endswith(suffix) and len(item.name) > len(suffix):
            task = PatchTask(
                relative_dir=relative_dir,
                original_file_name=item.name[: -len(suffix)],
                patch_file_path=item.path,
                archive_index=item.archive_index,
            )
            groups.setdefault(_target_key(task.relative_target), []).append(task)
            continue

        if is_delete_list(item.name, names) or item.path in manifests:
            continue

        task = CopyTask(
            relative_dir=relative_dir,
            file_name=item.name,
            source_file_path=item.path,
            archive_index=item.archive_index,
        )
        key = _target_key(task.relative_target)
        if key in copies:
            logger.debug(
                "New file %s shipped by archives %s and %s; keeping the later one",
                task.relative_target,
                copies[key].archive_index,
                task.archive_index,
            )
        copies[key] = task

    plan = TaskPlan(
        patch_groups=[sorted(g, key=lambda t: t.archive_index) for g in groups.values()],
        copy_tasks=list(copies.values()),
    )
    logger.info(
        "Planned %s patch task(s) over %s target(s) and %s new file(s)",
        plan.patch_count,
        len(plan.patch_groups),
        len(plan.copy_tasks),
    )
    return plan
