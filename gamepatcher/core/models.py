from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


BACKUP_SUFFIX = ".backup"
NEW_SUFFIX = ".new"
PARTIAL_SUFFIX = ".partial"


@dataclass(frozen=True)
class UpdateRequest:
    target_root: Path
    archives: tuple[Path, ...]
    passphrase: Optional[str] = None

    @classmethod
    def create(cls, target_root, archives, passphrase: Optional[str] = None) -> "UpdateRequest":
        return cls(
            target_root=Path(target_root),
            archives=tuple(Path(a) for a in archives),
            passphrase=passphrase or None,
        )


@dataclass(frozen=True)
class PatchTask:
    relative_dir: str
    original_file_name: str
    patch_file_path: Path
    archive_index: int = 0

    @property
    def relative_target(self) -> str:
        if not self.relative_dir:
            return self.original_file_name
        return f"{self.relative_dir}/{self.original_file_name}"

    def target_path(self, root: Path) -> Path:
        return root.joinpath(*self.relative_target.split("/"))


@dataclass(frozen=True)
class CopyTask:
    relative_dir: str
    file_name: str
    source_file_path: Path
    archive_index: int = 0

    @property
    def relative_target(self) -> str:
        if not self.relative_dir:
            return self.file_name
        return f"{self.relative_dir}/{self.file_name}"

    def target_path(self, root: Path) -> Path:
        return root.joinpath(*self.relative_target.split("/"))


class PatchOutcome(str, Enum):
    APPLIED = "applied"
    COPIED_FROM_SOURCE = "copied_from_source"
    COPIED_NEW = "copied_new"
    SKIPPED_NO_SOURCE = "skipped_no_source"
    SKIPPED_INCOMPATIBLE = "skipped_incompatible"
    FAILED = "failed"

    @property
    def is_failure(self) -> bool:
        return self is PatchOutcome.FAILED

    @property
    def is_skip(self) -> bool:
        return self in (PatchOutcome.SKIPPED_NO_SOURCE, PatchOutcome.SKIPPED_INCOMPATIBLE)


@dataclass(frozen=True)
class TaskResult:
    kind: str  # "patch" or "copy"
    relative_target: str
    outcome: PatchOutcome
    reason: str = ""


@dataclass
class UpdateReport:
    success: bool = False
    results: list[TaskResult] = field(default_factory=list)
    deleted_count: int = 0
    audit_warnings: list[str] = field(default_factory=list)
    rolled_back: bool = False
    # Files rollback could not restore; they keep their updated content.
    rollback_errors: list[str] = field(default_factory=list)
    resulting_version: Optional[str] = None
    error: Optional[str] = None

    def count(self, outcome: PatchOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def failed(self) -> list[TaskResult]:
        return [r for r in self.results if r.outcome.is_failure]

    @property
    def skipped(self) -> list[TaskResult]:
        return [r for r in self.results if r.outcome.is_skip]

    def summary(self) -> dict[str, int]:
        return {outcome.value: self.count(outcome) for outcome in PatchOutcome}
