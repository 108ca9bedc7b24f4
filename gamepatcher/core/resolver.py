"""Source lookup for patches whose target file is missing.

When a patch targets a file that is not installed (renamed, relocated
or never shipped), the archive usually carries a full copy of the
original somewhere else. Strategies, first hit wins:

1. patch index hint (path suffix match)
2. exact file name equal to the patch stem
3. patch stem plus a known asset extension
4. same stem, any extension, case-insensitive
5. fuzzy: same leading characters, case-insensitive (long stems only)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Optional

from .deletion import DEFAULT_DELETE_LIST_NAMES, is_delete_list
from .models import PatchTask
from .workspace import WorkspaceFile

logger = logging.getLogger(__name__)

KNOWN_ASSET_EXTENSIONS = (".block", ".bin", ".data", ".asset", ".unity3d", ".bytes")


def _same_name(a: str, b: str) -> bool:
    return os.path.normcase(a) == os.path.normcase(b)


def _stem(name: str) -> str:
    return PurePosixPath(name).stem


class SourceResolver:
    def __init__(
        self,
        workspace_files: Iterable[WorkspaceFile],
        index: Optional[dict[str, str]] = None,
        patch_suffix: str = ".hdiff",
        fuzzy_prefix_length: int = 8,
        delete_list_names: Iterable[str] = DEFAULT_DELETE_LIST_NAMES,
        manifest_paths: Iterable[Path] = (),
    ):
        self.index = dict(index or {})
        self.patch_suffix = patch_suffix
        self.fuzzy_prefix_length = fuzzy_prefix_length
        names = tuple(delete_list_names)
        manifests = set(manifest_paths)
        # Read-only after construction; shared by all workers.
        self._candidates = [
            f for f in workspace_files
            if not self._is_patch_file(f.name)
            and f.path not in manifests
            and not is_delete_list(f.name, names)
        ]

    def _is_patch_file(self, name: str) -> bool:
        return name.lower().endswith(self.patch_suffix.lower())

    def resolve(self, task: PatchTask) -> Optional[Path]:
        patch_name = task.patch_file_path.name
        stem = task.original_file_name

        strategies: list[tuple[str, Callable[[], Optional[WorkspaceFile]]]] = [
            ("index", lambda: self._by_index(patch_name)),
            ("exact", lambda: self._by_exact_name(stem)),
            ("extension", lambda: self._by_known_extension(stem)),
            ("stem", lambda: self._by_stem(stem)),
            ("fuzzy", lambda: self._by_prefix(stem)),
        ]
        for label, strategy in strategies:
            match = strategy()
            if match is not None:
                logger.info("Resolved source for %s via %s: %s", patch_name, label, match.relative_path)
                return match.path

        logger.debug("No source candidate for %s among %s workspace files", patch_name, len(self._candidates))
        return None

    def _by_index(self, patch_name: str) -> Optional[WorkspaceFile]:
        hint = self.index.get(patch_name)
        if not hint:
            return None
        hint = hint.replace("\\", "/").lstrip("/")
        for candidate in self._candidates:
            full = candidate.path.as_posix()
            if os.path.normcase(full).endswith(os.path.normcase("/" + hint)):
                return candidate
        logger.debug("Index hint for %s points to %s which is not in the workspace", patch_name, hint)
        return None

    def _by_exact_name(self, stem: str) -> Optional[WorkspaceFile]:
        for candidate in self._candidates:
            if _same_name(candidate.name, stem):
                return candidate
        return None

    def _by_known_extension(self, stem: str) -> Optional[WorkspaceFile]:
        for extension in KNOWN_ASSET_EXTENSIONS:
            wanted = stem + extension
            for candidate in self._candidates:
                if _same_name(candidate.name, wanted):
                    return candidate
        return None

    def _by_stem(self, stem: str) -> Optional[WorkspaceFile]:
        wanted = stem.lower()
        for candidate in self._candidates:
            if _stem(candidate.name).lower() == wanted:
                return candidate
        return None

    def _by_prefix(self, stem: str) -> Optional[WorkspaceFile]:
        if len(stem) < self.fuzzy_prefix_length:
            return None
        prefix = stem[: self.fuzzy_prefix_length].lower()
        matches = [c for c in self._candidates if _stem(c.name).lower().startswith(prefix)]
        if not matches:
            return None
        logger.warning(
            "Fuzzy source match for %s: using %s (%s candidate(s) share prefix %r)",
            stem,
            matches[0].relative_path,
            len(matches),
            prefix,
        )
        return matches[0]
