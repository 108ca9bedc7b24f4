from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

import psutil

logger = logging.getLogger(__name__)

ENV_PREFIX = "GAMEPATCHER_"


class FailurePolicy(str, Enum):
    SKIP = "skip"
    ABORT = "abort"


DEFAULT_CRITICAL_FILE_PATTERNS = (
    "*.exe",
    "UnityPlayer.dll",
    "GameAssembly.dll",
    "mono-2.0-bdwgc.dll",
)


@dataclass
class UpdaterSettings:
    patch_suffix: str = ".hdiff"
    max_workers: Optional[int] = None
    failure_policy: FailurePolicy = FailurePolicy.SKIP
    tolerate_critical_failures: bool = True
    critical_file_patterns: tuple[str, ...] = DEFAULT_CRITICAL_FILE_PATTERNS
    primary_executable: Optional[str] = None
    expected_data_dirs: tuple[str, ...] = ("*_Data",)
    patch_tool_path: Optional[str] = None
    sevenzip_path: Optional[str] = None
    patch_timeout_sec: Optional[float] = None
    extract_timeout_sec: Optional[float] = None
    min_free_space_factor: float = 2.0
    fuzzy_prefix_length: int = 8
    delete_list_names: tuple[str, ...] = field(default=("delete.txt", "deletefiles.txt"))

    def __post_init__(self):
        self.failure_policy = FailurePolicy(self.failure_policy)
        self.critical_file_patterns = tuple(self.critical_file_patterns)
        self.expected_data_dirs = tuple(self.expected_data_dirs)
        self.delete_list_names = tuple(n.lower() for n in self.delete_list_names)
        if not self.patch_suffix.startswith("."):
            self.patch_suffix = f".{self.patch_suffix}"
        if self.max_workers is not None and int(self.max_workers) < 1:
            raise ValueError("max_workers must be at least 1")

    @property
    def abort_on_failure(self) -> bool:
        return self.failure_policy is FailurePolicy.ABORT

    def worker_count(self) -> int:
        if self.max_workers:
            return int(self.max_workers)
        return psutil.cpu_count(logical=True) or os.cpu_count() or 1

    @classmethod
    def load(cls, path) -> "UpdaterSettings":
        """Read settings from a JSON file; missing keys keep their defaults."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Settings file must hold a JSON object: {path}")
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown setting %r in %s", key, path)
                continue
            values[key] = tuple(value) if isinstance(value, list) else value
        return cls(**values)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "UpdaterSettings":
        env = os.environ if environ is None else environ
        values = asdict(self)

        def _get(name: str) -> str:
            return (env.get(ENV_PREFIX + name) or "").strip()

        if _get("PATCH_SUFFIX"):
            values["patch_suffix"] = _get("PATCH_SUFFIX")
        if _get("WORKERS"):
            values["max_workers"] = int(_get("WORKERS"))
        if _get("FAILURE_POLICY"):
            values["failure_policy"] = _get("FAILURE_POLICY").lower()
        if _get("HPATCHZ_PATH"):
            values["patch_tool_path"] = _get("HPATCHZ_PATH")
        if _get("7Z_PATH"):
            values["sevenzip_path"] = _get("7Z_PATH")
        if _get("PATCH_TIMEOUT"):
            values["patch_timeout_sec"] = float(_get("PATCH_TIMEOUT"))
        return UpdaterSettings(**values)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "UpdaterSettings":
        return cls().with_env(environ)
