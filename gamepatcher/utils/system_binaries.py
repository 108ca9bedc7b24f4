import os
import shutil
import sys
from pathlib import Path
from typing import Iterable, Optional


def _app_dir() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[2]


def bundled_binary_dirs() -> list[Path]:
    app_dir = _app_dir()
    cwd = Path.cwd()
    dirs = [app_dir, app_dir / "tools", cwd, cwd / "tools"]
    seen: list[Path] = []
    for d in dirs:
        if d not in seen:
            seen.append(d)
    return seen


def platform_binary_dirs(tool_dir_name: str) -> list[Path]:
    if os.name == "nt":
        return [
            Path(os.environ.get("ProgramFiles", r"C:\Program Files")) / tool_dir_name,
            Path(os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)")) / tool_dir_name,
        ]
    return [Path("/usr/bin"), Path("/usr/local/bin"), Path("/opt/homebrew/bin")]


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def resolve_binary(
    binary_names: Iterable[str],
    explicit_path: Optional[str] = None,
    tool_dir_name: str = "",
) -> str:
    """Find an external tool: explicit path, bundled dirs, PATH, then install dirs."""
    names = list(binary_names)
    if explicit_path:
        explicit = Path(explicit_path)
        if _is_executable(explicit):
            return str(explicit.resolve())
        raise RuntimeError(f"Configured executable is not usable: {explicit_path}")

    for directory in bundled_binary_dirs():
        for name in names:
            candidate = directory / name
            if _is_executable(candidate):
                return str(candidate.resolve())

    for name in names:
        discovered = shutil.which(name)
        if discovered:
            return str(Path(discovered).resolve())

    for directory in platform_binary_dirs(tool_dir_name):
        for name in names:
            candidate = directory / name
            if _is_executable(candidate):
                return str(candidate.resolve())

    raise RuntimeError(f"Executable not found for any of: {', '.join(names)}")
