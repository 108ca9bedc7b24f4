"""Adapter for the external binary delta tool (HDiffPatch ``hpatchz``).

The engine only needs ``apply_patch(old, patch, out)``. A primary
invocation is tried first, then a fallback invocation in streaming
mode, before the file is declared failed.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

from ..core.errors import PatchToolError
from ..utils.system_binaries import resolve_binary

logger = logging.getLogger(__name__)

if os.name == "nt":
    HPATCHZ_NAMES = ("hpatchz.exe", "hpatchz")
else:
    HPATCHZ_NAMES = ("hpatchz", "hpatchz.exe")


class PatchTool(Protocol):
    def apply_patch(self, old_file: Path, patch_file: Path, out_file: Path) -> None: ...


@dataclass(frozen=True)
class PatchInvocation:
    label: str
    build_args: Callable[[str, str, str], list[str]]


DEFAULT_INVOCATIONS: tuple[PatchInvocation, ...] = (
    PatchInvocation("primary", lambda old, diff, out: [old, diff, out]),
    # Streaming mode with a bounded cache; overwrites a stale output.
    PatchInvocation("fallback", lambda old, diff, out: ["-f", "-s-64m", old, diff, out]),
)


class HPatchTool:
    def __init__(
        self,
        binary_path: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        invocations: Sequence[PatchInvocation] = DEFAULT_INVOCATIONS,
    ):
        self._explicit_path = binary_path
        self._binary: Optional[str] = None
        self._lock = threading.Lock()
        self.timeout_sec = timeout_sec
        self.invocations = tuple(invocations)

    def binary(self) -> str:
        with self._lock:
            if self._binary is None:
                try:
                    self._binary = resolve_binary(
                        HPATCHZ_NAMES,
                        explicit_path=self._explicit_path,
                        tool_dir_name="HDiffPatch",
                    )
                except RuntimeError as e:
                    raise PatchToolError(
                        "No hpatchz binary found. Place it next to gamepatcher, in a tools/ folder, "
                        "in PATH, or set GAMEPATCHER_HPATCHZ_PATH."
                    ) from e
                logger.info("Using patch tool: %s", self._binary)
            return self._binary

    def apply_patch(self, old_file: Path, patch_file: Path, out_file: Path) -> None:
        binary = self.binary()
        errors: list[str] = []
        for invocation in self.invocations:
            _remove_quietly(out_file)
            cmd = [binary] + invocation.build_args(str(old_file), str(patch_file), str(out_file))
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout_sec,
                )
            except FileNotFoundError as e:
                raise PatchToolError(f"Patch tool disappeared: {e}") from e
            except subprocess.TimeoutExpired:
                errors.append(f"{invocation.label}: timed out after {self.timeout_sec}s")
                logger.warning("Patch tool (%s) timed out on %s", invocation.label, patch_file.name)
                continue
            except OSError as e:
                errors.append(f"{invocation.label}: {e}")
                continue

            if result.returncode == 0 and out_file.exists():
                if errors:
                    logger.info("Patch tool %s invocation succeeded for %s", invocation.label, patch_file.name)
                return

            detail = (result.stderr or result.stdout or "").strip()
            errors.append(f"{invocation.label}: exit {result.returncode}: {detail[-300:]}")
            logger.debug("Patch tool (%s) failed on %s: %s", invocation.label, patch_file.name, detail)

        _remove_quietly(out_file)
        raise PatchToolError(f"All patch tool invocations failed for {patch_file.name}: " + " | ".join(errors))


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug("Could not remove %s: %s", path, e)
