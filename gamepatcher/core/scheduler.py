from __future__ import annotations

import logging
import shutil
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Optional, Sequence, TypeVar

from .errors import PatchApplicationError, PatchToolError
from .executor import PatchExecutor
from .models import CopyTask, PatchOutcome, PatchTask, TaskResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
T = TypeVar("T", PatchTask, CopyTask)

# Failures a single task may raise without affecting its siblings.
ISOLATED_ERRORS = (PatchToolError, PatchApplicationError, OSError, shutil.Error)


class ParallelScheduler:
    """Runs the patch wave, then the copy wave, on a bounded thread pool.

    Tasks inside one group share a target and run in order on one
    worker; distinct groups never touch the same path.
    """

    def __init__(
        self,
        executor: PatchExecutor,
        max_workers: int = 1,
        progress_callback: Optional[ProgressCallback] = None,
        abort_on_failure: bool = False,
    ):
        self.executor = executor
        self.max_workers = max(1, int(max_workers))
        self.progress_callback = progress_callback
        self.abort_on_failure = abort_on_failure
        self._lock = threading.Lock()
        self._completed = 0
        self._total = 0
        self._last_percent = -1
        self.failed_count = 0
        self.skipped_count = 0

    def run(self, patch_groups: Sequence[Sequence[PatchTask]], copy_tasks: Sequence[CopyTask]) -> list[TaskResult]:
        copy_groups = [[task] for task in copy_tasks]
        with self._lock:
            self._completed = 0
            self._last_percent = -1
            self._total = sum(len(g) for g in patch_groups) + len(copy_groups)
            self.failed_count = 0
            self.skipped_count = 0

        if self._total == 0:
            self._report(100, "Nothing to patch")
            return []

        logger.info(
            "Scheduling %s task(s) on %s worker(s)", self._total, self.max_workers
        )
        results = self._run_wave("Patching", patch_groups, self.executor.apply_patch, kind="patch")
        self._check_abort(results, "patch")
        copy_results = self._run_wave("Copying", copy_groups, self.executor.copy_new_file, kind="copy")
        self._check_abort(copy_results, "copy")
        return results + copy_results

    def _check_abort(self, results: list[TaskResult], wave: str) -> None:
        if not self.abort_on_failure:
            return
        failed = [r for r in results if r.outcome.is_failure]
        if failed:
            raise PatchApplicationError(
                f"{len(failed)} {wave} task(s) failed; aborting update (first: {failed[0].relative_target})"
            )

    def _run_wave(
        self,
        label: str,
        groups: Sequence[Sequence[T]],
        operation: Callable[[T], TaskResult],
        kind: str,
    ) -> list[TaskResult]:
        if not groups:
            return []

        results: list[TaskResult] = []
        fatal: Optional[BaseException] = None
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix=f"gp-{kind}") as pool:
            futures = [pool.submit(self._run_group, label, group, operation, kind) for group in groups]
            for future in as_completed(futures):
                try:
                    results.extend(future.result())
                except Exception as e:
                    # Escaped per-task isolation; let siblings finish first.
                    logger.error("%s wave hit an unrecoverable error: %s", label, e)
                    if fatal is None:
                        fatal = e
        if fatal is not None:
            raise fatal
        return results

    def _run_group(
        self,
        label: str,
        group: Sequence[T],
        operation: Callable[[T], TaskResult],
        kind: str,
    ) -> list[TaskResult]:
        results: list[TaskResult] = []
        blocked: Optional[TaskResult] = None
        for task in group:
            if blocked is not None:
                result = TaskResult(
                    kind,
                    task.relative_target,
                    blocked.outcome,
                    f"earlier patch for this file was not applied: {blocked.reason}",
                )
            else:
                try:
                    result = operation(task)
                except ISOLATED_ERRORS as e:
                    logger.error("%s failed for %s: %s", label, task.relative_target, e)
                    result = TaskResult(kind, task.relative_target, PatchOutcome.FAILED, str(e))
            if result.outcome in (PatchOutcome.FAILED, PatchOutcome.SKIPPED_INCOMPATIBLE):
                blocked = result
            results.append(result)
            self._task_done(label, result)
        return results

    def _task_done(self, label: str, result: TaskResult) -> None:
        with self._lock:
            self._completed += 1
            if result.outcome.is_failure:
                self.failed_count += 1
            elif result.outcome.is_skip:
                self.skipped_count += 1
            percent = min(100, self._completed * 100 // self._total)
            if percent < self._last_percent:
                percent = self._last_percent
            self._last_percent = percent
            message = f"{label} {self._completed}/{self._total}: {result.relative_target}"
            # Reported under the lock so percentages arrive in order.
            self._report(percent, message)

    def _report(self, percent: int, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(percent, message)
