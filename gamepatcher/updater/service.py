"""Incremental game updater.

Applies one or more hdiff update archives to an installed game:
extract, delete obsolete files, patch and provision files in parallel,
then clean up. A failure that escapes per-file recovery rolls every
backed-up file back before the error is reported.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from ..core.cleanup import audit_install, cleanup_target
from ..core.deletion import process_delete_lists
from ..core.errors import CleanupError, ExtractionError, UpdaterError
from ..core.executor import PatchExecutor
from ..core.models import UpdateReport, UpdateRequest
from ..core.patch_index import load_patch_index
from ..core.planner import plan_tasks
from ..core.preflight import validate_request, verify_passphrase
from ..core.resolver import SourceResolver
from ..core.rollback import rollback
from ..core.scheduler import ParallelScheduler
from ..core.settings import UpdaterSettings
from ..core.versioning import detect_version_chain
from ..core.workspace import Workspace, WorkspaceFile
from ..tools.archive import ArchiveExtractor, Extractor
from ..tools.hpatch import HPatchTool, PatchTool

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


class GameUpdater:
    def __init__(
        self,
        settings: Optional[UpdaterSettings] = None,
        extractor: Optional[Extractor] = None,
        patch_tool: Optional[PatchTool] = None,
        temp_root: Optional[str] = None,
    ):
        self.settings = settings or UpdaterSettings()
        self.extractor = extractor or ArchiveExtractor(
            sevenzip_path=self.settings.sevenzip_path,
            timeout_sec=self.settings.extract_timeout_sec,
        )
        self.patch_tool = patch_tool or HPatchTool(
            binary_path=self.settings.patch_tool_path,
            timeout_sec=self.settings.patch_timeout_sec,
        )
        self.temp_root = temp_root
        self.last_update_report = UpdateReport()

    def get_last_update_report(self) -> UpdateReport:
        return self.last_update_report

    def check_passphrase(self, archive_path, passphrase: Optional[str]) -> bool:
        return self.extractor.test_archive(Path(archive_path), passphrase)

    # --------------------------
    # Full update
    # --------------------------
    def perform_update(self, request: UpdateRequest, progress_callback: Optional[ProgressCallback] = None) -> UpdateReport:
        report = UpdateReport()
        self.last_update_report = report
        root = request.target_root
        logger.info("Starting update of %s with %s archive(s)", root, len(request.archives))
        for archive in request.archives:
            logger.info("  - %s", archive)

        try:
            if progress_callback:
                progress_callback(0, "Checking update requirements...")
            validate_request(request, self.settings)
            verify_passphrase(request, self.extractor)
            report.resulting_version = detect_version_chain(request.archives)

            with Workspace(temp_root=self.temp_root) as workspace:
                self._extract_all(request, workspace, progress_callback)
                files = workspace.catalog()
                self._apply(request, files, report, progress_callback)
        except UpdaterError as e:
            report.error = str(e)
            logger.error("Update failed: %s", e)
            raise

        report.success = True
        if progress_callback:
            progress_callback(100, "Update complete!")
        logger.info("Update finished: %s", report.summary())
        return report

    def _extract_all(self, request: UpdateRequest, workspace: Workspace, progress_callback) -> None:
        total = len(request.archives)
        for i, archive in enumerate(request.archives, start=1):
            if progress_callback:
                progress_callback(0, f"Extracting archive {i}/{total}: {archive.name}")
            dest = workspace.new_archive_dir()
            try:
                self.extractor.extract(archive, dest, request.passphrase)
            except OSError as e:
                raise ExtractionError(f"Could not extract {archive.name}: {e}") from e
            logger.info("Extracted archive %s/%s", i, total)

    def _apply(
        self,
        request: UpdateRequest,
        files: list[WorkspaceFile],
        report: UpdateReport,
        progress_callback,
    ) -> None:
        root = request.target_root
        settings = self.settings
        try:
            if progress_callback:
                progress_callback(0, "Deleting obsolete files...")
            deletion = process_delete_lists(root, files, settings.delete_list_names)
            report.deleted_count = len(deletion.deleted)

            index = load_patch_index(files, settings.patch_suffix)
            resolver = SourceResolver(
                files,
                index.entries,
                patch_suffix=settings.patch_suffix,
                fuzzy_prefix_length=settings.fuzzy_prefix_length,
                delete_list_names=settings.delete_list_names,
                manifest_paths=index.manifests,
            )
            plan = plan_tasks(files, settings.patch_suffix, settings.delete_list_names, index.manifests)
            executor = PatchExecutor(root, self.patch_tool, resolver, settings)
            scheduler = ParallelScheduler(
                executor,
                max_workers=settings.worker_count(),
                progress_callback=progress_callback,
                abort_on_failure=settings.abort_on_failure,
            )
            report.results = scheduler.run(plan.patch_groups, plan.copy_tasks)
        except Exception as e:
            logger.error("Update failed while modifying %s, attempting rollback: %s", root, e)
            summary = rollback(root)
            report.rollback_errors = summary.errors
            report.rolled_back = not summary.errors
            if summary.errors:
                logger.error("Rollback left %s file(s) unrestored", len(summary.errors))
            if isinstance(e, UpdaterError):
                raise
            raise UpdaterError(f"Update failed while modifying the install: {e}") from e

        if progress_callback:
            progress_callback(100, "Cleaning up temporary files...")
        cleanup = cleanup_target(root, request.archives)
        report.audit_warnings = audit_install(root, settings)
        if cleanup.errors:
            error = CleanupError(f"{len(cleanup.errors)} leftover file(s) could not be removed: {cleanup.errors[0]}")
            logger.warning("%s", error)
            report.audit_warnings.append(str(error))
        if report.failed:
            logger.warning("%s file(s) could not be patched", len(report.failed))
        if report.skipped:
            logger.warning("%s file(s) were skipped", len(report.skipped))
