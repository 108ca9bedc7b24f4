"""Command line entry point for gamepatcher."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from .core.cleanup import gather_install_info
from .core.errors import AuthenticationError, StructuralError, UpdaterError
from .core.models import PatchOutcome, UpdateRequest
from .core.preflight import format_bytes
from .core.settings import FailurePolicy, UpdaterSettings
from .updater.service import GameUpdater
from .utils.logger import configure_logging, log_file_path

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_AUTH = 2
EXIT_STRUCTURAL = 3


def _print_progress(percent: int, message: str) -> None:
    print(f"[{percent:3d}%] {message}", flush=True)


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--debug", action="store_true", help="verbose console and file logging")
    common.add_argument("--log-dir", default=None)

    parser = argparse.ArgumentParser(prog="gamepatcher", description="Apply hdiff update archives to a game install")
    sub = parser.add_subparsers(dest="command", required=True)

    update = sub.add_parser("update", parents=[common], help="apply one or more update archives")
    update.add_argument("game_dir")
    update.add_argument("archives", nargs="+", help="update archives, oldest first")
    secret = update.add_mutually_exclusive_group()
    secret.add_argument("--password", default=None)
    secret.add_argument("--password-env", default=None, metavar="VAR", help="read the passphrase from VAR")
    update.add_argument("--workers", type=int, default=None)
    update.add_argument("--failure-policy", choices=[p.value for p in FailurePolicy], default=None)
    update.add_argument("--strict-critical", action="store_true", help="treat critical-file patch failures as failures")
    update.add_argument("--config", default=None, help="JSON settings file")
    update.add_argument("--patch-tool", default=None, help="path to hpatchz")
    update.add_argument("--sevenzip", default=None, help="path to 7z")

    info = sub.add_parser("info", parents=[common], help="show a summary of a game install")
    info.add_argument("game_dir")

    check = sub.add_parser("check-password", parents=[common], help="test an archive passphrase")
    check.add_argument("archive")
    check.add_argument("--password", required=True)
    check.add_argument("--sevenzip", default=None)
    return parser


def _settings_from_args(args: argparse.Namespace) -> UpdaterSettings:
    settings = UpdaterSettings.load(args.config) if getattr(args, "config", None) else UpdaterSettings()
    settings = settings.with_env()
    if getattr(args, "workers", None):
        settings.max_workers = args.workers
    if getattr(args, "failure_policy", None):
        settings.failure_policy = FailurePolicy(args.failure_policy)
    if getattr(args, "strict_critical", False):
        settings.tolerate_critical_failures = False
    if getattr(args, "patch_tool", None):
        settings.patch_tool_path = args.patch_tool
    if getattr(args, "sevenzip", None):
        settings.sevenzip_path = args.sevenzip
    return settings


def _print_report(report) -> None:
    print()
    print("=== Update summary ===")
    for outcome in PatchOutcome:
        count = report.count(outcome)
        if count:
            print(f"  {outcome.value:<22} {count}")
    print(f"  {'deleted':<22} {report.deleted_count}")
    if report.resulting_version:
        print(f"  version now {report.resulting_version}")
    for result in report.failed:
        print(f"  FAILED  {result.relative_target}: {result.reason}")
    for warning in report.audit_warnings:
        print(f"  WARNING {warning}")


def _cmd_update(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    passphrase = args.password
    if args.password_env:
        passphrase = os.environ.get(args.password_env)
    request = UpdateRequest.create(args.game_dir, args.archives, passphrase)
    updater = GameUpdater(settings=settings)

    try:
        report = updater.perform_update(request, progress_callback=_print_progress)
    except AuthenticationError as e:
        print(f"Wrong archive password: {e}", file=sys.stderr)
        return EXIT_AUTH
    except StructuralError as e:
        print(f"Cannot start update: {e}", file=sys.stderr)
        return EXIT_STRUCTURAL
    except UpdaterError as e:
        report = updater.get_last_update_report()
        print(f"Update failed: {e}", file=sys.stderr)
        if report.rolled_back:
            print("Changes were rolled back.", file=sys.stderr)
        elif report.rollback_errors:
            print(f"Rollback incomplete, {len(report.rollback_errors)} file(s) were not restored:", file=sys.stderr)
            for error in report.rollback_errors:
                print(f"  {error}", file=sys.stderr)
        print(f"Log file: {log_file_path(args.log_dir)}", file=sys.stderr)
        return EXIT_FAILED

    _print_report(report)
    if report.failed:
        print(f"Update finished with {len(report.failed)} failed file(s).")
        return EXIT_FAILED
    print("Update successful!")
    return EXIT_OK


def _cmd_info(args: argparse.Namespace) -> int:
    root = Path(args.game_dir)
    if not root.is_dir():
        print(f"Game directory does not exist: {root}", file=sys.stderr)
        return EXIT_STRUCTURAL
    info = gather_install_info(root)
    print(f"Game directory: {info.root}")
    print(f"Files:          {info.file_count}")
    print(f"Total size:     {format_bytes(info.total_bytes)}")
    if info.free_bytes is not None:
        print(f"Free space:     {format_bytes(info.free_bytes)}")
    print(f"Executables:    {', '.join(info.executables) or '-'}")
    print(f"Data folders:   {', '.join(info.data_dirs) or '-'}")
    if info.leftovers:
        print(f"Leftover update artifacts: {len(info.leftovers)}")
        for leftover in info.leftovers[:10]:
            print(f"  {leftover}")
    return EXIT_OK


def _cmd_check_password(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    updater = GameUpdater(settings=settings)
    try:
        valid = updater.check_passphrase(args.archive, args.password)
    except UpdaterError as e:
        print(f"Could not test archive: {e}", file=sys.stderr)
        return EXIT_FAILED
    if valid:
        print("Password OK")
        return EXIT_OK
    print("Wrong password", file=sys.stderr)
    return EXIT_AUTH


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug, log_dir=Path(args.log_dir) if args.log_dir else None)

    commands = {
        "update": _cmd_update,
        "info": _cmd_info,
        "check-password": _cmd_check_password,
    }
    try:
        return commands[args.command](args)
    except (OSError, ValueError) as e:
        logger.error("gamepatcher %s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
