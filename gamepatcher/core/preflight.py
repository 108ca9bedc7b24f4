from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional

import psutil

from .errors import AuthenticationError, StructuralError
from .models import UpdateRequest
from .settings import UpdaterSettings
from ..tools.archive import Extractor

logger = logging.getLogger(__name__)


def format_bytes(size: float) -> str:
    units = ("B", "KB", "MB", "GB", "TB")
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {units[unit]}"


def _can_write_dir(path: Path) -> bool:
    try:
        with tempfile.NamedTemporaryFile(dir=str(path), prefix=".gamepatcher_write_test_", delete=True):
            pass
        return True
    except OSError:
        return False


def validate_request(request: UpdateRequest, settings: Optional[UpdaterSettings] = None) -> None:
    """Raise StructuralError when the run must not start. Touches nothing."""
    settings = settings or UpdaterSettings()
    root = request.target_root

    if not root.is_dir():
        raise StructuralError(f"Game directory does not exist: {root}")
    if not request.archives:
        raise StructuralError("No update archives were given")
    for archive in request.archives:
        if not archive.is_file():
            raise StructuralError(f"Update archive does not exist: {archive}")

    archive_bytes = sum(a.stat().st_size for a in request.archives)
    required = int(archive_bytes * settings.min_free_space_factor)
    try:
        free = psutil.disk_usage(str(root)).free
    except OSError as e:
        logger.warning("Could not determine free space for %s: %s", root, e)
    else:
        if free < required:
            raise StructuralError(
                f"Insufficient disk space: need at least {format_bytes(required)}, "
                f"{format_bytes(free)} available"
            )

    if not _can_write_dir(root):
        raise StructuralError(f"No write permission for game directory: {root}")

    logger.info("Pre-flight checks passed for %s (%s archive(s))", root, len(request.archives))


def verify_passphrase(request: UpdateRequest, extractor: Extractor) -> None:
    if not request.passphrase:
        return
    for archive in request.archives:
        if not extractor.test_archive(archive, request.passphrase):
            raise AuthenticationError(f"Passphrase rejected for {archive.name}")
    logger.info("Passphrase verified for %s archive(s)", len(request.archives))
