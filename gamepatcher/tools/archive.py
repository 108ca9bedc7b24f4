"""Archive extraction adapter.

``.zip`` archives are read with :mod:`zipfile`; everything else
(``.7z`` update packages in practice) goes through the 7-Zip command
line. Both paths tell a rejected passphrase apart from other failures.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import stat
import subprocess
import threading
import zipfile
from pathlib import Path
from typing import Optional, Protocol

from ..core.errors import AuthenticationError, ExtractionError
from ..utils.system_binaries import resolve_binary

logger = logging.getLogger(__name__)

if os.name == "nt":
    SEVENZIP_NAMES = ("7z.exe", "7za.exe", "7z")
else:
    SEVENZIP_NAMES = ("7z", "7za", "7zz")

PASSWORD_FAILURE_SIGNALS = (
    "wrong password",
    "can not open encrypted archive",
    "cannot open encrypted archive",
    "data error in encrypted file",
    "crc failed in encrypted file",
)


class Extractor(Protocol):
    def extract(self, archive_path: Path, dest_dir: Path, passphrase: Optional[str] = None) -> None: ...

    def test_archive(self, archive_path: Path, passphrase: Optional[str] = None) -> bool: ...


def is_password_failure(output: str) -> bool:
    lowered = output.lower()
    return any(signal in lowered for signal in PASSWORD_FAILURE_SIGNALS)


class ArchiveExtractor:
    def __init__(self, sevenzip_path: Optional[str] = None, timeout_sec: Optional[float] = None):
        self._explicit_path = sevenzip_path
        self._sevenzip: Optional[str] = None
        self._lock = threading.Lock()
        self.timeout_sec = timeout_sec

    # --------------------------
    # Public API
    # --------------------------
    def extract(self, archive_path: Path, dest_dir: Path, passphrase: Optional[str] = None) -> None:
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Extracting %s -> %s", archive_path.name, dest_dir)
        if archive_path.suffix.lower() == ".zip":
            self._extract_zip(archive_path, dest_dir, passphrase)
        else:
            self._extract_7z(archive_path, dest_dir, passphrase)

    def test_archive(self, archive_path: Path, passphrase: Optional[str] = None) -> bool:
        archive_path = Path(archive_path)
        if archive_path.suffix.lower() == ".zip":
            return self._test_zip(archive_path, passphrase)
        return self._test_7z(archive_path, passphrase)

    # --------------------------
    # ZIP
    # --------------------------
    def _extract_zip(self, archive_path: Path, dest_dir: Path, passphrase: Optional[str]) -> None:
        try:
            with zipfile.ZipFile(archive_path, "r") as zip_ref:
                if passphrase:
                    zip_ref.setpassword(passphrase.encode("utf-8"))
                self._safe_extract(zip_ref, str(dest_dir))
        except RuntimeError as e:
            # zipfile signals encrypted entries and bad passwords this way.
            if "password" in str(e).lower():
                raise AuthenticationError(f"Archive passphrase rejected: {archive_path.name}") from e
            raise ExtractionError(f"Could not extract {archive_path.name}: {e}") from e
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
            raise ExtractionError(f"Could not extract {archive_path.name}: {e}") from e

    def _test_zip(self, archive_path: Path, passphrase: Optional[str]) -> bool:
        try:
            with zipfile.ZipFile(archive_path, "r") as zip_ref:
                if passphrase:
                    zip_ref.setpassword(passphrase.encode("utf-8"))
                return zip_ref.testzip() is None
        except (RuntimeError, zipfile.BadZipFile, OSError) as e:
            logger.debug("ZIP test failed for %s: %s", archive_path.name, e)
            return False

    def _safe_extract(self, zip_ref: zipfile.ZipFile, extract_dir: str) -> None:
        base_path = Path(extract_dir).resolve()
        for member in zip_ref.infolist():
            normalized_name = member.filename.replace("\\", "/")
            member_path = Path(normalized_name)
            first_part = member_path.parts[0] if member_path.parts else ""
            if (
                member_path.is_absolute()
                or normalized_name.startswith("/")
                or ".." in member_path.parts
            ):
                raise ExtractionError(f"Unsafe archive entry detected: {member.filename}")
            if ":" in first_part or re.match(r"^[A-Za-z]:", first_part):
                raise ExtractionError(f"Unsafe archive entry detected: {member.filename}")

            unix_mode = (member.external_attr >> 16) & 0o170000
            if unix_mode == stat.S_IFLNK:
                raise ExtractionError(f"Unsafe archive entry detected: {member.filename}")

            resolved_path = (base_path / normalized_name).resolve()
            if not resolved_path.is_relative_to(base_path):
                raise ExtractionError(f"Unsafe archive entry detected: {member.filename}")

            if member.is_dir():
                resolved_path.mkdir(parents=True, exist_ok=True)
                continue

            resolved_path.parent.mkdir(parents=True, exist_ok=True)
            with zip_ref.open(member, "r") as src, open(resolved_path, "wb") as dst:
                shutil.copyfileobj(src, dst)

    # --------------------------
    # 7-Zip
    # --------------------------
    def sevenzip_binary(self) -> str:
        with self._lock:
            if self._sevenzip is None:
                try:
                    self._sevenzip = resolve_binary(
                        SEVENZIP_NAMES,
                        explicit_path=self._explicit_path,
                        tool_dir_name="7-Zip",
                    )
                except RuntimeError as e:
                    raise ExtractionError(
                        "7-Zip executable not found. Install 7-Zip, add it to PATH, or set GAMEPATCHER_7Z_PATH."
                    ) from e
            return self._sevenzip

    def _run_7z(self, args: list[str]) -> subprocess.CompletedProcess:
        cmd = [self.sevenzip_binary()] + args
        try:
            return subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_sec)
        except subprocess.TimeoutExpired as e:
            raise ExtractionError(f"7-Zip timed out after {self.timeout_sec}s") from e
        except OSError as e:
            raise ExtractionError(f"Could not run 7-Zip: {e}") from e

    def _extract_7z(self, archive_path: Path, dest_dir: Path, passphrase: Optional[str]) -> None:
        # An explicit -p keeps 7-Zip from prompting on encrypted archives.
        result = self._run_7z(["x", str(archive_path), f"-o{dest_dir}", "-y", f"-p{passphrase or ''}"])
        output = f"{result.stdout or ''}\n{result.stderr or ''}"
        if result.returncode != 0:
            if is_password_failure(output):
                raise AuthenticationError(f"Archive passphrase rejected: {archive_path.name}")
            raise ExtractionError(
                f"7-Zip extraction failed for {archive_path.name} (exit {result.returncode}): "
                f"{(result.stderr or result.stdout or '').strip()[-500:]}"
            )
        logger.debug("7-Zip output: %s", (result.stdout or "").strip())

    def _test_7z(self, archive_path: Path, passphrase: Optional[str]) -> bool:
        result = self._run_7z(["t", str(archive_path), "-y", f"-p{passphrase or ''}"])
        if result.returncode != 0:
            logger.debug("7-Zip test failed for %s: %s", archive_path.name, (result.stderr or "").strip())
        return result.returncode == 0
