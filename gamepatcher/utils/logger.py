import logging
import os
import platform
from pathlib import Path
from typing import Optional


LOG_FILE_NAME = "gamepatcher.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def log_file_path(log_dir: Optional[Path] = None) -> Path:
    """Where the updater log lives: ``log_dir`` if given, else the per-user data dir."""
    if log_dir:
        return Path(log_dir) / LOG_FILE_NAME
    if os.name == "nt":
        base = Path(os.getenv("APPDATA") or str(Path.home())) / "GamePatcher"
    elif platform.system() == "Darwin":
        base = Path.home() / "Library" / "Application Support" / "GamePatcher"
    else:
        base = Path.home() / ".local" / "share" / "gamepatcher"
    return base / "logs" / LOG_FILE_NAME


def _file_handler(log_file: Path, level: int, formatter: logging.Formatter) -> Optional[logging.Handler]:
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError:
        return None
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def configure_logging(debug: bool, log_dir: Optional[Path] = None) -> logging.Logger:
    """Route update logs to the log file, and to the console in debug mode.

    Without debug only warnings reach the file. When the log file cannot
    be opened the run continues with whatever handlers remain.
    """
    logger = logging.getLogger()
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: list[logging.Handler] = []
    if debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_handler = _file_handler(log_file_path(log_dir), logging.DEBUG if debug else logging.WARNING, formatter)
    if file_handler is not None:
        handlers.append(file_handler)

    for handler in handlers or [logging.NullHandler()]:
        logger.addHandler(handler)
    return logger
