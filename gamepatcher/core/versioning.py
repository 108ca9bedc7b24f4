from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from packaging import version

logger = logging.getLogger(__name__)

# e.g. game_3.5.51_3.5.52_hdiff.7z
_VERSION_PAIR_RE = re.compile(r"(?P<from>\d+(?:\.\d+)+)_(?P<to>\d+(?:\.\d+)+)")


@dataclass(frozen=True)
class VersionStep:
    archive: str
    from_version: version.Version
    to_version: version.Version


def parse_version_step(archive_path) -> Optional[VersionStep]:
    name = Path(archive_path).name
    match = _VERSION_PAIR_RE.search(name)
    if not match:
        return None
    try:
        return VersionStep(
            archive=name,
            from_version=version.parse(match.group("from")),
            to_version=version.parse(match.group("to")),
        )
    except version.InvalidVersion:
        return None


def detect_version_chain(archives: Iterable[Path]) -> Optional[str]:
    """Return the version the install ends at, when the archive names say so."""
    steps = [parse_version_step(a) for a in archives]
    if not steps or any(step is None for step in steps):
        return None

    for previous, current in zip(steps, steps[1:]):
        if previous.to_version != current.from_version:
            logger.warning(
                "Archive %s ends at %s but %s starts at %s; archives may be out of order",
                previous.archive,
                previous.to_version,
                current.archive,
                current.from_version,
            )
    for step in steps:
        if step.to_version <= step.from_version:
            logger.warning("Archive %s does not move the version forward", step.archive)
    return str(steps[-1].to_version)
