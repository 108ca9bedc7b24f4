"""Patch index (hdiff map) parsing.

The index maps a patch file name to the original file it was built
from. It is a hint table only: nothing fails when it is missing or
malformed. Three layouts are accepted, tried in order:

1. one JSON object ``{"file.bin.hdiff": "Data/file.bin", ...}``
2. JSON lines, each carrying the remote path of the original
   (``{"remoteName": "Data/file.bin"}``); the key is synthesized as
   ``basename(remote) + patch_suffix``
3. text lines ``patch -> original`` split at the earliest of ``->``,
   ``=``, tab or space in the line
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .workspace import WorkspaceFile

logger = logging.getLogger(__name__)

REMOTE_PATH_FIELDS = ("remoteName", "remote_name", "remotePath", "remote_path")
TEXT_SEPARATORS = ("->", "=", "\t", " ")
# Names that only ever belong to an hdiff map.
INDEX_NAME_MARKERS = ("hdiff_map", "hdiffmap", "hdifffiles")


@dataclass
class PatchIndex:
    path: Optional[Path] = None
    entries: dict[str, str] = field(default_factory=dict)
    # Workspace files that are index manifests rather than game payload.
    manifests: frozenset[Path] = frozenset()


def has_index_marker(file_name: str) -> bool:
    name = file_name.lower()
    return any(marker in name for marker in INDEX_NAME_MARKERS)


def _parse_json_object(content: str, patch_suffix: str) -> Optional[dict[str, str]]:
    try:
        data = json.loads(content)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    # A one-line JSON-lines file is also a valid object.
    if _remote_path_of(data) is not None and not any(
        str(key).endswith(patch_suffix) for key in data
    ):
        return None
    index: dict[str, str] = {}
    for key, value in data.items():
        if isinstance(value, str) and value:
            index[str(key)] = value
    return index


def _remote_path_of(record: dict) -> Optional[str]:
    for field_name in REMOTE_PATH_FIELDS:
        value = record.get(field_name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _parse_json_lines(content: str, patch_suffix: str) -> Optional[dict[str, str]]:
    index: dict[str, str] = {}
    saw_record = False
    for line in content.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except ValueError:
            return None
        if not isinstance(record, dict):
            return None
        saw_record = True
        remote = _remote_path_of(record)
        if remote is None:
            logger.debug("Patch index line has no remote path field: %s", line)
            continue
        remote = remote.replace("\\", "/")
        index[posixpath.basename(remote) + patch_suffix] = remote
    return index if saw_record else None


def _split_text_line(line: str) -> Optional[tuple[str, str]]:
    found = [(line.find(sep), -len(sep), sep) for sep in TEXT_SEPARATORS if sep in line]
    if not found:
        return None
    _, _, separator = min(found)
    patch_name, _, rest = line.partition(separator)
    rest = rest.strip()
    while rest.startswith(("->", "=")):
        rest = rest[2:].strip() if rest.startswith("->") else rest[1:].strip()
    # Spaces may appear inside the original path; the other separators end it.
    original = re.split(r"->|=|\t", rest, maxsplit=1)[0].strip()
    patch_name = patch_name.strip()
    if not patch_name or not original:
        return None
    return patch_name, original


def _parse_text(content: str) -> dict[str, str]:
    index: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        pair = _split_text_line(line)
        if pair is not None:
            index[pair[0]] = pair[1]
    return index


def parse_patch_index(content: str, patch_suffix: str = ".hdiff") -> dict[str, str]:
    content = content.lstrip("\ufeff")
    if not content.strip():
        return {}

    index = _parse_json_object(content, patch_suffix)
    if index is not None:
        return index

    index = _parse_json_lines(content, patch_suffix)
    if index is not None:
        return index

    return _parse_text(content)


def _read_index(index_path: Path, patch_suffix: str) -> dict[str, str]:
    try:
        content = index_path.read_text(encoding="utf-8", errors="replace")
        return parse_patch_index(content, patch_suffix)
    except (OSError, ValueError) as e:
        logger.warning("Could not read patch index %s: %s", index_path, e)
        return {}


def load_patch_index(workspace_files: Iterable[WorkspaceFile], patch_suffix: str = ".hdiff") -> PatchIndex:
    """Select and parse the workspace patch index. Never raises.

    A file named like an hdiff map always wins. A generic ``*map.json``
    only counts as the index when it maps at least one patch file, so
    game data that happens to end in ``map.json`` stays payload.
    """
    files = list(workspace_files)
    marked = [f.path for f in files if has_index_marker(f.name)]
    if marked:
        if len(marked) > 1:
            logger.warning("Found %s patch index files, using %s", len(marked), marked[0])
        index = PatchIndex(marked[0], _read_index(marked[0], patch_suffix), frozenset(marked))
    else:
        index = PatchIndex()
        for item in files:
            if not item.name.lower().endswith("map.json"):
                continue
            entries = _read_index(item.path, patch_suffix)
            if any(key.endswith(patch_suffix) for key in entries):
                index = PatchIndex(item.path, entries, frozenset([item.path]))
                break
            logger.debug("%s maps no patch files, treating it as game data", item.relative_path)

    if index.path is None:
        logger.info("No patch index found in workspace")
    elif not index.entries:
        logger.warning("Patch index %s is empty or unreadable", index.path.name)
    else:
        logger.info("Loaded %s patch index entries from %s", len(index.entries), index.path.name)
    return index
