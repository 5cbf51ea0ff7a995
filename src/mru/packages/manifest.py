"""package.json parsing, targeted version edits, and atomic rewrite.

The document keeps the original text and records the character span of
every dependency value, so an edit replaces exactly one JSON string and
every other byte (indentation, key order, line endings, trailing newline)
is preserved.
"""

from __future__ import annotations

import json
import logging
import os
import re
import stat
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass
from json.decoder import scanstring
from pathlib import Path

from mru.errors import ManifestNotFoundError, ManifestParseError
from mru.models import (
    SECTION_PRIORITY,
    DependencyEntry,
    DependencySection,
    ManifestChange,
    NoChangeNeeded,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE = "package.json"

_WS = re.compile(r"[ \t\n\r]*")
_DECODER = json.JSONDecoder()
_BOM = "\ufeff"


@dataclass(frozen=True, slots=True)
class DependencyLocation:
    section: DependencySection
    name: str
    value: object
    start: int
    end: int


def _skip_ws(text: str, idx: int) -> int:
    match = _WS.match(text, idx)
    return match.end() if match else idx


def _object_members(text: str, idx: int) -> Iterator[tuple[str, object, int, int]]:
    """Yield (key, value, value_start, value_end) for the object at *idx*.

    Assumes *text* already parsed as valid JSON.
    """
    if text[idx] != "{":
        raise ManifestParseError(f"expected object at offset {idx}")
    idx = _skip_ws(text, idx + 1)
    if text[idx] == "}":
        return
    while True:
        key, idx = scanstring(text, idx + 1)
        idx = _skip_ws(text, idx)
        idx = _skip_ws(text, idx + 1)  # ':'
        value, end = _DECODER.raw_decode(text, idx)
        yield key, value, idx, end
        idx = _skip_ws(text, end)
        if text[idx] == "}":
            return
        idx = _skip_ws(text, idx + 1)  # ','


class ManifestDocument:
    def __init__(self, text: str) -> None:
        self.text = text
        self._offset = len(_BOM) if text.startswith(_BOM) else 0
        try:
            data = json.loads(text[self._offset :])
        except json.JSONDecodeError as exc:
            raise ManifestParseError(f"invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ManifestParseError("manifest root must be a JSON object")
        self.data: dict[str, object] = data
        self._locations = self._index()

    def _index(self) -> dict[DependencySection, dict[str, DependencyLocation]]:
        start = _skip_ws(self.text, self._offset)
        index: dict[DependencySection, dict[str, DependencyLocation]] = {}
        sections = {section.value: section for section in SECTION_PRIORITY}
        for key, value, value_start, _ in _object_members(self.text, start):
            section = sections.get(key)
            if section is None or not isinstance(value, dict):
                continue
            entries: dict[str, DependencyLocation] = {}
            for name, dep_value, dep_start, dep_end in _object_members(self.text, value_start):
                entries[name] = DependencyLocation(
                    section=section,
                    name=name,
                    value=dep_value,
                    start=dep_start,
                    end=dep_end,
                )
            index[section] = entries
        return index

    def find(self, package_name: str) -> DependencyLocation | None:
        for section in SECTION_PRIORITY:
            location = self._locations.get(section, {}).get(package_name)
            if location is not None:
                return location
        return None

    def dependencies(self) -> list[DependencyEntry]:
        entries: list[DependencyEntry] = []
        for section in SECTION_PRIORITY:
            for location in self._locations.get(section, {}).values():
                if isinstance(location.value, str):
                    entries.append(
                        DependencyEntry(
                            name=location.name,
                            version=location.value,
                            section=section,
                        )
                    )
        return entries

    def with_version(self, location: DependencyLocation, version_spec: str) -> ManifestDocument:
        literal = json.dumps(version_spec, ensure_ascii=False)
        return ManifestDocument(self.text[: location.start] + literal + self.text[location.end :])

    def dumps(self) -> str:
        return self.text


def manifest_path(repo_path: Path) -> Path:
    return repo_path / MANIFEST_FILE


def load_manifest(repo_path: Path) -> ManifestDocument:
    path = manifest_path(repo_path)
    if not path.is_file():
        raise ManifestNotFoundError(f"{MANIFEST_FILE} not found in repository: {repo_path}")
    try:
        text = path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ManifestParseError(f"{MANIFEST_FILE} is not valid UTF-8: {exc}") from exc
    return ManifestDocument(text)


def write_atomic(path: Path, text: str) -> None:
    """Write *text* next to *path* and rename it into place."""
    mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else None
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(text.encode("utf-8"))
            handle.flush()
            os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _plan(
    document: ManifestDocument, package_name: str, version_spec: str
) -> tuple[ManifestChange | NoChangeNeeded, DependencyLocation | None]:
    location = document.find(package_name)
    if location is None:
        return NoChangeNeeded(reason="not found"), None
    if not isinstance(location.value, str):
        raise ManifestParseError(
            f"{location.section.value}.{package_name} is not a version string"
        )
    if location.value == version_spec:
        return NoChangeNeeded(reason=f"already at {version_spec}"), None
    change = ManifestChange(
        dependency_section=location.section,
        old_version=location.value,
        new_version=version_spec,
    )
    return change, location


def plan_update(
    repo_path: Path, package_name: str, version_spec: str
) -> ManifestChange | NoChangeNeeded:
    """Compute the change a real update would make, without writing."""
    document = load_manifest(repo_path)
    result, _ = _plan(document, package_name, version_spec)
    return result


def apply_update(
    repo_path: Path, package_name: str, version_spec: str
) -> ManifestChange | NoChangeNeeded:
    document = load_manifest(repo_path)
    result, location = _plan(document, package_name, version_spec)
    if isinstance(result, NoChangeNeeded) or location is None:
        return result
    updated = document.with_version(location, version_spec)
    write_atomic(manifest_path(repo_path), updated.dumps())
    logger.info(
        "Updated %s in %s from %s to %s",
        package_name,
        result.dependency_section.value,
        result.old_version,
        result.new_version,
    )
    return result


def get_version(repo_path: Path, package_name: str) -> str | None:
    location = load_manifest(repo_path).find(package_name)
    if location is None or not isinstance(location.value, str):
        return None
    return location.value


def list_dependencies(repo_path: Path) -> list[DependencyEntry]:
    return load_manifest(repo_path).dependencies()
