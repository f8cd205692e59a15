"""Reading and writing importcfg manifests.

An importcfg maps package paths to archive files, one directive per line::

    # comment
    packagefile fmt=/opt/go/pkg/linux_amd64/fmt.a

``packagefile`` is the only directive the builder understands; any other
directive is skipped so newer toolchain files still load.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping
import os

from .errors import BuilderIOError, FormatError


ArchiveMap = Dict[str, str]

PACKAGEFILE = "packagefile"
ARCHIVE_SUFFIX = ".a"


def write_importcfg(archive_map: Mapping[str, str]) -> str:
    """Serialize ``archive_map`` with keys in sorted order.

    Entries that :func:`read_importcfg` could not read back unchanged are
    rejected with :class:`FormatError`.
    """

    lines: List[str] = []
    for line_number, key in enumerate(sorted(archive_map), start=1):
        value = archive_map[key]
        line = f"{PACKAGEFILE} {key}={value}"
        problem = _entry_problem(key, value)
        if problem:
            raise FormatError(line_number, line, problem)
        lines.append(line + "\n")
    return "".join(lines)


def _entry_problem(key: str, value: str) -> str | None:
    if not key or not value:
        return "package path and file must be non-empty"
    if "=" in key:
        return "package path must not contain '='"
    if any(char in "\r\n" for char in key + value):
        return "entry must not contain line breaks"
    if key != key.strip() or value != value.strip():
        return "entry must not start or end with whitespace"
    return None


def read_importcfg(text: str, *, source: str | None = None) -> ArchiveMap:
    """Parse importcfg text into a package path to archive path mapping."""

    archive_map: ArchiveMap = {}
    for line_number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        verb, _, args = line.partition(" ")
        if verb != PACKAGEFILE:
            continue

        args = args.strip()
        key, separator, value = args.partition("=")
        if not separator:
            raise FormatError(line_number, raw, f"{PACKAGEFILE} directive missing '='", source)
        if not key or not value:
            raise FormatError(line_number, raw, f"{PACKAGEFILE} directive needs a package path and a file", source)
        archive_map[key] = value
    return archive_map


def load_importcfg(path: str | Path) -> ArchiveMap:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise BuilderIOError(f"cannot read importcfg {path}: {exc.strerror or exc}") from exc
    return read_importcfg(text, source=str(path))


def save_importcfg(archive_map: Mapping[str, str], path: str | Path) -> None:
    try:
        Path(path).write_text(write_importcfg(archive_map), encoding="utf-8")
    except OSError as exc:
        raise BuilderIOError(f"cannot write importcfg {path}: {exc.strerror or exc}") from exc


def build_std_index(root: str | Path) -> ArchiveMap:
    """Index every ``.a`` archive below ``root`` by its package path.

    An archive's location mirrors its package path, so
    ``<root>/net/http.a`` becomes ``net/http``.
    """

    root_path = Path(root)
    if not root_path.is_dir():
        raise BuilderIOError(f"standard library archive directory not found: {root_path}")

    archive_map: ArchiveMap = {}

    def _raise(exc: OSError) -> None:
        raise exc

    try:
        for current, dirnames, filenames in os.walk(root_path, onerror=_raise):
            dirnames.sort()
            for filename in sorted(filenames):
                if not filename.endswith(ARCHIVE_SUFFIX):
                    continue
                file_path = Path(current) / filename
                relative = file_path.relative_to(root_path).as_posix()
                archive_map[relative[: -len(ARCHIVE_SUFFIX)]] = str(file_path)
    except OSError as exc:
        raise BuilderIOError(f"cannot index {root_path}: {exc.strerror or exc}") from exc
    return archive_map


__all__ = [
    "ARCHIVE_SUFFIX",
    "ArchiveMap",
    "PACKAGEFILE",
    "build_std_index",
    "load_importcfg",
    "read_importcfg",
    "save_importcfg",
    "write_importcfg",
]
