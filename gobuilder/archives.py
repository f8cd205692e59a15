"""Resolution of package imports to archive files."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence

from .errors import ImportProblem, UnresolvedImportError, UsageError
from .importcfg import ArchiveMap
from .sourceinfo import SourceInfo


# Imports that need no archive, and imports that require cgo.
BUILTIN_IMPORTS = frozenset({"unsafe"})
CGO_IMPORT = "C"


@dataclass(frozen=True, slots=True)
class Archive:
    """A package path and the archive file that provides it."""

    package_path: str
    file_path: str

    def __str__(self) -> str:
        return f"{self.package_path}={self.file_path}"


def parse_archive(value: str) -> Archive:
    """Parse a ``packagepath=file`` command line value."""

    package_path, separator, file_path = value.partition("=")
    if not separator:
        raise UsageError(f"malformed archive argument {value!r}: expected packagepath=file")
    if not package_path or not file_path:
        raise UsageError(f"malformed archive argument {value!r}: package path and file must be non-empty")
    return Archive(package_path=package_path, file_path=file_path)


def archive_map(archives: Iterable[Archive]) -> ArchiveMap:
    """Convert archives to a map; a later duplicate path replaces an earlier one."""

    return {archive.package_path: archive.file_path for archive in archives}


def merge_tiers(*tiers: Mapping[str, str] | None) -> ArchiveMap:
    """Merge archive tiers in order; later tiers override earlier ones."""

    merged: ArchiveMap = {}
    for tier in tiers:
        if tier:
            merged.update(tier)
    return merged


def resolve_imports(
    sources: Sequence[SourceInfo],
    standard: Mapping[str, str],
    direct: Mapping[str, str],
    built: Mapping[str, str] | None = None,
) -> ArchiveMap:
    """Map every import of the matched ``sources`` to an archive.

    Archives built earlier in this run win over direct dependencies, which
    win over the standard library. Every failing (file, import) pair is
    collected before :class:`UnresolvedImportError` is raised.
    """

    tiers: List[Mapping[str, str]] = [tier for tier in (built, direct, standard) if tier]
    resolved: ArchiveMap = {}
    problems: Dict[tuple[str, str], ImportProblem] = {}

    for source in sources:
        if not source.match:
            continue
        for import_path in source.imports:
            if import_path in BUILTIN_IMPORTS:
                continue
            key = (source.path, import_path)
            if import_path == CGO_IMPORT:
                problems.setdefault(key, ImportProblem(source.path, import_path, "requires cgo, which is not supported"))
                continue
            for tier in tiers:
                file_path = tier.get(import_path)
                if file_path:
                    resolved[import_path] = file_path
                    break
            else:
                problems.setdefault(key, ImportProblem(source.path, import_path, "is not provided by any direct dependency"))

    if problems:
        raise UnresolvedImportError(problems.values())
    return resolved


__all__ = [
    "Archive",
    "BUILTIN_IMPORTS",
    "CGO_IMPORT",
    "archive_map",
    "merge_tiers",
    "parse_archive",
    "resolve_imports",
]
