"""Error types raised by builder actions.

Every error is fatal to the running action. ``exit_code`` is what the command
line front end returns for it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence

from core.command_runner import format_command


class BuilderError(Exception):
    """Base class for all builder failures."""

    exit_code = 1


class UsageError(BuilderError):
    """Raised for malformed invocations, before anything touches the filesystem."""

    exit_code = 2


class ParseError(BuilderError):
    """Raised when a source file cannot be classified."""

    def __init__(self, path: str, message: str, line: int | None = None):
        location = f"{path}:{line}" if line is not None else path
        super().__init__(f"{location}: {message}")
        self.path = path
        self.line = line
        self.reason = message


class FormatError(BuilderError):
    """Raised when an importcfg manifest contains a malformed directive."""

    def __init__(self, line_number: int, line: str, message: str, source: str | None = None):
        prefix = f"{source}:{line_number}" if source else f"line {line_number}"
        super().__init__(f"{prefix}: {message}: {line!r}")
        self.line_number = line_number
        self.line = line


@dataclass(frozen=True, slots=True)
class ImportProblem:
    file_name: str
    import_path: str
    reason: str

    def describe(self) -> str:
        return f"{self.file_name}: import {self.import_path!r} {self.reason}"


class UnresolvedImportError(BuilderError):
    """Raised with every import that could not be mapped to an archive."""

    def __init__(self, problems: Iterable[ImportProblem]):
        self.problems: List[ImportProblem] = list(problems)
        count = len(self.problems)
        noun = "import" if count == 1 else "imports"
        lines = [f"{count} unresolved {noun}:"]
        lines.extend(f"  {problem.describe()}" for problem in self.problems)
        super().__init__("\n".join(lines))


class ConflictError(BuilderError):
    """Raised when test sources disagree on package name or ``TestMain``."""


class ToolInvocationError(BuilderError):
    """Raised when the compiler or linker cannot be run or exits nonzero."""

    def __init__(self, command: Sequence[str], returncode: int | None, message: str | None = None):
        self.command = list(command)
        self.returncode = returncode
        if message is None:
            message = f"{format_command(self.command)} exited with status {returncode}"
        super().__init__(message)
        if returncode is None:
            self.exit_code = 127
        elif returncode > 0:
            self.exit_code = returncode


class BuilderIOError(BuilderError):
    """Raised when temporary or output files cannot be created, moved or removed."""


__all__ = [
    "BuilderError",
    "BuilderIOError",
    "ConflictError",
    "FormatError",
    "ImportProblem",
    "ParseError",
    "ToolInvocationError",
    "UnresolvedImportError",
    "UsageError",
]
