"""Invocation of the Go compiler and linker."""
from __future__ import annotations

from pathlib import Path
from typing import List, Sequence
import os

from core.command_runner import CommandError, CommandNotFoundError, CommandRunner

from .config import BuilderConfig
from .console import Console
from .errors import ToolInvocationError


class Toolchain:
    """Builds and runs ``compile`` and ``link`` command lines.

    Tool output is streamed through untouched; a nonzero exit becomes a
    :class:`ToolInvocationError` carrying the tool's status.
    """

    def __init__(self, *, config: BuilderConfig, runner: CommandRunner, console: Console):
        self._config = config
        self._runner = runner
        self._console = console

    def tool_path(self, name: str) -> Path:
        suffix = ".exe" if self._config.host_goos == "windows" else ""
        return self._config.resolve_tool_dir() / f"{name}{suffix}"

    @staticmethod
    def compile_command(
        compiler: Path | str,
        *,
        importcfg: Path | str,
        output: Path | str,
        sources: Sequence[str],
        package_path: str | None = None,
    ) -> List[str]:
        command = [str(compiler)]
        if package_path:
            command.extend(["-p", package_path])
        command.extend(["-importcfg", str(importcfg), "-o", str(output), "--"])
        command.extend(sources)
        return command

    @staticmethod
    def link_command(
        linker: Path | str,
        *,
        importcfg: Path | str,
        output: Path | str,
        main_archive: Path | str,
    ) -> List[str]:
        return [str(linker), "-importcfg", str(importcfg), "-o", str(output), "--", str(main_archive)]

    def compile(
        self,
        *,
        importcfg: Path | str,
        output: Path | str,
        sources: Sequence[str],
        package_path: str | None = None,
    ) -> None:
        command = self.compile_command(
            self.tool_path("compile"),
            importcfg=importcfg,
            output=output,
            sources=sources,
            package_path=package_path,
        )
        self._run(command, note=f"compile {package_path or '<unnamed>'}")

    def link(self, *, importcfg: Path | str, output: Path | str, main_archive: Path | str) -> None:
        command = self.link_command(
            self.tool_path("link"),
            importcfg=importcfg,
            output=output,
            main_archive=main_archive,
        )
        self._run(command, note="link")

    def _run(self, command: List[str], *, note: str) -> None:
        if not self._config.dry_run:
            self._ensure_executable(command)
        self._console.info(self._runner.format_command(command))
        try:
            self._runner.run(command, note=note, stream=True)
        except CommandError as exc:
            raise ToolInvocationError(command, exc.result.returncode) from exc
        except CommandNotFoundError as exc:
            raise ToolInvocationError(command, None, str(exc)) from exc

    @staticmethod
    def _ensure_executable(command: List[str]) -> None:
        tool = command[0]
        if not os.path.isfile(tool) or not os.access(tool, os.X_OK):
            raise ToolInvocationError(command, None, f"tool not found or not executable: {tool}")


__all__ = ["Toolchain"]
