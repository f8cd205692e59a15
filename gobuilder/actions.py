"""Builder actions: compile, link, test and stdimportcfg.

Each action classifies its sources, resolves imports to archives, writes the
importcfg manifests the Go tools read, and runs the tools. Temporary files
live in a :class:`TempFileScope` and are removed on every exit path. Outputs
are produced in a staging directory beside the requested path and moved into
place only once the action has succeeded.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Callable, ClassVar, Dict, List, Sequence, Tuple, Type, Union
import os
import shutil
import tempfile

from core.command_runner import CommandRunner

from .archives import Archive, archive_map, merge_tiers, resolve_imports
from .config import BuilderConfig
from .console import Console
from .constraints import BuildContext
from .errors import BuilderIOError, UsageError
from .importcfg import ArchiveMap, build_std_index, load_importcfg, write_importcfg
from .sourceinfo import SourceInfo, classify
from .testmain import TestGroup, TestHarness, synthesize
from .toolchain import Toolchain


TEMP_PREFIX = "gobuilder-"


class Action(str, Enum):
    COMPILE = "compile"
    LINK = "link"
    TEST = "test"
    STDIMPORTCFG = "stdimportcfg"


@dataclass(frozen=True, slots=True)
class CompileRequest:
    action: ClassVar[Action] = Action.COMPILE

    sources: Tuple[str, ...]
    std_importcfg: str
    output: str
    archives: Tuple[Archive, ...] = ()
    package_path: str | None = None

    def validate(self) -> None:
        _require(self.std_importcfg, "--stdimportcfg")
        _require(self.output, "-o")
        if not self.sources:
            raise UsageError("compile: no source files given")


@dataclass(frozen=True, slots=True)
class LinkRequest:
    action: ClassVar[Action] = Action.LINK

    main_archive: str
    std_importcfg: str
    output: str
    archives: Tuple[Archive, ...] = ()

    def validate(self) -> None:
        _require(self.std_importcfg, "--stdimportcfg")
        _require(self.main_archive, "--main")
        _require(self.output, "-o")


@dataclass(frozen=True, slots=True)
class TestRequest:
    action: ClassVar[Action] = Action.TEST
    __test__ = False

    sources: Tuple[str, ...]
    std_importcfg: str
    output: str
    direct: Tuple[Archive, ...] = ()
    transitive: Tuple[Archive, ...] = ()
    package_path: str = "default"
    run_dir: str = "."

    def validate(self) -> None:
        _require(self.std_importcfg, "--stdimportcfg")
        _require(self.output, "-o")
        _require(self.package_path, "-p")
        if not self.sources:
            raise UsageError("test: no source files given")


@dataclass(frozen=True, slots=True)
class IndexRequest:
    action: ClassVar[Action] = Action.STDIMPORTCFG

    output: str
    root: str | None = None

    def validate(self) -> None:
        _require(self.output, "-o")


ActionRequest = Union[CompileRequest, LinkRequest, TestRequest, IndexRequest]


def _require(value: str | None, flag: str) -> None:
    if not value:
        raise UsageError(f"missing required argument {flag}")


@dataclass
class TempFileScope:
    """Tracks temporary files and directories created during one action.

    Everything tracked is removed when the scope exits, whether the action
    succeeded or not. A failed removal does not stop the others.
    """

    console: Console
    _paths: List[Path] = field(default_factory=list)

    def __enter__(self) -> "TempFileScope":
        return self

    def __exit__(
        self,
        exc_type: Type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool:
        failures = self.release()
        if failures:
            message = "; ".join(failures)
            if exc_type is None:
                raise BuilderIOError(f"cannot remove temporary files: {message}")
            self.console.error(f"cannot remove temporary files: {message}")
        return False

    @property
    def paths(self) -> List[Path]:
        return list(self._paths)

    def track(self, path: Path) -> Path:
        self._paths.append(path)
        return path

    def forget(self, path: Path) -> None:
        self._paths = [candidate for candidate in self._paths if candidate != path]

    def create(self, *, suffix: str = "", prefix: str = TEMP_PREFIX, directory: Path | None = None) -> Path:
        try:
            handle, name = tempfile.mkstemp(suffix=suffix, prefix=prefix, dir=directory)
        except OSError as exc:
            raise BuilderIOError(f"cannot create temporary file: {exc.strerror or exc}") from exc
        path = self.track(Path(name))
        try:
            os.close(handle)
        except OSError as exc:
            raise BuilderIOError(f"cannot close temporary file {path}: {exc.strerror or exc}") from exc
        return path

    def create_dir(self, *, prefix: str = TEMP_PREFIX, directory: Path | None = None) -> Path:
        try:
            name = tempfile.mkdtemp(prefix=prefix, dir=directory)
        except OSError as exc:
            raise BuilderIOError(f"cannot create temporary directory: {exc.strerror or exc}") from exc
        return self.track(Path(name))

    def write_text(self, content: str, *, suffix: str = "", prefix: str = TEMP_PREFIX) -> Path:
        path = self.create(suffix=suffix, prefix=prefix)
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise BuilderIOError(f"cannot write temporary file {path}: {exc.strerror or exc}") from exc
        return path

    def stage_output(self, output: Path) -> Path:
        """Return a path beside ``output`` for the tool to write to."""

        parent = output.parent
        if not parent.is_dir():
            raise BuilderIOError(f"output directory does not exist: {parent}")
        staging = self.create_dir(prefix=f".{output.name}.", directory=parent)
        return staging / output.name

    def release(self) -> List[str]:
        failures: List[str] = []
        for path in reversed(self._paths):
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as exc:
                failures.append(f"{path}: {exc.strerror or exc}")
        self._paths.clear()
        return failures


class ActionRunner:
    """Runs one builder action per call to :meth:`run`."""

    def __init__(
        self,
        *,
        config: BuilderConfig,
        command_runner: CommandRunner,
        console: Console | None = None,
    ) -> None:
        self._config = config
        self._console = console or Console(config.verbosity)
        self._toolchain = Toolchain(config=config, runner=command_runner, console=self._console)
        self._context = BuildContext.from_config(config)
        self._handlers: Dict[Action, Callable[..., Path]] = {
            Action.COMPILE: self._compile,
            Action.LINK: self._link,
            Action.TEST: self._test,
            Action.STDIMPORTCFG: self._stdimportcfg,
        }

    @property
    def context(self) -> BuildContext:
        return self._context

    def run(self, request: ActionRequest) -> Path:
        request.validate()
        handler = self._handlers.get(request.action)
        if handler is None:
            raise UsageError(f"unknown action: {request.action}")
        self._console.debug(f"{request.action.value}: {request}")
        return handler(request)

    def classify_sources(self, paths: Sequence[str]) -> List[SourceInfo]:
        """Classify ``paths`` and return the matched sources in input order."""

        matched: List[SourceInfo] = []
        for path in paths:
            source = classify(path, self._context)
            if source.match:
                matched.append(source)
            else:
                self._console.info(f"skipping {path}: excluded by build constraints")
        return matched

    def _promote(self, scope: TempFileScope, staged: Path, output: Path) -> None:
        if self._config.dry_run:
            self._console.dry(f"would write {output}")
            return
        if not staged.exists():
            raise BuilderIOError(f"tool did not produce {output}")
        try:
            os.replace(staged, output)
        except OSError as exc:
            raise BuilderIOError(f"cannot move {staged} to {output}: {exc.strerror or exc}") from exc
        scope.forget(staged)
        self._console.info(f"wrote {output}")

    def _compile(self, request: CompileRequest) -> Path:
        output = Path(request.output)
        sources = self.classify_sources(request.sources)
        if not sources:
            raise UsageError("compile: no source files match the build constraints")
        standard = load_importcfg(request.std_importcfg)
        resolved = resolve_imports(sources, standard, archive_map(request.archives))

        with TempFileScope(self._console) as scope:
            importcfg = scope.write_text(write_importcfg(resolved), prefix="importcfg-")
            staged = scope.stage_output(output)
            self._toolchain.compile(
                importcfg=importcfg,
                output=staged,
                sources=[source.path for source in sources],
                package_path=request.package_path,
            )
            self._promote(scope, staged, output)
        return output

    def _link(self, request: LinkRequest) -> Path:
        output = Path(request.output)
        manifest = merge_tiers(load_importcfg(request.std_importcfg), archive_map(request.archives))

        with TempFileScope(self._console) as scope:
            importcfg = scope.write_text(write_importcfg(manifest), prefix="importcfg-")
            staged = scope.stage_output(output)
            self._toolchain.link(importcfg=importcfg, output=staged, main_archive=request.main_archive)
            self._promote(scope, staged, output)
        return output

    def _test(self, request: TestRequest) -> Path:
        output = Path(request.output)
        sources = self.classify_sources(request.sources)
        harness = synthesize(sources, request.package_path, request.run_dir)
        if not harness.groups:
            raise UsageError("test: no source files match the build constraints")
        standard = load_importcfg(request.std_importcfg)
        direct = archive_map(request.direct)

        with TempFileScope(self._console) as scope:
            plans: List[Tuple[TestGroup, Path, ArchiveMap]] = []
            built: ArchiveMap = {}
            # Resolve every group before any tool runs.
            for group, suffix in ((harness.internal, "-test.a"), (harness.external, "-xtest.a")):
                if not group.present:
                    continue
                archive = scope.create(suffix=suffix)
                resolved = resolve_imports(group.sources, standard, direct, built)
                plans.append((group, archive, resolved))
                built[group.import_path] = str(archive)

            for group, archive, resolved in plans:
                self._compile_group(scope, group, archive, resolved)

            self._link_harness(scope, request, harness, standard, direct, built, output)
        return output

    def _compile_group(self, scope: TempFileScope, group: TestGroup, archive: Path, resolved: ArchiveMap) -> None:
        self._console.info(f"compiling {group.alias} archive {group.import_path} ({len(group.tests)} tests)")
        importcfg = scope.write_text(write_importcfg(resolved), prefix="importcfg-")
        self._toolchain.compile(
            importcfg=importcfg,
            output=archive,
            sources=group.source_paths,
            package_path=group.import_path,
        )

    def _link_harness(
        self,
        scope: TempFileScope,
        request: TestRequest,
        harness: TestHarness,
        standard: ArchiveMap,
        direct: ArchiveMap,
        built: ArchiveMap,
        output: Path,
    ) -> None:
        if harness.override is not None:
            self._console.info(f"using TestMain from {harness.override.import_path}")
        main_source = scope.write_text(harness.source, suffix="-testmain.go")
        manifest = merge_tiers(standard, direct, archive_map(request.transitive), built)
        importcfg = scope.write_text(write_importcfg(manifest), prefix="importcfg-")
        main_archive = scope.create(suffix="-testmain.a")
        self._toolchain.compile(
            importcfg=importcfg,
            output=main_archive,
            sources=[str(main_source)],
            package_path="main",
        )
        staged = scope.stage_output(output)
        self._toolchain.link(importcfg=importcfg, output=staged, main_archive=main_archive)
        self._promote(scope, staged, output)

    def _stdimportcfg(self, request: IndexRequest) -> Path:
        output = Path(request.output)
        root = Path(request.root) if request.root else self._config.std_archive_root()
        index = build_std_index(root)
        self._console.info(f"indexed {len(index)} archives under {root}")

        with TempFileScope(self._console) as scope:
            staged = scope.stage_output(output)
            if not self._config.dry_run:
                try:
                    staged.write_text(write_importcfg(index), encoding="utf-8")
                except OSError as exc:
                    raise BuilderIOError(f"cannot write {staged}: {exc.strerror or exc}") from exc
            self._promote(scope, staged, output)
        return output


def run_action(
    request: ActionRequest,
    *,
    config: BuilderConfig,
    command_runner: CommandRunner,
    console: Console | None = None,
) -> Path:
    """Run ``request`` with a fresh :class:`ActionRunner`."""

    return ActionRunner(config=config, command_runner=command_runner, console=console).run(request)


__all__ = [
    "Action",
    "ActionRequest",
    "ActionRunner",
    "CompileRequest",
    "IndexRequest",
    "LinkRequest",
    "TempFileScope",
    "TestRequest",
    "run_action",
]
