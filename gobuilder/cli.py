"""Command line interface for the builder tool."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable, List, Mapping
import sys

from core.command_runner import RecordingCommandRunner, SubprocessCommandRunner

from .actions import (
    Action,
    ActionRequest,
    ActionRunner,
    CompileRequest,
    IndexRequest,
    LinkRequest,
    TestRequest,
)
from .archives import Archive, parse_archive
from .config import BuilderConfig, load_config
from .console import Console
from .errors import BuilderError, UsageError


PROG = "gobuilder"


class _ArgumentParser(ArgumentParser):
    """Argument parser that reports problems as :class:`UsageError`."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(f"{self.prog}: {message}")


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


def _verbosity(count: int) -> str:
    if count >= 2:
        return "debug"
    if count == 1:
        return "info"
    return "error"


def _parse_archives(values: Iterable[str] | None) -> tuple[Archive, ...]:
    return tuple(parse_archive(value) for value in values or [])


def _build_parser() -> ArgumentParser:
    parser = _ArgumentParser(prog=PROG, description="Compile, link and test Go packages from explicit inputs")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase output (repeat for debug)")
    parser.add_argument("--config", type=Path, help="Configuration file (TOML, JSON or YAML) with a [builder] table")
    parser.add_argument("--tags", help="Comma-separated build tags")
    parser.add_argument("--goos", help="Target operating system")
    parser.add_argument("--goarch", help="Target architecture")
    parser.add_argument("--dry-run", action="store_true", help="Print tool commands without executing them")
    subparsers = parser.add_subparsers(dest="command", required=True, parser_class=_ArgumentParser)

    compile_parser = subparsers.add_parser(Action.COMPILE.value, help="Compile sources into a package archive")
    compile_parser.add_argument("--stdimportcfg", required=True, help="importcfg for the standard library")
    compile_parser.add_argument(
        "--arc",
        action="append",
        default=[],
        metavar="PATH=FILE",
        help="Direct dependency archive (may be repeated)",
    )
    compile_parser.add_argument("-p", "--package-path", help="Package path of the package being compiled")
    compile_parser.add_argument("-o", "--output", required=True, help="Archive file to produce")
    compile_parser.add_argument("sources", nargs="+", help="Go source files")

    link_parser = subparsers.add_parser(Action.LINK.value, help="Link a main archive into an executable")
    link_parser.add_argument("--stdimportcfg", required=True, help="importcfg for the standard library")
    link_parser.add_argument(
        "--arc",
        action="append",
        default=[],
        metavar="PATH=FILE",
        help="Dependency archive, direct or transitive (may be repeated)",
    )
    link_parser.add_argument("--main", required=True, help="Main package archive")
    link_parser.add_argument("-o", "--output", required=True, help="Executable to produce")

    test_parser = subparsers.add_parser(Action.TEST.value, help="Build a test executable")
    test_parser.add_argument("--stdimportcfg", required=True, help="importcfg for the standard library")
    test_parser.add_argument("--direct", action="append", default=[], metavar="PATH=FILE", help="Direct dependency archive")
    test_parser.add_argument(
        "--transitive",
        action="append",
        default=[],
        metavar="PATH=FILE",
        help="Transitive dependency archive",
    )
    test_parser.add_argument("-p", "--package-path", default="default", help="Package path of the library under test")
    test_parser.add_argument("--dir", dest="run_dir", default=".", help="Directory the test binary changes to before running")
    test_parser.add_argument("-o", "--output", required=True, help="Test executable to produce")
    test_parser.add_argument("sources", nargs="+", help="Go source files, test and library")

    index_parser = subparsers.add_parser(Action.STDIMPORTCFG.value, help="Write an importcfg for the standard library")
    index_parser.add_argument("--root", help="Directory of precompiled archives (default: $GOROOT/pkg/GOOS_GOARCH)")
    index_parser.add_argument("-o", "--output", required=True, help="importcfg file to produce")

    return parser


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    return _build_parser().parse_args(list(argv))


def build_request(args: Namespace) -> ActionRequest:
    """Translate parsed arguments into the request for their action."""

    action = Action(args.command)
    if action is Action.COMPILE:
        return CompileRequest(
            sources=tuple(args.sources),
            std_importcfg=args.stdimportcfg,
            output=args.output,
            archives=_parse_archives(args.arc),
            package_path=args.package_path,
        )
    if action is Action.LINK:
        return LinkRequest(
            main_archive=args.main,
            std_importcfg=args.stdimportcfg,
            output=args.output,
            archives=_parse_archives(args.arc),
        )
    if action is Action.TEST:
        return TestRequest(
            sources=tuple(args.sources),
            std_importcfg=args.stdimportcfg,
            output=args.output,
            direct=_parse_archives(args.direct),
            transitive=_parse_archives(args.transitive),
            package_path=args.package_path,
            run_dir=args.run_dir,
        )
    return IndexRequest(output=args.output, root=args.root)


def build_config(args: Namespace, environ: Mapping[str, str] | None = None) -> BuilderConfig:
    return load_config(
        config_path=args.config,
        environ=environ,
        cli_overrides={
            "goos": args.goos,
            "goarch": args.goarch,
            "tags": args.tags,
            "verbosity": _verbosity(args.verbose),
            "dry_run": args.dry_run or None,
        },
    )


def main(argv: Iterable[str] | None = None, *, environ: Mapping[str, str] | None = None) -> int:
    console = Console("error", prefix=PROG)
    arguments: List[str] = list(sys.argv[1:] if argv is None else argv)
    try:
        args = _parse_arguments(arguments)
        console.prefix = f"{PROG}: {args.command}"
        config = build_config(args, environ)
        console = Console(config.verbosity, prefix=console.prefix)
        request = build_request(args)
        runner = _make_runner(config.dry_run)
        ActionRunner(config=config, command_runner=runner, console=console).run(request)
    except BuilderError as exc:
        console.error(str(exc))
        return exc.exit_code

    if isinstance(runner, RecordingCommandRunner):
        for line in runner.iter_formatted():
            print(line)
    return 0


__all__ = ["build_config", "build_request", "main"]
