"""Test harness synthesis.

Test sources are split into two archives. The internal archive is compiled
together with the library under test. The external archive holds files whose
package name ends in ``_test``; it is compiled separately and may import the
internal archive like any other dependency. A generated ``main`` package
registers the tests of both archives and starts the test runner.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .errors import ConflictError
from .sourceinfo import TEST_MAIN, SourceInfo


EXTERNAL_SUFFIX = "_test"
INTERNAL_ALIAS = "test"
EXTERNAL_ALIAS = "xtest"

GENERATED_HEADER = "// Code generated by gobuilder. DO NOT EDIT."


@dataclass(frozen=True, slots=True)
class TestGroup:
    """One test archive: the sources compiled together and the tests they declare."""

    __test__ = False

    import_path: str
    package_label: str
    alias: str
    tests: Tuple[str, ...] = ()
    has_test_main: bool = False
    sources: Tuple[SourceInfo, ...] = ()

    @property
    def present(self) -> bool:
        return bool(self.sources)

    @property
    def source_paths(self) -> List[str]:
        return [source.path for source in self.sources]


@dataclass(frozen=True, slots=True)
class TestHarness:
    __test__ = False

    internal: TestGroup
    external: TestGroup
    override: TestGroup | None
    source: str

    @property
    def groups(self) -> List[TestGroup]:
        """Groups with sources, internal first."""

        return [group for group in (self.internal, self.external) if group.present]


def partition_tests(sources: Sequence[SourceInfo], package_path: str) -> Tuple[TestGroup, TestGroup]:
    """Split matched sources into the internal and external test groups.

    All matched files must agree on the package name once the ``_test``
    suffix is removed; the first matched file sets the expected name.
    """

    internal: List[SourceInfo] = []
    external: List[SourceInfo] = []
    base_name = ""
    first_path = ""
    for source in sources:
        if not source.match:
            continue
        target = internal
        name = source.package_name
        if name.endswith(EXTERNAL_SUFFIX):
            target = external
            name = name[: -len(EXTERNAL_SUFFIX)]
        if not base_name:
            base_name, first_path = name, source.path
        elif name != base_name:
            raise ConflictError(
                f"{source.path}: package name {source.package_name!r} does not match "
                f"package name {base_name!r} in file {first_path}"
            )
        target.append(source)

    return (
        _make_group(package_path, base_name, INTERNAL_ALIAS, internal),
        _make_group(package_path + EXTERNAL_SUFFIX, base_name, EXTERNAL_ALIAS, external),
    )


def _make_group(import_path: str, label: str, alias: str, sources: List[SourceInfo]) -> TestGroup:
    tests: List[str] = []
    for source in sources:
        tests.extend(source.tests)
    return TestGroup(
        import_path=import_path,
        package_label=label,
        alias=alias,
        tests=tuple(tests),
        has_test_main=any(source.has_test_main for source in sources),
        sources=tuple(sources),
    )


def select_override(internal: TestGroup, external: TestGroup) -> TestGroup | None:
    """Return the group whose ``TestMain`` runs the tests, if any."""

    if internal.has_test_main and external.has_test_main:
        raise ConflictError(f"{TEST_MAIN} defined in both internal and external test files")
    if internal.has_test_main:
        return internal
    if external.has_test_main:
        return external
    return None


def go_quote(value: str) -> str:
    """Quote ``value`` as a Go interpreted string literal."""

    escaped: List[str] = []
    for char in value:
        if char == "\\":
            escaped.append("\\\\")
        elif char == '"':
            escaped.append('\\"')
        elif char == "\n":
            escaped.append("\\n")
        elif char == "\t":
            escaped.append("\\t")
        elif char == "\r":
            escaped.append("\\r")
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            escaped.append(f"\\x{ord(char):02x}")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


def generate_testmain(groups: Sequence[TestGroup], override_alias: str | None, run_dir: str) -> str:
    """Render the Go source of the test binary's ``main`` package.

    ``groups`` are rendered in order and groups without sources are skipped.
    A group that neither declares tests nor is the override is imported
    blank so the file still compiles.
    """

    present = [group for group in groups if group.present]
    lines: List[str] = [
        GENERATED_HEADER,
        "",
        "package main",
        "",
        "import (",
        '\t"log"',
        '\t"os"',
        '\t"testing"',
        '\t"testing/internal/testdeps"',
    ]
    if present:
        lines.append("")
    for group in present:
        used = bool(group.tests) or group.alias == override_alias
        name = group.alias if used else "_"
        lines.append(f"\t{name} {go_quote(group.import_path)}")
    lines.append(")")
    lines.append("")

    lines.append("var allTests = []testing.InternalTest{")
    for group in present:
        for test in group.tests:
            lines.append(f"\t{{{go_quote(test)}, {group.alias}.{test}}},")
    lines.append("}")
    lines.append("")

    lines.extend(
        [
            "func main() {",
            f"\tif err := os.Chdir({go_quote(run_dir)}); err != nil {{",
            '\t\tlog.Fatalf("could not change to test directory: %v", err)',
            "\t}",
            "",
            "\tm := testing.MainStart(testdeps.TestDeps{}, allTests, nil, nil, nil)",
        ]
    )
    if override_alias is not None:
        lines.append(f"\t{override_alias}.{TEST_MAIN}(m)")
    else:
        lines.append("\tos.Exit(m.Run())")
    lines.append("}")
    return "\n".join(lines) + "\n"


def synthesize(sources: Sequence[SourceInfo], package_path: str, run_dir: str) -> TestHarness:
    """Partition ``sources``, choose the ``TestMain`` override and render the main source."""

    internal, external = partition_tests(sources, package_path)
    override = select_override(internal, external)
    source = generate_testmain(
        [internal, external],
        override.alias if override is not None else None,
        run_dir,
    )
    return TestHarness(internal=internal, external=external, override=override, source=source)


__all__ = [
    "EXTERNAL_ALIAS",
    "EXTERNAL_SUFFIX",
    "INTERNAL_ALIAS",
    "TestGroup",
    "TestHarness",
    "generate_testmain",
    "go_quote",
    "partition_tests",
    "select_override",
    "synthesize",
]
