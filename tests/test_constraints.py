from __future__ import annotations

import textwrap
import unittest

from gobuilder.config import BuilderConfig
from gobuilder.constraints import BuildContext, ConstraintSyntaxError, read_header_constraints


class FileNameConstraintTests(unittest.TestCase):
    def setUp(self) -> None:
        self.context = BuildContext(goos="linux", goarch="amd64")

    def test_plain_names_match(self) -> None:
        self.assertTrue(self.context.match_name("foo.go"))
        self.assertTrue(self.context.match_name("foo_test.go"))
        self.assertTrue(self.context.match_name("list_data_lib.go"))

    def test_leading_segment_is_not_a_platform_suffix(self) -> None:
        self.assertTrue(self.context.match_name("windows.go"))
        self.assertTrue(self.context.match_name("arm64.go"))

    def test_os_and_arch_suffixes(self) -> None:
        self.assertTrue(self.context.match_name("foo_linux.go"))
        self.assertTrue(self.context.match_name("foo_amd64.go"))
        self.assertTrue(self.context.match_name("foo_linux_amd64.go"))
        self.assertTrue(self.context.match_name("foo_linux_amd64_test.go"))
        self.assertFalse(self.context.match_name("foo_windows.go"))
        self.assertFalse(self.context.match_name("foo_arm64.go"))
        self.assertFalse(self.context.match_name("foo_linux_arm64.go"))
        self.assertFalse(self.context.match_name("foo_darwin_test.go"))

    def test_hidden_and_foreign_files_never_match(self) -> None:
        self.assertFalse(self.context.match_name("_foo.go"))
        self.assertFalse(self.context.match_name(".foo.go"))
        self.assertFalse(self.context.match_name("foo.s"))
        self.assertFalse(self.context.match_name("README.md"))

    def test_implied_os_suffix(self) -> None:
        android = BuildContext(goos="android", goarch="arm64")
        self.assertTrue(android.match_name("foo_android.go"))
        self.assertTrue(android.match_name("foo_linux.go"))


class HeaderConstraintTests(unittest.TestCase):
    def setUp(self) -> None:
        self.context = BuildContext(
            goos="linux",
            goarch="amd64",
            build_tags=("integration",),
            release_tags=("go1.1", "go1.2", "go1.21"),
        )

    def _matches(self, source: str) -> bool:
        return self.context.match_header(textwrap.dedent(source))

    def test_no_constraints(self) -> None:
        self.assertTrue(self._matches("package foo\n"))

    def test_go_build_expressions(self) -> None:
        self.assertTrue(self._matches("//go:build linux && !cgo\n\npackage foo\n"))
        self.assertTrue(self._matches("//go:build (windows || linux) && amd64\n\npackage foo\n"))
        self.assertFalse(self._matches("//go:build windows || darwin\n\npackage foo\n"))
        self.assertFalse(self._matches("//go:build !unix\n\npackage foo\n"))
        self.assertTrue(self._matches("//go:build integration && go1.21\n\npackage foo\n"))
        self.assertFalse(self._matches("//go:build go1.99\n\npackage foo\n"))

    def test_go_build_takes_precedence_over_plus_build(self) -> None:
        source = """\
            //go:build linux
            // +build windows

            package foo
            """
        self.assertTrue(self._matches(source))

    def test_plus_build_lines(self) -> None:
        self.assertTrue(self._matches("// +build linux,amd64 windows\n\npackage foo\n"))
        self.assertTrue(self._matches("// +build darwin linux,!cgo\n\npackage foo\n"))
        self.assertFalse(self._matches("// +build ignore\n\npackage foo\n"))
        self.assertFalse(self._matches("// +build linux,!amd64\n\npackage foo\n"))

    def test_all_plus_build_lines_must_hold(self) -> None:
        source = """\
            // +build linux
            // +build arm64

            package foo
            """
        self.assertFalse(self._matches(source))

    def test_plus_build_without_blank_line_is_a_doc_comment(self) -> None:
        self.assertTrue(self._matches("// +build ignore\npackage foo\n"))

    def test_constraints_after_package_clause_are_ignored(self) -> None:
        self.assertTrue(self._matches("package foo\n\n//go:build windows\n"))

    def test_block_comment_before_constraint(self) -> None:
        source = """\
            /* Copyright notice
               spanning lines */

            //go:build windows

            package foo
            """
        self.assertFalse(self._matches(source))

    def test_malformed_expression(self) -> None:
        with self.assertRaises(ConstraintSyntaxError):
            self._matches("//go:build linux &&\n\npackage foo\n")
        with self.assertRaises(ConstraintSyntaxError):
            self._matches("//go:build (linux\n\npackage foo\n")
        with self.assertRaises(ConstraintSyntaxError):
            self._matches("//go:build linux & amd64\n\npackage foo\n")

    def test_multiple_go_build_lines_rejected(self) -> None:
        with self.assertRaises(ConstraintSyntaxError):
            read_header_constraints("//go:build linux\n//go:build amd64\n\npackage foo\n")


class BuildContextTagTests(unittest.TestCase):
    def test_from_config(self) -> None:
        config = BuilderConfig(goos="darwin", goarch="arm64", cgo_enabled=True, build_tags=("extra",))
        context = BuildContext.from_config(config)
        for tag in ("darwin", "arm64", "gc", "unix", "cgo", "extra", "go1.1"):
            self.assertTrue(context.match_tag(tag), tag)
        self.assertFalse(context.match_tag("linux"))
        self.assertFalse(context.match_tag(""))

    def test_windows_is_not_unix(self) -> None:
        context = BuildContext(goos="windows", goarch="amd64")
        self.assertFalse(context.match_tag("unix"))

    def test_ios_implies_darwin(self) -> None:
        context = BuildContext(goos="ios", goarch="arm64")
        self.assertTrue(context.match_tag("darwin"))


if __name__ == "__main__":
    unittest.main()
