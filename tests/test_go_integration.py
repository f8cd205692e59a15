"""End-to-end builds against a real Go toolchain.

Set ``GOBUILDER_GO_TESTS=1`` with ``go`` on ``PATH`` to run these.
"""
from __future__ import annotations

from pathlib import Path
import os
import shutil
import subprocess
import tempfile
import textwrap
import unittest

from core.command_runner import SubprocessCommandRunner
from gobuilder.actions import ActionRunner, CompileRequest, IndexRequest, LinkRequest, TestRequest
from gobuilder.archives import Archive
from gobuilder.config import BuilderConfig
from gobuilder.console import Console


GO = shutil.which("go")
ENABLED = os.environ.get("GOBUILDER_GO_TESTS") == "1" and GO is not None


def _go_env(name: str) -> str:
    return subprocess.run([GO, "env", name], check=True, capture_output=True, text=True).stdout.strip()


def _std_importcfg(path: Path) -> None:
    # Recent toolchains ship no precompiled standard library, so ask go list.
    listing = subprocess.run(
        [GO, "list", "-export", "-f", "{{if .Export}}packagefile {{.ImportPath}}={{.Export}}{{end}}", "std"],
        check=True,
        capture_output=True,
        text=True,
        env={**os.environ, "CGO_ENABLED": "0"},
    )
    path.write_text(listing.stdout, encoding="utf-8")


@unittest.skipUnless(ENABLED, "set GOBUILDER_GO_TESTS=1 with go on PATH")
class GoToolchainTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.config = BuilderConfig(
            goroot=Path(_go_env("GOROOT")),
            goos=_go_env("GOOS"),
            goarch=_go_env("GOARCH"),
            tool_dir=Path(_go_env("GOTOOLDIR")),
        )

    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.std = self.root / "std.importcfg"
        _std_importcfg(self.std)
        self.runner = ActionRunner(config=self.config, command_runner=SubprocessCommandRunner(), console=Console("none"))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _write(self, name: str, text: str) -> str:
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        return str(path)

    def test_compile_link_and_run(self) -> None:
        baz = self._write(
            "baz/baz.go",
            """\
            package baz

            func Baz() string { return "baz" }
            """,
        )
        main = self._write(
            "main/main.go",
            """\
            package main

            import (
            	"fmt"

            	"example.com/baz"
            )

            func main() { fmt.Println(baz.Baz()) }
            """,
        )
        baz_archive = self.root / "baz.a"
        self.runner.run(CompileRequest(sources=(baz,), std_importcfg=str(self.std), output=str(baz_archive), package_path="example.com/baz"))
        main_archive = self.root / "main.a"
        dependency = (Archive("example.com/baz", str(baz_archive)),)
        self.runner.run(CompileRequest(sources=(main,), std_importcfg=str(self.std), output=str(main_archive), archives=dependency, package_path="main"))
        binary = self.root / "app"
        self.runner.run(LinkRequest(main_archive=str(main_archive), std_importcfg=str(self.std), output=str(binary), archives=dependency))

        result = subprocess.run([str(binary)], check=True, capture_output=True, text=True)
        self.assertEqual(result.stdout, "baz\n")

    def test_test_binary_runs_both_groups(self) -> None:
        sources = [
            self._write("ix/ix.go", "package ix\n\nfunc Helper() int { return 2 }\n"),
            self._write(
                "ix/ix_test.go",
                """\
                package ix

                import "testing"

                func TestInternal(t *testing.T) {
                	if Helper() != 2 {
                		t.Fatal("bad helper")
                	}
                }
                """,
            ),
            self._write(
                "ix/ix_ext_test.go",
                """\
                package ix_test

                import (
                	"testing"

                	"example.com/ix"
                )

                func TestExternal(t *testing.T) {
                	if ix.Helper() != 2 {
                		t.Fatal("bad helper")
                	}
                }
                """,
            ),
        ]
        binary = self.root / "ix.test"
        self.runner.run(
            TestRequest(
                sources=tuple(sources),
                std_importcfg=str(self.std),
                output=str(binary),
                package_path="example.com/ix",
                run_dir=str(self.root / "ix"),
            )
        )
        result = subprocess.run([str(binary), "-test.v"], capture_output=True, text=True)
        self.assertEqual(result.returncode, 0, result.stdout + result.stderr)
        self.assertIn("--- PASS: TestInternal", result.stdout)
        self.assertIn("--- PASS: TestExternal", result.stdout)

    def test_stdimportcfg_without_archives(self) -> None:
        archive_root = self.config.std_archive_root()
        if not archive_root.is_dir():
            self.skipTest(f"{archive_root} does not exist in this toolchain")
        output = self.root / "index.importcfg"
        self.runner.run(IndexRequest(output=str(output)))
        self.assertIn("packagefile fmt=", output.read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()
