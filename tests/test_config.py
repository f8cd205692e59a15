from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from core.command_runner import RecordingCommandRunner
from core.config_loader import load_config_file, merge_mappings, normalize_string_list, parse_bool
from gobuilder.config import BuilderConfig, detect_goarch, detect_goos, load_config, release_tags_for
from gobuilder.console import Console
from gobuilder.errors import UsageError
from gobuilder.toolchain import Toolchain


class ConfigLoaderHelperTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_empty_yaml_document(self) -> None:
        path = self.root / "empty.yaml"
        path.write_text("", encoding="utf-8")
        self.assertEqual(load_config_file(path), {})

    def test_non_mapping_root(self) -> None:
        path = self.root / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with self.assertRaises(TypeError):
            load_config_file(path)

    def test_unsupported_extension(self) -> None:
        path = self.root / "config.ini"
        path.write_text("[builder]\n", encoding="utf-8")
        with self.assertRaises(ValueError):
            load_config_file(path)

    def test_merge_mappings_is_deep(self) -> None:
        merged = merge_mappings({"builder": {"goos": "linux", "goarch": "amd64"}}, {"builder": {"goarch": "arm64"}})
        self.assertEqual(merged, {"builder": {"goos": "linux", "goarch": "arm64"}})

    def test_normalize_string_list(self) -> None:
        self.assertEqual(normalize_string_list("a, b,,c"), ["a", "b", "c"])
        self.assertEqual(normalize_string_list(["x", " y "]), ["x", "y"])
        self.assertEqual(normalize_string_list(None), [])
        with self.assertRaises(TypeError):
            normalize_string_list([1], field_name="tags")
        with self.assertRaises(TypeError):
            normalize_string_list(3)

    def test_parse_bool(self) -> None:
        self.assertTrue(parse_bool("1"))
        self.assertTrue(parse_bool("On"))
        self.assertFalse(parse_bool("0"))
        self.assertFalse(parse_bool(0))
        with self.assertRaises(ValueError):
            parse_bool("maybe")


class LoadConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _write(self, name: str, text: str) -> Path:
        path = self.root / name
        path.write_text(textwrap.dedent(text).strip() + "\n", encoding="utf-8")
        return path

    def test_defaults(self) -> None:
        config = load_config(environ={})
        self.assertIsNone(config.goroot)
        self.assertEqual(config.compiler, "gc")
        self.assertFalse(config.cgo_enabled)
        self.assertEqual(config.release_tags[0], "go1.1")
        self.assertEqual(config.release_tags[-1], "go1.23")
        self.assertEqual(config.verbosity, "error")

    def test_toml_file(self) -> None:
        path = self._write(
            "gobuilder.toml",
            """
            [builder]
            goroot = "/opt/go"
            goos = "freebsd"
            goarch = "arm64"
            tags = ["netgo", "osusergo"]
            go_version = "1.21"
            cgo_enabled = true
            """,
        )
        config = load_config(config_path=path, environ={})
        self.assertEqual(config.goroot, Path("/opt/go"))
        self.assertEqual(config.target_platform, "freebsd_arm64")
        self.assertEqual(config.build_tags, ("netgo", "osusergo"))
        self.assertEqual(config.release_tags[-1], "go1.21")
        self.assertTrue(config.cgo_enabled)
        self.assertEqual(config.std_archive_root(), Path("/opt/go/pkg/freebsd_arm64"))

    def test_yaml_file(self) -> None:
        path = self._write(
            "gobuilder.yaml",
            """
            builder:
              goos: linux
              goarch: riscv64
              tags: a,b
            """,
        )
        config = load_config(config_path=path, environ={})
        self.assertEqual(config.goarch, "riscv64")
        self.assertEqual(config.build_tags, ("a", "b"))

    def test_file_without_builder_table(self) -> None:
        path = self._write("other.json", '{"unrelated": {"x": 1}}')
        config = load_config(config_path=path, environ={"GOOS": "linux", "GOARCH": "amd64"})
        self.assertEqual(config.target_platform, "linux_amd64")

    def test_precedence(self) -> None:
        path = self._write(
            "gobuilder.toml",
            """
            [builder]
            goos = "darwin"
            goarch = "amd64"
            goroot = "/from/file"
            """,
        )
        environ = {"GOROOT": "/from/env", "GOARCH": "arm64", "CGO_ENABLED": "1"}
        config = load_config(config_path=path, environ=environ, cli_overrides={"goos": "linux", "dry_run": True})
        self.assertEqual(config.goos, "linux")
        self.assertEqual(config.goarch, "arm64")
        self.assertEqual(config.goroot, Path("/from/env"))
        self.assertTrue(config.cgo_enabled)
        self.assertTrue(config.dry_run)

    def test_config_path_from_environment(self) -> None:
        path = self._write("env.json", '{"builder": {"goos": "netbsd", "goarch": "386"}}')
        config = load_config(environ={"GOBUILDER_CONFIG": str(path)})
        self.assertEqual(config.target_platform, "netbsd_386")

    def test_unknown_keys(self) -> None:
        path = self._write("bad.toml", '[builder]\ngoos = "linux"\noptimize = true\n')
        with self.assertRaises(UsageError) as ctx:
            load_config(config_path=path, environ={})
        self.assertIn("optimize", str(ctx.exception))

    def test_unreadable_files(self) -> None:
        broken = self._write("broken.toml", "[builder\n")
        for path in (broken, self.root / "missing.toml", self._write("broken.yaml", "builder: [unclosed\n")):
            with self.subTest(path=path.name):
                with self.assertRaises(UsageError):
                    load_config(config_path=path, environ={})

    def test_builder_section_must_be_a_table(self) -> None:
        path = self._write("flat.json", '{"builder": "linux"}')
        with self.assertRaises(UsageError):
            load_config(config_path=path, environ={})

    def test_bad_cgo_value(self) -> None:
        with self.assertRaises(UsageError):
            load_config(environ={"CGO_ENABLED": "perhaps"})

    def test_tool_dir(self) -> None:
        config = load_config(environ={"GOROOT": "/go", "GOHOSTOS": "linux", "GOHOSTARCH": "amd64", "GOOS": "windows"})
        self.assertEqual(config.resolve_tool_dir(), Path("/go/pkg/tool/linux_amd64"))
        override = load_config(environ={"GOBUILDER_TOOL_DIR": "/tools"})
        self.assertEqual(override.resolve_tool_dir(), Path("/tools"))

    def test_cross_compile_uses_host_tool_dir(self) -> None:
        config = load_config(environ={"GOROOT": "/go", "GOOS": "windows", "GOARCH": "arm64"})
        self.assertEqual(config.target_platform, "windows_arm64")
        self.assertEqual(config.host_goos, detect_goos())
        self.assertEqual(config.host_goarch, detect_goarch())
        self.assertEqual(config.resolve_tool_dir(), Path("/go/pkg/tool") / f"{detect_goos()}_{detect_goarch()}")

    def test_tool_suffix_follows_host(self) -> None:
        runner = RecordingCommandRunner()
        console = Console("none")
        cross = BuilderConfig(goroot=Path("/go"), goos="windows", goarch="amd64", host_goos="linux", host_goarch="amd64")
        self.assertEqual(
            Toolchain(config=cross, runner=runner, console=console).tool_path("compile"),
            Path("/go/pkg/tool/linux_amd64/compile"),
        )
        windows_host = BuilderConfig(goroot=Path("/go"), goos="linux", goarch="amd64", host_goos="windows", host_goarch="amd64")
        self.assertEqual(
            Toolchain(config=windows_host, runner=runner, console=console).tool_path("link"),
            Path("/go/pkg/tool/windows_amd64/link.exe"),
        )

    def test_goroot_required(self) -> None:
        with self.assertRaises(UsageError):
            BuilderConfig().require_goroot()


class ReleaseTagTests(unittest.TestCase):
    def test_versions(self) -> None:
        self.assertEqual(release_tags_for("1.3"), ("go1.1", "go1.2", "go1.3"))
        self.assertEqual(release_tags_for("go1.2.5"), ("go1.1", "go1.2"))
        for version in ("2.0", "1", "1.x"):
            with self.subTest(version=version):
                with self.assertRaises(UsageError):
                    release_tags_for(version)


if __name__ == "__main__":
    unittest.main()
