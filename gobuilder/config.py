"""Per-invocation builder configuration.

A :class:`BuilderConfig` is assembled once from defaults, an optional
configuration file, the environment and command line overrides, then passed
unchanged to every component.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple
import os
import platform
import sys

import yaml

from core.config_loader import load_config_file, merge_mappings, normalize_string_list, parse_bool

from .errors import UsageError


CONFIG_ENV_VAR = "GOBUILDER_CONFIG"
DEFAULT_GO_VERSION = "1.23"

_CONFIG_KEYS = {
    "goroot",
    "goos",
    "goarch",
    "host_goos",
    "host_goarch",
    "cgo_enabled",
    "tags",
    "go_version",
    "tool_dir",
}

_ENVIRONMENT_KEYS = {
    "GOROOT": "goroot",
    "GOOS": "goos",
    "GOARCH": "goarch",
    "GOHOSTOS": "host_goos",
    "GOHOSTARCH": "host_goarch",
    "CGO_ENABLED": "cgo_enabled",
    "GOBUILDER_TOOL_DIR": "tool_dir",
}

_MACHINE_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
    "ppc64le": "ppc64le",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "riscv64": "riscv64",
    "mips64": "mips64",
    "loongarch64": "loong64",
}


def detect_goos() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform in {"win32", "cygwin"}:
        return "windows"
    for name in ("freebsd", "openbsd", "netbsd", "dragonfly", "aix"):
        if sys.platform.startswith(name):
            return name
    if sys.platform.startswith("sunos"):
        return "solaris"
    return sys.platform


def detect_goarch() -> str:
    machine = platform.machine().lower()
    return _MACHINE_ARCH.get(machine, machine)


def release_tags_for(go_version: str) -> Tuple[str, ...]:
    """Return ``go1.1`` through ``go1.N`` for a ``1.N`` version string."""

    text = go_version.strip().removeprefix("go")
    major, _, minor = text.partition(".")
    minor = minor.split(".", 1)[0]
    if major != "1" or not minor.isdigit():
        raise UsageError(f"unsupported Go version: {go_version!r}")
    return tuple(f"go1.{number}" for number in range(1, int(minor) + 1))


@dataclass(frozen=True, slots=True)
class BuilderConfig:
    goroot: Path | None = None
    goos: str = field(default_factory=detect_goos)
    goarch: str = field(default_factory=detect_goarch)
    host_goos: str = field(default_factory=detect_goos)
    host_goarch: str = field(default_factory=detect_goarch)
    compiler: str = "gc"
    cgo_enabled: bool = False
    build_tags: Tuple[str, ...] = ()
    release_tags: Tuple[str, ...] = field(default_factory=lambda: release_tags_for(DEFAULT_GO_VERSION))
    tool_dir: Path | None = None
    verbosity: str = "error"
    dry_run: bool = False

    @property
    def host_platform(self) -> str:
        return f"{self.host_goos}_{self.host_goarch}"

    @property
    def target_platform(self) -> str:
        return f"{self.goos}_{self.goarch}"

    def require_goroot(self) -> Path:
        if self.goroot is None:
            raise UsageError("GOROOT not set")
        return self.goroot

    def resolve_tool_dir(self) -> Path:
        if self.tool_dir is not None:
            return self.tool_dir
        return self.require_goroot() / "pkg" / "tool" / self.host_platform

    def std_archive_root(self) -> Path:
        return self.require_goroot() / "pkg" / self.target_platform

    def with_overrides(self, **changes: Any) -> "BuilderConfig":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BuilderConfig":
        unknown = {str(key) for key in data.keys() if str(key) not in _CONFIG_KEYS}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise UsageError(f"builder configuration contains unknown keys: {joined}")

        kwargs: Dict[str, Any] = {}
        for key in ("goos", "goarch", "host_goos", "host_goarch"):
            value = data.get(key)
            if value is not None and str(value).strip():
                kwargs[key] = str(value).strip()
        for key in ("goroot", "tool_dir"):
            value = data.get(key)
            if value is not None and str(value).strip():
                kwargs[key] = Path(str(value).strip()).expanduser()
        if "cgo_enabled" in data:
            try:
                kwargs["cgo_enabled"] = parse_bool(data["cgo_enabled"], field_name="cgo_enabled")
            except ValueError as exc:
                raise UsageError(str(exc)) from exc
        if "tags" in data:
            try:
                kwargs["build_tags"] = tuple(normalize_string_list(data["tags"], field_name="tags"))
            except TypeError as exc:
                raise UsageError(str(exc)) from exc
        if data.get("go_version"):
            kwargs["release_tags"] = release_tags_for(str(data["go_version"]))
        return cls(**kwargs)


def environment_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Extract configuration keys from Go-style environment variables."""

    overrides: Dict[str, Any] = {}
    for variable, key in _ENVIRONMENT_KEYS.items():
        value = environ.get(variable)
        if value:
            overrides[key] = value
    return overrides


def load_config(
    *,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> BuilderConfig:
    """Assemble the configuration for one invocation.

    Precedence, lowest first: defaults, the ``[builder]`` table of the config
    file, the environment, then ``cli_overrides``.
    """

    environ = os.environ if environ is None else environ
    if config_path is None and environ.get(CONFIG_ENV_VAR):
        config_path = Path(environ[CONFIG_ENV_VAR])

    data: Dict[str, Any] = {}
    if config_path is not None:
        try:
            document = load_config_file(config_path)
        except (OSError, TypeError, ValueError, yaml.YAMLError) as exc:
            raise UsageError(f"cannot load configuration {config_path}: {exc}") from exc
        section = document.get("builder", {})
        if not isinstance(section, Mapping):
            raise UsageError(f"configuration {config_path}: [builder] must be a table")
        data = merge_mappings(data, section)

    data = merge_mappings(data, environment_overrides(environ))

    extras: Dict[str, Any] = {}
    for key, value in (cli_overrides or {}).items():
        if value is None:
            continue
        if key in _CONFIG_KEYS:
            data[key] = value
        else:
            extras[key] = value

    config = BuilderConfig.from_mapping(data)
    return config.with_overrides(**extras)


__all__ = [
    "BuilderConfig",
    "CONFIG_ENV_VAR",
    "DEFAULT_GO_VERSION",
    "detect_goarch",
    "detect_goos",
    "environment_overrides",
    "load_config",
    "release_tags_for",
]
