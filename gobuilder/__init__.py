"""Build actions for Go packages: compile, link, test and stdimportcfg."""

from .actions import (
    Action,
    ActionRunner,
    CompileRequest,
    IndexRequest,
    LinkRequest,
    TempFileScope,
    TestRequest,
    run_action,
)
from .archives import Archive, merge_tiers, parse_archive, resolve_imports
from .config import BuilderConfig, load_config
from .constraints import BuildContext
from .errors import (
    BuilderError,
    BuilderIOError,
    ConflictError,
    FormatError,
    ImportProblem,
    ParseError,
    ToolInvocationError,
    UnresolvedImportError,
    UsageError,
)
from .importcfg import build_std_index, read_importcfg, write_importcfg
from .sourceinfo import SourceInfo, classify
from .testmain import TestGroup, TestHarness, generate_testmain, synthesize

__version__ = "0.1.0"

__all__ = [
    "Action",
    "ActionRunner",
    "Archive",
    "BuildContext",
    "BuilderConfig",
    "BuilderError",
    "BuilderIOError",
    "CompileRequest",
    "ConflictError",
    "FormatError",
    "ImportProblem",
    "IndexRequest",
    "LinkRequest",
    "ParseError",
    "SourceInfo",
    "TempFileScope",
    "TestGroup",
    "TestHarness",
    "TestRequest",
    "ToolInvocationError",
    "UnresolvedImportError",
    "UsageError",
    "build_std_index",
    "classify",
    "generate_testmain",
    "load_config",
    "merge_tiers",
    "parse_archive",
    "read_importcfg",
    "resolve_imports",
    "synthesize",
    "write_importcfg",
]
