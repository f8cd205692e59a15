"""Build constraint evaluation for Go source files.

A file participates in a build when its name carries no foreign ``_GOOS`` /
``_GOARCH`` suffix and its header constraints (``//go:build`` or the legacy
``// +build`` lines) are satisfied by the context's tag set.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Tuple
import re

from .config import BuilderConfig


KNOWN_OS = frozenset(
    {
        "aix",
        "android",
        "darwin",
        "dragonfly",
        "freebsd",
        "hurd",
        "illumos",
        "ios",
        "js",
        "linux",
        "nacl",
        "netbsd",
        "openbsd",
        "plan9",
        "solaris",
        "wasip1",
        "windows",
        "zos",
    }
)

KNOWN_ARCH = frozenset(
    {
        "386",
        "amd64",
        "amd64p32",
        "arm",
        "armbe",
        "arm64",
        "arm64be",
        "loong64",
        "mips",
        "mipsle",
        "mips64",
        "mips64le",
        "mips64p32",
        "mips64p32le",
        "ppc",
        "ppc64",
        "ppc64le",
        "riscv",
        "riscv64",
        "s390",
        "s390x",
        "sparc",
        "sparc64",
        "wasm",
    }
)

UNIX_OS = frozenset(
    {
        "aix",
        "android",
        "darwin",
        "dragonfly",
        "freebsd",
        "hurd",
        "illumos",
        "ios",
        "linux",
        "netbsd",
        "openbsd",
        "solaris",
    }
)

# GOOS values that also satisfy another GOOS tag.
_IMPLIED_OS = {
    "android": "linux",
    "illumos": "solaris",
    "ios": "darwin",
}

_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_.]+$")
_EXPR_TOKEN = re.compile(r"\s*(\|\||&&|!|\(|\)|[A-Za-z0-9_.]+)")


class ConstraintSyntaxError(ValueError):
    """Raised for a malformed ``//go:build`` expression."""


def _tokenize_expression(expression: str) -> List[str]:
    tokens: List[str] = []
    position = 0
    while position < len(expression):
        if expression[position:].strip() == "":
            break
        match = _EXPR_TOKEN.match(expression, position)
        if match is None:
            raise ConstraintSyntaxError(f"unexpected character in build expression: {expression[position:].strip()!r}")
        tokens.append(match.group(1))
        position = match.end()
    return tokens


class _ExpressionParser:
    """Recursive descent evaluator for ``//go:build`` expressions.

    or  := and ('||' and)*
    and := not ('&&' not)*
    not := '!' not | '(' or ')' | tag
    """

    def __init__(self, tokens: List[str], satisfied: FrozenSet[str]):
        self._tokens = tokens
        self._position = 0
        self._satisfied = satisfied

    def _peek(self) -> str | None:
        if self._position < len(self._tokens):
            return self._tokens[self._position]
        return None

    def _next(self) -> str:
        token = self._peek()
        if token is None:
            raise ConstraintSyntaxError("unexpected end of build expression")
        self._position += 1
        return token

    def parse(self) -> bool:
        if not self._tokens:
            raise ConstraintSyntaxError("empty build expression")
        value = self._parse_or()
        if self._peek() is not None:
            raise ConstraintSyntaxError(f"unexpected token {self._peek()!r} in build expression")
        return value

    # Every operand is evaluated so syntax errors surface regardless of short-circuiting.
    def _parse_or(self) -> bool:
        value = self._parse_and()
        while self._peek() == "||":
            self._next()
            right = self._parse_and()
            value = value or right
        return value

    def _parse_and(self) -> bool:
        value = self._parse_not()
        while self._peek() == "&&":
            self._next()
            right = self._parse_not()
            value = value and right
        return value

    def _parse_not(self) -> bool:
        token = self._next()
        if token == "!":
            return not self._parse_not()
        if token == "(":
            value = self._parse_or()
            if self._next() != ")":
                raise ConstraintSyntaxError("missing ')' in build expression")
            return value
        if not _TAG_PATTERN.match(token):
            raise ConstraintSyntaxError(f"unexpected token {token!r} in build expression")
        return token in self._satisfied


@dataclass(frozen=True, slots=True)
class HeaderConstraints:
    go_build: str | None
    plus_build: Tuple[str, ...]


def read_header_constraints(text: str) -> HeaderConstraints:
    """Collect constraint comments that precede the package clause.

    ``// +build`` lines only count when a blank line separates them from the
    package clause and its doc comment.
    """

    go_build: List[str] = []
    plus_build: List[Tuple[int, str]] = []
    last_blank = -1
    in_block = False
    for index, raw in enumerate(text.splitlines()):
        line = raw.strip()
        if in_block:
            if "*/" in line:
                in_block = False
                if line.split("*/", 1)[1].strip():
                    break
            continue
        if not line:
            last_blank = index
            continue
        if line.startswith("/*"):
            if "*/" not in line[2:]:
                in_block = True
            elif line[2:].split("*/", 1)[1].strip():
                break
            continue
        if not line.startswith("//"):
            break
        if line.startswith("//go:build") and (len(line) == len("//go:build") or line[len("//go:build")].isspace()):
            go_build.append(line[len("//go:build"):].strip())
            continue
        body = line[2:].strip()
        if body.startswith("+build") and (len(body) == len("+build") or body[len("+build")].isspace()):
            plus_build.append((index, body[len("+build"):].strip()))

    if len(go_build) > 1:
        raise ConstraintSyntaxError("multiple //go:build comments")
    return HeaderConstraints(
        go_build=go_build[0] if go_build else None,
        plus_build=tuple(expr for index, expr in plus_build if index < last_blank),
    )


class BuildContext:
    """Answers whether a file participates in a build for one target."""

    def __init__(
        self,
        *,
        goos: str,
        goarch: str,
        compiler: str = "gc",
        cgo_enabled: bool = False,
        build_tags: Iterable[str] = (),
        release_tags: Iterable[str] = (),
    ):
        self.goos = goos
        self.goarch = goarch
        satisfied = {goos, goarch, compiler}
        if goos in UNIX_OS:
            satisfied.add("unix")
        if goos in _IMPLIED_OS:
            satisfied.add(_IMPLIED_OS[goos])
        if cgo_enabled:
            satisfied.add("cgo")
        satisfied.update(build_tags)
        satisfied.update(release_tags)
        self.satisfied: FrozenSet[str] = frozenset(tag for tag in satisfied if tag)

    @classmethod
    def from_config(cls, config: BuilderConfig) -> "BuildContext":
        return cls(
            goos=config.goos,
            goarch=config.goarch,
            compiler=config.compiler,
            cgo_enabled=config.cgo_enabled,
            build_tags=config.build_tags,
            release_tags=config.release_tags,
        )

    def match_tag(self, tag: str) -> bool:
        return bool(tag) and tag in self.satisfied

    def match_name(self, file_name: str) -> bool:
        """Check the file name: hidden files, extension and ``_GOOS_GOARCH`` suffixes."""

        if file_name.startswith(("_", ".")):
            return False
        if not file_name.endswith(".go"):
            return False
        stem = file_name.split(".", 1)[0]
        underscore = stem.find("_")
        if underscore < 0:
            return True
        parts = stem[underscore:].split("_")
        if parts and parts[-1] == "test":
            parts = parts[:-1]
        if len(parts) >= 2 and parts[-2] in KNOWN_OS and parts[-1] in KNOWN_ARCH:
            return self.match_tag(parts[-2]) and self.match_tag(parts[-1])
        if parts and (parts[-1] in KNOWN_OS or parts[-1] in KNOWN_ARCH):
            return self.match_tag(parts[-1])
        return True

    def eval_go_build(self, expression: str) -> bool:
        return _ExpressionParser(_tokenize_expression(expression), self.satisfied).parse()

    def eval_plus_build(self, line: str) -> bool:
        """Evaluate one ``+build`` line: space-separated OR of comma-separated AND terms."""

        for alternative in line.split():
            if all(self._match_plus_term(term) for term in alternative.split(",")):
                return True
        return False

    def _match_plus_term(self, term: str) -> bool:
        if term.startswith("!!") or term in {"", "!"}:
            return False
        if term.startswith("!"):
            return not self.match_tag(term[1:])
        return self.match_tag(term)

    def match_header(self, text: str) -> bool:
        header = read_header_constraints(text)
        if header.go_build is not None:
            return self.eval_go_build(header.go_build)
        return all(self.eval_plus_build(line) for line in header.plus_build)


__all__ = [
    "BuildContext",
    "ConstraintSyntaxError",
    "HeaderConstraints",
    "KNOWN_ARCH",
    "KNOWN_OS",
    "UNIX_OS",
    "read_header_constraints",
]
