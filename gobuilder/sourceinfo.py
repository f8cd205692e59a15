"""Metadata extraction from Go source files.

This is a narrow lexical scan, not a Go parser. It finds the package clause,
the import declarations and, in ``_test.go`` files, the top-level functions
shaped like test cases or a ``TestMain`` override.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

from .constraints import BuildContext, ConstraintSyntaxError
from .errors import ParseError


TEST_PREFIX = "Test"
TEST_MAIN = "TestMain"
TEST_SUFFIX = "_test.go"

IDENT = "IDENT"
STRING = "STRING"
CHAR = "CHAR"
NUMBER = "NUMBER"
OP = "OP"

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")": "(", "]": "[", "}": "{"}

_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
}


@dataclass(frozen=True, slots=True)
class SourceInfo:
    """Metadata for one source file. ``match`` is false for excluded files."""

    path: str
    match: bool = False
    package_name: str = ""
    imports: Tuple[str, ...] = ()
    tests: Tuple[str, ...] = ()
    has_test_main: bool = False


@dataclass(frozen=True, slots=True)
class Token:
    kind: str
    value: str
    line: int


def _is_ident_start(char: str) -> bool:
    return char == "_" or char.isalpha()


def _is_ident_part(char: str) -> bool:
    return char == "_" or char.isalnum()


def tokenize(text: str, path: str = "<input>") -> List[Token]:
    """Split Go source into tokens, dropping whitespace and comments."""

    tokens: List[Token] = []
    position = 0
    line = 1
    length = len(text)

    while position < length:
        char = text[position]

        if char == "\n":
            line += 1
            position += 1
            continue
        if char.isspace():
            position += 1
            continue

        if text.startswith("//", position):
            end = text.find("\n", position)
            position = length if end < 0 else end
            continue

        if text.startswith("/*", position):
            end = text.find("*/", position + 2)
            if end < 0:
                raise ParseError(path, "comment not terminated", line)
            line += text.count("\n", position, end)
            position = end + 2
            continue

        if char in {'"', "'"}:
            start_line = line
            cursor = position + 1
            while True:
                if cursor >= length or text[cursor] == "\n":
                    kind = "string" if char == '"' else "rune"
                    raise ParseError(path, f"{kind} literal not terminated", start_line)
                if text[cursor] == "\\":
                    cursor += 2
                    continue
                if text[cursor] == char:
                    break
                cursor += 1
            tokens.append(Token(STRING if char == '"' else CHAR, text[position:cursor + 1], start_line))
            position = cursor + 1
            continue

        if char == "`":
            end = text.find("`", position + 1)
            if end < 0:
                raise ParseError(path, "raw string literal not terminated", line)
            tokens.append(Token(STRING, text[position:end + 1], line))
            line += text.count("\n", position, end)
            position = end + 1
            continue

        if _is_ident_start(char):
            cursor = position + 1
            while cursor < length and _is_ident_part(text[cursor]):
                cursor += 1
            tokens.append(Token(IDENT, text[position:cursor], line))
            position = cursor
            continue

        if char.isdigit() or (char == "." and position + 1 < length and text[position + 1].isdigit()):
            cursor = position + 1
            while cursor < length:
                current = text[cursor]
                if current.isalnum() or current in "._":
                    cursor += 1
                elif current in "+-" and text[cursor - 1] in "eEpP":
                    # Hex literals take a 'p' exponent; 'e' there is a digit.
                    is_hex = text[position:cursor].lower().startswith("0x")
                    if (text[cursor - 1] in "pP") != is_hex:
                        break
                    cursor += 1
                else:
                    break
            tokens.append(Token(NUMBER, text[position:cursor], line))
            position = cursor
            continue

        tokens.append(Token(OP, char, line))
        position += 1

    return tokens


def unquote(literal: str) -> str:
    """Decode a Go string literal (interpreted or raw)."""

    if len(literal) < 2:
        raise ValueError("invalid string literal")
    if literal[0] == "`" and literal[-1] == "`":
        return literal[1:-1].replace("\r", "")
    if literal[0] != '"' or literal[-1] != '"':
        raise ValueError("invalid string literal")

    body = literal[1:-1]
    result: List[str] = []
    index = 0
    while index < len(body):
        char = body[index]
        if char != "\\":
            result.append(char)
            index += 1
            continue
        if index + 1 >= len(body):
            raise ValueError("invalid escape at end of string")
        code = body[index + 1]
        if code in _SIMPLE_ESCAPES and code != "'":
            result.append(_SIMPLE_ESCAPES[code])
            index += 2
        elif code in "xuU":
            width = {"x": 2, "u": 4, "U": 8}[code]
            digits = body[index + 2:index + 2 + width]
            if len(digits) != width or any(d not in "0123456789abcdefABCDEF" for d in digits):
                raise ValueError(f"invalid \\{code} escape")
            result.append(chr(int(digits, 16)))
            index += 2 + width
        elif code in "01234567":
            digits = body[index + 1:index + 4]
            if len(digits) != 3 or any(d not in "01234567" for d in digits):
                raise ValueError("invalid octal escape")
            result.append(chr(int(digits, 8)))
            index += 4
        else:
            raise ValueError(f"unknown escape sequence \\{code}")
    return "".join(result)


def is_test_name(name: str) -> bool:
    return name.startswith(TEST_PREFIX)


class _Scanner:
    def __init__(self, tokens: Sequence[Token], path: str):
        self.tokens = tokens
        self.path = path
        self.index = 0

    def peek(self, offset: int = 0) -> Token | None:
        position = self.index + offset
        if position < len(self.tokens):
            return self.tokens[position]
        return None

    def next(self) -> Token:
        token = self.peek()
        if token is None:
            last_line = self.tokens[-1].line if self.tokens else 1
            raise ParseError(self.path, "unexpected end of file", last_line)
        self.index += 1
        return token

    def error(self, token: Token | None, message: str) -> ParseError:
        line = token.line if token is not None else (self.tokens[-1].line if self.tokens else 1)
        return ParseError(self.path, message, line)

    def skip_semicolons(self) -> None:
        while (token := self.peek()) is not None and token.kind == OP and token.value == ";":
            self.index += 1

    def package_clause(self) -> str:
        keyword = self.peek()
        if keyword is None or keyword.kind != IDENT or keyword.value != "package":
            raise self.error(keyword, "expected 'package' clause")
        self.index += 1
        name = self.peek()
        if name is None or name.kind != IDENT:
            raise self.error(name, "expected package name")
        self.index += 1
        return name.value

    def import_spec(self) -> str:
        token = self.next()
        if token.kind == IDENT or (token.kind == OP and token.value == "."):
            token = self.next()
        if token.kind != STRING:
            raise self.error(token, "malformed import declaration")
        try:
            path = unquote(token.value)
        except ValueError as exc:
            raise self.error(token, f"invalid import path {token.value}: {exc}") from exc
        if not path:
            raise self.error(token, "empty import path")
        return path

    def imports(self) -> List[str]:
        paths: List[str] = []
        while True:
            self.skip_semicolons()
            keyword = self.peek()
            if keyword is None or keyword.kind != IDENT or keyword.value != "import":
                return paths
            self.index += 1
            opener = self.peek()
            if opener is not None and opener.kind == OP and opener.value == "(":
                self.index += 1
                while True:
                    self.skip_semicolons()
                    closer = self.peek()
                    if closer is None:
                        raise self.error(opener, "import group not terminated")
                    if closer.kind == OP and closer.value == ")":
                        self.index += 1
                        break
                    paths.append(self.import_spec())
            else:
                paths.append(self.import_spec())

    def matching_close(self, start: int) -> int:
        """Return the index of the bracket closing the one at ``start``."""

        stack = [self.tokens[start].value]
        for position in range(start + 1, len(self.tokens)):
            token = self.tokens[position]
            if token.kind != OP:
                continue
            if token.value in _OPENERS:
                stack.append(token.value)
            elif token.value in _CLOSERS:
                if stack[-1] != _CLOSERS[token.value]:
                    raise self.error(token, f"unexpected '{token.value}'")
                stack.pop()
                if not stack:
                    return position
        raise self.error(self.tokens[start], f"'{self.tokens[start].value}' not closed")

    def declarations(self) -> Tuple[List[str], bool]:
        """Walk top-level declarations, collecting test functions and ``TestMain``."""

        tests: List[str] = []
        has_test_main = False
        while self.index < len(self.tokens):
            token = self.tokens[self.index]
            if token.kind == OP and token.value in _OPENERS:
                self.index = self.matching_close(self.index) + 1
                continue
            if token.kind == OP and token.value in _CLOSERS:
                raise self.error(token, f"unexpected '{token.value}'")
            if token.kind == IDENT and token.value == "func":
                kind, name = self.function_shape(self.index)
                if kind == "test":
                    tests.append(name)
                elif kind == "main":
                    has_test_main = True
            self.index += 1
        return tests, has_test_main

    def function_shape(self, start: int) -> Tuple[str | None, str]:
        name = self.peek_at(start + 1)
        if name is None or name.kind != IDENT:
            return None, ""
        if not is_test_name(name.value):
            return None, name.value
        opener = self.peek_at(start + 2)
        if opener is None or opener.kind != OP or opener.value != "(":
            # Receivers and type parameter lists both disqualify the function.
            return None, name.value
        close = self.matching_close(start + 2)
        body = self.peek_at(close + 1)
        if body is None or body.kind != OP or body.value != "{":
            return None, name.value
        selector = _param_selector(self.tokens[start + 3:close])
        if name.value == TEST_MAIN:
            return ("main" if selector == "M" else None), name.value
        return ("test" if selector == "T" else None), name.value

    def peek_at(self, position: int) -> Token | None:
        if position < len(self.tokens):
            return self.tokens[position]
        return None


def _param_selector(params: Sequence[Token]) -> str | None:
    shape = [(token.kind, token.value) for token in params]
    if shape and shape[-1] == (OP, ","):
        shape = shape[:-1]
    if len(shape) == 5 and shape[0][0] == IDENT:
        shape = shape[1:]
    if len(shape) != 4:
        return None
    star, package, dot, selector = shape
    if star != (OP, "*") or package[0] != IDENT or dot != (OP, ".") or selector[0] != IDENT:
        return None
    return selector[1]


def scan_source(text: str, path: str, *, is_test: bool | None = None) -> SourceInfo:
    """Extract metadata from the text of a matched source file."""

    if is_test is None:
        is_test = path.endswith(TEST_SUFFIX)
    scanner = _Scanner(tokenize(text, path), path)
    package_name = scanner.package_clause()
    imports = scanner.imports()
    tests: List[str] = []
    has_test_main = False
    if is_test:
        tests, has_test_main = scanner.declarations()
    return SourceInfo(
        path=path,
        match=True,
        package_name=package_name,
        imports=tuple(imports),
        tests=tuple(tests),
        has_test_main=has_test_main,
    )


def classify(path: str | Path, context: BuildContext) -> SourceInfo:
    """Classify one source file for ``context``.

    Files excluded by name or header constraints come back with
    ``match=False``; their bodies are never scanned.
    """

    path_str = str(path)
    file_name = Path(path_str).name
    if not context.match_name(file_name):
        return SourceInfo(path=path_str)

    try:
        text = Path(path_str).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(path_str, f"invalid UTF-8: {exc.reason}") from exc
    except OSError as exc:
        raise ParseError(path_str, f"cannot read source: {exc.strerror or exc}") from exc

    try:
        if not context.match_header(text):
            return SourceInfo(path=path_str)
    except ConstraintSyntaxError as exc:
        raise ParseError(path_str, str(exc)) from exc

    return scan_source(text, path_str, is_test=file_name.endswith(TEST_SUFFIX))


__all__ = [
    "SourceInfo",
    "TEST_MAIN",
    "TEST_PREFIX",
    "Token",
    "classify",
    "is_test_name",
    "scan_source",
    "tokenize",
    "unquote",
]
