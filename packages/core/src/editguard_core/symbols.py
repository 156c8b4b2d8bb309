"""Function and export extraction for structural change analysis.

The analyzer only needs two sets per snapshot: the names of declared
function-like symbols and the names the module exports. How those sets are
produced is a pluggable concern:

    SymbolExtractor.extract(source) -> SymbolTable

LexicalExtractor is the default. It reads JS/TS source with a brace-depth
scanner rather than a real parser. It will miss exotic declarations and
occasionally count something that is not a function, which is acceptable
for a risk heuristic and keeps the tool free of a JS toolchain.
PythonAstExtractor is the stricter parse-tree implementation, used for
Python files where the standard library already ships a parser.
"""

from __future__ import annotations

import ast
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import PurePath

logger = logging.getLogger(__name__)


class SymbolParseError(ValueError):
    """Raised by an extractor that cannot make sense of the source at all."""


@dataclass(frozen=True)
class SymbolTable:
    functions: frozenset[str] = field(default_factory=frozenset)
    exports: frozenset[str] = field(default_factory=frozenset)


class SymbolExtractor(ABC):
    name: str = "base"

    @abstractmethod
    def extract(self, source: str) -> SymbolTable:
        """Return the function-like symbol names and exported names in ``source``.

        Class methods are qualified as ``Class.method``. May raise
        SymbolParseError; the analyzer treats that as a zero-signal snapshot.
        """


# ---------------------------------------------------------------------------
# Lexical (JS / TS) extractor
# ---------------------------------------------------------------------------

_IDENT = r"[A-Za-z_$][\w$]*"

_CLASS_RE = re.compile(rf"^\s*(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:abstract\s+)?class\b\s*({_IDENT})?")
_FUNCTION_RE = re.compile(
    rf"^\s*(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:async\s+)?function\b\s*\*?\s*({_IDENT})"
)
# The type annotation may itself contain "=>", so "=>" is consumed as a unit
# and the binding "=" is the first one not followed by "=" or ">".
_VARIABLE_RE = re.compile(
    rf"^\s*(?:export\s+)?(?:declare\s+)?(?:const|let|var)\s+({_IDENT})\s*(?::(?:[^=]|=>)*?)?=(?![=>])"
)
_METHOD_RE = re.compile(
    r"^\s*(?:@[\w.]+(?:\([^)]*\))?\s+)*"
    r"(?:(?:public|private|protected|static|async|readonly|override|abstract|declare)\s+)*"
    rf"\*?\s*(#?{_IDENT})\s*\??\s*(?:<[^>]*>)?\s*\("
)
_EXPORT_DECL_RE = re.compile(
    r"^\s*export\s+(?:declare\s+)?(default\s+)?(?:abstract\s+)?(?:async\s+)?"
    rf"(?:const\s+enum|enum|function\s*\*?|class|const|let|var|interface|type|namespace|module)\s+({_IDENT})"
)
_EXPORT_DEFAULT_RE = re.compile(r"^\s*export\s+default\b")
_EXPORT_STAR_AS_RE = re.compile(rf"^\s*export\s+\*\s+as\s+({_IDENT})")
_EXPORT_LIST_RE = re.compile(r"(?m)^[ \t]*export\s+(?:type\s+)?\{([^}]*)\}")

_CONTINUATION_SUFFIXES = ("=>", "=", ",", "(", "?", ":", "&&", "||", "+", "-")


def _blank(text: str) -> str:
    """Replace every character except newlines with a space, keeping offsets stable."""
    return re.sub(r"[^\n]", " ", text)


def _strip_comments_and_strings(source: str) -> str:
    out: list[str] = []
    i, n = 0, len(source)
    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""
        if ch == "/" and nxt == "/":
            end = source.find("\n", i)
            end = n if end == -1 else end
        elif ch == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            end = n if end == -1 else end + 2
        elif ch in "'\"`":
            end = i + 1
            while end < n and source[end] != ch:
                if source[end] == "\\":
                    end += 1
                elif source[end] == "\n" and ch != "`":
                    break
                end += 1
            end = min(end + 1, n)
        else:
            out.append(ch)
            i += 1
            continue
        out.append(_blank(source[i:end]))
        i = end
    return "".join(out)


def _brace_delta(line: str) -> int:
    return line.count("{") - line.count("}")


def _initializer_text(lines: list[str], index: int, start: int) -> str:
    """Collect a variable initializer beginning at lines[index][start:]."""
    parts: list[str] = []
    depth = 0
    parens = 0
    for line in lines[index:]:
        segment = line[start:] if not parts else line
        for pos, ch in enumerate(segment):
            if ch == ";" and depth <= 0 and parens <= 0:
                parts.append(segment[:pos])
                return "\n".join(parts)
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
            elif ch == "(":
                parens += 1
            elif ch == ")":
                parens -= 1
        parts.append(segment)
        balanced = depth <= 0 and parens <= 0
        if balanced and not segment.rstrip().endswith(_CONTINUATION_SUFFIXES) and "".join(parts).strip():
            break
    return "\n".join(parts)


def _is_function_shaped(initializer: str) -> bool:
    text = initializer.strip()
    return "=>" in text or text.startswith(("function", "async function"))


def _export_list_names(body: str) -> set[str]:
    names = set()
    for item in body.split(","):
        parts = item.split()
        if parts and parts[0] == "type":
            parts = parts[1:]
        if not parts:
            continue
        names.add(parts[-1] if len(parts) >= 3 and parts[-2] == "as" else parts[0])
    return names


class LexicalExtractor(SymbolExtractor):
    """Brace-depth scanner for JavaScript and TypeScript.

    Recognises, at the top level of the file:
    - ``function name(...)`` declarations (including async/generator/exported),
    - methods of top-level classes, as ``Class.method`` (constructors and
      get/set accessors are not methods),
    - ``const|let|var name = <initializer>`` where the initializer contains
      ``=>`` or starts with ``function``. The check is textual, so an object
      literal holding an arrow function also counts.
    """

    name = "lexical"

    def extract(self, source: str) -> SymbolTable:
        stripped = _strip_comments_and_strings(source)
        lines = stripped.split("\n")
        line_depths: list[int] = []

        functions: set[str] = set()
        exports: set[str] = set()
        class_name: str | None = None
        class_entered = False
        depth = 0

        for index, line in enumerate(lines):
            line_depths.append(depth)

            if class_name is not None and class_entered and depth <= 0:
                class_name = None

            if class_name is not None and class_entered and depth == 1:
                match = _METHOD_RE.match(line)
                if match and match.group(1) != "constructor":
                    functions.add(f"{class_name}.{match.group(1)}")

            if depth == 0:
                self._scan_top_level(lines, index, functions, exports)
                class_match = _CLASS_RE.match(line)
                if class_match:
                    name = class_match.group(1)
                    class_name = name if name and name not in ("extends", "implements") else "<anonymous>"
                    class_entered = False

            depth += _brace_delta(line)
            if class_name is not None and not class_entered and depth > 0:
                class_entered = True

        for match in _EXPORT_LIST_RE.finditer(stripped):
            line_index = stripped.count("\n", 0, match.start())
            if line_depths[line_index] == 0:
                exports.update(_export_list_names(match.group(1)))

        return SymbolTable(functions=frozenset(functions), exports=frozenset(exports))

    @staticmethod
    def _scan_top_level(lines: list[str], index: int, functions: set[str], exports: set[str]) -> None:
        line = lines[index]

        function_match = _FUNCTION_RE.match(line)
        if function_match:
            functions.add(function_match.group(1))

        variable_match = _VARIABLE_RE.match(line)
        if variable_match and _is_function_shaped(_initializer_text(lines, index, variable_match.end())):
            functions.add(variable_match.group(1))

        export_match = _EXPORT_DECL_RE.match(line)
        if export_match:
            exports.add("default" if export_match.group(1) else export_match.group(2))
        elif _EXPORT_DEFAULT_RE.match(line):
            exports.add("default")
        else:
            star_match = _EXPORT_STAR_AS_RE.match(line)
            if star_match:
                exports.add(star_match.group(1))


# ---------------------------------------------------------------------------
# Python extractor
# ---------------------------------------------------------------------------


class PythonAstExtractor(SymbolExtractor):
    """Parse-tree extractor for Python source using the ``ast`` module."""

    name = "python-ast"

    def extract(self, source: str) -> SymbolTable:
        try:
            tree = ast.parse(source)
        except (SyntaxError, ValueError, RecursionError, MemoryError) as e:
            # Deeply nested but valid source overflows the parser.
            raise SymbolParseError(f"{type(e).__name__}: {e}") from e

        functions: set[str] = set()
        public: set[str] = set()
        declared_all: list[str] | None = None

        for node in tree.body:
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                functions.add(node.name)
                public.add(node.name)
            elif isinstance(node, ast.ClassDef):
                public.add(node.name)
                for item in node.body:
                    if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
                        functions.add(f"{node.name}.{item.name}")
            elif isinstance(node, (ast.Assign, ast.AnnAssign)):
                targets = node.targets if isinstance(node, ast.Assign) else [node.target]
                names = [t.id for t in targets if isinstance(t, ast.Name)]
                if "__all__" in names:
                    declared_all = self._literal_names(node.value)
                    continue
                public.update(names)
                if isinstance(node.value, ast.Lambda):
                    functions.update(names)

        if declared_all is not None:
            exports = set(declared_all)
        else:
            exports = {name for name in public if not name.startswith("_")}
        return SymbolTable(functions=frozenset(functions), exports=frozenset(exports))

    @staticmethod
    def _literal_names(value: ast.expr | None) -> list[str] | None:
        if not isinstance(value, (ast.List, ast.Tuple)):
            return None
        names = [elt.value for elt in value.elts if isinstance(elt, ast.Constant) and isinstance(elt.value, str)]
        return names if len(names) == len(value.elts) else None


_PYTHON_SUFFIXES = {".py", ".pyi"}


def extractor_for_path(path: str) -> SymbolExtractor:
    """Pick the extractor for a file by its suffix. Unknown suffixes get the lexical one."""
    if PurePath(path).suffix.lower() in _PYTHON_SUFFIXES:
        return PythonAstExtractor()
    return LexicalExtractor()
