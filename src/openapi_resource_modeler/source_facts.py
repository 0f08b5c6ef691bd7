"""Source fact extraction.

Downstream stages only see :class:`AnnotationFact` and :class:`CallFact`
values, so any front end that can produce them plugs in through the
:class:`SourceFactExtractor` protocol. :class:`PythonSourceExtractor` reads
annotated Python declarations with :mod:`ast`:

* module docstring lines starting with ``+`` attach to the package,
* ``+`` lines in a class docstring or in the ``#`` comment block directly
  above a class attach to the type,
* ``#`` comment blocks directly above a class attribute attach to the field.
"""

from __future__ import annotations

import ast
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from .markers import MarkerTarget
from .naming import last_dotted_segment

logger = logging.getLogger(__name__)

_MARKER_LINE_RE = re.compile(r"^\+[A-Za-z]")
_WRAPPER_ANNOTATIONS = frozenset({"Optional", "ClassVar", "Final", "Annotated"})


class SourceExtractionError(RuntimeError):
    """Raised when annotated sources cannot be read or parsed."""


@dataclass(frozen=True)
class AnnotationFact:
    """One marker line attached to a declaration."""

    declaration: str
    text: str
    target: MarkerTarget
    owner: Optional[str] = None
    type_name: Optional[str] = None
    location: str = ""


class CallArgumentKind(str, Enum):
    """Syntactic kind of a call argument."""

    STRING = "string"
    NAME = "name"
    OTHER = "other"


@dataclass(frozen=True)
class CallArgument:
    """One positional argument of a recorded call."""

    kind: CallArgumentKind
    value: str


@dataclass(frozen=True)
class CallFact:
    """A call expression with its positional arguments."""

    callee: str
    type_argument: Optional[str]
    arguments: tuple[CallArgument, ...]
    owner: Optional[str] = None
    location: str = ""


class SourceFactExtractor(Protocol):
    """Producer of annotation and call facts."""

    def annotation_facts(self) -> Iterable[AnnotationFact]: ...

    def call_facts(self) -> Iterable[CallFact]: ...


class StaticFactExtractor:
    """Serve facts that were extracted elsewhere or built in memory."""

    def __init__(
        self,
        *,
        annotations: Iterable[AnnotationFact] = (),
        calls: Iterable[CallFact] = (),
    ) -> None:
        self._annotations = tuple(annotations)
        self._calls = tuple(calls)

    def annotation_facts(self) -> tuple[AnnotationFact, ...]:
        return self._annotations

    def call_facts(self) -> tuple[CallFact, ...]:
        return self._calls


@dataclass(frozen=True)
class _ParsedModule:
    path: Path
    tree: ast.Module
    lines: tuple[str, ...]


class PythonSourceExtractor:
    """Extract facts from Python source files."""

    def __init__(self, paths: Sequence[Path]) -> None:
        self._paths = tuple(paths)
        self._modules: Optional[list[_ParsedModule]] = None

    @classmethod
    def from_directory(cls, directory: Path) -> PythonSourceExtractor:
        """Create an extractor over every ``*.py`` file below ``directory``."""
        if not directory.is_dir():
            raise SourceExtractionError(f"Resource directory not found: {directory}")
        return cls(sorted(path for path in directory.rglob("*.py") if path.is_file()))

    def annotation_facts(self) -> list[AnnotationFact]:
        """Return marker facts in file order, then source order."""
        facts: list[AnnotationFact] = []
        for module in self._parsed_modules():
            visitor = _AnnotationVisitor(module)
            visitor.visit_module()
            facts.extend(visitor.facts)
        return facts

    def call_facts(self) -> list[CallFact]:
        """Return every call expression in file order, then source order."""
        facts: list[CallFact] = []
        for module in self._parsed_modules():
            visitor = _CallVisitor(module.path)
            visitor.visit(module.tree)
            facts.extend(visitor.facts)
        return facts

    def _parsed_modules(self) -> list[_ParsedModule]:
        if self._modules is None:
            self._modules = [_parse_module(path) for path in self._paths]
        return self._modules


def _parse_module(path: Path) -> _ParsedModule:
    try:
        source = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SourceExtractionError(f"Failed to read source file {path}: {exc}") from exc
    try:
        tree = ast.parse(source, filename=str(path))
    except SyntaxError as exc:
        raise SourceExtractionError(f"Failed to parse source file {path}: {exc}") from exc
    logger.debug("Parsed %s", path)
    return _ParsedModule(path=path, tree=tree, lines=tuple(source.splitlines()))


def marker_lines(text: str) -> list[str]:
    """Return the marker lines of a docstring or comment block, sigil included."""
    markers: list[str] = []
    for line in text.splitlines():
        stripped = line.strip().lstrip("#").strip()
        if _MARKER_LINE_RE.match(stripped):
            markers.append(stripped)
    return markers


class _AnnotationVisitor:
    def __init__(self, module: _ParsedModule) -> None:
        self._module = module
        self.facts: list[AnnotationFact] = []

    def visit_module(self) -> None:
        docstring = ast.get_docstring(self._module.tree, clean=True)
        if docstring:
            package = self._module.path.parent.name or self._module.path.stem
            for text in marker_lines(docstring):
                self._add(package, text, MarkerTarget.PACKAGE, lineno=1)
        self._visit_body(self._module.tree.body, owner=None)

    def _visit_body(self, body: list[ast.stmt], *, owner: Optional[str]) -> None:
        for node in body:
            if isinstance(node, ast.ClassDef):
                self._visit_class(node)
            elif owner is not None and isinstance(node, (ast.AnnAssign, ast.Assign)):
                self._visit_field(node, owner=owner)

    def _visit_class(self, node: ast.ClassDef) -> None:
        start = min([node.lineno, *(decorator.lineno for decorator in node.decorator_list)])
        texts = marker_lines("\n".join(self._comment_block_above(start)))
        docstring = ast.get_docstring(node, clean=True)
        if docstring:
            texts.extend(marker_lines(docstring))
        for text in texts:
            self._add(node.name, text, MarkerTarget.TYPE, lineno=node.lineno)
        self._visit_body(node.body, owner=node.name)

    def _visit_field(self, node: ast.AnnAssign | ast.Assign, *, owner: str) -> None:
        if isinstance(node, ast.AnnAssign):
            targets = [node.target]
            type_name = _annotation_type_name(node.annotation)
        else:
            targets = list(node.targets)
            type_name = None
        names = [target.id for target in targets if isinstance(target, ast.Name)]
        if not names:
            return
        texts = marker_lines("\n".join(self._comment_block_above(node.lineno)))
        for name in names:
            for text in texts:
                self._add(
                    name,
                    text,
                    MarkerTarget.FIELD,
                    lineno=node.lineno,
                    owner=owner,
                    type_name=type_name,
                )

    def _comment_block_above(self, lineno: int) -> list[str]:
        lines = self._module.lines
        index = lineno - 2
        block: list[str] = []
        while index >= 0 and lines[index].strip().startswith("#"):
            block.append(lines[index])
            index -= 1
        block.reverse()
        return block

    def _add(
        self,
        declaration: str,
        text: str,
        target: MarkerTarget,
        *,
        lineno: int,
        owner: Optional[str] = None,
        type_name: Optional[str] = None,
    ) -> None:
        self.facts.append(
            AnnotationFact(
                declaration=declaration,
                text=text,
                target=target,
                owner=owner,
                type_name=type_name,
                location=f"{self._module.path}:{lineno}",
            )
        )


class _CallVisitor(ast.NodeVisitor):
    def __init__(self, path: Path) -> None:
        self._path = path
        self._owners: list[str] = []
        self.facts: list[CallFact] = []

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._owners.append(node.name)
        self.generic_visit(node)
        self._owners.pop()

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        type_argument: Optional[str] = None
        if isinstance(func, ast.Subscript):
            type_argument = _dotted_name(func.slice)
            func = func.value
        callee = _dotted_name(func)
        if callee is not None:
            self.facts.append(
                CallFact(
                    callee=last_dotted_segment(callee),
                    type_argument=type_argument,
                    arguments=tuple(_call_argument(arg) for arg in node.args),
                    owner=self._owners[-1] if self._owners else None,
                    location=f"{self._path}:{node.lineno}",
                )
            )
        self.generic_visit(node)


def _call_argument(node: ast.expr) -> CallArgument:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return CallArgument(kind=CallArgumentKind.STRING, value=node.value)
    dotted = _dotted_name(node)
    if dotted is not None:
        return CallArgument(kind=CallArgumentKind.NAME, value=dotted)
    return CallArgument(kind=CallArgumentKind.OTHER, value=ast.unparse(node))


def _dotted_name(node: ast.expr) -> Optional[str]:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        parent = _dotted_name(node.value)
        return f"{parent}.{node.attr}" if parent is not None else None
    return None


def _annotation_type_name(node: ast.expr) -> Optional[str]:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        try:
            parsed = ast.parse(node.value, mode="eval")
        except SyntaxError:
            return None
        return _annotation_type_name(parsed.body)
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        for side in (node.left, node.right):
            if not (isinstance(side, ast.Constant) and side.value is None):
                return _annotation_type_name(side)
        return None
    if isinstance(node, ast.Subscript):
        wrapper = _dotted_name(node.value)
        if wrapper is not None and last_dotted_segment(wrapper) in _WRAPPER_ANNOTATIONS:
            inner = node.slice
            if isinstance(inner, ast.Tuple) and inner.elts:
                inner = inner.elts[0]
            return _annotation_type_name(inner)
        return _annotation_type_name(node.value)
    dotted = _dotted_name(node)
    return last_dotted_segment(dotted) if dotted is not None else None
