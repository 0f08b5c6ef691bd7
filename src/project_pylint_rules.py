"""Custom pylint rules for project typing and output policy."""

from __future__ import annotations

from collections.abc import Iterable

from astroid import nodes
from pylint.checkers import BaseChecker
from pylint.lint import PyLinter


_MESSAGE_PREFER_OPTIONAL = "prefer-optional"
_MESSAGE_NO_PRINT_CALL = "no-print-call"

LIBRARY_PACKAGE = "openapi_resource_modeler"
# Modules of the library package that may write to stdout.
PRINT_ALLOWED_MODULES = frozenset({f"{LIBRARY_PACKAGE}.cli"})


class ProjectRulesChecker(BaseChecker):
    """Project-specific AST checks."""

    name = "project-rules"

    msgs = {
        "C9501": (
            "Use Optional[T] instead of T | None in annotations",
            _MESSAGE_PREFER_OPTIONAL,
            "Project style requires Optional[T] for nullable annotations.",
        ),
        "W9502": (
            "print() call in library module %s; log through the module logger instead",
            _MESSAGE_NO_PRINT_CALL,
            "Only the command line interface writes to stdout.",
        ),
    }

    def visit_annassign(self, node: nodes.AnnAssign) -> None:
        """Validate annotation style for annotated assignments."""
        self._check_annotation(node.annotation)

    def visit_arguments(self, node: nodes.Arguments) -> None:
        """Validate annotation style for function arguments."""
        for annotation in self._iter_argument_annotations(node):
            self._check_annotation(annotation)

    def visit_functiondef(self, node: nodes.FunctionDef) -> None:
        """Validate annotation style for function return type."""
        if node.returns is not None:
            self._check_annotation(node.returns)

    def visit_call(self, node: nodes.Call) -> None:
        """Reject ``print()`` inside the library package outside the CLI."""
        if not isinstance(node.func, nodes.Name) or node.func.name != "print":
            return
        module_name = node.root().name
        if not _in_library_package(module_name) or module_name in PRINT_ALLOWED_MODULES:
            return
        self.add_message(_MESSAGE_NO_PRINT_CALL, node=node, args=(module_name,))

    def _check_annotation(self, annotation: nodes.NodeNG) -> None:
        for optional_union in self._iter_optional_pipe_unions(annotation):
            self.add_message(_MESSAGE_PREFER_OPTIONAL, node=optional_union)

    @staticmethod
    def _iter_argument_annotations(arguments: nodes.Arguments) -> Iterable[nodes.NodeNG]:
        groups = (
            arguments.posonlyargs_annotations,
            arguments.annotations,
            arguments.kwonlyargs_annotations,
            (arguments.varargannotation, arguments.kwargannotation),
        )
        for group in groups:
            for annotation in group:
                if annotation is not None:
                    yield annotation

    @staticmethod
    def _iter_optional_pipe_unions(annotation: nodes.NodeNG) -> Iterable[nodes.BinOp]:
        for candidate in annotation.nodes_of_class(nodes.BinOp):
            if candidate.op != "|":
                continue
            if _is_none_literal(candidate.left) or _is_none_literal(candidate.right):
                yield candidate


def _in_library_package(module_name: str) -> bool:
    return module_name == LIBRARY_PACKAGE or module_name.startswith(f"{LIBRARY_PACKAGE}.")


def _is_none_literal(node: nodes.NodeNG) -> bool:
    return isinstance(node, nodes.Const) and node.value is None


def register(linter: PyLinter) -> None:
    """Register checker."""
    linter.register_checker(ProjectRulesChecker(linter))
