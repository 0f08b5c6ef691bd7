"""Decide which CRUD operations and extra methods a resource can keep."""

from __future__ import annotations

import logging
from typing import Optional, Union

from .config import GeneratorConfig, PrimitiveArrayPolicy
from .model_types import (
    ExtraMethodSpec,
    ExtraMethodVerdict,
    FatalIssue,
    IssueReason,
    Operation,
    OperationSet,
    ResourceDescriptor,
    ValidationIssue,
)
from .provider import (
    NO_CONTENT_STATUS,
    SchemaNotFoundError,
    SchemaPart,
    SchemaProvider,
    SchemaResolutionError,
    unwrap_list_response,
)
from .schema_nodes import SchemaNode
from .shapes import (
    SchemaShape,
    classify_shape,
    has_ambiguous_nested_objects,
    is_ambiguous_array,
    is_ambiguous_object,
)

logger = logging.getLogger(__name__)

type ExtraMethodResult = Union[ExtraMethodVerdict, ValidationIssue, FatalIssue]

_OPERATION_LABELS: dict[Operation, str] = {
    Operation.CREATE: "CREATE",
    Operation.LIST: "LIST",
    Operation.READ: "READ",
    Operation.UPDATE: "UPDATE",
    Operation.DELETE: "DELETE",
}
_BARE_ARRAY_VERBS = frozenset({"GET", "POST"})
_UPDATE_VERBS = ("PATCH", "PUT")


def extra_method_marker(spec: ExtraMethodSpec) -> str:
    """Render the marker an extra-method spec was declared with."""
    option = f"[wait({spec.wait_timeout})]" if spec.wait_timeout else ""
    return f"extraMethod{option}:{spec.verb}={spec.path}"


class ValidationGate:
    """Ask the schema provider narrow questions about each operation.

    Every check is made directly against the provider so that an exclusion
    here never depends on how fields were later built.
    """

    def __init__(self, provider: SchemaProvider, config: GeneratorConfig) -> None:
        self._provider = provider
        self._config = config

    def check_operations(
        self,
        descriptor: ResourceDescriptor,
    ) -> tuple[OperationSet, list[ValidationIssue]]:
        """Validate every requested CRUD operation of ``descriptor``.

        Args:
            descriptor (ResourceDescriptor): Resource with an operation set.

        Returns:
            tuple[OperationSet, list[ValidationIssue]]: The surviving operations
            and one issue per excluded operation.
        """
        requested = descriptor.operations
        if requested is None:
            raise ValueError(f"{descriptor.name} has no operation set to validate")

        base = requested.base_path
        item = requested.item_path
        issues: dict[Operation, ValidationIssue] = {}
        checks = {
            Operation.CREATE: (lambda: self._check_create(base), "POST", base),
            Operation.LIST: (lambda: self._check_list(base), "GET", base),
            Operation.READ: (lambda: self._check_read(item), "GET", item),
            Operation.UPDATE: (lambda: self._check_update(item), "PATCH", item),
            Operation.DELETE: (lambda: self._check_delete(item), "DELETE", item),
        }
        for operation, (check, verb, path) in checks.items():
            if not requested.has(operation):
                continue
            try:
                issue = check()
            except SchemaResolutionError as exc:
                issue = _issue(
                    operation,
                    IssueReason.MISSING_SCHEMA,
                    f"{_OPERATION_LABELS[operation]} operation excluded: {exc}",
                    verb,
                    path,
                )
            if issue is not None:
                issues[operation] = issue

        self._cascade(requested, base, item, issues)

        for issue in issues.values():
            logger.info("%s: %s", descriptor.name, issue.message)
        effective = requested.without(*issues)
        ordered = sorted(issues.values(), key=lambda issue: issue.sort_key)
        return effective, ordered

    def update_verb(self, item: str) -> Optional[str]:
        """Return the first declared update verb with a usable response.

        Falls back to the first declared verb when neither is usable, and to
        ``None`` when neither PATCH nor PUT is declared on ``item``.
        """
        declared = [verb for verb in _UPDATE_VERBS if self._provider.has_operation(verb, item)]
        for verb in declared:
            if self._upsert_response_issue(Operation.UPDATE, verb, item) is None:
                return verb
        return declared[0] if declared else None

    def check_extra_method(
        self,
        resource: str,
        spec: ExtraMethodSpec,
        *,
        warnings: Optional[list[str]] = None,
    ) -> ExtraMethodResult:
        """Validate one extra method.

        Args:
            resource (str): Owning resource name, used in messages.
            spec (ExtraMethodSpec): The declared method.
            warnings (Optional[list[str]]): Receives cosmetic warnings.

        Returns:
            ExtraMethodResult: A verdict when the method is kept, an issue when it
            is skipped, or a fatal issue when it does not exist at all.
        """
        verb = spec.verb.upper()
        path = spec.path
        if not self._provider.has_operation(verb, path):
            return FatalIssue(
                resource=resource,
                marker=extra_method_marker(spec),
                verb=verb,
                path=path,
                message=(
                    f"{resource}: extra method {verb} {path} "
                    "does not exist in the service description"
                ),
            )

        sink = warnings if warnings is not None else []
        summary = self._provider.operation_summary(verb, path)
        if not summary:
            self._warn(sink, f"{resource}: {verb} {path} has no summary")

        no_content = self._provider.has_status(verb, path, NO_CONTENT_STATUS)
        has_body = self._has_request_body(verb, path)
        operation_id = f"extraMethod {verb} {path}"

        try:
            raw = self._provider.resolve_operation_schema(verb, path, SchemaPart.RESPONSE, unwrap=False)
        except SchemaNotFoundError:
            raw = None
        except SchemaResolutionError as exc:
            issue = ValidationIssue(
                operation=operation_id,
                reason=IssueReason.MISSING_SCHEMA,
                message=f"Extra method {verb} {path} skipped: {exc}",
                verb=verb,
                path=path,
            )
            logger.info("%s: %s", resource, issue.message)
            return issue
        if raw is None or raw.is_empty:
            if no_content or verb == "DELETE":
                if spec.is_async:
                    self._warn(sink, f"{resource}: {verb} {path} waits for a task but returns no content")
                return ExtraMethodVerdict(
                    spec=spec,
                    summary=summary,
                    returns_no_content=True,
                    is_bare_array=False,
                    is_async_task=False,
                    response=None,
                    has_request_body=has_body,
                )
            return ValidationIssue(
                operation=operation_id,
                reason=IssueReason.MISSING_SCHEMA,
                message=f"Extra method {verb} {path} skipped: no response schema and no 204 NO CONTENT",
                verb=verb,
                path=path,
            )

        issue = self._extra_method_shape_issue(raw, verb, path, operation_id)
        if issue is not None:
            logger.info("%s: %s", resource, issue.message)
            return issue

        is_async_task = raw.ref is not None and raw.ref == self._config.async_task_component
        if spec.is_async and not is_async_task:
            self._warn(
                sink,
                f"{resource}: {verb} {path} declares wait({spec.wait_timeout}) "
                f"but does not respond with {self._config.async_task_component}",
            )
        return ExtraMethodVerdict(
            spec=spec,
            summary=summary,
            returns_no_content=no_content,
            is_bare_array=raw.is_array,
            is_async_task=is_async_task,
            response=raw,
            has_request_body=has_body,
        )

    def _check_create(self, base: str) -> Optional[ValidationIssue]:
        if not self._provider.has_operation("POST", base):
            return _issue(
                Operation.CREATE,
                IssueReason.MISSING_SCHEMA,
                f"CREATE operation excluded: POST {base} is not declared",
                "POST",
                base,
            )
        return self._upsert_response_issue(Operation.CREATE, "POST", base)

    def _check_list(self, base: str) -> Optional[ValidationIssue]:
        label = "LIST operation excluded"
        raw = self._response(base, "GET")
        if raw is None or raw.is_empty:
            return _issue(
                Operation.LIST,
                IssueReason.MISSING_SCHEMA,
                f"{label}: GET {base} has no response schema",
                "GET",
                base,
            )
        if _is_ambiguous_list(raw):
            return _issue(
                Operation.LIST,
                IssueReason.ARRAY_OF_AMBIGUOUS_OBJECTS,
                f"{label}: GET {base} returns an array of objects without properties",
                "GET",
                base,
            )
        return None

    def _check_read(self, item: str) -> Optional[ValidationIssue]:
        label = "READ operation excluded"
        schema = self._response(item, "GET")
        if schema is None or schema.is_empty:
            return _issue(
                Operation.READ,
                IssueReason.MISSING_SCHEMA,
                f"{label}: GET {item} has no response schema",
                "GET",
                item,
            )
        if is_ambiguous_object(schema):
            return _issue(
                Operation.READ,
                IssueReason.AMBIGUOUS_SCHEMA,
                f"{label}: GET {item} responds with an object without properties",
                "GET",
                item,
            )
        return None

    def _check_update(self, item: str) -> Optional[ValidationIssue]:
        declared = [verb for verb in _UPDATE_VERBS if self._provider.has_operation(verb, item)]
        if not declared:
            return _issue(
                Operation.UPDATE,
                IssueReason.MISSING_SCHEMA,
                f"UPDATE operation excluded: neither PATCH nor PUT is declared on {item}",
                "PATCH",
                item,
            )
        issues = [self._upsert_response_issue(Operation.UPDATE, verb, item) for verb in declared]
        if any(issue is None for issue in issues):
            return None
        return issues[0]

    def _upsert_response_issue(
        self,
        operation: Operation,
        verb: str,
        path: str,
    ) -> Optional[ValidationIssue]:
        """Check the response of the POST, PATCH or PUT an upsert model comes from."""
        label = f"{_OPERATION_LABELS[operation]} operation excluded"
        if self._provider.has_status(verb, path, NO_CONTENT_STATUS):
            return None
        try:
            schema = self._response(path, verb)
        except SchemaResolutionError as exc:
            return _issue(operation, IssueReason.MISSING_SCHEMA, f"{label}: {exc}", verb, path)
        if schema is None or schema.is_empty:
            reason = (
                IssueReason.BROKEN_UPDATE_CONTRACT
                if operation is Operation.UPDATE
                else IssueReason.MISSING_SCHEMA
            )
            return _issue(
                operation,
                reason,
                f"{label}: {verb} {path} has no response schema and doesn't return 204 NO CONTENT",
                verb,
                path,
            )
        if classify_shape(schema) is SchemaShape.MAP:
            return _issue(
                operation,
                IssueReason.MAP_RESPONSE,
                f"{label}: {verb} {path} responds with a free-form map",
                verb,
                path,
            )
        if is_ambiguous_object(schema):
            return _issue(
                operation,
                IssueReason.AMBIGUOUS_SCHEMA,
                f"{label}: {verb} {path} responds with an object without properties",
                verb,
                path,
            )
        return None

    def _check_delete(self, item: str) -> Optional[ValidationIssue]:
        if not self._provider.has_operation("DELETE", item):
            logger.debug("DELETE %s is not declared; keeping the operation", item)
            return None
        schema = self._response(item, "DELETE")
        if schema is not None and is_ambiguous_object(schema):
            return _issue(
                Operation.DELETE,
                IssueReason.AMBIGUOUS_SCHEMA,
                f"DELETE operation excluded: DELETE {item} responds with an object without properties",
                "DELETE",
                item,
            )
        return None

    def _cascade(
        self,
        requested: OperationSet,
        base: str,
        item: str,
        issues: dict[Operation, ValidationIssue],
    ) -> None:
        read_issue = issues.get(Operation.READ)
        if (
            read_issue is not None
            and read_issue.reason is IssueReason.AMBIGUOUS_SCHEMA
            and requested.has(Operation.LIST)
            and Operation.LIST not in issues
        ):
            issues[Operation.LIST] = _issue(
                Operation.LIST,
                IssueReason.AMBIGUOUS_SCHEMA,
                f"LIST operation excluded: the READ response of GET {item} is ambiguous",
                "GET",
                base,
            )

        list_issue = issues.get(Operation.LIST)
        if (
            list_issue is not None
            and list_issue.reason is IssueReason.ARRAY_OF_AMBIGUOUS_OBJECTS
            and requested.has(Operation.READ)
            and Operation.READ not in issues
            and self._read_shares_list_schema(base, item)
        ):
            issues[Operation.READ] = _issue(
                Operation.READ,
                IssueReason.ARRAY_OF_AMBIGUOUS_OBJECTS,
                f"READ operation excluded: GET {item} shares the ambiguous list response of GET {base}",
                "GET",
                item,
            )

    def _read_shares_list_schema(self, base: str, item: str) -> bool:
        if not self._provider.has_operation("GET", item):
            return True
        try:
            list_schema = self._response(base, "GET")
            read_schema = self._response(item, "GET")
        except SchemaResolutionError:
            return False
        if list_schema is None or read_schema is None:
            return False
        list_item = unwrap_list_response(list_schema)
        return list_item.ref is not None and list_item.ref == read_schema.ref

    def _response(self, path: str, verb: str) -> Optional[SchemaNode]:
        try:
            return self._provider.resolve_operation_schema(verb, path, SchemaPart.RESPONSE, unwrap=False)
        except SchemaNotFoundError:
            return None

    def _has_request_body(self, verb: str, path: str) -> bool:
        try:
            body = self._provider.resolve_operation_schema(verb, path, SchemaPart.REQUEST)
        except SchemaNotFoundError:
            return False
        except SchemaResolutionError as exc:
            logger.warning("Request body of %s %s cannot be resolved: %s", verb, path, exc)
            return False
        return not body.is_empty

    def _extra_method_shape_issue(
        self,
        raw: SchemaNode,
        verb: str,
        path: str,
        operation_id: str,
    ) -> Optional[ValidationIssue]:
        shape = classify_shape(raw)
        prefix = f"Extra method {verb} {path} skipped"
        reason: Optional[IssueReason] = None
        detail = ""
        if shape in (SchemaShape.MAP, SchemaShape.ARRAY_OF_MAPS):
            reason, detail = IssueReason.MAP_RESPONSE, "responds with a free-form map"
        elif shape in (SchemaShape.UNTYPED_ARRAY, SchemaShape.ARRAY_OF_ARRAYS):
            reason, detail = IssueReason.UNTYPED_ARRAY, "responds with an array whose items cannot be typed"
        elif shape is SchemaShape.ARRAY_OF_AMBIGUOUS_OBJECTS:
            reason = IssueReason.ARRAY_OF_AMBIGUOUS_OBJECTS
            detail = "responds with an array of objects without properties"
        elif shape is SchemaShape.ARRAY_OF_PRIMITIVES and not self._primitive_array_allowed(verb):
            reason, detail = IssueReason.ARRAY_OF_PRIMITIVES, "responds with an array of primitives"
        elif shape in (SchemaShape.AMBIGUOUS_OBJECT, SchemaShape.UNTYPED):
            reason, detail = IssueReason.AMBIGUOUS_SCHEMA, "responds with an object without properties"
        elif self._config.strict_extra_method_responses and has_ambiguous_nested_objects(raw):
            reason = IssueReason.NESTED_AMBIGUOUS_OBJECT
            detail = "responds with nested objects without properties"
        if reason is None:
            return None
        return ValidationIssue(
            operation=operation_id,
            reason=reason,
            message=f"{prefix}: {detail}",
            verb=verb,
            path=path,
        )

    def _primitive_array_allowed(self, verb: str) -> bool:
        policy = self._config.primitive_array_policy
        if policy is PrimitiveArrayPolicy.ALLOW:
            return True
        if policy is PrimitiveArrayPolicy.REJECT:
            return False
        return verb in _BARE_ARRAY_VERBS

    @staticmethod
    def _warn(sink: list[str], message: str) -> None:
        logger.warning(message)
        sink.append(message)


def _issue(
    operation: Operation,
    reason: IssueReason,
    message: str,
    verb: str,
    path: str,
) -> ValidationIssue:
    return ValidationIssue(
        operation=_OPERATION_LABELS[operation],
        reason=reason,
        message=message,
        verb=verb,
        path=path,
    )


def _is_ambiguous_list(raw: SchemaNode) -> bool:
    if is_ambiguous_array(raw):
        return True
    results = raw.properties.get("results")
    return results is not None and is_ambiguous_array(results)
