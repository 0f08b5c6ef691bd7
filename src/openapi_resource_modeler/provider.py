"""Schema provider interface and its OpenAPI document implementation."""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Protocol

from .json_types import JSONObject, JSONValue, MutableJSONObject
from .schema_nodes import SchemaNode
from .schema_utils import declared_type, merge_all_of_schema, pick_typed_alternative

logger = logging.getLogger(__name__)

COMPONENT_REF_PREFIXES: tuple[str, ...] = ("#/components/schemas/", "#/definitions/")
SUCCESS_STATUSES: tuple[str, ...] = ("200", "201", "202")
NO_CONTENT_STATUS = 204

_PREFERRED_MEDIA_TYPES: tuple[str, ...] = ("application/json", "*/*")
_IDENTITY_PRESERVING_SIBLINGS = frozenset({"description", "title", "summary"})
_HTTP_VERBS = frozenset({"get", "put", "post", "delete", "patch", "head", "options", "trace"})


class SchemaResolutionError(RuntimeError):
    """Raised when a schema cannot be resolved from the service description."""


class SchemaNotFoundError(SchemaResolutionError):
    """Raised when an operation, body, response, or component has no schema."""


class EmptySchemaError(SchemaResolutionError):
    """Raised when a schema resolves but declares nothing that can be typed."""


class SchemaPart(str, Enum):
    """Which side of an operation a schema is requested for."""

    REQUEST = "request"
    RESPONSE = "response"


@dataclass(frozen=True)
class QueryParameter:
    """A query parameter declared on an operation."""

    name: str
    schema: SchemaNode
    required: bool
    description: Optional[str]


class SchemaProvider(Protocol):
    """Lookups the generation engine needs from a service description."""

    def has_operation(self, verb: str, path: str) -> bool: ...

    def resolve_operation_schema(
        self,
        verb: str,
        path: str,
        part: SchemaPart,
        *,
        unwrap: bool = True,
    ) -> SchemaNode: ...

    def resolve_component(self, name: str) -> SchemaNode: ...

    def component_names(self) -> list[str]: ...

    def list_components(self) -> list[tuple[str, SchemaNode]]: ...

    def has_status(self, verb: str, path: str, code: int) -> bool: ...

    def operation_summary(self, verb: str, path: str) -> Optional[str]: ...

    def query_parameters(self, verb: str, path: str) -> list[QueryParameter]: ...


def component_name_from_ref(ref: str) -> Optional[str]:
    """Return the component name of a direct component reference, else ``None``."""
    for prefix in COMPONENT_REF_PREFIXES:
        if ref.startswith(prefix):
            name = ref[len(prefix) :]
            if name and "/" not in name:
                return name.replace("~1", "/").replace("~0", "~")
    return None


def unwrap_list_response(schema: SchemaNode) -> SchemaNode:
    """Return the item schema of a paginated ``results`` array or a bare array."""
    results = schema.properties.get("results")
    if results is not None and results.is_array and results.items is not None:
        return results.items
    if schema.is_array and schema.items is not None:
        return schema.items
    return schema


class OpenAPISchemaProvider:
    """Answer schema lookups against a loaded OpenAPI 3 document."""

    def __init__(self, document: JSONObject) -> None:
        self._document: MutableJSONObject = deepcopy(dict(document))
        raw_paths = self._document.get("paths")
        self._paths: dict[str, MutableJSONObject] = {}
        if isinstance(raw_paths, dict):
            for path, path_item in raw_paths.items():
                if isinstance(path, str) and isinstance(path_item, dict):
                    self._paths[path] = path_item
        self._component_cache: dict[str, SchemaNode] = {}

    def has_operation(self, verb: str, path: str) -> bool:
        """Return whether ``verb`` is declared on ``path``."""
        return self._operation(verb, path) is not None

    def resolve_operation_schema(
        self,
        verb: str,
        path: str,
        part: SchemaPart,
        *,
        unwrap: bool = True,
    ) -> SchemaNode:
        """Resolve the request-body or success-response schema of an operation.

        Args:
            verb (str): HTTP method, any case.
            path (str): Path template, with or without a trailing slash.
            part (SchemaPart): Request body or response.
            unwrap (bool): For GET responses, return the item schema of list responses.

        Returns:
            SchemaNode: The resolved schema.
        """
        operation = self._operation(verb, path)
        if operation is None:
            raise SchemaNotFoundError(f"Operation {verb.upper()} {path} not found")

        if part is SchemaPart.REQUEST:
            raw = self._request_schema(operation)
            what = "request body"
        else:
            raw = self._response_schema(operation)
            what = "success response"
        if raw is None:
            raise SchemaNotFoundError(f"No {what} schema for {verb.upper()} {path}")

        node = self._build(raw, stack=())
        if part is SchemaPart.RESPONSE and unwrap and verb.upper() == "GET":
            node = unwrap_list_response(node)
        return node

    def resolve_component(self, name: str) -> SchemaNode:
        """Resolve a named component schema."""
        cached = self._component_cache.get(name)
        if cached is not None:
            return cached
        if name not in self._component_schemas():
            raise SchemaNotFoundError(f"Component schema {name!r} not found")
        escaped = name.replace("~", "~0").replace("/", "~1")
        node = self._build({"$ref": f"#/components/schemas/{escaped}"}, stack=())
        self._component_cache[name] = node
        return node

    def component_names(self) -> list[str]:
        """Return the declared component schema names, sorted."""
        return sorted(name for name in self._component_schemas() if isinstance(name, str))

    def list_components(self) -> list[tuple[str, SchemaNode]]:
        """Return all component schemas sorted by name."""
        return [(name, self.resolve_component(name)) for name in self.component_names()]

    def has_status(self, verb: str, path: str, code: int) -> bool:
        """Return whether the operation declares a response for ``code``."""
        operation = self._operation(verb, path)
        if operation is None:
            return False
        responses = operation.get("responses")
        return isinstance(responses, dict) and str(code) in responses

    def operation_summary(self, verb: str, path: str) -> Optional[str]:
        """Return the operation summary, or ``None`` when absent or blank."""
        operation = self._operation(verb, path)
        if operation is None:
            return None
        summary = operation.get("summary")
        if isinstance(summary, str) and summary.strip():
            return summary.strip()
        return None

    def query_parameters(self, verb: str, path: str) -> list[QueryParameter]:
        """Return query parameters from the path item and the operation."""
        path_item = self._find_path_item(path)
        operation = self._operation(verb, path)
        if path_item is None or operation is None:
            return []

        merged: dict[str, MutableJSONObject] = {}
        for raw_parameters in (path_item.get("parameters"), operation.get("parameters")):
            if not isinstance(raw_parameters, list):
                continue
            for raw_parameter in raw_parameters:
                parameter = self._deref(raw_parameter)
                if parameter is None or parameter.get("in") != "query":
                    continue
                name = parameter.get("name")
                if isinstance(name, str) and name:
                    merged[name] = parameter

        parameters: list[QueryParameter] = []
        for name, parameter in merged.items():
            schema_raw = parameter.get("schema")
            schema = (
                self._build(schema_raw, stack=())
                if isinstance(schema_raw, dict)
                else SchemaNode(type="string")
            )
            description = parameter.get("description")
            parameters.append(
                QueryParameter(
                    name=name,
                    schema=schema,
                    required=bool(parameter.get("required")),
                    description=description if isinstance(description, str) else None,
                )
            )
        return parameters

    def _component_schemas(self) -> MutableJSONObject:
        components = self._document.get("components")
        if isinstance(components, dict):
            schemas = components.get("schemas")
            if isinstance(schemas, dict):
                return schemas
        return {}

    def _find_path_item(self, path: str) -> Optional[MutableJSONObject]:
        stripped = path.strip()
        trimmed = stripped.rstrip("/") or "/"
        for candidate in (stripped, trimmed, f"{trimmed}/"):
            path_item = self._paths.get(candidate)
            if path_item is not None:
                return path_item
        lowered = trimmed.lower()
        for known_path in sorted(self._paths):
            if (known_path.rstrip("/") or "/").lower() == lowered:
                logger.debug("Matched path %s to %s ignoring case", path, known_path)
                return self._paths[known_path]
        return None

    def _operation(self, verb: str, path: str) -> Optional[MutableJSONObject]:
        method = verb.lower()
        if method not in _HTTP_VERBS:
            return None
        path_item = self._find_path_item(path)
        if path_item is None:
            return None
        operation = path_item.get(method)
        return operation if isinstance(operation, dict) else None

    def _request_schema(self, operation: JSONObject) -> Optional[MutableJSONObject]:
        request_body = self._deref(operation.get("requestBody"))
        if request_body is None:
            return None
        return self._content_schema(request_body.get("content"))

    def _response_schema(self, operation: JSONObject) -> Optional[MutableJSONObject]:
        responses = operation.get("responses")
        if not isinstance(responses, dict):
            return None
        for status in SUCCESS_STATUSES:
            response = self._deref(responses.get(status))
            if response is None:
                continue
            schema = self._content_schema(response.get("content"))
            if schema is not None:
                return schema
        return None

    @staticmethod
    def _content_schema(content: JSONValue) -> Optional[MutableJSONObject]:
        if not isinstance(content, dict):
            return None
        media_types = [media for media in _PREFERRED_MEDIA_TYPES if media in content]
        media_types.extend(
            media
            for media in sorted(content)
            if isinstance(media, str) and media.endswith("+json") and media not in media_types
        )
        for media_type in media_types:
            media = content.get(media_type)
            if isinstance(media, dict) and isinstance(media.get("schema"), dict):
                return media["schema"]
        return None

    def _deref(self, node: JSONValue) -> Optional[MutableJSONObject]:
        seen: set[str] = set()
        while isinstance(node, dict) and isinstance(node.get("$ref"), str):
            ref = node["$ref"]
            if ref in seen:
                raise SchemaResolutionError(f"Reference cycle at {ref}")
            seen.add(ref)
            node = self._lookup_ref(ref)
        return node if isinstance(node, dict) else None

    def _lookup_ref(self, ref: str) -> MutableJSONObject:
        if not ref.startswith("#/"):
            raise SchemaResolutionError(f"Only local references are supported: {ref}")
        current: JSONValue = self._document
        for token in ref[2:].split("/"):
            token = token.replace("~1", "/").replace("~0", "~")
            if not isinstance(current, dict) or token not in current:
                raise SchemaResolutionError(f"Unresolvable reference: {ref}")
            current = current[token]
        if not isinstance(current, dict):
            raise SchemaResolutionError(f"Reference {ref} does not point at an object")
        return current

    def _inline_child(self, child: MutableJSONObject, stack: tuple[str, ...]) -> MutableJSONObject:
        ref = child.get("$ref")
        if not isinstance(ref, str) or ref in stack:
            return child
        target = deepcopy(self._lookup_ref(ref))
        target.update({key: value for key, value in child.items() if key != "$ref"})
        return self._inline_child(target, (*stack, ref))

    def _build(self, raw: JSONObject, *, stack: tuple[str, ...]) -> SchemaNode:
        ref = raw.get("$ref")
        if isinstance(ref, str):
            return self._build_reference(raw, ref, stack=stack)

        schema: MutableJSONObject = dict(raw)
        if isinstance(schema.get("allOf"), list):
            schema = merge_all_of_schema(
                schema,
                normalize_item=lambda child: self._inline_child(child, stack),
            )
        if declared_type(schema) is None and not isinstance(schema.get("properties"), dict):
            alternative = pick_typed_alternative(
                schema,
                normalize_item=lambda child: self._inline_child(child, stack),
            )
            if alternative is not None:
                schema = alternative

        properties: dict[str, SchemaNode] = {}
        raw_properties = schema.get("properties")
        if isinstance(raw_properties, dict):
            for name, property_schema in raw_properties.items():
                if isinstance(name, str) and isinstance(property_schema, dict):
                    properties[name] = self._build(property_schema, stack=stack)

        raw_items = schema.get("items")
        items = self._build(raw_items, stack=stack) if isinstance(raw_items, dict) else None
        raw_additional = schema.get("additionalProperties")
        additional = (
            self._build(raw_additional, stack=stack) if isinstance(raw_additional, dict) else None
        )
        raw_required = schema.get("required")
        required = (
            tuple(name for name in raw_required if isinstance(name, str))
            if isinstance(raw_required, list)
            else ()
        )
        description = schema.get("description")
        schema_format = schema.get("format")
        return SchemaNode(
            type=declared_type(schema),
            properties=properties,
            required=required,
            items=items,
            additional=additional,
            description=description.strip() if isinstance(description, str) else None,
            format=schema_format if isinstance(schema_format, str) else None,
        )

    def _build_reference(self, raw: JSONObject, ref: str, *, stack: tuple[str, ...]) -> SchemaNode:
        component = component_name_from_ref(ref)
        if ref in stack:
            return SchemaNode(type="object", ref=component, recursive=True)

        target = self._lookup_ref(ref)
        siblings = {key: value for key, value in raw.items() if key != "$ref"}
        if set(siblings) - _IDENTITY_PRESERVING_SIBLINGS:
            merged = deepcopy(target)
            merged.update(siblings)
            return self._build(merged, stack=(*stack, ref))

        node = self._build(target, stack=(*stack, ref))
        if component is None:
            return node
        return replace(node, ref=component)
