"""Convert generation models into plain, deterministically ordered manifest data."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from .json_types import MutableJSONObject
from .model_types import (
    AliasDecision,
    ComponentModel,
    ExtraMethodModel,
    Field,
    GenerationModel,
    ResourceModel,
    TypeNode,
    TypeRef,
    UrlMarker,
    ValidationIssue,
)
from .naming import snake_case

RESOURCES_DIRNAME = "resources"
INDEX_FILENAME = "index.yaml"
COMPONENTS_FILENAME = "components.yaml"


@dataclass(frozen=True)
class Manifest:
    """Manifest documents keyed by their path relative to the output directory."""

    index: MutableJSONObject
    resources: dict[str, MutableJSONObject]
    components: MutableJSONObject


def resource_filename(resource: ResourceModel) -> str:
    return f"{RESOURCES_DIRNAME}/{snake_case(resource.name)}.yaml"


def model_to_manifest(model: GenerationModel) -> Manifest:
    """Convert ``model`` into manifest documents.

    Args:
        model (GenerationModel): Ordered output of one generation run.

    Returns:
        Manifest: Index, per-resource and component documents.
    """
    resources = {
        resource_filename(resource): resource_to_manifest(resource) for resource in model.resources
    }
    index: MutableJSONObject = {
        "resources": [
            {
                "name": resource.name,
                "file": resource_filename(resource),
                "path": resource.path,
                "requested": resource.requested.letters,
                "operations": resource.operations.letters,
                "extra_methods": len(resource.extra_methods),
                "issues": len(resource.issues),
            }
            for resource in model.resources
        ],
        "components": [component.type_name for component in model.components],
        "warnings": list(model.warnings),
    }
    components: MutableJSONObject = {
        "components": [component_to_manifest(component) for component in model.components],
    }
    return Manifest(index=index, resources=resources, components=components)


def resource_to_manifest(resource: ResourceModel) -> MutableJSONObject:
    """Return the manifest document of one resource."""
    return {
        "name": resource.name,
        "plural_name": resource.plural_name,
        "path": resource.path,
        "requested_operations": resource.requested.letters,
        "operations": resource.operations.letters,
        "search_params": _fields(resource.search_params),
        "model": _model_section(resource.model_fields, resource.model_alias),
        "request_body": _fields(resource.request_body),
        "upsert_model": {
            **_model_section(resource.upsert_model, resource.upsert_alias),
            "no_content": resource.upsert_no_content,
        },
        "field_aliases": [_alias(alias) for alias in resource.field_aliases],
        "request_urls": _urls(resource.request_urls),
        "response_urls": _urls(resource.response_urls),
        "update_is_async": resource.update_is_async,
        "delete_is_async": resource.delete_is_async,
        "extra_methods": [_extra_method(method) for method in resource.extra_methods],
        "nested_types": _type_nodes(resource.nested_types),
        "issues": [_issue(issue) for issue in resource.issues],
        "warnings": list(resource.warnings),
    }


def component_to_manifest(component: ComponentModel) -> MutableJSONObject:
    return {
        "name": component.name,
        "type_name": component.type_name,
        "fields": _fields(component.fields),
        "nested_types": _type_nodes(component.nested_types),
    }


def field_to_manifest(field: Field) -> MutableJSONObject:
    """Return one field as a mapping; ``description`` is omitted when absent."""
    entry: MutableJSONObject = {
        "name": field.name,
        "type": field.type_ref.annotation,
        "source_key": field.source_key,
        "required": field.required,
    }
    if field.description:
        entry["description"] = field.description
    return entry


def _fields(fields: Iterable[Field]) -> list[MutableJSONObject]:
    return [field_to_manifest(field) for field in fields]


def _type_nodes(nodes: Iterable[TypeNode]) -> list[MutableJSONObject]:
    return [
        {"name": node.name, "section": node.section.value, "fields": _fields(node.fields)}
        for node in nodes
    ]


def _model_section(fields: tuple[Field, ...], alias: Optional[AliasDecision]) -> MutableJSONObject:
    if alias is not None:
        return {"alias": _alias(alias), "fields": []}
    return {"alias": None, "fields": _fields(fields)}


def _alias(alias: AliasDecision) -> MutableJSONObject:
    return {
        "target": alias.target,
        "component": alias.component,
        "type_name": alias.type_name,
        "reference": alias.reference,
    }


def _urls(markers: Iterable[UrlMarker]) -> list[MutableJSONObject]:
    return [{"verb": marker.verb, "url": marker.url} for marker in markers]


def _type_ref(type_ref: Optional[TypeRef]) -> Optional[str]:
    return type_ref.annotation if type_ref is not None else None


def _extra_method(method: ExtraMethodModel) -> MutableJSONObject:
    return {
        "name": method.name,
        "verb": method.verb,
        "path": method.path,
        "summary": method.summary,
        "has_id": method.has_id,
        "sub_path": method.sub_path,
        "wait_timeout": method.wait_timeout,
        "is_async_task": method.is_async_task,
        "returns_no_content": method.returns_no_content,
        "returns_array": method.returns_array,
        "primitive_response": _type_ref(method.primitive_response),
        "query_params": _fields(method.query_params),
        "body": {"type_name": method.body_type_name, "fields": _fields(method.body)},
        "response": {
            "type_name": method.response_type_name,
            "alias": _alias(method.response_alias) if method.response_alias else None,
            "fields": _fields(method.response),
        },
    }


def _issue(issue: ValidationIssue) -> MutableJSONObject:
    return {
        "operation": issue.operation,
        "reason": issue.reason.value,
        "verb": issue.verb,
        "path": issue.path,
        "message": issue.message,
    }
