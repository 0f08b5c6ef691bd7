"""Shared helpers for raw JSON-Schema composition."""

from __future__ import annotations

from collections.abc import Callable
from copy import deepcopy
from typing import Optional

from .json_types import JSONObject, JSONValue, MutableJSONObject

type ChildNormalizer = Callable[[MutableJSONObject], MutableJSONObject]


def is_object_schema(schema: JSONObject) -> bool:
    """Return whether a schema behaves as an object schema.

    Args:
        schema (JSONObject): Schema node to inspect.

    Returns:
        bool: Whether object modeling rules should apply.
    """
    schema_type = schema.get("type")
    if schema_type == "object":
        return True
    if isinstance(schema.get("properties"), dict):
        return True
    if "additionalProperties" in schema:
        return True
    all_of = schema.get("allOf")
    if isinstance(all_of, list) and all_of:
        return all(isinstance(item, dict) and is_object_schema(item) for item in all_of)
    return False


def declared_type(schema: JSONObject) -> Optional[str]:
    """Return the declared type, picking the first non-null entry of a type list."""
    schema_type = schema.get("type")
    if isinstance(schema_type, str):
        return schema_type
    if isinstance(schema_type, list):
        for entry in schema_type:
            if isinstance(entry, str) and entry != "null":
                return entry
    return None


def merge_all_of_schema(
    schema: JSONObject,
    *,
    normalize_item: Optional[ChildNormalizer] = None,
) -> MutableJSONObject:
    """Flatten an ``allOf`` chain into one schema.

    Properties and required names of every child are unioned. The declared
    type of the last typed child wins; object-like children without a type
    make the result an object.

    Args:
        schema (JSONObject): Schema that may contain an ``allOf`` chain.
        normalize_item (Optional[ChildNormalizer]): Callback applied to each child
            before merging, typically to inline a ``$ref``.

    Returns:
        MutableJSONObject: The merged schema, or a copy of ``schema`` without ``allOf``.
    """
    all_of = schema.get("allOf")
    if not isinstance(all_of, list) or not all_of:
        return deepcopy(dict(schema))

    merged: MutableJSONObject = {key: value for key, value in schema.items() if key != "allOf"}
    merged_properties: MutableJSONObject = {}
    existing_properties = merged.get("properties")
    if isinstance(existing_properties, dict):
        merged_properties.update(deepcopy(existing_properties))
    merged_required: list[str] = []
    _extend_required(merged_required, merged.get("required"))

    merged_type = declared_type(merged)
    for item in all_of:
        if not isinstance(item, dict):
            continue
        child_schema = deepcopy(item)
        if normalize_item is not None:
            child_schema = normalize_item(child_schema)
        child_schema = merge_all_of_schema(child_schema, normalize_item=normalize_item)

        child_properties = child_schema.get("properties")
        if isinstance(child_properties, dict):
            merged_properties.update(deepcopy(child_properties))
        _extend_required(merged_required, child_schema.get("required"))
        child_type = declared_type(child_schema)
        if child_type is not None:
            merged_type = child_type
        elif merged_type is None and is_object_schema(child_schema):
            merged_type = "object"
        for key in ("additionalProperties", "items", "description"):
            if key in child_schema and key not in merged:
                merged[key] = deepcopy(child_schema[key])

    if merged_type is not None:
        merged["type"] = merged_type
    if merged_properties:
        merged["properties"] = merged_properties
    if merged_required:
        merged["required"] = merged_required
    return merged


def pick_typed_alternative(
    schema: JSONObject,
    *,
    normalize_item: Optional[ChildNormalizer] = None,
) -> Optional[MutableJSONObject]:
    """Return the first ``oneOf``/``anyOf`` member that declares a type or properties."""
    for keyword in ("oneOf", "anyOf"):
        options = schema.get(keyword)
        if not isinstance(options, list):
            continue
        for option in options:
            if not isinstance(option, dict):
                continue
            candidate = deepcopy(option)
            if normalize_item is not None:
                candidate = normalize_item(candidate)
            candidate = merge_all_of_schema(candidate, normalize_item=normalize_item)
            if declared_type(candidate) is not None or isinstance(candidate.get("properties"), dict):
                return candidate
    return None


def _extend_required(target: list[str], raw: JSONValue) -> None:
    if not isinstance(raw, list):
        return
    for name in raw:
        if isinstance(name, str) and name not in target:
            target.append(name)
