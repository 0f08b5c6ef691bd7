"""Tests for component alias decisions."""

from __future__ import annotations

from openapi_resource_modeler.aliasing import AliasOptimizer
from openapi_resource_modeler.provider import SchemaPart

from .fixture_helpers import provider_from_yaml, storage_provider

_LOOKALIKES = """
openapi: 3.0.3
info: {title: Lookalikes, version: "1"}
paths:
  /copies/{id}/:
    get:
      responses:
        "200":
          description: Same shape as Bucket, written inline.
          content:
            application/json:
              schema:
                type: object
                required: [name]
                properties:
                  name: {type: string}
                  size: {type: integer}
components:
  schemas:
    Bucket:
      type: object
      required: [name]
      properties:
        name: {type: string}
        size: {type: integer}
"""


def test_direct_reference_aliases_component() -> None:
    """A response written as ``$ref`` to an object component aliases it."""
    provider = storage_provider()
    schema = provider.resolve_operation_schema("GET", "/buckets/{id}/", SchemaPart.RESPONSE)

    decision = AliasOptimizer(provider).decide("BucketModel", schema)

    assert decision is not None
    assert decision.component == "Bucket"
    assert decision.type_name == "Component_Bucket"
    assert decision.reference == "#/components/schemas/Bucket"
    assert decision.target == "BucketModel"


def test_array_items_alias_component() -> None:
    """Arrays alias the component of their items."""
    provider = storage_provider()
    schema = provider.resolve_operation_schema(
        "GET",
        "/policies/",
        SchemaPart.RESPONSE,
        unwrap=False,
    )

    decision = AliasOptimizer(provider).decide("PolicyList", schema)

    assert decision is not None
    assert decision.component == "Policy"


def test_structural_lookalikes_do_not_alias() -> None:
    """An inline schema identical to a component is not an alias."""
    provider = provider_from_yaml(_LOOKALIKES)
    schema = provider.resolve_operation_schema("GET", "/copies/{id}/", SchemaPart.RESPONSE)

    assert AliasOptimizer(provider).decide("CopyModel", schema) is None


def test_non_object_components_are_not_aliasable() -> None:
    """Components without declared properties are never aliased."""
    provider = storage_provider()
    optimizer = AliasOptimizer(provider)
    schema = provider.resolve_operation_schema("GET", "/gadgets/{id}/", SchemaPart.RESPONSE)

    assert optimizer.decide("GadgetModel", schema) is None
    assert not optimizer.is_aliasable("Gadget")
    assert not optimizer.is_aliasable("Missing")
    assert optimizer.is_aliasable("Widget")
