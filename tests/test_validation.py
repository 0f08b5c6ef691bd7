"""Tests for CRUD and extra-method validation."""

from __future__ import annotations

from openapi_resource_modeler.config import GeneratorConfig, PrimitiveArrayPolicy
from openapi_resource_modeler.model_types import (
    ExtraMethodSpec,
    ExtraMethodVerdict,
    FatalIssue,
    IssueReason,
    Operation,
    OperationSet,
    ResourceDescriptor,
    ValidationIssue,
)
from openapi_resource_modeler.validation import (
    ExtraMethodResult,
    ValidationGate,
    extra_method_marker,
)

from .fixture_helpers import provider_from_yaml, storage_provider

_EDGE_CASES = """
openapi: 3.0.3
info: {title: Edge cases, version: "1"}
paths:
  /things/:
    get:
      responses:
        "200":
          description: ok
          content:
            application/json:
              schema:
                type: array
                items:
                  type: object
                  properties:
                    id: {type: string}
  /things/{id}/:
    get:
      responses:
        "200":
          description: ok
          content:
            application/json:
              schema: {type: object}
    patch:
      responses:
        "200":
          description: ok, but undocumented
  /things/{id}/labels/:
    get:
      summary: Labels.
      responses:
        "200":
          description: ok
          content:
            application/json:
              schema:
                type: object
                additionalProperties: {type: string}
  /things/{id}/names/:
    put:
      summary: Names.
      responses:
        "200":
          description: ok
          content:
            application/json:
              schema:
                type: array
                items: {type: string}
  /things/{id}/details/:
    get:
      summary: Details.
      responses:
        "200":
          description: ok
          content:
            application/json:
              schema:
                type: object
                properties:
                  id: {type: string}
                  extra: {type: object}
  /things/{id}/cache/:
    delete:
      summary: Drop cache.
      responses:
        "200":
          description: ok
  /things/{id}/refresh/:
    post:
      summary: Refresh.
      responses:
        "200":
          description: ok
          content:
            application/json:
              schema:
                type: object
                properties:
                  refreshed: {type: boolean}
  /things/{id}/ping/:
    post:
      summary: Ping.
      responses:
        "200":
          description: undocumented
  /replaced/{id}/:
    put:
      responses:
        "204":
          description: replaced
"""


def _edge_gate(config: GeneratorConfig = GeneratorConfig()) -> ValidationGate:
    return ValidationGate(provider_from_yaml(_EDGE_CASES), config)


def _descriptor(name: str, letters: str, path: str) -> ResourceDescriptor:
    return ResourceDescriptor(name=name, operations=OperationSet.from_letters(letters, path))


def _check_edge(
    verb: str,
    path: str,
    *,
    config: GeneratorConfig = GeneratorConfig(),
) -> ExtraMethodResult:
    return _edge_gate(config).check_extra_method("Thing", ExtraMethodSpec(verb=verb, path=path))


def test_missing_create_response_excludes_create_only() -> None:
    """A POST without response schema or 204 drops CREATE and keeps the rest."""
    gate = ValidationGate(storage_provider(), GeneratorConfig())

    effective, issues = gate.check_operations(_descriptor("Bucket", "CRUD", "buckets"))

    assert effective.letters == "RUD"
    assert [(issue.operation, issue.reason) for issue in issues] == [
        ("CREATE", IssueReason.MISSING_SCHEMA)
    ]
    assert issues[0].message == (
        "CREATE operation excluded: POST /buckets/ has no response schema "
        "and doesn't return 204 NO CONTENT"
    )


def test_ambiguous_list_and_read_are_both_excluded() -> None:
    """A list of ambiguous objects and an ambiguous read leave no CRUD operations."""
    gate = ValidationGate(storage_provider(), GeneratorConfig())

    effective, issues = gate.check_operations(_descriptor("Gadget", "LR", "gadgets"))

    assert effective.is_empty
    assert {issue.operation: issue.reason for issue in issues} == {
        "LIST": IssueReason.ARRAY_OF_AMBIGUOUS_OBJECTS,
        "READ": IssueReason.AMBIGUOUS_SCHEMA,
    }


def test_ambiguous_read_cascades_to_list() -> None:
    """LIST is dropped with READ when the read response is ambiguous."""
    effective, issues = _edge_gate().check_operations(_descriptor("Thing", "LR", "things"))

    assert effective.is_empty
    assert [(issue.operation, issue.reason) for issue in issues] == [
        ("LIST", IssueReason.AMBIGUOUS_SCHEMA),
        ("READ", IssueReason.AMBIGUOUS_SCHEMA),
    ]


def test_update_contract_checks() -> None:
    """PATCH without a body or 204 breaks the update contract; PUT with 204 is fine."""
    gate = _edge_gate()

    broken, broken_issues = gate.check_operations(_descriptor("Thing", "UD", "things"))
    replaced, replaced_issues = gate.check_operations(_descriptor("Replaced", "UD", "replaced"))
    missing, missing_issues = gate.check_operations(_descriptor("Missing", "U", "missing"))

    assert broken.letters == "D"
    assert broken_issues[0].reason is IssueReason.BROKEN_UPDATE_CONTRACT
    assert replaced.letters == "UD"
    assert replaced_issues == []
    assert missing.is_empty
    assert missing_issues[0].reason is IssueReason.MISSING_SCHEMA


def test_undeclared_delete_is_kept() -> None:
    """DELETE survives when the path does not declare it."""
    effective, issues = _edge_gate().check_operations(_descriptor("Replaced", "D", "replaced"))

    assert effective.has(Operation.DELETE)
    assert issues == []


def test_unknown_extra_method_is_fatal() -> None:
    """An extra method on an undeclared path aborts with the offending marker."""
    spec = ExtraMethodSpec(verb="POST", path="/things/{id}/nope/", wait_timeout="5m")

    result = _edge_gate().check_extra_method("Thing", spec)

    assert isinstance(result, FatalIssue)
    assert result.marker == "extraMethod[wait(5m)]:POST=/things/{id}/nope/"
    assert extra_method_marker(ExtraMethodSpec(verb="GET", path="/a/")) == "extraMethod:GET=/a/"


def test_map_responses_are_skipped() -> None:
    """Free-form map responses cannot be modeled."""
    result = _check_edge("GET", "/things/{id}/labels/")

    assert isinstance(result, ValidationIssue)
    assert result.reason is IssueReason.MAP_RESPONSE
    assert result.operation == "extraMethod GET /things/{id}/labels/"


def test_primitive_arrays_follow_policy() -> None:
    """Primitive arrays are allowed per policy and verb."""
    allow = GeneratorConfig(primitive_array_policy=PrimitiveArrayPolicy.ALLOW)

    legacy = _check_edge("PUT", "/things/{id}/names/")
    allowed = _check_edge("PUT", "/things/{id}/names/", config=allow)

    assert isinstance(legacy, ValidationIssue)
    assert legacy.reason is IssueReason.ARRAY_OF_PRIMITIVES
    assert isinstance(allowed, ExtraMethodVerdict)
    assert allowed.is_bare_array


def test_strict_mode_rejects_nested_ambiguous_objects() -> None:
    """Nested ambiguous objects only matter in strict mode."""
    strict_config = GeneratorConfig(strict_extra_method_responses=True)

    relaxed = _check_edge("GET", "/things/{id}/details/")
    strict = _check_edge("GET", "/things/{id}/details/", config=strict_config)

    assert isinstance(relaxed, ExtraMethodVerdict)
    assert isinstance(strict, ValidationIssue)
    assert strict.reason is IssueReason.NESTED_AMBIGUOUS_OBJECT


def test_no_content_and_missing_responses() -> None:
    """DELETE without a body is kept; other verbs without a schema or 204 are skipped."""
    deleted = _check_edge("DELETE", "/things/{id}/cache/")
    pinged = _check_edge("POST", "/things/{id}/ping/")

    assert isinstance(deleted, ExtraMethodVerdict)
    assert deleted.returns_no_content
    assert deleted.response is None
    assert isinstance(pinged, ValidationIssue)
    assert pinged.reason is IssueReason.MISSING_SCHEMA


def test_async_detection_and_warnings() -> None:
    """Async task responses are detected; mismatches and missing summaries warn."""
    warnings: list[str] = []
    gate = ValidationGate(storage_provider(), GeneratorConfig())

    resize = gate.check_extra_method(
        "Widget",
        ExtraMethodSpec(verb="POST", path="/widgets/{id}/resize/", wait_timeout="5m"),
        warnings=warnings,
    )
    tags = gate.check_extra_method(
        "Widget",
        ExtraMethodSpec(verb="GET", path="/widgets/{id}/tags/", wait_timeout="1m"),
        warnings=warnings,
    )

    assert isinstance(resize, ExtraMethodVerdict)
    assert resize.is_async_task
    assert resize.has_request_body
    assert isinstance(tags, ExtraMethodVerdict)
    assert not tags.is_async_task
    assert tags.is_bare_array
    assert warnings == [
        "Widget: GET /widgets/{id}/tags/ has no summary",
        "Widget: GET /widgets/{id}/tags/ declares wait(1m) "
        "but does not respond with AsyncTaskInResponse",
    ]


def test_refresh_without_body() -> None:
    """Methods without a request body are flagged as such."""
    result = _check_edge("POST", "/things/{id}/refresh/")

    assert isinstance(result, ExtraMethodVerdict)
    assert not result.has_request_body
    assert not result.returns_no_content


_UPSERTS = """
openapi: 3.0.3
info: {title: Upserts, version: "1"}
paths:
  /labels/:
    post:
      responses:
        "201":
          description: created
          content:
            application/json:
              schema:
                type: object
                additionalProperties: {type: string}
  /switches/{id}/:
    patch:
      responses:
        "200":
          description: ok, but undocumented
    put:
      responses:
        "200":
          description: replaced
          content:
            application/json:
              schema:
                type: object
                properties:
                  state: {type: string}
  /broken/:
    get:
      responses:
        "200":
          description: dangling
          content:
            application/json:
              schema:
                $ref: "#/components/schemas/Missing"
  /broken/{id}/odd/:
    get:
      summary: Odd.
      responses:
        "200":
          description: dangling
          content:
            application/json:
              schema:
                $ref: "#/components/schemas/Missing"
"""


def _upsert_gate() -> ValidationGate:
    return ValidationGate(provider_from_yaml(_UPSERTS), GeneratorConfig())


def test_map_shaped_create_response_is_excluded() -> None:
    """A free-form map cannot back an upsert model, so CREATE is dropped."""
    effective, issues = _upsert_gate().check_operations(_descriptor("Label", "C", "labels"))

    assert effective.is_empty
    assert [(issue.operation, issue.reason) for issue in issues] == [
        ("CREATE", IssueReason.MAP_RESPONSE)
    ]
    assert issues[0].message == "CREATE operation excluded: POST /labels/ responds with a free-form map"


def test_update_accepts_put_when_patch_is_undocumented() -> None:
    """UPDATE survives when either PATCH or PUT honours the update contract."""
    gate = _upsert_gate()

    effective, issues = gate.check_operations(_descriptor("Switch", "U", "switches"))

    assert effective.letters == "U"
    assert issues == []
    assert gate.update_verb("/switches/{id}/") == "PUT"
    assert gate.update_verb("/labels/{id}/") is None


def test_unresolvable_references_become_issues() -> None:
    """Dangling references exclude the operation instead of aborting the run."""
    gate = _upsert_gate()

    effective, issues = gate.check_operations(_descriptor("Broken", "L", "broken"))
    odd = gate.check_extra_method("Broken", ExtraMethodSpec(verb="GET", path="/broken/{id}/odd/"))

    assert effective.is_empty
    assert [(issue.operation, issue.reason) for issue in issues] == [
        ("LIST", IssueReason.MISSING_SCHEMA)
    ]
    assert "Unresolvable reference" in issues[0].message
    assert isinstance(odd, ValidationIssue)
    assert odd.reason is IssueReason.MISSING_SCHEMA
    assert "Unresolvable reference" in odd.message
