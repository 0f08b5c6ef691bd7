"""Tests for marker definitions, registry behavior and value parsing."""

from __future__ import annotations

import pytest

from openapi_resource_modeler.config import GeneratorConfig
from openapi_resource_modeler.marker_catalog import build_marker_registry, operation_combinations
from openapi_resource_modeler.markers import (
    OPTIONAL_STRING,
    STRING,
    ArgumentKind,
    ArgumentShape,
    MarkerParseError,
    MarkerRegistrationError,
    MarkerRegistry,
    MarkerTarget,
    RegistryFrozenError,
    UnsupportedKeyTypeError,
    split_marker_options,
    split_marker_text,
)


def test_identical_registration_is_a_no_op() -> None:
    """Registering the same definition twice keeps one entry."""
    registry = MarkerRegistry()
    first = registry.register("ns:ops:CR", MarkerTarget.TYPE, STRING, "ops")
    second = registry.register("+ns:ops:CR", MarkerTarget.TYPE, STRING, "ops")

    assert first is second
    assert len(registry) == 1


def test_conflicting_registration_raises() -> None:
    """A different definition under an existing name is rejected."""
    registry = MarkerRegistry()
    registry.register("ns:flag", MarkerTarget.TYPE, STRING)

    with pytest.raises(MarkerRegistrationError):
        registry.register("ns:flag", MarkerTarget.FIELD, STRING)


def test_registration_after_freeze_raises() -> None:
    """Frozen registries accept no new definitions."""
    registry = MarkerRegistry()
    registry.freeze()

    with pytest.raises(RegistryFrozenError):
        registry.register("ns:late", MarkerTarget.TYPE)
    assert registry.frozen


def test_map_shape_requires_string_keys() -> None:
    """Map argument shapes with non-string keys are unsupported."""
    registry = MarkerRegistry()
    shape = ArgumentShape.map_of(STRING, key=ArgumentKind.INT)

    with pytest.raises(UnsupportedKeyTypeError):
        registry.register("ns:labels", MarkerTarget.TYPE, shape)


def test_list_shape_requires_item_shape() -> None:
    """Container shapes must declare the shape of their items."""
    registry = MarkerRegistry()

    with pytest.raises(MarkerRegistrationError):
        registry.register("ns:tags", MarkerTarget.TYPE, ArgumentShape(ArgumentKind.LIST))


def test_lookup_returns_none_for_other_target() -> None:
    """A marker registered for types is not found on fields."""
    registry = MarkerRegistry()
    registry.register("ns:ops:CR", MarkerTarget.TYPE, STRING)

    assert registry.lookup("+ns:ops:CR=widgets", MarkerTarget.TYPE) is not None
    assert registry.lookup("+ns:ops:CR=widgets", MarkerTarget.FIELD) is None
    assert registry.lookup("+ns:ops:LR=widgets", MarkerTarget.TYPE) is None


def test_split_marker_text_handles_missing_value() -> None:
    """The sigil is stripped and the value splits at the first equals sign."""
    assert split_marker_text("+ns:flag") == ("ns:flag", None)
    assert split_marker_text(" +ns:path = a=b ") == ("ns:path", "a=b")


def test_split_marker_options_extracts_wait() -> None:
    """One bracketed option is removed from the name and returned."""
    assert split_marker_options("ns:extraMethod[wait(5m)]:POST") == (
        "ns:extraMethod:POST",
        {"wait": "5m"},
    )
    assert split_marker_options("ns:extraMethod:POST") == ("ns:extraMethod:POST", {})


def test_parse_scalar_list_and_map_values() -> None:
    """Values decode according to their declared shapes."""
    registry = MarkerRegistry()
    count = registry.register("ns:count", MarkerTarget.FIELD, ArgumentShape(ArgumentKind.INT))
    flag = registry.register("ns:flag", MarkerTarget.FIELD, ArgumentShape(ArgumentKind.BOOL))
    tags = registry.register("ns:tags", MarkerTarget.FIELD, ArgumentShape.list_of(STRING))
    labels = registry.register("ns:labels", MarkerTarget.FIELD, ArgumentShape.map_of(STRING))

    assert count.parse("+ns:count=42") == 42
    assert flag.parse("+ns:flag") is True
    assert flag.parse("+ns:flag=false") is False
    assert tags.parse("+ns:tags={a,b}") == ["a", "b"]
    assert tags.parse("+ns:tags=a;b;c") == ["a", "b", "c"]
    assert labels.parse('+ns:labels={env:prod,"team":storage}') == {"env": "prod", "team": "storage"}


def test_parse_any_prefers_bool_then_int_then_float() -> None:
    """Untyped values are tried as bool, int and float before falling back to text."""
    registry = MarkerRegistry()
    marker = registry.register("ns:default", MarkerTarget.FIELD, ArgumentShape(ArgumentKind.ANY))

    assert marker.parse("+ns:default=true") is True
    assert marker.parse("+ns:default=7") == 7
    assert marker.parse("+ns:default=1.5") == 1.5
    assert marker.parse("+ns:default=fast") == "fast"


def test_parse_int_rejects_text() -> None:
    """A non-numeric value for an int argument is a parse error."""
    registry = MarkerRegistry()
    marker = registry.register("ns:count", MarkerTarget.FIELD, ArgumentShape(ArgumentKind.INT))

    with pytest.raises(MarkerParseError):
        marker.parse("+ns:count=many")


def test_named_arguments_respect_optionality() -> None:
    """Struct-like markers fill optional arguments and reject missing required ones."""
    registry = MarkerRegistry()
    marker = registry.register(
        "ns:client",
        MarkerTarget.TYPE,
        {"path": STRING, "note": OPTIONAL_STRING},
    )

    assert marker.parse('+ns:client=path="/a,b"') == {"note": None, "path": "/a,b"}
    with pytest.raises(MarkerParseError):
        marker.parse("+ns:client=note=x")


def test_catalog_registers_every_operation_subset_and_wait_variant() -> None:
    """The resource catalog covers ordered CRUD subsets and async extra methods."""
    config = GeneratorConfig()
    registry = build_marker_registry(config)

    assert len(operation_combinations()) == 31
    assert "apityped:ops:CLRUD" in registry
    assert "apityped:ops:LR" in registry
    assert "apityped:ops:RL" not in registry
    assert "apiall:extraMethod:POST" in registry
    assert "apityped:extraMethod[wait(1d)]:GET|POST" in registry
    assert "apityped:extraMethod[wait(7m)]:POST" not in registry
