"""Tests for source fact extraction, marker collection and descriptor assembly."""

from __future__ import annotations

from pathlib import Path

import pytest

from openapi_resource_modeler.assembly import (
    MarkerAssemblyError,
    MarkerKind,
    assemble_descriptors,
    classify_marker,
)
from openapi_resource_modeler.collector import MarkerCollector
from openapi_resource_modeler.config import GeneratorConfig, OpsMarkerPolicy
from openapi_resource_modeler.marker_catalog import build_marker_registry
from openapi_resource_modeler.markers import MarkerTarget
from openapi_resource_modeler.model_types import ExtraMethodSpec, Operation
from openapi_resource_modeler.source_facts import (
    AnnotationFact,
    PythonSourceExtractor,
    SourceExtractionError,
    StaticFactExtractor,
    marker_lines,
)

from .fixture_helpers import RESOURCES_DIR


def _type_fact(declaration: str, text: str) -> AnnotationFact:
    return AnnotationFact(declaration=declaration, text=text, target=MarkerTarget.TYPE)


def _assemble(facts: list[AnnotationFact], config: GeneratorConfig):
    registry = build_marker_registry(config)
    registry.freeze()
    extractor = StaticFactExtractor(annotations=facts)
    collected = MarkerCollector(registry).collect(extractor.annotation_facts())
    return assemble_descriptors(collected, config)


def test_marker_lines_strip_comment_prefixes() -> None:
    """Marker lines are found in docstrings and comment blocks."""
    text = "A widget.\n\n# +apityped:ops:CR=widgets\n  +apiall:extraMethod:GET=/w/\n+ not a marker"
    assert marker_lines(text) == ["+apityped:ops:CR=widgets", "+apiall:extraMethod:GET=/w/"]


def test_python_extractor_reads_docstrings_and_comment_blocks() -> None:
    """Class docstrings and comment blocks above classes both carry markers."""
    extractor = PythonSourceExtractor.from_directory(RESOURCES_DIR)
    facts = [fact for fact in extractor.annotation_facts() if fact.target is MarkerTarget.TYPE]
    by_declaration: dict[str, list[str]] = {}
    for fact in facts:
        by_declaration.setdefault(fact.declaration, []).append(fact.text)

    assert by_declaration["Bucket"] == ["+apityped:ops:CRUD=buckets"]
    assert "+apityped:extraMethod[wait(5m)]:POST=/widgets/{id}/resize/" in by_declaration["Widget"]
    assert "GadgetSummary" not in by_declaration


def test_python_extractor_requires_directory(tmp_path: Path) -> None:
    """A missing resource directory is reported as an extraction error."""
    with pytest.raises(SourceExtractionError):
        PythonSourceExtractor.from_directory(tmp_path / "missing")


def test_python_extractor_reports_syntax_errors(tmp_path: Path) -> None:
    """Unparseable sources raise instead of being skipped."""
    (tmp_path / "broken.py").write_text("class Broken(:\n", encoding="utf-8")
    extractor = PythonSourceExtractor.from_directory(tmp_path)

    with pytest.raises(SourceExtractionError):
        extractor.annotation_facts()


def test_classify_marker_accepts_shared_namespace_only_for_extra_methods() -> None:
    """Operation sets are typed-namespace only; extra methods accept both namespaces."""
    config = GeneratorConfig()

    assert classify_marker("apityped:ops:CR", config) == (MarkerKind.OPERATIONS, "CR")
    assert classify_marker("apiall:extraMethod:GET|POST", config) == (
        MarkerKind.EXTRA_METHOD,
        "GET|POST",
    )
    assert classify_marker("apiall:ops:CR", config) is None


def test_assembly_expands_verb_lists_and_wait_options() -> None:
    """Each verb of a verb list becomes its own extra method."""
    descriptors = _assemble(
        [
            _type_fact("Widget", "+apityped:ops:CLRUD=widgets"),
            _type_fact("Widget", "+apityped:extraMethod[wait(10m)]:GET|POST=/widgets/{id}/sync/"),
        ],
        GeneratorConfig(),
    )

    assert len(descriptors) == 1
    widget = descriptors[0]
    assert widget.operations is not None
    assert widget.operations.letters == "CLRUD"
    assert widget.operations.item_path == "/widgets/{id}/"
    assert widget.extra_methods == (
        ExtraMethodSpec(verb="GET", path="/widgets/{id}/sync/", wait_timeout="10m"),
        ExtraMethodSpec(verb="POST", path="/widgets/{id}/sync/", wait_timeout="10m"),
    )


def test_assembly_keeps_first_operation_marker_and_notes_the_rest() -> None:
    """Later operation-set markers are ignored with a lint note."""
    descriptors = _assemble(
        [
            _type_fact("Widget", "+apityped:ops:CR=widgets"),
            _type_fact("Widget", "+apityped:ops:CLRUD=widgets"),
        ],
        GeneratorConfig(),
    )

    widget = descriptors[0]
    assert widget.operations is not None
    assert widget.operations.operations == frozenset({Operation.CREATE, Operation.READ})
    assert any("Ignoring additional operation-set marker" in note for note in widget.notes)


def test_assembly_rejects_second_operation_marker_when_configured() -> None:
    """The reject policy turns a repeated operation-set marker into an error."""
    config = GeneratorConfig(ops_marker_policy=OpsMarkerPolicy.REJECT)
    with pytest.raises(MarkerAssemblyError):
        _assemble(
            [
                _type_fact("Widget", "+apityped:ops:CR=widgets"),
                _type_fact("Widget", "+apityped:ops:LR=widgets"),
            ],
            config,
        )


def test_unknown_wait_duration_keeps_method_synchronous() -> None:
    """A wait duration outside the closed set is noted and dropped."""
    descriptors = _assemble(
        [
            _type_fact("Widget", "+apityped:ops:R=widgets"),
            _type_fact("Widget", "+apityped:extraMethod[wait(7m)]:POST=/widgets/{id}/sync/"),
        ],
        GeneratorConfig(),
    )

    widget = descriptors[0]
    assert widget.extra_methods == (ExtraMethodSpec(verb="POST", path="/widgets/{id}/sync/"),)
    assert any("7m" in note for note in widget.notes)


def test_declarations_without_resource_markers_are_dropped() -> None:
    """Unregistered markers do not make a declaration a resource."""
    descriptors = _assemble(
        [
            _type_fact("Helper", "+apityped:unknownMarker=1"),
            _type_fact("Bucket", "+apityped:details:GET=buckets"),
        ],
        GeneratorConfig(),
    )

    assert [descriptor.name for descriptor in descriptors] == ["Bucket"]
    assert descriptors[0].operations is None
    assert descriptors[0].has_legacy_markers


def test_custom_namespaces_are_honored() -> None:
    """Namespaces come from configuration."""
    config = GeneratorConfig(typed_namespace="acme", shared_namespace="acmeall")
    descriptors = _assemble(
        [
            _type_fact("Widget", "+acme:ops:LR=widgets"),
            _type_fact("Widget", "+acmeall:extraMethod:DELETE=/widgets/{id}/cache/"),
            _type_fact("Other", "+apityped:ops:LR=others"),
        ],
        config,
    )

    assert [descriptor.name for descriptor in descriptors] == ["Widget"]
    assert descriptors[0].extra_methods[0].verb == "DELETE"
