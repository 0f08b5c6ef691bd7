"""Integration tests for generator behavior."""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Iterable
from pathlib import Path

import pytest
import yaml

from openapi_resource_modeler.cli import main
from openapi_resource_modeler.config import GeneratorConfig
from openapi_resource_modeler.generator import (
    FatalGenerationError,
    GenerationRun,
    WriteError,
    build_generation_model,
    run_generation,
)
from openapi_resource_modeler.model_types import (
    Field,
    IssueReason,
    OperationSet,
    ResourceDescriptor,
    ResourceModel,
)

from .fixture_helpers import RESOURCES_DIR, STORAGE_API, WIRING_FILE, storage_provider

_GHOST_RESOURCE = '''"""Resources with a broken extra method."""


class Ghost:
    """A resource whose extra method does not exist.

    +apityped:ops:R=widgets
    +apityped:extraMethod:POST=/ghosts/{id}/boo/
    """
'''


def _generate(output_dir: Path) -> GenerationRun:
    return run_generation(
        openapi_path=STORAGE_API,
        resources_dir=RESOURCES_DIR,
        wiring_path=WIRING_FILE,
        output_dir=output_dir,
    )


@pytest.fixture(scope="module")
def storage_run(tmp_path_factory: pytest.TempPathFactory) -> GenerationRun:
    return _generate(tmp_path_factory.mktemp("storage") / "out")


def _resource(run: GenerationRun, name: str) -> ResourceModel:
    for resource in run.model.resources:
        if resource.name == name:
            return resource
    raise AssertionError(f"Resource {name} not generated")


def _annotations(fields: Iterable[Field]) -> list[tuple[str, str, bool]]:
    return [(item.name, item.type_ref.annotation, item.required) for item in fields]


def test_resources_are_merged_and_sorted(storage_run: GenerationRun) -> None:
    """Annotated and wiring-only resources appear once, sorted by name."""
    names = [resource.name for resource in storage_run.model.resources]

    assert names == ["Bucket", "Gadget", "Policy", "Widget"]


def test_widget_keeps_all_operations(storage_run: GenerationRun) -> None:
    """A fully documented resource keeps CLRUD and aliases its component."""
    widget = _resource(storage_run, "Widget")

    assert widget.operations.letters == "CLRUD"
    assert widget.issues == ()
    assert widget.model_alias is not None
    assert widget.model_alias.type_name == "Component_Widget"
    assert widget.upsert_alias is not None
    assert widget.upsert_alias.component == "Widget"
    assert _annotations(widget.request_body) == [
        ("Name", "str", True),
        ("PolicyId", "str", True),
        ("Tags", "Optional[list[str]]", False),
    ]
    assert [param.name for param in widget.search_params] == ["Limit", "Name"]


def test_widget_extra_methods(storage_run: GenerationRun) -> None:
    """Async and primitive-array extra methods are modeled."""
    widget = _resource(storage_run, "Widget")
    resize, tags = widget.extra_methods

    assert resize.name == "WidgetResize"
    assert resize.is_async_task
    assert resize.wait_timeout == "5m"
    assert resize.sub_path == "resize"
    assert resize.response_alias is not None
    assert resize.response_alias.type_name == "Component_AsyncTaskInResponse"
    assert _annotations(resize.body) == [("Size", "int", True)]
    assert tags.name == "WidgetTags"
    assert tags.returns_array
    assert tags.response_type_name == "WidgetTags_GET_Item"
    assert tags.primitive_response is not None
    assert tags.primitive_response.annotation == "list[str]"
    assert "Widget: GET /widgets/{id}/tags/ has no summary" in widget.warnings


def test_bucket_create_is_excluded(storage_run: GenerationRun) -> None:
    """An undocumented create response drops CREATE only."""
    bucket = _resource(storage_run, "Bucket")

    assert bucket.requested.letters == "CRUD"
    assert bucket.operations.letters == "RUD"
    assert [(issue.operation, issue.reason) for issue in bucket.issues] == [
        ("CREATE", IssueReason.MISSING_SCHEMA)
    ]
    assert _annotations(bucket.request_body) == [("Name", "str", True), ("Size", "int", False)]
    assert bucket.model_alias is not None
    assert bucket.model_alias.component == "Bucket"
    assert bucket.search_params == ()


def test_gadget_keeps_only_its_extra_method(storage_run: GenerationRun) -> None:
    """Ambiguous list and read responses remove every CRUD operation."""
    gadget = _resource(storage_run, "Gadget")

    assert gadget.operations.is_empty
    assert {issue.operation: issue.reason for issue in gadget.issues} == {
        "LIST": IssueReason.ARRAY_OF_AMBIGUOUS_OBJECTS,
        "READ": IssueReason.AMBIGUOUS_SCHEMA,
    }
    (status,) = gadget.extra_methods
    assert status.name == "GadgetStatus"
    assert _annotations(status.response) == [("State", "str", True), ("Since", "str", False)]
    assert storage_run.model.warnings == ()


def test_wiring_only_policy(storage_run: GenerationRun) -> None:
    """Resources recovered from wiring get inline models and searchable fields."""
    policy = _resource(storage_run, "Policy")

    assert policy.plural_name == "Policies"
    assert policy.operations.letters == "LR"
    assert policy.model_alias is None
    assert _annotations(policy.model_fields) == [
        ("Id", "str", True),
        ("Name", "str", True),
        ("Labels", "dict[str, str]", False),
        ("Limits", "Optional[PolicyModel_Limits]", False),
        ("Uid", "int", False),
    ]
    assert [node.name for node in policy.nested_types] == ["PolicyModel_Limits"]
    assert [param.name for param in policy.search_params] == ["Enabled", "Name", "Uid"]
    (enable,) = policy.extra_methods
    assert enable.name == "PolicyEnable"
    assert enable.returns_no_content
    assert "PolicyModel.rules: skipped array of ambiguous objects" in policy.warnings


def test_components_cover_object_schemas_only(storage_run: GenerationRun) -> None:
    """Ambiguous components are not generated."""
    names = [component.name for component in storage_run.model.components]

    assert names == ["AsyncTaskInResponse", "Bucket", "Policy", "Widget"]


def test_manifest_files_are_written(storage_run: GenerationRun) -> None:
    """Index, component and per-resource documents are written."""
    output_dir = storage_run.written[-1].parent
    index = yaml.safe_load((output_dir / "index.yaml").read_text(encoding="utf-8"))
    widget = yaml.safe_load((output_dir / "resources" / "widget.yaml").read_text(encoding="utf-8"))

    assert [path.name for path in storage_run.written] == [
        "bucket.yaml",
        "gadget.yaml",
        "policy.yaml",
        "widget.yaml",
        "components.yaml",
        "index.yaml",
    ]
    assert index["resources"][0] == {
        "name": "Bucket",
        "file": "resources/bucket.yaml",
        "path": "/buckets/",
        "requested": "CRUD",
        "operations": "RUD",
        "extra_methods": 0,
        "issues": 1,
    }
    assert widget["model"]["alias"]["type_name"] == "Component_Widget"
    assert widget["request_body"][1] == {
        "name": "PolicyId",
        "type": "str",
        "source_key": "policy__id",
        "required": True,
        "description": "Policy applied to the widget.",
    }


def test_generation_is_deterministic(tmp_path: Path) -> None:
    """Two runs over the same inputs write byte-identical files."""
    first = _generate(tmp_path / "first")
    second = _generate(tmp_path / "second")

    first_files = {path.relative_to(tmp_path / "first"): path.read_bytes() for path in first.written}
    second_files = {
        path.relative_to(tmp_path / "second"): path.read_bytes() for path in second.written
    }
    assert first_files == second_files


def test_missing_extra_method_path_is_fatal(tmp_path: Path) -> None:
    """A fatal authoring error aborts before anything is written."""
    resources_dir = tmp_path / "resources"
    resources_dir.mkdir()
    (resources_dir / "ghost.py").write_text(_GHOST_RESOURCE, encoding="utf-8")
    output_dir = tmp_path / "out"

    with pytest.raises(FatalGenerationError) as exc_info:
        run_generation(
            openapi_path=STORAGE_API,
            resources_dir=resources_dir,
            wiring_path=None,
            output_dir=output_dir,
        )

    assert "(marker: extraMethod:POST=/ghosts/{id}/boo/)" in str(exc_info.value)
    assert [issue.resource for issue in exc_info.value.issues] == ["Ghost"]
    assert not output_dir.exists()


def test_build_generation_model_warns_when_nothing_survives() -> None:
    """Resources left without operations or extra methods produce a run warning."""
    descriptor = ResourceDescriptor(
        name="Gadget",
        operations=OperationSet.from_letters("LR", "gadgets"),
    )

    model = build_generation_model(
        provider=storage_provider(),
        descriptors=[descriptor],
        config=GeneratorConfig(),
    )

    assert model.warnings == ("Gadget: no operations survived validation",)


def test_output_directory_must_not_exist(tmp_path: Path) -> None:
    """Generator refuses to write into pre-existing output directories."""
    output_dir = tmp_path / "existing"
    output_dir.mkdir(parents=True)

    with pytest.raises(WriteError):
        _generate(output_dir)


def test_cli_reports_warnings_and_issues(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """The CLI prints warnings and issues and exits cleanly."""
    exit_code = main(
        [
            "--openapi",
            str(STORAGE_API),
            "--resources",
            str(RESOURCES_DIR),
            "--wiring",
            str(WIRING_FILE),
            "--output",
            str(tmp_path / "out"),
        ]
    )

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "Warning: Widget: GET /widgets/{id}/tags/ has no summary" in output
    assert "Issue: Bucket: CREATE operation excluded" in output
    assert (tmp_path / "out" / "index.yaml").is_file()


def test_cli_rejects_missing_resource_directory(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Known errors are reported through the argument parser with exit code 2."""
    with pytest.raises(SystemExit) as exc_info:
        main(
            [
                "--openapi",
                str(STORAGE_API),
                "--resources",
                str(tmp_path / "missing"),
                "--output",
                str(tmp_path / "out"),
            ]
        )

    assert exc_info.value.code == 2
    assert "Resource directory not found" in capsys.readouterr().err


def test_cli_help_screen() -> None:
    """Running the CLI help should succeed and print usage information."""
    result = subprocess.run(
        [sys.executable, "-m", "openapi_resource_modeler", "--help"],
        check=False,
        capture_output=True,
        text=True,
    )
    assert result.returncode == 0
    assert "usage:" in result.stdout.lower()
