"""Shared helpers for fixture-driven tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import ParamSpec, TypeVar

import pytest
import yaml

from openapi_resource_modeler.provider import OpenAPISchemaProvider

_FIXTURE_ROOT = Path(__file__).resolve().parent / "fixtures"
_OPENAPI_DIR = _FIXTURE_ROOT / "openapi_specs"
_P = ParamSpec("_P")
_R = TypeVar("_R")

STORAGE_API = _OPENAPI_DIR / "storage_api.yaml"
RESOURCES_DIR = _FIXTURE_ROOT / "resources"
WIRING_FILE = _FIXTURE_ROOT / "wiring" / "rest.py"


def fixture_dir() -> Path:
    """Return the OpenAPI fixtures directory."""
    return _OPENAPI_DIR


def iter_fixture_paths() -> list[Path]:
    """Return all YAML fixture paths sorted by name."""
    paths = sorted(_OPENAPI_DIR.glob("*.yaml")) + sorted(_OPENAPI_DIR.glob("*.yml"))
    return [path for path in paths if path.is_file()]


def parametrize_fixtures() -> Callable[[Callable[_P, _R]], Callable[_P, _R]]:
    """Parametrize a test over all fixture paths."""

    def _decorator(func: Callable[_P, _R]) -> Callable[_P, _R]:
        decorator: Callable[[Callable[_P, _R]], Callable[_P, _R]]
        decorator = pytest.mark.parametrize(
            "fixture_path",
            iter_fixture_paths(),
            ids=lambda path: path.name,
        )
        return decorator(func)

    return _decorator


def provider_from_yaml(text: str) -> OpenAPISchemaProvider:
    """Build a provider from an inline YAML document without schema validation."""
    document = yaml.safe_load(text)
    assert isinstance(document, dict)
    return OpenAPISchemaProvider(document)


def storage_provider() -> OpenAPISchemaProvider:
    """Return a provider over the storage API fixture."""
    return provider_from_yaml(STORAGE_API.read_text(encoding="utf-8"))
