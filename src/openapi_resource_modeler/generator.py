"""High-level generation orchestration."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .assembly import MarkerAssemblyError, assemble_descriptors
from .collector import MarkerCollector
from .config import ConfigError, GeneratorConfig
from .loader import OpenAPILoadError, load_openapi_document
from .manifest import model_to_manifest
from .marker_catalog import build_marker_registry
from .markers import MarkerRegistrationError
from .model_types import FatalIssue, GenerationModel, ResourceDescriptor, ResourceModel
from .provider import OpenAPISchemaProvider, SchemaProvider, SchemaResolutionError
from .resource_builder import ResourceModelBuilder
from .source_facts import PythonSourceExtractor, SourceExtractionError, SourceFactExtractor
from .wiring import merge_descriptors, recover_wiring
from .writer import WriteError, write_manifest

logger = logging.getLogger(__name__)


class FatalGenerationError(RuntimeError):
    """Raised when an authoring error makes the whole run unusable."""

    def __init__(self, issues: Iterable[FatalIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"{issue.message} (marker: {issue.marker})" for issue in self.issues]
        super().__init__("; ".join(lines))


@dataclass(frozen=True)
class GenerationRun:
    """Generation result together with the files written for it."""

    model: GenerationModel
    written: tuple[Path, ...]
    warnings: tuple[str, ...]


def collect_descriptors(
    *,
    resources: SourceFactExtractor,
    wiring: Optional[SourceFactExtractor],
    config: GeneratorConfig,
) -> list[ResourceDescriptor]:
    """Assemble annotated descriptors and merge recovered wiring into them.

    Args:
        resources (SourceFactExtractor): Facts of the annotated resource declarations.
        wiring (Optional[SourceFactExtractor]): Facts of the hand-written wiring, if any.
        config (GeneratorConfig): Namespaces and policies.

    Returns:
        list[ResourceDescriptor]: Merged descriptors sorted by name.
    """
    registry = build_marker_registry(config)
    registry.freeze()
    collected = MarkerCollector(registry).collect(resources.annotation_facts())
    annotated = assemble_descriptors(collected, config)
    wired = recover_wiring(wiring, config) if wiring is not None else {}
    return merge_descriptors(annotated, wired)


def build_generation_model(
    *,
    provider: SchemaProvider,
    descriptors: Iterable[ResourceDescriptor],
    config: GeneratorConfig,
) -> GenerationModel:
    """Validate and build every resource plus the shared components.

    Raises:
        FatalGenerationError: When any extra method names a missing operation.
    """
    builder = ResourceModelBuilder(provider, config)
    resources: list[ResourceModel] = []
    fatal: list[FatalIssue] = []
    warnings: list[str] = []
    for descriptor in sorted(descriptors, key=lambda item: item.name):
        result = builder.build(descriptor)
        if isinstance(result, FatalIssue):
            fatal.append(result)
            continue
        if result.operations.is_empty and not result.extra_methods:
            warnings.append(f"{result.name}: no operations survived validation")
        resources.append(result)
    if fatal:
        raise FatalGenerationError(fatal)

    components = builder.build_components(warnings=warnings)
    return GenerationModel(
        resources=tuple(resources),
        components=components,
        warnings=tuple(warnings),
    )


def run_generation(
    *,
    openapi_path: Path,
    resources_dir: Path,
    wiring_path: Optional[Path],
    output_dir: Path,
    config: Optional[GeneratorConfig] = None,
) -> GenerationRun:
    """Generate the resource manifest for an annotated resource tree.

    Args:
        openapi_path (Path): Path to the OpenAPI document.
        resources_dir (Path): Directory of annotated resource declarations.
        wiring_path (Optional[Path]): Hand-written wiring module, if any.
        output_dir (Path): Directory the manifest is written to; must not exist.
        config (Optional[GeneratorConfig]): Settings; defaults when omitted.

    Returns:
        GenerationRun: The generation model, written files and warnings.
    """
    settings = config or GeneratorConfig()
    document = load_openapi_document(openapi_path)
    provider = OpenAPISchemaProvider(document)

    wiring: Optional[SourceFactExtractor] = None
    if wiring_path is not None:
        if not wiring_path.is_file():
            raise SourceExtractionError(f"Wiring file not found: {wiring_path}")
        wiring = PythonSourceExtractor([wiring_path])
    descriptors = collect_descriptors(
        resources=PythonSourceExtractor.from_directory(resources_dir),
        wiring=wiring,
        config=settings,
    )
    logger.info("Building %d resources", len(descriptors))

    model = build_generation_model(provider=provider, descriptors=descriptors, config=settings)
    written = write_manifest(output_dir, model_to_manifest(model))
    warnings = [*model.warnings]
    for resource in model.resources:
        warnings.extend(resource.warnings)
    return GenerationRun(model=model, written=written, warnings=tuple(warnings))


__all__ = [
    "ConfigError",
    "FatalGenerationError",
    "GenerationRun",
    "MarkerAssemblyError",
    "MarkerRegistrationError",
    "OpenAPILoadError",
    "SchemaResolutionError",
    "SourceExtractionError",
    "WriteError",
    "build_generation_model",
    "collect_descriptors",
    "run_generation",
]
