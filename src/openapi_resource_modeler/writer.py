"""Filesystem writer for generation manifests."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from .json_types import JSONValue
from .manifest import COMPONENTS_FILENAME, INDEX_FILENAME, RESOURCES_DIRNAME, Manifest

logger = logging.getLogger(__name__)


class WriteError(RuntimeError):
    """Raised when output files cannot be written."""


def create_output_layout(output_dir: Path) -> Path:
    """Create the output directory and its ``resources`` subdirectory.

    Args:
        output_dir (Path): Root output directory to create.

    Returns:
        Path: Path to the created ``resources`` directory.
    """
    if output_dir.exists():
        raise WriteError(f"Output directory already exists: {output_dir}")

    resources_dir = output_dir / RESOURCES_DIRNAME
    try:
        resources_dir.mkdir(parents=True, exist_ok=False)
    except OSError as exc:
        raise WriteError(f"Failed to create output directory {output_dir}: {exc}") from exc
    return resources_dir


def write_manifest(output_dir: Path, manifest: Manifest) -> tuple[Path, ...]:
    """Write every manifest document below ``output_dir``.

    Args:
        output_dir (Path): Output directory; must not exist yet.
        manifest (Manifest): Documents to write.

    Returns:
        tuple[Path, ...]: Written files in write order.
    """
    create_output_layout(output_dir)
    written: list[Path] = []
    for relative, document in manifest.resources.items():
        written.append(_write_yaml(output_dir / relative, document))
    written.append(_write_yaml(output_dir / COMPONENTS_FILENAME, manifest.components))
    written.append(_write_yaml(output_dir / INDEX_FILENAME, manifest.index))
    logger.debug("Wrote %d manifest files to %s", len(written), output_dir)
    return tuple(written)


def render_yaml(document: JSONValue) -> str:
    """Render a document the way manifest files are written."""
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True, default_flow_style=False)


def _write_yaml(path: Path, document: JSONValue) -> Path:
    _write_file(path, render_yaml(document))
    return path


def _write_file(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise WriteError(f"Failed to write file {path}: {exc}") from exc
