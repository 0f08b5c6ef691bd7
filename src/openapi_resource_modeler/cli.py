"""Command line interface for resource model generation."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from .config import load_config
from .generator import (
    ConfigError,
    FatalGenerationError,
    MarkerAssemblyError,
    MarkerRegistrationError,
    OpenAPILoadError,
    SchemaResolutionError,
    SourceExtractionError,
    WriteError,
    run_generation,
)


class CLIError(RuntimeError):
    """Raised when CLI execution fails."""


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser."""
    parser = argparse.ArgumentParser(
        prog="openapi-resource-modeler",
        description="Resolve annotated resource declarations against an OpenAPI document",
    )
    parser.add_argument("--openapi", required=True, help="Path to an OpenAPI YAML or JSON file")
    parser.add_argument(
        "--resources",
        required=True,
        help="Directory of annotated resource declarations",
    )
    parser.add_argument("--wiring", help="Hand-written wiring module to recover resources from")
    parser.add_argument("--config", help="YAML file with generator settings")
    parser.add_argument("--output", required=True, help="Output directory for the manifest")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Run CLI and return process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(Path(args.config) if args.config else None)
        resources_dir = Path(args.resources)
        if not resources_dir.is_dir():
            raise CLIError(f"Resource directory not found: {resources_dir}")
        run = run_generation(
            openapi_path=Path(args.openapi),
            resources_dir=resources_dir,
            wiring_path=Path(args.wiring) if args.wiring else None,
            output_dir=Path(args.output),
            config=config,
        )
    except (
        CLIError,
        ConfigError,
        FatalGenerationError,
        MarkerAssemblyError,
        MarkerRegistrationError,
        OpenAPILoadError,
        SchemaResolutionError,
        SourceExtractionError,
        WriteError,
    ) as exc:
        parser.error(str(exc))
        return 2

    for warning in run.warnings:
        print(f"Warning: {warning}")
    for resource in run.model.resources:
        for issue in resource.issues:
            print(f"Issue: {resource.name}: {issue.message}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
