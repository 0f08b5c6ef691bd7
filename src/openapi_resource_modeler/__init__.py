"""Resolve annotated API resources against an OpenAPI document."""

from __future__ import annotations

from .cli import main
from .config import GeneratorConfig, load_config
from .generator import FatalGenerationError, GenerationRun, build_generation_model, run_generation

__all__ = [
    "FatalGenerationError",
    "GenerationRun",
    "GeneratorConfig",
    "build_generation_model",
    "load_config",
    "main",
    "run_generation",
]
