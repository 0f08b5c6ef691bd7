"""Resource marker catalog registered into a fresh registry for each run."""

from __future__ import annotations

from itertools import combinations

from .config import GeneratorConfig
from .markers import OPTIONAL_STRING, STRING, MarkerRegistry, MarkerTarget

OPERATION_LETTERS = "CLRUD"
URL_MARKER_VERBS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH")
DETAILS_VERBS: tuple[str, ...] = ("GET", "PATCH")
UPSERT_VERBS: tuple[str, ...] = ("POST", "PUT", "PATCH")


def operation_combinations(letters: str = OPERATION_LETTERS) -> list[str]:
    """Return every non-empty, order-preserving subset of ``letters``."""
    combos: list[str] = []
    for size in range(len(letters), 0, -1):
        combos.extend("".join(combo) for combo in combinations(letters, size))
    return combos


def build_marker_registry(config: GeneratorConfig) -> MarkerRegistry:
    """Create a registry holding the resource marker catalog."""
    registry = MarkerRegistry()
    register_resource_markers(registry, config)
    return registry


def register_resource_markers(registry: MarkerRegistry, config: GeneratorConfig) -> None:
    """Register operation-set, URL, legacy and extra-method markers.

    Args:
        registry (MarkerRegistry): Registry to populate; must not be frozen.
        config (GeneratorConfig): Namespaces, verbs and wait durations to register.
    """
    typed = config.typed_namespace
    for verb in URL_MARKER_VERBS:
        registry.register(
            f"{typed}:requestUrl:{verb}",
            MarkerTarget.TYPE,
            OPTIONAL_STRING,
            f"{verb} request URL for this type",
        )
        registry.register(
            f"{typed}:responseUrl:{verb}",
            MarkerTarget.TYPE,
            OPTIONAL_STRING,
            f"{verb} response URL for this type",
        )

    for combo in operation_combinations():
        registry.register(
            f"{typed}:ops:{combo}",
            MarkerTarget.TYPE,
            STRING,
            f"{combo} operations for the resource at the given path",
        )

    for verb in DETAILS_VERBS:
        registry.register(
            f"{typed}:details:{verb}",
            MarkerTarget.TYPE,
            OPTIONAL_STRING,
            f"[DEPRECATED] {verb} details; use {typed}:ops:LR instead",
        )
    for verb in UPSERT_VERBS:
        registry.register(
            f"{typed}:upsert:{verb}",
            MarkerTarget.TYPE,
            OPTIONAL_STRING,
            f"[DEPRECATED] {verb} upsert; use {typed}:ops:CU instead",
        )

    verb_lists = (*config.extra_method_verbs, *config.extra_method_verb_combinations)
    for namespace in (typed, config.shared_namespace):
        for verbs in verb_lists:
            registry.register(
                f"{namespace}:extraMethod:{verbs}",
                MarkerTarget.TYPE,
                STRING,
                f"Extra {verbs} method at the given path",
            )
            for duration in config.wait_durations:
                registry.register(
                    f"{namespace}:extraMethod[wait({duration})]:{verbs}",
                    MarkerTarget.TYPE,
                    STRING,
                    f"Extra async {verbs} method waiting up to {duration}",
                )
