"""Recover resources from hand-written registration code and merge them with annotations."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from typing import Optional

from .assembly import MarkerKind, classify_marker, expand_extra_methods
from .config import GeneratorConfig
from .markers import MarkerTarget, split_marker_options, split_marker_text
from .model_types import (
    ExtraMethodSpec,
    Operation,
    OperationSet,
    ResourceDescriptor,
)
from .naming import camel_case, last_dotted_segment
from .source_facts import CallArgumentKind, CallFact, SourceFactExtractor

logger = logging.getLogger(__name__)

_OPERATION_LETTERS = frozenset(op.value for op in Operation)


def parse_registration_call(call: CallFact) -> Optional[tuple[str, str, str]]:
    """Return ``(type name, base path, operation letters)`` of a registration call.

    Both ``register[pkg.Type](owner, "path", C, R)`` and
    ``register(pkg.Type, "path", C, R)`` are understood. Letters are the bare
    identifiers after the path that name a CRUD operation.
    """
    arguments = list(call.arguments)
    type_name = call.type_argument
    if type_name is None:
        if not arguments or arguments[0].kind is not CallArgumentKind.NAME:
            return None
        type_name = arguments.pop(0).value

    path_index = next(
        (index for index, arg in enumerate(arguments) if arg.kind is CallArgumentKind.STRING),
        None,
    )
    if path_index is None:
        return None
    identifiers = [
        last_dotted_segment(arg.value)
        for arg in arguments[path_index + 1 :]
        if arg.kind is CallArgumentKind.NAME
    ]
    letters = "".join(name for name in identifiers if name in _OPERATION_LETTERS)
    return last_dotted_segment(type_name), arguments[path_index].value.strip(), letters


def recover_wiring(
    extractor: SourceFactExtractor,
    config: GeneratorConfig,
) -> dict[str, ResourceDescriptor]:
    """Recover descriptors from registration calls and registry field comments.

    Args:
        extractor (SourceFactExtractor): Facts of the wiring source.
        config (GeneratorConfig): Registration call name, registry class and namespaces.

    Returns:
        dict[str, ResourceDescriptor]: Descriptors keyed by resource name, in source order.
    """
    recovered: dict[str, ResourceDescriptor] = {}

    for call in extractor.call_facts():
        if call.callee != config.registration_call:
            continue
        parsed = parse_registration_call(call)
        if parsed is None:
            logger.debug("Unrecognized registration call at %s", call.location)
            continue
        type_name, path, letters = parsed
        operations = OperationSet.from_letters(letters, path) if letters else None
        existing = recovered.get(type_name)
        if existing is not None and existing.operations is not None:
            logger.warning("%s registered more than once; keeping %s", type_name, call.location)
            continue
        recovered[type_name] = replace(
            existing or ResourceDescriptor(name=type_name),
            operations=operations,
        )
        if operations is None:
            logger.info("Registration of %s at %s declares no operations", type_name, call.location)

    for fact in extractor.annotation_facts():
        if fact.target is not MarkerTarget.FIELD or fact.owner != config.registry_class:
            continue
        name, value = split_marker_text(fact.text)
        clean_name, options = split_marker_options(name)
        classified = classify_marker(clean_name, config)
        if classified is None or classified[0] is not MarkerKind.EXTRA_METHOD or not value:
            continue
        resource_name = fact.type_name or camel_case(fact.declaration)
        notes: list[str] = []
        specs = expand_extra_methods(
            classified[1],
            value,
            options,
            config=config,
            notes=notes,
            origin=fact.location or fact.text,
        )
        for note in notes:
            logger.warning("%s: %s", resource_name, note)
        existing = recovered.get(resource_name, ResourceDescriptor(name=resource_name))
        recovered[resource_name] = replace(
            existing,
            extra_methods=_union_extra_methods(existing.extra_methods, specs),
            notes=(*existing.notes, *notes),
        )

    return recovered


def merge_descriptors(
    annotated: Iterable[ResourceDescriptor],
    wired: dict[str, ResourceDescriptor],
) -> list[ResourceDescriptor]:
    """Merge annotation-derived and wiring-recovered descriptors.

    Annotated descriptors win on conflict; extra methods are unioned.
    Wiring-only resources are added unless their base path is empty. A
    descriptor left without an operation set falls back to its legacy markers
    and is dropped if it has none.

    Args:
        annotated (Iterable[ResourceDescriptor]): Descriptors from annotations.
        wired (dict[str, ResourceDescriptor]): Descriptors from wiring recovery.

    Returns:
        list[ResourceDescriptor]: Merged descriptors sorted by name.
    """
    merged: dict[str, ResourceDescriptor] = {}
    for descriptor in annotated:
        counterpart = wired.get(descriptor.name)
        if counterpart is not None:
            descriptor = replace(
                descriptor,
                operations=descriptor.operations or counterpart.operations,
                extra_methods=_union_extra_methods(
                    descriptor.extra_methods,
                    counterpart.extra_methods,
                ),
                notes=(*descriptor.notes, *counterpart.notes),
            )
        merged[descriptor.name] = descriptor

    for name, descriptor in wired.items():
        if name in merged:
            continue
        if descriptor.operations is None or not descriptor.operations.path.strip("/"):
            logger.debug("Skipping wiring-only %s without a base path", name)
            continue
        merged[name] = descriptor

    result: list[ResourceDescriptor] = []
    for name in sorted(merged):
        descriptor = merged[name]
        if descriptor.operations is None:
            legacy = operations_from_legacy(descriptor)
            if legacy is None:
                logger.info("Skipping %s: no operation set declared", name)
                continue
            descriptor = replace(descriptor, operations=legacy)
        result.append(descriptor)
    return result


def operations_from_legacy(descriptor: ResourceDescriptor) -> Optional[OperationSet]:
    """Derive an operation set from legacy details/upsert markers."""
    if not descriptor.has_legacy_markers:
        return None
    operations: set[Operation] = {Operation.DELETE}
    if descriptor.legacy_details:
        operations.update((Operation.LIST, Operation.READ))
    for upsert in descriptor.legacy_upserts:
        if upsert.verb == "POST":
            operations.add(Operation.CREATE)
        elif upsert.verb in ("PUT", "PATCH"):
            operations.add(Operation.UPDATE)
    path = next(
        (
            marker.url
            for marker in (*descriptor.legacy_details, *descriptor.legacy_upserts)
            if marker.url.strip("/")
        ),
        "",
    )
    if not path:
        return None
    return OperationSet(operations=frozenset(operations), path=path)


def _union_extra_methods(
    first: Iterable[ExtraMethodSpec],
    second: Iterable[ExtraMethodSpec],
) -> tuple[ExtraMethodSpec, ...]:
    union: list[ExtraMethodSpec] = []
    seen: set[tuple[str, str]] = set()
    for spec in (*first, *second):
        if spec.key in seen:
            continue
        seen.add(spec.key)
        union.append(spec)
    return tuple(union)
