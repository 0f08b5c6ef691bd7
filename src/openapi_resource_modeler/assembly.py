"""Fold collected markers into per-resource descriptors."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .collector import DeclarationMarkers
from .config import GeneratorConfig, OpsMarkerPolicy
from .json_types import MarkerValue
from .markers import split_marker_options
from .model_types import ExtraMethodSpec, OperationSet, ResourceDescriptor, UrlMarker

logger = logging.getLogger(__name__)

WAIT_OPTION = "wait"


class MarkerAssemblyError(RuntimeError):
    """Raised when markers on one declaration contradict each other."""


class MarkerKind(str, Enum):
    """Recognized marker families."""

    OPERATIONS = "ops"
    EXTRA_METHOD = "extraMethod"
    REQUEST_URL = "requestUrl"
    RESPONSE_URL = "responseUrl"
    LEGACY_DETAILS = "details"
    LEGACY_UPSERT = "upsert"


_TYPED_ONLY_KINDS: tuple[MarkerKind, ...] = (
    MarkerKind.OPERATIONS,
    MarkerKind.REQUEST_URL,
    MarkerKind.RESPONSE_URL,
    MarkerKind.LEGACY_DETAILS,
    MarkerKind.LEGACY_UPSERT,
)


def classify_marker(clean_name: str, config: GeneratorConfig) -> Optional[tuple[MarkerKind, str]]:
    """Return the marker family and the remainder after its prefix, if recognized."""
    typed = config.typed_namespace
    for kind in _TYPED_ONLY_KINDS:
        prefix = f"{typed}:{kind.value}:"
        if clean_name.startswith(prefix):
            return kind, clean_name[len(prefix) :]
    for namespace in (typed, config.shared_namespace):
        prefix = f"{namespace}:{MarkerKind.EXTRA_METHOD.value}:"
        if clean_name.startswith(prefix):
            return MarkerKind.EXTRA_METHOD, clean_name[len(prefix) :]
    return None


def expand_extra_methods(
    verbs: str,
    path: str,
    options: dict[str, str],
    *,
    config: GeneratorConfig,
    notes: list[str],
    origin: str,
) -> list[ExtraMethodSpec]:
    """Expand a ``VERB|VERB`` list into one spec per verb.

    Args:
        verbs (str): Pipe-separated HTTP verbs.
        path (str): Path template the methods are declared on.
        options (dict[str, str]): Options split off the marker name.
        config (GeneratorConfig): Supplies the closed set of wait durations.
        notes (list[str]): Receives lint notes for dropped options.
        origin (str): Marker text or location used in notes.

    Returns:
        list[ExtraMethodSpec]: One spec per non-empty verb.
    """
    wait_timeout: Optional[str] = None
    for option, value in options.items():
        if option != WAIT_OPTION:
            notes.append(f"Unknown marker option {option!r} ignored on {origin}")
            continue
        if value not in config.wait_durations:
            notes.append(
                f"Wait duration {value!r} on {origin} is not one of "
                f"{', '.join(config.wait_durations)}; treating the method as synchronous"
            )
            continue
        wait_timeout = value
    return [
        ExtraMethodSpec(verb=verb.strip().upper(), path=path.strip(), wait_timeout=wait_timeout)
        for verb in verbs.split("|")
        if verb.strip()
    ]


@dataclass
class _DescriptorDraft:
    name: str
    operations: Optional[OperationSet] = None
    extra_methods: list[ExtraMethodSpec] = field(default_factory=list)
    request_urls: list[UrlMarker] = field(default_factory=list)
    response_urls: list[UrlMarker] = field(default_factory=list)
    legacy_details: list[UrlMarker] = field(default_factory=list)
    legacy_upserts: list[UrlMarker] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    recognized: bool = False

    def add_extra_methods(self, specs: Iterable[ExtraMethodSpec]) -> None:
        known = {spec.key for spec in self.extra_methods}
        for spec in specs:
            if spec.key in known:
                continue
            known.add(spec.key)
            self.extra_methods.append(spec)

    def freeze(self) -> ResourceDescriptor:
        return ResourceDescriptor(
            name=self.name,
            operations=self.operations,
            extra_methods=tuple(self.extra_methods),
            request_urls=tuple(self.request_urls),
            response_urls=tuple(self.response_urls),
            legacy_details=tuple(self.legacy_details),
            legacy_upserts=tuple(self.legacy_upserts),
            notes=tuple(self.notes),
        )


def assemble_descriptors(
    collected: Iterable[DeclarationMarkers],
    config: GeneratorConfig,
) -> list[ResourceDescriptor]:
    """Build one descriptor per declaration that carries a recognized marker.

    Args:
        collected (Iterable[DeclarationMarkers]): Markers grouped by declaration.
        config (GeneratorConfig): Namespaces and policies.

    Returns:
        list[ResourceDescriptor]: Descriptors in declaration order.
    """
    descriptors: list[ResourceDescriptor] = []
    for declaration in collected:
        draft = _DescriptorDraft(name=declaration.declaration)
        for marker in declaration.markers:
            clean_name, options = split_marker_options(marker.name)
            classified = classify_marker(clean_name, config)
            if classified is None:
                continue
            kind, remainder = classified
            draft.recognized = True
            _fold_marker(
                draft,
                kind,
                remainder,
                _string_value(marker.value),
                options,
                marker.text,
                config,
            )
        if not draft.recognized:
            logger.debug("Dropping %s: no resource markers", declaration.declaration)
            continue
        for note in draft.notes:
            logger.warning("%s: %s", draft.name, note)
        descriptors.append(draft.freeze())
    return descriptors


def _fold_marker(
    draft: _DescriptorDraft,
    kind: MarkerKind,
    remainder: str,
    value: str,
    options: dict[str, str],
    text: str,
    config: GeneratorConfig,
) -> None:
    if kind is MarkerKind.OPERATIONS:
        _fold_operations(draft, remainder, value, text, config)
    elif kind is MarkerKind.EXTRA_METHOD:
        if not value:
            draft.notes.append(f"Extra-method marker without a path ignored: {text}")
            return
        draft.add_extra_methods(
            expand_extra_methods(
                remainder,
                value,
                options,
                config=config,
                notes=draft.notes,
                origin=text,
            )
        )
    elif kind is MarkerKind.REQUEST_URL:
        draft.request_urls.append(UrlMarker(verb=remainder.upper(), url=value))
    elif kind is MarkerKind.RESPONSE_URL:
        draft.response_urls.append(UrlMarker(verb=remainder.upper(), url=value))
    elif kind is MarkerKind.LEGACY_DETAILS:
        draft.legacy_details.append(UrlMarker(verb=remainder.upper(), url=value))
    else:
        draft.legacy_upserts.append(UrlMarker(verb=remainder.upper(), url=value))


def _fold_operations(
    draft: _DescriptorDraft,
    letters: str,
    path: str,
    text: str,
    config: GeneratorConfig,
) -> None:
    if draft.operations is not None:
        if config.ops_marker_policy is OpsMarkerPolicy.REJECT:
            raise MarkerAssemblyError(
                f"{draft.name} declares more than one operation-set marker; offending marker: {text}"
            )
        draft.notes.append(
            f"Ignoring additional operation-set marker {text}; "
            f"keeping {draft.operations.letters}={draft.operations.path}"
        )
        return
    try:
        draft.operations = OperationSet.from_letters(letters, path)
    except ValueError:
        draft.notes.append(f"Operation-set marker with unknown letters ignored: {text}")


def _string_value(value: MarkerValue) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value)
