"""Marker definitions, the marker registry and marker value parsing.

A marker is a line of the form ``+<name>[=<value>]`` attached to a package,
type, or field declaration. Each registered name declares the shape of the
value it accepts, so decoding never depends on inspecting an example value.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .json_types import MarkerValue

MARKER_SIGIL = "+"
_OPTION_RE = re.compile(r"^(?P<head>.*?)\[(?P<option>\w+)\((?P<value>[^)]+)\)\](?P<tail>.*)$")


class MarkerRegistrationError(RuntimeError):
    """Raised when a marker definition cannot be registered."""


class UnsupportedKeyTypeError(MarkerRegistrationError):
    """Raised when a map-shaped argument declares a non-string key."""


class RegistryFrozenError(MarkerRegistrationError):
    """Raised when registering after annotation discovery has started."""


class MarkerParseError(RuntimeError):
    """Raised when a marker value does not match its declared shape."""


class MarkerTarget(str, Enum):
    """Declaration kinds a marker may attach to."""

    PACKAGE = "package"
    TYPE = "type"
    FIELD = "field"


class ArgumentKind(str, Enum):
    """Tagged variants of marker argument shapes."""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    LIST = "list"
    MAP = "map"
    ANY = "any"


_SCALAR_KINDS = frozenset(
    {ArgumentKind.STRING, ArgumentKind.INT, ArgumentKind.BOOL, ArgumentKind.ANY}
)


@dataclass(frozen=True)
class ArgumentShape:
    """Declared shape of one marker argument."""

    kind: ArgumentKind
    optional: bool = False
    item: Optional[ArgumentShape] = None
    key: ArgumentKind = ArgumentKind.STRING

    @classmethod
    def list_of(cls, item: ArgumentShape, *, optional: bool = False) -> ArgumentShape:
        """Build a list shape with the given item shape."""
        return cls(kind=ArgumentKind.LIST, optional=optional, item=item)

    @classmethod
    def map_of(
        cls,
        item: ArgumentShape,
        *,
        key: ArgumentKind = ArgumentKind.STRING,
        optional: bool = False,
    ) -> ArgumentShape:
        """Build a map shape with the given value shape."""
        return cls(kind=ArgumentKind.MAP, optional=optional, item=item, key=key)

    def describe(self) -> str:
        """Return a compact human-readable rendering of the shape."""
        if self.kind is ArgumentKind.LIST and self.item is not None:
            text = f"list[{self.item.describe()}]"
        elif self.kind is ArgumentKind.MAP and self.item is not None:
            text = f"map[{self.key.value}]{self.item.describe()}"
        else:
            text = self.kind.value
        return f"optional {text}" if self.optional else text


STRING = ArgumentShape(ArgumentKind.STRING)
OPTIONAL_STRING = ArgumentShape(ArgumentKind.STRING, optional=True)

type ShapeSpec = Union[ArgumentShape, Mapping[str, ArgumentShape]]


@dataclass(frozen=True)
class MarkerDefinition:
    """A registered marker name bound to a target and an argument shape.

    Anonymous markers carry exactly one argument stored under the empty
    name. Struct-like markers carry named arguments written as
    ``key=value`` pairs separated by commas.
    """

    name: str
    target: MarkerTarget
    arguments: tuple[tuple[str, ArgumentShape], ...]
    description: str = ""

    @property
    def is_anonymous(self) -> bool:
        """Whether the marker takes a single unnamed argument."""
        return len(self.arguments) == 1 and self.arguments[0][0] == ""

    def parse(self, marker_text: str) -> MarkerValue:
        """Decode the value portion of ``marker_text`` according to the declared shape.

        Args:
            marker_text (str): Full marker text, with or without the leading sigil.

        Returns:
            MarkerValue: Decoded scalar, list, or map for anonymous markers, or a
                mapping of argument names to values for struct-like markers.
        """
        _, raw_value = split_marker_text(marker_text)
        if self.is_anonymous:
            shape = self.arguments[0][1]
            if raw_value is None:
                return _absent_value(shape, self.name)
            return _parse_value(raw_value, shape, self.name)
        return self._parse_named(raw_value or "")

    def _parse_named(self, raw_value: str) -> dict[str, MarkerValue]:
        declared = dict(self.arguments)
        values: dict[str, MarkerValue] = {}
        for chunk in _split_top_level(raw_value, ","):
            if not chunk.strip():
                continue
            key, sep, value = chunk.partition("=")
            key = key.strip()
            if not sep:
                raise MarkerParseError(f"Marker {self.name}: expected key=value, got {chunk!r}")
            shape = declared.get(key)
            if shape is None:
                raise MarkerParseError(f"Marker {self.name}: unknown argument {key!r}")
            values[key] = _parse_value(value.strip(), shape, self.name)
        for key, shape in self.arguments:
            if key in values:
                continue
            if not shape.optional:
                raise MarkerParseError(f"Marker {self.name}: missing required argument {key!r}")
            values[key] = None
        return values


class MarkerRegistry:
    """Name to definition table for recognized markers.

    The registry is built once per run, frozen before annotation discovery,
    and then passed explicitly to every stage that needs it.
    """

    def __init__(self) -> None:
        self._definitions: dict[str, MarkerDefinition] = {}
        self._frozen = False

    def register(
        self,
        name: str,
        target: MarkerTarget,
        shape: ShapeSpec = OPTIONAL_STRING,
        description: str = "",
    ) -> MarkerDefinition:
        """Register a marker definition.

        Args:
            name (str): Marker name without the leading sigil.
            target (MarkerTarget): Declaration kind the marker attaches to.
            shape (ShapeSpec): Argument shape, or a mapping of named argument shapes.
            description (str): Human-readable help text.

        Returns:
            MarkerDefinition: The registered (or already present identical) definition.
        """
        if self._frozen:
            raise RegistryFrozenError(f"Marker registry is frozen; cannot register {name!r}")
        clean_name = name.strip().lstrip(MARKER_SIGIL)
        if not clean_name:
            raise MarkerRegistrationError("Marker name must not be empty")

        if isinstance(shape, ArgumentShape):
            arguments: tuple[tuple[str, ArgumentShape], ...] = (("", shape),)
        else:
            if not shape:
                raise MarkerRegistrationError(f"Marker {clean_name!r} declares no arguments")
            arguments = tuple((key, shape[key]) for key in sorted(shape))
        for argument_name, argument_shape in arguments:
            where = f"{clean_name}:{argument_name}" if argument_name else clean_name
            _validate_shape(argument_shape, where)

        definition = MarkerDefinition(
            name=clean_name,
            target=target,
            arguments=arguments,
            description=description,
        )
        existing = self._definitions.get(clean_name)
        if existing is not None:
            if existing == definition:
                return existing
            raise MarkerRegistrationError(
                f"Marker {clean_name!r} is already registered with a different definition"
            )
        self._definitions[clean_name] = definition
        return definition

    def freeze(self) -> None:
        """Disallow further registrations."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, marker_text: str, target: MarkerTarget) -> Optional[MarkerDefinition]:
        """Return the definition named by ``marker_text`` when registered for ``target``."""
        name, _ = split_marker_text(marker_text)
        definition = self._definitions.get(name)
        if definition is None or definition.target is not target:
            return None
        return definition

    def definitions(self) -> tuple[MarkerDefinition, ...]:
        """Return all definitions sorted by name."""
        return tuple(self._definitions[name] for name in sorted(self._definitions))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)


def split_marker_text(marker_text: str) -> tuple[str, Optional[str]]:
    """Split ``+name=value`` into ``(name, value)``; value is ``None`` when absent."""
    text = marker_text.strip()
    if text.startswith(MARKER_SIGIL):
        text = text[len(MARKER_SIGIL) :]
    name, sep, value = text.partition("=")
    return name.strip(), (value.strip() if sep else None)


def split_marker_options(name: str) -> tuple[str, dict[str, str]]:
    """Strip one ``[option(value)]`` suffix from a marker name.

    ``ns:extraMethod[wait(5m)]:POST`` becomes ``("ns:extraMethod:POST", {"wait": "5m"})``.
    Names without an option are returned unchanged with an empty mapping.
    """
    match = _OPTION_RE.match(name)
    if match is None:
        return name, {}
    clean = f"{match.group('head')}{match.group('tail')}"
    return clean, {match.group("option"): match.group("value").strip()}


def _validate_shape(shape: ArgumentShape, where: str) -> None:
    if shape.kind in _SCALAR_KINDS:
        if shape.item is not None:
            raise MarkerRegistrationError(f"Scalar argument {where!r} cannot declare an item shape")
        return
    if shape.item is None:
        raise MarkerRegistrationError(
            f"Argument {where!r} of kind {shape.kind.value} requires an item shape"
        )
    if shape.kind is ArgumentKind.MAP and shape.key is not ArgumentKind.STRING:
        raise UnsupportedKeyTypeError(
            f"Map argument {where!r} must use string keys, got {shape.key.value}"
        )
    _validate_shape(shape.item, f"{where}[]")


def _absent_value(shape: ArgumentShape, marker_name: str) -> MarkerValue:
    # A bare boolean marker means "true".
    if shape.kind is ArgumentKind.BOOL:
        return True
    if shape.optional:
        return None
    raise MarkerParseError(f"Marker {marker_name}: a value is required")


def _parse_value(raw: str, shape: ArgumentShape, marker_name: str) -> MarkerValue:
    text = raw.strip()
    if not text and shape.optional:
        return None
    kind = shape.kind
    if kind is ArgumentKind.STRING:
        return _unquote(text)
    if kind is ArgumentKind.INT:
        try:
            return int(text)
        except ValueError as exc:
            raise MarkerParseError(f"Marker {marker_name}: expected an int, got {raw!r}") from exc
    if kind is ArgumentKind.BOOL:
        lowered = text.lower()
        if lowered in ("", "true"):
            return True
        if lowered == "false":
            return False
        raise MarkerParseError(f"Marker {marker_name}: expected a bool, got {raw!r}")
    if kind is ArgumentKind.LIST:
        assert shape.item is not None
        return [_parse_value(item, shape.item, marker_name) for item in _list_items(text)]
    if kind is ArgumentKind.MAP:
        assert shape.item is not None
        return _parse_map(text, shape.item, marker_name)
    return _parse_any(text, marker_name)


def _list_items(text: str) -> list[str]:
    if text.startswith("{") and text.endswith("}"):
        inner = text[1:-1]
        return [item for item in _split_top_level(inner, ",") if item.strip()]
    return [item for item in _split_top_level(text, ";") if item.strip()]


def _parse_map(text: str, item: ArgumentShape, marker_name: str) -> dict[str, MarkerValue]:
    if not (text.startswith("{") and text.endswith("}")):
        raise MarkerParseError(f"Marker {marker_name}: expected a map in braces, got {text!r}")
    result: dict[str, MarkerValue] = {}
    for entry in _split_top_level(text[1:-1], ","):
        if not entry.strip():
            continue
        key, sep, value = entry.partition(":")
        if not sep:
            raise MarkerParseError(f"Marker {marker_name}: expected key:value, got {entry!r}")
        result[_unquote(key.strip())] = _parse_value(value, item, marker_name)
    return result


def _parse_any(text: str, marker_name: str) -> MarkerValue:
    if text.startswith("{") and text.endswith("}"):
        entries = [entry for entry in _split_top_level(text[1:-1], ",") if entry.strip()]
        any_shape = ArgumentShape(ArgumentKind.ANY)
        if entries and ":" in entries[0] and not _is_quoted(entries[0].strip()):
            return _parse_map(text, any_shape, marker_name)
        return [_parse_any(entry.strip(), marker_name) for entry in entries]
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return _unquote(text)


def _split_top_level(text: str, separator: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    quote: Optional[str] = None
    escaped = False
    for char in text:
        if escaped:
            current.append(char)
            escaped = False
            continue
        if char == "\\" and quote is not None:
            current.append(char)
            escaped = True
            continue
        if quote is not None:
            if char == quote:
                quote = None
            current.append(char)
            continue
        if char in ("'", '"', "`"):
            quote = char
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char == separator and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def _is_quoted(text: str) -> bool:
    return len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"', "`")


def _unquote(text: str) -> str:
    if _is_quoted(text):
        inner = text[1:-1]
        if text[0] == '"':
            return inner.replace('\\"', '"').replace("\\\\", "\\")
        return inner
    return text
