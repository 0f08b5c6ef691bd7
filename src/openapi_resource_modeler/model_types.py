"""Internal datatypes for descriptors, field models and generation results."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .naming import component_alias_name, item_path, normalize_resource_path
from .schema_nodes import SchemaNode


class Operation(str, Enum):
    """CRUD capabilities a resource may expose."""

    CREATE = "C"
    LIST = "L"
    READ = "R"
    UPDATE = "U"
    DELETE = "D"


OPERATION_ORDER: tuple[Operation, ...] = (
    Operation.CREATE,
    Operation.LIST,
    Operation.READ,
    Operation.UPDATE,
    Operation.DELETE,
)


@dataclass(frozen=True)
class OperationSet:
    """Supported CRUD operations of a resource plus its base path."""

    operations: frozenset[Operation]
    path: str

    @classmethod
    def from_letters(cls, letters: str, path: str) -> OperationSet:
        """Build a set from letters such as ``CLRUD``; unknown letters raise ``ValueError``."""
        operations: set[Operation] = set()
        for letter in letters.strip().upper():
            operations.add(Operation(letter))
        return cls(operations=frozenset(operations), path=path)

    @property
    def letters(self) -> str:
        return "".join(op.value for op in OPERATION_ORDER if op in self.operations)

    @property
    def base_path(self) -> str:
        return normalize_resource_path(self.path)

    @property
    def item_path(self) -> str:
        return item_path(self.path)

    @property
    def is_empty(self) -> bool:
        return not self.operations

    def has(self, operation: Operation) -> bool:
        return operation in self.operations

    def without(self, *operations: Operation) -> OperationSet:
        """Return a copy with ``operations`` removed."""
        return replace(self, operations=self.operations - frozenset(operations))


@dataclass(frozen=True)
class ExtraMethodSpec:
    """A non-CRUD operation declared on a resource."""

    verb: str
    path: str
    wait_timeout: Optional[str] = None

    @property
    def is_async(self) -> bool:
        return self.wait_timeout is not None

    @property
    def key(self) -> tuple[str, str]:
        return (self.verb, normalize_resource_path(self.path))


@dataclass(frozen=True)
class UrlMarker:
    """A verb-scoped URL declared by a request/response URL or legacy marker."""

    verb: str
    url: str


@dataclass(frozen=True)
class ResourceDescriptor:
    """Everything declared about one resource before schema resolution."""

    name: str
    operations: Optional[OperationSet] = None
    extra_methods: tuple[ExtraMethodSpec, ...] = ()
    request_urls: tuple[UrlMarker, ...] = ()
    response_urls: tuple[UrlMarker, ...] = ()
    legacy_details: tuple[UrlMarker, ...] = ()
    legacy_upserts: tuple[UrlMarker, ...] = ()
    notes: tuple[str, ...] = ()

    @property
    def has_legacy_markers(self) -> bool:
        return bool(self.legacy_details or self.legacy_upserts)


class TypeKind(str, Enum):
    """Kinds of type references a field may carry."""

    PRIMITIVE = "primitive"
    ARRAY = "array"
    MAP = "map"
    NAMED = "named"
    COMPONENT = "component"


@dataclass(frozen=True)
class TypeRef:
    """Reference to the type of a field.

    ``optional_wrapper`` marks outermost arrays and objects so an emitter can
    apply omit-when-absent semantics. It is independent of ``Field.required``.
    """

    kind: TypeKind
    name: str = ""
    item: Optional[TypeRef] = None
    optional_wrapper: bool = False

    @classmethod
    def primitive(cls, name: str) -> TypeRef:
        return cls(kind=TypeKind.PRIMITIVE, name=name)

    @classmethod
    def array(cls, item: TypeRef) -> TypeRef:
        return cls(kind=TypeKind.ARRAY, item=item)

    @classmethod
    def map_of(cls, value: TypeRef) -> TypeRef:
        return cls(kind=TypeKind.MAP, item=value)

    @classmethod
    def named(cls, name: str) -> TypeRef:
        return cls(kind=TypeKind.NAMED, name=name)

    @classmethod
    def component(cls, component: str) -> TypeRef:
        return cls(kind=TypeKind.COMPONENT, name=component_alias_name(component))

    def wrapped(self) -> TypeRef:
        return replace(self, optional_wrapper=True)

    @property
    def annotation(self) -> str:
        """Python-style annotation text for this reference."""
        if self.kind is TypeKind.ARRAY and self.item is not None:
            text = f"list[{self.item.annotation}]"
        elif self.kind is TypeKind.MAP and self.item is not None:
            text = f"dict[str, {self.item.annotation}]"
        else:
            text = self.name
        return f"Optional[{text}]" if self.optional_wrapper else text


@dataclass(frozen=True)
class Field:
    """One typed field of a generated type."""

    name: str
    type_ref: TypeRef
    source_key: str
    required: bool
    description: Optional[str] = None


class TypeSection(str, Enum):
    """Which part of a resource a generated type belongs to."""

    SEARCH_PARAMS = "search_params"
    MODEL = "model"
    REQUEST_BODY = "request_body"
    UPSERT_MODEL = "upsert_model"
    EXTRA_METHOD_QUERY = "extra_method_query"
    EXTRA_METHOD_BODY = "extra_method_body"
    EXTRA_METHOD_RESPONSE = "extra_method_response"
    COMPONENT = "component"


@dataclass(frozen=True)
class TypeNode:
    """A named composite type with ordered fields."""

    name: str
    fields: tuple[Field, ...]
    section: TypeSection


class IssueReason(str, Enum):
    """Why an operation or extra method was excluded."""

    AMBIGUOUS_SCHEMA = "ambiguous_schema"
    MISSING_SCHEMA = "missing_schema"
    MAP_RESPONSE = "map_response"
    ARRAY_OF_AMBIGUOUS_OBJECTS = "array_of_ambiguous_objects"
    BROKEN_UPDATE_CONTRACT = "broken_update_contract"
    ARRAY_OF_PRIMITIVES = "array_of_primitives"
    UNTYPED_ARRAY = "untyped_array"
    NESTED_AMBIGUOUS_OBJECT = "nested_ambiguous_object"
    EMPTY_MODEL = "empty_model"


@dataclass(frozen=True)
class ValidationIssue:
    """A recorded exclusion with enough context to reproduce the decision."""

    operation: str
    reason: IssueReason
    message: str
    verb: str = ""
    path: str = ""

    @property
    def sort_key(self) -> tuple[str, str, str]:
        return (self.operation, self.reason.value, self.message)


@dataclass(frozen=True)
class FatalIssue:
    """An authoring error that must abort the whole run."""

    resource: str
    marker: str
    verb: str
    path: str
    message: str


@dataclass(frozen=True)
class AliasDecision:
    """Use a shared component type instead of generating a struct."""

    target: str
    component: str
    reference: str

    @property
    def type_name(self) -> str:
        return component_alias_name(self.component)


@dataclass(frozen=True)
class ExtraMethodVerdict:
    """Facts established about an extra method that passed validation."""

    spec: ExtraMethodSpec
    summary: Optional[str]
    returns_no_content: bool
    is_bare_array: bool
    is_async_task: bool
    response: Optional[SchemaNode]
    has_request_body: bool


@dataclass(frozen=True)
class ExtraMethodModel:
    """Resolved model of one extra method."""

    name: str
    verb: str
    path: str
    summary: Optional[str]
    has_id: bool
    sub_path: str
    wait_timeout: Optional[str]
    is_async_task: bool
    returns_no_content: bool
    returns_array: bool
    primitive_response: Optional[TypeRef]
    query_params: tuple[Field, ...]
    body: tuple[Field, ...]
    response: tuple[Field, ...]
    body_type_name: str
    response_type_name: str
    response_alias: Optional[AliasDecision] = None

    @property
    def sort_key(self) -> str:
        return f"{self.name}_{self.verb}"


@dataclass(frozen=True)
class ResourceModel:
    """Everything an emitter needs for one resource."""

    name: str
    plural_name: str
    path: str
    requested: OperationSet
    operations: OperationSet
    search_params: tuple[Field, ...]
    model_fields: tuple[Field, ...]
    request_body: tuple[Field, ...]
    upsert_model: tuple[Field, ...]
    model_alias: Optional[AliasDecision]
    upsert_alias: Optional[AliasDecision]
    upsert_no_content: bool
    extra_methods: tuple[ExtraMethodModel, ...]
    nested_types: tuple[TypeNode, ...]
    issues: tuple[ValidationIssue, ...]
    warnings: tuple[str, ...]
    field_aliases: tuple[AliasDecision, ...] = ()
    request_urls: tuple[UrlMarker, ...] = ()
    response_urls: tuple[UrlMarker, ...] = ()
    update_is_async: bool = False
    delete_is_async: bool = False


@dataclass(frozen=True)
class ComponentModel:
    """Fields generated for a reusable component schema."""

    name: str
    type_name: str
    fields: tuple[Field, ...]
    nested_types: tuple[TypeNode, ...]


@dataclass(frozen=True)
class GenerationModel:
    """Ordered output of one generation run."""

    resources: tuple[ResourceModel, ...]
    components: tuple[ComponentModel, ...]
    warnings: tuple[str, ...]
