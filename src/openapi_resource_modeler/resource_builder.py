"""Assemble per-resource and per-component models from validated descriptors."""

from __future__ import annotations

import logging
from typing import Optional, Union

from .aliasing import AliasOptimizer
from .config import GeneratorConfig
from .field_model import BuildContext, FieldModelBuilder, order_fields, primitive_type
from .model_types import (
    AliasDecision,
    ComponentModel,
    ExtraMethodModel,
    ExtraMethodVerdict,
    FatalIssue,
    Field,
    IssueReason,
    Operation,
    OperationSet,
    ResourceDescriptor,
    ResourceModel,
    TypeKind,
    TypeRef,
    TypeSection,
    ValidationIssue,
)
from .naming import component_alias_name, extra_method_action, extra_method_sub_path, pluralize
from .provider import NO_CONTENT_STATUS, SchemaPart, SchemaProvider, SchemaResolutionError
from .schema_nodes import SchemaNode
from .shapes import SchemaShape, classify_shape
from .type_registry import TypeRegistry
from .validation import ValidationGate

logger = logging.getLogger(__name__)

type ResourceResult = Union[ResourceModel, FatalIssue]


class _ModelFailure(RuntimeError):
    """Internal signal that a model could not be built."""

    def __init__(self, reason: IssueReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


class ResourceModelBuilder:
    """Build a :class:`ResourceModel` for each descriptor.

    One builder serves a whole run; every resource gets its own type registry.
    """

    def __init__(
        self,
        provider: SchemaProvider,
        config: GeneratorConfig,
        *,
        gate: Optional[ValidationGate] = None,
        aliases: Optional[AliasOptimizer] = None,
    ) -> None:
        self._provider = provider
        self._config = config
        self._gate = gate or ValidationGate(provider, config)
        self._aliases = aliases or AliasOptimizer(provider)
        self._fields = FieldModelBuilder(
            aliases=self._aliases,
            alias_nested_references=config.alias_nested_references,
        )

    def build(self, descriptor: ResourceDescriptor) -> ResourceResult:
        """Validate and build one resource.

        Args:
            descriptor (ResourceDescriptor): Merged descriptor with an operation set.

        Returns:
            ResourceResult: The resource model, or the first fatal issue found
            among its extra methods.
        """
        requested = descriptor.operations
        if requested is None:
            raise ValueError(f"{descriptor.name} has no operation set")
        name = descriptor.name
        warnings: list[str] = list(descriptor.notes)
        registry = TypeRegistry()
        field_aliases: list[AliasDecision] = []

        extra_methods: list[ExtraMethodModel] = []
        issues: list[ValidationIssue] = []
        for spec in descriptor.extra_methods:
            result = self._gate.check_extra_method(name, spec, warnings=warnings)
            if isinstance(result, FatalIssue):
                logger.error(result.message)
                return result
            if isinstance(result, ValidationIssue):
                issues.append(result)
                continue
            built = self._extra_method(name, result, registry, warnings, field_aliases)
            if isinstance(built, ValidationIssue):
                issues.append(built)
            else:
                extra_methods.append(built)

        operations, operation_issues = self._gate.check_operations(descriptor)
        issues.extend(operation_issues)

        model_fields: tuple[Field, ...] = ()
        model_alias: Optional[AliasDecision] = None
        if operations.has(Operation.LIST) or operations.has(Operation.READ):
            source = requested.item_path if operations.has(Operation.READ) else requested.base_path
            try:
                model_fields, model_alias = self._response_model(
                    "GET",
                    source,
                    type_name=f"{name}Model",
                    context=BuildContext(
                        registry=registry,
                        section=TypeSection.MODEL,
                        aliases=field_aliases,
                    ),
                    warnings=warnings,
                )
            except _ModelFailure as failure:
                operations = self._exclude(
                    operations,
                    issues,
                    failure,
                    "GET",
                    source,
                    Operation.LIST,
                    Operation.READ,
                )

        request_body: tuple[Field, ...] = ()
        upsert_fields: tuple[Field, ...] = ()
        upsert_alias: Optional[AliasDecision] = None
        upsert_no_content = False
        upsert = self._upsert_endpoint(operations, requested)
        if upsert is not None:
            verb, path = upsert
            # Request body and upsert model are kept together or not at all.
            scratch = TypeRegistry()
            scratch_aliases: list[AliasDecision] = []
            try:
                request_body = self._request_body(
                    verb,
                    path,
                    type_name=f"{name}RequestBody",
                    context=BuildContext(
                        registry=scratch,
                        section=TypeSection.REQUEST_BODY,
                        aliases=scratch_aliases,
                    ),
                    warnings=warnings,
                )
                upsert_no_content = self._provider.has_status(verb, path, NO_CONTENT_STATUS)
                if not upsert_no_content:
                    upsert_fields, upsert_alias = self._response_model(
                        verb,
                        path,
                        type_name=f"{name}UpsertModel",
                        context=BuildContext(
                            registry=scratch,
                            section=TypeSection.UPSERT_MODEL,
                            aliases=scratch_aliases,
                        ),
                        warnings=warnings,
                    )
            except _ModelFailure as failure:
                request_body, upsert_fields, upsert_alias = (), (), None
                upsert_no_content = False
                operations = self._exclude(
                    operations,
                    issues,
                    failure,
                    verb,
                    path,
                    Operation.CREATE,
                    Operation.UPDATE,
                )
            else:
                for node in scratch:
                    registry.register(node.name, node.fields, node.section)
                field_aliases.extend(scratch_aliases)

        search_params: tuple[Field, ...] = ()
        if operations.has(Operation.LIST):
            search_params = self._search_params(
                requested.base_path,
                model_fields if operations.has(Operation.READ) else (),
                model_alias if operations.has(Operation.READ) else None,
                warnings,
            )

        update_is_async = False
        if operations.has(Operation.UPDATE):
            update_verb = self._gate.update_verb(requested.item_path)
            update_is_async = update_verb is not None and self._returns_async_task(
                update_verb, requested.item_path
            )
        delete_is_async = operations.has(Operation.DELETE) and any(
            self._returns_async_task("DELETE", path)
            for path in (requested.item_path, requested.base_path)
        )

        return ResourceModel(
            name=name,
            plural_name=pluralize(name),
            path=requested.base_path,
            requested=requested,
            operations=operations,
            search_params=search_params,
            model_fields=model_fields,
            request_body=request_body,
            upsert_model=upsert_fields,
            model_alias=model_alias,
            upsert_alias=upsert_alias,
            upsert_no_content=upsert_no_content,
            extra_methods=tuple(sorted(extra_methods, key=lambda method: method.sort_key)),
            nested_types=registry.nodes(),
            issues=tuple(sorted(issues, key=lambda issue: issue.sort_key)),
            warnings=tuple(warnings),
            field_aliases=_unique_aliases(field_aliases),
            request_urls=descriptor.request_urls,
            response_urls=descriptor.response_urls,
            update_is_async=update_is_async,
            delete_is_async=delete_is_async,
        )

    def build_components(self, *, warnings: Optional[list[str]] = None) -> tuple[ComponentModel, ...]:
        """Build fields for every component schema that is a well-formed object.

        Components that cannot be resolved are skipped with a warning.
        """
        sink = warnings if warnings is not None else []
        components: list[ComponentModel] = []
        for name in self._provider.component_names():
            try:
                schema = self._provider.resolve_component(name)
            except SchemaResolutionError as exc:
                message = f"Component {name} skipped: {exc}"
                logger.warning(message)
                sink.append(message)
                continue
            if classify_shape(schema) is not SchemaShape.OBJECT:
                logger.debug("Component %s is not an object; skipping", name)
                continue
            type_name = component_alias_name(name)
            registry = TypeRegistry()
            context = BuildContext(registry=registry, section=TypeSection.COMPONENT)
            fields = self._fields.build_fields(schema, type_name=type_name, context=context)
            components.append(
                ComponentModel(
                    name=name,
                    type_name=type_name,
                    fields=fields,
                    nested_types=registry.nodes(),
                )
            )
        return tuple(components)

    def _response_model(
        self,
        verb: str,
        path: str,
        *,
        type_name: str,
        context: BuildContext,
        warnings: list[str],
    ) -> tuple[tuple[Field, ...], Optional[AliasDecision]]:
        schema = self._resolve(verb, path, SchemaPart.RESPONSE)
        decision = self._aliases.decide(type_name, schema)
        if decision is not None:
            return (), decision
        return self._object_fields(schema, type_name, context, warnings), None

    def _request_body(
        self,
        verb: str,
        path: str,
        *,
        type_name: str,
        context: BuildContext,
        warnings: list[str],
    ) -> tuple[Field, ...]:
        schema = self._resolve(verb, path, SchemaPart.REQUEST)
        return self._object_fields(schema, type_name, context, warnings)

    def _object_fields(
        self,
        schema: SchemaNode,
        type_name: str,
        context: BuildContext,
        warnings: list[str],
    ) -> tuple[Field, ...]:
        try:
            fields = self._fields.build_fields(schema, type_name=type_name, context=context)
        except SchemaResolutionError as exc:
            reason = (
                IssueReason.MAP_RESPONSE
                if classify_shape(schema) is SchemaShape.MAP
                else IssueReason.AMBIGUOUS_SCHEMA
            )
            raise _ModelFailure(reason, str(exc)) from exc
        finally:
            warnings.extend(context.notes)
            context.notes.clear()
        if not fields:
            raise _ModelFailure(IssueReason.EMPTY_MODEL, f"{type_name} has no typeable fields")
        return fields

    def _resolve(self, verb: str, path: str, part: SchemaPart) -> SchemaNode:
        try:
            return self._provider.resolve_operation_schema(verb, path, part)
        except SchemaResolutionError as exc:
            raise _ModelFailure(IssueReason.MISSING_SCHEMA, str(exc)) from exc

    def _returns_async_task(self, verb: str, path: str) -> bool:
        if not self._provider.has_operation(verb, path):
            return False
        try:
            raw = self._provider.resolve_operation_schema(verb, path, SchemaPart.RESPONSE, unwrap=False)
        except SchemaResolutionError:
            return False
        return raw.ref is not None and raw.ref == self._config.async_task_component

    def _upsert_endpoint(
        self,
        operations: OperationSet,
        requested: OperationSet,
    ) -> Optional[tuple[str, str]]:
        if operations.has(Operation.CREATE):
            return "POST", requested.base_path
        if operations.has(Operation.UPDATE):
            item = requested.item_path
            verb = self._gate.update_verb(item)
            if verb is not None:
                return verb, item
        return None

    def _query_fields(self, verb: str, path: str, warnings: list[str]) -> tuple[Field, ...]:
        try:
            parameters = self._provider.query_parameters(verb, path)
        except SchemaResolutionError as exc:
            message = f"Query parameters of {verb} {path} skipped: {exc}"
            logger.warning(message)
            warnings.append(message)
            return ()
        return self._fields.build_parameter_fields(
            parameters,
            excluded=self._config.excluded_search_params,
        )

    def _search_params(
        self,
        base: str,
        model_fields: tuple[Field, ...],
        model_alias: Optional[AliasDecision],
        warnings: list[str],
    ) -> tuple[Field, ...]:
        params = list(self._query_fields("GET", base, warnings))
        known = {param.source_key for param in params}
        for candidate in self._searchable_source(model_fields, model_alias):
            searchable = candidate.source_key in self._config.common_searchable_fields
            if candidate.source_key in known or not searchable:
                continue
            if candidate.type_ref.kind is not TypeKind.PRIMITIVE:
                continue
            known.add(candidate.source_key)
            params.append(
                Field(
                    name=candidate.name,
                    type_ref=candidate.type_ref,
                    source_key=candidate.source_key,
                    required=False,
                    description=candidate.description,
                )
            )
        return order_fields(params)

    def _searchable_source(
        self,
        model_fields: tuple[Field, ...],
        model_alias: Optional[AliasDecision],
    ) -> tuple[Field, ...]:
        if model_fields or model_alias is None:
            return model_fields
        try:
            component = self._provider.resolve_component(model_alias.component)
            scratch = BuildContext(registry=TypeRegistry(), section=TypeSection.SEARCH_PARAMS)
            return self._fields.build_fields(component, type_name=model_alias.type_name, context=scratch)
        except SchemaResolutionError as exc:
            logger.debug("No searchable fields from %s: %s", model_alias.component, exc)
            return ()

    def _extra_method(
        self,
        resource: str,
        verdict: ExtraMethodVerdict,
        registry: TypeRegistry,
        warnings: list[str],
        field_aliases: list[AliasDecision],
    ) -> Union[ExtraMethodModel, ValidationIssue]:
        spec = verdict.spec
        verb = spec.verb.upper()
        method_name = f"{resource}{extra_method_action(spec.path)}"
        body_type_name = f"{method_name}_{verb}_Body"
        response_type_name = f"{method_name}_{verb}_Model"

        query_params = self._query_fields(verb, spec.path, warnings)

        body: tuple[Field, ...] = ()
        if verdict.has_request_body:
            try:
                body = self._request_body(
                    verb,
                    spec.path,
                    type_name=body_type_name,
                    context=BuildContext(
                        registry=registry,
                        section=TypeSection.EXTRA_METHOD_BODY,
                        aliases=field_aliases,
                    ),
                    warnings=warnings,
                )
            except _ModelFailure as failure:
                message = f"{body_type_name} not generated: {failure.message}"
                logger.warning(message)
                warnings.append(message)

        response: tuple[Field, ...] = ()
        primitive_response: Optional[TypeRef] = None
        response_alias: Optional[AliasDecision] = None
        raw = verdict.response
        if raw is not None:
            if verdict.is_bare_array:
                response_type_name = f"{method_name}_{verb}_Item"
            response_alias = self._aliases.decide(response_type_name, raw)
            if response_alias is None:
                target = raw.items if verdict.is_bare_array and raw.items is not None else raw
                shape = classify_shape(target)
                if shape is SchemaShape.PRIMITIVE:
                    primitive_response = primitive_type(target)
                    if verdict.is_bare_array:
                        primitive_response = TypeRef.array(primitive_response)
                else:
                    try:
                        response = self._object_fields(
                            target,
                            response_type_name,
                            BuildContext(
                                registry=registry,
                                section=TypeSection.EXTRA_METHOD_RESPONSE,
                                aliases=field_aliases,
                            ),
                            warnings,
                        )
                    except _ModelFailure as failure:
                        return ValidationIssue(
                            operation=f"extraMethod {verb} {spec.path}",
                            reason=failure.reason,
                            message=f"Extra method {verb} {spec.path} skipped: {failure.message}",
                            verb=verb,
                            path=spec.path,
                        )

        return ExtraMethodModel(
            name=method_name,
            verb=verb,
            path=spec.path,
            summary=verdict.summary,
            has_id="{id}" in spec.path,
            sub_path=extra_method_sub_path(spec.path),
            wait_timeout=spec.wait_timeout,
            is_async_task=verdict.is_async_task,
            returns_no_content=verdict.returns_no_content,
            returns_array=verdict.is_bare_array,
            primitive_response=primitive_response,
            query_params=query_params,
            body=body,
            response=response,
            body_type_name=body_type_name,
            response_type_name=response_type_name,
            response_alias=response_alias,
        )

    @staticmethod
    def _exclude(
        operations: OperationSet,
        issues: list[ValidationIssue],
        failure: _ModelFailure,
        verb: str,
        path: str,
        *candidates: Operation,
    ) -> OperationSet:
        dropped = [operation for operation in candidates if operations.has(operation)]
        for operation in dropped:
            issue = ValidationIssue(
                operation=operation.name,
                reason=failure.reason,
                message=f"{operation.name} operation excluded: {failure.message}",
                verb=verb,
                path=path,
            )
            logger.info(issue.message)
            issues.append(issue)
        return operations.without(*dropped)


def _unique_aliases(decisions: list[AliasDecision]) -> tuple[AliasDecision, ...]:
    unique = {(decision.target, decision.component): decision for decision in decisions}
    return tuple(unique[key] for key in sorted(unique))
