"""Generator configuration and policy switches."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)

WAIT_DURATIONS: tuple[str, ...] = (
    "1s",
    "5s",
    "10s",
    "30s",
    "1m",
    "3m",
    "5m",
    "10m",
    "15m",
    "30m",
    "1h",
    "2h",
    "3h",
    "6h",
    "12h",
    "24h",
    "1d",
)


class ConfigError(RuntimeError):
    """Raised when a generator configuration file cannot be loaded."""


class OpsMarkerPolicy(str, Enum):
    """How repeated operation-set markers on one declaration are handled."""

    FIRST_WINS = "first_wins"
    REJECT = "reject"


class PrimitiveArrayPolicy(str, Enum):
    """How extra-method responses that are arrays of primitives are handled.

    ``legacy`` accepts primitive items on bare GET/POST array responses and
    rejects them on every other array response.
    """

    LEGACY = "legacy"
    ALLOW = "allow"
    REJECT = "reject"


class GeneratorConfig(BaseModel):
    """Settings shared by every pipeline stage."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    typed_namespace: str = "apityped"
    shared_namespace: str = "apiall"
    wait_durations: tuple[str, ...] = WAIT_DURATIONS
    extra_method_verbs: tuple[str, ...] = (
        "GET",
        "POST",
        "PUT",
        "PATCH",
        "DELETE",
        "HEAD",
        "OPTIONS",
    )
    extra_method_verb_combinations: tuple[str, ...] = (
        "POST|PATCH|DELETE",
        "POST|PUT",
        "POST|PATCH",
        "GET|POST",
        "GET|PATCH",
        "PATCH|GET",
        "PATCH|DELETE",
        "PUT|DELETE",
    )
    registration_call: str = "new_untyped_resource"
    registry_class: str = "UntypedRest"
    excluded_search_params: tuple[str, ...] = (
        "page",
        "page_size",
        "sync",
        "created",
        "sync_time",
    )
    common_searchable_fields: tuple[str, ...] = (
        "name",
        "path",
        "bucket",
        "gid",
        "uid",
        "guid",
        "tenant_id",
    )
    async_task_component: str = "AsyncTaskInResponse"
    ops_marker_policy: OpsMarkerPolicy = OpsMarkerPolicy.FIRST_WINS
    primitive_array_policy: PrimitiveArrayPolicy = PrimitiveArrayPolicy.LEGACY
    strict_extra_method_responses: bool = False
    alias_nested_references: bool = False


def load_config(path: Optional[Path]) -> GeneratorConfig:
    """Load configuration from YAML, or return defaults when no path is given.

    Args:
        path (Optional[Path]): YAML file holding a mapping of setting overrides.

    Returns:
        GeneratorConfig: Validated configuration.
    """
    if path is None:
        return GeneratorConfig()
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML in {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(payload)!r}")

    try:
        config = GeneratorConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid generator config {path}: {exc}") from exc
    logger.debug("Loaded generator config from %s", path)
    return config
