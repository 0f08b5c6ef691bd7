"""Naming helpers for resources, generated types and Python identifiers."""

from __future__ import annotations

import keyword
import re

_IDENTIFIER_SANITIZE_RE = re.compile(r"[^0-9a-zA-Z_]+")
_MULTIPLE_UNDERSCORES_RE = re.compile(r"_+")
_PATH_TEMPLATE_RE = re.compile(r"\{[^}]+\}")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

_IRREGULAR_PLURALS: dict[str, str] = {
    "ActiveDirectory": "ActiveDirectories",
    "Dns": "Dns",
    "Nis": "Nis",
    "Vms": "Vms",
}


def sanitize_identifier(raw: str, *, lowercase: bool = True) -> str:
    """Convert arbitrary text into a valid Python identifier."""
    text = raw.lower() if lowercase else raw
    text = _IDENTIFIER_SANITIZE_RE.sub("_", text)
    text = _MULTIPLE_UNDERSCORES_RE.sub("_", text).strip("_")
    if not text:
        text = "root"
    if text[0].isdigit():
        text = f"x_{text}"
    if keyword.iskeyword(text):
        text = f"{text}_"
    return text


def camel_case(raw: str) -> str:
    """Upper-case the first letter of every ``_`` or ``-`` separated part.

    The rest of each part is kept as written, so ``tenant_id`` becomes
    ``TenantId`` and ``s3Policy`` becomes ``S3Policy``.
    """
    parts = raw.replace("-", "_").split("_")
    return "".join(part[:1].upper() + part[1:] for part in parts if part)


def snake_case(raw: str) -> str:
    """Convert a CamelCase name to snake_case."""
    return sanitize_identifier(_CAMEL_BOUNDARY_RE.sub("_", raw))


def normalize_required_name(name: str) -> str:
    """Collapse doubled delimiters so ``policy__id`` and ``policy_id`` compare equal."""
    while "__" in name:
        name = name.replace("__", "_")
    return name


def pluralize(name: str) -> str:
    """Return the plural form of a CamelCase resource name."""
    irregular = _IRREGULAR_PLURALS.get(name)
    if irregular is not None:
        return irregular
    if name.endswith("Policy"):
        return f"{name[:-1]}ies"
    if name.endswith("s"):
        return name
    return f"{name}s"


def clean_path_part(part: str) -> str:
    """Drop ``{param}`` templates and trailing slashes from one path segment."""
    return _PATH_TEMPLATE_RE.sub("", part).rstrip("/")


def normalize_resource_path(path: str) -> str:
    """Return ``path`` with exactly one leading and one trailing slash."""
    stripped = path.strip().strip("/")
    return f"/{stripped}/" if stripped else "/"


def item_path(base_path: str) -> str:
    """Return the single-item path ``/<base>/{id}/`` for a resource base path."""
    return f"{normalize_resource_path(base_path)}{{id}}/"


def extra_method_action(path: str) -> str:
    """Derive the CamelCase action name from the last meaningful path segment."""
    parts = path.strip("/").split("/")
    last = parts[-1] if parts else ""
    if not last and len(parts) > 1:
        last = parts[-2]
    return camel_case(clean_path_part(last))


def extra_method_sub_path(path: str) -> str:
    """Return the part of ``path`` after the ``{id}`` segment, if any."""
    parts = path.strip("/").split("/")
    if "{id}" not in parts:
        return ""
    index = parts.index("{id}")
    return "/".join(parts[index + 1 :]).rstrip("/")


def component_alias_name(component: str) -> str:
    """Return the generated alias type name for a shared component."""
    return f"Component_{component}"


def last_dotted_segment(raw: str) -> str:
    """Return the final segment of a dotted name such as ``pkg.Type``."""
    return raw.rsplit(".", maxsplit=1)[-1].strip()
