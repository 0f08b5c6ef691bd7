"""Allow ``python -m openapi_resource_modeler``."""

from __future__ import annotations

from .cli import main

raise SystemExit(main())
