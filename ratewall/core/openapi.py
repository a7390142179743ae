"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- Admin API Key security scheme (``X-API-Key``), applied only to the admin
  operations (block management, counter inspection)
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {"name": "Limits", "description": "Fixed-window rate-limit checks and counters."},
    {"name": "Blocks", "description": "Explicit, TTL-based abuse blocks (admin)."},
    {"name": "Health", "description": "Liveness and backend selection."},
]


def _is_admin_operation(path: str, method: str) -> bool:
    if path.startswith("/v1/blocks/"):
        return True
    return path.startswith("/v1/limits/") and not path.endswith("/check") and method in {"get", "delete"}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and admin security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "AdminApiKey",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key (APP_ADMIN_API_KEYS).",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(tag for tag in _TAGS if tag["name"] not in existing_tag_names)

        for path, methods in schema.get("paths", {}).items():
            for method, operation in methods.items():
                if isinstance(operation, dict) and _is_admin_operation(path, method):
                    operation["security"] = [{"AdminApiKey": []}]

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
