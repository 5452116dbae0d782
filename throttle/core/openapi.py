"""OpenAPI customization utilities.

Adds tag metadata and documents the 429 response shared by every route
guarded by the rate limit dependency, keeping documentation concerns out of
the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {
        "name": "Limits",
        "description": "Check-and-consume decisions and bucket inspection.",
    },
    {
        "name": "Health",
        "description": "Liveness checks.",
    },
]

_TOO_MANY_REQUESTS = {
    "description": "Rate limit exceeded for this client.",
    "headers": {
        "Retry-After": {
            "description": "Seconds to wait before retrying (lower bound).",
            "schema": {"type": "integer"},
        },
        "X-RateLimit-Limit": {"schema": {"type": "integer"}},
        "X-RateLimit-Remaining": {"schema": {"type": "integer"}},
        "X-RateLimit-Reset": {
            "description": "Seconds until the current window ends.",
            "schema": {"type": "integer"},
        },
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation.

    - Adds tags metadata if not present
    - Documents a 429 response on every operation except health endpoints
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {}).setdefault(
                        "429", _TOO_MANY_REQUESTS
                    )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
