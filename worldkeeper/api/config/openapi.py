"""OpenAPI configuration for Swagger UI."""
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

_PUBLIC_PATHS = ("/health", "/version")


def setup_openapi(app: FastAPI) -> None:
    """
    Configure OpenAPI schema for the FastAPI application with the admin key scheme.

    Args:
        app: The FastAPI application instance
    """
    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )

        components = openapi_schema.setdefault("components", {})
        components["securitySchemes"] = {
            "X-Admin-Key": {
                "type": "apiKey",
                "in": "header",
                "name": "X-Admin-Key",
                "description": "Admin API Key for listing, planning, trimming and ownership operations",
            }
        }

        for path, path_item in openapi_schema.get("paths", {}).items():
            if path in _PUBLIC_PATHS:
                continue
            for method, operation in path_item.items():
                if method in ["get", "post", "delete", "put", "patch"]:
                    operation["security"] = [{"X-Admin-Key": []}]

        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi
