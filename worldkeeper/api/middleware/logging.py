"""Request logging middleware for debugging."""

from __future__ import annotations

import json
from typing import Any, Dict

from fastapi import FastAPI, Request

from worldkeeper.api.logging_config import get_logger
from worldkeeper.api.settings import settings

logger = get_logger(__name__)

_SENSITIVE_HEADER_NAMES = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-admin-key",
}

_SENSITIVE_JSON_KEYS = {
    "api_key",
    "token",
}

_MAX_BODY_LOG = 8192


def _redact_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of headers with sensitive values redacted.

    Args:
        headers: Header mapping.

    Returns:
        Dict[str, str]: Redacted headers.
    """

    redacted: Dict[str, str] = {}
    for key, value in (headers or {}).items():
        if key.lower() in _SENSITIVE_HEADER_NAMES:
            redacted[key] = "<redacted>"
        else:
            redacted[key] = value
    return redacted


def _redact_json(value: Any) -> Any:
    """Recursively redact known secret fields in a JSON-like value."""

    if isinstance(value, dict):
        return {
            k: "<redacted>" if str(k).lower() in _SENSITIVE_JSON_KEYS else _redact_json(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_redact_json(v) for v in value]
    return value


def _describe_body(body: bytes, content_type: str) -> str:
    if not body:
        return "No Body"

    if "application/json" in content_type:
        try:
            text = json.dumps(_redact_json(json.loads(body)), ensure_ascii=False)
        except ValueError:
            text = f"<invalid json body: {len(body)} bytes>"
    else:
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            text = f"<non-text body: {len(body)} bytes>"

    if len(text) > _MAX_BODY_LOG:
        text = text[:_MAX_BODY_LOG] + "...<truncated>"
    return text


async def log_requests(request: Request, call_next):
    """
    Log request and response details for debugging purposes.

    This middleware is only active when DEBUG mode is enabled.
    """
    if request.url.path == "/health":
        return await call_next(request)

    body = await request.body()
    logger.debug("Received request: %s %s", request.method, request.url)
    logger.debug("Request headers: %s", _redact_headers(dict(request.headers)))
    logger.debug(
        "Request body: %s",
        _describe_body(body, (request.headers.get("content-type") or "").lower()),
    )

    response = await call_next(request)
    logger.debug("Response status: %s", response.status_code)
    return response


def setup_logging_middleware(app: FastAPI) -> None:
    """
    Configure request logging middleware for the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    if settings.DEBUG:
        app.middleware("http")(log_requests)
