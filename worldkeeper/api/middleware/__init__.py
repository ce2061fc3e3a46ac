"""Middleware configuration for the FastAPI application."""
from fastapi import FastAPI
from .logging import setup_logging_middleware


def setup_middleware(app: FastAPI) -> None:
    """
    Configure all middleware for the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    setup_logging_middleware(app)
