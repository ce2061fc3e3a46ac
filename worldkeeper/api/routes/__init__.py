"""Route modules for the API."""

from . import retention

__all__ = ["retention"]
