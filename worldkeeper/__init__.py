"""Retention and ownership management for world backup folders."""

__version__ = "0.1.0"
