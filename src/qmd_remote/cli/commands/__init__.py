"""CLI commands for qmd-remote."""

from . import remote

__all__ = ["remote"]
