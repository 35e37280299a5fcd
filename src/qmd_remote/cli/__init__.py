"""Command line interface for qmd-remote."""
