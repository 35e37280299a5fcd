"""qmd-remote - remote HTTP inference backend for qmd."""

__version__ = "0.1.0"
