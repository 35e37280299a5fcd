"""Main CLI entry point for qmd-remote."""  # pragma: no cover

from qmd_remote.cli.app import app  # pragma: no cover

# Register commands
from qmd_remote.cli.commands import remote  # noqa: F401  # pragma: no cover

if __name__ == "__main__":  # pragma: no cover
    app()
