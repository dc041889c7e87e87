"""CLI application setup using Typer.

Provides the command-line interface for BlockPilot.
"""

from src.cli.main import app

__all__ = ["app"]
