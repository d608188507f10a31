"""Command-line front end for inspecting and moving storage data.

Built with Click and Rich; it holds no storage logic of its own.
"""

from tierstore.cli.main import cli, main

__all__ = ["cli", "main"]
