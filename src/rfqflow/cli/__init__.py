"""rfqflow command line: workers and execution management."""

from rfqflow.cli.main import main

__all__ = ["main"]
