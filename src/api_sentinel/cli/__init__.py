"""Command-line interface."""

from .sentinel_cli import SentinelCLI, main

__all__ = ["SentinelCLI", "main"]
