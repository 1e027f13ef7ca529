"""
CLI module for sandboxfs.

Provides a command-line interface to the sandboxed filesystem
operations, mainly for inspecting a sandbox by hand.
"""

from sandboxfs.cli.main import cli

__all__ = ["cli"]
