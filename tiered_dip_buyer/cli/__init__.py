"""
Command-line interface module for the tiered dip buyer.

This module provides the CLI for running the engine with different
configuration files and command-line options.
"""

from .cli import main

__all__ = ["main"]
