"""
chipnft.cli — Typer command-line interface.

Entry point: `chipnft` (console script) → chipnft.cli.main:main
"""

from .main import app, main

__all__ = ["app", "main"]
