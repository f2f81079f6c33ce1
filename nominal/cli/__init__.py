"""
nominal.cli — Typer application for operating a registry from the shell.

Entry point: `nominal` (see pyproject) or `python -m nominal`.
"""

from .main import app, main

__all__ = ["app", "main"]
