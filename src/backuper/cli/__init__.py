"""
CLI layer for game-save-backuper.

Entry point::

    game-save-backuper --help
"""

from backuper.cli.app import app, main

__all__ = ["app", "main"]
