"""
game-save-backuper - scheduled backups of a game server's save directory.
"""

__version__ = "0.1.0"
