"""
Helix CLI: terminal front end over JSON state files.
"""

from .main import app, main

__all__ = ["app", "main"]
