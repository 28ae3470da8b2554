"""
Command-line interface for triforge.
"""

from .main import main_cli

__all__ = ["main_cli"]
