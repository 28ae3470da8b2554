"""
System-level helpers: process tree management.
"""

from .processes import is_process_alive, terminate_process_tree

__all__ = ["is_process_alive", "terminate_process_tree"]
