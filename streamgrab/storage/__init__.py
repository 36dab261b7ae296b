"""
Storage Layer.

This package handles persistence: the INI configuration file, the
per-context stream registry and writing finished artifacts to disk.
"""

from .config_manager import ConfigManager
from .registry import StreamRegistry
from .saver import DiskFileSaver, FileSaver, SaveCancelledError

__all__ = [
    "ConfigManager",
    "DiskFileSaver",
    "FileSaver",
    "SaveCancelledError",
    "StreamRegistry",
]
