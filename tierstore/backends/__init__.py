"""Pluggable storage backends.

Every backend implements the same contract (see ``BaseBackend``):

- **SQLiteBackend**: persistent indexed tier, an embedded database
- **FileSystemBackend**: persistent simple tier, JSON files with atomic writes
- **MemoryBackend**: volatile tier, always available

The orchestrator probes them in that priority order and falls back down the
list when the active one runs out of space.
"""

from .base import BaseBackend
from .filesystem import FileSystemBackend
from .memory import MemoryBackend
from .sqlite import SQLiteBackend

BACKEND_PRIORITY = ("sqlite", "filesystem", "memory")

__all__ = [
    "BACKEND_PRIORITY",
    "BaseBackend",
    "FileSystemBackend",
    "MemoryBackend",
    "SQLiteBackend",
]
