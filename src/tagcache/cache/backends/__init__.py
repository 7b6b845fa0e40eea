"""
tagcache - Cache Drivers

Exports the driver implementations without third-party dependencies.

Redis and memcached drivers are lazy-loaded via factory.py so that their
client libraries are only imported when a pool is configured to use them.
"""

from .files import FileDriver, FileItem
from .memory import MemoryDriver, MemoryItem

__all__ = [
    "FileDriver",
    "FileItem",
    "MemoryDriver",
    "MemoryItem",
]
