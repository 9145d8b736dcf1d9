"""Read-through caching."""

from .memory_cache import MemoryCache

__all__ = ["MemoryCache"]
