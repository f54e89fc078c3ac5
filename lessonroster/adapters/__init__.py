"""
Persistence adapters implementing the repository protocol.
"""

from .memory_store import InMemoryRepository

__all__ = ["InMemoryRepository"]
