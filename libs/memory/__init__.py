"""
Persistent conversation memory for the Pepper chat service.

Provides:
- Summary and short-history helpers (pure functions)
- Memory coordinator (Firestore-backed load/update)
"""

from libs.memory.coordinator import MemoryCoordinator, MemorySnapshot

__all__ = ["MemoryCoordinator", "MemorySnapshot"]
