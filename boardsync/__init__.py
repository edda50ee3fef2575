"""
boardsync: optimistic board and lane editing

A small platform combining:
- A normalized client cache for boards and their lanes
- An optimistic mutation coordinator with rollback
- A SQLite-backed board router exposed over FastAPI

Distribution: Available as both Python library and CLI
"""

__version__ = "0.1.0"
__all__ = [
    "__version__",
]
