"""Database access layer (DAL) for the campus data store.

This sub-package encapsulates low-level DB interactions so that callers work
with typed records instead of SQL.
"""

from .connection import ConnectionPool, open_pool
from .storage import Storage

__all__ = ["ConnectionPool", "Storage", "open_pool"]
