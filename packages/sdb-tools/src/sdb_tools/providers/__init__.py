"""Provider implementations for remote stores.

Each provider module exports a `Provider` class alias for the main provider class,
along with its credentials and params types.

Available providers (require optional dependencies):
- simpledb: Amazon SimpleDB via boto3
"""

from sdb_tools.providers import simpledb

__all__ = [
    "simpledb",
]
