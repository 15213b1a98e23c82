"""Bulk export, import and selection toolkit for SimpleDB-style stores."""

from sdb_tools.checkpoint import CheckpointReport, CheckpointStore
from sdb_tools.database import Database, Domain
from sdb_tools.dumpfile import DumpFile
from sdb_tools.errors import ErrorKind, SdbError
from sdb_tools.metrics import Transaction, log_transaction_close, open_transaction
from sdb_tools.operation import PaginatedOperation
from sdb_tools.protocols import Provider, RecordInput, RecordOutput, Store
from sdb_tools.selection import Selection
from sdb_tools.transfer import DumpEngine, LoadEngine

__all__ = [
    "CheckpointReport",
    "CheckpointStore",
    "Database",
    "Domain",
    "DumpEngine",
    "DumpFile",
    "ErrorKind",
    "LoadEngine",
    "PaginatedOperation",
    "Provider",
    "RecordInput",
    "RecordOutput",
    "SdbError",
    "Selection",
    "Store",
    "Transaction",
    "log_transaction_close",
    "open_transaction",
]
