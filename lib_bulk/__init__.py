"""Stream typed records into a database through a bulk copy transport."""

from .cursor import EnumerableRowCursor, RowCursor
from .errors import (
    BulkWriterError,
    CopyAborted,
    CopyTimeout,
    InvalidCursorState,
    MappingConflict,
    TransportFailure,
)
from .mapping import ColumnDescriptor, SourceProperty, mapped, resolve
from .metadata import Column, Key, NotMapped, TableInfo, destination_table, table, table_info
from .transports.bulk_copy import BulkCopyOptions, BulkCopyTransport, ColumnBinding, RowsCopiedEvent
from .writer import BulkWriter, BulkWriterProtocol

__all__ = [
    "BulkCopyOptions",
    "BulkCopyTransport",
    "BulkWriter",
    "BulkWriterError",
    "BulkWriterProtocol",
    "Column",
    "ColumnBinding",
    "ColumnDescriptor",
    "CopyAborted",
    "CopyTimeout",
    "EnumerableRowCursor",
    "InvalidCursorState",
    "Key",
    "MappingConflict",
    "NotMapped",
    "RowCursor",
    "RowsCopiedEvent",
    "SourceProperty",
    "TableInfo",
    "TransportFailure",
    "destination_table",
    "mapped",
    "resolve",
    "table",
    "table_info",
]
