from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Flag, auto
from typing import Protocol, runtime_checkable

from lib_bulk.cursor import RowCursor


class BulkCopyOptions(Flag):
    DEFAULT = 0
    # write supplied identity values instead of letting the destination generate them
    KEEP_IDENTITY = auto()
    # hold a table level lock for the duration of the copy
    TABLE_LOCK = auto()
    # write NULL even where the destination column has a default
    KEEP_NULLS = auto()
    # commit every batch in its own transaction
    USE_INTERNAL_TRANSACTION = auto()


@dataclass(frozen=True)
class ColumnBinding:
    source_ordinal: int
    destination_column: str


@dataclass
class RowsCopiedEvent:
    rows_copied: int
    abort: bool = False


RowsCopiedHandler = Callable[[RowsCopiedEvent], None]


@runtime_checkable
class BulkCopyTransport(Protocol):
    """Narrow surface of a bulk-load backend.

    A transport is configured once (destination, bindings, options) and
    then fed one RowCursor per write. Failures are reported by raising;
    the caller owns cursor disposal.
    """

    destination_table_name: str
    column_bindings: list[ColumnBinding]
    batch_size: int
    timeout: float
    enable_streaming: bool
    notify_after: int
    rows_copied_handlers: list[RowsCopiedHandler]

    @property
    def options(self) -> BulkCopyOptions:
        ...

    def write_to_server(self, cursor: RowCursor) -> int:
        ...

    async def write_to_server_async(self, cursor: RowCursor) -> int:
        ...

    def close(self) -> None:
        ...


TransportFactory = Callable[[BulkCopyOptions], BulkCopyTransport]
