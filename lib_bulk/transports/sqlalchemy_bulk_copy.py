from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Iterator
from contextlib import closing, contextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import URL, Connection, Engine, Table, insert, text
from sqlalchemy.engine import Transaction
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.sql.expression import Insert

from lib_bulk.cursor import RowCursor
from lib_bulk.engine import try_create_engine
from lib_bulk.errors import CopyAborted, CopyTimeout, TransportFailure
from lib_bulk.inspection import defaulted_columns, identity_column, reflect_table, split_table_name
from lib_bulk.transports.bulk_copy import (
    BulkCopyOptions,
    ColumnBinding,
    RowsCopiedEvent,
    RowsCopiedHandler,
)

logger = logging.getLogger(__name__)

# rows per executemany when no batch size is configured
STREAMING_CHUNK_ROWS = 1000


@dataclass
class _CopyPlan:
    table: Table
    statement: Insert
    bindings: list[ColumnBinding]
    defaulted: set[str]


class SqlAlchemyBulkCopy:
    """Bulk copy transport built on SQLAlchemy Core.

    Rows are pulled from the cursor one at a time and sent with
    ``executemany`` in chunks. The transport never commits or rolls back
    a transaction it did not open itself.
    """

    def __init__(
        self,
        bind: Engine | Connection,
        options: BulkCopyOptions = BulkCopyOptions.DEFAULT,
        transaction: Transaction | None = None,
        *,
        owns_engine: bool = False,
    ):
        if transaction is not None:
            bind = transaction.connection

        self.bind = bind
        self._options = options
        self._transaction = transaction
        self._owns_engine = owns_engine and isinstance(bind, Engine)
        self._closed = False

        self.destination_table_name = ''
        self.column_bindings: list[ColumnBinding] = []
        self.batch_size = 0
        self.timeout: float = 0
        self.enable_streaming = True
        self.notify_after = 0
        self.rows_copied_handlers: list[RowsCopiedHandler] = []

    @classmethod
    def from_url(cls, url: str | URL, options: BulkCopyOptions = BulkCopyOptions.DEFAULT):
        engine = try_create_engine(url)
        return cls(engine, options, owns_engine=True)

    @property
    def options(self):
        return self._options

    # ========================================
    # Core Public API
    # ========================================

    def write_to_server(self, cursor: RowCursor) -> int:
        copied = 0
        with self._connection() as conn, closing(self._run(conn, cursor)) as chunks:
            for copied in chunks:
                pass

        return copied

    async def write_to_server_async(self, cursor: RowCursor) -> int:
        copied = 0
        with self._connection() as conn, closing(self._run(conn, cursor)) as chunks:
            for copied in chunks:
                # hand control back to the loop between chunks
                await asyncio.sleep(0)

        return copied

    def close(self):
        if self._closed:
            return

        self._closed = True
        if self._owns_engine:
            assert isinstance(self.bind, Engine)
            self.bind.dispose()

    # ========================================
    # Transaction Handling
    # ========================================

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        if self._closed:
            raise TransportFailure('bulk copy transport is closed')

        if isinstance(self.bind, Engine):
            with self.bind.connect() as conn:
                yield conn
        else:
            yield self.bind

    def _run(self, conn: Connection, cursor: RowCursor) -> Iterator[int]:
        managed = self._transaction is None and not conn.in_transaction()
        commit_per_batch = (
            managed
            and self.batch_size > 0
            and BulkCopyOptions.USE_INTERNAL_TRANSACTION in self._options
        )

        try:
            plan = self._prepare(conn, cursor)
            self._lock_table(conn, plan)

            for copied in self._copy_chunks(conn, plan, cursor):
                if commit_per_batch:
                    conn.commit()
                    self._lock_table(conn, plan)
                yield copied

            if managed:
                conn.commit()

        except BaseException:
            if managed:
                logger.debug("rolling back bulk copy into %s", self.destination_table_name)
                conn.rollback()
            raise

    # ========================================
    # Preparation
    # ========================================

    def _prepare(self, conn: Connection, cursor: RowCursor) -> _CopyPlan:
        if not self.destination_table_name:
            raise TransportFailure('no destination table configured')

        if not self.column_bindings:
            raise TransportFailure(f'no column bindings configured for {self.destination_table_name}')

        schema, name = split_table_name(self.destination_table_name)
        try:
            table = reflect_table(conn, name, schema)
        except NoSuchTableError as e:
            raise TransportFailure(f'destination table {self.destination_table_name} does not exist') from e

        unknown = [b.destination_column for b in self.column_bindings if b.destination_column not in table.c]
        if unknown:
            raise TransportFailure(
                f'columns {unknown} do not exist in {self.destination_table_name}, '
                f'available: {[c.name for c in table.columns]}',
            )

        out_of_range = [b.source_ordinal for b in self.column_bindings if not 0 <= b.source_ordinal < cursor.field_count]
        if out_of_range:
            raise TransportFailure(f'source ordinals {out_of_range} exceed {cursor.field_count} cursor fields')

        bindings = list(self.column_bindings)
        identity = identity_column(table)
        if identity is not None and BulkCopyOptions.KEEP_IDENTITY not in self._options:
            logger.debug("destination generates %s, dropping its binding", identity.name)
            bindings = [b for b in bindings if b.destination_column != identity.name]

        if not bindings:
            raise TransportFailure(f'no columns left to copy into {self.destination_table_name}')

        defaulted = set()
        if BulkCopyOptions.KEEP_NULLS not in self._options:
            defaulted = defaulted_columns(table)

        logger.debug(
            "bulk copy into %s: columns=%s options=%s",
            self.destination_table_name, [b.destination_column for b in bindings], self._options,
        )
        statement = insert(table)
        if BulkCopyOptions.TABLE_LOCK in self._options:
            statement = statement.with_hint('WITH (TABLOCK)', dialect_name='mssql')

        return _CopyPlan(
            table=table,
            statement=statement,
            bindings=bindings,
            defaulted=defaulted,
        )

    def _lock_table(self, conn: Connection, plan: _CopyPlan):
        if BulkCopyOptions.TABLE_LOCK not in self._options:
            return

        dialect = conn.dialect.name
        if dialect == 'postgresql':
            table_ref = conn.dialect.identifier_preparer.format_table(plan.table)
            conn.execute(text(f'LOCK TABLE {table_ref} IN SHARE ROW EXCLUSIVE MODE'))
        elif dialect != 'mssql':
            # mssql takes the lock through the insert hint
            logger.debug("table lock not supported by %s, ignoring", dialect)

    # ========================================
    # Row Transfer
    # ========================================

    def _copy_chunks(self, conn: Connection, plan: _CopyPlan, cursor: RowCursor) -> Iterator[int]:
        chunk_size: int | None = self.batch_size if self.batch_size > 0 else STREAMING_CHUNK_ROWS
        if not self.enable_streaming and self.batch_size <= 0:
            chunk_size = None

        deadline = time.monotonic() + self.timeout if self.timeout > 0 else None
        rows: list[dict[str, Any]] = []
        copied = 0

        while cursor.advance():
            rows.append(self._read_row(plan, cursor))
            if chunk_size is not None and len(rows) >= chunk_size:
                copied = self._flush(conn, plan, rows, copied, deadline)
                rows = []
                yield copied

        if rows:
            copied = self._flush(conn, plan, rows, copied, deadline)
            yield copied

    def _read_row(self, plan: _CopyPlan, cursor: RowCursor) -> dict[str, Any]:
        row: dict[str, Any] = {}
        for b in plan.bindings:
            if cursor.is_null(b.source_ordinal):
                if b.destination_column in plan.defaulted:
                    continue
                row[b.destination_column] = None
            else:
                row[b.destination_column] = cursor.value(b.source_ordinal)

        return row

    def _flush(
        self,
        conn: Connection,
        plan: _CopyPlan,
        rows: list[dict[str, Any]],
        copied: int,
        deadline: float | None,
    ) -> int:
        # executemany needs one parameter shape per call
        for keys, group in itertools.groupby(rows, key=lambda r: tuple(r)):
            if keys:
                conn.execute(plan.statement, list(group))
            else:
                for _ in group:
                    conn.execute(plan.statement)

        logger.debug("flushed %d rows into %s", len(rows), self.destination_table_name)
        self._notify(copied, copied + len(rows))
        copied += len(rows)

        if deadline is not None and time.monotonic() > deadline:
            raise CopyTimeout(f'bulk copy exceeded {self.timeout}s after {copied} rows')

        return copied

    def _notify(self, before: int, after: int):
        if self.notify_after <= 0 or not self.rows_copied_handlers:
            return

        if after // self.notify_after == before // self.notify_after:
            return

        event = RowsCopiedEvent(rows_copied=after)
        for handler in self.rows_copied_handlers:
            handler(event)

        if event.abort:
            raise CopyAborted(after)
