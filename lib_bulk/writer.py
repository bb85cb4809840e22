from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from types import TracebackType
from typing import Protocol, TypeVar, runtime_checkable

from sqlalchemy import URL, Connection, Engine
from sqlalchemy.engine import Transaction

from lib_bulk.config import BulkWriterConfig
from lib_bulk.cursor import EnumerableRowCursor
from lib_bulk.engine import get_sql_engine
from lib_bulk.mapping import ColumnDescriptor, mapped, resolve
from lib_bulk.metadata import destination_table
from lib_bulk.transports.bulk_copy import (
    BulkCopyOptions,
    BulkCopyTransport,
    ColumnBinding,
    TransportFactory,
)
from lib_bulk.transports.sqlalchemy_bulk_copy import SqlAlchemyBulkCopy

logger = logging.getLogger(__name__)

T_contra = TypeVar("T_contra", contravariant=True)


@runtime_checkable
class BulkWriterProtocol(Protocol[T_contra]):
    """Writes iterables of records of one type into their destination table."""

    def write(self, records: Iterable[T_contra]) -> int:
        ...

    async def write_async(self, records: Iterable[T_contra]) -> int:
        ...

    def close(self) -> None:
        ...


def _no_setup(transport: BulkCopyTransport):
    ...


class BulkWriter[T]:
    """Streams records of ``record_type`` into a table through a bulk copy transport.

    The column descriptors of the record type are resolved once, here, and
    reused by every write. The destination may be a connection string or
    URL (the writer then owns its engine), a borrowed Engine or Connection,
    or a caller transaction. A caller's transaction is never committed or
    rolled back by the writer.
    """

    def __init__(
        self,
        record_type: type[T],
        destination: str | URL | Engine | Connection | None = None,
        *,
        transaction: Transaction | None = None,
        options: BulkCopyOptions | None = None,
    ):
        if destination is None and transaction is None:
            raise ValueError("BulkWriter needs a destination or a transaction")

        def create_transport(opts: BulkCopyOptions) -> BulkCopyTransport:
            if transaction is not None:
                return SqlAlchemyBulkCopy(transaction.connection, opts, transaction)

            if isinstance(destination, Engine | Connection):
                return SqlAlchemyBulkCopy(destination, opts)

            assert destination is not None
            return SqlAlchemyBulkCopy.from_url(destination, opts)

        self._initialize(record_type, create_transport, options)

    @classmethod
    def with_transport(
        cls,
        record_type: type[T],
        transport_factory: TransportFactory,
        *,
        options: BulkCopyOptions | None = None,
    ) -> BulkWriter[T]:
        writer = cls.__new__(cls)
        writer._initialize(record_type, transport_factory, options)
        return writer

    @classmethod
    def from_config(cls, record_type: type[T], cfg: BulkWriterConfig) -> BulkWriter[T]:
        has_keys = any(d.is_key for d in resolve(record_type))

        writer = cls.with_transport(
            record_type,
            lambda opts: SqlAlchemyBulkCopy(get_sql_engine(cfg.db), opts, owns_engine=True),
            options=cfg.copy_options(has_keys),
        )
        writer.batch_size = cfg.batch_size
        writer.timeout = cfg.timeout
        writer.transport.notify_after = cfg.notify_after
        return writer

    def _initialize(
        self,
        record_type: type[T],
        create_transport: Callable[[BulkCopyOptions], BulkCopyTransport],
        caller_options: BulkCopyOptions | None,
    ):
        self.record_type = record_type
        self._descriptors = resolve(record_type)

        # caller options win, otherwise infer from the declared keys
        if caller_options is not None:
            options = caller_options
        else:
            has_any_keys = any(d.is_key for d in self._descriptors)
            options = BulkCopyOptions.KEEP_IDENTITY if has_any_keys else BulkCopyOptions.DEFAULT
            options |= BulkCopyOptions.TABLE_LOCK

        self.destination_table_name = destination_table(record_type)

        transport = create_transport(options)
        transport.destination_table_name = self.destination_table_name
        transport.enable_streaming = True
        transport.timeout = 0

        for descriptor in mapped(self._descriptors):
            assert descriptor.ordinal is not None
            transport.column_bindings.append(
                ColumnBinding(descriptor.ordinal, descriptor.destination_column),
            )

        logger.debug(
            "bulk writer for %s -> %s with %s",
            record_type.__qualname__, self.destination_table_name, options,
        )

        self._transport = transport
        self.bulk_copy_setup: Callable[[BulkCopyTransport], None] = _no_setup

    # ========================================
    # Settings
    # ========================================

    @property
    def descriptors(self) -> tuple[ColumnDescriptor, ...]:
        return self._descriptors

    @property
    def transport(self) -> BulkCopyTransport:
        return self._transport

    @property
    def batch_size(self):
        return self._transport.batch_size

    @batch_size.setter
    def batch_size(self, value: int):
        self._transport.batch_size = value

    @property
    def timeout(self):
        return self._transport.timeout

    @timeout.setter
    def timeout(self, value: float):
        self._transport.timeout = value

    # ========================================
    # Core Public API
    # ========================================

    def write(self, records: Iterable[T]) -> int:
        self.bulk_copy_setup(self._transport)

        with EnumerableRowCursor(records, self._descriptors) as cursor:
            copied = self._transport.write_to_server(cursor)

        logger.debug("wrote %d rows into %s", copied, self.destination_table_name)
        return copied

    async def write_async(self, records: Iterable[T]) -> int:
        self.bulk_copy_setup(self._transport)

        with EnumerableRowCursor(records, self._descriptors) as cursor:
            copied = await self._transport.write_to_server_async(cursor)

        logger.debug("wrote %d rows into %s", copied, self.destination_table_name)
        return copied

    def close(self):
        self._transport.close()

    def __enter__(self):
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ):
        self.close()
