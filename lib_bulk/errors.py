from __future__ import annotations


class BulkWriterError(Exception):
    """Base class for every error raised by lib_bulk itself."""


class MappingConflict(BulkWriterError):
    """Contradictory or ambiguous mapping metadata on a record type.

    Raised while resolving column descriptors, before any row is read.
    """

    def __init__(self, message: str, record_type: type | None = None, property_name: str | None = None):
        self.record_type = record_type
        self.property_name = property_name

        prefix = ''
        if record_type is not None:
            prefix = f'{record_type.__qualname__}'
            if property_name is not None:
                prefix += f'.{property_name}'
            prefix += ': '

        super().__init__(prefix + message)


class InvalidCursorState(BulkWriterError):
    """A row cursor was used outside of the phase that allows the call."""


class TransportFailure(BulkWriterError):
    """Failure detected by a bulk copy transport.

    Errors coming from the database driver are not wrapped in this type,
    they reach the caller unchanged.
    """


class CopyTimeout(TransportFailure):
    pass


class CopyAborted(TransportFailure):
    """A rows-copied handler asked the transport to stop."""

    def __init__(self, rows_copied: int):
        self.rows_copied = rows_copied
        super().__init__(f'bulk copy aborted by handler after {rows_copied} rows')
