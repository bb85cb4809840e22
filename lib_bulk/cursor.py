from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from enum import Enum, auto
from types import TracebackType
from typing import Any, Protocol, runtime_checkable

from lib_bulk.errors import InvalidCursorState
from lib_bulk.mapping import ColumnDescriptor, mapped

logger = logging.getLogger(__name__)


@runtime_checkable
class RowCursor(Protocol):
    """Forward-only, ordinal addressed row source read by bulk copy transports.

    Field metadata is available as soon as the cursor exists; values are
    only readable while the cursor is positioned on a row.
    """

    @property
    def field_count(self) -> int:
        ...

    def field_name(self, ordinal: int) -> str:
        ...

    def field_ordinal(self, name: str) -> int:
        ...

    def field_type(self, ordinal: int) -> Any:
        ...

    def advance(self) -> bool:
        ...

    def is_null(self, ordinal: int) -> bool:
        ...

    def value(self, ordinal: int) -> Any:
        ...

    def close(self) -> None:
        ...


class CursorPhase(Enum):
    not_started = auto()
    positioned = auto()
    exhausted = auto()
    closed = auto()


class EnumerableRowCursor[T]:
    """Exposes a single pass over an iterable of records as a RowCursor.

    Exactly one record is pulled per ``advance()`` and only the current
    record is held, so the source may be arbitrarily long or lazy.
    """

    def __init__(self, records: Iterable[T], descriptors: Sequence[ColumnDescriptor]):
        self._fields = mapped(descriptors)
        self._ordinals = {d.destination_column: i for i, d in enumerate(self._fields)}
        self._iterator: Iterator[T] = iter(records)
        self._current: T | None = None
        self._phase = CursorPhase.not_started
        self._rows_read = 0

    # ========================================
    # Field Metadata
    # ========================================

    @property
    def field_count(self):
        return len(self._fields)

    def field_name(self, ordinal: int) -> str:
        return self._field(ordinal).destination_column

    def field_ordinal(self, name: str) -> int:
        try:
            return self._ordinals[name]
        except KeyError:
            raise KeyError(f'no mapped field named "{name}"') from None

    def field_type(self, ordinal: int) -> Any:
        return self._field(ordinal).source.value_type

    def _field(self, ordinal: int):
        if not 0 <= ordinal < len(self._fields):
            raise IndexError(f'ordinal {ordinal} out of range for {len(self._fields)} fields')
        return self._fields[ordinal]

    # ========================================
    # Positioning
    # ========================================

    @property
    def phase(self):
        return self._phase

    @property
    def closed(self):
        return self._phase is CursorPhase.closed

    @property
    def rows_read(self):
        return self._rows_read

    def advance(self) -> bool:
        if self._phase is CursorPhase.closed:
            raise InvalidCursorState('cannot advance a closed cursor')

        if self._phase is CursorPhase.exhausted:
            return False

        try:
            self._current = next(self._iterator)
        except StopIteration:
            self._current = None
            self._phase = CursorPhase.exhausted
            logger.debug("cursor exhausted after %d rows", self._rows_read)
            return False

        self._rows_read += 1
        self._phase = CursorPhase.positioned
        return True

    # ========================================
    # Value Access
    # ========================================

    def is_null(self, ordinal: int) -> bool:
        return self.value(ordinal) is None

    def value(self, ordinal: int) -> Any:
        field = self._field(ordinal)
        return field.source.get(self._positioned_record())

    def values(self) -> tuple[Any, ...]:
        record = self._positioned_record()
        return tuple(d.source.get(record) for d in self._fields)

    def _positioned_record(self) -> T:
        if self._phase is not CursorPhase.positioned:
            raise InvalidCursorState(f'no current row, cursor is {self._phase.name}')
        return self._current  # type: ignore[return-value]

    # ========================================
    # Disposal
    # ========================================

    def close(self):
        if self._phase is CursorPhase.closed:
            return

        self._phase = CursorPhase.closed
        self._current = None

        close = getattr(self._iterator, 'close', None)
        if callable(close):
            close()

    def __enter__(self):
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ):
        self.close()
