from __future__ import annotations

import dataclasses
import functools
import itertools
import logging
import types
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Annotated, Any, ClassVar, Union, get_args, get_origin, get_type_hints

from pydantic import BaseModel

from lib_bulk.errors import MappingConflict
from lib_bulk.metadata import Column, Key, NotMapped

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceProperty:
    name: str
    value_type: Any
    nullable: bool
    index: int

    def get(self, record: object) -> Any:
        return getattr(record, self.name)


@dataclass(frozen=True)
class ColumnDescriptor:
    """One resolved mapping from a record property to a destination column."""

    source: SourceProperty
    destination_column: str
    ordinal: int | None
    declared_ordinal: int | None = None
    is_key: bool = False
    should_map: bool = True


def mapped(descriptors: Iterable[ColumnDescriptor]) -> tuple[ColumnDescriptor, ...]:
    return tuple(sorted(
        (d for d in descriptors if d.should_map),
        key=lambda d: d.ordinal or 0,
    ))


@functools.cache
def resolve(record_type: type) -> tuple[ColumnDescriptor, ...]:
    """Resolve the column descriptors of a record type.

    Mapped descriptors come first in ordinal order, followed by the
    excluded ones in declaration order. The result is memoised per type,
    so repeated writers of the same type share one immutable tuple.
    """
    if not isinstance(record_type, type):
        raise MappingConflict(f'expected a record class, got {record_type!r}')

    props = [
        _read_property(record_type, idx, name, hint)
        for idx, (name, hint) in enumerate(_declared_properties(record_type))
    ]

    included = [p for p in props if not p.excluded]
    ordinals = _assign_ordinals(record_type, included)
    _check_destinations(record_type, included)

    resolved = [
        ColumnDescriptor(
            source=p.source,
            destination_column=p.column_name,
            ordinal=ordinals[p.source.name],
            declared_ordinal=p.order,
            is_key=p.is_key,
        )
        for p in included
    ]
    resolved.sort(key=lambda d: d.ordinal or 0)

    excluded = [
        ColumnDescriptor(
            source=p.source,
            destination_column=p.column_name,
            ordinal=None,
            declared_ordinal=p.order,
            is_key=p.is_key,
            should_map=False,
        )
        for p in props if p.excluded
    ]

    logger.debug(
        "resolved %s: mapped=%s excluded=%s",
        record_type.__qualname__,
        [d.destination_column for d in resolved],
        [d.source.name for d in excluded],
    )
    return tuple(resolved + excluded)


# ----------------------------
# -- Property Introspection --
# ----------------------------

@dataclass
class _Property:
    source: SourceProperty
    column_name: str
    order: int | None
    is_key: bool
    excluded: bool


def _declared_properties(record_type: type) -> list[tuple[str, Any]]:
    if issubclass(record_type, BaseModel):
        # pydantic keeps unknown Annotated metadata on the field info
        return [
            (name, Annotated[(info.annotation, *info.metadata)] if info.metadata else info.annotation)
            for name, info in record_type.model_fields.items()
            if not name.startswith('_')
        ]

    try:
        hints = get_type_hints(record_type, include_extras=True)
    except (NameError, TypeError) as e:
        raise MappingConflict(f'cannot evaluate annotations: {e}', record_type) from e

    if dataclasses.is_dataclass(record_type):
        names = [f.name for f in dataclasses.fields(record_type)]
    elif issubclass(record_type, tuple) and hasattr(record_type, '_fields'):
        names = list(getattr(record_type, '_fields'))
    else:
        names = list(hints)

    return [
        (name, hints.get(name, Any))
        for name in names
        if not name.startswith('_') and get_origin(hints.get(name)) is not ClassVar
    ]


def _unwrap(hint: Any) -> tuple[Any, list[Any], bool]:
    """Strip Annotated and Optional, returning (type, metadata, nullable)."""
    metadata: list[Any] = []
    nullable = False

    if get_origin(hint) is Annotated:
        metadata.extend(hint.__metadata__)
        hint = hint.__origin__

    if get_origin(hint) in (Union, types.UnionType):
        args = get_args(hint)
        non_null = tuple(a for a in args if a is not type(None))
        if len(non_null) < len(args):
            nullable = True
            if len(non_null) == 1:
                hint, inner_meta, _ = _unwrap(non_null[0])
                metadata.extend(inner_meta)
            else:
                hint = Union[non_null]  # noqa: UP007

    return hint, metadata, nullable


def _read_property(record_type: type, idx: int, name: str, hint: Any) -> _Property:
    value_type, metadata, nullable = _unwrap(hint)

    columns = [m for m in metadata if isinstance(m, Column)]
    if len(columns) > 1:
        raise MappingConflict('more than one Column declaration', record_type, name)
    column = columns[0] if columns else Column()

    return _Property(
        source=SourceProperty(name=name, value_type=value_type, nullable=nullable, index=idx),
        column_name=column.name or name,
        order=column.order,
        is_key=any(isinstance(m, Key) for m in metadata),
        excluded=any(isinstance(m, NotMapped) for m in metadata),
    )


# -----------------------
# -- Ordinal Resolution --
# -----------------------

def _assign_ordinals(record_type: type, props: list[_Property]) -> dict[str, int]:
    """Explicit ordinals claim relative positions of any size, the rest fill
    unclaimed positions in declaration order, then positions are compacted
    to 0..n-1.
    """
    claimed: dict[int, str] = {}

    for p in props:
        if p.order is None:
            continue

        if p.order < 0:
            raise MappingConflict(f'negative ordinal {p.order}', record_type, p.source.name)

        if p.order in claimed:
            raise MappingConflict(
                f'ordinal {p.order} is already claimed by {claimed[p.order]}',
                record_type, p.source.name,
            )

        claimed[p.order] = p.source.name

    free = (i for i in itertools.count() if i not in claimed)
    positions = {
        p.source.name: p.order if p.order is not None else next(free)
        for p in props
    }

    ranked = sorted(positions, key=positions.__getitem__)
    return {name: ordinal for ordinal, name in enumerate(ranked)}


def _check_destinations(record_type: type, props: list[_Property]):
    seen: dict[str, str] = {}
    for p in props:
        if p.column_name in seen:
            raise MappingConflict(
                f'destination column "{p.column_name}" is already mapped from {seen[p.column_name]}',
                record_type, p.source.name,
            )
        seen[p.column_name] = p.source.name
