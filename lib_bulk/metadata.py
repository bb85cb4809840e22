"""Declarative mapping metadata for record types.

Per-property metadata rides along in ``typing.Annotated``:

```python
@table('people', schema='dbo')
@dataclass
class Person:
    id: Annotated[int, Key(), Column('Id', order=0)]
    name: str
    full_name: Annotated[str, NotMapped()] = ''
```

Anything not declared falls back to the defaults: the property name is the
column name, the ordinal follows declaration order, the property is mapped
and it is not a key.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

_TABLE_ATTR = '__bulk_table__'


@dataclass(frozen=True)
class Column:
    name: str | None = None
    order: int | None = None


@dataclass(frozen=True)
class Key:
    pass


@dataclass(frozen=True)
class NotMapped:
    pass


@dataclass(frozen=True)
class TableInfo:
    name: str
    schema: str | None = None

    @property
    def qualified_name(self):
        return f'{self.schema}.{self.name}' if self.schema else self.name


def table(name: str | None = None, schema: str | None = None):
    """Class decorator declaring the destination table of a record type."""
    def _inner[C: type](cls: C) -> C:
        setattr(cls, _TABLE_ATTR, TableInfo(name=name or cls.__name__, schema=schema))
        return cls
    return _inner


def table_info(record_type: type) -> TableInfo:
    declared = getattr(record_type, _TABLE_ATTR, None)
    if isinstance(declared, TableInfo):
        return declared

    # fall back on the sqlalchemy declarative spelling
    name: Any = getattr(record_type, '__tablename__', None)
    table_args: Any = getattr(record_type, '__table_args__', None)
    schema = None
    if isinstance(table_args, dict):
        schema = table_args.get('schema')
    elif isinstance(table_args, tuple) and table_args and isinstance(table_args[-1], dict):
        schema = table_args[-1].get('schema')

    return TableInfo(
        name=name if isinstance(name, str) else record_type.__name__,
        schema=schema,
    )


def destination_table(record_type: type) -> str:
    return table_info(record_type).qualified_name
