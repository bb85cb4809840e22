from __future__ import annotations

import copy
from dataclasses import field
from pathlib import Path
from typing import Any, dataclass_transform

import yaml
from pydantic import Field, PrivateAttr, TypeAdapter
from pydantic.dataclasses import dataclass as pydantic_dataclass

from lib_bulk.transports.bulk_copy import BulkCopyOptions


@dataclass_transform(field_specifiers=(field, Field, PrivateAttr))
def config(
    *,
    frozen: bool = False,
    allow_extra: bool = False,
):
    def _inner(cls: Any):
        return pydantic_dataclass(
            cls,
            frozen=frozen,
            config={
                'extra': 'ignore' if allow_extra else 'forbid',
            },
        )
    return _inner


@config()
class DBConfig:
    """
    Connection parameters for the destination database.
    Used when the writer owns its engine rather than
    borrowing a caller's engine or connection.
    """
    drivername: str = 'postgresql+psycopg2'
    username: str = 'postgres'
    password: str = 'password'
    ip: str = 'localhost'
    port: int = 5432
    db_name: str = 'postgres'


@config()
class BulkWriterConfig:
    db: DBConfig = Field(default_factory=DBConfig)

    # rows per round trip, 0 sends fixed streaming chunks of 1000 rows
    batch_size: int = Field(default=0, ge=0)
    # seconds, 0 disables the timeout
    timeout: float = Field(default=0, ge=0)
    notify_after: int = Field(default=0, ge=0)

    table_lock: bool = True
    # None infers identity preservation from Key() markers
    keep_identity: bool | None = None
    keep_nulls: bool = False
    use_internal_transaction: bool = False

    def copy_options(self, has_keys: bool) -> BulkCopyOptions:
        keep_identity = has_keys if self.keep_identity is None else self.keep_identity

        opts = BulkCopyOptions.DEFAULT
        if keep_identity:
            opts |= BulkCopyOptions.KEEP_IDENTITY
        if self.table_lock:
            opts |= BulkCopyOptions.TABLE_LOCK
        if self.keep_nulls:
            opts |= BulkCopyOptions.KEEP_NULLS
        if self.use_internal_transaction:
            opts |= BulkCopyOptions.USE_INTERNAL_TRANSACTION
        return opts


# ----------------
# -- Public API --
# ----------------

def set_at_path(d: dict[str, Any], path: str, val: Any) -> dict[str, Any]:
    parts = path.split('.')

    sub = d
    for part in parts[:-1]:
        sub = sub.setdefault(part, {})

    sub[parts[-1]] = val
    return d


def config_from_dict[T](Config: type[T], raw_config: dict[str, Any], overrides: dict[str, Any] | None = None) -> T:
    raw_config = copy.deepcopy(raw_config)
    for key, value in (overrides or {}).items():
        set_at_path(raw_config, key, value)

    # raise on extra values not in schema
    ta = TypeAdapter(Config)
    return ta.validate_python(raw_config)


def load_config[T](Config: type[T], path: str | Path, overrides: dict[str, Any] | None = None) -> T:
    with open(path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    return config_from_dict(Config, raw_config, overrides)
