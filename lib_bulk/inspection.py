import logging

from sqlalchemy import Column, Connection, Engine, MetaData, Table, func, inspect, select

logger = logging.getLogger(__name__)


def split_table_name(qualified_name: str) -> tuple[str | None, str]:
    schema, sep, name = qualified_name.rpartition('.')
    if not sep:
        return None, qualified_name
    return schema, name


def table_exists(bind: Engine | Connection, table_name: str, schema: str | None = None) -> bool:
    iengine = inspect(bind)
    return iengine.has_table(table_name, schema=schema)


def reflect_table(bind: Engine | Connection, table_name: str, schema: str | None = None) -> Table:
    logger.debug("reflecting %s", f"{schema}.{table_name}" if schema else table_name)
    return Table(table_name, MetaData(), schema=schema, autoload_with=bind)


def identity_column(table: Table) -> Column | None:
    """The column whose values the destination generates, if any."""
    return table.autoincrement_column


def defaulted_columns(table: Table) -> set[str]:
    return {
        col.name for col in table.columns
        if col.server_default is not None
    }


def table_count(bind: Engine | Connection, table_name: str, schema: str | None = None) -> int:
    table = reflect_table(bind, table_name, schema)
    query = select(func.count()).select_from(table)

    if isinstance(bind, Engine):
        with bind.connect() as conn:
            result = conn.execute(query).scalar()
    else:
        result = bind.execute(query).scalar()

    return int(result) if result is not None else 0
