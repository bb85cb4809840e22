from sqlalchemy import Engine

from lib_bulk.inspection import (
    defaulted_columns,
    identity_column,
    reflect_table,
    split_table_name,
    table_count,
    table_exists,
)


def test_split_table_name():
    assert split_table_name('Person') == (None, 'Person')
    assert split_table_name('dbo.Person') == ('dbo', 'Person')
    assert split_table_name('warehouse.dbo.Person') == ('warehouse.dbo', 'Person')


def test_table_exists(sqlite_engine: Engine):
    assert table_exists(sqlite_engine, 'Person')
    assert table_exists(sqlite_engine, 'Person', schema='main')
    assert not table_exists(sqlite_engine, 'Nowhere')


def test_identity_column(sqlite_engine: Engine):
    person = reflect_table(sqlite_engine, 'Person')
    identity = identity_column(person)
    assert identity is not None
    assert identity.name == 'Id'

    no_key = reflect_table(sqlite_engine, 'OrdinalAndColumnNameExample')
    assert identity_column(no_key) is None


def test_defaulted_columns(sqlite_engine: Engine):
    assert defaulted_columns(reflect_table(sqlite_engine, 'Ticket')) == {'State'}
    assert defaulted_columns(reflect_table(sqlite_engine, 'Person')) == set()


def test_table_count_on_engine_and_connection(sqlite_engine: Engine):
    assert table_count(sqlite_engine, 'Person') == 0

    with sqlite_engine.begin() as conn:
        conn.exec_driver_sql("INSERT INTO Person (Name) VALUES ('a'), ('b')")
        assert table_count(conn, 'Person') == 2

    assert table_count(sqlite_engine, 'Person') == 2
