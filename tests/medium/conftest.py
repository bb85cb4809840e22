from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import URL, Engine, create_engine, text


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "bulk.db")


@pytest.fixture
def sqlite_url(db_path: str) -> URL:
    return URL.create(drivername="sqlite", database=db_path)


@pytest.fixture
def sqlite_engine(sqlite_url: URL) -> Iterator[Engine]:
    engine = create_engine(sqlite_url)
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE Person (Id INTEGER PRIMARY KEY AUTOINCREMENT, Name TEXT)",
        ))
        conn.execute(text(
            "CREATE TABLE OrdinalAndColumnNameExample (Id INTEGER NOT NULL, Name TEXT)",
        ))
        conn.execute(text(
            "CREATE TABLE Attachment (Id INTEGER PRIMARY KEY, Body TEXT, Data BLOB)",
        ))
        conn.execute(text(
            "CREATE TABLE Ticket (Id INTEGER PRIMARY KEY, State TEXT DEFAULT 'new')",
        ))

    yield engine
    engine.dispose()
