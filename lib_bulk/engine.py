import logging
import time
from typing import Protocol

import sqlalchemy
from sqlalchemy import URL, Engine

logger = logging.getLogger(__name__)

class SQLEngineConfigProtocol(Protocol):
    drivername: str
    username: str
    password: str
    ip: str
    port: int
    db_name: str


def make_url(destination: str | URL) -> URL:
    if isinstance(destination, URL):
        return destination
    return sqlalchemy.make_url(destination)


def try_create_engine(url_object: str | URL, backoff_seconds: float = 5, max_tries: int = 5) -> Engine:
    url_object = make_url(url_object)
    engine: Engine | None = None
    tries = 0
    while engine is None:
        if tries >= max_tries:
            raise Exception("sql engine creation failed")
        candidate: Engine | None = None
        try:
            candidate = sqlalchemy.create_engine(url_object, pool_recycle=280, pool_pre_ping=True)
            # create_engine is lazy, connect once so unreachable servers are retried
            with candidate.connect():
                pass
            engine = candidate
        except Exception:
            if candidate is not None:
                candidate.dispose()
            logger.warning(
                "failed to create sql engine, retrying in %s seconds...", backoff_seconds,
            )
            time.sleep(backoff_seconds)
        tries += 1
    return engine


def get_sql_engine(
    db_data: SQLEngineConfigProtocol,
    backoff_seconds: float = 5, max_tries: int = 5,
) -> Engine:
    url_object = sqlalchemy.URL.create(
        drivername=db_data.drivername,
        username=db_data.username or None,
        password=db_data.password or None,
        host=db_data.ip or None,
        port=db_data.port or None,
        database=db_data.db_name,
    )
    logger.debug("creating sql engine...")
    return try_create_engine(url_object=url_object, backoff_seconds=backoff_seconds, max_tries=max_tries)
