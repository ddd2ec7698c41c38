"""
Integration test fixtures — PostgreSQL testcontainer and schema setup.

Provides a real PostgreSQL instance for each test session via testcontainers.
Creates the subset of the Traffic Ops schema this service reads and writes.
Each test gets a fresh, clean database via truncation and seeded types.
"""

from __future__ import annotations

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

DDL = """
CREATE TABLE cdn (
    id           BIGSERIAL PRIMARY KEY,
    name         TEXT NOT NULL UNIQUE,
    domain_name  TEXT NOT NULL
);

CREATE TABLE type (
    id    BIGSERIAL PRIMARY KEY,
    name  TEXT NOT NULL UNIQUE
);

CREATE TABLE deliveryservice (
    id            BIGSERIAL PRIMARY KEY,
    xml_id        TEXT NOT NULL UNIQUE,
    cdn_id        BIGINT NOT NULL REFERENCES cdn(id),
    type          BIGINT NOT NULL REFERENCES type(id),
    protocol      SMALLINT,
    routing_name  TEXT NOT NULL DEFAULT 'cdn'
);

CREATE TABLE regex (
    id       BIGSERIAL PRIMARY KEY,
    pattern  TEXT NOT NULL,
    type     BIGINT NOT NULL REFERENCES type(id)
);

CREATE TABLE deliveryservice_regex (
    deliveryservice  BIGINT NOT NULL REFERENCES deliveryservice(id),
    regex            BIGINT NOT NULL REFERENCES regex(id),
    set_number       INTEGER DEFAULT 0
);

CREATE TABLE tm_user (
    id        BIGSERIAL PRIMARY KEY,
    username  TEXT NOT NULL UNIQUE
);

CREATE TABLE log (
    id          BIGSERIAL PRIMARY KEY,
    level       TEXT,
    message     TEXT NOT NULL,
    tm_user     BIGINT REFERENCES tm_user(id),
    last_updated TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);
"""

TRUNCATE_ALL = """
TRUNCATE log, tm_user, deliveryservice_regex, regex, deliveryservice, type, cdn
RESTART IDENTITY CASCADE;
"""

TYPES = ("HTTP", "DNS", "ANY_MAP", "HOST_REGEXP", "PATH_REGEXP", "BOGUS")


@pytest.fixture(scope="session")
def postgres_container() -> PostgresContainer:
    """Start a PostgreSQL container for the entire test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        dsn = pg.get_connection_url().replace("postgresql+psycopg2", "postgresql")
        with psycopg.connect(dsn) as conn:
            conn.execute(DDL)
            conn.commit()
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN over a truncated database with the types seeded."""
    connection_url = postgres_container.get_connection_url().replace(
        "postgresql+psycopg2", "postgresql"
    )
    with psycopg.connect(connection_url) as conn:
        conn.execute(TRUNCATE_ALL)
        with conn.cursor() as cur:
            cur.executemany("INSERT INTO type (name) VALUES (%s)", [(t,) for t in TYPES])
        conn.commit()
    return connection_url


def type_id(conn: psycopg.Connection, name: str) -> int:
    row = conn.execute("SELECT id FROM type WHERE name = %s", (name,)).fetchone()
    assert row is not None
    return row[0]


def add_cdn(conn: psycopg.Connection, name: str, domain: str) -> int:
    row = conn.execute(
        "INSERT INTO cdn (name, domain_name) VALUES (%s, %s) RETURNING id", (name, domain)
    ).fetchone()
    assert row is not None
    return row[0]


def add_delivery_service(
    conn: psycopg.Connection,
    xml_id: str,
    cdn_id: int,
    type_name: str = "HTTP",
    protocol: int | None = 0,
    routing_name: str = "cdn",
) -> int:
    row = conn.execute(
        "INSERT INTO deliveryservice (xml_id, cdn_id, type, protocol, routing_name)"
        " VALUES (%s, %s, %s, %s, %s) RETURNING id",
        (xml_id, cdn_id, type_id(conn, type_name), protocol, routing_name),
    ).fetchone()
    assert row is not None
    return row[0]


def add_regex(
    conn: psycopg.Connection,
    ds_id: int,
    pattern: str,
    type_name: str = "HOST_REGEXP",
    set_number: int = 0,
) -> None:
    row = conn.execute(
        "INSERT INTO regex (pattern, type) VALUES (%s, %s) RETURNING id",
        (pattern, type_id(conn, type_name)),
    ).fetchone()
    assert row is not None
    conn.execute(
        "INSERT INTO deliveryservice_regex (deliveryservice, regex, set_number)"
        " VALUES (%s, %s, %s)",
        (ds_id, row[0], set_number),
    )
