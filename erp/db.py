from __future__ import annotations

import itertools
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator

import streamlit as st

from erp.schema import SCHEMA_SQL

_savepoint_ids = itertools.count(1)


def connect(db_path: Path | str) -> sqlite3.Connection:
    # Autocommit mode: every transaction is opened explicitly through transaction().
    conn = sqlite3.connect(str(db_path), check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@st.cache_resource
def get_conn(db_path: Path) -> sqlite3.Connection:
    return connect(db_path)


def ensure_schema(conn: sqlite3.Connection) -> None:
    # CREATE ... IF NOT EXISTS throughout, safe to run on every page load
    conn.executescript(SCHEMA_SQL)


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    BEGIN/COMMIT around the block, ROLLBACK when it raises.

    When a transaction is already open the block runs inside a SAVEPOINT instead,
    so a failing inner block only undoes its own writes.
    """
    if conn.in_transaction:
        name = f"sp_{next(_savepoint_ids)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
                conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        conn.execute(f"RELEASE SAVEPOINT {name}")
        return

    conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def q(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
    cur = conn.execute(sql, tuple(params or ()))
    rows = cur.fetchall()
    cur.close()
    return rows


def q1(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> sqlite3.Row | None:
    rows = q(conn, sql, params)
    return rows[0] if rows else None


def x(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> int:
    cur = conn.execute(sql, tuple(params or ()))
    last = cur.lastrowid
    cur.close()
    return int(last) if last is not None else 0


def x_count(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> int:
    cur = conn.execute(sql, tuple(params or ()))
    n = cur.rowcount
    cur.close()
    return int(n)
