# src/labboot/database/client.py

from __future__ import annotations

import logging
from typing import Callable, Optional

import pymysql

from .models import DatabaseConfig

log = logging.getLogger("labboot")

READY_MARKER = 1


def connect(db: DatabaseConfig) -> pymysql.connections.Connection:
    return pymysql.connect(
        host=db.host,
        port=db.port,
        user=db.user,
        password=db.password,
        connect_timeout=db.connect_timeout,
        charset=db.charset,
        autocommit=False,
    )


def database_ready(
    db: DatabaseConfig,
    connect_fn: Optional[Callable[[DatabaseConfig], object]] = None,
) -> bool:
    """
    Readiness predicate: the server accepts a connection and answers
    `SELECT 1` with the ready marker.

    A container whose port is open but whose server is still initializing
    refuses the login or drops the connection, which raises here.
    """
    conn = (connect_fn or connect)(db)
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT %s", (READY_MARKER,))
            row = cur.fetchone()
    finally:
        conn.close()
    ok = bool(row) and row[0] == READY_MARKER
    if not ok:
        log.debug("database at %s:%s answered %r", db.host, db.port, row)
    return ok
