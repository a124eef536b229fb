from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def load_json(value: Any, default: Any) -> Any:
    """Decode a JSON column; mysql-connector hands back str or bytes."""

    if value is None or value == "":
        return default
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value


def table_counts(conn_factory: DatabaseConnection, tables: Iterable[str]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    with db_cursor(conn_factory) as (_, cur):
        for table in tables:
            cur.execute(f"SELECT COUNT(*) AS n FROM `{table}`")
            row = fetchone(cur)
            counts[table] = int(row["n"]) if row else 0
    return counts
