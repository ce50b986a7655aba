# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/database/seed.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import ColumnSpec, RoleSpec, SchemaSpec, SeedSpec, TableSpec

log = logging.getLogger("labboot")


class SeedConflict(RuntimeError):
    """A seed row's key exists with different values and conflict_policy is 'error'."""


@dataclass
class SeedReport:
    databases_created: int = 0
    roles_created: int = 0
    tables_created: int = 0
    rows_inserted: int = 0
    rows_updated: int = 0
    rows_unchanged: int = 0
    rows_kept: int = 0               # conflicting rows left as found (policy=skip)
    conflicts: List[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"databases+{self.databases_created} roles+{self.roles_created} "
            f"tables+{self.tables_created} rows: inserted={self.rows_inserted} "
            f"updated={self.rows_updated} unchanged={self.rows_unchanged} kept={self.rows_kept}"
        )


# ---------------------------------------------------------------------
# SQL helpers (identifiers are validated by the models, values are bound)
# ---------------------------------------------------------------------
def q(name: str) -> str:
    return f"`{name}`"


def qualified(table: TableSpec) -> str:
    return f"{q(table.database)}.{q(table.name)}"


def key_where(table: TableSpec) -> str:
    return " AND ".join(f"{q(k)} = %s" for k in table.primary_key)


def key_of(table: TableSpec, row: Dict[str, Any]) -> Tuple[Any, ...]:
    return tuple(row[k] for k in table.primary_key)


def schema_exists(cur, name: str) -> bool:
    cur.execute(
        "SELECT SCHEMA_NAME FROM information_schema.SCHEMATA WHERE SCHEMA_NAME = %s",
        (name,),
    )
    return cur.fetchone() is not None


def table_exists(cur, database: str, name: str) -> bool:
    cur.execute(
        "SELECT TABLE_NAME FROM information_schema.TABLES WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s",
        (database, name),
    )
    return cur.fetchone() is not None


def role_exists(cur, name: str, host: str) -> bool:
    cur.execute("SELECT User FROM mysql.user WHERE User = %s AND Host = %s", (name, host))
    return cur.fetchone() is not None


def fetch_row(cur, table: TableSpec, key: Sequence[Any], columns: Sequence[str]) -> Optional[Tuple[Any, ...]]:
    cols = ", ".join(q(c) for c in columns)
    cur.execute(f"SELECT {cols} FROM {qualified(table)} WHERE {key_where(table)}", tuple(key))
    return cur.fetchone()


def same_value(expected: Any, actual: Any) -> bool:
    """Compare a YAML seed value with what the driver returned."""
    if expected is None or actual is None:
        return expected is actual
    if isinstance(expected, bool) or isinstance(actual, bool):
        return int(expected) == int(actual)
    if isinstance(expected, (int, float, Decimal)) and isinstance(actual, (int, float, Decimal)):
        try:
            return Decimal(str(expected)) == Decimal(str(actual))
        except InvalidOperation:
            return False
    if isinstance(actual, bytes):
        actual = actual.decode("utf-8", "replace")
    if type(expected) is type(actual):
        return expected == actual
    return str(expected) == str(actual)


def _column_ddl(col: ColumnSpec) -> str:
    parts = [q(col.name), col.type]
    parts.append("NULL" if col.nullable and not col.auto_increment else "NOT NULL")
    if col.auto_increment:
        parts.append("AUTO_INCREMENT")
    return " ".join(parts)


def create_table_sql(table: TableSpec) -> str:
    body = [_column_ddl(c) for c in table.columns]
    body.append(f"PRIMARY KEY ({', '.join(q(k) for k in table.primary_key)})")
    return f"CREATE TABLE IF NOT EXISTS {qualified(table)} (\n  " + ",\n  ".join(body) + "\n)"


# ---------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------
def _ensure_database(cur, schema: SchemaSpec, report: SeedReport) -> None:
    if schema_exists(cur, schema.name):
        log.debug("database %s exists", schema.name)
        return
    sql = f"CREATE DATABASE IF NOT EXISTS {q(schema.name)}"
    if schema.charset:
        sql += f" CHARACTER SET {schema.charset}"
    cur.execute(sql)
    report.databases_created += 1
    log.info("created database %s", schema.name)


def _ensure_role(cur, role: RoleSpec, policy: str, report: SeedReport) -> None:
    if role_exists(cur, role.name, role.host):
        if policy == "overwrite":
            cur.execute("ALTER USER %s@%s IDENTIFIED BY %s", (role.name, role.host, role.password))
            log.info("reset password for role %s@%s", role.name, role.host)
    else:
        cur.execute(
            "CREATE USER IF NOT EXISTS %s@%s IDENTIFIED BY %s",
            (role.name, role.host, role.password),
        )
        report.roles_created += 1
        log.info("created role %s@%s", role.name, role.host)

    # GRANT is additive and safe to repeat
    for grant in role.grants:
        db, _, obj = grant.scope.partition(".")
        target = ".".join("*" if p == "*" else q(p) for p in (db, obj))
        cur.execute(
            f"GRANT {', '.join(grant.privileges)} ON {target} TO %s@%s",
            (role.name, role.host),
        )


def _ensure_table(cur, table: TableSpec, report: SeedReport) -> None:
    if table_exists(cur, table.database, table.name):
        log.debug("table %s exists", table.qualified)
        return
    cur.execute(create_table_sql(table))
    report.tables_created += 1
    log.info("created table %s", table.qualified)


def _apply_rows(cur, table: TableSpec, policy: str, report: SeedReport) -> None:
    for row in table.rows:
        key = key_of(table, row)
        columns = list(row)
        existing = fetch_row(cur, table, key, columns)

        if existing is None:
            placeholders = ", ".join(["%s"] * len(columns))
            cur.execute(
                f"INSERT INTO {qualified(table)} ({', '.join(q(c) for c in columns)}) VALUES ({placeholders})",
                tuple(row[c] for c in columns),
            )
            report.rows_inserted += 1
            continue

        changed = [c for c, actual in zip(columns, existing) if not same_value(row[c], actual)]
        if not changed:
            report.rows_unchanged += 1
            continue

        where = f"{table.qualified} key={key}"
        if policy == "error":
            raise SeedConflict(f"{where}: existing row differs in {changed}")
        if policy == "skip":
            report.rows_kept += 1
            report.conflicts.append(where)
            log.warning("%s already present with different %s; keeping existing row", where, changed)
            continue

        assignments = ", ".join(f"{q(c)} = %s" for c in changed)
        cur.execute(
            f"UPDATE {qualified(table)} SET {assignments} WHERE {key_where(table)}",
            tuple(row[c] for c in changed) + tuple(key),
        )
        report.rows_updated += 1


def apply_seed(conn, spec: SeedSpec) -> SeedReport:
    """
    Apply *spec* with existence checks on every object.

    Databases, roles and tables are created only when absent; rows are
    inserted when their primary key is absent and otherwise handled per
    ``spec.conflict_policy``. Running it again against the same server is
    a no-op. DDL commits implicitly in MySQL, row changes commit once at
    the end and roll back on error.
    """
    report = SeedReport()
    try:
        with conn.cursor() as cur:
            for schema in spec.databases:
                _ensure_database(cur, schema, report)
            for role in spec.roles:
                _ensure_role(cur, role, spec.conflict_policy, report)
            for table in spec.tables:
                _ensure_table(cur, table, report)
                _apply_rows(cur, table, spec.conflict_policy, report)
        conn.commit()
    except Exception:
        conn.rollback()
        raise

    log.info("seed applied: %s", report.summary())
    return report
