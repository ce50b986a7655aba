# src/labboot/database/verify.py

from __future__ import annotations

import logging
from typing import List

from .models import SeedSpec
from .seed import fetch_row, key_of, role_exists, same_value, schema_exists, table_exists

log = logging.getLogger("labboot")


class SeedVerificationError(RuntimeError):
    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("seed verification failed:\n  - " + "\n  - ".join(problems))


def verify_seed(conn, spec: SeedSpec) -> int:
    """
    Check that everything *spec* declares is present on the server.

    Returns the number of seed rows found. With conflict_policy 'skip' a
    row only has to exist by key; otherwise its values must match too.
    """
    problems: List[str] = []
    found = 0
    check_values = spec.conflict_policy != "skip"

    with conn.cursor() as cur:
        for schema in spec.databases:
            if not schema_exists(cur, schema.name):
                problems.append(f"database {schema.name} missing")

        for role in spec.roles:
            if not role_exists(cur, role.name, role.host):
                problems.append(f"role {role.name}@{role.host} missing")

        for table in spec.tables:
            if not table_exists(cur, table.database, table.name):
                problems.append(f"table {table.qualified} missing")
                continue
            for row in table.rows:
                key = key_of(table, row)
                columns = list(row)
                existing = fetch_row(cur, table, key, columns)
                if existing is None:
                    problems.append(f"{table.qualified} row {key} missing")
                    continue
                if check_values:
                    diff = [c for c, v in zip(columns, existing) if not same_value(row[c], v)]
                    if diff:
                        problems.append(f"{table.qualified} row {key} differs in {diff}")
                        continue
                found += 1

    if problems:
        raise SeedVerificationError(problems)

    log.info("seed verified: %d/%d rows present", found, spec.row_count())
    return found
