# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/database/models.py

from __future__ import annotations

import re
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator

IDENTIFIER = re.compile(r"^[A-Za-z0-9_$]+$")
COLUMN_TYPE = re.compile(r"^[A-Za-z0-9_(), ]+$")
GRANT_TARGET = re.compile(r"^(\*|[A-Za-z0-9_$]+)\.(\*|[A-Za-z0-9_$]+)$")
PRIVILEGE = re.compile(r"^[A-Z][A-Z ]*$")


def _ident(value: str) -> str:
    if not IDENTIFIER.match(value):
        raise ValueError(f"invalid identifier '{value}' (allowed: letters, digits, _ and $)")
    return value


Identifier = Annotated[str, AfterValidator(_ident)]


class DatabaseConfig(BaseModel):
    """Connection settings for the seeded database (MySQL protocol)."""

    host: str = "127.0.0.1"
    port: int = 3306
    user: str = "root"
    password: str = ""
    connect_timeout: int = 5
    charset: str = "utf8mb4"


class SchemaSpec(BaseModel):
    name: Identifier
    charset: Optional[str] = None

    @field_validator("charset")
    @classmethod
    def _check_charset(cls, v: Optional[str]) -> Optional[str]:
        return _ident(v) if v else v


class GrantSpec(BaseModel):
    privileges: List[str] = Field(default_factory=lambda: ["ALL PRIVILEGES"])
    scope: str                                       # "db.*" or "db.table"

    @field_validator("privileges")
    @classmethod
    def _check_privileges(cls, v: List[str]) -> List[str]:
        out = [p.strip().upper() for p in v]
        for p in out:
            if not PRIVILEGE.match(p):
                raise ValueError(f"invalid privilege '{p}'")
        if not out:
            raise ValueError("grant needs at least one privilege")
        return out

    @field_validator("scope")
    @classmethod
    def _check_scope(cls, v: str) -> str:
        if not GRANT_TARGET.match(v):
            raise ValueError(f"invalid grant target '{v}' (expected 'db.*' or 'db.table')")
        return v


class RoleSpec(BaseModel):
    name: Identifier
    host: str = "%"
    password: str
    grants: List[GrantSpec] = Field(default_factory=list)


class ColumnSpec(BaseModel):
    name: Identifier
    type: str                        # e.g. "INT", "VARCHAR(255)", "DECIMAL(10,2)"
    nullable: bool = True
    auto_increment: bool = False

    @field_validator("type")
    @classmethod
    def _check_type(cls, v: str) -> str:
        if not COLUMN_TYPE.match(v):
            raise ValueError(f"invalid column type '{v}'")
        return v


class TableSpec(BaseModel):
    database: Identifier
    name: Identifier
    columns: List[ColumnSpec]
    primary_key: List[str]
    rows: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def qualified(self) -> str:
        return f"{self.database}.{self.name}"

    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @model_validator(mode="after")
    def _check_keys_and_rows(self) -> "TableSpec":
        cols = set(self.column_names())
        if len(cols) != len(self.columns):
            raise ValueError(f"table {self.qualified}: duplicate column names")
        if not self.primary_key:
            raise ValueError(f"table {self.qualified}: primary_key is required")
        missing = [k for k in self.primary_key if k not in cols]
        if missing:
            raise ValueError(f"table {self.qualified}: primary key columns not defined: {missing}")

        seen = set()
        for i, row in enumerate(self.rows):
            unknown = set(row) - cols
            if unknown:
                raise ValueError(f"table {self.qualified} row {i}: unknown columns {sorted(unknown)}")
            absent = [k for k in self.primary_key if row.get(k) is None]
            if absent:
                raise ValueError(f"table {self.qualified} row {i}: missing key columns {absent}")
            key = tuple(row[k] for k in self.primary_key)
            if key in seen:
                raise ValueError(f"table {self.qualified}: duplicate seed row key {key}")
            seen.add(key)
        return self


class SeedSpec(BaseModel):
    """
    Declarative seed: schemas, roles and sample rows.

    Applied as one idempotent unit; each object is created only if absent.
    ``conflict_policy`` decides what happens when a seed row's key already
    exists with different values:
      - skip:      keep the existing row
      - overwrite: update it to the seed values
      - error:     fail the seed step
    """

    conflict_policy: Literal["skip", "overwrite", "error"] = "skip"
    databases: List[SchemaSpec] = Field(default_factory=list)
    roles: List[RoleSpec] = Field(default_factory=list)
    tables: List[TableSpec] = Field(default_factory=list)

    def row_count(self) -> int:
        return sum(len(t.rows) for t in self.tables)
