import copy
import re
from typing import Dict, List, Optional, Tuple

import pytest


# ----------------- Fake MySQL server (pymysql-shaped) -----------------

def _idents(text: str) -> List[str]:
    return re.findall(r"`([^`]+)`", text)


class FakeMySQL:
    """
    In-memory stand-in for the handful of statements the seeder issues.
    Unknown SQL fails the test loudly.
    """

    def __init__(self):
        self.schemas: set = set()
        self.users: Dict[Tuple[str, str], str] = {}
        self.grants: List[Tuple[str, str, str, str]] = []
        self.tables: Dict[Tuple[str, str], dict] = {}
        self.statements: List[Tuple[str, tuple]] = []
        self.commits = 0
        self.rollbacks = 0
        self.connections = 0
        self.closed = 0
        self._snapshot: Optional[dict] = None

    # server-side helpers for tests
    def rows(self, db: str, table: str) -> Dict[tuple, dict]:
        return self.tables[(db, table)]["rows"]

    def connect(self, db=None):
        self.connections += 1
        return FakeConnection(self)

    # transaction handling
    def _begin_write(self):
        if self._snapshot is None:
            self._snapshot = copy.deepcopy({k: v["rows"] for k, v in self.tables.items()})

    def commit(self):
        self.commits += 1
        self._snapshot = None

    def rollback(self):
        self.rollbacks += 1
        if self._snapshot is not None:
            for k, rows in self._snapshot.items():
                if k in self.tables:
                    self.tables[k]["rows"] = rows
        self._snapshot = None

    # statement dispatch
    def execute(self, sql: str, params: tuple) -> List[tuple]:
        sql = " ".join(sql.split())
        params = tuple(params or ())
        self.statements.append((sql, params))

        if sql == "SELECT %s":
            return [(params[0],)]

        if sql.startswith("SELECT SCHEMA_NAME FROM information_schema.SCHEMATA"):
            return [(params[0],)] if params[0] in self.schemas else []

        if sql.startswith("CREATE DATABASE IF NOT EXISTS"):
            self.schemas.add(_idents(sql)[0])
            return []

        if sql.startswith("SELECT User FROM mysql.user"):
            return [(params[0],)] if (params[0], params[1]) in self.users else []

        if sql.startswith("CREATE USER IF NOT EXISTS"):
            self.users.setdefault((params[0], params[1]), params[2])
            return []

        if sql.startswith("ALTER USER"):
            self.users[(params[0], params[1])] = params[2]
            return []

        m = re.match(r"^GRANT (.+) ON (\S+) TO %s@%s$", sql)
        if m:
            self.grants.append((m.group(1), m.group(2), params[0], params[1]))
            return []

        if sql.startswith("SELECT TABLE_NAME FROM information_schema.TABLES"):
            return [(params[1],)] if (params[0], params[1]) in self.tables else []

        if sql.startswith("CREATE TABLE IF NOT EXISTS"):
            db, name = _idents(sql)[:2]
            if db not in self.schemas:
                raise RuntimeError(f"(1049, \"Unknown database '{db}'\")")
            pk = _idents(re.search(r"PRIMARY KEY \(([^)]*)\)", sql).group(1))
            self.tables.setdefault((db, name), {"pk": pk, "rows": {}})
            return []

        m = re.match(r"^SELECT (.+) FROM `([^`]+)`\.`([^`]+)` WHERE (.+)$", sql)
        if m:
            cols = _idents(m.group(1))
            row = self._table(m.group(2), m.group(3))["rows"].get(params)
            return [tuple(row.get(c) for c in cols)] if row is not None else []

        m = re.match(r"^INSERT INTO `([^`]+)`\.`([^`]+)` \((.+)\) VALUES \((.+)\)$", sql)
        if m:
            t = self._table(m.group(1), m.group(2))
            row = dict(zip(_idents(m.group(3)), params))
            key = tuple(row[k] for k in t["pk"])
            if key in t["rows"]:
                raise RuntimeError(f"(1062, \"Duplicate entry '{key}' for key 'PRIMARY'\")")
            self._begin_write()
            t["rows"][key] = row
            return []

        m = re.match(r"^UPDATE `([^`]+)`\.`([^`]+)` SET (.+) WHERE (.+)$", sql)
        if m:
            t = self._table(m.group(1), m.group(2))
            cols = _idents(m.group(3))
            key = params[len(cols):]
            self._begin_write()
            t["rows"][key].update(dict(zip(cols, params[: len(cols)])))
            return []

        raise AssertionError(f"unexpected SQL: {sql}")

    def _table(self, db, name):
        if (db, name) not in self.tables:
            raise RuntimeError(f"(1146, \"Table '{db}.{name}' doesn't exist\")")
        return self.tables[(db, name)]


class FakeCursor:
    def __init__(self, server: FakeMySQL):
        self.server = server
        self._results: List[tuple] = []

    def __enter__(self): return self
    def __exit__(self, *a): return False

    def execute(self, sql, params=None):
        self._results = list(self.server.execute(sql, params))
        return len(self._results)

    def fetchone(self):
        return self._results.pop(0) if self._results else None


class FakeConnection:
    def __init__(self, server: FakeMySQL):
        self.server = server

    def cursor(self): return FakeCursor(self.server)
    def commit(self): self.server.commit()
    def rollback(self): self.server.rollback()
    def close(self): self.server.closed += 1


@pytest.fixture
def mysql():
    return FakeMySQL()


# ----------------- Fake docker host (CommandRunner) -----------------

class FakeDockerHost:
    """
    Simulates a machine with (or without) docker, answering the argv the
    DockerCli issues. `calls` records every argv in order.
    """

    def __init__(self, installed: bool = False, daemon_up: bool = False):
        self.installed = installed
        self.daemon_up = daemon_up
        self.containers: Dict[str, str] = {}
        self.calls: List[List[str]] = []
        self.fail: Dict[tuple, Tuple[int, str]] = {}

    def run(self, argv, *, sudo=False, timeout=None):
        argv = list(argv)
        self.calls.append(argv)
        for prefix, (rc, err) in self.fail.items():
            if tuple(argv[: len(prefix)]) == prefix:
                return rc, "", err

        if argv[:2] == ["docker", "--version"]:
            return (0, "Docker version 24.0.7\n", "") if self.installed else (127, "", "docker: not found")
        if argv[:1] == ["apt-get"]:
            if "install" in argv:
                self.installed = True
            return 0, "", ""
        if argv[:3] == ["systemctl", "enable", "--now"]:
            self.daemon_up = self.installed
            return (0, "", "") if self.installed else (5, "", "Unit docker.service not found.")
        if argv[:2] == ["docker", "info"]:
            return (0, "Server Version: 24.0.7\n", "") if self.installed and self.daemon_up else (1, "", "Cannot connect")
        if argv[:2] == ["docker", "inspect"]:
            name = argv[-1]
            if name not in self.containers:
                return 1, "", f"Error: No such object: {name}\n"
            return 0, self.containers[name] + "\n", ""
        if argv[:2] == ["docker", "run"]:
            name = argv[argv.index("--name") + 1]
            self.containers[name] = "running"
            return 0, "f00dfeed\n", ""
        if argv[:2] in (["docker", "start"], ["docker", "unpause"]):
            self.containers[argv[2]] = "running"
            return 0, argv[2] + "\n", ""
        if argv[:2] == ["docker", "stop"]:
            self.containers[argv[2]] = "exited"
            return 0, argv[2] + "\n", ""
        if argv[:3] == ["docker", "rm", "-f"]:
            self.containers.pop(argv[3], None)
            return 0, argv[3] + "\n", ""
        raise AssertionError(f"unexpected command: {argv}")

    def commands(self, verb: str) -> List[List[str]]:
        return [c for c in self.calls if c[:2] == ["docker", verb]]


@pytest.fixture
def docker_host():
    return FakeDockerHost()


# ----------------- Fake clock -----------------

class FakeClock:
    """time.monotonic/time.sleep pair that only advances when slept."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
