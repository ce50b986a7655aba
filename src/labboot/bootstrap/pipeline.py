# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/bootstrap/pipeline.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

import yaml

from ..config.loader import ConfigError
from ..config.models import BootstrapConfig
from ..database.client import connect as db_connect, database_ready
from ..database.models import DatabaseConfig
from ..database.seed import apply_seed
from ..database.verify import verify_seed
from ..runtime.docker import DockerCli
from ..utils.shell import CommandRunner
from .models import BootstrapStep, RetryPolicy, utcnow_iso

log = logging.getLogger("labboot")

INSTALL_RUNTIME = "install-runtime"
START_DATABASE = "start-database"
SEED_DATA = "seed-data"
VERIFY_SEED = "verify-seed"
PUBLISH_ENDPOINT = "publish-endpoint"

STEP_ORDER = [INSTALL_RUNTIME, START_DATABASE, SEED_DATA, VERIFY_SEED, PUBLISH_ENDPOINT]

DEFAULT_RETRY: Dict[str, RetryPolicy] = {
    INSTALL_RUNTIME: RetryPolicy(interval_seconds=2, max_elapsed_seconds=60),
    # first start of a database image initializes the data dir; give it room
    START_DATABASE: RetryPolicy(
        interval_seconds=2,
        backoff="exponential",
        max_interval_seconds=15,
        max_elapsed_seconds=300,
    ),
}

DEFAULT_TERMINAL: Dict[str, bool] = {
    INSTALL_RUNTIME: True,
    START_DATABASE: True,
    SEED_DATA: True,
    VERIFY_SEED: True,
    PUBLISH_ENDPOINT: False,
}

Connect = Callable[[DatabaseConfig], object]


def _with_connection(connect: Connect, db: DatabaseConfig, fn: Callable[[object], object]) -> object:
    conn = connect(db)
    try:
        return fn(conn)
    finally:
        conn.close()


def publish_endpoint(cfg: BootstrapConfig, path: Optional[Path] = None) -> Path:
    """Write where and what the seeded database is, for later validation steps."""
    path = Path(path or cfg.endpoint_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    doc = {
        "environment": cfg.environment,
        "engine_image": cfg.container.image,
        "container": cfg.container.name,
        "host": cfg.database.host,
        "port": cfg.database.port,
        "databases": [d.name for d in cfg.seed.databases],
        "roles": [f"{r.name}@{r.host}" for r in cfg.seed.roles],
        "seed_rows": cfg.seed.row_count(),
        "published_at": utcnow_iso(),
    }
    path.write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
    log.info("endpoint published to %s", path)
    return path


def build_steps(
    cfg: BootstrapConfig,
    runner: CommandRunner,
    *,
    connect: Optional[Connect] = None,
    docker: Optional[DockerCli] = None,
) -> List[BootstrapStep]:
    """
    The fixed bootstrap pipeline, in execution order.

    Steps can be switched off or re-tuned from the `steps:` section of the
    config, never reordered.
    """
    unknown = set(cfg.steps) - set(STEP_ORDER)
    if unknown:
        raise ConfigError(
            f"unknown step override(s): {', '.join(sorted(unknown))} "
            f"(valid: {', '.join(STEP_ORDER)})"
        )

    connect = connect or db_connect
    docker = docker or DockerCli(runner, cfg.runtime)

    candidates = [
        BootstrapStep(
            name=INSTALL_RUNTIME,
            action=docker.install,
            readiness=docker.info_ok,
            description=f"install {cfg.runtime.binary} and start its daemon",
        ),
        BootstrapStep(
            name=START_DATABASE,
            action=lambda: docker.ensure_running(cfg.container),
            readiness=lambda: database_ready(cfg.database, connect),
            description=f"run {cfg.container.image} as '{cfg.container.name}' and wait for connections",
        ),
        BootstrapStep(
            name=SEED_DATA,
            action=lambda: _with_connection(connect, cfg.database, lambda c: apply_seed(c, cfg.seed)),
            description=f"apply seed ({cfg.seed.row_count()} rows, policy={cfg.seed.conflict_policy})",
        ),
        BootstrapStep(
            name=VERIFY_SEED,
            action=lambda: _with_connection(connect, cfg.database, lambda c: verify_seed(c, cfg.seed)),
            description="check seeded objects and rows are present",
        ),
        BootstrapStep(
            name=PUBLISH_ENDPOINT,
            action=lambda: publish_endpoint(cfg),
            description=f"write {cfg.endpoint_path}",
        ),
    ]

    steps: List[BootstrapStep] = []
    for step in candidates:
        ov = cfg.override(step.name)
        if not ov.enabled:
            log.debug("step %s disabled by config", step.name)
            continue
        step.terminal = ov.terminal if ov.terminal is not None else DEFAULT_TERMINAL[step.name]
        step.retry = ov.retry or DEFAULT_RETRY.get(step.name, RetryPolicy())
        steps.append(step)
    return steps
