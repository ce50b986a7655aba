# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/bootstrap/marker.py
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import yaml

from .errors import PreconditionViolation
from .models import RunState

log = logging.getLogger("labboot")

DEFAULT_MARKER_PATH = Path("/var/lib/labboot/state.yaml")


class MarkerStore:
    """
    Durable bootstrap marker.

    A small YAML document, one entry per step plus the last run outcome,
    readable with `cat` when debugging a machine. Writes are atomic
    (tempfile + os.replace) so an interrupted save never leaves a torn file.
    """

    def __init__(self, path: str | Path = DEFAULT_MARKER_PATH):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> RunState:
        if not self.path.is_file():
            log.debug("No marker at %s, starting fresh", self.path)
            return RunState()

        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
            if not isinstance(data, dict):
                raise ValueError(f"expected a mapping, got {type(data).__name__}")
            return RunState.from_dict(data)
        except (yaml.YAMLError, ValueError, KeyError, TypeError) as e:
            # a corrupt marker is never treated as empty
            raise PreconditionViolation(
                f"bootstrap marker {self.path} is unreadable: {e}"
            ) from e

    def save(self, state: RunState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write("# labboot bootstrap marker - safe to read, edit with `labboot reset`\n")
                yaml.safe_dump(state.to_dict(), f, sort_keys=False, default_flow_style=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        log.debug("Saved marker to %s (outcome=%s)", self.path, state.describe())

    def clear(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        log.info("Removed marker %s", self.path)
        return True
