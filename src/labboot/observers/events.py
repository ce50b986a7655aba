# src/labboot/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single bootstrap invocation
    env: str          # lab/dev/...
    host: Optional[str]  # target machine, None when local

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, host: Optional[str] = None, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "host": host,
    }


# ---------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunStarted(BaseEvent):
    steps: List[str]
    resumed: bool = False

@dataclass(frozen=True)
class PreconditionFailed(BaseEvent):
    reason: str

@dataclass(frozen=True)
class RunSummary(BaseEvent):
    outcome: str          # "success" | "failed-at-step(x)" | "timed-out(x)"
    executed: int
    skipped: int
    failed: int


# ---------------------------------------------------------------------
# Step lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class StepSkipped(BaseEvent):
    name: str
    reason: str

@dataclass(frozen=True)
class StepStarted(BaseEvent):
    name: str
    terminal: bool

@dataclass(frozen=True)
class ReadinessPolled(BaseEvent):
    name: str
    attempt: int
    ready: bool

@dataclass(frozen=True)
class StepSucceeded(BaseEvent):
    name: str
    attempts: int
    duration_ms: int

@dataclass(frozen=True)
class StepFailed(BaseEvent):
    name: str
    error: str
    terminal: bool

@dataclass(frozen=True)
class StepTimedOut(BaseEvent):
    name: str
    attempts: int
    timeout_s: float
    terminal: bool
