# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/bootstrap/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Literal, Optional

from pydantic import BaseModel, Field, model_validator


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class RetryPolicy(BaseModel):
    """
    Readiness polling budget for a step.

    The run is bounded by ``max_elapsed_seconds``; ``max_attempts`` adds an
    optional cap on the number of polls.
    """

    max_attempts: Optional[int] = Field(default=None, ge=1)
    interval_seconds: float = Field(default=5.0, gt=0)
    backoff: Literal["fixed", "exponential"] = "fixed"
    multiplier: float = Field(default=2.0, ge=1.0)
    max_interval_seconds: float = Field(default=30.0, gt=0)
    max_elapsed_seconds: float = Field(default=300.0, gt=0)

    @model_validator(mode="after")
    def _check_interval_cap(self) -> "RetryPolicy":
        if self.max_interval_seconds < self.interval_seconds:
            raise ValueError("max_interval_seconds must be >= interval_seconds")
        return self

    def delays(self) -> Iterator[float]:
        """Yield successive sleep intervals between polls."""
        delay = self.interval_seconds
        while True:
            yield delay
            if self.backoff == "exponential":
                delay = min(delay * self.multiplier, self.max_interval_seconds)


@dataclass
class BootstrapStep:
    name: str
    action: Callable[[], Any]
    readiness: Optional[Callable[[], bool]] = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    terminal: bool = True
    description: str = ""


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class Outcome(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED_AT_STEP = "failed-at-step"
    TIMED_OUT = "timed-out"
    PRECONDITION_FAILED = "precondition-failed"


@dataclass
class StepRecord:
    name: str
    status: StepStatus
    completed_at: str
    attempts: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "status": self.status.value,
            "completed_at": self.completed_at,
            "attempts": self.attempts,
            "duration_seconds": self.duration_seconds,
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "StepRecord":
        return cls(
            name=name,
            status=StepStatus(data["status"]),
            completed_at=str(data.get("completed_at", "")),
            attempts=int(data.get("attempts", 0)),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            error=data.get("error"),
        )


@dataclass
class RunState:
    """
    Record of bootstrap progress on this machine.

    Persisted by MarkerStore after every step so a re-run can skip
    completed steps and retry only the one that failed.
    """

    steps: Dict[str, StepRecord] = field(default_factory=dict)
    outcome: Optional[Outcome] = None
    failed_step: Optional[str] = None
    run_id: Optional[str] = None
    pid: Optional[int] = None
    boot_id: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def is_complete(self, name: str) -> bool:
        rec = self.steps.get(name)
        return rec is not None and rec.status == StepStatus.COMPLETED

    def completed_steps(self) -> list[str]:
        return [n for n, r in self.steps.items() if r.status == StepStatus.COMPLETED]

    def record(
        self,
        name: str,
        status: StepStatus,
        *,
        attempts: int = 0,
        duration_seconds: float = 0.0,
        error: Optional[str] = None,
    ) -> StepRecord:
        # re-insert so dict order follows the most recent execution order
        self.steps.pop(name, None)
        rec = StepRecord(
            name=name,
            status=status,
            completed_at=utcnow_iso(),
            attempts=attempts,
            duration_seconds=round(duration_seconds, 2),
            error=error,
        )
        self.steps[name] = rec
        return rec

    def forget(self, name: str) -> bool:
        return self.steps.pop(name, None) is not None

    def describe(self) -> str:
        if self.outcome is None:
            return "not-started"
        if self.outcome in (Outcome.FAILED_AT_STEP, Outcome.TIMED_OUT) and self.failed_step:
            return f"{self.outcome.value}({self.failed_step})"
        return self.outcome.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value if self.outcome else None,
            "failed_step": self.failed_step,
            "run_id": self.run_id,
            "pid": self.pid,
            "boot_id": self.boot_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "steps": {name: rec.to_dict() for name, rec in self.steps.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunState":
        outcome = data.get("outcome")
        return cls(
            steps={
                name: StepRecord.from_dict(name, rec)
                for name, rec in (data.get("steps") or {}).items()
            },
            outcome=Outcome(outcome) if outcome else None,
            failed_step=data.get("failed_step"),
            run_id=data.get("run_id"),
            pid=data.get("pid"),
            boot_id=data.get("boot_id"),
            started_at=data.get("started_at"),
            finished_at=data.get("finished_at"),
        )
