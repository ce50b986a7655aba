# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/bootstrap/orchestrator.py
from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from .errors import ActionFailure, PreconditionViolation, ReadinessTimeout
from .marker import MarkerStore
from .models import BootstrapStep, Outcome, RunState, StepStatus, utcnow_iso
from .readiness import poll_until_ready

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import (
    new_ctx,
    RunStarted,
    PreconditionFailed,
    StepSkipped,
    StepStarted,
    ReadinessPolled,
    StepSucceeded,
    StepFailed,
    StepTimedOut,
    RunSummary,
)

log = logging.getLogger("labboot")

Precondition = Callable[[], None]

BOOT_ID_PATH = Path("/proc/sys/kernel/random/boot_id")


def current_boot_id() -> Optional[str]:
    """Kernel boot id; changes on every reboot. None where the kernel has none."""
    try:
        return BOOT_ID_PATH.read_text().strip() or None
    except OSError:
        return None


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by someone else
        return True
    return True


def _validate_steps(steps: Sequence[BootstrapStep]) -> None:
    seen: set[str] = set()
    for step in steps:
        if step.name in seen:
            raise ValueError(f"Duplicate bootstrap step name '{step.name}'")
        seen.add(step.name)


class BootstrapOrchestrator:
    """
    Drives an ordered list of BootstrapSteps from bare machine to ready service.

    Progress is checkpointed in the marker after every step, so:
      - a re-run after success skips every step (no-op)
      - a re-run after failure/timeout/interruption resumes at the step
        that did not complete

    Only one run per machine is supported. A second run that finds a live
    owner pid from the same boot in the marker is refused with
    PreconditionViolation; it is a check, not a lock.
    """

    def __init__(
        self,
        marker: MarkerStore,
        *,
        bus: Optional[EventBus] = None,
        env: str = "lab",
        host: Optional[str] = None,
        preconditions: Iterable[Precondition] = (),
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        pid: Optional[int] = None,
        run_id: Optional[str] = None,
        boot_id: Optional[str] = None,
    ):
        self.marker = marker
        self.bus = bus or EventBus()
        self.preconditions = list(preconditions)
        self.sleep = sleep
        self.clock = clock
        self.pid = pid if pid is not None else os.getpid()
        self.run_id = run_id or str(uuid.uuid4())
        self.boot_id = boot_id or current_boot_id()
        self._env = env
        self._host = host

    def _ctx(self) -> dict:
        return new_ctx(env=self._env, host=self._host, run_id=self.run_id)

    # ------------------------------------------------------------------
    def _check_preconditions(self, state: RunState) -> None:
        for check in self.preconditions:
            check()

        if state.outcome == Outcome.RUNNING and state.pid and state.pid != self.pid:
            if state.boot_id and self.boot_id and state.boot_id != self.boot_id:
                # pids do not survive a reboot
                log.warning(
                    "Previous run %s (pid %s) was cut short by a reboot; resuming",
                    state.run_id,
                    state.pid,
                )
                return
            if _pid_alive(state.pid):
                raise PreconditionViolation(
                    f"another bootstrap run (pid {state.pid}, run {state.run_id}) "
                    f"is in progress; concurrent runs are not supported"
                )
            log.warning(
                "Previous run %s (pid %s) was interrupted; resuming",
                state.run_id,
                state.pid,
            )

    def _refuse(self, state: Optional[RunState], exc: PreconditionViolation) -> RunState:
        log.error("Precondition violated: %s", exc)
        self.bus.emit(PreconditionFailed(reason=str(exc), **self._ctx()))

        if state is None:
            # marker itself is unreadable; leave it untouched for inspection
            return RunState(outcome=Outcome.PRECONDITION_FAILED, run_id=self.run_id)

        if state.outcome == Outcome.RUNNING:
            # the marker belongs to the live run
            refused = RunState.from_dict(state.to_dict())
            refused.outcome = Outcome.PRECONDITION_FAILED
            refused.run_id = self.run_id
            return refused

        state.outcome = Outcome.PRECONDITION_FAILED
        state.failed_step = None
        state.run_id = self.run_id
        state.pid = None
        state.finished_at = utcnow_iso()
        self.marker.save(state)
        return state

    # ------------------------------------------------------------------
    def _execute(self, step: BootstrapStep) -> int:
        try:
            step.action()
        except Exception as exc:
            raise ActionFailure(step.name, exc) from exc

        if step.readiness is None:
            return 0

        def _polled(attempt: int, ready: bool) -> None:
            self.bus.emit(
                ReadinessPolled(name=step.name, attempt=attempt, ready=ready, **self._ctx())
            )

        return poll_until_ready(
            step.readiness,
            step.retry,
            name=step.name,
            sleep=self.sleep,
            clock=self.clock,
            on_attempt=_polled,
        )

    def _finish(self, state: RunState, outcome: Outcome, failed_step: Optional[str]) -> RunState:
        state.outcome = outcome
        state.failed_step = failed_step
        state.pid = None
        state.finished_at = utcnow_iso()
        self.marker.save(state)
        return state

    # ------------------------------------------------------------------
    def run(self, steps: Sequence[BootstrapStep]) -> RunState:
        """
        Execute *steps* in order and return the resulting RunState.

        A terminal step that fails ends the run with failed-at-step(name);
        one whose readiness never arrives ends it with timed-out(name).
        Non-terminal failures are logged and recorded, and the run goes on.
        """
        _validate_steps(steps)

        state: Optional[RunState] = None
        try:
            state = self.marker.load()
            self._check_preconditions(state)
        except PreconditionViolation as exc:
            return self._refuse(state, exc)

        resumed = bool(state.steps)
        state.outcome = Outcome.RUNNING
        state.failed_step = None
        state.run_id = self.run_id
        state.pid = self.pid
        state.boot_id = self.boot_id
        state.started_at = utcnow_iso()
        state.finished_at = None
        self.marker.save(state)

        names = [s.name for s in steps]
        log.info("Bootstrap run %s started: %s", self.run_id, " -> ".join(names))
        self.bus.emit(RunStarted(steps=names, resumed=resumed, **self._ctx()))

        executed = skipped = failed = 0
        outcome, failed_step = Outcome.SUCCESS, None

        for step in steps:
            if state.is_complete(step.name):
                log.info("[%s] already completed, skipping", step.name)
                self.bus.emit(StepSkipped(name=step.name, reason="completed", **self._ctx()))
                skipped += 1
                continue

            log.info("[%s] starting%s", step.name, f": {step.description}" if step.description else "")
            self.bus.emit(StepStarted(name=step.name, terminal=step.terminal, **self._ctx()))
            t0 = self.clock()
            executed += 1

            try:
                attempts = self._execute(step)
            except ReadinessTimeout as exc:
                failed += 1
                state.record(
                    step.name,
                    StepStatus.TIMED_OUT,
                    attempts=exc.attempts,
                    duration_seconds=self.clock() - t0,
                    error=str(exc),
                )
                self.marker.save(state)
                self.bus.emit(
                    StepTimedOut(
                        name=step.name,
                        attempts=exc.attempts,
                        timeout_s=step.retry.max_elapsed_seconds,
                        terminal=step.terminal,
                        **self._ctx(),
                    )
                )
                if step.terminal:
                    log.error("[%s] %s", step.name, exc)
                    outcome, failed_step = Outcome.TIMED_OUT, step.name
                    break
                log.warning("[%s] %s (best-effort step, continuing)", step.name, exc)
                continue
            except ActionFailure as exc:
                failed += 1
                state.record(
                    step.name,
                    StepStatus.FAILED,
                    duration_seconds=self.clock() - t0,
                    error=str(exc.cause),
                )
                self.marker.save(state)
                self.bus.emit(
                    StepFailed(name=step.name, error=str(exc.cause), terminal=step.terminal, **self._ctx())
                )
                if step.terminal:
                    log.error("[%s] %s", step.name, exc)
                    outcome, failed_step = Outcome.FAILED_AT_STEP, step.name
                    break
                log.warning("[%s] %s (best-effort step, continuing)", step.name, exc)
                continue

            duration = self.clock() - t0
            state.record(step.name, StepStatus.COMPLETED, attempts=attempts, duration_seconds=duration)
            self.marker.save(state)
            self.bus.emit(
                StepSucceeded(name=step.name, attempts=attempts, duration_ms=int(duration * 1000), **self._ctx())
            )
            log.info("[%s] completed in %.1fs", step.name, duration)

        state = self._finish(state, outcome, failed_step)
        self.bus.emit(
            RunSummary(
                outcome=state.describe(),
                executed=executed,
                skipped=skipped,
                failed=failed,
                **self._ctx(),
            )
        )
        log.info("Bootstrap run %s finished: %s", self.run_id, state.describe())
        return state

    def plan(self, steps: Sequence[BootstrapStep]) -> List[dict]:
        """Show which steps a run would execute or skip, without executing anything."""
        _validate_steps(steps)
        state = self.marker.load()
        out: List[dict] = []
        for step in steps:
            rec = state.steps.get(step.name)
            if rec and rec.status == StepStatus.COMPLETED:
                out.append({"name": step.name, "action": "skip", "reason": f"completed {rec.completed_at}"})
            elif rec:
                out.append({"name": step.name, "action": "run", "reason": f"previous attempt {rec.status.value}"})
            else:
                out.append({"name": step.name, "action": "run", "reason": "pending"})
        return out
