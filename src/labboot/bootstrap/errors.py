# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/bootstrap/errors.py
from __future__ import annotations


class BootstrapError(RuntimeError):
    """Base class for bootstrap failures."""


class ActionFailure(BootstrapError):
    """Raised when a step's action itself errored (e.g. package install failed)."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        super().__init__(f"step '{step}' action failed: {cause}")


class ReadinessTimeout(BootstrapError):
    """Raised when the action succeeded but readiness never arrived within budget."""

    def __init__(self, step: str, attempts: int, elapsed: float):
        self.step = step
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"step '{step}' not ready after {attempts} polls ({elapsed:.1f}s)"
        )


class PreconditionViolation(BootstrapError):
    """Raised when the run cannot start safely (concurrent run, unsupported OS, bad marker)."""
