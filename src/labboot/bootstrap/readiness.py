# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/bootstrap/readiness.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .errors import ReadinessTimeout
from .models import RetryPolicy

log = logging.getLogger("labboot")


def poll_until_ready(
    predicate: Callable[[], bool],
    policy: RetryPolicy,
    *,
    name: str,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    on_attempt: Optional[Callable[[int, bool], None]] = None,
) -> int:
    """
    Block until *predicate* returns True or the policy budget runs out.

    Returns the number of polls it took. A predicate that raises counts as
    "not ready yet". The last sleep is cut to the remaining budget and
    followed by one final poll, so a service that never comes up is
    reported at (not before) ``max_elapsed_seconds``.
    """
    start = clock()
    delays = policy.delays()
    attempt = 0

    while True:
        attempt += 1
        try:
            ready = bool(predicate())
        except Exception as exc:
            log.debug("[%s] readiness poll %d raised: %s", name, attempt, exc)
            ready = False

        if on_attempt:
            on_attempt(attempt, ready)
        if ready:
            log.debug("[%s] ready after %d poll(s)", name, attempt)
            return attempt

        elapsed = clock() - start
        remaining = policy.max_elapsed_seconds - elapsed
        if remaining <= 0 or (policy.max_attempts and attempt >= policy.max_attempts):
            raise ReadinessTimeout(name, attempt, elapsed)

        delay = min(next(delays), remaining)
        log.debug("[%s] not ready (poll %d), retrying in %.1fs", name, attempt, delay)
        sleep(delay)
