# src/labboot/bootstrap/preconditions.py
from __future__ import annotations

import platform
from typing import Callable, Sequence

from .errors import PreconditionViolation


def require_platform(allowed: Sequence[str]) -> Callable[[], None]:
    """Refuse to run on an operating system the bootstrap does not support."""

    def _check() -> None:
        system = platform.system()
        if allowed and system not in allowed:
            raise PreconditionViolation(
                f"unsupported platform '{system}' (supported: {', '.join(allowed)})"
            )

    return _check
