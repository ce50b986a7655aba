# src/labboot/utils/shell.py

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Optional, Protocol, Sequence, Tuple

log = logging.getLogger("labboot")

SECRET_HINTS = ("PASSWORD", "SECRET", "TOKEN")


def redact(argv: Sequence[str]) -> str:
    """Render argv for logs with KEY=VALUE secrets masked."""
    out = []
    for arg in argv:
        k, sep, _ = arg.partition("=")
        if sep and any(h in k.upper() for h in SECRET_HINTS):
            arg = f"{k}=***"
        out.append(arg)
    return shlex.join(out)


class CommandError(RuntimeError):
    def __init__(self, argv: Sequence[str], rc: int, stderr: str = ""):
        self.argv = list(argv)
        self.rc = rc
        self.stderr = stderr
        super().__init__(f"command failed (rc={rc}): {redact(self.argv)}\n{stderr.strip()}")


class CommandRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        sudo: bool = False,
        timeout: Optional[int] = None,
    ) -> Tuple[int, str, str]: ...


class LocalRunner:
    """
    Runs commands on this machine via subprocess.run.
    Testable by mocking subprocess.run.
    """

    def run(
        self,
        argv: Sequence[str],
        *,
        sudo: bool = False,
        timeout: Optional[int] = None,
    ) -> Tuple[int, str, str]:
        cmd = list(argv)
        if sudo:
            cmd = ["sudo", "-n", "--"] + cmd
        log.debug("$ %s", redact(cmd))

        try:
            cp = subprocess.run(
                cmd,
                check=False,
                text=True,
                capture_output=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            # binary missing: report like a shell would
            return 127, "", str(e)
        except subprocess.TimeoutExpired:
            return 124, "", f"timed out after {timeout}s"

        if cp.returncode != 0:
            log.debug("rc=%s stderr=%s", cp.returncode, (cp.stderr or "").strip())
        return cp.returncode, cp.stdout or "", cp.stderr or ""


def run_checked(
    runner: CommandRunner,
    argv: Sequence[str],
    *,
    sudo: bool = False,
    timeout: Optional[int] = None,
    allow_rc: set[int] | None = None,
) -> str:
    """Run *argv* and return stdout, raising CommandError on an unexpected rc."""
    allow_rc = allow_rc or {0}
    rc, out, err = runner.run(argv, sudo=sudo, timeout=timeout)
    if rc not in allow_rc:
        raise CommandError(argv, rc, err)
    return out
