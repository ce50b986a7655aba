# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/runtime/docker.py

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..config.models import ContainerSpec, RuntimeConfig
from ..utils.shell import CommandError, CommandRunner, run_checked

log = logging.getLogger("labboot")

RUNNING = "running"
RESUMABLE = {"created", "exited", "dead"}


class DockerError(RuntimeError):
    """Base class for container runtime failures."""


class DockerCli:
    """
    A pragmatic wrapper around the `docker` CLI.
    - Every operation checks current state first so it can be repeated safely.
    - Testable with a fake CommandRunner.
    """

    def __init__(self, runner: CommandRunner, runtime: Optional[RuntimeConfig] = None):
        self.runner = runner
        self.runtime = runtime or RuntimeConfig()

    # ------------------------- internal helpers -------------------------

    def _docker(self, *args: str) -> List[str]:
        return [self.runtime.binary, *args]

    def _run(self, argv: Sequence[str]) -> str:
        try:
            return run_checked(
                self.runner,
                argv,
                sudo=self.runtime.sudo,
                timeout=self.runtime.command_timeout_seconds,
            )
        except CommandError as e:
            raise DockerError(str(e)) from e

    # ------------------------- runtime -------------------------

    def is_installed(self) -> bool:
        rc, _, _ = self.runner.run(self._docker("--version"), sudo=self.runtime.sudo, timeout=30)
        return rc == 0

    def info_ok(self) -> bool:
        """Daemon is up and answering."""
        rc, _, _ = self.runner.run(self._docker("info"), sudo=self.runtime.sudo, timeout=30)
        return rc == 0

    def install(self) -> bool:
        """Install the runtime if missing. Returns True when something was installed."""
        if self.is_installed():
            log.info("%s already installed", self.runtime.binary)
            installed = False
        else:
            for argv in self.runtime.install_commands:
                self._run(argv)
            installed = True
            log.info("installed %s", self.runtime.binary)

        if self.runtime.service:
            # enable --now is a no-op for an enabled, active unit
            self._run(["systemctl", "enable", "--now", self.runtime.service])
        return installed

    # ------------------------- containers -------------------------

    def container_state(self, name: str) -> Optional[str]:
        """Container status (running, exited, ...) or None when it does not exist."""
        rc, out, err = self.runner.run(
            self._docker("inspect", "--format", "{{.State.Status}}", name),
            sudo=self.runtime.sudo,
            timeout=60,
        )
        if rc != 0:
            if "no such object" in err.lower() or "no such container" in err.lower():
                return None
            raise DockerError(str(CommandError(self._docker("inspect", name), rc, err)))
        return out.strip() or None

    def run_args(self, spec: ContainerSpec) -> List[str]:
        argv = self._docker("run", "-d", "--name", spec.name)
        if spec.restart_policy:
            argv += ["--restart", spec.restart_policy]
        for p in spec.ports:
            argv += ["-p", p]
        for k, v in spec.env.items():
            argv += ["-e", f"{k}={v}"]
        for vol in spec.volumes:
            argv += ["-v", vol]
        argv.append(spec.image)
        argv += spec.args
        return argv

    def ensure_running(self, spec: ContainerSpec) -> str:
        """
        Bring the container to the running state.

        Returns what was done: "unchanged", "unpaused", "started" or "created".
        A healthy running container is never restarted.
        """
        state = self.container_state(spec.name)

        if state in (RUNNING, "restarting"):
            log.info("container %s already %s", spec.name, state)
            return "unchanged"
        if state == "paused":
            self._run(self._docker("unpause", spec.name))
            return "unpaused"
        if state in RESUMABLE:
            self._run(self._docker("start", spec.name))
            log.info("started existing container %s", spec.name)
            return "started"
        if state is not None:
            raise DockerError(f"container {spec.name} is in unexpected state '{state}'")

        self._run(self.run_args(spec))
        log.info("created container %s from %s", spec.name, spec.image)
        return "created"

    def stop(self, name: str) -> bool:
        if self.container_state(name) != RUNNING:
            return False
        self._run(self._docker("stop", name))
        return True

    def remove(self, name: str) -> bool:
        if self.container_state(name) is None:
            log.info("container %s already absent", name)
            return False
        self._run(self._docker("rm", "-f", name))
        log.info("removed container %s", name)
        return True
