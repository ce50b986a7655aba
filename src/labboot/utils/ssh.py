# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/utils/ssh.py

from __future__ import annotations

import logging
import shlex
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

import paramiko

from .shell import redact

log = logging.getLogger("labboot")


@dataclass(frozen=True)
class SSHTarget:
    address: str
    username: str = "ubuntu"
    port: int = 22
    pkey_path: Optional[Path] = None
    password: Optional[str] = None


class SSHRunner:
    """
    Runs commands on a remote machine over SSH.

    Same contract as LocalRunner, so a bootstrap can be re-run by hand
    from a workstation against the lab VM.
    """

    def __init__(self, client: paramiko.SSHClient, host: str = ""):
        self.client = client
        self.host = host

    def run(
        self,
        argv: Sequence[str],
        *,
        sudo: bool = False,
        timeout: Optional[int] = None,
    ) -> Tuple[int, str, str]:
        cmd = shlex.join(list(argv))
        if sudo:
            cmd = f"sudo -n -H bash -c {shlex.quote(cmd)}"
        log.debug("(%s) $ %s%s", self.host, "sudo " if sudo else "", redact(argv))

        try:
            stdin, stdout, stderr = self.client.exec_command(cmd, timeout=timeout)
            out = stdout.read().decode("utf-8", "replace")
            err = stderr.read().decode("utf-8", "replace")
            rc = stdout.channel.recv_exit_status()
        except socket.timeout:
            return 124, "", f"timed out after {timeout}s"
        return rc, out, err

    def close(self) -> None:
        self.client.close()


def _load_pkey(path: Path) -> Optional[paramiko.PKey]:
    for key_cls in (
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(str(path))
        except paramiko.SSHException:
            continue
    return None


def open_ssh(target: SSHTarget, *, connect_timeout: float = 20.0) -> SSHRunner:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    pkey = _load_pkey(target.pkey_path) if target.pkey_path else None

    client.connect(
        hostname=target.address,
        port=target.port,
        username=target.username,
        password=target.password if not pkey else None,
        pkey=pkey,
        timeout=connect_timeout,
        allow_agent=True,
        look_for_keys=pkey is None,
    )

    return SSHRunner(client, host=target.address)
