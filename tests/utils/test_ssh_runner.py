import io
import socket

import paramiko

from labboot.utils import ssh as ssh_mod
from labboot.utils.ssh import SSHRunner, SSHTarget, open_ssh


class FakeChannel:
    def __init__(self, rc):
        self.rc = rc

    def recv_exit_status(self):
        return self.rc


class FakeStream(io.BytesIO):
    def __init__(self, data=b"", rc=0):
        super().__init__(data)
        self.channel = FakeChannel(rc)


class FakeClient:
    def __init__(self, rc=0, out=b"", err=b"", raise_timeout=False):
        self.rc, self.out, self.err = rc, out, err
        self.raise_timeout = raise_timeout
        self.commands = []
        self.closed = False
        self.connected = None

    def exec_command(self, cmd, timeout=None):
        self.commands.append(cmd)
        if self.raise_timeout:
            raise socket.timeout()
        return None, FakeStream(self.out, self.rc), FakeStream(self.err)

    def set_missing_host_key_policy(self, policy):
        pass

    def connect(self, **kw):
        self.connected = kw

    def close(self):
        self.closed = True


def test_ssh_runner_quotes_argv():
    client = FakeClient(out=b"running\n")
    rc, out, _ = SSHRunner(client, "lab-vm").run(
        ["docker", "inspect", "--format", "{{.State.Status}}", "source-db"]
    )
    assert (rc, out) == (0, "running\n")
    assert client.commands == ["docker inspect --format '{{.State.Status}}' source-db"]


def test_ssh_runner_sudo_wraps_whole_command():
    client = FakeClient(rc=100, err=b"E: lock held")
    rc, _, err = SSHRunner(client).run(["apt-get", "install", "-y", "docker.io"], sudo=True)
    assert rc == 100
    assert err == "E: lock held"
    assert client.commands == ["sudo -n -H bash -c 'apt-get install -y docker.io'"]


def test_ssh_runner_timeout():
    rc, _, err = SSHRunner(FakeClient(raise_timeout=True)).run(["docker", "info"], timeout=3)
    assert rc == 124
    assert "3s" in err


def test_open_ssh_uses_password_without_key(monkeypatch):
    client = FakeClient()
    monkeypatch.setattr(paramiko, "SSHClient", lambda: client)

    runner = open_ssh(SSHTarget(address="10.0.0.7", username="lab", password="pw"))
    assert runner.host == "10.0.0.7"
    assert client.connected["password"] == "pw"
    assert client.connected["look_for_keys"] is True

    runner.close()
    assert client.closed


def test_open_ssh_with_key(monkeypatch, tmp_path):
    client = FakeClient()
    monkeypatch.setattr(paramiko, "SSHClient", lambda: client)
    monkeypatch.setattr(ssh_mod, "_load_pkey", lambda path: "PKEY")

    open_ssh(SSHTarget(address="lab", pkey_path=tmp_path / "id_ed25519", password="ignored"))
    assert client.connected["pkey"] == "PKEY"
    assert client.connected["password"] is None
    assert client.connected["look_for_keys"] is False
