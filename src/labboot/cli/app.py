# src/labboot/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import paramiko
import typer
import yaml

from labboot.bootstrap.errors import PreconditionViolation
from labboot.bootstrap.marker import MarkerStore
from labboot.bootstrap.models import Outcome, RunState
from labboot.bootstrap.orchestrator import BootstrapOrchestrator
from labboot.bootstrap.pipeline import build_steps
from labboot.bootstrap.preconditions import require_platform
from labboot.config.loader import ConfigError, load_config
from labboot.config.models import BootstrapConfig
from labboot.logging.log import init_logging
from labboot.observers.console import ConsoleObserver
from labboot.observers.dispatcher import EventBus
from labboot.observers.jsonfile import JsonFileObserver
from labboot.observers.logger import LoggerObserver
from labboot.runtime.docker import DockerCli, DockerError
from labboot.utils.shell import CommandRunner, LocalRunner
from labboot.utils.ssh import SSHTarget, open_ssh


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="labboot: idempotent bootstrap of a seeded lab database")

# 2 is left to typer/click usage errors
EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_TIMED_OUT = 3
EXIT_PRECONDITION = 4
EXIT_INCOMPLETE = 5

EXIT_CODES = {
    Outcome.SUCCESS: EXIT_SUCCESS,
    Outcome.FAILED_AT_STEP: EXIT_FAILED,
    Outcome.TIMED_OUT: EXIT_TIMED_OUT,
    Outcome.PRECONDITION_FAILED: EXIT_PRECONDITION,
}

LOOPBACK = {"127.0.0.1", "localhost", "::1"}


def exit_code(state: RunState) -> int:
    if state.outcome is None or state.outcome == Outcome.RUNNING:
        return EXIT_INCOMPLETE
    return EXIT_CODES[state.outcome]


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _load(config: Optional[Path], marker: Optional[Path]) -> BootstrapConfig:
    try:
        cfg = load_config(config)
    except ConfigError as e:
        typer.secho(f"config error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_PRECONDITION)
    if marker:
        cfg = cfg.model_copy(update={"marker_path": marker})
    return cfg


def _for_host(cfg: BootstrapConfig, host: Optional[str], marker: Optional[Path]) -> BootstrapConfig:
    """
    Re-target a config at a remote machine driven over SSH.

    Progress for a remote run is tracked in a per-host marker on this
    workstation, separate from the marker the machine keeps for itself.
    """
    if not host:
        return cfg
    base = Path.home() / ".labboot" / "hosts" / host
    update = {
        "endpoint_path": base / "endpoint.yaml",
        "log_dir": Path.home() / ".labboot" / "logs",
    }
    if not marker:
        update["marker_path"] = base / "state.yaml"
    if cfg.database.host in LOOPBACK:
        update["database"] = cfg.database.model_copy(update={"host": host})
    return cfg.model_copy(update=update)


def _runner(host: Optional[str], ssh_user: str, ssh_key: Optional[Path]) -> CommandRunner:
    if not host:
        return LocalRunner()
    return open_ssh(SSHTarget(address=host, username=ssh_user, pkey_path=ssh_key))


def _print_state(state: RunState) -> None:
    typer.echo(yaml.safe_dump(state.to_dict(), sort_keys=False, default_flow_style=False).rstrip())


def _run_bootstrap(
    *,
    config: Optional[Path] = None,
    marker: Optional[Path] = None,
    debug: bool = False,
    events: bool = False,
    host: Optional[str] = None,
    ssh_user: str = "ubuntu",
    ssh_key: Optional[Path] = None,
) -> int:
    cfg = _for_host(_load(config, marker), host, marker)
    logger, run_id, log_path = init_logging(cfg.log_dir, verbose=debug)

    observers: List = [
        LoggerObserver(logger),
        JsonFileObserver(log_path.with_suffix(".jsonl")),
    ]
    if events:
        observers.append(ConsoleObserver())
    bus = EventBus(observers=observers)

    try:
        runner = _runner(host, ssh_user, ssh_key)
    except (paramiko.SSHException, OSError) as e:
        logger.error("cannot reach %s over SSH: %s", host, e)
        return EXIT_PRECONDITION

    try:
        steps = build_steps(cfg, runner)
    except ConfigError as e:
        logger.error("config error: %s", e)
        return EXIT_PRECONDITION

    preconditions = [] if host else [require_platform(cfg.supported_platforms)]
    orchestrator = BootstrapOrchestrator(
        MarkerStore(cfg.marker_path),
        bus=bus,
        env=cfg.environment,
        host=host,
        preconditions=preconditions,
        run_id=run_id,
    )

    try:
        state = orchestrator.run(steps)
    finally:
        close = getattr(runner, "close", None)
        if close:
            close()

    code = exit_code(state)
    color = typer.colors.GREEN if code == EXIT_SUCCESS else typer.colors.RED
    typer.secho(f"bootstrap {state.describe()} (marker: {cfg.marker_path})", fg=color, bold=True)
    return code


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

ConfigOpt = typer.Option(None, "--config", "-c", help="Bootstrap YAML (default: $LABBOOT_CONFIG or /etc/labboot/bootstrap.yaml)")
MarkerOpt = typer.Option(None, "--marker", help="Override the marker file location")
HostOpt = typer.Option(None, "--host", help="Run the commands on this host over SSH")
SshUserOpt = typer.Option("ubuntu", "--ssh-user")
SshKeyOpt = typer.Option(None, "--ssh-key")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """With no command, run the bootstrap (first-boot entry point)."""
    if ctx.invoked_subcommand is None:
        raise typer.Exit(_run_bootstrap())


@app.command()
def run(
    config: Optional[Path] = ConfigOpt,
    marker: Optional[Path] = MarkerOpt,
    host: Optional[str] = HostOpt,
    ssh_user: str = SshUserOpt,
    ssh_key: Optional[Path] = SshKeyOpt,
    debug: bool = typer.Option(False, "--debug"),
    events: bool = typer.Option(False, "--events", help="Echo lifecycle events to the console"),
):
    """Run the bootstrap; completed steps are skipped."""
    raise typer.Exit(
        _run_bootstrap(
            config=config,
            marker=marker,
            debug=debug,
            events=events,
            host=host,
            ssh_user=ssh_user,
            ssh_key=ssh_key,
        )
    )


def _marker_for(config: Optional[Path], marker: Optional[Path], host: Optional[str]) -> MarkerStore:
    if marker:
        return MarkerStore(marker)
    cfg = _for_host(_load(config, None), host, None)
    return MarkerStore(cfg.marker_path)


@app.command()
def status(
    config: Optional[Path] = ConfigOpt,
    marker: Optional[Path] = MarkerOpt,
    host: Optional[str] = HostOpt,
):
    """Print the marker; the exit code mirrors the recorded outcome."""
    store = _marker_for(config, marker, host)
    try:
        state = store.load()
    except PreconditionViolation as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_PRECONDITION)
    if not store.exists():
        typer.echo(f"no bootstrap recorded at {store.path}")
    else:
        _print_state(state)
    raise typer.Exit(exit_code(state))


@app.command()
def plan(
    config: Optional[Path] = ConfigOpt,
    marker: Optional[Path] = MarkerOpt,
    host: Optional[str] = HostOpt,
):
    """Show which steps a run would execute or skip."""
    cfg = _for_host(_load(config, marker), host, marker)
    try:
        steps = build_steps(cfg, LocalRunner())
    except ConfigError as e:
        typer.secho(f"config error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_PRECONDITION)

    for item in BootstrapOrchestrator(MarkerStore(cfg.marker_path)).plan(steps):
        typer.echo(f"  {item['action']:<4} {item['name']:<18} {item['reason']}")


@app.command()
def reset(
    step: Optional[str] = typer.Option(None, "--step", help="Forget only this step"),
    config: Optional[Path] = ConfigOpt,
    marker: Optional[Path] = MarkerOpt,
    host: Optional[str] = HostOpt,
    yes: bool = typer.Option(False, "--yes", "-y"),
):
    """Forget recorded progress so the next run re-executes steps."""
    store = _marker_for(config, marker, host)
    if step:
        try:
            state = store.load()
        except PreconditionViolation as e:
            typer.secho(str(e), fg=typer.colors.RED, err=True)
            raise typer.Exit(EXIT_PRECONDITION)
        if not state.forget(step):
            typer.echo(f"step '{step}' not recorded in {store.path}")
            raise typer.Exit(EXIT_SUCCESS)
        store.save(state)
        typer.echo(f"forgot step '{step}'")
        return

    if not yes:
        typer.confirm(f"Remove {store.path}?", abort=True)
    if store.clear():
        typer.echo(f"removed {store.path}")
    else:
        typer.echo(f"nothing to remove at {store.path}")


@app.command()
def destroy(
    config: Optional[Path] = ConfigOpt,
    marker: Optional[Path] = MarkerOpt,
    host: Optional[str] = HostOpt,
    ssh_user: str = SshUserOpt,
    ssh_key: Optional[Path] = SshKeyOpt,
    yes: bool = typer.Option(False, "--yes", "-y"),
):
    """Remove the database container and the marker. Safe to repeat."""
    cfg = _for_host(_load(config, marker), host, marker)
    if not yes:
        typer.confirm(
            f"Remove container '{cfg.container.name}' and its bootstrap record?",
            abort=True,
        )

    runner = _runner(host, ssh_user, ssh_key)
    try:
        docker = DockerCli(runner, cfg.runtime)
        docker.stop(cfg.container.name)
        removed = docker.remove(cfg.container.name)
    except DockerError as e:
        typer.secho(f"destroy failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_FAILED)
    finally:
        close = getattr(runner, "close", None)
        if close:
            close()

    MarkerStore(cfg.marker_path).clear()
    typer.echo(
        f"container '{cfg.container.name}' {'removed' if removed else 'already absent'}; marker cleared"
    )


if __name__ == "__main__":
    app()
