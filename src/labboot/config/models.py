# src/labboot/config/models.py

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..bootstrap.marker import DEFAULT_MARKER_PATH
from ..bootstrap.models import RetryPolicy
from ..database.models import DatabaseConfig, SeedSpec


class RuntimeConfig(BaseModel):
    """How to get a container runtime onto a bare machine."""

    binary: str = "docker"
    service: Optional[str] = "docker"          # systemd unit enabled after install
    install_commands: List[List[str]] = Field(
        default_factory=lambda: [
            ["apt-get", "update"],
            ["apt-get", "install", "-y", "docker.io"],
        ]
    )
    sudo: bool = False
    command_timeout_seconds: int = 900


class ContainerSpec(BaseModel):
    name: str = "source-db"
    image: str = "mysql:8.0"
    ports: List[str] = Field(default_factory=lambda: ["3306:3306"])   # host:container
    env: Dict[str, str] = Field(default_factory=dict)
    volumes: List[str] = Field(default_factory=list)
    restart_policy: str = "unless-stopped"
    args: List[str] = Field(default_factory=list)

    @field_validator("ports", mode="before")
    @classmethod
    def _check_ports(cls, v: List) -> List[str]:
        for p in v:
            # YAML 1.1 reads unquoted 22:22 as the base-60 int 1342
            if not isinstance(p, str):
                raise ValueError(f"port mapping {p!r} must be a quoted string")
            container = p.rpartition(":")[2]
            if not container.split("/")[0].isdigit():
                raise ValueError(f"invalid port mapping '{p}'")
        return v


class StepOverride(BaseModel):
    enabled: bool = True
    terminal: Optional[bool] = None
    retry: Optional[RetryPolicy] = None


class BootstrapConfig(BaseModel):
    environment: str = "lab"
    marker_path: Path = DEFAULT_MARKER_PATH
    log_dir: Path = Path("/var/log/labboot")
    endpoint_path: Path = Path("/var/lib/labboot/endpoint.yaml")
    supported_platforms: List[str] = Field(default_factory=lambda: ["Linux"])

    runtime: RuntimeConfig = RuntimeConfig()
    container: ContainerSpec = ContainerSpec()
    database: DatabaseConfig = DatabaseConfig()
    seed: SeedSpec = SeedSpec()

    # per-step overrides keyed by step name (install-runtime, start-database, ...)
    steps: Dict[str, StepOverride] = Field(default_factory=dict)

    def override(self, name: str) -> StepOverride:
        return self.steps.get(name) or StepOverride()
