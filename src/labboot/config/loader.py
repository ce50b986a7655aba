# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/labboot/config/loader.py

import logging
import os
import re
import yaml
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import BootstrapConfig

log = logging.getLogger("labboot")

DEFAULT_CONFIG_PATH = Path("/etc/labboot/bootstrap.yaml")

UNSET_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(ValueError):
    pass


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_secrets_file(config_path: Path) -> Path | None:
    """
    Locate secrets.yaml using this priority:

    1. LABBOOT_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the bootstrap config
    """
    env = os.environ.get("LABBOOT_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("LABBOOT_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "secrets.yaml"
    if p.is_file():
        return p

    return None


def _unresolved(value, found: set) -> set:
    """Collect ${NAME} references expandvars left in place (variable unset)."""
    if isinstance(value, dict):
        for v in value.values():
            _unresolved(v, found)
    elif isinstance(value, list):
        for v in value:
            _unresolved(v, found)
    elif isinstance(value, str):
        found.update(UNSET_REF.findall(value))
    return found


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    # values only; a ${VAR} in a YAML comment is harmless
    missing = _unresolved(data, set())
    if missing:
        raise ConfigError(
            f"{path}: environment variable(s) not set: {', '.join(sorted(missing))}"
        )
    return data


def resolve_config_path(path: Optional[str | Path] = None) -> Path:
    """--config, then $LABBOOT_CONFIG, then /etc/labboot/bootstrap.yaml."""
    if path:
        return Path(path)
    env = os.environ.get("LABBOOT_CONFIG")
    if env:
        return Path(env)
    return DEFAULT_CONFIG_PATH


def load_config(path: Optional[str | Path] = None) -> BootstrapConfig:
    """
    Load and validate a labboot YAML config.

    Secrets are injected via two methods (both can be used together):

    **Method 1: secrets.yaml file**
        A ``secrets.yaml`` whose structure mirrors the bootstrap config
        (typically just ``database.password`` and ``container.env``) is
        deep-merged into the config before validation. Discovery order:
          1. ``LABBOOT_SECRETS_FILE`` env var -> explicit path
          2. ``secrets.yaml`` next to the bootstrap config

    **Method 2: environment variables**
        ``${ENV_VAR}`` placeholders anywhere in the YAML are resolved with
        ``os.path.expandvars`` at load time.

    ``LABBOOT_MARKER`` overrides ``marker_path``.
    """
    path = resolve_config_path(path)
    if not path.is_file():
        raise ConfigError(f"bootstrap config not found: {path}")

    try:
        data = _load_yaml(path)

        secrets_path = _find_secrets_file(path)
        if secrets_path:
            log.debug("Merging secrets from %s", secrets_path)
            _deep_merge(data, _load_yaml(secrets_path))
        else:
            log.debug("No secrets.yaml found, proceeding without secrets merge")
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e

    marker = os.environ.get("LABBOOT_MARKER")
    if marker:
        data["marker_path"] = marker

    try:
        return BootstrapConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{path}: {e}") from e
