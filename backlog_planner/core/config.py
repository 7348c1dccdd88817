from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

import yaml


DEFAULT_STUDIO_DIR = ".studio"

DEFAULT_CONFIG: dict[str, str] = {
    "backlog_file": f"{DEFAULT_STUDIO_DIR}/backlog.json",
    "log_level": "WARNING",
    "actor": "system",
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class BacklogConfig:
    backlog_file: str
    log_level: str
    actor: str


def load_config_file(path: str | Path) -> dict[str, str]:
    """Load overrides from a YAML file.

    Format:
      backlog_file: path/to/backlog.json
      log_level: INFO
      actor: alice

    Unknown keys are rejected so typos do not pass silently.
    """
    p = Path(path)
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise ConfigError(f"config file is not valid YAML: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("config file must be a mapping of setting -> value")

    out: dict[str, str] = {}
    for k, v in raw.items():
        if k not in DEFAULT_CONFIG:
            raise ConfigError(f"unknown setting '{k}' (known: {', '.join(sorted(DEFAULT_CONFIG))})")
        if not isinstance(v, str) or not v.strip():
            raise ConfigError(f"setting '{k}' must be a non-empty string")
        out[k] = v.strip()
    return out


def env_overrides(environ: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Overrides from the environment.

    Resolution order inside the environment:
      1) BACKLOG_FILE
      2) STUDIO_DIR/backlog.json
    """
    env = os.environ if environ is None else environ
    out: dict[str, str] = {}

    studio_dir = (env.get("STUDIO_DIR", "") or "").strip()
    if studio_dir:
        out["backlog_file"] = str(Path(studio_dir) / "backlog.json")
    backlog_file = (env.get("BACKLOG_FILE", "") or "").strip()
    if backlog_file:
        out["backlog_file"] = backlog_file

    level = (env.get("BACKLOG_LOG_LEVEL", "") or "").strip()
    if level:
        out["log_level"] = level
    actor = (env.get("BACKLOG_ACTOR", "") or "").strip()
    if actor:
        out["actor"] = actor
    return out


def load_config(
    config_file: Optional[str] = None,
    *,
    environ: Optional[dict[str, str]] = None,
    **cli_overrides: Any,
) -> BacklogConfig:
    """Defaults < config file < environment < explicit CLI options (None is skipped)."""
    merged: dict[str, str] = dict(DEFAULT_CONFIG)
    if config_file:
        merged.update(load_config_file(config_file))
    merged.update(env_overrides(environ))
    cfg = BacklogConfig(**merged)

    explicit = {k: v for k, v in cli_overrides.items() if v is not None}
    if explicit:
        cfg = replace(cfg, **explicit)
    return cfg
