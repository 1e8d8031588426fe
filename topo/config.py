"""Configuration loader for the reconciler.

Precedence: YAML file, then TOPO_* environment variables, then command-line
flags (applied by the caller through ``with_overrides``).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse

import yaml

from topo.errors import ConfigError

ENV_PREFIX = "TOPO_"
LOG_FORMATS = ("text", "json")


@dataclass(frozen=True)
class ReconcilerConfig:
    listen_uri: str = ""  # status API bind address; empty disables it
    poll_interval_s: float = 10.0
    kubeconfig: str = ""
    namespace: str = ""
    scheduler_name: str = ""
    only_unbound_pods: bool = False
    scheduler_url: str = ""  # empty runs the in-process scheduler facade
    scheduler_timeout_s: float = 5.0
    track_bound_workloads: bool = True
    log_level: str = "INFO"
    log_format: str = "text"

    def with_overrides(self, **overrides: Any) -> "ReconcilerConfig":
        """Return a copy with the non-None overrides applied and validated."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return validate(replace(self, **_coerce(values)))


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"Invalid boolean value: {raw!r}")


def _coerce(values: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name: f for f in fields(ReconcilerConfig)}
    out: Dict[str, Any] = {}
    for key, raw in values.items():
        if key not in known:
            raise ConfigError(f"Unknown configuration key: {key}")
        default = known[key].default
        try:
            if isinstance(default, bool):
                out[key] = _to_bool(raw)
            elif isinstance(default, float):
                out[key] = float(raw)
            else:
                out[key] = "" if raw is None else str(raw)
        except (TypeError, ValueError) as e:
            if isinstance(e, ConfigError):
                raise
            raise ConfigError(f"Invalid value for {key}: {raw!r}") from e
    return out


def validate(cfg: ReconcilerConfig) -> ReconcilerConfig:
    if cfg.poll_interval_s <= 0:
        raise ConfigError(f"poll_interval_s must be positive, got {cfg.poll_interval_s}")
    if cfg.scheduler_timeout_s <= 0:
        raise ConfigError(f"scheduler_timeout_s must be positive, got {cfg.scheduler_timeout_s}")
    if not isinstance(logging.getLevelName(cfg.log_level.upper()), int):
        raise ConfigError(f"Unknown log_level {cfg.log_level!r}")
    if cfg.log_format not in LOG_FORMATS:
        raise ConfigError(f"log_format must be one of {LOG_FORMATS}, got {cfg.log_format!r}")
    if cfg.listen_uri:
        parse_listen_uri(cfg.listen_uri)
    return cfg


def parse_listen_uri(uri: str) -> Tuple[str, int]:
    """
    Parse 'host:port' or 'http://host:port' into (host, port).

    Raises:
        ConfigError: If no port can be found
    """
    target = uri if "://" in uri else f"http://{uri}"
    parsed = urlparse(target)
    try:
        port = parsed.port
    except ValueError as e:
        raise ConfigError(f"Invalid listen_uri {uri!r}: {e}") from e
    if port is None:
        raise ConfigError(f"listen_uri {uri!r} must include a port")
    return parsed.hostname or "0.0.0.0", port


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid YAML root object in config file: {path}")
    # Accept either a flat mapping or one nested under 'reconciler'.
    return dict(data.get("reconciler", data) or {})


def _env_values(environ: Mapping[str, str]) -> Dict[str, str]:
    values = {}
    for f in fields(ReconcilerConfig):
        key = ENV_PREFIX + f.name.upper()
        if key in environ:
            values[f.name] = environ[key]
    return values


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> ReconcilerConfig:
    """Load configuration from an optional YAML file and the environment."""
    values: Dict[str, Any] = {}
    if path:
        values.update(_load_yaml(Path(path)))
    values.update(_env_values(os.environ if environ is None else environ))
    return validate(ReconcilerConfig(**_coerce(values)))
