"""Session tunables loaded from an optional JSON file."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any

from .settings import CONFIG_FILE

logger = logging.getLogger(__name__)


def _ensure_parent(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        # Directory creation failures will surface during write; keep silent here.
        pass


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_seconds(value: Any, default: float) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return default
    return seconds if seconds > 0 else default


@dataclass
class SessionConfig:
    """Link and timing parameters for a transport session.

    Durations are in seconds. ``response_timeout`` and ``resend_attempts``
    bound a single exchange to ``response_timeout * (resend_attempts + 1)``
    of silence before it fails.
    """

    port: str = ""
    baudrate: int = 9600
    response_timeout: float = 0.5
    resend_attempts: int = 2
    poll_interval: float = 0.001
    quiet_interval: float = 0.01
    maintenance_interval: float = 0.1
    discovery_interval: float = 0.1
    trace: bool = False


def load_config(path: str | Path = CONFIG_FILE) -> SessionConfig:
    """Load configuration data from *path* or return defaults on failure."""

    defaults = SessionConfig()
    cfg_path = Path(path)
    if not cfg_path.exists():
        return defaults

    try:
        raw = json.loads(cfg_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error("Config file %s contains invalid JSON: %s", cfg_path, exc)
        return defaults
    except OSError as exc:
        logger.error("Could not read config file %s: %s", cfg_path, exc)
        return defaults

    if not isinstance(raw, dict):
        logger.error("Config file %s did not contain an object", cfg_path)
        return defaults

    data = asdict(defaults)
    port = raw.get("port")
    data["port"] = str(port) if port is not None else defaults.port
    data["baudrate"] = max(1, _coerce_int(raw.get("baudrate"), defaults.baudrate))
    data["response_timeout"] = _coerce_seconds(
        raw.get("response_timeout"), defaults.response_timeout
    )
    data["resend_attempts"] = max(
        0, _coerce_int(raw.get("resend_attempts"), defaults.resend_attempts)
    )
    for key in (
        "poll_interval",
        "quiet_interval",
        "maintenance_interval",
        "discovery_interval",
    ):
        data[key] = _coerce_seconds(raw.get(key), getattr(defaults, key))
    data["trace"] = bool(raw.get("trace", data["trace"]))

    return SessionConfig(**data)


def save_config(config: SessionConfig, path: str | Path = CONFIG_FILE) -> None:
    """Persist *config* to *path*, logging errors without raising."""

    cfg_path = Path(path)
    _ensure_parent(cfg_path)
    try:
        cfg_path.write_text(json.dumps(asdict(config), indent=4), encoding="utf-8")
    except OSError as exc:
        logger.error("Could not write config file %s: %s", cfg_path, exc)
