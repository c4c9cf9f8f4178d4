"""Global application configuration for brabo_pipeline."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

_DEFAULT_CONFIG_DIR = os.path.expanduser("~/.brabo_pipeline")
_DEFAULT_CONFIG_PATH = os.path.join(_DEFAULT_CONFIG_DIR, "config.yaml")
_DEFAULT_STATE_FILE = "calculation_state.json"

_WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:\\")

PROGRAM_NAMES = ("brabo", "stock", "maff", "cnvrtaff", "relax")


@dataclass
class RuntimeConfig:
    termination_retry_delay: float = 1.0
    state_file: str = _DEFAULT_STATE_FILE
    lock_working_dir: bool = True


@dataclass
class LoggingConfig:
    verbose: bool = False
    event_log: str | None = None


@dataclass
class AppConfig:
    executables: dict[str, str] = field(default_factory=dict)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_app_config(config_path: str | None = None) -> AppConfig:
    """Load application configuration from YAML.

    Config search order:
    1. ``config_path`` argument
    2. ``BRABO_PIPELINE_CONFIG`` environment variable
    3. ``~/.brabo_pipeline/config.yaml``

    Returns defaults when the target file does not exist.
    Raises ``ValueError`` for invalid YAML or invalid schema.
    """
    path = _resolve_config_path(config_path)
    if not path.exists():
        return AppConfig()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML config: {path} ({exc})") from exc
    except OSError as exc:
        raise ValueError(f"Failed to read config file: {path} ({exc})") from exc

    if raw is None:
        return AppConfig()
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a mapping: {path}")

    cfg = _parse_app_config(raw)
    _validate_app_config(cfg)
    return cfg


def _resolve_config_path(config_path: str | None) -> Path:
    if config_path is not None:
        return Path(config_path).expanduser().resolve()
    env_path = os.environ.get("BRABO_PIPELINE_CONFIG", "").strip()
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path(_DEFAULT_CONFIG_PATH).expanduser().resolve()


def _parse_app_config(raw: dict[str, Any]) -> AppConfig:
    executables_raw = _as_mapping(raw.get("executables"), field_name="executables")
    runtime_raw = _as_mapping(raw.get("runtime"), field_name="runtime")
    logging_raw = _as_mapping(raw.get("logging"), field_name="logging")

    runtime = RuntimeConfig(
        termination_retry_delay=_as_float(
            runtime_raw.get("termination_retry_delay"),
            default=RuntimeConfig.termination_retry_delay,
            field_name="runtime.termination_retry_delay",
        ),
        state_file=_as_file_name(
            runtime_raw.get("state_file"),
            default=RuntimeConfig.state_file,
            field_name="runtime.state_file",
        ),
        lock_working_dir=_as_bool(
            runtime_raw.get("lock_working_dir"),
            default=RuntimeConfig.lock_working_dir,
            field_name="runtime.lock_working_dir",
        ),
    )
    logging_cfg = LoggingConfig(
        verbose=_as_bool(
            logging_raw.get("verbose"),
            default=LoggingConfig.verbose,
            field_name="logging.verbose",
        ),
        event_log=_as_optional_path(logging_raw.get("event_log"), field_name="logging.event_log"),
    )
    return AppConfig(
        executables=_parse_executables(executables_raw),
        runtime=runtime,
        logging=logging_cfg,
    )


def _parse_executables(raw: dict[str, Any]) -> dict[str, str]:
    result: dict[str, str] = {}
    for name, value in raw.items():
        key = str(name).strip().lower()
        if key not in PROGRAM_NAMES:
            allowed = ", ".join(PROGRAM_NAMES)
            raise ValueError(f"executables.{name} is not a known program (allowed: {allowed})")
        path = _as_optional_path(value, field_name=f"executables.{key}")
        if path is not None:
            result[key] = path
    return result


def _validate_app_config(cfg: AppConfig) -> None:
    runtime = cfg.runtime
    if runtime.termination_retry_delay <= 0:
        raise ValueError(
            "runtime.termination_retry_delay must be > 0 "
            f"(got {runtime.termination_retry_delay})"
        )
    for name, path in cfg.executables.items():
        if not Path(path).is_absolute():
            raise ValueError(f"executables.{name} must be an absolute path: {path!r}")


def _as_mapping(value: Any, *, field_name: str) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if value is None:
        return {}
    raise ValueError(f"{field_name} must be a mapping")


def _as_bool(value: Any, *, default: bool, field_name: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"{field_name} must be a boolean")


def _as_float(value: Any, *, default: float, field_name: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number (got {value!r})")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be a number (got {value!r})") from exc


def _as_file_name(value: Any, *, default: str, field_name: str) -> str:
    if value is None:
        return default
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if "/" in text or "\\" in text:
            raise ValueError(f"{field_name} must be a file name, not a path: {text!r}")
        return text
    raise ValueError(f"{field_name} must be a non-empty string")


def _as_optional_path(value: Any, *, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty path string")
    path_text = value.strip()
    if _WINDOWS_DRIVE_RE.match(path_text):
        raise ValueError(
            f"{field_name} must be a POSIX path (Windows-style paths are unsupported): {path_text!r}"
        )
    return str(Path(path_text).expanduser())
