"""Persistence of the calculation engine's field set.

The engine state is stored as ``calculation_state.json`` (name configurable)
in the working directory::

    {
      "run_id": "run_20240101_120000_1a2b3c4d",
      "calculation": "water",
      "updated_at": "...",
      "engine": {"running": true, "paused": true, "current_cycle": 3, ...}
    }
"""

from __future__ import annotations

import json
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jsonschema import Draft7Validator

from .schedule import STEP_NAMES
from .types import EngineFields, ErrorKind

DEFAULT_STATE_FILE = "calculation_state.json"

ENGINE_FIELDS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "starting_vector": {"type": "string"},
        "update_energy_and_forces": {"type": "boolean"},
        "update_stockholder": {"type": "boolean"},
        "update_geometry_optimization": {"type": "boolean"},
        "check_basissets": {"type": "boolean"},
        "running": {"type": "boolean"},
        "paused": {"type": "boolean"},
        "current_cycle": {"type": "integer", "minimum": 0},
        "error": {"enum": [kind.value for kind in ErrorKind]},
        "continuable": {"type": "boolean"},
        "steps": {
            "type": "array",
            "items": {"enum": sorted(STEP_NAMES.values())},
        },
    },
}

STATE_FILE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["run_id", "calculation", "engine"],
    "properties": {
        "run_id": {"type": "string", "minLength": 1},
        "calculation": {"type": "string"},
        "updated_at": {"type": "string"},
        "engine": ENGINE_FIELDS_SCHEMA,
    },
}


class StateFileError(ValueError):
    """A persisted state file exists but cannot be used."""


def generate_run_id() -> str:
    """Generate a unique run ID: ``run_YYYYMMDD_HHMMSS_<8hex>``."""
    now = datetime.now()
    ts = now.strftime("%Y%m%d_%H%M%S")
    suffix = uuid.uuid4().hex[:8]
    return f"run_{ts}_{suffix}"


def state_path(working_dir: str | os.PathLike[str], file_name: str = DEFAULT_STATE_FILE) -> Path:
    return Path(working_dir) / file_name


def save_state(
    path: str | os.PathLike[str],
    fields: EngineFields,
    *,
    run_id: str,
    calculation: str,
) -> None:
    """Persist engine fields atomically (tmp + fsync + rename)."""
    document = {
        "run_id": run_id,
        "calculation": calculation,
        "updated_at": datetime.now(timezone.utc).isoformat(),
        "engine": dict(fields),
    }
    target = Path(path)
    tmp_path = target.with_name(target.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, target)


def load_state(path: str | os.PathLike[str]) -> dict[str, Any] | None:
    """Load and validate a state file.

    Returns ``None`` if the file does not exist.

    Raises:
        StateFileError: Unreadable file, invalid JSON or schema mismatch.
    """
    source = Path(path)
    if not source.exists():
        return None
    try:
        with open(source, "r", encoding="utf-8") as f:
            document = json.load(f)
    except OSError as exc:
        raise StateFileError(f"Failed to read state file: {source} ({exc})") from exc
    except json.JSONDecodeError as exc:
        raise StateFileError(f"Invalid JSON in state file: {source} ({exc})") from exc

    validator = Draft7Validator(STATE_FILE_SCHEMA)
    errors = sorted(validator.iter_errors(document), key=lambda error: list(error.absolute_path))
    if errors:
        error = errors[0]
        location = ".".join(str(part) for part in error.absolute_path) or "(root)"
        raise StateFileError(f"State file schema error at '{location}': {error.message} ({source})")
    return document


def engine_fields(document: dict[str, Any]) -> EngineFields:
    fields: EngineFields = document.get("engine", {})
    return fields


def is_completed(document: dict[str, Any]) -> bool:
    """Check if the stored calculation is no longer running."""
    return not engine_fields(document).get("running", False)
