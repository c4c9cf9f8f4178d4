"""Installation diagnostics for the external programs."""

from __future__ import annotations

import importlib.util
import os
from pathlib import Path

from app_config import PROGRAM_NAMES, AppConfig


def format_doctor_result(label: str, status: bool, remedy: str | None = None) -> str:
    status_label = "OK" if status else "FAIL"
    separator = "  " if status_label == "OK" else " "
    if status or not remedy:
        return f"{status_label}{separator}{label}"
    return f"{status_label}{separator}{label} ({remedy})"


def run_doctor(app_config: AppConfig) -> int:
    """Print one OK/FAIL line per check; return 1 when any check failed."""
    failures: list[str] = []

    def _record_check(label: str, ok: bool, remedy: str | None = None) -> None:
        if not ok:
            failures.append(label)
        print(format_doctor_result(label, ok, remedy))

    for program in PROGRAM_NAMES:
        path_text = app_config.executables.get(program)
        label = f"{program} executable"
        if not path_text:
            _record_check(label, False, f"Set executables.{program} in the config file")
            continue
        path = Path(path_text)
        if not path.is_file():
            _record_check(f"{label} {path}", False, "File not found")
        elif not os.access(path, os.X_OK):
            _record_check(f"{label} {path}", False, "File is not executable")
        else:
            _record_check(f"{label} {path}", True)

    qt_ok = importlib.util.find_spec("PySide6") is not None
    _record_check("PySide6", qt_ok, "Install with: pip install PySide6" if not qt_ok else None)

    print(f"INFO termination retry delay = {app_config.runtime.termination_retry_delay}s")
    print(f"INFO state file = {app_config.runtime.state_file}")

    if failures:
        print(f"FAIL {len(failures)} checks failed: {', '.join(failures)}")
        return 1
    print("OK  all checks passed")
    return 0
