"""Command bodies for running and inspecting a calculation from the CLI."""

from __future__ import annotations

import json
import logging
import signal
from pathlib import Path
from typing import Any, Callable

from PySide6 import QtCore

from app_config import AppConfig, load_app_config
from calc_config import CalculationFile, load_calculation_file, read_atdens
from notifier.events import EVT_FINISHED, EVT_MODIFIED
from notifier.notifier import Notifier, make_notify_callback
from run_logging import setup_logging_context
from .engine import CalculationEngine
from .molecule import CrdFileMolecule
from .output_store import OutputStore
from .process import QtProcessRunner
from .run_lock import read_lock_owner, run_lock
from .state_machine import (
    StateFileError,
    engine_fields,
    generate_run_id,
    is_completed,
    load_state,
    save_state,
    state_path,
)
from .types import ErrorKind, RunState

logger = logging.getLogger(__name__)

LOG_FILE = "pipeline.log"
OUTPUT_KINDS = ("out", "stou", "aou", "aff")
_SIGNAL_POLL_MS = 200


def cmd_run(
    calc_file: str,
    json_output: bool = False,
    verbose: bool = False,
    app_config: AppConfig | None = None,
) -> int:
    """Execute the run command.

    1. Load the calculation file and any saved engine state
    2. Build the engine around a Qt process runner
    3. Persist the engine state on every change
    4. Run the Qt event loop until the calculation finishes

    Returns:
        Exit code (0 = finished without error, 1 = failure).
    """
    if app_config is None:
        app_config = load_app_config()

    calc = load_calculation_file(calc_file)
    config = calc.calculation
    work_dir = Path(config.work_dir)
    work_dir.mkdir(parents=True, exist_ok=True)
    state_file = state_path(work_dir, app_config.runtime.state_file)

    try:
        previous = load_state(state_file)
    except StateFileError as exc:
        logger.error("%s", exc)
        return 1
    if previous is not None and not is_completed(previous):
        run_id = str(previous["run_id"])
    else:
        run_id = generate_run_id()

    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    event_log = app_config.logging.event_log
    with setup_logging_context(
        str(work_dir / LOG_FILE),
        verbose or app_config.logging.verbose,
        run_id=run_id,
        event_log_path=event_log,
    ):
        notifier = Notifier()
        molecule = CrdFileMolecule(
            source_path=Path(calc.structure.file),
            atoms=calc.structure.atoms,
            result_path=work_dir / f"{config.name}.result.crd",
        )
        engine = CalculationEngine(
            molecule,
            config,
            runner=QtProcessRunner(),
            executables=app_config.executables,
            notify_fn=make_notify_callback(notifier),
            run_id=run_id,
            retry_delay=app_config.runtime.termination_retry_delay,
            lock_working_dir=app_config.runtime.lock_working_dir,
        )
        apply_inputs(engine, calc)
        if previous is not None:
            engine.import_fields(engine_fields(previous))

        notifier.subscribe(
            make_state_listener(
                engine, state_file, run_id=run_id, calculation=config.name, on_finished=app.quit
            )
        )

        if not engine.start():
            logger.error("Calculation %s could not be started", config.name)
            return 1

        if engine.state is not RunState.FINISHED:
            previous_handler = signal.signal(
                signal.SIGINT, lambda signum, frame: engine.stop(immediate=True)
            )
            poll = QtCore.QTimer()
            poll.timeout.connect(lambda: None)
            poll.start(_SIGNAL_POLL_MS)
            try:
                app.exec()
            finally:
                poll.stop()
                signal.signal(signal.SIGINT, previous_handler)

        payload = _build_status_payload(config.name, work_dir, state_file, engine.export_fields())
        _emit(payload, as_json=json_output)
        return 0 if engine.error is ErrorKind.NONE else 1


def make_state_listener(
    engine: CalculationEngine,
    state_file: Path,
    *,
    run_id: str,
    calculation: str,
    on_finished: Callable[[], None],
) -> Callable[[dict[str, Any]], None]:
    """Save the engine state on every change; call ``on_finished`` at the end.

    ``on_finished`` runs even when the final save fails.
    """

    def _persist(event: dict[str, Any]) -> None:
        event_type = event.get("event_type")
        if event_type not in (EVT_MODIFIED, EVT_FINISHED):
            return
        try:
            save_state(state_file, engine.export_fields(), run_id=run_id, calculation=calculation)
            engine.mark_saved()
        finally:
            if event_type == EVT_FINISHED:
                on_finished()

    return _persist


def apply_inputs(engine: CalculationEngine, calc: CalculationFile) -> None:
    """Feed the program inputs of a calculation file into ``engine``."""
    brabo = calc.brabo
    size1, size2 = brabo.start_vector_sizes or (0, 0)
    engine.set_brabo_input(
        brabo.input or [],
        brabo.basis_sets,
        brabo.start_vector,
        brabo.prefer_start_vector,
        size1,
        size2,
    )
    if calc.stock is not None:
        engine.set_stock_input(calc.stock.input or [], read_atdens(calc.stock))
    if calc.relax is not None:
        relax = calc.relax
        engine.set_relax_input(
            relax.header or [],
            relax.maff or [],
            relax.update_frequency,
            calc.calculation.max_cycles,
            relax.scale_steps,
            relax.scale_factors,
        )


def cmd_status(
    calc_file: str,
    json_output: bool = False,
    app_config: AppConfig | None = None,
) -> int:
    """Display the saved state of a calculation.

    Returns:
        Exit code (0 = found, 1 = not found or unreadable).
    """
    if app_config is None:
        app_config = load_app_config()

    config = load_calculation_file(calc_file).calculation
    work_dir = Path(config.work_dir)
    state_file = state_path(work_dir, app_config.runtime.state_file)
    try:
        document = load_state(state_file)
    except StateFileError as exc:
        logger.error("%s", exc)
        return 1
    if document is None:
        logger.error("No calculation state found in %s", work_dir)
        return 1

    fields = engine_fields(document)
    if json_output:
        print(json.dumps(document, indent=2))
        return 0

    payload = _build_status_payload(config.name, work_dir, state_file, fields)
    payload["run_id"] = document.get("run_id", "")
    payload["updated_at"] = document.get("updated_at", "")
    owner = read_lock_owner(work_dir)
    if owner is not None:
        payload["locked_by"] = owner
    store = OutputStore(work_dir, config.name)
    payload["backups"] = [
        outputs.cycle for outputs in store.available_outputs(int(fields.get("current_cycle", 0)))
    ]
    _emit(payload, as_json=False)
    return 0


def cmd_outputs(
    calc_file: str,
    cycle: int = 0,
    kind: str = "out",
) -> int:
    """Print one output file; ``cycle`` 0 selects the live file."""
    if kind not in OUTPUT_KINDS:
        logger.error("Unknown output kind %r (choose from %s)", kind, ", ".join(OUTPUT_KINDS))
        return 1
    config = load_calculation_file(calc_file).calculation
    store = OutputStore(config.work_dir, config.name)
    lines = store.read_output_file(kind, cycle)
    if not lines:
        target = store.path(kind) if cycle == 0 else store.backup_path(cycle, kind)
        logger.error("Output not found: %s", target)
        return 1
    print("\n".join(lines))
    return 0


def cmd_clean(calc_file: str) -> int:
    """Remove the files of a calculation that is not running."""
    config = load_calculation_file(calc_file).calculation
    work_dir = Path(config.work_dir)
    if not work_dir.is_dir():
        logger.info("Nothing to clean in %s", work_dir)
        return 0
    try:
        with run_lock(work_dir):
            removed = OutputStore(work_dir, config.name).clean()
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 1
    print(f"removed: {removed}")
    return 0


def _emit(payload: dict[str, Any], as_json: bool) -> None:
    """Emit command result payload in text or JSON."""
    if as_json:
        print(json.dumps(payload, ensure_ascii=True, indent=2))
        return

    for key in [
        "calculation",
        "status",
        "cycle",
        "error",
        "continuable",
        "steps",
        "backups",
        "run_id",
        "updated_at",
        "locked_by",
        "state_file",
    ]:
        if key in payload:
            value = payload[key]
            if isinstance(value, list):
                value = ", ".join(str(item) for item in value) or "-"
            print(f"{key}: {value}")


def _build_status_payload(
    name: str,
    work_dir: Path,
    state_file: Path,
    fields: dict[str, Any],
) -> dict[str, Any]:
    if fields.get("running"):
        status = "paused" if fields.get("paused") else "running"
    else:
        status = "finished" if fields.get("steps") else "idle"
    return {
        "calculation": name,
        "work_dir": str(work_dir),
        "status": status,
        "cycle": int(fields.get("current_cycle", 0)) + 1,
        "error": fields.get("error", ErrorKind.NONE.value),
        "continuable": bool(fields.get("continuable", False)),
        "steps": list(fields.get("steps", [])),
        "state_file": str(state_file),
    }
