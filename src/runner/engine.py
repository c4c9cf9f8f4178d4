"""Calculation engine: drives the external programs of one calculation.

The engine is a single-threaded, callback-driven state machine. ``start``
builds the step queue and dispatches the first step; every completed step
re-enters :meth:`CalculationEngine._advance`, which asks the scheduler for
the next step until the queue signals the end of the calculation or a
failure halts it. The engine never blocks: external programs are launched
through a :class:`~runner.process.ProcessRunner` and their results arrive
through its callbacks.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

from calc_config import CalculationConfig
from notifier.events import (
    EVT_CYCLE_STARTED,
    EVT_FINISHED,
    EVT_ITERATION,
    EVT_MODIFIED,
    EVT_RESULTS_UPDATED,
    make_event,
)
from .molecule import MoleculeState
from .output_store import OutputStore, check_files_exist, file_size
from .payloads import InputPayloads
from .process import ProcessHandle, ProcessRunner
from .run_lock import acquire_run_lock, release_run_lock
from .scale_factors import ScaleFactorTable
from .schedule import StepQueue, build_schedule, next_dispatchable, step_to_name
from .types import (
    CalculationType,
    ChargeKind,
    CycleOutputs,
    EngineFields,
    ErrorKind,
    RefinementCriteria,
    RunState,
    Step,
)

logger = logging.getLogger(__name__)

NotifyFn = Callable[[dict[str, Any]], None]

_PROGRAMS = {
    Step.BRABO: "brabo",
    Step.STOCK: "stock",
    Step.MAFF: "maff",
    Step.CNVRTAFF: "cnvrtaff",
    Step.RELAX: "relax",
}
_NO_CONVERGENCE_MARKER = " " * 40 + "NO CONVERGENCE !!!"
_ITERATION_LINE_LENGTH = 75
_PUNCH_FIELD_WIDTH = 10
_PUNCH_FIELDS_PER_LINE = 8


class CalculationEngine:
    """Runs one calculation pipeline at a time.

    Args:
        molecule: Host structure receiving coordinates, forces and charges.
        config: Calculation scalars (type, directory, name, backups, ...).
        runner: Launches the external programs and owns the timers.
        executables: Program name -> executable path.
        payloads: Program inputs; may also be filled later through the
            ``set_*_input`` methods.
        notify_fn: Receives every event dict the engine emits.
        run_id: Identifier stamped on emitted events.
        retry_delay: Seconds between termination checks of a program that
            reported completion but is still alive.
        continue_policy: Asked at start whether a continuable geometry
            optimization resumes from its current coordinates.
        lock_working_dir: Hold a ``run.lock`` in the working directory
            while running.
    """

    def __init__(
        self,
        molecule: MoleculeState,
        config: CalculationConfig,
        *,
        runner: ProcessRunner,
        executables: Mapping[str, str],
        payloads: InputPayloads | None = None,
        notify_fn: NotifyFn | None = None,
        run_id: str = "-",
        retry_delay: float = 1.0,
        continue_policy: Callable[[], bool] | None = None,
        lock_working_dir: bool = True,
    ) -> None:
        self._molecule = molecule
        self._config = config
        self._runner = runner
        self._executables = dict(executables)
        self._payloads = payloads if payloads is not None else InputPayloads()
        self._notify = notify_fn or (lambda event: None)
        self._run_id = run_id
        self._retry_delay = retry_delay
        self._continue_policy = continue_policy or (lambda: True)
        self._lock_working_dir = lock_working_dir

        self._queue = StepQueue()
        self._cycle = 0
        self._error = ErrorKind.NONE
        self._running = False
        self._paused = False
        self._stop_requested = False
        self._finished = False
        self._continuable = config.continuable
        self._modified = False
        self._process: ProcessHandle | None = None
        self._lock_path: Path | None = None

    # ------------------------------------------------------------------
    # state

    @property
    def config(self) -> CalculationConfig:
        return self._config

    @property
    def payloads(self) -> InputPayloads:
        return self._payloads

    @property
    def store(self) -> OutputStore:
        return OutputStore(self._config.work_dir, self._config.name)

    @property
    def state(self) -> RunState:
        if self._running:
            if self._paused:
                return RunState.PAUSED
            if self._stop_requested:
                return RunState.STOP_REQUESTED
            return RunState.RUNNING
        return RunState.FINISHED if self._finished else RunState.IDLE

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def error(self) -> ErrorKind:
        return self._error

    @property
    def current_cycle(self) -> int:
        return self._cycle

    @property
    def continuable(self) -> bool:
        return self._continuable

    @property
    def modified(self) -> bool:
        return self._modified

    @property
    def steps(self) -> list[str]:
        return self._queue.names()

    def mark_saved(self) -> None:
        self._modified = False

    # ------------------------------------------------------------------
    # control

    def start(self) -> bool:
        """Start a new calculation or resume a paused one.

        Returns ``False`` without touching the run state when the engine
        is already running or a precondition fails. A stopped program must
        deliver its exit before a new calculation can start.
        """
        if self._running:
            if not self._paused:
                logger.warning("A calculation is already running in %s", self._config.work_dir)
                return False
            if self._lock_working_dir and self._lock_path is None and self._process is None:
                if not self._acquire_lock():
                    return False
            self._paused = False
            self._set_modified()
            logger.info("Resuming calculation %s at cycle %d", self._config.name, self._cycle + 1)
            if self._process is None:
                self._advance()
            return True

        if self._process is not None:
            logger.warning(
                "The previous program in %s has not exited yet", self._config.work_dir
            )
            return False
        if not self._check_preconditions():
            return False
        store = self.store
        geometry = self._is_optimization()

        try:
            store.working_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Unable to create the directory %s: %s", store.working_dir, exc)
            return False
        if self._lock_working_dir and self._lock_path is None and not self._acquire_lock():
            return False

        if not self._copy_start_vector():
            self._release_lock()
            return False

        crd = store.path("crd")
        resume = (
            geometry
            and self._continuable
            and crd.exists()
            and self._continue_policy()
        )
        if resume:
            logger.info("Continuing the optimization from %s", crd)
        elif not self._molecule.write_structure(crd, self._config.extended_format):
            logger.error("Unable to write the initial coordinates to %s", crd)
            self._release_lock()
            return False

        if geometry:
            try:
                store.path("c00").unlink(missing_ok=True)
            except OSError as exc:
                logger.error("The existing %s could not be removed: %s", store.path("c00"), exc)
                self._release_lock()
                return False

        store.remove_backups()

        self._queue = build_schedule(self._config.type)
        self._stop_requested = False
        self._paused = False
        self._finished = False
        self._cycle = 0
        self._error = ErrorKind.NONE
        self._running = True
        logger.info(
            "Starting %s calculation %s in %s (steps: %s)",
            self._config.type.value,
            self._config.name,
            store.working_dir,
            ", ".join(self._queue.names()),
        )
        self._advance()
        return True

    def pause(self) -> bool:
        """Pause before the next step; resume with :meth:`start`."""
        if not self._running or self._paused:
            return False
        if not self._is_optimization() and not self._payloads.has_stock:
            logger.info("A single-point run with one program cannot be paused")
            return False
        self._paused = True
        self._set_modified()
        logger.info("Calculation %s paused", self._config.name)
        return True

    def stop(self, immediate: bool = False) -> bool:
        """Stop the calculation.

        A paused calculation finalizes at once with ``UNDEFINED``. Otherwise
        ``immediate`` kills the running program and finalizes with
        ``MANUAL_STOP``; without it the calculation ends after the current
        step.
        """
        if not self._running:
            return False

        if self._paused:
            self._paused = False
            self._running = False
            if self._process is not None:
                self._process.kill()
            self._record_error(ErrorKind.UNDEFINED)
            self._advance()
            return True

        if immediate:
            if self._process is not None:
                self._process.kill()
            logger.warning("Calculation %s stopped by the user", self._config.name)
            self._running = False
            self._record_error(ErrorKind.MANUAL_STOP)
            self._advance()
        else:
            logger.info("Calculation %s will stop after the current step", self._config.name)
            self._stop_requested = True
            self._set_modified()
        return True

    # ------------------------------------------------------------------
    # inputs

    def set_config(self, config: CalculationConfig) -> bool:
        if self._running:
            logger.warning("The calculation settings cannot change while it is running")
            return False
        self._config = config
        self._continuable = config.continuable
        self._set_modified()
        return True

    def set_continuable(self, status: bool) -> None:
        self._continuable = bool(status)

    def set_brabo_input(
        self,
        lines: Sequence[str],
        basis_sets: Sequence[str] = (),
        start_vector: str | None = None,
        prefer_start_vector: bool = False,
        size1: int = 0,
        size2: int = 0,
    ) -> None:
        """Replace the primary solver input.

        While running, single-point runs ignore new input. The starting
        vector is chosen by file size: only files of ``size1`` or ``size2``
        bytes are accepted, and a size of 0 matches nothing.
        """
        if self._running and not self._is_optimization():
            return
        payloads = self._payloads
        if lines:
            payloads.brabo = list(lines)
            payloads.brabo_dirty = True
        basis_sets = list(basis_sets)
        if basis_sets and basis_sets != payloads.basis_sets:
            payloads.basis_sets = basis_sets
            payloads.check_basis_sets = True

        sizes = (size1, size2)
        if not self._running:
            existing = self.store.path("sta")
            if prefer_start_vector and _has_size(existing, sizes):
                payloads.start_vector = str(existing)
            elif _has_size(start_vector, sizes):
                payloads.start_vector = start_vector
            else:
                payloads.start_vector = None
        elif payloads.check_basis_sets and not _has_size(payloads.start_vector, sizes):
            # basis set changed mid-run
            payloads.start_vector = start_vector if _has_size(start_vector, sizes) else None
        logger.debug("Starting vector: %s", payloads.start_vector or "none")

    def set_stock_input(self, lines: Sequence[str], atdens: str | None = None) -> None:
        if lines:
            self._payloads.stock = list(lines)
            self._payloads.stock_dirty = True
        if atdens:
            self._payloads.atdens = atdens

    def set_relax_input(
        self,
        header: Sequence[str],
        maff: Sequence[str] = (),
        update_freq: int = 0,
        max_cycles: int = 0,
        steps: Sequence[int] = (),
        factors: Sequence[float] = (),
    ) -> None:
        payloads = self._payloads
        if header:
            payloads.aff_header = list(header)
            payloads.aff_dirty = True
            payloads.maff = list(maff)
        payloads.aff_update_freq = max(0, int(update_freq))
        if steps and len(steps) == len(factors):
            payloads.scale_factors = ScaleFactorTable.from_sequences(steps, factors)
        self._config = self._config.model_copy(update={"max_cycles": max(0, int(max_cycles))})

    # ------------------------------------------------------------------
    # files

    def write_input(self) -> bool:
        """Write every input file so the calculation can run elsewhere."""
        store = self.store
        payloads = self._payloads
        try:
            store.working_dir.mkdir(parents=True, exist_ok=True)
            store.write_input_file("inp", payloads.brabo)
            if self._running:
                return True
            if not self._molecule.write_structure(store.path("crd"), self._config.extended_format):
                logger.error("Unable to write the file %s", store.path("crd"))
                return False
            if not self._copy_start_vector():
                return False
            if payloads.stock:
                store.write_input_file("stin", payloads.stock)
            if payloads.maff:
                store.write_input_file("maffinp", payloads.maff)
            if payloads.aff_header:
                store.write_input_file("aff1" if payloads.maff else "aff", payloads.aff_header)
        except OSError as exc:
            logger.error("Unable to write the input files in %s: %s", store.working_dir, exc)
            return False
        return True

    def clean(self) -> int:
        """Remove the calculation's files; does nothing while running."""
        if self._running:
            return 0
        store = self.store
        if not store.working_dir.is_dir():
            return 0
        removed = store.clean()
        logger.info("Removed %d files from %s", removed, store.working_dir)
        return removed

    def brabo_output(self, cycle: int = 0) -> list[str]:
        return self.store.read_output_file("out", cycle)

    def stock_output(self, cycle: int = 0) -> list[str]:
        return self.store.read_output_file("stou", cycle)

    def relax_output(self, cycle: int = 0) -> list[str]:
        return self.store.read_output_file("aou", cycle)

    def aff_output(self, cycle: int = 0) -> list[str]:
        return self.store.read_output_file("aff", cycle)

    def available_outputs(self) -> list[CycleOutputs]:
        return self.store.available_outputs(self._cycle)

    def refinement_parameters(self) -> RefinementCriteria:
        return self.store.refinement_criteria()

    # ------------------------------------------------------------------
    # persisted fields

    def export_fields(self) -> EngineFields:
        payloads = self._payloads
        return {
            "starting_vector": payloads.start_vector or "",
            "update_energy_and_forces": payloads.brabo_dirty,
            "update_stockholder": payloads.stock_dirty,
            "update_geometry_optimization": payloads.aff_dirty,
            "check_basissets": payloads.check_basis_sets,
            "running": self._running,
            "paused": self._paused,
            "current_cycle": self._cycle,
            "error": self._error.value,
            "continuable": self._continuable,
            "steps": self._queue.names(),
        }

    def import_fields(self, fields: EngineFields) -> None:
        """Restore persisted fields; only allowed while not running.

        A calculation saved while running has no program attached anymore
        and is restored as paused.
        """
        if self._running:
            raise RuntimeError("Cannot restore fields into a running calculation")
        payloads = self._payloads
        if "starting_vector" in fields:
            payloads.start_vector = fields["starting_vector"] or None
        if "update_energy_and_forces" in fields:
            payloads.brabo_dirty = bool(fields["update_energy_and_forces"])
        if "update_stockholder" in fields:
            payloads.stock_dirty = bool(fields["update_stockholder"])
        if "update_geometry_optimization" in fields:
            payloads.aff_dirty = bool(fields["update_geometry_optimization"])
        if "check_basissets" in fields:
            payloads.check_basis_sets = bool(fields["check_basissets"])
        if "error" in fields:
            self._error = ErrorKind(fields["error"])
        if "current_cycle" in fields:
            self._cycle = int(fields["current_cycle"])
        if "continuable" in fields:
            self._continuable = bool(fields["continuable"])
        if "steps" in fields:
            self._queue = StepQueue.from_names(fields["steps"])
        running = bool(fields.get("running", False))
        paused = bool(fields.get("paused", False))
        if running and not self._queue:
            logger.warning("Saved calculation has no step queue; restoring it as stopped")
            running = False
        if running and not paused:
            logger.info("Calculation %s was interrupted; restoring it as paused", self._config.name)
            paused = True
        self._running = running
        self._paused = paused and running
        self._stop_requested = False
        self._finished = False

    # ------------------------------------------------------------------
    # dispatch

    def _advance(self) -> None:
        while True:
            if self._paused:
                return
            self._set_modified()
            if not self._running or self._stop_requested:
                self._finalize()
                return

            decision = next_dispatchable(
                self._queue,
                self._cycle,
                self._payloads,
                self._payloads.aff_update_freq,
                calculation_type=self._config.type,
                max_cycles=self._config.max_cycles,
            )
            step = decision.step
            if decision.finished:
                self._running = False
                if decision.error is not ErrorKind.NONE:
                    logger.warning(
                        "Maximum number of cycles (%d) reached", self._config.max_cycles
                    )
                    self._record_error(decision.error)
                continue
            if not decision.should_run:
                logger.debug("Cycle %d: skipping %s", self._cycle + 1, step_to_name(step))
                continue

            logger.info("Cycle %d: %s", self._cycle + 1, step_to_name(step))
            if self._dispatch(step):
                return

    def _dispatch(self, step: Step) -> bool:
        """Run one step; ``True`` when a program was launched."""
        if step is Step.NEW_CYCLE:
            self._begin_cycle()
            return False
        if step is Step.UPDATE:
            self._update_molecule()
            return False
        if step is Step.BRABO:
            return self._run_brabo()
        if step is Step.STOCK:
            return self._run_stock()
        if step is Step.MAFF:
            return self._launch(step, "\n".join(self._payloads.maff) + "\n")
        if step is Step.CNVRTAFF:
            self._payloads.aff_dirty = False
            return self._launch(step, f"{self._config.name}\n")
        if step is Step.RELAX:
            return self._run_relax()
        logger.debug("No action for step %s", step_to_name(step))
        return False

    def _finalize(self) -> None:
        self._running = False
        self._paused = False
        self._stop_requested = False
        self._finished = True
        self._release_lock()
        if self._error is ErrorKind.NONE:
            if self._is_optimization():
                self._continuable = True
            logger.info("Calculation %s finished", self._config.name)
        else:
            logger.warning(
                "Calculation %s finished with error: %s", self._config.name, self._error.value
            )
        self._emit(EVT_FINISHED, error=self._error.value, cycle=self._cycle + 1)

    # ------------------------------------------------------------------
    # steps

    def _run_brabo(self) -> bool:
        payloads = self._payloads
        if payloads.brabo_dirty:
            try:
                self.store.write_input_file("inp", payloads.brabo)
            except OSError as exc:
                self._halt("Unable to write the energy input: %s", exc)
                return False
            payloads.brabo_dirty = False

        if payloads.start_vector:
            lines = payloads.brabo
        else:
            lines = [line for line in payloads.brabo if line[:4].lower() != "star"]

        if not self._copy_start_vector():
            self._halt("Unable to copy the starting vector %s", payloads.start_vector)
            return False
        return self._launch(Step.BRABO, "\n".join(lines) + "\n", on_line=self._read_brabo_line)

    def _read_brabo_line(self, line: str) -> None:
        if not self._running:
            return
        if len(line) == _ITERATION_LINE_LENGTH and line[:30].strip():
            try:
                iteration = int(line[0:4])
                energy = float(line[4:20])
            except ValueError:
                pass
            else:
                self._emit(EVT_ITERATION, iteration=iteration, energy=energy)
                if not self._payloads.start_vector:
                    self._payloads.start_vector = str(self.store.path("sta"))
        if line[:58] == _NO_CONVERGENCE_MARKER and self._error is ErrorKind.NONE:
            logger.warning("No SCF convergence in cycle %d", self._cycle + 1)
            self._record_error(ErrorKind.NO_CONVERGENCE)

    def _run_stock(self) -> bool:
        payloads = self._payloads
        store = self.store
        if payloads.stock_dirty:
            try:
                store.write_input_file("stin", payloads.stock)
                if payloads.atdens:
                    store.path("atdens").write_text(payloads.atdens, encoding="utf-8")
                    payloads.atdens = None
            except OSError as exc:
                self._halt("Unable to update the stockholder input: %s", exc)
                return False
            payloads.stock_dirty = False
        return self._launch(Step.STOCK, f"{self._config.name}\n")

    def _run_relax(self) -> bool:
        payloads = self._payloads
        if payloads.aff_dirty:
            try:
                self.store.write_input_file("aff", payloads.aff_header)
            except OSError as exc:
                self._halt("Unable to write the internal coordinates: %s", exc)
                return False
            payloads.aff_dirty = False
        scale = payloads.scale_factors.factor(self._cycle)
        stdin = f"{self._config.name}\n{self._cycle + 1}\nn\n{scale:g}\n"
        return self._launch(Step.RELAX, stdin)

    def _update_molecule(self) -> None:
        store = self.store
        molecule = self._molecule
        if self._is_optimization() and self._cycle != 0:
            crd = store.path("crd")
            if not crd.exists() or not molecule.read_structure(crd):
                logger.warning("The structure could not be updated from %s", crd)
        if self._config.type is not CalculationType.SINGLE_POINT_ENERGY:
            pun = store.path("pun")
            if not pun.exists() or not molecule.read_forces(pun):
                logger.warning("The forces could not be updated from %s", pun)
        atom_count = molecule.atom_count()
        for kind in (ChargeKind.MULLIKEN, ChargeKind.STOCKHOLDER):
            charges = store.read_punch_values(
                kind.value, atom_count, _PUNCH_FIELD_WIDTH, _PUNCH_FIELDS_PER_LINE
            )
            if charges:
                molecule.set_charges(charges, kind)
            else:
                logger.debug("No %s charges in %s", kind.value, store.path("pun"))
        self._emit(EVT_RESULTS_UPDATED, cycle=self._cycle + 1)

    def _begin_cycle(self) -> None:
        self._backup_outputs()
        self._cycle += 1
        logger.info("Starting optimization cycle %d", self._cycle + 1)
        self._emit(EVT_CYCLE_STARTED, cycle=self._cycle + 1)

    def _backup_outputs(self) -> None:
        backup = self._config.backup
        if backup.frequency == 0 or self._cycle % backup.frequency != 0:
            return
        geometry = self._is_optimization()
        extensions: list[str] = []
        if backup.brabo:
            extensions.append("out")
        if backup.stock and self._payloads.has_stock:
            extensions.append("stou")
        if backup.relax and geometry:
            extensions.append("aou")
        if backup.aff and geometry:
            extensions.append("aff")
        if backup.crd:
            extensions.append("crd")
        self.store.backup_artifacts(self._cycle + 1, extensions)

    # ------------------------------------------------------------------
    # program completion

    def _launch(
        self,
        step: Step,
        stdin: str,
        on_line: Callable[[str], None] | None = None,
    ) -> bool:
        program = _PROGRAMS[step]
        executable = self._executables.get(program)
        if not executable:
            self._halt("No executable configured for %s", program)
            return False

        handle: ProcessHandle | None = None

        def on_exit(normal: bool) -> None:
            self._finish_step(step, handle)

        def log_line(line: str) -> None:
            logger.debug("[%s] %s", program, line)

        try:
            handle = self._runner.launch(
                executable,
                str(self.store.working_dir),
                stdin,
                on_line=on_line or log_line,
                on_exit=on_exit,
            )
        except (OSError, RuntimeError) as exc:
            self._halt("Unable to start %s: %s", program, exc)
            return False
        self._process = handle
        return True

    def _finish_step(self, step: Step, handle: ProcessHandle | None) -> None:
        if handle is None or handle is not self._process:
            return
        if not self._running:
            self._process = None
            return
        if handle.is_running():
            logger.debug("%s has not exited yet; requesting termination", _PROGRAMS[step])
            handle.request_termination()
            self._runner.call_later(self._retry_delay, lambda: self._finish_step(step, handle))
            return

        self._process = None
        if not handle.normal_exit:
            self._halt("A problem occurred while running %s", _PROGRAMS[step])
        elif step is Step.STOCK:
            self._collect_stock_charges()
        elif step is Step.CNVRTAFF:
            self._merge_internal_coordinates()
        elif step is Step.RELAX:
            self._accept_relaxed_structure()
        self._advance()

    def _collect_stock_charges(self) -> None:
        store = self.store
        try:
            store.append_to_punch(store.working_dir / "fort.7")
        except OSError as exc:
            self._halt("Unable to add the stockholder charges to %s: %s", store.path("pun"), exc)

    def _merge_internal_coordinates(self) -> None:
        try:
            self.store.merge_aff(self._payloads.aff_header)
        except OSError as exc:
            self._halt("Unable to combine the new internal coordinates: %s", exc)

    def _accept_relaxed_structure(self) -> None:
        store = self.store
        final = store.path("c00")
        if final.exists():
            if self._molecule.read_structure(final):
                logger.info("Geometry converged; optimized structure read from %s", final)
            else:
                logger.error("Unable to read the optimized coordinates from %s", final)
                self._record_error(ErrorKind.UNDEFINED)
            self._running = False
            return

        if not store.path("ncr").exists():
            self._halt("The new coordinates %s do not exist", store.path("ncr"))
            return
        try:
            store.replace_coordinates()
        except OSError as exc:
            self._halt("Unable to update the coordinates: %s", exc)

    # ------------------------------------------------------------------
    # helpers

    def _halt(self, message: str, *args: Any) -> None:
        """Stop the run with ``UNDEFINED``; the dispatcher finalizes it."""
        logger.error(message, *args)
        self._running = False
        self._record_error(ErrorKind.UNDEFINED)

    def _record_error(self, kind: ErrorKind) -> None:
        if self._error is ErrorKind.NONE and kind is not ErrorKind.NONE:
            self._error = kind
            self._set_modified()

    def _set_modified(self) -> None:
        if not self._modified:
            self._modified = True
            self._emit(EVT_MODIFIED)

    def _emit(self, event_type: str, **fields: Any) -> None:
        self._notify(make_event(event_type, self._run_id, calculation=self._config.name, **fields))

    def _is_optimization(self) -> bool:
        return self._config.type is CalculationType.GEOMETRY_OPTIMIZATION

    def _check_preconditions(self) -> bool:
        payloads = self._payloads
        if not payloads.brabo:
            logger.error("No energy input defined for %s", self._config.name)
            return False
        if self._is_optimization() and not payloads.aff_header:
            logger.error("No geometry optimization input defined for %s", self._config.name)
            return False
        if payloads.check_basis_sets:
            missing = check_files_exist(payloads.basis_sets)
            if missing:
                logger.error("Basis set files not found: %s", ", ".join(missing))
                return False
            payloads.check_basis_sets = False
        missing = [
            f"{name} ({self._executables.get(name) or 'not configured'})"
            for name in self._required_programs()
            if not self._executables.get(name) or check_files_exist([self._executables[name]])
        ]
        if missing:
            logger.error("Executables not found: %s", ", ".join(missing))
            return False
        return True

    def _required_programs(self) -> list[str]:
        programs = ["brabo"]
        if self._payloads.has_stock:
            programs.append("stock")
        if self._is_optimization():
            programs.append("relax")
            if self._payloads.maff:
                programs.extend(["maff", "cnvrtaff"])
        return programs

    def _copy_start_vector(self) -> bool:
        vector = self._payloads.start_vector
        if not vector:
            return True
        target = self.store.path("sta")
        if Path(vector).resolve() == target.resolve():
            return True
        try:
            shutil.copyfile(vector, target)
        except OSError as exc:
            logger.error("Unable to copy the starting vector %s to %s: %s", vector, target, exc)
            return False
        return True

    def _acquire_lock(self) -> bool:
        try:
            self._lock_path = acquire_run_lock(self.store.working_dir)
        except RuntimeError as exc:
            logger.error("%s", exc)
            return False
        return True

    def _release_lock(self) -> None:
        if self._lock_path is not None:
            release_run_lock(self._lock_path)
            self._lock_path = None


def _has_size(path: str | Path | None, sizes: Iterable[int]) -> bool:
    # a size of 0 means "not given", never an empty file
    expected = tuple(size for size in sizes if size > 0)
    size = file_size(path)
    return size is not None and size in expected
