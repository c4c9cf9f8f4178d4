"""Type definitions for the calculation engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TypedDict


class Step(enum.Enum):
    """One dispatch unit of the calculation pipeline."""

    NEW_CYCLE = "new_cycle"
    BRABO = "brabo"
    STOCK = "stock"
    MAFF = "maff"
    CNVRTAFF = "cnvrtaff"
    RELAX = "relax"
    UPDATE = "update"
    # reserved for programs that are not wired into the pipeline yet
    ACHAR = "achar"
    BUUR = "buur"
    DISTOR = "distor"
    FORKON = "forkon"


class CalculationType(enum.Enum):
    SINGLE_POINT_ENERGY = "single_point_energy"
    ENERGY_AND_FORCES = "energy_and_forces"
    GEOMETRY_OPTIMIZATION = "geometry_optimization"


class CrystalType(enum.Enum):
    NONE = "none"
    POINT_CHARGES = "point_charges"
    SUPERMOLECULE = "supermolecule"


class ErrorKind(enum.Enum):
    """Terminal classification of a calculation."""

    NONE = "none"
    UNDEFINED = "undefined"
    NO_CONVERGENCE = "no_convergence"
    # never detected; the stdout marker for it was never enabled
    CLOSE_NUCLEI = "close_nuclei"
    MAX_CYCLES_EXCEEDED = "max_cycles_exceeded"
    MANUAL_STOP = "manual_stop"


class RunState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOP_REQUESTED = "stop_requested"
    FINISHED = "finished"


class ChargeKind(enum.Enum):
    MULLIKEN = "MULL"
    STOCKHOLDER = "STOC"


@dataclass(frozen=True)
class StepDecision:
    """What the scheduler decided for the step at the front of the queue.

    ``finished`` is set only for NEW_CYCLE when the calculation must end;
    ``error`` then carries the scheduler-detected cause (or ``NONE``).
    """

    step: Step
    should_run: bool = True
    finished: bool = False
    error: ErrorKind = ErrorKind.NONE


@dataclass(frozen=True)
class RefinementCriteria:
    largest_cartesian_force: bool = False
    cartesian_force_magnitude: bool = False
    largest_internal_force: bool = False
    internal_force_magnitude: bool = False
    largest_shift: bool = False


@dataclass(frozen=True)
class CycleOutputs:
    """Which backup copies exist for one optimization cycle."""

    cycle: int
    brabo: bool
    stock: bool
    relax: bool
    aff: bool


class EngineFields(TypedDict, total=False):
    """Flat field set persisted for a calculation."""

    starting_vector: str
    update_energy_and_forces: bool
    update_stockholder: bool
    update_geometry_optimization: bool
    check_basissets: bool
    running: bool
    paused: bool
    current_cycle: int
    error: str
    continuable: bool
    steps: list[str]
