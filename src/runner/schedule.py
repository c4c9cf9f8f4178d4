"""Step queue construction and per-dispatch skip decisions."""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable, Iterator

from .payloads import InputPayloads
from .types import CalculationType, ErrorKind, Step, StepDecision

logger = logging.getLogger(__name__)

STEP_NAMES: dict[Step, str] = {
    Step.NEW_CYCLE: "new_cycle",
    Step.ACHAR: "achar",
    Step.BRABO: "brabo",
    Step.BUUR: "buur",
    Step.CNVRTAFF: "cnvrtaff",
    Step.DISTOR: "distor",
    Step.FORKON: "forkon",
    Step.MAFF: "maff",
    Step.RELAX: "relax",
    Step.STOCK: "stock",
    Step.UPDATE: "update",
}
_STEPS_BY_NAME = {name: step for step, name in STEP_NAMES.items()}


def step_to_name(step: Step) -> str:
    return STEP_NAMES[step]


def step_from_name(name: str) -> Step:
    key = str(name).strip().lower()
    if key not in _STEPS_BY_NAME:
        available = ", ".join(sorted(_STEPS_BY_NAME))
        raise ValueError(f"Unknown calculation step {name!r} (available: {available})")
    return _STEPS_BY_NAME[key]


class StepQueue:
    """Cyclic queue of pipeline steps.

    The front step is the next one to dispatch; ``rotate`` moves it to the
    back and returns it.
    """

    def __init__(self, steps: Iterable[Step] = ()) -> None:
        self._steps: deque[Step] = deque(steps)

    def rotate(self) -> Step:
        if not self._steps:
            raise RuntimeError("Cannot dispatch from an empty step queue")
        step = self._steps.popleft()
        self._steps.append(step)
        return step

    def peek(self) -> Step | None:
        return self._steps[0] if self._steps else None

    def names(self) -> list[str]:
        return [step_to_name(step) for step in self._steps]

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "StepQueue":
        return cls(step_from_name(name) for name in names)

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step: object) -> bool:
        return step in self._steps

    def __repr__(self) -> str:
        return f"StepQueue({self.names()!r})"


def build_schedule(calculation_type: CalculationType) -> StepQueue:
    """Build the step queue for a calculation type.

    All steps are always queued; whether a step actually runs is decided at
    dispatch time by :func:`next_dispatchable`.
    """
    steps = [Step.BRABO, Step.STOCK, Step.UPDATE]
    if calculation_type is CalculationType.GEOMETRY_OPTIMIZATION:
        steps.extend([Step.MAFF, Step.CNVRTAFF, Step.RELAX])
    steps.append(Step.NEW_CYCLE)
    return StepQueue(steps)


def should_regenerate_aff(
    payloads: InputPayloads, cycle: int, aff_update_freq: int
) -> bool:
    if not payloads.regenerates_aff:
        return False
    if aff_update_freq == 0 and cycle == 0:
        return True
    if aff_update_freq != 0 and cycle % aff_update_freq == 0:
        return True
    return payloads.aff_dirty


def next_dispatchable(
    queue: StepQueue,
    cycle: int,
    payloads: InputPayloads,
    aff_update_freq: int,
    *,
    calculation_type: CalculationType,
    max_cycles: int = 0,
) -> StepDecision:
    """Rotate the queue and decide what to do with the dispatched step.

    ``max_cycles`` counts completed optimization cycles; zero means no limit.
    """
    step = queue.rotate()

    if step is Step.NEW_CYCLE:
        if calculation_type is not CalculationType.GEOMETRY_OPTIMIZATION:
            return StepDecision(step, should_run=False, finished=True)
        if max_cycles and cycle + 1 >= max_cycles:
            return StepDecision(
                step,
                should_run=False,
                finished=True,
                error=ErrorKind.MAX_CYCLES_EXCEEDED,
            )
        return StepDecision(step)

    if step is Step.STOCK:
        return StepDecision(step, should_run=payloads.has_stock)

    if step in (Step.MAFF, Step.CNVRTAFF):
        return StepDecision(
            step, should_run=should_regenerate_aff(payloads, cycle, aff_update_freq)
        )

    if step in (Step.ACHAR, Step.BUUR, Step.DISTOR, Step.FORKON):
        logger.debug("Step %s is reserved and never runs", step_to_name(step))
        return StepDecision(step, should_run=False)

    return StepDecision(step)
