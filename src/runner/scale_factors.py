"""Cycle-indexed scale factors for the geometry-optimization program."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence


@dataclass(frozen=True)
class ScaleFactorTable:
    """Maps an optimization cycle to a scale factor.

    Each tier covers ``steps[i]`` consecutive cycles; tiers are laid out one
    after the other starting at cycle 0. Cycles past the last tier keep the
    last factor.

    >>> table = ScaleFactorTable((3, 5), (1.0, 0.5))
    >>> [table.factor(c) for c in (0, 2, 3, 7, 8)]
    [1.0, 1.0, 0.5, 0.5, 0.5]
    """

    steps: tuple[int, ...] = (1,)
    factors: tuple[float, ...] = (1.0,)
    thresholds: tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        steps = tuple(int(s) for s in self.steps)
        factors = tuple(float(f) for f in self.factors)
        if not steps:
            raise ValueError("A scale factor table needs at least one tier")
        if len(steps) != len(factors):
            raise ValueError(
                f"Scale steps and factors differ in length ({len(steps)} != {len(factors)})"
            )
        if any(s <= 0 for s in steps):
            raise ValueError(f"Scale steps must be positive (got {list(steps)})")
        thresholds: list[int] = []
        total = 0
        for count in steps:
            total += count
            thresholds.append(total)
        object.__setattr__(self, "steps", steps)
        object.__setattr__(self, "factors", factors)
        object.__setattr__(self, "thresholds", tuple(thresholds))

    @classmethod
    def from_sequences(
        cls, steps: Sequence[int], factors: Sequence[float]
    ) -> "ScaleFactorTable":
        return cls(tuple(steps), tuple(factors))

    def factor(self, cycle: int) -> float:
        if cycle < 0:
            raise ValueError(f"Cycle index must be >= 0 (got {cycle})")
        for threshold, value in zip(self.thresholds, self.factors):
            if cycle < threshold:
                return value
        return self.factors[-1]

    def __len__(self) -> int:
        return len(self.steps)
