"""Program input payloads consumed by the calculation engine."""

from __future__ import annotations

from dataclasses import dataclass, field

from .scale_factors import ScaleFactorTable


@dataclass
class InputPayloads:
    """Ordered line payloads for each program plus their dirty flags.

    A dirty payload must be written to disk before its next use.
    """

    brabo: list[str] = field(default_factory=list)
    brabo_dirty: bool = True
    basis_sets: list[str] = field(default_factory=list)
    check_basis_sets: bool = True
    start_vector: str | None = None

    stock: list[str] = field(default_factory=list)
    stock_dirty: bool = False
    atdens: str | None = None

    aff_header: list[str] = field(default_factory=list)
    aff_dirty: bool = False
    maff: list[str] = field(default_factory=list)
    aff_update_freq: int = 0
    scale_factors: ScaleFactorTable = field(default_factory=ScaleFactorTable)

    @property
    def has_stock(self) -> bool:
        return bool(self.stock)

    @property
    def regenerates_aff(self) -> bool:
        """True when internal coordinates are regenerated by MAFF/CNVRTAFF."""
        return bool(self.aff_header) and bool(self.maff)
