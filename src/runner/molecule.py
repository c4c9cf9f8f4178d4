"""The molecular structure the engine reads results into."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Sequence

from .types import ChargeKind

logger = logging.getLogger(__name__)


class MoleculeState(Protocol):
    """Narrow update contract of the host application's molecule.

    The read/write methods return ``True`` on success.
    """

    def atom_count(self) -> int: ...
    def write_structure(self, path: Path, extended_format: bool) -> bool: ...
    def read_structure(self, path: Path) -> bool: ...
    def read_forces(self, path: Path) -> bool: ...
    def set_charges(self, charges: Sequence[float], kind: ChargeKind) -> None: ...


@dataclass
class CrdFileMolecule:
    """File-backed molecule used when the engine runs from the command line.

    The structure lives in a coordinate file; reading a result structure
    copies it to ``result_path``. Forces and charges are kept in memory.
    """

    source_path: Path
    atoms: int
    result_path: Path | None = None
    forces_path: Path | None = None
    charges: dict[ChargeKind, list[float]] = field(default_factory=dict)

    def atom_count(self) -> int:
        return self.atoms

    def write_structure(self, path: Path, extended_format: bool) -> bool:
        if Path(path).resolve() == Path(self.source_path).resolve():
            return True
        try:
            shutil.copyfile(self.source_path, path)
        except OSError as exc:
            logger.error("Cannot write coordinates to %s: %s", path, exc)
            return False
        return True

    def read_structure(self, path: Path) -> bool:
        if not path.is_file():
            return False
        if self.result_path is not None:
            try:
                shutil.copyfile(path, self.result_path)
            except OSError as exc:
                logger.error("Cannot store coordinates in %s: %s", self.result_path, exc)
                return False
        self.source_path = self.result_path if self.result_path is not None else path
        return True

    def read_forces(self, path: Path) -> bool:
        if not path.is_file():
            return False
        self.forces_path = path
        return True

    def set_charges(self, charges: Sequence[float], kind: ChargeKind) -> None:
        self.charges[kind] = list(charges)
