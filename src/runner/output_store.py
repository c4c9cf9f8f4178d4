"""On-disk artifacts of a calculation: inputs, outputs, backups and punch data."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, Sequence

from .types import CycleOutputs, RefinementCriteria

logger = logging.getLogger(__name__)

PUNCH_MARKER_PREFIX = "****"
_BACKUP_KINDS = ("out", "stou", "aou", "aff", "crd")
_AFF_BODY_KEYWORDS = ("GBMA", "BMAT")
_REFINEMENT_LABELS = {
    "LARGEST CARTESIAN FORCE": "largest_cartesian_force",
    "MAGNIT. CART. FORCE VEC": "cartesian_force_magnitude",
    "LARGEST INTERNAL FORCE": "largest_internal_force",
    "MAGNIT. INT. FORCE VEC": "internal_force_magnitude",
    "LARGEST SHIFT": "largest_shift",
}


class OutputStore:
    """File access for one calculation, rooted at its working directory.

    Every file is named from the calculation's base name: live artifacts are
    ``<base>.<ext>`` and cycle backups are ``<base>_<cycle>.<ext>``.
    """

    def __init__(self, working_dir: str | os.PathLike[str], base_name: str) -> None:
        self.working_dir = Path(working_dir)
        self.base_name = base_name

    def path(self, extension: str) -> Path:
        return self.working_dir / f"{self.base_name}.{extension.lstrip('.')}"

    def backup_path(self, cycle: int, extension: str) -> Path:
        return self.working_dir / f"{self.base_name}_{cycle}.{extension.lstrip('.')}"

    def write_input_file(self, extension: str, lines: Sequence[str]) -> Path:
        """Write ``lines`` to ``<base>.<extension>``; raises ``OSError``."""
        target = self.path(extension)
        target.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return target

    def read_output_file(self, extension: str, cycle: int = 0) -> list[str]:
        """Return the lines of an output; ``cycle`` 0 selects the live file.

        A missing or unreadable file yields an empty list.
        """
        source = self.path(extension) if cycle == 0 else self.backup_path(cycle, extension)
        try:
            text = source.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return []
        return text.split("\n")

    def backup_artifacts(self, cycle: int, extensions: Iterable[str]) -> list[Path]:
        """Copy live artifacts to their cycle-numbered names.

        Failures are logged and skipped; the copies that succeeded are
        returned.
        """
        copied: list[Path] = []
        for extension in extensions:
            source = self.path(extension)
            target = self.backup_path(cycle, extension)
            try:
                shutil.copyfile(source, target)
            except OSError as exc:
                logger.warning("Backup of %s to %s failed: %s", source.name, target.name, exc)
                continue
            copied.append(target)
        return copied

    def remove_backups(self) -> int:
        removed = 0
        for path in self.working_dir.glob(f"{self.base_name}_*"):
            try:
                path.unlink()
            except OSError as exc:
                logger.debug("Could not remove stale backup %s: %s", path, exc)
                continue
            removed += 1
        return removed

    def available_outputs(self, last_cycle: int) -> list[CycleOutputs]:
        result: list[CycleOutputs] = []
        for cycle in range(1, last_cycle + 1):
            flags = {kind: self.backup_path(cycle, kind).exists() for kind in _BACKUP_KINDS}
            if not (flags["out"] or flags["stou"] or flags["aou"] or flags["aff"]):
                continue
            result.append(
                CycleOutputs(
                    cycle=cycle,
                    brabo=flags["out"],
                    stock=flags["stou"],
                    relax=flags["aou"],
                    aff=flags["aff"],
                )
            )
        return result

    def read_punch_values(
        self,
        marker: str,
        count: int,
        field_width: int,
        fields_per_line: int,
    ) -> list[float]:
        """Read ``count`` fixed-width numbers following a ``****<marker>`` line.

        An empty list signals failure: missing punch file, missing marker, a
        file that ends early or a field that is not a number.
        """
        try:
            with self.path("pun").open("r", encoding="utf-8", errors="replace") as handle:
                lines = [line.rstrip("\r\n") for line in handle]
        except OSError:
            return []

        header = PUNCH_MARKER_PREFIX + marker
        try:
            start = next(i for i, line in enumerate(lines) if line.startswith(header))
        except StopIteration:
            logger.debug("Punch marker %s not found", header)
            return []

        values: list[float] = []
        row = start + 1
        while len(values) < count:
            if row >= len(lines):
                logger.debug("Punch file ended after %d of %d %s values", len(values), count, marker)
                return []
            line = lines[row]
            take = min(fields_per_line, count - len(values))
            for j in range(take):
                field_text = line[j * field_width : (j + 1) * field_width]
                value = _parse_fortran_float(field_text)
                if value is None:
                    return []
                values.append(value)
            row += 1
        return values

    def append_to_punch(self, source: str | os.PathLike[str]) -> None:
        """Append a program-generated file to ``<base>.pun``; raises ``OSError``."""
        data = Path(source).read_bytes()
        with self.path("pun").open("ab") as handle:
            handle.write(data)

    def merge_aff(self, header: Sequence[str]) -> None:
        """Write ``<base>.aff`` as the header followed by the generated body.

        The body is everything in ``<base>.aff_new`` after the first line
        mentioning GBMA or BMAT. Raises ``OSError`` when the generated file
        cannot be read or has no such line.
        """
        generated = self.path("aff_new").read_text(encoding="utf-8").splitlines(keepends=True)
        for index, line in enumerate(generated):
            upper = line.upper()
            if any(keyword in upper for keyword in _AFF_BODY_KEYWORDS):
                body = "".join(generated[index + 1 :])
                break
        else:
            raise OSError(f"No GBMA/BMAT section in {self.path('aff_new')}")
        self.path("aff").write_text("\n".join(header) + "\n" + body, encoding="utf-8")

    def replace_coordinates(self) -> None:
        """Atomically replace ``<base>.crd`` with ``<base>.ncr``."""
        os.replace(self.path("ncr"), self.path("crd"))

    def refinement_criteria(self) -> RefinementCriteria:
        found: dict[str, bool] = {}
        try:
            lines = self.path("aou").read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError:
            return RefinementCriteria()
        for line in lines:
            if "OK" not in line:
                continue
            for label, attr in _REFINEMENT_LABELS.items():
                if label in line:
                    found[attr] = True
                    break
        return RefinementCriteria(**found)

    def clean(self) -> int:
        """Remove all inputs, outputs and backups of this calculation."""
        removed = 0
        patterns = (f"{self.base_name}.*", f"{self.base_name}_*", "fort.*")
        removed += _remove_matching(self.working_dir, patterns)
        tmp_dir = self.working_dir / "tmp"
        if tmp_dir.is_dir():
            removed += _remove_matching(tmp_dir, (f"{self.base_name}.*", "fort.*"))
            try:
                tmp_dir.rmdir()
            except OSError:
                logger.debug("Leaving non-empty directory %s", tmp_dir)
        return removed


def check_files_exist(paths: Iterable[str | os.PathLike[str]]) -> list[str]:
    """Return the entries of ``paths`` that do not exist."""
    return [str(path) for path in paths if not Path(path).exists()]


def file_size(path: str | os.PathLike[str] | None) -> int | None:
    if not path:
        return None
    try:
        return Path(path).stat().st_size
    except OSError:
        return None


def _parse_fortran_float(text: str) -> float | None:
    cleaned = text.strip().replace("D", "E").replace("d", "e")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _remove_matching(directory: Path, patterns: Iterable[str]) -> int:
    removed = 0
    for pattern in patterns:
        for path in directory.glob(pattern):
            if not path.is_file():
                continue
            try:
                path.unlink()
            except OSError as exc:
                logger.debug("Could not remove %s: %s", path, exc)
                continue
            removed += 1
    return removed
