from __future__ import annotations

from pathlib import Path

from runner.molecule import CrdFileMolecule
from runner.types import ChargeKind


def test_crd_file_molecule_copies_structures(tmp_path: Path) -> None:
    source = tmp_path / "water.crd"
    source.write_text("start\n", encoding="utf-8")
    result = tmp_path / "water.result.crd"
    molecule = CrdFileMolecule(source_path=source, atoms=3, result_path=result)
    work_crd = tmp_path / "work.crd"

    assert molecule.atom_count() == 3
    assert molecule.write_structure(work_crd, extended_format=False) is True
    assert work_crd.read_text(encoding="utf-8") == "start\n"

    work_crd.write_text("optimized\n", encoding="utf-8")
    assert molecule.read_structure(work_crd) is True
    assert result.read_text(encoding="utf-8") == "optimized\n"
    assert molecule.source_path == result

    # writing onto its own source is a no-op
    assert molecule.write_structure(result, extended_format=False) is True


def test_crd_file_molecule_reports_missing_files(tmp_path: Path) -> None:
    molecule = CrdFileMolecule(source_path=tmp_path / "absent.crd", atoms=1)

    assert molecule.write_structure(tmp_path / "out.crd", extended_format=True) is False
    assert molecule.read_structure(tmp_path / "absent.ncr") is False
    assert molecule.read_forces(tmp_path / "absent.pun") is False


def test_crd_file_molecule_keeps_forces_and_charges(tmp_path: Path) -> None:
    punch = tmp_path / "water.pun"
    punch.write_text("****FORC\n", encoding="utf-8")
    molecule = CrdFileMolecule(source_path=tmp_path / "water.crd", atoms=2)

    assert molecule.read_forces(punch) is True
    molecule.set_charges((0.1, -0.1), ChargeKind.MULLIKEN)

    assert molecule.forces_path == punch
    assert molecule.charges == {ChargeKind.MULLIKEN: [0.1, -0.1]}
