from __future__ import annotations

from pathlib import Path

import pytest

from calc_config import CalcConfigError, CalculationConfig, load_calculation_file, read_atdens
from runner.types import CalculationType, CrystalType


def _write_calc(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "water.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_load_calculation_file_inlines_referenced_files(tmp_path: Path) -> None:
    (tmp_path / "water.inp").write_text("ATOM\nSTAR\n", encoding="utf-8")
    (tmp_path / "water.aff").write_text("TITLE\nOPTIONS\n", encoding="utf-8")
    (tmp_path / "water.atdens").write_text("densities\n", encoding="utf-8")
    path = _write_calc(
        tmp_path,
        f"""
calculation:
  type: geometry_optimization
  crystal: point_charges
  work_dir: {tmp_path / 'run'}
  name: water
  max_cycles: 20
  backup: {{frequency: 5, brabo: true}}
structure:
  file: water.crd
  atoms: 3
brabo:
  input_file: water.inp
  basis_sets: [basis/6-31g.bas]
  start_vector_sizes: [1024, 2048]
stock:
  input: [STOCK]
  atdens: water.atdens
relax:
  header_file: water.aff
  maff: [MAFF LINE]
  update_frequency: 4
  scale_steps: [3, 5]
  scale_factors: [1.0, 0.5]
""",
    )

    calc = load_calculation_file(path)

    assert calc.calculation.type is CalculationType.GEOMETRY_OPTIMIZATION
    assert calc.calculation.crystal is CrystalType.POINT_CHARGES
    assert calc.calculation.backup.frequency == 5
    assert calc.calculation.backup.brabo is True
    assert calc.structure.file == str(tmp_path / "water.crd")
    assert calc.brabo.input == ["ATOM", "STAR"]
    assert calc.brabo.basis_sets == [str(tmp_path / "basis" / "6-31g.bas")]
    assert calc.brabo.start_vector_sizes == (1024, 2048)
    assert calc.relax is not None
    assert calc.relax.header == ["TITLE", "OPTIONS"]
    assert calc.relax.maff == ["MAFF LINE"]
    assert read_atdens(calc.stock) == "densities\n"


def test_optimization_without_relax_section_is_rejected(tmp_path: Path) -> None:
    path = _write_calc(
        tmp_path,
        f"""
calculation: {{type: geometry_optimization, work_dir: {tmp_path}, name: water}}
structure: {{file: water.crd, atoms: 3}}
brabo: {{input: [ATOM]}}
""",
    )

    with pytest.raises(CalcConfigError, match="requires a 'relax' section"):
        load_calculation_file(path)


@pytest.mark.parametrize(
    ("calculation", "brabo", "location"),
    [
        ("{work_dir: runs, name: water}", "{input: [ATOM]}", "calculation.work_dir"),
        ("{work_dir: /runs, name: a/b}", "{input: [ATOM]}", "calculation.name"),
        ("{work_dir: /runs, name: water, colour: red}", "{input: [ATOM]}", "calculation.colour"),
        ("{work_dir: /runs, name: water}", "{input: [ATOM], input_file: x.inp}", "brabo"),
        ("{work_dir: /runs, name: water}", "{}", "brabo"),
        (
            "{work_dir: /runs, name: water}",
            "{input: [ATOM], start_vector_sizes: [0, 16]}",
            "brabo.start_vector_sizes",
        ),
    ],
)
def test_invalid_sections_name_their_location(tmp_path: Path, calculation, brabo, location) -> None:
    path = _write_calc(
        tmp_path,
        f"calculation: {calculation}\nstructure: {{file: water.crd, atoms: 3}}\nbrabo: {brabo}\n",
    )

    with pytest.raises(CalcConfigError, match=f"'{location}"):
        load_calculation_file(path)


def test_start_vector_requires_expected_sizes(tmp_path: Path) -> None:
    path = _write_calc(
        tmp_path,
        """
calculation: {work_dir: /runs, name: water}
structure: {file: water.crd, atoms: 3}
brabo: {input: [ATOM], prefer_start_vector: true}
""",
    )

    with pytest.raises(CalcConfigError, match="start_vector_sizes is required"):
        load_calculation_file(path)


def test_mismatched_scale_factors_are_rejected(tmp_path: Path) -> None:
    path = _write_calc(
        tmp_path,
        """
calculation: {type: geometry_optimization, work_dir: /runs, name: water}
structure: {file: water.crd, atoms: 3}
brabo: {input: [ATOM]}
relax: {header: [TITLE], scale_steps: [1, 2], scale_factors: [1.0]}
""",
    )

    with pytest.raises(CalcConfigError, match="same length"):
        load_calculation_file(path)


def test_missing_input_file_is_reported(tmp_path: Path) -> None:
    path = _write_calc(
        tmp_path,
        """
calculation: {work_dir: /runs, name: water}
structure: {file: water.crd, atoms: 3}
brabo: {input_file: absent.inp}
""",
    )

    with pytest.raises(CalcConfigError, match="brabo.input_file"):
        load_calculation_file(path)


def test_missing_calculation_file(tmp_path: Path) -> None:
    with pytest.raises(CalcConfigError, match="Failed to read calculation file"):
        load_calculation_file(tmp_path / "absent.yaml")


def test_calculation_config_is_frozen() -> None:
    config = CalculationConfig(work_dir="/runs", name="water")

    assert config.max_cycles == 0
    assert config.to_dict() == {"work_dir": "/runs", "name": "water"}
    with pytest.raises(ValueError):
        config.max_cycles = 4
