"""Calculation definition files (YAML) and their pydantic models.

A calculation file looks like::

    calculation:
      type: geometry_optimization
      work_dir: /data/runs/water
      name: water
      max_cycles: 50
      backup: {frequency: 5, brabo: true, crd: true}
    structure:
      file: water.crd
      atoms: 3
    brabo:
      input_file: water.inp
      basis_sets: [/opt/basis/6-31g.bas]
    relax:
      header_file: water.aff
      scale_steps: [3, 5]
      scale_factors: [1.0, 0.5]

Relative file names are resolved against the directory of the calculation
file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)

from runner.types import CalculationType, CrystalType


class CalcConfigError(ValueError):
    """The calculation file is missing, malformed or inconsistent."""


class ConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


class BackupSettings(ConfigModel):
    frequency: int = Field(default=0, ge=0)
    brabo: bool = False
    stock: bool = False
    relax: bool = False
    aff: bool = False
    crd: bool = False


class CalculationConfig(ConfigModel):
    """Scalars that stay fixed while a calculation runs."""

    type: CalculationType = CalculationType.SINGLE_POINT_ENERGY
    crystal: CrystalType = CrystalType.NONE
    work_dir: str
    name: str = Field(min_length=1)
    extended_format: bool = False
    max_cycles: int = Field(default=0, ge=0)
    continuable: bool = False
    backup: BackupSettings = Field(default_factory=BackupSettings)

    @field_validator("work_dir")
    @classmethod
    def _absolute_work_dir(cls, value: str) -> str:
        path = Path(value).expanduser()
        if not path.is_absolute():
            raise ValueError(f"work_dir must be an absolute path (got {value!r})")
        return str(path)

    @field_validator("name")
    @classmethod
    def _plain_name(cls, value: str) -> str:
        if "/" in value or "\\" in value or value.strip() != value:
            raise ValueError(f"name must be a plain file base name (got {value!r})")
        return value


class StructureSection(ConfigModel):
    file: str
    atoms: int = Field(ge=1)


class BraboSection(ConfigModel):
    input: list[str] | None = None
    input_file: str | None = None
    basis_sets: list[str] = Field(default_factory=list)
    start_vector: str | None = None
    prefer_start_vector: bool = False
    start_vector_sizes: tuple[PositiveInt, PositiveInt] | None = None

    @model_validator(mode="after")
    def _consistent(self) -> "BraboSection":
        if (self.input is None) == (self.input_file is None):
            raise ValueError("exactly one of 'input' and 'input_file' is required")
        if (self.start_vector or self.prefer_start_vector) and self.start_vector_sizes is None:
            raise ValueError("start_vector_sizes is required with a starting vector")
        return self


class StockSection(ConfigModel):
    input: list[str] | None = None
    input_file: str | None = None
    atdens: str | None = None

    @model_validator(mode="after")
    def _one_input(self) -> "StockSection":
        if self.input is not None and self.input_file is not None:
            raise ValueError("'input' and 'input_file' are mutually exclusive")
        return self


class RelaxSection(ConfigModel):
    header: list[str] | None = None
    header_file: str | None = None
    maff: list[str] | None = None
    maff_file: str | None = None
    update_frequency: int = Field(default=0, ge=0)
    scale_steps: list[int] = Field(default_factory=lambda: [1])
    scale_factors: list[float] = Field(default_factory=lambda: [1.0])

    @model_validator(mode="after")
    def _consistent(self) -> "RelaxSection":
        if self.header is not None and self.header_file is not None:
            raise ValueError("'header' and 'header_file' are mutually exclusive")
        if self.maff is not None and self.maff_file is not None:
            raise ValueError("'maff' and 'maff_file' are mutually exclusive")
        if len(self.scale_steps) != len(self.scale_factors):
            raise ValueError("scale_steps and scale_factors must have the same length")
        if any(step <= 0 for step in self.scale_steps):
            raise ValueError("scale_steps must be positive")
        return self


class CalculationFile(ConfigModel):
    calculation: CalculationConfig
    structure: StructureSection
    brabo: BraboSection
    stock: StockSection | None = None
    relax: RelaxSection | None = None

    @model_validator(mode="after")
    def _optimization_needs_relax(self) -> "CalculationFile":
        if self.calculation.type is CalculationType.GEOMETRY_OPTIMIZATION and self.relax is None:
            raise ValueError("geometry_optimization requires a 'relax' section")
        return self


def load_calculation_file(path: str | Path) -> CalculationFile:
    """Parse a calculation file and inline every referenced input file.

    The returned model has ``input``/``header``/``maff`` filled and all
    paths absolute.
    """
    source = Path(path).expanduser().resolve()
    try:
        raw = yaml.safe_load(source.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CalcConfigError(f"Failed to read calculation file: {source} ({exc})") from exc
    except yaml.YAMLError as exc:
        raise CalcConfigError(f"Invalid YAML in calculation file: {source} ({exc})") from exc
    if not isinstance(raw, dict):
        raise CalcConfigError(f"Calculation file root must be a mapping: {source}")

    try:
        parsed = CalculationFile.model_validate(raw)
    except ValidationError as exc:
        raise CalcConfigError(_format_validation_error(source, exc)) from exc
    return _resolve_files(parsed, source.parent)


def _resolve_files(parsed: CalculationFile, base_dir: Path) -> CalculationFile:
    structure = parsed.structure.model_copy(
        update={"file": str(_resolve(base_dir, parsed.structure.file))}
    )

    brabo = parsed.brabo
    brabo_update: dict[str, Any] = {
        "basis_sets": [str(_resolve(base_dir, name)) for name in brabo.basis_sets],
    }
    if brabo.input_file is not None:
        brabo_update["input"] = _read_lines(base_dir, brabo.input_file, "brabo.input_file")
    if brabo.start_vector:
        brabo_update["start_vector"] = str(_resolve(base_dir, brabo.start_vector))
    brabo = brabo.model_copy(update=brabo_update)

    stock = parsed.stock
    if stock is not None:
        stock_update: dict[str, Any] = {}
        if stock.input_file is not None:
            stock_update["input"] = _read_lines(base_dir, stock.input_file, "stock.input_file")
        if stock.atdens:
            stock_update["atdens"] = str(_resolve(base_dir, stock.atdens))
        stock = stock.model_copy(update=stock_update)

    relax = parsed.relax
    if relax is not None:
        relax_update: dict[str, Any] = {}
        if relax.header_file is not None:
            relax_update["header"] = _read_lines(base_dir, relax.header_file, "relax.header_file")
        if relax.maff_file is not None:
            relax_update["maff"] = _read_lines(base_dir, relax.maff_file, "relax.maff_file")
        relax = relax.model_copy(update=relax_update)

    return parsed.model_copy(
        update={"structure": structure, "brabo": brabo, "stock": stock, "relax": relax}
    )


def read_atdens(section: StockSection | None) -> str | None:
    """Contents of the atomic density file referenced by ``section``."""
    if section is None or not section.atdens:
        return None
    try:
        return Path(section.atdens).read_text(encoding="utf-8")
    except OSError as exc:
        raise CalcConfigError(f"Failed to read stock.atdens: {section.atdens} ({exc})") from exc


def _resolve(base_dir: Path, name: str) -> Path:
    path = Path(name).expanduser()
    return path if path.is_absolute() else (base_dir / path)


def _read_lines(base_dir: Path, name: str, field_name: str) -> list[str]:
    path = _resolve(base_dir, name)
    try:
        return path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise CalcConfigError(f"Failed to read {field_name}: {path} ({exc})") from exc


def _format_validation_error(source: Path, exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ())) or "(root)"
    return f"Invalid calculation file {source} at '{location}': {error.get('msg', exc)}"
