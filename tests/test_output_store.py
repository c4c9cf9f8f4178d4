from __future__ import annotations

import logging
from pathlib import Path

import pytest

from runner.output_store import OutputStore, check_files_exist, file_size
from runner.types import CycleOutputs, RefinementCriteria


def _store(tmp_path: Path) -> OutputStore:
    return OutputStore(tmp_path, "mol")


def _write_punch(tmp_path: Path, text: str) -> None:
    (tmp_path / "mol.pun").write_text(text, encoding="utf-8")


def test_read_punch_values_returns_fields_in_order(tmp_path: Path) -> None:
    _write_punch(
        tmp_path,
        "****MULL\n      9.99      9.99      9.99      9.99\n"
        "****STOC\n      0.25     -0.50      1.00     -0.75\n",
    )

    assert _store(tmp_path).read_punch_values("STOC", 4, 10, 8) == [0.25, -0.5, 1.0, -0.75]


def test_read_punch_values_spans_lines_and_fortran_exponents(tmp_path: Path) -> None:
    first = "".join(f"{value:10.2f}" for value in range(8))
    _write_punch(tmp_path, f"****MULL\n{first}\n   0.5D-01   1.0d+00\n")

    values = _store(tmp_path).read_punch_values("MULL", 10, 10, 8)

    assert values == [0.0, 1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 0.05, 1.0]


@pytest.mark.parametrize(
    "text",
    [
        "****MULL\n      0.25\n",
        "****STOC\n      0.25\n",
        "****STOC\n      0.25      abcd\n",
    ],
    ids=["missing-marker", "short-file", "bad-field"],
)
def test_read_punch_values_signals_failure_with_empty_list(tmp_path: Path, text: str) -> None:
    _write_punch(tmp_path, text)

    assert _store(tmp_path).read_punch_values("STOC", 2, 10, 8) == []


def test_read_punch_values_without_punch_file(tmp_path: Path) -> None:
    assert _store(tmp_path).read_punch_values("STOC", 2, 10, 8) == []


def test_read_output_file_selects_live_or_backup(tmp_path: Path) -> None:
    store = _store(tmp_path)
    (tmp_path / "mol.out").write_text("latest\n", encoding="utf-8")
    (tmp_path / "mol_2.out").write_text("cycle two", encoding="utf-8")

    assert store.read_output_file("out") == ["latest", ""]
    assert store.read_output_file("out", 2) == ["cycle two"]
    assert store.read_output_file("out", 3) == []


def test_backup_artifacts_skips_missing_files(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    store = _store(tmp_path)
    (tmp_path / "mol.out").write_text("energy\n", encoding="utf-8")
    (tmp_path / "mol.crd").write_text("coords\n", encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        copied = store.backup_artifacts(4, ["out", "aou", "crd"])

    assert [path.name for path in copied] == ["mol_4.out", "mol_4.crd"]
    assert (tmp_path / "mol_4.out").read_text(encoding="utf-8") == "energy\n"
    assert "mol.aou" in caplog.text


def test_available_outputs_lists_cycles_with_backups(tmp_path: Path) -> None:
    store = _store(tmp_path)
    (tmp_path / "mol_1.out").write_text("", encoding="utf-8")
    (tmp_path / "mol_1.aou").write_text("", encoding="utf-8")
    (tmp_path / "mol_3.stou").write_text("", encoding="utf-8")
    (tmp_path / "mol_2.crd").write_text("", encoding="utf-8")

    assert store.available_outputs(3) == [
        CycleOutputs(cycle=1, brabo=True, stock=False, relax=True, aff=False),
        CycleOutputs(cycle=3, brabo=False, stock=True, relax=False, aff=False),
    ]


def test_merge_aff_joins_header_and_generated_body(tmp_path: Path) -> None:
    (tmp_path / "mol.aff_new").write_text(
        "generated title\n bmat section\n  1  2  STRE\n  2  3  STRE\n", encoding="utf-8"
    )

    _store(tmp_path).merge_aff(["TITLE", "OPTIONS"])

    assert (tmp_path / "mol.aff").read_text(encoding="utf-8") == (
        "TITLE\nOPTIONS\n  1  2  STRE\n  2  3  STRE\n"
    )


def test_merge_aff_without_section_keyword_fails(tmp_path: Path) -> None:
    (tmp_path / "mol.aff_new").write_text("nothing useful\n", encoding="utf-8")

    with pytest.raises(OSError, match="GBMA/BMAT"):
        _store(tmp_path).merge_aff(["TITLE"])


def test_append_to_punch_and_replace_coordinates(tmp_path: Path) -> None:
    store = _store(tmp_path)
    _write_punch(tmp_path, "****FORC\n")
    (tmp_path / "fort.7").write_text("****STOC\n", encoding="utf-8")
    (tmp_path / "mol.ncr").write_text("new\n", encoding="utf-8")
    (tmp_path / "mol.crd").write_text("old\n", encoding="utf-8")

    store.append_to_punch(tmp_path / "fort.7")
    store.replace_coordinates()

    assert (tmp_path / "mol.pun").read_text(encoding="utf-8") == "****FORC\n****STOC\n"
    assert (tmp_path / "mol.crd").read_text(encoding="utf-8") == "new\n"
    assert not (tmp_path / "mol.ncr").exists()


def test_refinement_criteria_reads_converged_flags(tmp_path: Path) -> None:
    (tmp_path / "mol.aou").write_text(
        "\n".join(
            [
                " LARGEST CARTESIAN FORCE    0.0001    OK",
                " MAGNIT. CART. FORCE VEC    0.0300",
                " LARGEST SHIFT              0.0002    OK",
            ]
        ),
        encoding="utf-8",
    )

    assert _store(tmp_path).refinement_criteria() == RefinementCriteria(
        largest_cartesian_force=True,
        largest_shift=True,
    )


def test_refinement_criteria_without_log(tmp_path: Path) -> None:
    assert _store(tmp_path).refinement_criteria() == RefinementCriteria()


def test_clean_removes_live_backup_and_scratch_files(tmp_path: Path) -> None:
    for name in ("mol.inp", "mol.out", "mol_1.out", "fort.7", "keep.txt"):
        (tmp_path / name).write_text("", encoding="utf-8")
    scratch = tmp_path / "tmp"
    scratch.mkdir()
    (scratch / "mol.scr").write_text("", encoding="utf-8")
    (scratch / "fort.10").write_text("", encoding="utf-8")

    assert _store(tmp_path).clean() == 6
    assert sorted(path.name for path in tmp_path.iterdir()) == ["keep.txt"]


def test_check_files_exist_and_file_size(tmp_path: Path) -> None:
    present = tmp_path / "basis.bas"
    present.write_bytes(b"12345")

    assert check_files_exist([present, tmp_path / "gone.bas"]) == [str(tmp_path / "gone.bas")]
    assert file_size(present) == 5
    assert file_size(tmp_path / "gone.bas") is None
    assert file_size(None) is None
