from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pytest

from cli import build_parser, main
from runner.state_machine import save_state


def _write_config(tmp_path: Path, executables: dict[str, Path] | None = None) -> Path:
    lines = ["runtime:", "  termination_retry_delay: 0.5"]
    if executables:
        lines.append("executables:")
        lines.extend(f"  {name}: {path}" for name, path in executables.items())
    path = tmp_path / "config.yaml"
    path.write_text("\n".join(lines), encoding="utf-8")
    return path


def _write_calc(tmp_path: Path) -> tuple[Path, Path]:
    work_dir = tmp_path / "run"
    work_dir.mkdir()
    calc = tmp_path / "water.yaml"
    calc.write_text(
        "\n".join(
            [
                "calculation:",
                "  type: geometry_optimization",
                f"  work_dir: {work_dir}",
                "  name: water",
                "structure: {file: water.crd, atoms: 3}",
                "brabo: {input: [ATOM]}",
                "relax: {header: [TITLE]}",
            ]
        ),
        encoding="utf-8",
    )
    return calc, work_dir


def _save_paused_state(work_dir: Path) -> None:
    save_state(
        work_dir / "calculation_state.json",
        {
            "running": True,
            "paused": True,
            "current_cycle": 2,
            "error": "none",
            "continuable": False,
            "steps": ["relax", "new_cycle", "brabo", "stock", "update", "maff", "cnvrtaff"],
        },
        run_id="run_20260101_000000_deadbeef",
        calculation="water",
    )


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_status_prints_saved_state(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _write_config(tmp_path)
    calc, work_dir = _write_calc(tmp_path)
    _save_paused_state(work_dir)
    (work_dir / "water_1.out").write_text("", encoding="utf-8")

    rc = main(["--config", str(config), "status", str(calc)])

    out = capsys.readouterr().out
    assert rc == 0
    assert "status: paused" in out
    assert "cycle: 3" in out
    assert "backups: 1" in out
    assert "run_id: run_20260101_000000_deadbeef" in out


def test_status_json_returns_document(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _write_config(tmp_path)
    calc, work_dir = _write_calc(tmp_path)
    _save_paused_state(work_dir)

    rc = main(["--config", str(config), "status", str(calc), "--json"])

    document = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert document["calculation"] == "water"
    assert document["engine"]["current_cycle"] == 2


def test_status_without_state_fails(tmp_path: Path) -> None:
    config = _write_config(tmp_path)
    calc, _ = _write_calc(tmp_path)

    assert main(["--config", str(config), "status", str(calc)]) == 1


def test_status_with_broken_calculation_file_fails(tmp_path: Path) -> None:
    calc = tmp_path / "broken.yaml"
    calc.write_text("calculation: [", encoding="utf-8")

    assert main(["--config", str(_write_config(tmp_path)), "status", str(calc)]) == 1


def test_outputs_prints_backup(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    calc, work_dir = _write_calc(tmp_path)
    (work_dir / "water_2.aou").write_text("LARGEST SHIFT  OK\n", encoding="utf-8")

    assert main(["outputs", str(calc), "--cycle", "2", "--kind", "aou"]) == 0
    assert "LARGEST SHIFT  OK" in capsys.readouterr().out
    assert main(["outputs", str(calc), "--kind", "aou"]) == 1


def test_clean_removes_calculation_files(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    calc, work_dir = _write_calc(tmp_path)
    for name in ("water.inp", "water.out", "water_1.out", "fort.7"):
        (work_dir / name).write_text("", encoding="utf-8")

    assert main(["clean", str(calc)]) == 0

    assert "removed: 4" in capsys.readouterr().out
    assert list(work_dir.iterdir()) == []


def test_doctor_reports_missing_executables(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    brabo = bin_dir / "brabo"
    brabo.write_text("#!/bin/sh\n", encoding="utf-8")
    os.chmod(brabo, 0o755)
    config = _write_config(tmp_path, {"brabo": brabo, "relax": bin_dir / "relax"})

    rc = main(["--config", str(config), "doctor"])

    out = capsys.readouterr().out
    assert rc == 1
    assert f"OK  brabo executable {brabo}" in out
    assert f"FAIL relax executable {bin_dir / 'relax'} (File not found)" in out
    assert "FAIL stock executable (Set executables.stock in the config file)" in out
    assert "INFO termination retry delay = 0.5s" in out


class _SavedEngine:
    def __init__(self) -> None:
        self.saved = 0

    def export_fields(self) -> dict:
        return {"running": False}

    def mark_saved(self) -> None:
        self.saved += 1


def test_run_loop_exits_when_final_state_save_fails(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    import runner.orchestrator as orchestrator
    from notifier import Notifier
    from notifier.events import EVT_FINISHED, make_event

    def failing_save(*_args, **_kwargs):
        raise OSError("No space left on device")

    monkeypatch.setattr(orchestrator, "save_state", failing_save)
    exits: list[bool] = []
    engine = _SavedEngine()
    notifier = Notifier(log_events=False)
    notifier.subscribe(
        orchestrator.make_state_listener(
            engine,
            tmp_path / "calculation_state.json",
            run_id="run_1",
            calculation="water",
            on_finished=lambda: exits.append(True),
        )
    )

    with caplog.at_level(logging.WARNING):
        notifier.send_event(make_event(EVT_FINISHED, "run_1", error="none"))

    assert exits == [True]
    assert engine.saved == 0
    assert "No space left on device" in caplog.text


def test_state_listener_saves_on_modified_without_exiting(tmp_path: Path) -> None:
    import runner.orchestrator as orchestrator
    from notifier.events import EVT_ITERATION, EVT_MODIFIED, make_event

    exits: list[bool] = []
    engine = _SavedEngine()
    state_file = tmp_path / "calculation_state.json"
    listener = orchestrator.make_state_listener(
        engine, state_file, run_id="run_1", calculation="water", on_finished=lambda: exits.append(True)
    )

    listener(make_event(EVT_ITERATION, "run_1", iteration=1))
    listener(make_event(EVT_MODIFIED, "run_1"))

    assert engine.saved == 1
    assert exits == []
    assert json.loads(state_file.read_text(encoding="utf-8"))["run_id"] == "run_1"
