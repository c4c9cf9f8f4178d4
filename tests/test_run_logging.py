from __future__ import annotations

import json
import logging
from pathlib import Path

from run_logging import setup_logging_context


def test_logging_context_writes_text_and_json_lines(tmp_path: Path) -> None:
    log_path = tmp_path / "pipeline.log"
    event_path = tmp_path / "events.jsonl"
    root = logging.getLogger()
    before = root.handlers[:]

    with setup_logging_context(str(log_path), False, run_id="run_9", event_log_path=str(event_path)):
        logging.getLogger("runner.engine").info("Cycle %d: %s", 1, "brabo")
        logging.getLogger("runner.engine").debug("not shown")

    assert root.handlers == before
    text = log_path.read_text(encoding="utf-8")
    assert "[INFO] [run_9] Cycle 1: brabo" in text
    assert "not shown" not in text

    records = [json.loads(line) for line in event_path.read_text(encoding="utf-8").splitlines()]
    assert len(records) == 1
    assert records[0]["message"] == "Cycle 1: brabo"
    assert records[0]["run_id"] == "run_9"
    assert records[0]["logger"] == "runner.engine"


def test_verbose_logging_keeps_debug_records(tmp_path: Path) -> None:
    log_path = tmp_path / "pipeline.log"

    with setup_logging_context(str(log_path), True):
        logging.getLogger("runner.schedule").debug("Cycle 1: skipping stock")

    assert "[DEBUG] [-] Cycle 1: skipping stock" in log_path.read_text(encoding="utf-8")
